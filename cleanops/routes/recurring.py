import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import Address, Cleaner, Customer, RecurringService, User
from ..services.activity_logger import log_activity
from ..services.recurring_bookings import FREQUENCIES, generate_bookings, normalize_frequency

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recurring-services", tags=["Recurring Services"])


class RecurringServiceCreate(BaseModel):
    customerId: int
    cleanerId: Optional[int] = None
    addressId: Optional[int] = None
    cleaningType: Optional[str] = None
    frequently: str
    daysOfTheWeek: Optional[str] = None
    hours: Optional[float] = None
    costPerHour: Optional[float] = None
    totalCost: Optional[float] = None
    cleanerRate: Optional[float] = None
    paymentMethod: Optional[str] = None
    startDate: date
    startTime: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("frequently")
    @classmethod
    def check_frequency(cls, v):
        frequency = normalize_frequency(v)
        if frequency not in FREQUENCIES:
            raise ValueError(f"Frequency must be one of {', '.join(FREQUENCIES)}")
        return frequency

    @field_validator("startTime")
    @classmethod
    def check_start_time(cls, v):
        if v:
            try:
                datetime.strptime(v, "%H:%M")
            except ValueError as e:
                raise ValueError("Start time must be HH:MM") from e
        return v


class RecurringServiceUpdate(BaseModel):
    cleanerId: Optional[int] = None
    addressId: Optional[int] = None
    cleaningType: Optional[str] = None
    frequently: Optional[str] = None
    daysOfTheWeek: Optional[str] = None
    hours: Optional[float] = None
    costPerHour: Optional[float] = None
    totalCost: Optional[float] = None
    cleanerRate: Optional[float] = None
    paymentMethod: Optional[str] = None
    startDate: Optional[date] = None
    startTime: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("frequently")
    @classmethod
    def check_frequency(cls, v):
        if v is None:
            return v
        frequency = normalize_frequency(v)
        if frequency not in FREQUENCIES:
            raise ValueError(f"Frequency must be one of {', '.join(FREQUENCIES)}")
        return frequency


class PostponeRequest(BaseModel):
    resumeDate: Optional[date] = None


class RecurringServiceResponse(BaseModel):
    id: int
    customer_id: int
    cleaner_id: Optional[int] = None
    address_id: Optional[int] = None
    cleaning_type: Optional[str] = None
    frequently: str
    days_of_the_week: Optional[str] = None
    hours: Optional[float] = None
    cost_per_hour: Optional[float] = None
    total_cost: Optional[float] = None
    cleaner_rate: Optional[float] = None
    payment_method: Optional[str] = None
    start_date: date
    start_time: Optional[str] = None
    postponed: bool
    resume_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


FIELD_MAP = {
    "customerId": "customer_id",
    "cleanerId": "cleaner_id",
    "addressId": "address_id",
    "cleaningType": "cleaning_type",
    "frequently": "frequently",
    "daysOfTheWeek": "days_of_the_week",
    "hours": "hours",
    "costPerHour": "cost_per_hour",
    "totalCost": "total_cost",
    "cleanerRate": "cleaner_rate",
    "paymentMethod": "payment_method",
    "startDate": "start_date",
    "startTime": "start_time",
    "notes": "notes",
}


def _get_service(db: Session, service_id: int) -> RecurringService:
    service = db.query(RecurringService).filter(RecurringService.id == service_id).first()
    if not service:
        raise HTTPException(status_code=404, detail="Recurring service not found")
    return service


def _check_references(db: Session, customer_id: int, cleaner_id: Optional[int], address_id: Optional[int]) -> None:
    if not db.query(Customer).filter(Customer.id == customer_id).first():
        raise HTTPException(status_code=404, detail="Customer not found")
    if cleaner_id and not db.query(Cleaner).filter(Cleaner.id == cleaner_id).first():
        raise HTTPException(status_code=404, detail="Cleaner not found")
    if address_id and not (
        db.query(Address).filter(Address.id == address_id, Address.customer_id == customer_id).first()
    ):
        raise HTTPException(status_code=404, detail="Address not found")


@router.get("", response_model=list[RecurringServiceResponse])
async def list_recurring_services(
    customer_id: Optional[int] = Query(None),
    include_postponed: bool = Query(True),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(RecurringService)
    if customer_id:
        query = query.filter(RecurringService.customer_id == customer_id)
    if not include_postponed:
        query = query.filter(RecurringService.postponed.is_(False))
    return query.order_by(RecurringService.start_date.asc()).all()


@router.get("/{service_id}", response_model=RecurringServiceResponse)
async def get_recurring_service(
    service_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _get_service(db, service_id)


@router.post("", response_model=RecurringServiceResponse)
async def create_recurring_service(
    data: RecurringServiceCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _check_references(db, data.customerId, data.cleanerId, data.addressId)

    values = {FIELD_MAP[k]: v for k, v in data.model_dump().items()}
    if values["total_cost"] is None and data.hours and data.costPerHour:
        values["total_cost"] = round(data.hours * data.costPerHour, 2)

    service = RecurringService(**values)
    db.add(service)
    db.commit()
    db.refresh(service)

    log_activity(
        db, "recurring_service_created", entity_type="recurring_service", entity_id=service.id, user_id=current_user.id
    )
    logger.info(f"🔁 Recurring service {service.id} ({service.frequently}) created for customer {service.customer_id}")
    return service


@router.patch("/{service_id}", response_model=RecurringServiceResponse)
async def update_recurring_service(
    service_id: int,
    data: RecurringServiceUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = _get_service(db, service_id)
    updates = {FIELD_MAP[k]: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    _check_references(
        db,
        service.customer_id,
        updates.get("cleaner_id"),
        updates.get("address_id"),
    )
    for key, value in updates.items():
        setattr(service, key, value)
    db.commit()
    db.refresh(service)
    return service


@router.delete("/{service_id}")
async def delete_recurring_service(
    service_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete the template. Bookings already generated from it are kept"""
    service = _get_service(db, service_id)
    db.delete(service)
    db.commit()
    log_activity(
        db, "recurring_service_deleted", entity_type="recurring_service", entity_id=service_id, user_id=current_user.id
    )
    return {"message": "Recurring service deleted"}


@router.post("/{service_id}/postpone", response_model=RecurringServiceResponse)
async def postpone_recurring_service(
    service_id: int,
    data: PostponeRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Stop generating bookings, optionally until resume date"""
    service = _get_service(db, service_id)
    service.postponed = True
    service.resume_date = data.resumeDate
    db.commit()
    db.refresh(service)
    logger.info(f"⏸️ Recurring service {service_id} postponed until {data.resumeDate or 'further notice'}")
    return service


@router.post("/{service_id}/resume", response_model=RecurringServiceResponse)
async def resume_recurring_service(
    service_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = _get_service(db, service_id)
    service.postponed = False
    service.resume_date = None
    db.commit()
    db.refresh(service)
    logger.info(f"▶️ Recurring service {service_id} resumed")
    return service


@router.post("/generate")
async def generate_recurring_bookings(
    horizon_days: int = Query(30, ge=1, le=180),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create the upcoming bookings of every active recurring service"""
    return generate_bookings(db, horizon_days=horizon_days)
