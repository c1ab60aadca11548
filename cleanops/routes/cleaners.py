import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..auth import require_admin, require_cleaner
from ..database import get_db
from ..domain.bookings.schemas import BookingResponse
from ..models import Booking, Cleaner, PastBooking, RecurringService, User
from ..shared.validators import validate_email, validate_uk_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cleaners", tags=["Cleaners"])


class CleanerCreate(BaseModel):
    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    hourlyRate: Optional[float] = None
    percentageRate: Optional[float] = None
    isActive: bool = True

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v

    @field_validator("percentageRate")
    @classmethod
    def check_percentage(cls, v):
        if v is not None and not 0 <= v <= 100:
            raise ValueError("Percentage rate must be between 0 and 100")
        return v


class CleanerUpdate(CleanerCreate):
    firstName: Optional[str] = None
    isActive: Optional[bool] = None


class CleanerResponse(BaseModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    hourly_rate: Optional[float] = None
    percentage_rate: Optional[float] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


FIELD_MAP = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "hourlyRate": "hourly_rate",
    "percentageRate": "percentage_rate",
    "isActive": "is_active",
}


def _get_cleaner(db: Session, cleaner_id: int) -> Cleaner:
    cleaner = db.query(Cleaner).filter(Cleaner.id == cleaner_id).first()
    if not cleaner:
        raise HTTPException(status_code=404, detail="Cleaner not found")
    return cleaner


def calculate_earnings(db: Session, cleaner_id: int, start: Optional[datetime], end: Optional[datetime]) -> dict:
    """Sum of cleaner_pay over completed (archived) jobs in the range"""
    query = db.query(
        func.coalesce(func.sum(PastBooking.cleaner_pay), 0.0),
        func.coalesce(func.sum(PastBooking.total_hours), 0.0),
        func.count(PastBooking.id),
    ).filter(PastBooking.cleaner_id == cleaner_id)
    if start:
        query = query.filter(PastBooking.date_time >= start)
    if end:
        query = query.filter(PastBooking.date_time <= end)

    total_pay, total_hours, jobs = query.one()
    return {
        "cleaner_id": cleaner_id,
        "start": start,
        "end": end,
        "total_earnings": round(float(total_pay), 2),
        "total_hours": float(total_hours),
        "jobs_completed": jobs,
    }


# ============================================================================
# CLEANER SELF-SERVICE
# ============================================================================


@router.get("/me/bookings", response_model=list[BookingResponse])
async def get_my_upcoming_bookings(
    current_user: User = Depends(require_cleaner),
    db: Session = Depends(get_db),
):
    """Upcoming jobs assigned to the logged-in cleaner"""
    return (
        db.query(Booking)
        .filter(
            Booking.cleaner_id == current_user.cleaner_id,
            or_(Booking.booking_status.is_(None), ~func.lower(Booking.booking_status).like("%cancel%")),
        )
        .order_by(Booking.date_time.asc())
        .all()
    )


@router.get("/me/bookings/today", response_model=list[BookingResponse])
async def get_my_bookings_today(
    current_user: User = Depends(require_cleaner),
    db: Session = Depends(get_db),
):
    start = datetime.combine(datetime.utcnow().date(), datetime.min.time())
    end = start + timedelta(days=1)
    bookings = (
        db.query(Booking)
        .filter(
            Booking.cleaner_id == current_user.cleaner_id,
            Booking.date_time >= start,
            Booking.date_time < end,
        )
        .order_by(Booking.date_time.asc())
        .all()
    )
    return [b for b in bookings if not b.is_cancelled]


@router.get("/me/bookings/completed", response_model=list[BookingResponse])
async def get_my_completed_bookings(
    current_user: User = Depends(require_cleaner),
    db: Session = Depends(get_db),
):
    return (
        db.query(PastBooking)
        .filter(PastBooking.cleaner_id == current_user.cleaner_id)
        .order_by(PastBooking.date_time.desc())
        .all()
    )


@router.get("/me/earnings")
async def get_my_earnings(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(require_cleaner),
    db: Session = Depends(get_db),
):
    return calculate_earnings(db, current_user.cleaner_id, start, end)


# ============================================================================
# ADMIN CRUD
# ============================================================================


@router.get("", response_model=list[CleanerResponse])
async def list_cleaners(
    search: Optional[str] = Query(None),
    active_only: bool = Query(False),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(Cleaner)
    if active_only:
        query = query.filter(Cleaner.is_active.is_(True))
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Cleaner.first_name).like(term),
                func.lower(Cleaner.last_name).like(term),
                func.lower(Cleaner.email).like(term),
                Cleaner.phone.like(f"%{search.strip()}%"),
            )
        )
    return query.order_by(Cleaner.first_name.asc()).all()


@router.get("/{cleaner_id}", response_model=CleanerResponse)
async def get_cleaner(
    cleaner_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _get_cleaner(db, cleaner_id)


@router.post("", response_model=CleanerResponse)
async def create_cleaner(
    data: CleanerCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    cleaner = Cleaner(**{FIELD_MAP[k]: v for k, v in data.model_dump().items()})
    db.add(cleaner)
    db.commit()
    db.refresh(cleaner)
    logger.info(f"✅ Cleaner created: {cleaner.full_name} ({cleaner.id})")
    return cleaner


@router.patch("/{cleaner_id}", response_model=CleanerResponse)
async def update_cleaner(
    cleaner_id: int,
    data: CleanerUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    cleaner = _get_cleaner(db, cleaner_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(cleaner, FIELD_MAP[key], value)
    db.commit()
    db.refresh(cleaner)
    return cleaner


@router.delete("/{cleaner_id}")
async def delete_cleaner(
    cleaner_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Deactivate a cleaner who still has jobs; delete one who has none"""
    cleaner = _get_cleaner(db, cleaner_id)
    has_jobs = (
        db.query(Booking.id).filter(Booking.cleaner_id == cleaner_id).first()
        or db.query(PastBooking.id).filter(PastBooking.cleaner_id == cleaner_id).first()
    )
    if has_jobs:
        cleaner.is_active = False
        db.commit()
        return {"message": "Cleaner has bookings and was deactivated", "deactivated": True}

    db.query(User).filter(User.cleaner_id == cleaner_id).update(
        {User.cleaner_id: None}, synchronize_session=False
    )
    db.query(RecurringService).filter(RecurringService.cleaner_id == cleaner_id).update(
        {RecurringService.cleaner_id: None}, synchronize_session=False
    )
    db.delete(cleaner)
    db.commit()
    return {"message": "Cleaner deleted", "deactivated": False}


@router.get("/{cleaner_id}/earnings")
async def get_cleaner_earnings(
    cleaner_id: int,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _get_cleaner(db, cleaner_id)
    return calculate_earnings(db, cleaner_id, start, end)
