import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import User
from ..services import invoiless_service
from ..services.activity_logger import log_activity
from ..services.invoice_automation import apply_invoice_webhook, auto_invoice, sync_invoice_statuses

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])
webhook_router = APIRouter(prefix="/webhooks/invoiless", tags=["webhooks"])


class AutoInvoiceRequest(BaseModel):
    bookingId: int
    bookingType: str = "upcoming"
    isResend: bool = False

    @field_validator("bookingType")
    @classmethod
    def validate_booking_type(cls, v):
        if v not in ("upcoming", "past"):
            raise ValueError("bookingType must be 'upcoming' or 'past'")
        return v


class InvoilessCustomerCreate(BaseModel):
    email: str
    firstName: str
    lastName: str = ""
    phone: str = ""
    address: str = ""


@router.post("/auto-invoice")
async def create_auto_invoice(
    data: AutoInvoiceRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create and email an Invoiless invoice for a booking, or resend the existing one"""
    result = await auto_invoice(db, data.bookingId, data.bookingType, data.isResend)
    log_activity(
        db,
        "invoice_resent" if result.get("resent") else "invoice_created",
        entity_type="booking",
        entity_id=data.bookingId,
        details={"invoice_id": result.get("invoice_id")},
        user_id=current_user.id,
    )
    return result


@router.post("/sync")
async def sync_invoices(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Pull current status of open Invoiless invoices"""
    return await sync_invoice_statuses(db)


@router.get("/customers")
async def get_invoiless_customer(
    email: str = Query(...),
    current_user: User = Depends(require_admin),
):
    customer = await invoiless_service.find_customer_by_email(email)
    if not customer:
        raise HTTPException(status_code=404, detail="Invoiless customer not found")
    return customer


@router.post("/customers")
async def create_invoiless_customer(
    data: InvoilessCustomerCreate,
    current_user: User = Depends(require_admin),
):
    return await invoiless_service.create_customer(
        email=data.email,
        first_name=data.firstName,
        last_name=data.lastName,
        phone=data.phone,
        address=data.address,
    )


@webhook_router.post("")
async def handle_invoiless_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Handle Invoiless webhook events

    Events handled:
    - invoice.paid / invoice.sent / invoice.overdue update the payment status
      of every booking carrying the invoice id
    - invoice.viewed is acknowledged without changes
    """
    try:
        payload = json.loads((await request.body()).decode("utf-8"))
    except json.JSONDecodeError:
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    event_type = payload.get("type")
    invoice_id = (payload.get("data") or {}).get("id")
    logger.info(f"📥 Received Invoiless webhook: {event_type} for {invoice_id}")

    return apply_invoice_webhook(db, event_type, invoice_id)
