import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin, require_customer
from ..database import get_db
from ..models import User
from ..services import payment_actions, payment_methods
from ..services.payment_scheduler import check_incomplete_payments, process_payments

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentActionRequest(BaseModel):
    bookingId: int
    action: str
    amount: Optional[float] = None
    paymentMethodId: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        if v not in ("authorize", "charge"):
            raise ValueError("Action must be 'authorize' or 'charge'")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Amount must be greater than 0")
        return v


class CancelAuthorizationRequest(BaseModel):
    bookingId: int
    paymentIntentId: str


class AdjustAmountRequest(BaseModel):
    bookingId: int
    newAmount: float
    reason: str

    @field_validator("newAmount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("New amount must be greater than 0")
        return v


class SavePaymentMethodRequest(BaseModel):
    paymentMethodId: str
    stripeCustomerId: Optional[str] = None


class PaymentLinkRequest(BaseModel):
    bookingIds: list[int]
    amount: Optional[float] = None
    description: Optional[str] = None
    saveCard: bool = True
    sendEmail: bool = True
    sendSms: bool = False


class PaymentMethodResponse(BaseModel):
    id: int
    customer_id: int
    stripe_customer_id: str
    stripe_payment_method_id: str
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    card_exp_month: Optional[int] = None
    card_exp_year: Optional[int] = None
    is_default: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================================================
# AUTHORIZE / CAPTURE
# ============================================================================


@router.post("/payment-action")
async def run_payment_action(
    data: PaymentActionRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Authorize (hold) or charge a booking on the customer's saved card"""
    logger.info(f"💳 {current_user.email} requested {data.action} for booking {data.bookingId}")
    return await payment_actions.payment_action(
        db, data.bookingId, data.action, amount=data.amount, payment_method_id=data.paymentMethodId
    )


@router.post("/cancel-authorization")
async def cancel_authorization(
    data: CancelAuthorizationRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return await payment_actions.cancel_authorization(
        db, data.bookingId, data.paymentIntentId, user_id=current_user.id
    )


@router.post("/adjust-amount")
async def adjust_payment_amount(
    data: AdjustAmountRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Authorize the extra amount when a job costs more than booked"""
    return await payment_actions.adjust_payment_amount(
        db, data.bookingId, data.newAmount, data.reason, user_id=current_user.id
    )


@router.post("/process")
async def run_process_payments(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Manual run of the scheduled authorize/capture pass"""
    return await process_payments(db)


@router.get("/incomplete")
async def get_incomplete_payments(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return check_incomplete_payments(db)


@router.post("/payment-link")
async def send_payment_link(
    data: PaymentLinkRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Create a Stripe Checkout link for one or more bookings and send it to the customer"""
    return await payment_methods.send_payment_link(
        db,
        data.bookingIds,
        amount=data.amount,
        description=data.description,
        save_card=data.saveCard,
        send_email=data.sendEmail,
        send_sms_message=data.sendSms,
    )


# ============================================================================
# SAVED CARDS (OFFICE)
# ============================================================================


@router.get("/customers/{customer_id}/methods", response_model=list[PaymentMethodResponse])
async def list_customer_payment_methods(
    customer_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return payment_methods.list_payment_methods(db, customer_id)


@router.post("/customers/{customer_id}/setup-intent")
async def create_customer_setup_intent(
    customer_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return await payment_methods.create_setup_intent(db, customer_id)


@router.post("/customers/{customer_id}/methods", response_model=PaymentMethodResponse)
async def save_customer_payment_method(
    customer_id: int,
    data: SavePaymentMethodRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return await payment_methods.save_payment_method(
        db, customer_id, data.paymentMethodId, data.stripeCustomerId
    )


@router.post("/customers/{customer_id}/methods/sync")
async def sync_customer_payment_methods(
    customer_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Import cards saved directly in Stripe"""
    return await payment_methods.sync_customer_payment_methods(db, customer_id)


@router.post("/customers/{customer_id}/methods/{method_id}/default", response_model=PaymentMethodResponse)
async def set_customer_default_method(
    customer_id: int,
    method_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return payment_methods.set_default_payment_method(db, customer_id, method_id)


@router.delete("/customers/{customer_id}/methods/{method_id}")
async def delete_customer_payment_method(
    customer_id: int,
    method_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    await payment_methods.delete_payment_method(db, customer_id, method_id)
    return {"message": "Payment method removed"}


# ============================================================================
# SAVED CARDS (CUSTOMER PORTAL)
# ============================================================================


@router.get("/my/methods", response_model=list[PaymentMethodResponse])
async def list_my_payment_methods(
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return payment_methods.list_payment_methods(db, current_user.customer_id)


@router.post("/my/setup-intent")
async def create_my_setup_intent(
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return await payment_methods.create_setup_intent(db, current_user.customer_id)


@router.post("/my/methods", response_model=PaymentMethodResponse)
async def save_my_payment_method(
    data: SavePaymentMethodRequest,
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return await payment_methods.save_payment_method(
        db, current_user.customer_id, data.paymentMethodId, data.stripeCustomerId
    )


@router.post("/my/methods/{method_id}/default", response_model=PaymentMethodResponse)
async def set_my_default_method(
    method_id: int,
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    return payment_methods.set_default_payment_method(db, current_user.customer_id, method_id)


@router.delete("/my/methods/{method_id}")
async def delete_my_payment_method(
    method_id: int,
    current_user: User = Depends(require_customer),
    db: Session = Depends(get_db),
):
    await payment_methods.delete_payment_method(db, current_user.customer_id, method_id)
    return {"message": "Payment method removed"}
