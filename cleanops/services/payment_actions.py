"""
Booking Payment Actions
Authorize (hold) a booking's amount on the customer's saved card, capture or
charge it after the job, cancel a hold, and authorize an upward adjustment.

Stripe PaymentIntent ids are stored in the booking's invoice_id column.
"""

import logging
import re
from typing import Optional, Union

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..models import Booking, PastBooking
from ..models_payments import CustomerPaymentMethod
from ..shared.formatters import to_minor_units
from . import stripe_service
from .activity_logger import log_activity
from .stripe_service import StripeError

logger = logging.getLogger(__name__)

ADJUSTMENT_MARKER = "Additional payment authorized"
ADDITIONAL_INTENT_PATTERN = re.compile(r"Additional: (pi_[A-Za-z0-9_]+)")

AnyBooking = Union[Booking, PastBooking]


def find_booking(db: Session, booking_id: int) -> Optional[AnyBooking]:
    """Look in upcoming bookings first, then the archive"""
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking:
        return booking
    return db.query(PastBooking).filter(PastBooking.id == booking_id).first()


def select_payment_method(
    db: Session,
    customer_id: Optional[int],
    payment_method_id: Optional[str] = None,
    allow_any: bool = False,
) -> Optional[CustomerPaymentMethod]:
    """
    Pick the card to use: the requested one if it belongs to the customer,
    else the default. With allow_any, fall back to the newest saved card.
    """
    if not customer_id:
        return None

    query = db.query(CustomerPaymentMethod).filter(CustomerPaymentMethod.customer_id == customer_id)

    if payment_method_id:
        method = query.filter(
            CustomerPaymentMethod.stripe_payment_method_id == payment_method_id
        ).first()
        if method:
            return method
        logger.warning(
            f"⚠️ Payment method {payment_method_id} not found for customer {customer_id}, using default"
        )

    method = query.filter(CustomerPaymentMethod.is_default.is_(True)).first()
    if method or not allow_any:
        return method
    return query.order_by(CustomerPaymentMethod.created_at.desc(), CustomerPaymentMethod.id.desc()).first()


def _set_payment_status(db: Session, booking: AnyBooking, status: str, **fields) -> None:
    booking.payment_status = status
    for key, value in fields.items():
        setattr(booking, key, value)
    db.commit()


def _failure(db: Session, booking: AnyBooking, error: str, **extra) -> dict:
    _set_payment_status(db, booking, "failed")
    logger.error(f"❌ Payment failed for booking {booking.id}: {error}")
    return {"success": False, "action": "failed", "booking_id": booking.id, "error": error, **extra}


def _apply_intent_status(
    db: Session, booking: AnyBooking, intent: dict, target_status: str, new_status: str, action: str
) -> dict:
    """Map a PaymentIntent status onto the booking and build the result"""
    status = intent.get("status")
    intent_id = intent.get("id")

    if status == target_status:
        _set_payment_status(db, booking, new_status, invoice_id=intent_id)
        logger.info(f"✅ Booking {booking.id} {action} ({intent_id})")
        return {
            "success": True,
            "action": action,
            "booking_id": booking.id,
            "payment_intent_id": intent_id,
            "payment_status": new_status,
        }

    if status == "requires_action":
        _set_payment_status(db, booking, "requires_action")
        logger.warning(f"⚠️ Booking {booking.id} requires customer authentication ({intent_id})")
        return {
            "success": False,
            "action": "requires_action",
            "booking_id": booking.id,
            "requires_action": True,
            "payment_intent_id": intent_id,
            "error": "Customer authentication required",
        }

    if status == "processing":
        _set_payment_status(db, booking, "processing")
        return {
            "success": False,
            "action": "processing",
            "booking_id": booking.id,
            "payment_intent_id": intent_id,
            "error": "Payment is still processing",
        }

    if status == "requires_payment_method":
        return _failure(db, booking, "Payment method was declined", payment_intent_id=intent_id)

    label = "Authorization" if target_status == "requires_capture" else "Payment"
    return _failure(db, booking, f"{label} incomplete: {status}", payment_intent_id=intent_id)


async def payment_action(
    db: Session,
    booking_id: int,
    action: str,
    amount: Optional[float] = None,
    payment_method_id: Optional[str] = None,
) -> dict:
    """
    Authorize or charge a booking against the customer's saved card.

    Stripe failures are written to the booking and returned, never raised.

    Raises:
        HTTPException(400) for an unknown action
        HTTPException(404) when the booking does not exist
    """
    if action not in ("authorize", "charge"):
        raise HTTPException(status_code=400, detail="Action must be 'authorize' or 'charge'")

    booking = find_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    if booking.is_cancelled:
        logger.info(f"⏭️ Skipping {action} for cancelled booking {booking_id}")
        return {
            "success": False,
            "action": "skipped",
            "booking_id": booking_id,
            "error": "Booking is cancelled",
        }

    current_status = (booking.payment_status or "").lower()

    if action == "authorize" and current_status in ("paid", "authorized"):
        return {
            "success": True,
            "action": "already_processed",
            "booking_id": booking_id,
            "payment_status": booking.payment_status,
        }
    if action == "charge" and current_status == "paid":
        return {
            "success": True,
            "action": "already_paid",
            "booking_id": booking_id,
            "payment_status": booking.payment_status,
        }

    if action == "charge" and booking.invoice_id and current_status == "authorized":
        return await _capture_authorization(db, booking, amount)

    method = select_payment_method(db, booking.customer_id, payment_method_id)
    if not method:
        return {
            "success": False,
            "action": "failed",
            "booking_id": booking_id,
            "error": "No payment method available for this customer",
        }

    charge_amount = amount if amount is not None else booking.total_cost
    if not charge_amount or charge_amount <= 0:
        return {
            "success": False,
            "action": "failed",
            "booking_id": booking_id,
            "error": "Booking has no amount to charge",
        }

    is_authorize = action == "authorize"
    try:
        intent = await stripe_service.create_payment_intent(
            amount=to_minor_units(charge_amount),
            customer_id=method.stripe_customer_id,
            payment_method_id=method.stripe_payment_method_id,
            capture_method="manual" if is_authorize else "automatic",
            description=(
                f"Authorization for booking {booking_id}"
                if is_authorize
                else f"Payment for booking {booking_id}"
            ),
            metadata={
                "booking_id": booking_id,
                "customer_id": booking.customer_id,
                "action": action,
            },
        )
    except StripeError as e:
        return _failure(db, booking, e.message, **{k: v for k, v in e.as_dict().items() if k != "error"})

    if is_authorize:
        return _apply_intent_status(db, booking, intent, "requires_capture", "authorized", "authorized")
    return _apply_intent_status(db, booking, intent, "succeeded", "paid", "charged")


async def _capture_authorization(db: Session, booking: AnyBooking, amount: Optional[float]) -> dict:
    """Capture the held amount plus any separately authorized adjustment"""
    try:
        intent = await stripe_service.capture_payment_intent(
            booking.invoice_id,
            amount_to_capture=to_minor_units(amount) if amount is not None else None,
        )
    except StripeError as e:
        return _failure(db, booking, e.message, **{k: v for k, v in e.as_dict().items() if k != "error"})

    if intent.get("status") != "succeeded":
        return _failure(
            db, booking, f"Capture incomplete: {intent.get('status')}", payment_intent_id=intent.get("id")
        )

    result = {
        "success": True,
        "action": "captured",
        "booking_id": booking.id,
        "payment_intent_id": intent.get("id"),
        "payment_status": "paid",
    }

    match = ADDITIONAL_INTENT_PATTERN.search(booking.additional_details or "")
    if match:
        try:
            await stripe_service.capture_payment_intent(match.group(1))
            result["additional_payment_intent_id"] = match.group(1)
        except StripeError as e:
            logger.error(f"❌ Failed to capture adjustment {match.group(1)} for booking {booking.id}: {e.message}")
            result["additional_capture_error"] = e.message

    _set_payment_status(db, booking, "paid")
    logger.info(f"✅ Booking {booking.id} captured ({intent.get('id')})")
    return result


async def cancel_authorization(
    db: Session, booking_id: int, payment_intent_id: str, user_id: Optional[int] = None
) -> dict:
    """
    Release a held authorization. An intent that is already captured or
    cancelled (payment_intent_unexpected_state) still clears the booking.
    """
    try:
        await stripe_service.cancel_payment_intent(payment_intent_id)
    except StripeError as e:
        if e.code != "payment_intent_unexpected_state":
            logger.error(f"❌ Failed to cancel authorization {payment_intent_id}: {e.message}")
            return {"success": False, **e.as_dict()}
        logger.warning(f"⚠️ PaymentIntent {payment_intent_id} was not cancellable, clearing booking anyway")

    for model in (Booking, PastBooking):
        db.query(model).filter(model.id == booking_id).update(
            {model.payment_status: "cancelled", model.invoice_id: None},
            synchronize_session=False,
        )
    db.commit()

    log_activity(
        db,
        "payment_authorization_cancelled",
        entity_type="booking",
        entity_id=booking_id,
        details={"payment_intent_id": payment_intent_id},
        user_id=user_id,
    )
    logger.info(f"✅ Authorization {payment_intent_id} cancelled for booking {booking_id}")
    return {"success": True, "booking_id": booking_id, "message": "Payment authorization cancelled"}


async def adjust_payment_amount(
    db: Session, booking_id: int, new_amount: float, reason: str, user_id: Optional[int] = None
) -> dict:
    """
    Authorize the difference between a booking's total and a higher new total.
    Allowed once per booking.

    Raises:
        HTTPException(404) booking missing
        HTTPException(400) amount not higher, already adjusted or no saved card
    """
    booking = find_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    current_amount = booking.total_cost or 0.0
    difference = round(new_amount - current_amount, 2)
    if difference <= 0:
        raise HTTPException(status_code=400, detail="New amount must be greater than the current amount")

    if ADJUSTMENT_MARKER in (booking.additional_details or ""):
        raise HTTPException(
            status_code=400, detail="An additional payment has already been authorized for this booking"
        )

    method = select_payment_method(db, booking.customer_id, allow_any=True)
    if not method:
        raise HTTPException(status_code=400, detail="No payment method available for this customer")

    try:
        intent = await stripe_service.create_payment_intent(
            amount=to_minor_units(difference),
            customer_id=method.stripe_customer_id,
            payment_method_id=method.stripe_payment_method_id,
            capture_method="manual",
            description=f"Additional authorization for booking {booking_id}",
            metadata={
                "booking_id": booking_id,
                "type": "adjustment",
                "original_payment_intent": booking.invoice_id,
                "reason": reason,
            },
        )
    except StripeError as e:
        _set_payment_status(db, booking, "adjustment_failed")
        logger.error(f"❌ Adjustment failed for booking {booking_id}: {e.message}")
        return {"success": False, **e.as_dict()}

    if intent.get("status") != "requires_capture":
        _set_payment_status(db, booking, "adjustment_failed")
        return {
            "success": False,
            "error": f"Additional authorization incomplete: {intent.get('status')}",
            "payment_intent_id": intent.get("id"),
        }

    note = (
        f"{ADJUSTMENT_MARKER}: £{difference:.2f} "
        f"(Original: {booking.invoice_id}, Additional: {intent.get('id')}). "
        f"Total: £{current_amount:.2f} → £{new_amount:.2f}. Reason: {reason}"
    )
    booking.additional_details = f"{booking.additional_details}\n\n{note}" if booking.additional_details else note
    booking.total_cost = new_amount
    db.commit()

    log_activity(
        db,
        "payment_amount_adjusted",
        entity_type="booking",
        entity_id=booking_id,
        details={"previous_total": current_amount, "new_total": new_amount, "reason": reason},
        user_id=user_id,
    )
    logger.info(f"✅ Additional £{difference:.2f} authorized for booking {booking_id}")
    return {
        "success": True,
        "booking_id": booking_id,
        "additional_amount": difference,
        "new_total": new_amount,
        "payment_intent_id": intent.get("id"),
    }
