"""
Saved Card Management
SetupIntents, saving/syncing cards from Stripe, default selection and payment links
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import FRONTEND_URL
from ..email_service import send_payment_link_email
from ..models import Booking, Customer, PastBooking
from ..models_payments import CustomerPaymentMethod
from ..shared.formatters import format_money, to_minor_units
from . import stripe_service
from .payment_actions import find_booking
from .twilio_service import SMSError, send_sms

logger = logging.getLogger(__name__)


def list_payment_methods(db: Session, customer_id: int) -> list[CustomerPaymentMethod]:
    return (
        db.query(CustomerPaymentMethod)
        .filter(CustomerPaymentMethod.customer_id == customer_id)
        .order_by(CustomerPaymentMethod.is_default.desc(), CustomerPaymentMethod.created_at.desc())
        .all()
    )


def _stripe_customer_id_for(db: Session, customer_id: int) -> Optional[str]:
    method = (
        db.query(CustomerPaymentMethod)
        .filter(CustomerPaymentMethod.customer_id == customer_id)
        .first()
    )
    return method.stripe_customer_id if method else None


async def ensure_stripe_customer(db: Session, customer: Customer) -> str:
    """
    Stripe customer id for a customer: reuse one from a saved card, else find
    by email, else create one tagged with our customer id.
    """
    existing = _stripe_customer_id_for(db, customer.id)
    if existing:
        return existing

    stripe_customer = await stripe_service.find_customer_by_email(customer.email)
    if stripe_customer:
        logger.info(f"🔗 Reusing Stripe customer {stripe_customer['id']} for {customer.email}")
        return stripe_customer["id"]

    stripe_customer = await stripe_service.create_customer(
        email=customer.email,
        name=customer.full_name or None,
        metadata={"customer_id": customer.id},
    )
    return stripe_customer["id"]


async def create_setup_intent(db: Session, customer_id: int) -> dict:
    """
    Start saving a card for a customer.

    Raises:
        HTTPException(404) customer missing
        HTTPException(400) customer has no email
    """
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    if not customer.email:
        raise HTTPException(status_code=400, detail="Customer email is required to save a card")

    stripe_customer_id = await ensure_stripe_customer(db, customer)
    setup_intent = await stripe_service.create_setup_intent(
        stripe_customer_id, metadata={"customer_id": customer.id}
    )
    logger.info(f"💳 SetupIntent {setup_intent.get('id')} created for customer {customer_id}")
    return {
        "client_secret": setup_intent.get("client_secret"),
        "setup_intent_id": setup_intent.get("id"),
        "stripe_customer_id": stripe_customer_id,
    }


def _store_payment_method(
    db: Session, customer_id: int, stripe_customer_id: str, payment_method: dict
) -> CustomerPaymentMethod:
    """Insert a card once; the customer's first card becomes the default"""
    existing = (
        db.query(CustomerPaymentMethod)
        .filter(CustomerPaymentMethod.stripe_payment_method_id == payment_method["id"])
        .first()
    )
    if existing:
        return existing

    has_cards = (
        db.query(CustomerPaymentMethod).filter(CustomerPaymentMethod.customer_id == customer_id).first()
        is not None
    )
    method = CustomerPaymentMethod(
        customer_id=customer_id,
        stripe_customer_id=stripe_customer_id,
        stripe_payment_method_id=payment_method["id"],
        is_default=not has_cards,
        **stripe_service.card_details(payment_method),
    )
    db.add(method)
    db.commit()
    db.refresh(method)
    logger.info(
        f"✅ Saved {method.card_brand} ****{method.card_last4} for customer {customer_id}"
        f"{' (default)' if method.is_default else ''}"
    )
    return method


async def save_payment_method(
    db: Session, customer_id: int, payment_method_id: str, stripe_customer_id: Optional[str] = None
) -> CustomerPaymentMethod:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    payment_method = await stripe_service.retrieve_payment_method(payment_method_id)
    stripe_customer_id = stripe_customer_id or payment_method.get("customer")
    if not stripe_customer_id:
        raise HTTPException(status_code=400, detail="Payment method is not attached to a Stripe customer")

    return _store_payment_method(db, customer_id, stripe_customer_id, payment_method)


def set_default_payment_method(db: Session, customer_id: int, method_id: int) -> CustomerPaymentMethod:
    """Exactly one default card per customer"""
    method = (
        db.query(CustomerPaymentMethod)
        .filter(CustomerPaymentMethod.id == method_id, CustomerPaymentMethod.customer_id == customer_id)
        .first()
    )
    if not method:
        raise HTTPException(status_code=404, detail="Payment method not found")

    db.query(CustomerPaymentMethod).filter(
        CustomerPaymentMethod.customer_id == customer_id, CustomerPaymentMethod.id != method.id
    ).update({CustomerPaymentMethod.is_default: False}, synchronize_session=False)
    method.is_default = True
    db.commit()
    db.refresh(method)
    return method


async def delete_payment_method(db: Session, customer_id: int, method_id: int) -> None:
    """Detach in Stripe and remove; the newest remaining card becomes default if needed"""
    method = (
        db.query(CustomerPaymentMethod)
        .filter(CustomerPaymentMethod.id == method_id, CustomerPaymentMethod.customer_id == customer_id)
        .first()
    )
    if not method:
        raise HTTPException(status_code=404, detail="Payment method not found")

    try:
        await stripe_service.detach_payment_method(method.stripe_payment_method_id)
    except stripe_service.StripeError as e:
        logger.warning(f"⚠️ Stripe detach failed for {method.stripe_payment_method_id}: {e.message}")

    was_default = method.is_default
    db.delete(method)
    db.flush()

    if was_default:
        replacement = (
            db.query(CustomerPaymentMethod)
            .filter(CustomerPaymentMethod.customer_id == customer_id)
            .order_by(CustomerPaymentMethod.created_at.desc(), CustomerPaymentMethod.id.desc())
            .first()
        )
        if replacement:
            replacement.is_default = True
    db.commit()


async def sync_customer_payment_methods(db: Session, customer_id: int) -> dict:
    """Import cards saved in Stripe that are missing locally"""
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    stripe_customer_id = _stripe_customer_id_for(db, customer_id)
    if not stripe_customer_id and customer.email:
        stripe_customer = await stripe_service.find_customer_by_email(customer.email)
        stripe_customer_id = stripe_customer["id"] if stripe_customer else None
    if not stripe_customer_id:
        return {"synced": 0, "total": 0, "message": "No Stripe customer found"}

    cards = await stripe_service.list_payment_methods(stripe_customer_id)
    before = len(list_payment_methods(db, customer_id))
    for card in cards:
        _store_payment_method(db, customer_id, stripe_customer_id, card)
    synced = len(list_payment_methods(db, customer_id)) - before

    logger.info(f"🔄 Synced {synced} new cards for customer {customer_id}")
    return {"synced": synced, "total": len(cards)}


async def sync_payment_method_from_stripe(db: Session, payment_method_id: str, stripe_customer_id: str) -> Optional[CustomerPaymentMethod]:
    """
    Store a card reported by a Stripe webhook. The owning customer is read
    from the Stripe customer's metadata.customer_id.
    """
    stripe_customer = await stripe_service.retrieve_customer(stripe_customer_id)
    internal_id = (stripe_customer.get("metadata") or {}).get("customer_id")
    if not internal_id:
        logger.warning(f"⚠️ Stripe customer {stripe_customer_id} has no customer_id metadata")
        return None

    try:
        customer_id = int(internal_id)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ Invalid customer_id metadata on {stripe_customer_id}: {internal_id}")
        return None

    if not db.query(Customer).filter(Customer.id == customer_id).first():
        logger.warning(f"⚠️ Stripe customer {stripe_customer_id} points at unknown customer {customer_id}")
        return None

    payment_method = await stripe_service.retrieve_payment_method(payment_method_id)
    return _store_payment_method(db, customer_id, stripe_customer_id, payment_method)


async def send_payment_link(
    db: Session,
    booking_ids: list[int],
    amount: Optional[float] = None,
    description: Optional[str] = None,
    save_card: bool = True,
    send_email: bool = True,
    send_sms_message: bool = False,
) -> dict:
    """
    Create a Stripe Checkout page for one or more bookings of the same customer,
    store it on the bookings and optionally email/SMS it.
    """
    bookings = []
    for booking_id in booking_ids:
        booking = find_booking(db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail=f"Booking {booking_id} not found")
        bookings.append(booking)

    if not bookings:
        raise HTTPException(status_code=400, detail="At least one booking is required")

    first = bookings[0]
    total = amount if amount is not None else sum(b.total_cost or 0 for b in bookings)
    if total <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than zero")

    description = description or (
        f"Cleaning booking #{first.id}" if len(bookings) == 1 else f"{len(bookings)} cleaning bookings"
    )

    stripe_customer_id = _stripe_customer_id_for(db, first.customer_id) if first.customer_id else None
    session = await stripe_service.create_checkout_session(
        amount=to_minor_units(total),
        description=description,
        success_url=f"{FRONTEND_URL}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{FRONTEND_URL}/payment-cancelled",
        customer_email=first.email,
        stripe_customer_id=stripe_customer_id,
        save_card=save_card,
        metadata={
            "booking_ids": ",".join(str(b.id) for b in bookings),
            "customer_id": first.customer_id,
        },
    )

    for booking in bookings:
        booking.invoice_id = session.get("id")
        booking.invoice_link = session.get("url")
        booking.payment_method = "Stripe"
        booking.payment_status = "pending"
    db.commit()

    email_sent = False
    sms_sent = False
    if send_email and first.email:
        try:
            await send_payment_link_email(
                first.email, first.first_name or "there", format_money(total), description, session.get("url")
            )
            email_sent = True
        except Exception as e:
            logger.error(f"❌ Payment link email failed for booking {first.id}: {e}")
    if send_sms_message and first.phone_number:
        try:
            await send_sms(
                first.phone_number,
                f"Hi {first.first_name or 'there'}, please pay {format_money(total)} for your cleaning here: {session.get('url')}",
            )
            sms_sent = True
        except SMSError as e:
            logger.error(f"❌ Payment link SMS failed for booking {first.id}: {e.message}")

    return {
        "success": True,
        "session_id": session.get("id"),
        "url": session.get("url"),
        "amount": total,
        "email_sent": email_sent,
        "sms_sent": sms_sent,
    }


def mark_checkout_paid(db: Session, session_id: str) -> int:
    """Mark every booking carrying a completed Checkout Session as paid"""
    updated = 0
    for model in (Booking, PastBooking):
        updated += (
            db.query(model)
            .filter(model.invoice_id == session_id)
            .update({model.payment_status: "paid"}, synchronize_session=False)
        )
    db.commit()
    return updated
