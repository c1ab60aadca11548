"""
Invoiless Invoice Automation
Creates, sends and tracks invoices for bookings paid by invoice
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import INVOICE_EMAIL_SUBJECT
from ..models import Booking, PastBooking
from ..shared.formatters import format_cleaning_date
from . import invoiless_service
from .invoiless_service import InvoilessError

logger = logging.getLogger(__name__)

INVOILESS_PAYMENT_METHOD = "Invoiless"
DEFAULT_INVOICE_TERM_DAYS = 1

# Invoiless invoice status -> booking payment_status
INVOICE_STATUS_MAP = {
    "paid": "Paid",
    "overdue": "Overdue",
    "sent": "Invoice Sent",
    "draft": "Unpaid",
}

# Invoiless webhook event -> booking payment_status (None = no change)
WEBHOOK_EVENT_MAP = {
    "invoice.paid": "Paid",
    "invoice.sent": "Invoice Sent",
    "invoice.overdue": "Overdue",
    "invoice.viewed": None,
}


def item_name(booking: Union[Booking, PastBooking]) -> str:
    if booking.service_type and booking.cleaning_type:
        return f"{booking.service_type} - {booking.cleaning_type}"
    return booking.service_type or booking.cleaning_type or "Cleaning Service"


def invoice_notes(booking: Union[Booking, PastBooking]) -> str:
    lines = []
    if booking.date_time:
        lines.append(f"Cleaning Date: {format_cleaning_date(booking.date_time)}")
    if booking.address:
        lines.append(f"Address: {booking.address}")
    if booking.postcode:
        lines.append(f"Postcode: {booking.postcode}")
    return "\n".join(lines)


def build_invoice_payload(
    booking: Union[Booking, PastBooking], invoiless_customer_id: str, today: Optional[datetime] = None
) -> dict:
    """
    One line item: hourly (rate x hours) when both are known, else the fixed
    booking total. cost_deduction becomes an invoice discount.
    """
    today = today or datetime.utcnow()
    term = booking.invoice_term if booking.invoice_term is not None else DEFAULT_INVOICE_TERM_DAYS

    rate = booking.cleaning_cost_per_hour or 0
    hours = booking.total_hours or 0
    if rate > 0 and hours > 0:
        item = {"name": item_name(booking), "price": rate, "quantity": hours}
    else:
        item = {"name": item_name(booking), "price": booking.total_cost or 0, "quantity": 1}

    payload = {
        "customer": invoiless_customer_id,
        "date": today.strftime("%Y-%m-%d"),
        "dueDate": (today + timedelta(days=term)).strftime("%Y-%m-%d"),
        "items": [item],
        "notes": invoice_notes(booking),
        "currency": "GBP",
    }
    if booking.cost_deduction and booking.cost_deduction > 0:
        payload["discount"] = booking.cost_deduction
    return payload


def _load_booking(db: Session, booking_id: int, booking_type: str) -> Union[Booking, PastBooking]:
    model = PastBooking if booking_type == "past" else Booking
    booking = db.query(model).filter(model.id == booking_id).first()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


async def find_or_create_invoiless_customer(booking: Union[Booking, PastBooking]) -> str:
    customer = await invoiless_service.find_customer_by_email(booking.email)
    if not customer:
        customer = await invoiless_service.create_customer(
            email=booking.email,
            first_name=booking.first_name,
            last_name=booking.last_name,
            phone=booking.phone_number,
            address=booking.address,
        )
    customer_id = customer.get("id") or customer.get("_id")
    if not customer_id:
        raise InvoilessError("Invoiless customer response has no id")
    return customer_id


async def auto_invoice(
    db: Session, booking_id: int, booking_type: str = "upcoming", is_resend: bool = False
) -> dict:
    """
    Create and email an Invoiless invoice for a booking, or resend an existing one.

    Raises:
        HTTPException(404) booking missing
        HTTPException(400) booking has no email
        InvoilessError when Invoiless rejects the customer or invoice
    """
    booking = _load_booking(db, booking_id, booking_type)
    if not booking.email:
        raise HTTPException(status_code=400, detail="Booking has no email address")

    if is_resend and booking.invoice_id:
        await invoiless_service.send_invoice(booking.invoice_id, booking.email, INVOICE_EMAIL_SUBJECT)
        booking.payment_status = "Invoice Sent"
        db.commit()
        logger.info(f"✅ Invoice {booking.invoice_id} resent for booking {booking_id}")
        return {
            "success": True,
            "invoice_id": booking.invoice_id,
            "invoice_link": booking.invoice_link,
            "sent": True,
            "resent": True,
        }

    invoiless_customer_id = await find_or_create_invoiless_customer(booking)
    invoice = await invoiless_service.create_invoice(build_invoice_payload(booking, invoiless_customer_id))
    invoice_id = invoice.get("id") or invoice.get("_id")
    logger.info(f"🧾 Invoiless invoice {invoice_id} created for booking {booking_id}")

    sent = True
    try:
        await invoiless_service.send_invoice(invoice_id, booking.email, INVOICE_EMAIL_SUBJECT)
    except InvoilessError as e:
        sent = False
        logger.warning(f"⚠️ Invoice {invoice_id} created but sending failed: {e.message}")

    booking.invoice_id = invoice_id
    booking.invoice_link = invoice.get("url")
    booking.payment_method = INVOILESS_PAYMENT_METHOD
    booking.payment_status = "Invoice Sent" if sent else "Invoice Created"
    db.commit()

    return {
        "success": True,
        "invoice_id": invoice_id,
        "invoice_link": booking.invoice_link,
        "sent": sent,
        "resent": False,
    }


async def sync_invoice_statuses(db: Session) -> dict:
    """Pull the current status of every open Invoiless invoice"""
    total = 0
    synced = 0
    errors = 0

    for model in (Booking, PastBooking):
        bookings = (
            db.query(model)
            .filter(
                model.payment_method == INVOILESS_PAYMENT_METHOD,
                or_(model.payment_status.is_(None), model.payment_status != "Paid"),
                model.invoice_id.isnot(None),
            )
            .all()
        )
        for booking in bookings:
            total += 1
            try:
                invoice = await invoiless_service.get_invoice(booking.invoice_id)
            except InvoilessError as e:
                errors += 1
                logger.error(f"❌ Failed to fetch invoice {booking.invoice_id}: {e.message}")
                continue

            new_status = INVOICE_STATUS_MAP.get((invoice.get("status") or "").lower())
            if new_status and new_status != booking.payment_status:
                logger.info(
                    f"🔄 Booking {booking.id} payment status {booking.payment_status} -> {new_status}"
                )
                booking.payment_status = new_status
                synced += 1
        db.commit()

    logger.info(f"📊 Invoice sync: {synced} updated of {total}, {errors} errors")
    return {
        "total": total,
        "synced": synced,
        "errors": errors,
        "message": f"Synced {synced} of {total} invoices",
    }


def apply_invoice_webhook(db: Session, event_type: str, invoice_id: Optional[str]) -> dict:
    """
    Apply an Invoiless webhook event to every booking carrying the invoice.

    Raises:
        HTTPException(400) when the payload has no invoice id
    """
    if not invoice_id:
        raise HTTPException(status_code=400, detail="Missing invoice id")

    new_status = WEBHOOK_EVENT_MAP.get(event_type)
    if not new_status:
        logger.info(f"ℹ️ Invoiless event {event_type} for {invoice_id} needs no update")
        return {"received": True, "updated": 0}

    updated = 0
    for model in (Booking, PastBooking):
        updated += (
            db.query(model)
            .filter(model.invoice_id == invoice_id)
            .update({model.payment_status: new_status}, synchronize_session=False)
        )
    db.commit()

    logger.info(f"✅ Invoiless {event_type}: {updated} bookings set to {new_status}")
    return {"received": True, "updated": updated, "payment_status": new_status}
