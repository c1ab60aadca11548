"""
Payment Scheduler
Periodic authorize-then-capture run:
1. Authorize card bookings starting between 2 hours ago and 24 hours from now
2. Capture authorized bookings that have been completed and archived
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, exists, not_, or_
from sqlalchemy.orm import Session

from ..models import Booking, PastBooking
from ..models_payments import CustomerPaymentMethod
from .payment_actions import payment_action

logger = logging.getLogger(__name__)

AUTHORIZE_LOOKBACK = timedelta(hours=2)
AUTHORIZE_LOOKAHEAD = timedelta(hours=24)
AUTHORIZABLE_STATUSES = ["Unpaid", "pending", "failed"]
CAPTURE_BATCH_SIZE = 50


def _not_cancelled(model):
    status = model.booking_status
    return or_(
        status.is_(None),
        and_(not_(status.ilike("%cancelled%")), not_(status.ilike("%canceled%"))),
    )


def bookings_to_authorize(db: Session, now: datetime) -> list[Booking]:
    has_card = exists().where(CustomerPaymentMethod.customer_id == Booking.customer_id)
    return (
        db.query(Booking)
        .filter(
            Booking.date_time >= now - AUTHORIZE_LOOKBACK,
            Booking.date_time <= now + AUTHORIZE_LOOKAHEAD,
            Booking.payment_status.in_(AUTHORIZABLE_STATUSES),
            Booking.invoice_id.is_(None),
            Booking.customer_id.isnot(None),
            _not_cancelled(Booking),
            has_card,
        )
        .order_by(Booking.date_time.asc())
        .all()
    )


def bookings_to_capture(db: Session) -> list[PastBooking]:
    return (
        db.query(PastBooking)
        .filter(
            PastBooking.payment_status == "authorized",
            PastBooking.invoice_id.isnot(None),
            _not_cancelled(PastBooking),
        )
        .order_by(PastBooking.date_time.desc())
        .limit(CAPTURE_BATCH_SIZE)
        .all()
    )


async def process_payments(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Run one authorize/capture cycle. Each booking is handled independently;
    a failure is counted and logged and the run continues.
    """
    now = now or datetime.utcnow()
    logger.info(f"🔄 Processing scheduled payments at {now.isoformat()}")

    authorized = 0
    captured = 0
    failures = []

    for booking in bookings_to_authorize(db, now):
        try:
            result = await payment_action(db, booking.id, "authorize")
            if result.get("success"):
                authorized += 1
            else:
                failures.append({"booking_id": booking.id, "action": "authorize", "error": result.get("error")})
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Authorize failed for booking {booking.id}: {e}")
            failures.append({"booking_id": booking.id, "action": "authorize", "error": str(e)})

    for booking in bookings_to_capture(db):
        try:
            result = await payment_action(db, booking.id, "charge")
            if result.get("success"):
                captured += 1
            else:
                failures.append({"booking_id": booking.id, "action": "charge", "error": result.get("error")})
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Capture failed for booking {booking.id}: {e}")
            failures.append({"booking_id": booking.id, "action": "charge", "error": str(e)})

    logger.info(f"✅ Payments processed: {authorized} authorized, {captured} captured, {len(failures)} failed")
    return {
        "processed_at": now.isoformat(),
        "bookings_authorized": authorized,
        "bookings_captured": captured,
        "failures": failures,
    }


def check_incomplete_payments(db: Session) -> dict:
    """Bookings whose card payment needs office attention"""
    statuses = ["failed", "requires_action", "processing", "adjustment_failed"]
    rows = []
    for model, table in ((Booking, "upcoming"), (PastBooking, "past")):
        for booking in (
            db.query(model)
            .filter(model.payment_status.in_(statuses), _not_cancelled(model))
            .order_by(model.date_time.desc())
            .all()
        ):
            rows.append(
                {
                    "booking_id": booking.id,
                    "table": table,
                    "customer_name": booking.customer_name,
                    "date_time": booking.date_time.isoformat() if booking.date_time else None,
                    "total_cost": booking.total_cost,
                    "payment_status": booking.payment_status,
                }
            )
    return {"count": len(rows), "bookings": rows}
