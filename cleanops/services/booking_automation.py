"""
Booking Status Automation
Marks finished jobs completed and moves them to the past_bookings archive
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from ..models import Booking, PastBooking

logger = logging.getLogger(__name__)

# Grace period after the scheduled end before a job counts as done
COMPLETION_GRACE = timedelta(hours=1)


def booking_end_time(booking: Booking) -> Optional[datetime]:
    if not booking.date_time or not booking.total_hours:
        return None
    return booking.date_time + timedelta(hours=booking.total_hours)


def is_ready_to_complete(booking: Booking, now: datetime) -> bool:
    end_time = booking_end_time(booking)
    return end_time is not None and now >= end_time + COMPLETION_GRACE


def auto_complete_bookings(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Mark active bookings completed once they are an hour past their end time.

    Returns:
        dict with bookings_completed, total_checked and ready_to_complete
    """
    now = now or datetime.utcnow()

    active = (
        db.query(Booking)
        .filter(
            Booking.date_time.isnot(None),
            Booking.total_hours.isnot(None),
            Booking.date_time <= now,
        )
        .all()
    )
    candidates = [
        b for b in active if (b.booking_status or "").lower() != "completed" and not b.is_cancelled
    ]
    ready = [b for b in candidates if is_ready_to_complete(b, now)]

    completed = 0
    try:
        for booking in ready:
            booking.booking_status = "completed"
            completed += 1
            logger.info(f"✅ Booking {booking.id} auto-completed")
        db.commit()
    except Exception as e:
        logger.error(f"❌ Error auto-completing bookings: {str(e)}")
        db.rollback()
        raise

    logger.info(f"📊 Auto-complete: {completed} completed out of {len(candidates)} checked")
    return {
        "bookings_completed": completed,
        "total_checked": len(candidates),
        "ready_to_complete": len(ready),
    }


def _shared_column_names() -> list[str]:
    return [column.key for column in inspect(Booking).columns]


def archive_booking(db: Session, booking: Booking) -> PastBooking:
    """Copy a booking into past_bookings with the same id and delete the upcoming row"""
    past = PastBooking(**{name: getattr(booking, name) for name in _shared_column_names()})
    db.add(past)
    db.delete(booking)
    return past


def archive_completed_bookings(db: Session) -> dict:
    """Move every completed booking to the archive"""
    completed = db.query(Booking).filter(Booking.booking_status == "completed").all()

    archived = 0
    try:
        for booking in completed:
            archive_booking(db, booking)
            archived += 1
        db.commit()
    except Exception as e:
        logger.error(f"❌ Error archiving bookings: {str(e)}")
        db.rollback()
        raise

    if archived:
        logger.info(f"📦 Archived {archived} completed bookings")
    return {"bookings_archived": archived}
