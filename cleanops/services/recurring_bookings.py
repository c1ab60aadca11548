"""
Recurring Booking Generation
Creates upcoming bookings from recurring service templates
"""

import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Booking, PastBooking, RecurringService
from ..shared.formatters import parse_booking_time

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 30
FREQUENCIES = ("weekly", "bi-weekly", "monthly")

WEEKDAYS = {name.lower(): index for index, name in enumerate(calendar.day_name)}

FREQUENCY_ALIASES = {
    "weekly": "weekly",
    "bi-weekly": "bi-weekly",
    "biweekly": "bi-weekly",
    "fortnightly": "bi-weekly",
    "monthly": "monthly",
}


def normalize_frequency(value: Optional[str]) -> Optional[str]:
    """Booking form frequency -> recurring frequency, None for one-off cleans"""
    return FREQUENCY_ALIASES.get((value or "").strip().lower())


def parse_days_of_week(value: Optional[str]) -> list[int]:
    """'monday, Thursday' -> [0, 3]. Accepts three-letter abbreviations"""
    days = set()
    for part in (value or "").split(","):
        token = part.strip().lower()
        if not token:
            continue
        for name, index in WEEKDAYS.items():
            if name == token or name[:3] == token[:3]:
                days.add(index)
                break
    return sorted(days)


def occurrence_dates(service: RecurringService, window_start: date, window_end: date) -> list[date]:
    """Dates in [window_start, window_end] on which the service takes place"""
    start = max(window_start, service.start_date)
    if start > window_end:
        return []

    frequency = (service.frequently or "").lower()

    if frequency == "weekly":
        weekdays = parse_days_of_week(service.days_of_the_week) or [service.start_date.weekday()]
        return [
            start + timedelta(days=offset)
            for offset in range((window_end - start).days + 1)
            if (start + timedelta(days=offset)).weekday() in weekdays
        ]

    if frequency == "bi-weekly":
        elapsed = (start - service.start_date).days
        current = service.start_date + timedelta(days=-(-elapsed // 14) * 14)
        dates = []
        while current <= window_end:
            dates.append(current)
            current += timedelta(days=14)
        return dates

    if frequency == "monthly":
        dates = []
        year, month = start.year, start.month
        while date(year, month, 1) <= window_end:
            day = min(service.start_date.day, calendar.monthrange(year, month)[1])
            candidate = date(year, month, day)
            if start <= candidate <= window_end:
                dates.append(candidate)
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
        return dates

    logger.warning(f"⚠️ Unknown frequency '{service.frequently}' for recurring service {service.id}")
    return []


def _existing_dates(db: Session, service_id: int, window_start: date, window_end: date) -> set[date]:
    lower = datetime.combine(window_start, datetime.min.time())
    upper = datetime.combine(window_end + timedelta(days=1), datetime.min.time())
    existing = set()
    for model in (Booking, PastBooking):
        rows = (
            db.query(model.date_time)
            .filter(
                model.recurring_service_id == service_id,
                model.date_time >= lower,
                model.date_time < upper,
            )
            .all()
        )
        existing.update(row[0].date() for row in rows if row[0])
    return existing


def build_booking(service: RecurringService, on_date: date) -> Booking:
    customer = service.customer
    address = service.address
    hours = service.hours or 0
    total_cost = service.total_cost
    if total_cost is None and service.cost_per_hour and hours:
        total_cost = round(service.cost_per_hour * hours, 2)

    return Booking(
        customer_id=service.customer_id,
        cleaner_id=service.cleaner_id,
        address_id=service.address_id,
        first_name=customer.first_name if customer else None,
        last_name=customer.last_name if customer else None,
        email=customer.email if customer else None,
        phone_number=customer.phone if customer else None,
        address=address.address if address else None,
        postcode=address.postcode if address else None,
        date_time=datetime.combine(on_date, parse_booking_time(service.start_time)),
        total_hours=service.hours,
        service_type="Domestic Cleaning",
        cleaning_type=service.cleaning_type,
        frequently=service.frequently,
        cleaning_cost_per_hour=service.cost_per_hour,
        total_cost=total_cost,
        cleaner_pay=round(service.cleaner_rate * hours, 2) if service.cleaner_rate and hours else None,
        payment_method=service.payment_method,
        payment_status="Unpaid",
        booking_status="active",
        created_by_source="recurring",
        recurring_service_id=service.id,
    )


def generate_bookings(
    db: Session, today: Optional[date] = None, horizon_days: int = DEFAULT_HORIZON_DAYS
) -> dict:
    """
    Create missing bookings for the next horizon_days for every active
    recurring service. Postponed services whose resume date has arrived are
    resumed first.
    """
    today = today or datetime.utcnow().date()
    window_end = today + timedelta(days=horizon_days)

    created = 0
    resumed = 0
    services = db.query(RecurringService).all()

    try:
        for service in services:
            if service.postponed:
                if service.resume_date and service.resume_date <= today:
                    service.postponed = False
                    service.resume_date = None
                    resumed += 1
                    logger.info(f"▶️ Recurring service {service.id} resumed")
                else:
                    continue

            existing = _existing_dates(db, service.id, today, window_end)
            for on_date in occurrence_dates(service, today, window_end):
                if on_date in existing:
                    continue
                db.add(build_booking(service, on_date))
                existing.add(on_date)
                created += 1

        db.commit()
    except Exception as e:
        logger.error(f"❌ Error generating recurring bookings: {str(e)}")
        db.rollback()
        raise

    logger.info(f"📅 Recurring generation: {created} bookings created, {resumed} services resumed")
    return {"bookings_created": created, "services_checked": len(services), "services_resumed": resumed}
