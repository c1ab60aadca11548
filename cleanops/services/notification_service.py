"""
Notification Service
Template rendering and delivery of scheduled email/SMS notifications
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..email_service import send_html_email
from ..models import Cleaner, Customer
from ..models_notifications import (
    EmailNotificationTemplate,
    Notification,
    NotificationLog,
    NotificationSchedule,
    NotificationTrigger,
    SmsReminder,
)
from ..shared.formatters import format_long_date, format_money, format_time_12h
from .payment_actions import find_booking
from .twilio_service import SMSError, payment_reminder_message, send_sms

logger = logging.getLogger(__name__)

BATCH_SIZE = 50
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

# Resend webhook event -> notification_logs.status
DELIVERY_EVENT_MAP = {
    "email.sent": "sent",
    "email.delivered": "delivered",
    "email.delivery_delayed": "delayed",
    "email.bounced": "bounced",
    "email.opened": "opened",
    "email.clicked": "clicked",
    "email.complained": "complained",
}


def render(template_text: Optional[str], variables: dict[str, Any]) -> str:
    """Replace every {{key}} with its value. Unknown keys are left as they are"""

    def replace(match):
        key = match.group(1)
        if key in variables and variables[key] is not None:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(replace, template_text or "")


async def send_notification_email(
    db: Session,
    template_id: int,
    recipient_email: str,
    variables: Optional[dict[str, Any]] = None,
    is_test: bool = False,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
) -> dict:
    """
    Render a stored template and send it through Resend.
    Test sends are not written to notification_logs.

    Raises:
        HTTPException(404) when the template does not exist
    """
    template = (
        db.query(EmailNotificationTemplate).filter(EmailNotificationTemplate.id == template_id).first()
    )
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    variables = variables or {}
    subject = render(template.subject, variables)
    if is_test:
        subject = f"[TEST] {subject}"
    html = render(template.html_content, variables)

    response = await send_html_email(recipient_email, subject, html)
    delivery_id = response.get("id") if isinstance(response, dict) else None

    if not is_test:
        db.add(
            NotificationLog(
                template_id=template.id,
                recipient_email=recipient_email,
                subject=subject,
                status="sent",
                delivery_id=delivery_id,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        )
        db.commit()

    logger.info(f"📧 Notification '{template.name}' sent to {recipient_email}")
    return {"success": True, "delivery_id": delivery_id, "subject": subject}


def booking_variables(db: Session, booking) -> dict[str, Any]:
    """Placeholder values available to booking notification templates"""
    cleaner_name = "To be assigned"
    if booking.cleaner_id:
        cleaner = db.query(Cleaner).filter(Cleaner.id == booking.cleaner_id).first()
        if cleaner:
            cleaner_name = cleaner.full_name

    return {
        "customer_name": booking.customer_name or "Customer",
        "booking_date": format_long_date(booking.date_time) if booking.date_time else "",
        "booking_time": format_time_12h(booking.date_time) if booking.date_time else "",
        "service_type": booking.service_type or booking.cleaning_type or "Cleaning",
        "address": booking.address or "",
        "cleaner_name": cleaner_name,
        "total_cost": format_money(booking.total_cost),
        "booking_id": booking.id,
    }


def _recipient_phone(db: Session, booking, recipient_type: str) -> Optional[str]:
    if recipient_type == "cleaner" and booking.cleaner_id:
        cleaner = db.query(Cleaner).filter(Cleaner.id == booking.cleaner_id).first()
        if cleaner and cleaner.phone:
            return cleaner.phone
    if recipient_type == "customer" and booking.customer_id:
        customer = db.query(Customer).filter(Customer.id == booking.customer_id).first()
        if customer and customer.phone:
            return customer.phone
    return booking.phone_number


def _recipient_email(db: Session, booking, schedule: NotificationSchedule) -> Optional[str]:
    if schedule.recipient_email:
        return schedule.recipient_email
    if schedule.recipient_type == "cleaner" and booking.cleaner_id:
        cleaner = db.query(Cleaner).filter(Cleaner.id == booking.cleaner_id).first()
        return cleaner.email if cleaner else None
    return booking.email


def _finish(db: Session, schedule: NotificationSchedule, status: str, error: Optional[str] = None) -> None:
    schedule.status = status
    schedule.error_message = error
    if status == "sent":
        schedule.sent_at = datetime.utcnow()
    db.commit()


async def process_scheduled_notifications(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Send due notifications (up to 50 per run) on the channels their trigger names.

    Returns:
        dict with processed, succeeded and failed counts
    """
    now = now or datetime.utcnow()
    due = (
        db.query(NotificationSchedule)
        .filter(NotificationSchedule.status == "scheduled", NotificationSchedule.scheduled_for <= now)
        .order_by(NotificationSchedule.scheduled_for.asc())
        .limit(BATCH_SIZE)
        .all()
    )

    succeeded = 0
    failed = 0

    for schedule in due:
        trigger = schedule.trigger
        if not trigger:
            _finish(db, schedule, "failed", "Notification trigger not found")
            failed += 1
            continue

        booking = find_booking(db, schedule.entity_id)
        if not booking:
            _finish(db, schedule, "failed", "Booking not found")
            failed += 1
            continue

        if booking.is_cancelled:
            _finish(db, schedule, "cancelled", "Booking cancelled")
            continue

        variables = booking_variables(db, booking)
        channel = (trigger.notification_channel or "email").lower()
        errors = []
        attempted = False

        if channel in ("email", "both") and trigger.template_id:
            attempted = True
            email = _recipient_email(db, booking, schedule)
            if not email:
                errors.append("No recipient email")
            else:
                try:
                    await send_notification_email(
                        db,
                        trigger.template_id,
                        email,
                        variables,
                        entity_type=schedule.entity_type,
                        entity_id=schedule.entity_id,
                    )
                except Exception as e:
                    logger.error(f"❌ Scheduled email {schedule.id} failed: {e}")
                    errors.append(f"Email: {e}")

        if channel in ("sms", "both") and trigger.sms_template:
            attempted = True
            phone = _recipient_phone(db, booking, schedule.recipient_type or "customer")
            if not phone:
                errors.append("No recipient phone")
            else:
                try:
                    await send_sms(phone, render(trigger.sms_template.content, variables))
                except SMSError as e:
                    logger.error(f"❌ Scheduled SMS {schedule.id} failed: {e.message}")
                    errors.append(f"SMS: {e.message}")

        if not attempted:
            errors.append(f"No template configured for channel {channel}")

        if errors:
            _finish(db, schedule, "failed", "; ".join(errors))
            failed += 1
        else:
            _finish(db, schedule, "sent")
            succeeded += 1

    logger.info(f"📊 Scheduled notifications: {len(due)} processed, {succeeded} sent, {failed} failed")
    return {"processed": len(due), "succeeded": succeeded, "failed": failed}


async def process_sms_reminders(db: Session, now: Optional[datetime] = None) -> dict:
    """Send due payment reminder SMS; reminders for paid bookings are cancelled"""
    now = now or datetime.utcnow()
    due = (
        db.query(SmsReminder)
        .filter(SmsReminder.status == "pending", SmsReminder.send_at <= now)
        .order_by(SmsReminder.send_at.asc())
        .limit(BATCH_SIZE)
        .all()
    )

    sent = 0
    failed = 0
    cancelled = 0

    for reminder in due:
        booking = find_booking(db, reminder.booking_id)
        if booking and (booking.payment_status or "").lower() == "paid":
            reminder.status = "cancelled"
            db.commit()
            cancelled += 1
            continue

        message = payment_reminder_message(reminder.customer_name, reminder.amount, reminder.payment_link)
        try:
            await send_sms(reminder.phone_number, message)
            reminder.status = "sent"
            reminder.sent_at = datetime.utcnow()
            sent += 1
        except SMSError as e:
            reminder.status = "failed"
            reminder.error_message = e.message
            failed += 1
        db.commit()

    logger.info(f"📱 SMS reminders: {sent} sent, {failed} failed, {cancelled} cancelled")
    return {"processed": len(due), "sent": sent, "failed": failed, "cancelled": cancelled}


def apply_delivery_event(db: Session, event_type: str, delivery_id: Optional[str]) -> int:
    """Update notification log rows for a Resend delivery event. Returns rows updated"""
    status = DELIVERY_EVENT_MAP.get(event_type)
    if not status or not delivery_id:
        return 0

    updated = (
        db.query(NotificationLog)
        .filter(NotificationLog.delivery_id == delivery_id)
        .update({NotificationLog.status: status}, synchronize_session=False)
    )
    db.commit()
    return updated


def notify_user(
    db: Session,
    user_id: int,
    title: str,
    message: Optional[str] = None,
    link: Optional[str] = None,
    type: str = "info",
) -> Notification:
    """Create an in-app notification"""
    notification = Notification(user_id=user_id, title=title, message=message, link=link, type=type)
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def schedule_booking_notifications(
    db: Session, booking, trigger_event: str, now: Optional[datetime] = None
) -> list[NotificationSchedule]:
    """
    Queue one schedule entry per recipient type of every enabled trigger for
    the event. Offsets are applied to the booking time, or to now for
    bookings without one. Entries that would already be due are sent on the
    next run.
    """
    now = now or datetime.utcnow()
    triggers = (
        db.query(NotificationTrigger)
        .filter(NotificationTrigger.trigger_event == trigger_event, NotificationTrigger.is_enabled.is_(True))
        .all()
    )

    created = []
    for trigger in triggers:
        base = booking.date_time if trigger.timing_offset_minutes and booking.date_time else now
        scheduled_for = base + timedelta(minutes=trigger.timing_offset_minutes or 0)
        for recipient_type in trigger.recipient_types or ["customer"]:
            schedule = NotificationSchedule(
                trigger_id=trigger.id,
                entity_type="booking",
                entity_id=booking.id,
                recipient_type=recipient_type,
                scheduled_for=max(scheduled_for, now),
                status="scheduled",
            )
            db.add(schedule)
            created.append(schedule)

    if created:
        db.commit()
        logger.info(f"🗓️ {len(created)} notifications scheduled for booking {booking.id} ({trigger_event})")
    return created


def queue_payment_reminder(
    db: Session, booking, send_at: datetime, payment_link: Optional[str] = None
) -> Optional[SmsReminder]:
    """Queue a payment reminder SMS for a booking with a phone number"""
    if not booking.phone_number:
        return None

    reminder = SmsReminder(
        booking_id=booking.id,
        phone_number=booking.phone_number,
        customer_name=booking.first_name,
        amount=booking.total_cost,
        payment_link=payment_link or booking.invoice_link,
        send_at=send_at,
        status="pending",
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder
