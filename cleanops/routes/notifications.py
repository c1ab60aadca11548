import json
import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..config import RESEND_WEBHOOK_SECRET
from ..database import get_db
from ..models import User
from ..models_notifications import (
    EmailNotificationTemplate,
    Notification,
    NotificationLog,
    NotificationSchedule,
    NotificationTrigger,
    SmsReminder,
    SmsTemplate,
)
from ..services.notification_service import (
    apply_delivery_event,
    process_scheduled_notifications,
    process_sms_reminders,
    queue_payment_reminder,
    send_notification_email,
)
from ..services.payment_actions import find_booking
from ..services.twilio_service import send_and_record_sms
from ..webhook_security import verify_svix_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])
webhook_router = APIRouter(prefix="/webhooks/resend", tags=["webhooks"])

CHANNELS = ("email", "sms", "both")


class EmailTemplateCreate(BaseModel):
    name: str
    subject: str
    htmlContent: str
    description: Optional[str] = None
    variables: list[str] = []
    isActive: bool = True


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    htmlContent: Optional[str] = None
    description: Optional[str] = None
    variables: Optional[list[str]] = None
    isActive: Optional[bool] = None


class EmailTemplateResponse(BaseModel):
    id: int
    name: str
    subject: str
    html_content: str
    description: Optional[str] = None
    variables: Optional[list[str]] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SmsTemplateCreate(BaseModel):
    name: str
    content: str
    isActive: bool = True


class SmsTemplateUpdate(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None
    isActive: Optional[bool] = None


class SmsTemplateResponse(BaseModel):
    id: int
    name: str
    content: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SendNotificationRequest(BaseModel):
    templateId: int
    recipientEmail: str
    variables: dict[str, Any] = {}
    isTest: bool = False


class SendSmsRequest(BaseModel):
    to: str
    message: str
    customerId: Optional[int] = None

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError("Message cannot be empty")
        return v


class TriggerCreate(BaseModel):
    name: str
    triggerEvent: str
    templateId: Optional[int] = None
    smsTemplateId: Optional[int] = None
    notificationChannel: str = "email"
    recipientTypes: list[str] = ["customer"]
    timingOffsetMinutes: int = 0
    isEnabled: bool = True

    @field_validator("notificationChannel")
    @classmethod
    def validate_channel(cls, v):
        if v not in CHANNELS:
            raise ValueError(f"Channel must be one of {', '.join(CHANNELS)}")
        return v


class TriggerUpdate(BaseModel):
    name: Optional[str] = None
    triggerEvent: Optional[str] = None
    templateId: Optional[int] = None
    smsTemplateId: Optional[int] = None
    notificationChannel: Optional[str] = None
    recipientTypes: Optional[list[str]] = None
    timingOffsetMinutes: Optional[int] = None
    isEnabled: Optional[bool] = None

    @field_validator("notificationChannel")
    @classmethod
    def validate_channel(cls, v):
        if v is not None and v not in CHANNELS:
            raise ValueError(f"Channel must be one of {', '.join(CHANNELS)}")
        return v


class TriggerResponse(BaseModel):
    id: int
    name: str
    trigger_event: str
    template_id: Optional[int] = None
    sms_template_id: Optional[int] = None
    notification_channel: Optional[str] = None
    recipient_types: Optional[list[str]] = None
    timing_offset_minutes: Optional[int] = None
    is_enabled: bool

    class Config:
        from_attributes = True


class ScheduleCreate(BaseModel):
    triggerId: int
    entityId: int
    entityType: str = "booking"
    recipientEmail: Optional[str] = None
    recipientType: str = "customer"
    scheduledFor: datetime


class ScheduleResponse(BaseModel):
    id: int
    trigger_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: int
    recipient_email: Optional[str] = None
    recipient_type: Optional[str] = None
    scheduled_for: datetime
    status: Optional[str] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class ReminderCreate(BaseModel):
    bookingId: int
    sendAt: Optional[datetime] = None
    paymentLink: Optional[str] = None


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: Optional[str] = None
    type: Optional[str] = None
    link: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def _apply_updates(obj, updates: dict, field_map: dict) -> None:
    for key, value in updates.items():
        if value is not None:
            setattr(obj, field_map[key], value)


TEMPLATE_FIELDS = {
    "name": "name",
    "subject": "subject",
    "htmlContent": "html_content",
    "description": "description",
    "variables": "variables",
    "isActive": "is_active",
}
SMS_TEMPLATE_FIELDS = {"name": "name", "content": "content", "isActive": "is_active"}
TRIGGER_FIELDS = {
    "name": "name",
    "triggerEvent": "trigger_event",
    "templateId": "template_id",
    "smsTemplateId": "sms_template_id",
    "notificationChannel": "notification_channel",
    "recipientTypes": "recipient_types",
    "timingOffsetMinutes": "timing_offset_minutes",
    "isEnabled": "is_enabled",
}


def _get_or_404(db: Session, model, obj_id: int, label: str):
    obj = db.query(model).filter(model.id == obj_id).first()
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


# ============================================================================
# EMAIL TEMPLATES
# ============================================================================


@router.get("/templates", response_model=list[EmailTemplateResponse])
async def list_email_templates(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return db.query(EmailNotificationTemplate).order_by(EmailNotificationTemplate.name.asc()).all()


@router.post("/templates", response_model=EmailTemplateResponse)
async def create_email_template(
    data: EmailTemplateCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = EmailNotificationTemplate(**{TEMPLATE_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@router.patch("/templates/{template_id}", response_model=EmailTemplateResponse)
async def update_email_template(
    template_id: int,
    data: EmailTemplateUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, EmailNotificationTemplate, template_id, "Template")
    _apply_updates(template, data.model_dump(exclude_unset=True), TEMPLATE_FIELDS)
    db.commit()
    db.refresh(template)
    return template


@router.delete("/templates/{template_id}")
async def delete_email_template(
    template_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, EmailNotificationTemplate, template_id, "Template")
    in_use = db.query(NotificationTrigger).filter(NotificationTrigger.template_id == template_id).first()
    if in_use:
        raise HTTPException(status_code=400, detail=f"Template is used by trigger '{in_use.name}'")
    db.delete(template)
    db.commit()
    return {"message": "Template deleted"}


@router.post("/send")
async def send_notification(
    data: SendNotificationRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Send a stored template to one recipient (test sends get a [TEST] subject and no log)"""
    try:
        return await send_notification_email(
            db, data.templateId, data.recipientEmail, data.variables, is_test=data.isTest
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Notification send failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to send email: {e}") from e


@router.get("/logs")
async def list_notification_logs(
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logs = db.query(NotificationLog).order_by(NotificationLog.sent_at.desc()).limit(limit).all()
    return [
        {
            "id": log.id,
            "template_id": log.template_id,
            "recipient_email": log.recipient_email,
            "subject": log.subject,
            "status": log.status,
            "entity_type": log.entity_type,
            "entity_id": log.entity_id,
            "sent_at": log.sent_at,
        }
        for log in logs
    ]


# ============================================================================
# SMS
# ============================================================================


@router.get("/sms-templates", response_model=list[SmsTemplateResponse])
async def list_sms_templates(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return db.query(SmsTemplate).order_by(SmsTemplate.name.asc()).all()


@router.post("/sms-templates", response_model=SmsTemplateResponse)
async def create_sms_template(
    data: SmsTemplateCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = SmsTemplate(**{SMS_TEMPLATE_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@router.patch("/sms-templates/{template_id}", response_model=SmsTemplateResponse)
async def update_sms_template(
    template_id: int,
    data: SmsTemplateUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, SmsTemplate, template_id, "SMS template")
    _apply_updates(template, data.model_dump(exclude_unset=True), SMS_TEMPLATE_FIELDS)
    db.commit()
    db.refresh(template)
    return template


@router.delete("/sms-templates/{template_id}")
async def delete_sms_template(
    template_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, SmsTemplate, template_id, "SMS template")
    db.query(NotificationTrigger).filter(NotificationTrigger.sms_template_id == template_id).update(
        {NotificationTrigger.sms_template_id: None}, synchronize_session=False
    )
    db.delete(template)
    db.commit()
    return {"message": "SMS template deleted"}


@router.post("/sms")
async def send_sms_notification(
    data: SendSmsRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Send an SMS and keep it in the conversation history"""
    record = await send_and_record_sms(db, data.to, data.message, customer_id=data.customerId)
    return {
        "success": True,
        "id": record.id,
        "to": record.phone_number,
        "status": record.status,
        "sid": record.twilio_sid,
    }


@router.post("/sms-reminders")
async def queue_sms_reminder(
    data: ReminderCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Queue a payment reminder SMS for a booking"""
    booking = find_booking(db, data.bookingId)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    reminder = queue_payment_reminder(db, booking, data.sendAt or datetime.utcnow(), data.paymentLink)
    if not reminder:
        raise HTTPException(status_code=400, detail="Booking has no phone number")
    return {"id": reminder.id, "send_at": reminder.send_at, "status": reminder.status}


@router.get("/sms-reminders")
async def list_sms_reminders(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(SmsReminder)
    if status:
        query = query.filter(SmsReminder.status == status)
    return [
        {
            "id": r.id,
            "booking_id": r.booking_id,
            "phone_number": r.phone_number,
            "amount": r.amount,
            "send_at": r.send_at,
            "status": r.status,
            "sent_at": r.sent_at,
            "error_message": r.error_message,
        }
        for r in query.order_by(SmsReminder.send_at.desc()).limit(200).all()
    ]


# ============================================================================
# TRIGGERS AND SCHEDULES
# ============================================================================


@router.get("/triggers", response_model=list[TriggerResponse])
async def list_triggers(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return db.query(NotificationTrigger).order_by(NotificationTrigger.name.asc()).all()


@router.post("/triggers", response_model=TriggerResponse)
async def create_trigger(
    data: TriggerCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.templateId:
        _get_or_404(db, EmailNotificationTemplate, data.templateId, "Template")
    if data.smsTemplateId:
        _get_or_404(db, SmsTemplate, data.smsTemplateId, "SMS template")

    trigger = NotificationTrigger(**{TRIGGER_FIELDS[k]: v for k, v in data.model_dump().items()})
    db.add(trigger)
    db.commit()
    db.refresh(trigger)
    return trigger


@router.patch("/triggers/{trigger_id}", response_model=TriggerResponse)
async def update_trigger(
    trigger_id: int,
    data: TriggerUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    trigger = _get_or_404(db, NotificationTrigger, trigger_id, "Trigger")
    _apply_updates(trigger, data.model_dump(exclude_unset=True), TRIGGER_FIELDS)
    db.commit()
    db.refresh(trigger)
    return trigger


@router.delete("/triggers/{trigger_id}")
async def delete_trigger(
    trigger_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    trigger = _get_or_404(db, NotificationTrigger, trigger_id, "Trigger")
    db.query(NotificationSchedule).filter(
        NotificationSchedule.trigger_id == trigger_id, NotificationSchedule.status == "scheduled"
    ).update({NotificationSchedule.status: "cancelled"}, synchronize_session=False)
    trigger.is_enabled = False
    db.commit()
    return {"message": "Trigger disabled and pending notifications cancelled"}


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    status: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(NotificationSchedule)
    if status:
        query = query.filter(NotificationSchedule.status == status)
    if entity_id:
        query = query.filter(NotificationSchedule.entity_id == entity_id)
    return query.order_by(NotificationSchedule.scheduled_for.desc()).limit(200).all()


@router.post("/schedules", response_model=ScheduleResponse)
async def create_schedule(
    data: ScheduleCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _get_or_404(db, NotificationTrigger, data.triggerId, "Trigger")
    schedule = NotificationSchedule(
        trigger_id=data.triggerId,
        entity_type=data.entityType,
        entity_id=data.entityId,
        recipient_email=data.recipientEmail,
        recipient_type=data.recipientType,
        scheduled_for=data.scheduledFor,
        status="scheduled",
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


@router.post("/schedules/{schedule_id}/cancel", response_model=ScheduleResponse)
async def cancel_schedule(
    schedule_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    schedule = _get_or_404(db, NotificationSchedule, schedule_id, "Schedule")
    if schedule.status != "scheduled":
        raise HTTPException(status_code=400, detail=f"Notification is already {schedule.status}")
    schedule.status = "cancelled"
    db.commit()
    db.refresh(schedule)
    return schedule


@router.post("/process")
async def run_scheduled_notifications(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Manual run of the scheduled notification sender"""
    return await process_scheduled_notifications(db)


@router.post("/process-sms-reminders")
async def run_sms_reminders(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return await process_sms_reminders(db)


# ============================================================================
# NOTIFICATION BELL
# ============================================================================


@router.get("/bell", response_model=list[NotificationResponse])
async def get_my_notifications(
    unread_only: bool = Query(False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()


@router.get("/bell/unread-count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .count()
    )
    return {"unread_count": count}


@router.post("/bell/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    notification.is_read = True
    db.commit()
    return {"message": "Notification marked as read"}


@router.post("/bell/read-all")
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"message": "Notifications marked as read", "updated": updated}


# ============================================================================
# RESEND DELIVERY WEBHOOK
# ============================================================================


@webhook_router.post("")
async def handle_resend_webhook(request: Request, db: Session = Depends(get_db)):
    """Delivery, bounce, open and complaint events for sent emails"""
    raw_body = await verify_svix_webhook(request, RESEND_WEBHOOK_SECRET)

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except json.JSONDecodeError:
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    event_type = payload.get("type")
    delivery_id = (payload.get("data") or {}).get("email_id")
    updated = apply_delivery_event(db, event_type, delivery_id)
    logger.info(f"📥 Resend webhook {event_type} for {delivery_id}: {updated} logs updated")
    return {"received": True, "updated": updated}
