"""
Notification Models
Email/SMS templates, triggers, scheduled sends, delivery logs and SMS inbox
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class EmailNotificationTemplate(Base):
    """Admin-editable email template. {{variable}} placeholders are filled at send time"""

    __tablename__ = "email_notification_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=False)
    html_content = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    variables = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SmsTemplate(Base):
    __tablename__ = "sms_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class NotificationTrigger(Base):
    """Which templates to send, on which channel, for a booking event"""

    __tablename__ = "notification_triggers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    trigger_event = Column(String(100), nullable=False)  # booking_created, booking_reminder, ...
    template_id = Column(Integer, ForeignKey("email_notification_templates.id"), nullable=True)
    sms_template_id = Column(Integer, ForeignKey("sms_templates.id"), nullable=True)
    notification_channel = Column(String(10), default="email")  # email, sms, both
    recipient_types = Column(JSON, default=lambda: ["customer"])
    timing_offset_minutes = Column(Integer, default=0)  # negative = before booking time
    is_enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    template = relationship("EmailNotificationTemplate")
    sms_template = relationship("SmsTemplate")


class NotificationSchedule(Base):
    __tablename__ = "notification_schedules"

    id = Column(Integer, primary_key=True, index=True)
    trigger_id = Column(Integer, ForeignKey("notification_triggers.id"), nullable=True)
    entity_type = Column(String(50), default="booking")
    entity_id = Column(Integer, nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_type = Column(String(20), default="customer")  # customer, cleaner
    scheduled_for = Column(DateTime, index=True, nullable=False)
    status = Column(String(20), default="scheduled")  # scheduled, sent, failed, cancelled
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    trigger = relationship("NotificationTrigger")


class NotificationLog(Base):
    """Track emails sent via Resend"""

    __tablename__ = "notification_logs"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(Integer, ForeignKey("email_notification_templates.id"), nullable=True)
    recipient_email = Column(String(255), nullable=False)
    subject = Column(String(500), nullable=True)
    status = Column(String(20), default="sent")  # sent, failed, delivered, bounced, opened
    delivery_id = Column(String(255), index=True, nullable=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Notification(Base):
    """In-app notification shown in the dashboard bell"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    type = Column(String(50), default="info")
    link = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class SmsConversation(Base):
    """SMS inbox/outbox per customer phone number"""

    __tablename__ = "sms_conversations"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    phone_number = Column(String(50), index=True, nullable=False)
    message = Column(Text, nullable=False)
    direction = Column(String(10), nullable=False)  # incoming, outgoing
    status = Column(String(20), default="received")  # received, sent, failed
    twilio_sid = Column(String(64), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class SmsReminder(Base):
    """Queued payment reminder SMS"""

    __tablename__ = "sms_reminders_queue"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, index=True, nullable=False)
    phone_number = Column(String(50), nullable=False)
    customer_name = Column(String(255), nullable=True)
    amount = Column(Float, nullable=True)
    payment_link = Column(String(500), nullable=True)
    send_at = Column(DateTime, index=True, nullable=False)
    status = Column(String(20), default="pending")  # pending, sent, failed, cancelled
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
