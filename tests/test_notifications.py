import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from cleanops.models_notifications import (
    EmailNotificationTemplate,
    NotificationLog,
    NotificationSchedule,
    NotificationTrigger,
    SmsConversation,
    SmsTemplate,
)
from cleanops.services.notification_service import (
    notify_user,
    process_scheduled_notifications,
    process_sms_reminders,
    queue_payment_reminder,
    render,
    schedule_booking_notifications,
)
from cleanops.services.twilio_service import SMSError

from .conftest import make_booking

NOTIFY = "cleanops.services.notification_service"
RESEND_SIGNING_KEY = b"test-resend-secret"


def svix_headers(body: bytes, webhook_id="msg_1", timestamp=None):
    timestamp = str(timestamp or int(time.time()))
    signed = b".".join([webhook_id.encode(), timestamp.encode(), body])
    signature = base64.b64encode(hmac.new(RESEND_SIGNING_KEY, signed, hashlib.sha256).digest()).decode()
    return {
        "svix-id": webhook_id,
        "svix-timestamp": timestamp,
        "svix-signature": f"v1,{signature}",
        "content-type": "application/json",
    }


@pytest.fixture
def email_template(db):
    template = EmailNotificationTemplate(
        name="Booking reminder",
        subject="See you on {{booking_date}}",
        html_content="<p>Hi {{customer_name}}, {{cleaner_name}} arrives at {{booking_time}}.</p>",
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@pytest.fixture
def sms_template(db):
    template = SmsTemplate(name="Reminder SMS", content="Hi {{customer_name}}, cleaning at {{booking_time}}")
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@pytest.fixture
def send_email():
    with patch(f"{NOTIFY}.send_html_email", new_callable=AsyncMock) as send:
        send.return_value = {"id": "re_123"}
        yield send


@pytest.fixture
def send_sms():
    with patch(f"{NOTIFY}.send_sms", new_callable=AsyncMock) as send:
        send.return_value = {"sid": "SM123"}
        yield send


def make_trigger(db, **fields):
    values = {"name": "Reminder", "trigger_event": "booking_reminder", "recipient_types": ["customer"]}
    values.update(fields)
    trigger = NotificationTrigger(**values)
    db.add(trigger)
    db.commit()
    db.refresh(trigger)
    return trigger


def make_schedule(db, trigger, booking, **fields):
    values = {
        "trigger_id": trigger.id,
        "entity_type": "booking",
        "entity_id": booking.id,
        "recipient_type": "customer",
        "scheduled_for": datetime.utcnow() - timedelta(minutes=1),
        "status": "scheduled",
    }
    values.update(fields)
    schedule = NotificationSchedule(**values)
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


class TestRender:
    def test_known_placeholders_are_replaced(self):
        assert render("Hi {{ name }}, £{{amount}}", {"name": "Jane", "amount": "60.00"}) == "Hi Jane, £60.00"

    def test_unknown_and_empty_placeholders_are_kept(self):
        assert render("{{name}} {{missing}}", {"name": None}) == "{{name}} {{missing}}"

    def test_none_template(self):
        assert render(None, {"a": 1}) == ""


class TestScheduledNotifications:
    async def test_due_email_is_sent_and_logged(self, db, booking, cleaner, email_template, send_email):
        booking.cleaner_id = cleaner.id
        db.commit()
        trigger = make_trigger(db, template_id=email_template.id, notification_channel="email")
        schedule = make_schedule(db, trigger, booking)

        result = await process_scheduled_notifications(db)

        assert result == {"processed": 1, "succeeded": 1, "failed": 0}
        to, subject, html = send_email.await_args.args
        assert to == "jane@example.com"
        assert subject.startswith("See you on ")
        assert "Maria Lopez arrives" in html
        db.refresh(schedule)
        assert schedule.status == "sent"
        log = db.query(NotificationLog).one()
        assert log.delivery_id == "re_123"
        assert log.entity_id == booking.id

    async def test_future_entries_wait(self, db, booking, email_template, send_email):
        trigger = make_trigger(db, template_id=email_template.id)
        make_schedule(db, trigger, booking, scheduled_for=datetime.utcnow() + timedelta(hours=1))

        result = await process_scheduled_notifications(db)

        assert result["processed"] == 0
        send_email.assert_not_awaited()

    async def test_both_channels(self, db, booking, email_template, sms_template, send_email, send_sms):
        trigger = make_trigger(
            db, template_id=email_template.id, sms_template_id=sms_template.id, notification_channel="both"
        )
        make_schedule(db, trigger, booking)

        await process_scheduled_notifications(db)

        send_email.assert_awaited_once()
        phone, message = send_sms.await_args.args
        assert phone == "+447700900123"
        assert message.startswith("Hi Jane Smith, cleaning at ")

    async def test_cleaner_recipient_gets_cleaner_phone(self, db, booking, cleaner, sms_template, send_sms):
        booking.cleaner_id = cleaner.id
        db.commit()
        trigger = make_trigger(db, sms_template_id=sms_template.id, notification_channel="sms")
        make_schedule(db, trigger, booking, recipient_type="cleaner")

        await process_scheduled_notifications(db)

        assert send_sms.await_args.args[0] == "+447700900456"

    async def test_cancelled_booking_cancels_entry(self, db, customer, email_template, send_email):
        booking = make_booking(db, customer, booking_status="cancelled")
        trigger = make_trigger(db, template_id=email_template.id)
        schedule = make_schedule(db, trigger, booking)

        await process_scheduled_notifications(db)

        db.refresh(schedule)
        assert schedule.status == "cancelled"
        send_email.assert_not_awaited()

    async def test_sms_failure_marks_entry_failed(self, db, booking, sms_template, send_sms):
        send_sms.side_effect = SMSError("[21211] Invalid 'To' Phone Number")
        trigger = make_trigger(db, sms_template_id=sms_template.id, notification_channel="sms")
        schedule = make_schedule(db, trigger, booking)

        result = await process_scheduled_notifications(db)

        assert result["failed"] == 1
        db.refresh(schedule)
        assert schedule.status == "failed"
        assert "Invalid 'To'" in schedule.error_message

    async def test_missing_template_for_channel(self, db, booking, send_email):
        trigger = make_trigger(db, notification_channel="email")
        schedule = make_schedule(db, trigger, booking)

        await process_scheduled_notifications(db)

        db.refresh(schedule)
        assert schedule.status == "failed"
        assert "No template configured" in schedule.error_message

    def test_schedule_offsets_from_booking_time(self, db, booking):
        trigger = make_trigger(
            db, trigger_event="booking_created", timing_offset_minutes=-60, recipient_types=["customer", "cleaner"]
        )
        now = booking.date_time - timedelta(hours=6)

        created = schedule_booking_notifications(db, booking, "booking_created", now=now)

        assert len(created) == 2
        assert {s.recipient_type for s in created} == {"customer", "cleaner"}
        assert all(s.scheduled_for == booking.date_time - timedelta(minutes=60) for s in created)
        assert all(s.trigger_id == trigger.id for s in created)

    def test_disabled_triggers_are_ignored(self, db, booking):
        make_trigger(db, trigger_event="booking_created", is_enabled=False)
        assert schedule_booking_notifications(db, booking, "booking_created") == []


class TestSmsReminders:
    async def test_due_reminder_is_sent(self, db, booking, send_sms):
        reminder = queue_payment_reminder(
            db, booking, datetime.utcnow() - timedelta(minutes=5), "https://pay.example.com/x"
        )

        result = await process_sms_reminders(db)

        assert result["sent"] == 1
        phone, message = send_sms.await_args.args
        assert phone == "+447700900123"
        assert "£60.00" in message
        assert "https://pay.example.com/x" in message
        db.refresh(reminder)
        assert reminder.status == "sent"

    async def test_paid_booking_cancels_reminder(self, db, booking, send_sms):
        reminder = queue_payment_reminder(db, booking, datetime.utcnow() - timedelta(minutes=5))
        booking.payment_status = "Paid"
        db.commit()

        result = await process_sms_reminders(db)

        assert result["cancelled"] == 1
        send_sms.assert_not_awaited()
        db.refresh(reminder)
        assert reminder.status == "cancelled"

    async def test_failed_send_is_recorded(self, db, booking, send_sms):
        send_sms.side_effect = SMSError("Twilio down")
        reminder = queue_payment_reminder(db, booking, datetime.utcnow() - timedelta(minutes=5))

        await process_sms_reminders(db)

        db.refresh(reminder)
        assert reminder.status == "failed"
        assert reminder.error_message == "Twilio down"

    def test_booking_without_phone_is_not_queued(self, db, customer):
        booking = make_booking(db, customer, phone_number=None)
        assert queue_payment_reminder(db, booking, datetime.utcnow()) is None

    def test_reminder_endpoint_requires_phone(self, client, db, admin_headers, customer):
        booking = make_booking(db, customer, phone_number=None)
        response = client.post("/notifications/sms-reminders", headers=admin_headers, json={"bookingId": booking.id})
        assert response.status_code == 400


class TestNotificationAdmin:
    def test_test_send_is_not_logged(self, client, db, admin_headers, email_template, send_email):
        response = client.post(
            "/notifications/send",
            headers=admin_headers,
            json={
                "templateId": email_template.id,
                "recipientEmail": "office@example.com",
                "variables": {"booking_date": "Monday"},
                "isTest": True,
            },
        )

        assert response.status_code == 200
        assert response.json()["subject"] == "[TEST] See you on Monday"
        assert db.query(NotificationLog).count() == 0

    def test_template_in_use_cannot_be_deleted(self, client, db, admin_headers, email_template):
        make_trigger(db, template_id=email_template.id)

        response = client.delete(f"/notifications/templates/{email_template.id}", headers=admin_headers)

        assert response.status_code == 400

    def test_trigger_channel_validated(self, client, admin_headers):
        response = client.post(
            "/notifications/triggers",
            headers=admin_headers,
            json={"name": "X", "triggerEvent": "booking_created", "notificationChannel": "pigeon"},
        )
        assert response.status_code == 422

    def test_deleting_trigger_cancels_pending_entries(self, client, db, admin_headers, booking, email_template):
        trigger = make_trigger(db, template_id=email_template.id)
        schedule = make_schedule(db, trigger, booking)

        response = client.delete(f"/notifications/triggers/{trigger.id}", headers=admin_headers)

        assert response.status_code == 200
        db.refresh(schedule)
        db.refresh(trigger)
        assert schedule.status == "cancelled"
        assert trigger.is_enabled is False

    def test_cancel_sent_schedule_rejected(self, client, db, admin_headers, booking, email_template):
        trigger = make_trigger(db, template_id=email_template.id)
        schedule = make_schedule(db, trigger, booking, status="sent")

        response = client.post(f"/notifications/schedules/{schedule.id}/cancel", headers=admin_headers)

        assert response.status_code == 400

    def test_send_sms_records_conversation(self, client, db, admin_headers, customer):
        with patch(
            "cleanops.services.twilio_service.send_sms", new=AsyncMock(return_value={"sid": "SM1"})
        ):
            response = client.post(
                "/notifications/sms",
                headers=admin_headers,
                json={"to": "07700 900123", "message": "Your cleaner is running late", "customerId": customer.id},
            )

        assert response.status_code == 200
        assert response.json()["sid"] == "SM1"
        record = db.query(SmsConversation).one()
        assert record.direction == "outgoing"
        assert record.phone_number == "+447700900123"


class TestBell:
    def test_unread_count_and_mark_read(self, client, db, admin_user, admin_headers):
        first = notify_user(db, admin_user.id, "New booking", link="/bookings/1")
        notify_user(db, admin_user.id, "Payment failed", type="warning")

        assert client.get("/notifications/bell/unread-count", headers=admin_headers).json() == {"unread_count": 2}

        client.post(f"/notifications/bell/{first.id}/read", headers=admin_headers)
        unread = client.get("/notifications/bell", params={"unread_only": True}, headers=admin_headers).json()
        assert [n["title"] for n in unread] == ["Payment failed"]

        response = client.post("/notifications/bell/read-all", headers=admin_headers)
        assert response.json()["updated"] == 1

    def test_cannot_read_someone_elses_notification(self, client, db, admin_user, customer_headers):
        notification = notify_user(db, admin_user.id, "Office only")

        response = client.post(f"/notifications/bell/{notification.id}/read", headers=customer_headers)

        assert response.status_code == 404
        db.refresh(notification)
        assert notification.is_read is False


class TestResendWebhook:
    def test_delivery_event_updates_log(self, client, db):
        db.add(NotificationLog(recipient_email="jane@example.com", status="sent", delivery_id="re_123"))
        db.commit()
        body = json.dumps({"type": "email.bounced", "data": {"email_id": "re_123"}}).encode()

        response = client.post("/webhooks/resend", content=body, headers=svix_headers(body))

        assert response.json() == {"received": True, "updated": 1}
        assert db.query(NotificationLog).one().status == "bounced"

    def test_bad_signature_rejected(self, client):
        body = json.dumps({"type": "email.delivered", "data": {"email_id": "re_123"}}).encode()
        headers = svix_headers(body)
        headers["svix-signature"] = "v1,bm90LXRoZS1zaWduYXR1cmU="

        response = client.post("/webhooks/resend", content=body, headers=headers)

        assert response.status_code == 401

    def test_stale_timestamp_rejected(self, client):
        body = b"{}"
        response = client.post(
            "/webhooks/resend", content=body, headers=svix_headers(body, timestamp=int(time.time()) - 3600)
        )
        assert response.status_code == 401
