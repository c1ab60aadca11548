import json
import time
from unittest.mock import AsyncMock, patch

import pytest

from cleanops.models_notifications import SmsConversation
from cleanops.models_payments import CustomerPaymentMethod
from cleanops.webhook_security import create_stripe_signature

from .conftest import make_booking

STRIPE = "cleanops.services.stripe_service"
STRIPE_SECRET = "whsec_test_stripe"


def post_stripe_event(client, event, secret=STRIPE_SECRET, timestamp=None):
    body = json.dumps(event).encode()
    signature = create_stripe_signature(secret, body, timestamp)
    return client.post(
        "/webhooks/stripe", content=body, headers={"Stripe-Signature": signature, "content-type": "application/json"}
    )


@pytest.fixture
def stripe_card_lookup(customer):
    card = {
        "id": "pm_new",
        "customer": "cus_999",
        "card": {"brand": "mastercard", "last4": "4444", "exp_month": 1, "exp_year": 2031},
    }
    with patch(f"{STRIPE}.retrieve_customer", new_callable=AsyncMock) as retrieve_customer, patch(
        f"{STRIPE}.retrieve_payment_method", new_callable=AsyncMock
    ) as retrieve_payment_method:
        retrieve_customer.return_value = {"id": "cus_999", "metadata": {"customer_id": str(customer.id)}}
        retrieve_payment_method.return_value = card
        yield retrieve_customer


class TestStripeSignature:
    def test_missing_signature(self, client):
        response = client.post("/webhooks/stripe", content=b"{}")
        assert response.status_code == 401

    def test_wrong_secret(self, client):
        response = post_stripe_event(client, {"type": "ping"}, secret="whsec_wrong")
        assert response.status_code == 401

    def test_replayed_event_rejected(self, client):
        response = post_stripe_event(client, {"type": "ping"}, timestamp=int(time.time()) - 3600)
        assert response.status_code == 401

    def test_unhandled_event_acknowledged(self, client):
        response = post_stripe_event(client, {"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json() == {"received": True, "event_type": "charge.refunded"}


class TestStripeEvents:
    def test_attached_card_is_saved_as_default(self, client, db, customer, stripe_card_lookup):
        response = post_stripe_event(
            client,
            {
                "id": "evt_2",
                "type": "payment_method.attached",
                "data": {"object": {"id": "pm_new", "customer": "cus_999"}},
            },
        )

        assert response.json()["payment_method_synced"] is True
        method = db.query(CustomerPaymentMethod).one()
        assert method.customer_id == customer.id
        assert method.card_last4 == "4444"
        assert method.is_default is True

    def test_same_card_is_not_duplicated(self, client, db, customer, stripe_card_lookup):
        event = {
            "id": "evt_3",
            "type": "setup_intent.succeeded",
            "data": {"object": {"payment_method": "pm_new", "customer": "cus_999"}},
        }

        post_stripe_event(client, event)
        post_stripe_event(client, event)

        assert db.query(CustomerPaymentMethod).count() == 1

    def test_customer_without_metadata_is_ignored(self, client, db, customer, stripe_card_lookup):
        stripe_card_lookup.return_value = {"id": "cus_999", "metadata": {}}

        response = post_stripe_event(
            client,
            {"type": "payment_method.attached", "data": {"object": {"id": "pm_new", "customer": "cus_999"}}},
        )

        assert response.json()["payment_method_synced"] is False
        assert db.query(CustomerPaymentMethod).count() == 0

    def test_checkout_completed_marks_bookings_paid(self, client, db, customer, stripe_card_lookup):
        first = make_booking(db, customer, invoice_id="cs_test_1", payment_status="pending")
        second = make_booking(db, customer, invoice_id="cs_test_1", payment_status="pending")

        with patch(f"{STRIPE}.retrieve_payment_intent", new_callable=AsyncMock) as retrieve_intent:
            retrieve_intent.return_value = {"payment_method": "pm_new", "customer": "cus_999"}
            response = post_stripe_event(
                client,
                {
                    "type": "checkout.session.completed",
                    "data": {"object": {"id": "cs_test_1", "customer": "cus_999", "payment_intent": "pi_1"}},
                },
            )

        body = response.json()
        assert body["bookings_paid"] == 2
        assert body["payment_method_synced"] is True
        db.refresh(first)
        db.refresh(second)
        assert first.payment_status == second.payment_status == "paid"


class TestTwilioInbound:
    def test_known_customer_is_matched(self, client, db, customer):
        response = client.post(
            "/webhooks/twilio/sms",
            data={"From": "+447700900123", "Body": "Can you come at <i>10</i>?", "MessageSid": "SM1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Response></Response>" in response.text
        record = db.query(SmsConversation).one()
        assert record.customer_id == customer.id
        assert record.message == "Can you come at 10?"
        assert record.direction == "incoming"
        assert record.is_read is False

    def test_unknown_sender_is_stored_unlinked(self, client, db):
        client.post("/webhooks/twilio/sms", data={"From": "07911 123456", "Body": "Hello"})

        record = db.query(SmsConversation).one()
        assert record.customer_id is None
        assert record.phone_number == "+447911123456"

    def test_missing_sender_still_answers_twiml(self, client, db):
        response = client.post("/webhooks/twilio/sms", data={"Body": "Hello"})

        assert response.status_code == 200
        assert db.query(SmsConversation).count() == 0


class TestSmsInbox:
    def test_reply_links_customer(self, client, db, admin_headers, customer):
        with patch("cleanops.services.twilio_service.send_sms", new=AsyncMock(return_value={"sid": "SM2"})):
            response = client.post(
                "/sms/reply", headers=admin_headers, json={"to": "07700 900123", "message": "See you Monday"}
            )

        assert response.status_code == 200
        assert response.json()["customer_id"] == customer.id
        assert response.json()["status"] == "sent"

    def test_reading_one_message_reads_thread(self, client, db, admin_headers):
        for body in ("First", "Second"):
            client.post("/webhooks/twilio/sms", data={"From": "+447911123456", "Body": body})
        first = db.query(SmsConversation).first()

        response = client.post(f"/sms/conversations/{first.id}/read", headers=admin_headers)

        assert response.json()["updated"] == 2
        unread = client.get("/sms/conversations", params={"unread_only": True}, headers=admin_headers)
        assert unread.json() == []

    def test_failed_send_is_kept_and_reported(self, client, db, admin_headers):
        from cleanops.services.twilio_service import SMSError

        with patch("cleanops.services.twilio_service.send_sms", new=AsyncMock(side_effect=SMSError("Twilio down"))):
            response = client.post(
                "/sms/reply", headers=admin_headers, json={"to": "07911 123456", "message": "Hello"}
            )

        assert response.status_code == 502
        assert db.query(SmsConversation).one().status == "failed"
