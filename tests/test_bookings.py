import json
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from cleanops.models import ActivityLog, Address, Booking, Customer, PastBooking, RecurringService
from cleanops.models_notifications import NotificationSchedule, NotificationTrigger
from cleanops.services.booking_automation import archive_completed_bookings, auto_complete_bookings
from cleanops.services.stripe_service import StripeError

from .conftest import make_booking

SERVICE = "cleanops.domain.bookings.service"


def public_form(**overrides):
    form = {
        "firstName": "Alice",
        "lastName": "Brown",
        "email": "Alice@Example.com",
        "phone": "07700 900999",
        "houseNumber": "4",
        "street": "Station Road",
        "city": "London",
        "postcode": "e17 4pp",
        "propertyType": "house",
        "bedrooms": "3",
        "bathrooms": "2",
        "serviceType": "Domestic",
        "cleaningType": "Standard Cleaning",
        "serviceFrequency": "weekly",
        "selectedDate": "2030-03-04",
        "selectedTime": "10:00 - 12:00",
        "totalCost": 66.0,
        "estimatedHours": 3,
        "hourlyRate": 22,
        "paymentMethod": "Stripe",
    }
    form.update(overrides)
    return form


@pytest.fixture
def confirmation_email():
    with patch(f"{SERVICE}.send_booking_confirmation_email", new_callable=AsyncMock) as send:
        yield send


class TestPublicBooking:
    def test_weekly_booking_creates_recurring_service(self, client, db, confirmation_email):
        response = client.post("/bookings/public", json=public_form())

        assert response.status_code == 200
        body = response.json()
        booking = db.query(Booking).filter(Booking.id == body["bookingId"]).one()
        assert booking.date_time == datetime(2030, 3, 4, 10, 0)
        assert booking.address == "4 Station Road, London"
        assert booking.postcode == "E17 4PP"
        assert booking.phone_number == "+447700900999"
        assert booking.created_by_source == "website"
        assert booking.recurring_group_id

        service = db.query(RecurringService).filter(RecurringService.id == body["recurringServiceId"]).one()
        assert service.frequently == "weekly"
        assert service.days_of_the_week == "monday"
        assert service.start_time == "10:00"
        assert service.total_cost == 66
        assert booking.recurring_service_id == service.id

        customer = db.query(Customer).filter(Customer.id == body["customerId"]).one()
        assert customer.email == "alice@example.com"
        assert customer.client_status == "New"
        address = db.query(Address).filter(Address.customer_id == customer.id).one()
        assert address.is_default is True

        confirmation_email.assert_awaited_once()
        assert confirmation_email.await_args.args[2] == "Monday, 4 March 2030"

    def test_one_off_booking_is_deep_clean_without_recurring_service(self, client, db, confirmation_email):
        response = client.post("/bookings/public", json=public_form(serviceFrequency="onetime"))

        body = response.json()
        assert body["recurringServiceId"] is None
        booking = db.query(Booking).filter(Booking.id == body["bookingId"]).one()
        assert booking.cleaning_type == "Deep Cleaning"
        assert booking.recurring_group_id is None
        assert db.query(RecurringService).count() == 0

    def test_first_deep_clean_details(self, client, db, confirmation_email):
        response = client.post(
            "/bookings/public",
            json=public_form(wantsFirstDeepClean=True, firstDeepCleanExtraHours=2, regularRecurringCost=66),
        )

        booking = db.query(Booking).filter(Booking.id == response.json()["bookingId"]).one()
        assert booking.total_hours == 5
        assert booking.cleaning_type == "Deep Cleaning"
        details = json.loads(booking.additional_details)
        assert details["firstDeepClean"]["enabled"] is True
        assert details["serviceFrequency"] == "weekly"

    def test_existing_customer_becomes_current(self, client, db, customer, confirmation_email):
        response = client.post("/bookings/public", json=public_form(email="jane@example.com"))

        assert response.json()["customerId"] == customer.id
        db.refresh(customer)
        assert customer.client_status == "Current"
        assert db.query(Customer).count() == 1

    def test_agent_booking_is_logged(self, client, db, admin_user, confirmation_email):
        response = client.post("/bookings/public", json=public_form(agentUserId=admin_user.id))

        booking = db.query(Booking).filter(Booking.id == response.json()["bookingId"]).one()
        assert booking.created_by_source == "sales_agent"
        log = db.query(ActivityLog).filter(ActivityLog.action_type == "public_booking_created").one()
        assert log.user_id == admin_user.id

    def test_confirmation_failure_does_not_fail_booking(self, client, db):
        with patch(f"{SERVICE}.send_booking_confirmation_email", new=AsyncMock(side_effect=RuntimeError("down"))):
            response = client.post("/bookings/public", json=public_form())

        assert response.status_code == 200
        assert db.query(Booking).count() == 1

    def test_booking_created_trigger_is_scheduled(self, client, db, confirmation_email):
        db.add(
            NotificationTrigger(
                name="Booking received",
                trigger_event="booking_created",
                notification_channel="email",
                recipient_types=["customer"],
                is_enabled=True,
            )
        )
        db.commit()

        client.post("/bookings/public", json=public_form())

        schedule = db.query(NotificationSchedule).one()
        assert schedule.entity_type == "booking"
        assert schedule.status == "scheduled"

    def test_invalid_postcode(self, client, confirmation_email):
        response = client.post("/bookings/public", json=public_form(postcode="not a postcode"))
        assert response.status_code == 422


class TestAdminBookings:
    def test_create_fills_contact_details_from_customer(self, client, admin_headers, customer, address):
        response = client.post(
            "/bookings",
            headers=admin_headers,
            json={
                "customerId": customer.id,
                "addressId": address.id,
                "dateTime": "2030-03-04T09:00:00",
                "totalHours": 2.5,
                "cleaningCostPerHour": 20,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "jane@example.com"
        assert body["postcode"] == "SW1A 1AA"
        assert body["total_cost"] == 50
        assert body["created_by_source"] == "admin"

    def test_update_booking(self, client, admin_headers, booking, cleaner):
        response = client.patch(
            f"/bookings/{booking.id}", headers=admin_headers, json={"cleanerId": cleaner.id, "cleanerPay": 36}
        )

        assert response.status_code == 200
        assert response.json()["cleaner_id"] == cleaner.id
        assert response.json()["cleaner_pay"] == 36

    def test_customer_sees_only_own_bookings(self, client, db, customer_headers, booking):
        other = Customer(first_name="Tom", email="tom@example.com")
        db.add(other)
        db.commit()
        other_booking = make_booking(db, other)

        mine = client.get("/bookings/my", headers=customer_headers)
        theirs = client.get(f"/bookings/my/{other_booking.id}", headers=customer_headers)

        assert [b["id"] for b in mine.json()] == [booking.id]
        assert theirs.status_code == 404


class TestCancelBooking:
    def test_cancel_releases_authorization(self, client, db, admin_headers, customer):
        booking = make_booking(db, customer, payment_status="authorized", invoice_id="pi_hold")

        with patch("cleanops.services.stripe_service.cancel_payment_intent", new_callable=AsyncMock) as cancel:
            response = client.post(f"/bookings/{booking.id}/cancel", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["authorization_released"] is True
        cancel.assert_awaited_once_with("pi_hold")
        db.refresh(booking)
        assert booking.booking_status == "cancelled"
        assert booking.payment_status == "cancelled"
        assert booking.invoice_id is None

    def test_cancel_without_hold(self, client, db, admin_headers, booking):
        with patch("cleanops.services.stripe_service.cancel_payment_intent", new_callable=AsyncMock) as cancel:
            response = client.post(f"/bookings/{booking.id}/cancel", headers=admin_headers)

        assert response.json()["authorization_released"] is False
        cancel.assert_not_awaited()

    def test_stripe_refusal_keeps_booking_active(self, client, db, admin_headers, customer):
        booking = make_booking(db, customer, payment_status="authorized", invoice_id="pi_hold")
        error = StripeError("No such payment_intent", code="resource_missing")

        with patch("cleanops.services.stripe_service.cancel_payment_intent", new=AsyncMock(side_effect=error)):
            response = client.post(f"/bookings/{booking.id}/cancel", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["stripe_error_code"] == "resource_missing"
        db.refresh(booking)
        assert booking.booking_status == "active"


class TestCompleteBooking:
    def test_complete_archives_and_notifies(self, client, db, admin_headers, booking):
        booking_id = booking.id
        with patch(f"{SERVICE}.send_booking_completed_email", new_callable=AsyncMock) as email, patch(
            f"{SERVICE}.send_sms", new_callable=AsyncMock
        ) as sms:
            response = client.post(f"/bookings/{booking_id}/complete", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["email_sent"] is True
        assert response.json()["sms_sent"] is True
        email.assert_awaited_once()
        sms.assert_awaited_once()
        assert db.query(Booking).filter(Booking.id == booking_id).first() is None
        past = db.query(PastBooking).filter(PastBooking.id == booking_id).one()
        assert past.booking_status == "completed"

        # archived bookings are still reachable by their original id
        assert client.get(f"/bookings/{booking_id}", headers=admin_headers).json()["id"] == booking_id

    def test_new_booking_never_reuses_archived_id(self, client, db, admin_headers, customer, booking):
        archived_id = booking.id
        with patch(f"{SERVICE}.send_booking_completed_email", new_callable=AsyncMock), patch(
            f"{SERVICE}.send_sms", new_callable=AsyncMock
        ):
            response = client.post(f"/bookings/{archived_id}/complete", headers=admin_headers)
        assert response.status_code == 200
        assert db.query(Booking).count() == 0

        fresh = make_booking(db, customer)

        assert fresh.id > archived_id
        assert db.query(PastBooking).filter(PastBooking.id == archived_id).one().booking_status == "completed"
        assert client.get(f"/bookings/{fresh.id}", headers=admin_headers).json()["id"] == fresh.id

    def test_cancelled_booking_cannot_complete(self, client, db, admin_headers, customer):
        booking = make_booking(db, customer, booking_status="cancelled")
        response = client.post(f"/bookings/{booking.id}/complete", headers=admin_headers)
        assert response.status_code == 400


class TestStatusAutomation:
    def test_auto_complete_after_grace_period(self, db, customer):
        now = datetime(2030, 3, 4, 18, 0)
        finished = make_booking(db, customer, date_time=now - timedelta(hours=5), total_hours=3)
        in_grace = make_booking(db, customer, date_time=now - timedelta(hours=3, minutes=30), total_hours=3)
        cancelled = make_booking(db, customer, date_time=now - timedelta(hours=6), booking_status="cancelled")

        result = auto_complete_bookings(db, now=now)

        assert result["bookings_completed"] == 1
        db.refresh(finished)
        db.refresh(in_grace)
        db.refresh(cancelled)
        assert finished.booking_status == "completed"
        assert in_grace.booking_status == "active"
        assert cancelled.booking_status == "cancelled"

    def test_archive_moves_completed_bookings(self, db, customer):
        completed = make_booking(db, customer, booking_status="completed")
        make_booking(db, customer)
        completed_id = completed.id

        result = archive_completed_bookings(db)

        assert result == {"bookings_archived": 1}
        assert db.query(Booking).count() == 1
        assert db.query(PastBooking).filter(PastBooking.id == completed_id).count() == 1
