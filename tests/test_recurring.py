from datetime import date, datetime

import pytest

from cleanops.models import Booking, PastBooking, RecurringService
from cleanops.services.recurring_bookings import (
    generate_bookings,
    normalize_frequency,
    occurrence_dates,
    parse_days_of_week,
)


def make_service(db, customer, **fields):
    values = {
        "customer_id": customer.id,
        "cleaning_type": "Standard Cleaning",
        "frequently": "weekly",
        "days_of_the_week": "monday",
        "hours": 3,
        "cost_per_hour": 20,
        "cleaner_rate": 12,
        "start_date": date(2030, 3, 4),
        "start_time": "09:30",
        "postponed": False,
    }
    values.update(fields)
    service = RecurringService(**values)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


class TestFrequencies:
    @pytest.mark.parametrize(
        "value,expected",
        [("Weekly", "weekly"), ("fortnightly", "bi-weekly"), ("biweekly", "bi-weekly"), ("onetime", None), (None, None)],
    )
    def test_normalize(self, value, expected):
        assert normalize_frequency(value) == expected

    def test_days_of_week(self):
        assert parse_days_of_week("Thursday, mon") == [0, 3]
        assert parse_days_of_week("") == []


class TestOccurrenceDates:
    def test_weekly_on_several_days(self):
        service = RecurringService(frequently="weekly", days_of_the_week="monday, thursday", start_date=date(2030, 3, 4))

        dates = occurrence_dates(service, date(2030, 3, 4), date(2030, 3, 17))

        assert dates == [date(2030, 3, 4), date(2030, 3, 7), date(2030, 3, 11), date(2030, 3, 14)]

    def test_biweekly_keeps_phase_with_start_date(self):
        service = RecurringService(frequently="bi-weekly", start_date=date(2030, 3, 4))

        dates = occurrence_dates(service, date(2030, 3, 10), date(2030, 4, 10))

        assert dates == [date(2030, 3, 18), date(2030, 4, 1)]

    def test_monthly_clamps_to_month_end(self):
        service = RecurringService(frequently="monthly", start_date=date(2030, 1, 31))

        dates = occurrence_dates(service, date(2030, 2, 1), date(2030, 4, 30))

        assert dates == [date(2030, 2, 28), date(2030, 3, 31), date(2030, 4, 30)]

    def test_nothing_before_start_date(self):
        service = RecurringService(frequently="weekly", days_of_the_week="monday", start_date=date(2030, 6, 3))
        assert occurrence_dates(service, date(2030, 3, 1), date(2030, 3, 31)) == []


class TestGenerateBookings:
    def test_creates_bookings_from_template(self, db, customer, address, cleaner):
        service = make_service(db, customer, address_id=address.id, cleaner_id=cleaner.id)

        result = generate_bookings(db, today=date(2030, 3, 4), horizon_days=13)

        assert result == {"bookings_created": 2, "services_checked": 1, "services_resumed": 0}
        bookings = db.query(Booking).order_by(Booking.date_time).all()
        assert [b.date_time for b in bookings] == [datetime(2030, 3, 4, 9, 30), datetime(2030, 3, 11, 9, 30)]
        first = bookings[0]
        assert first.total_cost == 60
        assert first.cleaner_pay == 36
        assert first.postcode == "SW1A 1AA"
        assert first.email == "jane@example.com"
        assert first.created_by_source == "recurring"
        assert first.recurring_service_id == service.id

    def test_is_idempotent(self, db, customer):
        make_service(db, customer)

        generate_bookings(db, today=date(2030, 3, 4), horizon_days=13)
        second = generate_bookings(db, today=date(2030, 3, 4), horizon_days=13)

        assert second["bookings_created"] == 0
        assert db.query(Booking).count() == 2

    def test_archived_occurrence_is_not_recreated(self, db, customer):
        service = make_service(db, customer)
        db.add(PastBooking(id=321, customer_id=customer.id, date_time=datetime(2030, 3, 4, 9, 30), recurring_service_id=service.id))
        db.commit()

        result = generate_bookings(db, today=date(2030, 3, 4), horizon_days=13)

        assert result["bookings_created"] == 1

    def test_postponed_service_is_skipped_until_resume_date(self, db, customer):
        service = make_service(db, customer, postponed=True, resume_date=date(2030, 3, 10))

        assert generate_bookings(db, today=date(2030, 3, 4), horizon_days=13)["bookings_created"] == 0

        result = generate_bookings(db, today=date(2030, 3, 10), horizon_days=13)

        assert result["services_resumed"] == 1
        assert result["bookings_created"] == 2
        db.refresh(service)
        assert service.postponed is False


class TestRecurringRoutes:
    def test_create_computes_total(self, client, admin_headers, customer):
        response = client.post(
            "/recurring-services",
            headers=admin_headers,
            json={
                "customerId": customer.id,
                "frequently": "weekly",
                "daysOfTheWeek": "friday",
                "hours": 2.5,
                "costPerHour": 22,
                "startDate": "2030-03-08",
                "startTime": "10:00",
            },
        )

        assert response.status_code == 200
        assert response.json()["total_cost"] == 55

    def test_invalid_frequency(self, client, admin_headers, customer):
        response = client.post(
            "/recurring-services",
            headers=admin_headers,
            json={"customerId": customer.id, "frequently": "daily", "startDate": "2030-03-08"},
        )
        assert response.status_code == 422

    def test_postpone_and_resume(self, client, db, admin_headers, customer):
        service = make_service(db, customer)

        postponed = client.post(
            f"/recurring-services/{service.id}/postpone", headers=admin_headers, json={"resumeDate": "2030-04-01"}
        )
        assert postponed.json()["postponed"] is True
        assert postponed.json()["resume_date"] == "2030-04-01"

        resumed = client.post(f"/recurring-services/{service.id}/resume", headers=admin_headers)
        assert resumed.json()["postponed"] is False
        assert resumed.json()["resume_date"] is None
