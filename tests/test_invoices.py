from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from cleanops.models import PastBooking
from cleanops.services.invoice_automation import build_invoice_payload, sync_invoice_statuses
from cleanops.services.invoiless_service import InvoilessError

from .conftest import make_booking

INVOILESS = "cleanops.services.invoiless_service"


@pytest.fixture
def invoiless():
    with patch(f"{INVOILESS}.find_customer_by_email", new_callable=AsyncMock) as find, patch(
        f"{INVOILESS}.create_customer", new_callable=AsyncMock
    ) as create_customer, patch(f"{INVOILESS}.create_invoice", new_callable=AsyncMock) as create_invoice, patch(
        f"{INVOILESS}.send_invoice", new_callable=AsyncMock
    ) as send:
        find.return_value = None
        create_customer.return_value = {"id": "cust_1"}
        create_invoice.return_value = {"id": "inv_1", "url": "https://invoiless.com/i/inv_1"}
        yield {"find": find, "create_customer": create_customer, "create_invoice": create_invoice, "send": send}


class TestInvoicePayload:
    def test_hourly_line_item(self, db, booking):
        payload = build_invoice_payload(booking, "cust_1", today=datetime(2030, 3, 4))

        assert payload["items"] == [{"name": "Domestic - Standard Cleaning", "price": 20, "quantity": 3}]
        assert payload["date"] == "2030-03-04"
        assert payload["dueDate"] == "2030-03-05"
        assert payload["currency"] == "GBP"
        assert "Postcode: SW1A 1AA" in payload["notes"]
        assert "discount" not in payload

    def test_fixed_price_with_deduction_and_term(self, db, customer):
        booking = make_booking(
            db, customer, cleaning_cost_per_hour=None, total_cost=120.0, cost_deduction=10.0, invoice_term=14
        )

        payload = build_invoice_payload(booking, "cust_1", today=datetime(2030, 3, 4))

        assert payload["items"][0]["price"] == 120.0
        assert payload["items"][0]["quantity"] == 1
        assert payload["discount"] == 10.0
        assert payload["dueDate"] == "2030-03-18"


class TestAutoInvoice:
    def test_creates_and_sends_invoice(self, client, db, admin_headers, booking, invoiless):
        response = client.post("/invoices/auto-invoice", headers=admin_headers, json={"bookingId": booking.id})

        assert response.status_code == 200
        assert response.json()["sent"] is True
        invoiless["create_customer"].assert_awaited_once()
        invoiless["send"].assert_awaited_once()
        db.refresh(booking)
        assert booking.invoice_id == "inv_1"
        assert booking.payment_method == "Invoiless"
        assert booking.payment_status == "Invoice Sent"

    def test_existing_invoiless_customer_is_reused(self, client, admin_headers, booking, invoiless):
        invoiless["find"].return_value = {"_id": "cust_existing"}

        client.post("/invoices/auto-invoice", headers=admin_headers, json={"bookingId": booking.id})

        invoiless["create_customer"].assert_not_awaited()
        assert invoiless["create_invoice"].await_args.args[0]["customer"] == "cust_existing"

    def test_send_failure_leaves_invoice_created(self, client, db, admin_headers, booking, invoiless):
        invoiless["send"].side_effect = InvoilessError("Mail server down", status_code=500)

        response = client.post("/invoices/auto-invoice", headers=admin_headers, json={"bookingId": booking.id})

        assert response.json()["sent"] is False
        db.refresh(booking)
        assert booking.payment_status == "Invoice Created"

    def test_resend_existing_invoice(self, client, db, admin_headers, customer, invoiless):
        booking = make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_9")

        response = client.post(
            "/invoices/auto-invoice", headers=admin_headers, json={"bookingId": booking.id, "isResend": True}
        )

        assert response.json()["resent"] is True
        invoiless["create_invoice"].assert_not_awaited()
        assert invoiless["send"].await_args.args[0] == "inv_9"

    def test_invoiless_rejection_is_bad_gateway(self, client, admin_headers, booking, invoiless):
        invoiless["create_invoice"].side_effect = InvoilessError("Invalid customer", status_code=422)

        response = client.post("/invoices/auto-invoice", headers=admin_headers, json={"bookingId": booking.id})

        assert response.status_code == 502

    def test_past_booking_invoice(self, client, db, admin_headers, customer, invoiless):
        db.add(PastBooking(id=700, customer_id=customer.id, email="jane@example.com", total_cost=60.0))
        db.commit()

        response = client.post(
            "/invoices/auto-invoice", headers=admin_headers, json={"bookingId": 700, "bookingType": "past"}
        )

        assert response.status_code == 200
        assert db.get(PastBooking, 700).invoice_id == "inv_1"


class TestInvoiceStatus:
    async def test_sync_updates_changed_statuses(self, db, customer):
        paid = make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_paid", payment_status="Invoice Sent")
        same = make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_same", payment_status="Invoice Sent")
        broken = make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_broken")
        statuses = {"inv_paid": {"status": "paid"}, "inv_same": {"status": "sent"}}

        async def fake_get_invoice(invoice_id):
            if invoice_id not in statuses:
                raise InvoilessError("Not found", status_code=404)
            return statuses[invoice_id]

        with patch(f"{INVOILESS}.get_invoice", new=fake_get_invoice):
            result = await sync_invoice_statuses(db)

        assert result["total"] == 3
        assert result["synced"] == 1
        assert result["errors"] == 1
        db.refresh(paid)
        db.refresh(same)
        db.refresh(broken)
        assert paid.payment_status == "Paid"
        assert same.payment_status == "Invoice Sent"
        assert broken.payment_status == "Unpaid"

    def test_webhook_marks_bookings_paid(self, client, db, customer):
        booking = make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_42")

        response = client.post("/webhooks/invoiless", json={"type": "invoice.paid", "data": {"id": "inv_42"}})

        assert response.json() == {"received": True, "updated": 1, "payment_status": "Paid"}
        db.refresh(booking)
        assert booking.payment_status == "Paid"

    def test_webhook_viewed_changes_nothing(self, client, db, customer):
        make_booking(db, customer, payment_method="Invoiless", invoice_id="inv_42")

        response = client.post("/webhooks/invoiless", json={"type": "invoice.viewed", "data": {"id": "inv_42"}})

        assert response.json()["updated"] == 0

    def test_webhook_requires_invoice_id(self, client):
        response = client.post("/webhooks/invoiless", json={"type": "invoice.paid", "data": {}})
        assert response.status_code == 400

    def test_webhook_rejects_bad_json(self, client):
        response = client.post("/webhooks/invoiless", content=b"not json")
        assert response.status_code == 400
