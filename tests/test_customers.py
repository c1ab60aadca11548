from cleanops.models import Address, Booking, Customer, PastBooking, User
from cleanops.models_chat import Chat, ChatMessage
from cleanops.models_payments import CustomerPaymentMethod

from .conftest import make_booking


class TestCustomerCrud:
    def test_create_normalizes_contact_details(self, client, admin_headers):
        response = client.post(
            "/customers",
            headers=admin_headers,
            json={"firstName": "Tom", "lastName": "Baker", "email": "Tom@Example.com", "phone": "07700 900321"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "tom@example.com"
        assert body["phone"] == "+447700900321"
        assert body["client_status"] == "New"

    def test_duplicate_email_rejected(self, client, admin_headers, customer):
        response = client.post(
            "/customers", headers=admin_headers, json={"firstName": "Other", "email": "jane@example.com"}
        )
        assert response.status_code == 400

    def test_invalid_phone_rejected(self, client, admin_headers):
        response = client.post("/customers", headers=admin_headers, json={"firstName": "Tom", "phone": "123"})
        assert response.status_code == 422
        error = response.json()["detail"][0]
        assert error["loc"] == ["body", "phone"]
        assert "Invalid phone number" in error["msg"]

    def test_search(self, client, admin_headers, customer, db):
        db.add(Customer(first_name="Tom", last_name="Baker", email="tom@example.com"))
        db.commit()

        response = client.get("/customers", params={"search": "smith"}, headers=admin_headers)

        assert [c["email"] for c in response.json()] == ["jane@example.com"]

    def test_update_only_changes_given_fields(self, client, admin_headers, customer):
        response = client.patch(f"/customers/{customer.id}", headers=admin_headers, json={"notes": "Has a dog"})

        body = response.json()
        assert body["notes"] == "Has a dog"
        assert body["email"] == "jane@example.com"
        assert body["phone"] == "+447700900123"

    def test_detail_includes_addresses(self, client, admin_headers, customer, address):
        response = client.get(f"/customers/{customer.id}", headers=admin_headers)

        assert response.status_code == 200
        assert [a["postcode"] for a in response.json()["addresses"]] == ["SW1A 1AA"]

    def test_missing_customer(self, client, admin_headers):
        assert client.get("/customers/999", headers=admin_headers).status_code == 404


class TestAddresses:
    def test_new_default_replaces_old_default(self, client, db, admin_headers, customer, address):
        response = client.post(
            f"/customers/{customer.id}/addresses",
            headers=admin_headers,
            json={"address": "5 Mill Lane, Chelmsford", "postcode": "cm1 1aa", "isDefault": True},
        )

        assert response.status_code == 200
        assert response.json()["postcode"] == "CM1 1AA"
        db.refresh(address)
        assert address.is_default is False
        defaults = db.query(Address).filter(Address.customer_id == customer.id, Address.is_default.is_(True)).all()
        assert len(defaults) == 1

    def test_first_address_is_default(self, client, admin_headers, customer):
        response = client.post(
            f"/customers/{customer.id}/addresses",
            headers=admin_headers,
            json={"address": "5 Mill Lane, Chelmsford", "postcode": "CM1 1AA"},
        )
        assert response.json()["is_default"] is True

    def test_deleting_default_promotes_another(self, client, db, admin_headers, customer, address):
        other = Address(customer_id=customer.id, address="5 Mill Lane", postcode="CM1 1AA", is_default=False)
        db.add(other)
        db.commit()

        response = client.delete(f"/customers/{customer.id}/addresses/{address.id}", headers=admin_headers)

        assert response.status_code == 200
        db.refresh(other)
        assert other.is_default is True


class TestCustomerDelete:
    def test_cascade_removes_everything_linked(
        self, client, db, admin_headers, customer, address, customer_user, saved_card
    ):
        make_booking(db, customer, address_id=address.id)
        past = PastBooking(id=500, customer_id=customer.id, first_name="Jane", booking_status="completed")
        chat = Chat(chat_type="customer_office", customer_id=customer.id)
        db.add_all([past, chat])
        db.commit()
        db.add(ChatMessage(chat_id=chat.id, sender_type="customer", message="Hello"))
        db.commit()

        response = client.delete(f"/customers/{customer.id}", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Customer Jane Smith and all related records deleted"
        assert body["deleted"]["bookings"] == 1
        assert body["deleted"]["past_bookings"] == 1
        assert body["deleted"]["chat_messages"] == 1
        assert body["deleted"]["users"] == 1

        assert db.query(Customer).count() == 0
        assert db.query(Booking).count() == 0
        assert db.query(Address).count() == 0
        assert db.query(CustomerPaymentMethod).count() == 0
        assert db.query(User).filter(User.customer_id.isnot(None)).count() == 0

    def test_other_customers_untouched(self, client, db, admin_headers, customer):
        other = Customer(first_name="Tom", email="tom@example.com")
        db.add(other)
        db.commit()
        make_booking(db, other)

        client.delete(f"/customers/{customer.id}", headers=admin_headers)

        assert db.query(Customer).count() == 1
        assert db.query(Booking).count() == 1
