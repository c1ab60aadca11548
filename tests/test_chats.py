from cleanops.models import Customer
from cleanops.models_chat import Chat, ChatMessage

from .conftest import auth_headers, make_booking, make_user


def open_chat(client, headers, **body):
    response = client.post("/chats", headers=headers, json=body)
    assert response.status_code == 200, response.text
    return response.json()


class TestOpenChat:
    def test_customer_office_chat_is_reused(self, client, customer_headers, customer):
        first = open_chat(client, customer_headers, chatType="customer_office")
        second = open_chat(client, customer_headers, chatType="customer_office")

        assert first["id"] == second["id"]
        assert first["customer_id"] == customer.id

    def test_customer_cannot_speak_for_another_customer(self, client, db, customer_headers, customer):
        other = Customer(first_name="Tom", email="tom@example.com")
        db.add(other)
        db.commit()

        chat = open_chat(client, customer_headers, chatType="customer_office", customerId=other.id)

        assert chat["customer_id"] == customer.id

    def test_customer_cleaner_chat_needs_own_booking(self, client, db, customer_headers, customer, cleaner):
        booking = make_booking(db, customer, cleaner_id=cleaner.id)
        other = Customer(first_name="Tom", email="tom@example.com")
        db.add(other)
        db.commit()
        other_booking = make_booking(db, other, cleaner_id=cleaner.id)

        chat = open_chat(client, customer_headers, chatType="customer_cleaner", bookingId=booking.id)
        rejected = client.post(
            "/chats", headers=customer_headers, json={"chatType": "customer_cleaner", "bookingId": other_booking.id}
        )
        missing = client.post("/chats", headers=customer_headers, json={"chatType": "customer_cleaner"})

        assert chat["cleaner_id"] == cleaner.id
        assert rejected.status_code == 404
        assert missing.status_code == 400

    def test_cleaner_cannot_open_customer_office_chat(self, client, cleaner_headers, customer):
        response = client.post(
            "/chats", headers=cleaner_headers, json={"chatType": "customer_office", "customerId": customer.id}
        )
        assert response.status_code == 403

    def test_admin_opens_office_cleaner_chat(self, client, admin_headers, cleaner):
        chat = open_chat(client, admin_headers, chatType="office_cleaner", cleanerId=cleaner.id)
        assert chat["cleaner_id"] == cleaner.id

    def test_invalid_chat_type(self, client, admin_headers):
        response = client.post("/chats", headers=admin_headers, json={"chatType": "group"})
        assert response.status_code == 400

    def test_unlinked_account_is_forbidden(self, client, db):
        user = make_user(db, "nobody@example.com", "guest")
        response = client.get("/chats", headers=auth_headers(user))
        assert response.status_code == 403


class TestMessages:
    def test_conversation_between_customer_and_office(self, client, db, customer_headers, admin_headers):
        chat = open_chat(client, customer_headers, chatType="customer_office")

        sent = client.post(
            f"/chats/{chat['id']}/messages", headers=customer_headers, json={"message": "<b>Hello</b> office"}
        )
        assert sent.status_code == 200
        assert sent.json()["message"] == "Hello office"
        assert sent.json()["sender_type"] == "customer"

        listing = client.get("/chats", headers=admin_headers).json()
        assert listing[0]["unread_count"] == 1
        assert listing[0]["last_message"]["message"] == "Hello office"

        marked = client.post(f"/chats/{chat['id']}/read", headers=admin_headers)
        assert marked.json()["updated"] == 1
        assert client.get("/chats", headers=admin_headers).json()[0]["unread_count"] == 0

    def test_own_messages_are_not_unread(self, client, customer_headers):
        chat = open_chat(client, customer_headers, chatType="customer_office")
        client.post(f"/chats/{chat['id']}/messages", headers=customer_headers, json={"message": "Hi"})

        assert client.get("/chats", headers=customer_headers).json()[0]["unread_count"] == 0

    def test_empty_message_rejected(self, client, customer_headers):
        chat = open_chat(client, customer_headers, chatType="customer_office")
        response = client.post(f"/chats/{chat['id']}/messages", headers=customer_headers, json={"message": "   "})
        assert response.status_code == 400

    def test_attachment_needs_file_url(self, client, customer_headers):
        chat = open_chat(client, customer_headers, chatType="customer_office")
        response = client.post(
            f"/chats/{chat['id']}/messages", headers=customer_headers, json={"messageType": "image"}
        )
        assert response.status_code == 400

    def test_other_customers_chat_is_hidden(self, client, db, customer_headers):
        other = Customer(first_name="Tom", email="tom@example.com")
        db.add(other)
        db.commit()
        chat = Chat(chat_type="customer_office", customer_id=other.id)
        db.add(chat)
        db.commit()
        db.add(ChatMessage(chat_id=chat.id, sender_type="admin", message="Private"))
        db.commit()

        assert client.get(f"/chats/{chat.id}/messages", headers=customer_headers).status_code == 404
        assert client.get("/chats", headers=customer_headers).json() == []

    def test_cleaner_sees_office_chat(self, client, admin_headers, cleaner_headers, cleaner):
        chat = open_chat(client, admin_headers, chatType="office_cleaner", cleanerId=cleaner.id)
        client.post(f"/chats/{chat['id']}/messages", headers=admin_headers, json={"message": "Key is under the mat"})

        messages = client.get(f"/chats/{chat['id']}/messages", headers=cleaner_headers).json()

        assert [m["message"] for m in messages] == ["Key is under the mat"]
