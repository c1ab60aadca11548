from unittest.mock import AsyncMock, patch

from cleanops.models import Customer, User
from cleanops.security_utils import generate_timed_token, verify_password
from cleanops.services.account_service import password_fingerprint

from .conftest import auth_headers, make_user


class TestLogin:
    def test_login_returns_token_and_user(self, client, admin_user):
        response = client.post("/auth/login", json={"email": "Office@Example.com", "password": "password123"})

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["email"] == "office@example.com"
        assert body["user"]["role"] == "admin"

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["id"] == admin_user.id

    def test_wrong_password(self, client, admin_user):
        response = client.post("/auth/login", json={"email": "office@example.com", "password": "nope"})
        assert response.status_code == 401

    def test_disabled_account(self, client, db):
        make_user(db, "old@example.com", "admin", is_active=False)
        response = client.post("/auth/login", json={"email": "old@example.com", "password": "password123"})
        assert response.status_code == 403

    def test_malformed_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestRoles:
    def test_customer_cannot_use_admin_routes(self, client, customer_headers):
        response = client.get("/customers", headers=customer_headers)
        assert response.status_code == 403

    def test_cleaner_can_list_customers(self, client, cleaner_headers, customer):
        response = client.get("/customers", headers=cleaner_headers)
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [customer.id]

    def test_admin_only_user_management(self, client, cleaner_headers):
        response = client.get("/users", headers=cleaner_headers)
        assert response.status_code == 403


class TestPasswordReset:
    def test_forgot_password_does_not_reveal_accounts(self, client, admin_user):
        with patch(
            "cleanops.services.account_service.send_password_reset_email", new_callable=AsyncMock
        ) as send:
            known = client.post("/auth/forgot-password", json={"email": "office@example.com"})
            unknown = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        send.assert_awaited_once()
        assert "/reset-password?token=" in send.await_args.args[1]

    def test_reset_password(self, client, db, admin_user):
        token = generate_timed_token({"user_id": admin_user.id, "pwd": password_fingerprint(admin_user)})

        response = client.post("/auth/reset-password", json={"token": token, "newPassword": "new-password-1"})

        assert response.status_code == 200
        db.refresh(admin_user)
        assert verify_password("new-password-1", admin_user.hashed_password)

    def test_reset_link_works_once(self, client, db, admin_user):
        token = generate_timed_token({"user_id": admin_user.id, "pwd": password_fingerprint(admin_user)})

        first = client.post("/auth/reset-password", json={"token": token, "newPassword": "first-new-pass-1"})
        second = client.post("/auth/reset-password", json={"token": token, "newPassword": "someone-else-2"})

        assert first.status_code == 200
        assert second.status_code == 400
        db.refresh(admin_user)
        assert verify_password("first-new-pass-1", admin_user.hashed_password)

    def test_reset_link_without_fingerprint_rejected(self, client, admin_user):
        token = generate_timed_token({"user_id": admin_user.id})

        response = client.post("/auth/reset-password", json={"token": token, "newPassword": "new-password-1"})
        assert response.status_code == 400

    def test_reset_rejects_tampered_token(self, client, admin_user):
        response = client.post(
            "/auth/reset-password", json={"token": "garbage.token", "newPassword": "new-password-1"}
        )
        assert response.status_code == 400


class TestUserManagement:
    def test_customer_account_links_existing_customer(self, client, db, admin_headers, customer):
        response = client.post(
            "/users",
            headers=admin_headers,
            json={"email": "jane@example.com", "password": "password123", "role": "guest"},
        )

        assert response.status_code == 200
        assert response.json()["customer_id"] == customer.id
        assert db.query(Customer).count() == 1

    def test_customer_account_creates_missing_customer(self, client, db, admin_headers):
        response = client.post(
            "/users",
            headers=admin_headers,
            json={"email": "new@example.com", "password": "password123", "firstName": "New", "role": "guest"},
        )

        assert response.status_code == 200
        customer = db.query(Customer).filter(Customer.email == "new@example.com").one()
        assert response.json()["customer_id"] == customer.id

    def test_cleaner_account_links_cleaner(self, client, admin_headers, cleaner):
        response = client.post(
            "/users",
            headers=admin_headers,
            json={"email": "maria@example.com", "password": "password123", "role": "user"},
        )
        assert response.json()["cleaner_id"] == cleaner.id

    def test_duplicate_email(self, client, admin_headers, admin_user):
        response = client.post(
            "/users",
            headers=admin_headers,
            json={"email": "office@example.com", "password": "password123", "role": "admin"},
        )
        assert response.status_code == 400

    def test_invalid_role(self, client, admin_headers):
        response = client.post(
            "/users",
            headers=admin_headers,
            json={"email": "x@example.com", "password": "password123", "role": "owner"},
        )
        assert response.status_code == 400

    def test_create_portal_account_emails_credentials(self, client, db, admin_headers, customer):
        with patch(
            "cleanops.services.account_service.send_account_credentials_email", new_callable=AsyncMock
        ) as send:
            response = client.post(f"/users/customer-account/{customer.id}", headers=admin_headers)

        assert response.status_code == 200
        send.assert_awaited_once()
        user = db.query(User).filter(User.customer_id == customer.id).one()
        assert verify_password(send.await_args.args[2], user.hashed_password)

    def test_delete_by_email_keeps_customer(self, client, db, admin_headers, customer_user, customer):
        response = client.delete("/users/by-email", params={"email": "jane@example.com"}, headers=admin_headers)

        assert response.status_code == 200
        assert db.query(User).filter(User.email == "jane@example.com").first() is None
        assert db.query(Customer).filter(Customer.id == customer.id).first() is not None

    def test_token_of_deleted_user_rejected(self, client, db, admin_headers):
        user = make_user(db, "temp@example.com", "admin")
        headers = auth_headers(user)
        client.delete(f"/users/{user.id}", headers=admin_headers)

        assert client.get("/auth/me", headers=headers).status_code == 401
