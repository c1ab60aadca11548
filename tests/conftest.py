"""
Test configuration and shared fixtures.

Every test runs against a fresh in-memory SQLite database; outbound calls to
Stripe, Invoiless, Resend and Twilio are patched per test.
"""

import os
from datetime import datetime, timedelta

# Set test environment variables before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-test-suite")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_stripe")
os.environ.setdefault("RESEND_API_KEY", "re_test_123")
os.environ.setdefault("RESEND_WEBHOOK_SECRET", "whsec_dGVzdC1yZXNlbmQtc2VjcmV0")
os.environ.setdefault("INVOILESS_API_KEY", "inv_test_123")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "ACtest")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "twilio-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+447700900000")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cleanops.auth import ROLE_ADMIN, ROLE_CLEANER, ROLE_CUSTOMER
from cleanops.database import Base, get_db
from cleanops.main import app
from cleanops.models import Address, Booking, Cleaner, Customer, User
from cleanops.models_payments import CustomerPaymentMethod
from cleanops.security_utils import create_access_token, hash_password

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# =============================================================================
# ACCOUNTS
# =============================================================================


def make_user(db, email, role, password="password123", **fields):
    user = User(email=email, hashed_password=hash_password(password), role=role, **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db):
    return make_user(db, "office@example.com", ROLE_ADMIN, first_name="Office")


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def customer(db):
    customer = Customer(
        first_name="Jane",
        last_name="Smith",
        email="jane@example.com",
        phone="+447700900123",
        client_status="Current",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@pytest.fixture
def address(db, customer):
    address = Address(customer_id=customer.id, address="12 High Street, London", postcode="SW1A 1AA", is_default=True)
    db.add(address)
    db.commit()
    db.refresh(address)
    return address


@pytest.fixture
def customer_user(db, customer):
    return make_user(db, "jane@example.com", ROLE_CUSTOMER, first_name="Jane", customer_id=customer.id)


@pytest.fixture
def customer_headers(customer_user):
    return auth_headers(customer_user)


@pytest.fixture
def cleaner(db):
    cleaner = Cleaner(first_name="Maria", last_name="Lopez", email="maria@example.com", phone="+447700900456")
    db.add(cleaner)
    db.commit()
    db.refresh(cleaner)
    return cleaner


@pytest.fixture
def cleaner_user(db, cleaner):
    return make_user(db, "maria@example.com", ROLE_CLEANER, first_name="Maria", cleaner_id=cleaner.id)


@pytest.fixture
def cleaner_headers(cleaner_user):
    return auth_headers(cleaner_user)


# =============================================================================
# BOOKINGS AND CARDS
# =============================================================================


def make_booking(db, customer, **fields):
    values = {
        "customer_id": customer.id,
        "first_name": customer.first_name,
        "last_name": customer.last_name,
        "email": customer.email,
        "phone_number": customer.phone,
        "address": "12 High Street, London",
        "postcode": "SW1A 1AA",
        "date_time": datetime.utcnow() + timedelta(hours=6),
        "total_hours": 3,
        "service_type": "Domestic",
        "cleaning_type": "Standard Cleaning",
        "cleaning_cost_per_hour": 20,
        "total_cost": 60.0,
        "payment_method": "Stripe",
        "payment_status": "Unpaid",
        "booking_status": "active",
    }
    values.update(fields)
    booking = Booking(**values)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


@pytest.fixture
def booking(db, customer):
    return make_booking(db, customer)


@pytest.fixture
def saved_card(db, customer):
    method = CustomerPaymentMethod(
        customer_id=customer.id,
        stripe_customer_id="cus_123",
        stripe_payment_method_id="pm_123",
        card_brand="visa",
        card_last4="4242",
        card_exp_month=12,
        card_exp_year=2030,
        is_default=True,
    )
    db.add(method)
    db.commit()
    db.refresh(method)
    return method
