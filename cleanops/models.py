import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declared_attr, relationship
from sqlalchemy.sql import func

from .database import Base


def generate_short_code():
    """Short shareable code for quote links"""
    return uuid.uuid4().hex[:8].upper()


class User(Base):
    """Login account. role is admin (office), user (cleaner) or guest (customer)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="guest")
    is_active = Column(Boolean, default=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id", ondelete="SET NULL"), nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer", foreign_keys=[customer_id])
    cleaner = relationship("Cleaner", foreign_keys=[cleaner_id])

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    whatsapp = Column(String(50), nullable=True)
    client_status = Column(String(50), default="New")  # New, Current, Inactive
    client_type = Column(String(50), nullable=True)  # domestic, commercial
    source = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    addresses = relationship("Address", back_populates="customer")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    address = Column(String(500), nullable=False)
    postcode = Column(String(20), nullable=True)
    access_notes = Column(Text, nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer", back_populates="addresses")


class Cleaner(Base):
    __tablename__ = "cleaners"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    hourly_rate = Column(Float, nullable=True)
    percentage_rate = Column(Float, nullable=True)  # share of booking total paid to the cleaner
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def full_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()


class BookingColumns:
    """Columns shared by upcoming bookings and the past_bookings archive"""

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    postcode = Column(String(20), nullable=True)
    date_time = Column(DateTime, index=True, nullable=True)
    total_hours = Column(Float, nullable=True)
    service_type = Column(String(100), nullable=True)
    cleaning_type = Column(String(100), nullable=True)
    frequently = Column(String(50), nullable=True)  # One-off, weekly, bi-weekly, monthly
    cleaning_cost_per_hour = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    cleaner_pay = Column(Float, nullable=True)
    cost_deduction = Column(Float, nullable=True)
    payment_method = Column(String(50), nullable=True)  # Stripe, Invoiless, Cash, Bank Transfer
    payment_status = Column(String(50), default="Unpaid")
    booking_status = Column(String(50), default="active")
    # Stripe PaymentIntent / Checkout Session id, or Invoiless invoice id
    invoice_id = Column(String(255), index=True, nullable=True)
    invoice_link = Column(String(500), nullable=True)
    invoice_term = Column(Integer, nullable=True)  # days until invoice is due
    property_details = Column(JSON, nullable=True)
    additional_details = Column(Text, nullable=True)
    created_by_source = Column(String(50), nullable=True)  # website, sales_agent, admin, recurring
    recurring_group_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @declared_attr
    def customer_id(cls):
        return Column(Integer, ForeignKey("customers.id"), index=True, nullable=True)

    @declared_attr
    def cleaner_id(cls):
        return Column(Integer, ForeignKey("cleaners.id"), index=True, nullable=True)

    @declared_attr
    def address_id(cls):
        return Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def recurring_service_id(cls):
        return Column(
            Integer, ForeignKey("recurring_services.id", ondelete="SET NULL"), nullable=True
        )

    @property
    def customer_name(self) -> str:
        return " ".join(part for part in [self.first_name, self.last_name] if part).strip()

    @property
    def is_cancelled(self) -> bool:
        status = (self.booking_status or "").lower()
        return "cancelled" in status or "canceled" in status


class Booking(BookingColumns, Base):
    __tablename__ = "bookings"
    # Ids of archived bookings must never be handed out again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)

    customer = relationship("Customer")
    cleaner = relationship("Cleaner")


class PastBooking(BookingColumns, Base):
    """Archived booking. Keeps the id the booking had while upcoming"""

    __tablename__ = "past_bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=False)
    archived_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")
    cleaner = relationship("Cleaner")


class RecurringService(Base):
    __tablename__ = "recurring_services"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=False)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id"), nullable=True)
    address_id = Column(Integer, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True)
    cleaning_type = Column(String(100), nullable=True)
    frequently = Column(String(20), nullable=False)  # weekly, bi-weekly, monthly
    days_of_the_week = Column(String(100), nullable=True)  # "monday, thursday"
    hours = Column(Float, nullable=True)
    cost_per_hour = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)
    cleaner_rate = Column(Float, nullable=True)
    payment_method = Column(String(50), nullable=True)
    start_date = Column(Date, nullable=False)
    start_time = Column(String(10), nullable=True)  # HH:MM
    postponed = Column(Boolean, default=False, nullable=False)
    resume_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    cleaner = relationship("Cleaner")
    address = relationship("Address")


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action_type = Column(String(100), index=True, nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class QuoteLead(Base):
    """Visitor progress through the public quote funnel"""

    __tablename__ = "quote_leads"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(100), unique=True, index=True, nullable=False)
    short_code = Column(String(16), unique=True, default=generate_short_code)
    status = Column(String(20), default="new")  # new, contacted, converted, lost
    furthest_step = Column(String(50), nullable=True)
    service_type = Column(String(100), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    postcode = Column(String(20), nullable=True)
    quote_amount = Column(Float, nullable=True)
    details = Column(JSON, nullable=True)
    converted_booking_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CoveredArea(Base):
    __tablename__ = "covered_areas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)  # borough or district name
    region = Column(String(50), default="london")  # london, essex
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
