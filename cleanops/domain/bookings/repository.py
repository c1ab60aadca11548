"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Address, Booking, Customer, PastBooking


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_bookings(
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        customer_id: Optional[int] = None,
        cleaner_id: Optional[int] = None,
        booking_status: Optional[str] = None,
        payment_status: Optional[str] = None,
        past: bool = False,
    ) -> list:
        """List upcoming (or archived) bookings with optional filters"""
        model = PastBooking if past else Booking
        query = db.query(model)

        if start:
            query = query.filter(model.date_time >= start)
        if end:
            query = query.filter(model.date_time <= end)
        if customer_id:
            query = query.filter(model.customer_id == customer_id)
        if cleaner_id:
            query = query.filter(model.cleaner_id == cleaner_id)
        if booking_status:
            query = query.filter(func.lower(model.booking_status) == booking_status.lower())
        if payment_status:
            query = query.filter(func.lower(model.payment_status) == payment_status.lower())

        order = model.date_time.desc() if past else model.date_time.asc()
        return query.order_by(order).all()

    @staticmethod
    def get_booking_by_id(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_past_booking_by_id(db: Session, booking_id: int) -> Optional[PastBooking]:
        return db.query(PastBooking).filter(PastBooking.id == booking_id).first()

    @staticmethod
    def create_booking(db: Session, **booking_data) -> Booking:
        booking = Booking(**booking_data)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def update_booking(db: Session, booking, **updates):
        """Update a booking with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(booking, key):
                setattr(booking, key, value)

        db.commit()
        db.refresh(booking)
        return booking

    @staticmethod
    def delete_booking(db: Session, booking) -> None:
        db.delete(booking)
        db.commit()

    @staticmethod
    def get_customer_by_email(db: Session, email: str) -> Optional[Customer]:
        return db.query(Customer).filter(func.lower(Customer.email) == email.strip().lower()).first()

    @staticmethod
    def find_address(db: Session, customer_id: int, address: str) -> Optional[Address]:
        return (
            db.query(Address)
            .filter(Address.customer_id == customer_id, func.lower(Address.address) == address.strip().lower())
            .first()
        )

    # Customer portal
    @staticmethod
    def get_customer_bookings(db: Session, customer_id: int, past: bool = False) -> list:
        model = PastBooking if past else Booking
        order = model.date_time.desc() if past else model.date_time.asc()
        return db.query(model).filter(model.customer_id == customer_id).order_by(order).all()

    @staticmethod
    def get_unpaid_bookings(db: Session, customer_id: int) -> list:
        """Bookings of a customer that still need paying, upcoming and archived"""
        unpaid = []
        for model in (Booking, PastBooking):
            unpaid.extend(
                db.query(model)
                .filter(
                    model.customer_id == customer_id,
                    or_(
                        model.payment_status.is_(None),
                        func.lower(model.payment_status).in_(
                            ["unpaid", "failed", "pending", "invoice sent", "invoice created", "overdue"]
                        ),
                    ),
                )
                .all()
            )
        return [b for b in unpaid if not b.is_cancelled]
