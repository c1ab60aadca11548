"""Customer repository - Database operations for customers"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Address, Booking, Customer, PastBooking, RecurringService, User
from ...models_chat import Chat, ChatMessage
from ...models_linen import LinenOrder, LinenOrderItem
from ...models_notifications import Notification, SmsConversation
from ...models_payments import CustomerPaymentMethod


class CustomerRepository:
    """Repository for customer database operations"""

    @staticmethod
    def get_customers(
        db: Session, search: Optional[str] = None, status: Optional[str] = None
    ) -> list[Customer]:
        """List customers, optionally filtered by a name/email/phone search and status"""
        query = db.query(Customer)

        if status:
            query = query.filter(Customer.client_status == status)

        if search:
            term = f"%{search.strip().lower()}%"
            full_name = func.lower(
                func.coalesce(Customer.first_name, "") + " " + func.coalesce(Customer.last_name, "")
            )
            query = query.filter(
                or_(
                    full_name.like(term),
                    func.lower(Customer.email).like(term),
                    Customer.phone.like(f"%{search.strip()}%"),
                )
            )

        return query.order_by(Customer.created_at.desc(), Customer.id.desc()).all()

    @staticmethod
    def get_customer_by_id(db: Session, customer_id: int) -> Optional[Customer]:
        return db.query(Customer).filter(Customer.id == customer_id).first()

    @staticmethod
    def get_customer_by_email(db: Session, email: str) -> Optional[Customer]:
        return db.query(Customer).filter(func.lower(Customer.email) == email.strip().lower()).first()

    @staticmethod
    def create_customer(db: Session, **customer_data) -> Customer:
        customer = Customer(**customer_data)
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer

    @staticmethod
    def update_customer(db: Session, customer: Customer, **updates) -> Customer:
        """Update a customer with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(customer, key):
                setattr(customer, key, value)

        db.commit()
        db.refresh(customer)
        return customer

    # Address Methods
    @staticmethod
    def get_addresses(db: Session, customer_id: int) -> list[Address]:
        return (
            db.query(Address)
            .filter(Address.customer_id == customer_id)
            .order_by(Address.is_default.desc(), Address.id.asc())
            .all()
        )

    @staticmethod
    def get_address(db: Session, customer_id: int, address_id: int) -> Optional[Address]:
        return (
            db.query(Address)
            .filter(Address.id == address_id, Address.customer_id == customer_id)
            .first()
        )

    @staticmethod
    def find_address_by_postcode(db: Session, customer_id: int, postcode: str) -> Optional[Address]:
        compact = postcode.replace(" ", "").upper()
        return (
            db.query(Address)
            .filter(
                Address.customer_id == customer_id,
                func.upper(func.replace(Address.postcode, " ", "")) == compact,
            )
            .first()
        )

    @staticmethod
    def create_address(db: Session, customer_id: int, make_default: bool, **address_data) -> Address:
        """Add an address; the first one, or one flagged default, becomes the only default"""
        has_addresses = db.query(Address).filter(Address.customer_id == customer_id).first() is not None
        is_default = make_default or not has_addresses
        if is_default:
            db.query(Address).filter(Address.customer_id == customer_id).update(
                {Address.is_default: False}, synchronize_session=False
            )

        address = Address(customer_id=customer_id, is_default=is_default, **address_data)
        db.add(address)
        db.commit()
        db.refresh(address)
        return address

    @staticmethod
    def delete_address(db: Session, address: Address) -> None:
        customer_id = address.customer_id
        was_default = address.is_default
        db.delete(address)
        db.flush()

        if was_default:
            remaining = (
                db.query(Address)
                .filter(Address.customer_id == customer_id)
                .order_by(Address.id.asc())
                .first()
            )
            if remaining:
                remaining.is_default = True
        db.commit()

    @staticmethod
    def delete_customer_cascade(db: Session, customer: Customer) -> dict:
        """
        Remove a customer and everything that references them, children first.
        Returns the number of rows removed per table.
        """
        customer_id = customer.id
        counts = {}

        chat_ids = [row.id for row in db.query(Chat.id).filter(Chat.customer_id == customer_id).all()]
        counts["chat_messages"] = (
            db.query(ChatMessage)
            .filter(ChatMessage.chat_id.in_(chat_ids))
            .delete(synchronize_session=False)
            if chat_ids
            else 0
        )
        counts["chats"] = (
            db.query(Chat).filter(Chat.customer_id == customer_id).delete(synchronize_session=False)
        )
        counts["payment_methods"] = (
            db.query(CustomerPaymentMethod)
            .filter(CustomerPaymentMethod.customer_id == customer_id)
            .delete(synchronize_session=False)
        )

        # Bookings and recurring services point at addresses with SET NULL
        address_ids = [row.id for row in db.query(Address.id).filter(Address.customer_id == customer_id).all()]
        if address_ids:
            for model in (Booking, PastBooking, RecurringService, LinenOrder):
                db.query(model).filter(model.address_id.in_(address_ids)).update(
                    {model.address_id: None}, synchronize_session=False
                )
        counts["addresses"] = (
            db.query(Address).filter(Address.customer_id == customer_id).delete(synchronize_session=False)
        )

        order_ids = [
            row.id for row in db.query(LinenOrder.id).filter(LinenOrder.customer_id == customer_id).all()
        ]
        counts["linen_order_items"] = (
            db.query(LinenOrderItem)
            .filter(LinenOrderItem.order_id.in_(order_ids))
            .delete(synchronize_session=False)
            if order_ids
            else 0
        )
        counts["linen_orders"] = (
            db.query(LinenOrder).filter(LinenOrder.customer_id == customer_id).delete(synchronize_session=False)
        )
        counts["bookings"] = (
            db.query(Booking).filter(Booking.customer_id == customer_id).delete(synchronize_session=False)
        )
        counts["past_bookings"] = (
            db.query(PastBooking).filter(PastBooking.customer_id == customer_id).delete(synchronize_session=False)
        )
        counts["recurring_services"] = (
            db.query(RecurringService)
            .filter(RecurringService.customer_id == customer_id)
            .delete(synchronize_session=False)
        )

        user_ids = [row.id for row in db.query(User.id).filter(User.customer_id == customer_id).all()]
        if user_ids:
            db.query(Notification).filter(Notification.user_id.in_(user_ids)).delete(synchronize_session=False)
        counts["users"] = (
            db.query(User).filter(User.customer_id == customer_id).delete(synchronize_session=False)
        )

        db.query(SmsConversation).filter(SmsConversation.customer_id == customer_id).update(
            {SmsConversation.customer_id: None}, synchronize_session=False
        )

        db.query(Customer).filter(Customer.id == customer_id).delete(synchronize_session=False)
        db.commit()
        db.expunge(customer)
        return counts
