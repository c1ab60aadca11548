"""Customer service - Business logic for customer operations"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Address, Customer
from .repository import CustomerRepository
from .schemas import AddressCreate, CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)

FIELD_MAP = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "whatsapp": "whatsapp",
    "clientStatus": "client_status",
    "clientType": "client_type",
    "source": "source",
    "notes": "notes",
}


class CustomerService:
    """Service layer for customer business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CustomerRepository()

    def get_customers(self, search: Optional[str] = None, status: Optional[str] = None) -> list[Customer]:
        return self.repo.get_customers(self.db, search, status)

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.repo.get_customer_by_id(self.db, customer_id)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def lookup_by_email(self, email: str) -> Customer:
        customer = self.repo.get_customer_by_email(self.db, email)
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")
        return customer

    def create_customer(self, data: CustomerCreate) -> Customer:
        if data.email and self.repo.get_customer_by_email(self.db, data.email):
            raise HTTPException(status_code=400, detail="A customer with this email already exists")

        values = {
            FIELD_MAP[key]: value for key, value in data.model_dump().items() if key in FIELD_MAP
        }
        customer = self.repo.create_customer(self.db, **values)
        logger.info(f"✅ Customer created: {customer.id} ({customer.email})")
        return customer

    def update_customer(self, customer_id: int, data: CustomerUpdate) -> Customer:
        customer = self.get_customer(customer_id)

        if data.email:
            existing = self.repo.get_customer_by_email(self.db, data.email)
            if existing and existing.id != customer.id:
                raise HTTPException(status_code=400, detail="A customer with this email already exists")

        updates = {
            FIELD_MAP[key]: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if key in FIELD_MAP
        }
        return self.repo.update_customer(self.db, customer, **updates)

    def delete_customer(self, customer_id: int) -> dict:
        """Delete a customer together with all of their bookings, cards, chats and orders"""
        customer = self.get_customer(customer_id)
        name = customer.full_name or customer.email or f"#{customer.id}"

        counts = self.repo.delete_customer_cascade(self.db, customer)
        logger.info(f"🗑️ Customer {customer_id} ({name}) deleted with related records: {counts}")
        return {
            "message": f"Customer {name} and all related records deleted",
            "deleted": counts,
        }

    # Address operations
    def get_addresses(self, customer_id: int) -> list[Address]:
        self.get_customer(customer_id)
        return self.repo.get_addresses(self.db, customer_id)

    def add_address(self, customer_id: int, data: AddressCreate) -> Address:
        self.get_customer(customer_id)
        return self.repo.create_address(
            self.db,
            customer_id,
            data.isDefault,
            address=data.address,
            postcode=data.postcode,
            access_notes=data.accessNotes,
        )

    def delete_address(self, customer_id: int, address_id: int) -> dict:
        address = self.repo.get_address(self.db, customer_id, address_id)
        if not address:
            raise HTTPException(status_code=404, detail="Address not found")
        self.repo.delete_address(self.db, address)
        return {"message": "Address deleted"}
