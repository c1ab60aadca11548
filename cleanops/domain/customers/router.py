"""Customer router - FastAPI endpoints for customer operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_staff
from ...database import get_db
from ...models import User
from .schemas import (
    AddressCreate,
    AddressResponse,
    CustomerCreate,
    CustomerDetailResponse,
    CustomerResponse,
    CustomerUpdate,
)
from .service import CustomerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def get_customer_service(db: Session = Depends(get_db)) -> CustomerService:
    """Dependency injection for CustomerService"""
    return CustomerService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[CustomerResponse])
async def get_customers(
    search: Optional[str] = Query(None, description="Name, email or phone"),
    status: Optional[str] = Query(None, description="Filter by client status"),
    current_user: User = Depends(require_staff),
    service: CustomerService = Depends(get_customer_service),
):
    """List customers"""
    return service.get_customers(search, status)


@router.get("/lookup", response_model=CustomerResponse)
async def lookup_customer_by_email(
    email: str = Query(...),
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    """Find a customer by email address"""
    return service.lookup_by_email(email)


@router.get("/{customer_id}", response_model=CustomerDetailResponse)
async def get_customer(
    customer_id: int,
    current_user: User = Depends(require_staff),
    service: CustomerService = Depends(get_customer_service),
):
    customer = service.get_customer(customer_id)
    response = CustomerDetailResponse.model_validate(customer)
    response.addresses = [AddressResponse.model_validate(a) for a in service.get_addresses(customer_id)]
    return response


@router.post("", response_model=CustomerResponse)
async def create_customer(
    data: CustomerCreate,
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    """Create a new customer"""
    return service.create_customer(data)


@router.patch("/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    data: CustomerUpdate,
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    return service.update_customer(customer_id, data)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: int,
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    """Delete a customer and everything linked to them"""
    logger.info(f"🗑️ {current_user.email} deleting customer {customer_id}")
    return service.delete_customer(customer_id)


# ============================================================================
# ADDRESSES
# ============================================================================


@router.get("/{customer_id}/addresses", response_model=list[AddressResponse])
async def get_addresses(
    customer_id: int,
    current_user: User = Depends(require_staff),
    service: CustomerService = Depends(get_customer_service),
):
    return service.get_addresses(customer_id)


@router.post("/{customer_id}/addresses", response_model=AddressResponse)
async def add_address(
    customer_id: int,
    data: AddressCreate,
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    return service.add_address(customer_id, data)


@router.delete("/{customer_id}/addresses/{address_id}")
async def delete_address(
    customer_id: int,
    address_id: int,
    current_user: User = Depends(require_admin),
    service: CustomerService = Depends(get_customer_service),
):
    return service.delete_address(customer_id, address_id)
