"""Booking router - FastAPI endpoints for booking operations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin, require_customer
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...services.booking_automation import archive_completed_bookings, auto_complete_bookings
from .schemas import (
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    CustomerBookingResponse,
    PublicBookingCreate,
    PublicBookingResponse,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])

rate_limit_public_booking = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="public_booking")


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


# ============================================================================
# PUBLIC BOOKING FORM
# ============================================================================


@router.post("/public", response_model=PublicBookingResponse)
async def create_public_booking(
    data: PublicBookingCreate,
    _: None = Depends(rate_limit_public_booking),
    service: BookingService = Depends(get_booking_service),
):
    """Booking form submission from the website (no login required)"""
    logger.info(f"📥 Public booking request from {data.email}")
    return await service.create_public_booking(data)


# ============================================================================
# CUSTOMER PORTAL
# ============================================================================


@router.get("/my", response_model=list[CustomerBookingResponse])
async def get_my_bookings(
    past: bool = Query(False, description="Return completed bookings instead of upcoming ones"),
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_customer_bookings(current_user.customer_id, past)


@router.get("/my/unpaid", response_model=list[CustomerBookingResponse])
async def get_my_unpaid_bookings(
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings the customer still has to pay for"""
    return service.get_unpaid_bookings(current_user.customer_id)


@router.get("/my/{booking_id}", response_model=CustomerBookingResponse)
async def get_my_booking(
    booking_id: int,
    current_user: User = Depends(require_customer),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_customer_booking(current_user.customer_id, booking_id)


# ============================================================================
# STATUS AUTOMATION
# ============================================================================


@router.post("/auto-complete")
async def run_auto_complete(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Complete finished bookings and move them to the archive"""
    result = auto_complete_bookings(db)
    result.update(archive_completed_bookings(db))
    return result


# ============================================================================
# ADMIN CRUD
# ============================================================================


@router.get("", response_model=list[BookingResponse])
async def get_bookings(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    customer_id: Optional[int] = Query(None),
    cleaner_id: Optional[int] = Query(None),
    booking_status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None),
    past: bool = Query(False, description="List archived bookings"),
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_bookings(
        past=past,
        start=start,
        end=end,
        customer_id=customer_id,
        cleaner_id=cleaner_id,
        booking_status=booking_status,
        payment_status=payment_status,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id)


@router.post("", response_model=BookingResponse)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.create_booking(data, current_user)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.update_booking(booking_id, data, current_user)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.delete_booking(booking_id, current_user)


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: int,
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking and release any held card authorization"""
    return await service.cancel_booking(booking_id, current_user)


@router.post("/{booking_id}/complete")
async def complete_booking(
    booking_id: int,
    notify: bool = Query(True, description="Email/SMS the customer"),
    current_user: User = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    return await service.complete_booking(booking_id, current_user, notify)
