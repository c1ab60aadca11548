"""
Photo Routes
Before/after cleaning photos per booking
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import User
from ..services.photo_service import (
    delete_booking_photo,
    get_booking_for_user,
    list_booking_photos,
    notify_photos_ready,
    serialize_photo,
    upload_booking_photos,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Photos"])


@router.post("/{booking_id}/photos")
async def upload_photos(
    booking_id: int,
    files: list[UploadFile] = File(...),
    photoType: str = Form(...),
    damageDetails: Optional[str] = Form(None),
    notify: bool = Form(True),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upload photos for a booking (assigned cleaner or admin) and tell the customer"""
    booking = get_booking_for_user(db, booking_id, current_user, upload=True)
    logger.info(f"📤 {current_user.email} uploading {len(files)} {photoType} photos for booking {booking_id}")

    contents = [(file.filename, file.content_type, await file.read()) for file in files]
    photos = upload_booking_photos(db, booking, contents, photoType, current_user, damageDetails)

    result = {
        "success": all(photo.status == "completed" for photo in photos),
        "photos": [serialize_photo(photo) for photo in photos],
        "email_sent": False,
    }
    if notify and any(photo.status == "completed" for photo in photos):
        try:
            result["email_sent"] = (await notify_photos_ready(db, booking))["email_sent"]
        except Exception as e:
            # photos are stored; the email can be resent from the notify endpoint
            logger.warning(f"⚠️ Photos stored but notification failed for booking {booking_id}: {e}")
    return result


@router.get("/{booking_id}/photos")
async def get_booking_photos(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_booking_for_user(db, booking_id, current_user)
    return list_booking_photos(db, booking_id)


@router.post("/{booking_id}/photos/notify")
async def send_photos_notification(
    booking_id: int,
    force: bool = Query(False, description="Send again even if already sent"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    booking = get_booking_for_user(db, booking_id, current_user, upload=True)
    return await notify_photos_ready(db, booking, force=force)


@router.delete("/{booking_id}/photos/{photo_id}")
async def delete_photo(
    booking_id: int,
    photo_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return delete_booking_photo(db, booking_id, photo_id, current_user)
