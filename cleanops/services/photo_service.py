"""
Cleaning Photos
Upload of before/after photos, per-booking listing and the "photos ready" email
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..auth import ROLE_ADMIN, ROLE_CLEANER, ROLE_CUSTOMER
from ..config import FRONTEND_URL
from ..email_service import send_photos_ready_email
from ..models import User
from ..models_photos import CleaningPhoto, PhotoNotification
from ..shared.formatters import format_long_date
from . import photo_storage
from .activity_logger import log_activity
from .payment_actions import AnyBooking, find_booking
from .photo_storage import PhotoStorageError

logger = logging.getLogger(__name__)

PHOTO_TYPES = ("before", "after", "additional")
MAX_PHOTOS_PER_UPLOAD = 30


def get_booking_for_user(db: Session, booking_id: int, user: User, upload: bool = False) -> AnyBooking:
    """
    Booking the user may see photos for. Customers see their own bookings,
    cleaners the bookings assigned to them and admins everything. Only staff upload.

    Raises:
        HTTPException(404) booking missing or not visible to the user
        HTTPException(403) customer trying to upload
    """
    booking = find_booking(db, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")

    if user.role == ROLE_ADMIN:
        return booking
    if user.role == ROLE_CLEANER and user.cleaner_id and booking.cleaner_id == user.cleaner_id:
        return booking
    if user.role == ROLE_CUSTOMER and user.customer_id and booking.customer_id == user.customer_id:
        if upload:
            raise HTTPException(status_code=403, detail="Only cleaners can upload photos")
        return booking

    logger.warning(f"🚫 {user.email} attempted to access photos for booking {booking_id}")
    raise HTTPException(status_code=404, detail="Booking not found")


def serialize_photo(photo: CleaningPhoto) -> dict:
    return {
        "id": photo.id,
        "booking_id": photo.booking_id,
        "photo_type": photo.photo_type,
        "caption": photo.caption,
        "damage_details": photo.damage_details,
        "status": photo.status,
        "error_message": photo.error_message,
        "url": photo_storage.generate_presigned_url(photo.file_key) if photo.status == "completed" else None,
        "created_at": photo.created_at.isoformat() if photo.created_at else None,
    }


def upload_booking_photos(
    db: Session,
    booking: AnyBooking,
    files: list[tuple[Optional[str], Optional[str], bytes]],
    photo_type: str,
    user: User,
    damage_details: Optional[str] = None,
) -> list[CleaningPhoto]:
    """
    Store each (filename, content_type, content) in R2 and record it.
    Every file gets its own status row; one failed upload does not stop the rest.

    Raises:
        HTTPException(400) invalid photo type, no files, too many files or a rejected file
    """
    if photo_type not in PHOTO_TYPES:
        raise HTTPException(status_code=400, detail=f"Photo type must be one of: {', '.join(PHOTO_TYPES)}")
    if not files:
        raise HTTPException(status_code=400, detail="Please select at least one photo to upload")
    if len(files) > MAX_PHOTOS_PER_UPLOAD:
        raise HTTPException(status_code=400, detail=f"At most {MAX_PHOTOS_PER_UPLOAD} photos per upload")
    if photo_type == "additional" and not (damage_details or "").strip():
        raise HTTPException(status_code=400, detail="Please describe what the additional photos show")

    for filename, content_type, content in files:
        error = photo_storage.validate_photo(filename, content_type, len(content))
        if error:
            raise HTTPException(status_code=400, detail=error)

    booking_date = booking.date_time.date() if booking.date_time else None
    folder = photo_storage.booking_folder(booking.id, booking.postcode, booking_date)

    photos = []
    for filename, content_type, _ in files:
        photo = CleaningPhoto(
            booking_id=booking.id,
            customer_id=booking.customer_id,
            cleaner_id=booking.cleaner_id,
            uploaded_by=user.id,
            file_key=photo_storage.generate_photo_key(folder, photo_type, content_type),
            content_type=content_type,
            photo_type=photo_type,
            postcode=booking.postcode,
            booking_date=booking_date,
            caption=(filename or "")[:255] or None,
            damage_details=damage_details.strip() if damage_details else None,
            status="pending",
        )
        db.add(photo)
        photos.append(photo)
    db.commit()

    for photo, (_, content_type, content) in zip(photos, files):
        photo.status = "processing"
        db.commit()
        try:
            photo_storage.upload_photo(
                content, photo.file_key, content_type, metadata={"booking_id": booking.id, "photo_type": photo_type}
            )
            photo.status = "completed"
        except PhotoStorageError as e:
            photo.status = "failed"
            photo.error_message = str(e)
        db.commit()

    completed = sum(1 for photo in photos if photo.status == "completed")
    logger.info(f"📸 Booking {booking.id}: {completed}/{len(photos)} {photo_type} photos stored")
    log_activity(
        db,
        "photos_uploaded",
        entity_type="booking",
        entity_id=booking.id,
        details={"photo_type": photo_type, "uploaded": completed, "failed": len(photos) - completed},
        user_id=user.id,
    )
    return photos


def list_booking_photos(db: Session, booking_id: int) -> dict:
    photos = (
        db.query(CleaningPhoto)
        .filter(CleaningPhoto.booking_id == booking_id)
        .order_by(CleaningPhoto.photo_type, CleaningPhoto.id)
        .all()
    )
    status_counts = {}
    for photo in photos:
        status_counts[photo.status] = status_counts.get(photo.status, 0) + 1

    notification = db.query(PhotoNotification).filter(PhotoNotification.booking_id == booking_id).first()
    return {
        "booking_id": booking_id,
        "photos": [serialize_photo(photo) for photo in photos],
        "status_counts": status_counts,
        "notified": bool(notification and notification.email_sent),
    }


def delete_booking_photo(db: Session, booking_id: int, photo_id: int, user: User) -> dict:
    photo = (
        db.query(CleaningPhoto)
        .filter(CleaningPhoto.id == photo_id, CleaningPhoto.booking_id == booking_id)
        .first()
    )
    if not photo:
        raise HTTPException(status_code=404, detail="Photo not found")

    if photo.status == "completed":
        try:
            photo_storage.delete_photo(photo.file_key)
        except PhotoStorageError as e:
            raise HTTPException(status_code=502, detail="Failed to delete photo from storage") from e

    db.delete(photo)
    db.commit()
    log_activity(db, "photo_deleted", entity_type="booking", entity_id=booking_id, details={"photo_id": photo_id}, user_id=user.id)
    return {"success": True, "photo_id": photo_id}


async def notify_photos_ready(db: Session, booking: AnyBooking, force: bool = False) -> dict:
    """
    Email the customer that their photos are ready. Sent once per booking
    unless forced.

    Raises:
        HTTPException(400) no stored photos or no customer email
        HTTPException(502) email delivery failed
    """
    notification = db.query(PhotoNotification).filter(PhotoNotification.booking_id == booking.id).first()
    if notification and notification.email_sent and not force:
        logger.info(f"📧 Photos email already sent for booking {booking.id}")
        return {"success": True, "email_sent": False, "message": "Email already sent"}

    photo_count = (
        db.query(CleaningPhoto)
        .filter(CleaningPhoto.booking_id == booking.id, CleaningPhoto.status == "completed")
        .count()
    )
    if not photo_count:
        raise HTTPException(status_code=400, detail="No photos have been uploaded for this booking")
    if not booking.email:
        raise HTTPException(status_code=400, detail="Booking has no customer email")

    try:
        response = await send_photos_ready_email(
            booking.email,
            booking.first_name or "there",
            booking.service_type or "cleaning",
            format_long_date(booking.date_time) if booking.date_time else "",
            photo_count,
            f"{FRONTEND_URL}/customer-dashboard/bookings/{booking.id}/photos",
        )
    except Exception as e:
        logger.error(f"❌ Photos email failed for booking {booking.id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to send photos email") from e

    if not notification:
        notification = PhotoNotification(booking_id=booking.id)
        db.add(notification)
    notification.email_sent = True
    notification.photo_count = photo_count
    notification.email_id = (response or {}).get("id")
    notification.sent_at = datetime.utcnow()
    db.commit()

    logger.info(f"✅ Photos ready email sent for booking {booking.id} ({photo_count} photos)")
    return {"success": True, "email_sent": True, "photo_count": photo_count}
