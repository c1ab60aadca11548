"""
Photo Models
Before/after photos uploaded by cleaners and the one-off "photos ready" email
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class CleaningPhoto(Base):
    __tablename__ = "cleaning_photos"

    id = Column(Integer, primary_key=True, index=True)
    # No FK: the booking row moves from bookings to past_bookings keeping its id
    booking_id = Column(Integer, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id", ondelete="SET NULL"), nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    file_key = Column(String(500), nullable=False, unique=True)
    content_type = Column(String(100), nullable=True)
    photo_type = Column(String(20), nullable=False)  # before, after, additional
    postcode = Column(String(20), nullable=True)
    booking_date = Column(Date, nullable=True)
    caption = Column(String(255), nullable=True)
    damage_details = Column(Text, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PhotoNotification(Base):
    __tablename__ = "photo_notifications"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, index=True, unique=True, nullable=False)
    email_sent = Column(Boolean, default=False, nullable=False)
    photo_count = Column(Integer, default=0)
    email_id = Column(String(100), nullable=True)
    sent_at = Column(DateTime, nullable=True)
