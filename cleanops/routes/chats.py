import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Booking, User
from ..services.chat_service import (
    get_messages,
    get_or_create_chat,
    list_chats,
    mark_read,
    participant_for,
    send_message,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["Chats"])


class ChatOpenRequest(BaseModel):
    chatType: str
    customerId: Optional[int] = None
    cleanerId: Optional[int] = None
    bookingId: Optional[int] = None


class ChatMessageCreate(BaseModel):
    message: Optional[str] = None
    messageType: str = "text"
    fileUrl: Optional[str] = None


class ChatMessageResponse(BaseModel):
    id: int
    chat_id: int
    sender_type: str
    sender_id: Optional[int] = None
    message: Optional[str] = None
    message_type: Optional[str] = None
    file_url: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("")
async def get_chats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Chats for the signed-in customer, cleaner or office user"""
    return list_chats(db, participant_for(current_user))


@router.post("")
async def open_chat(
    data: ChatOpenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participant = participant_for(current_user)
    customer_id = data.customerId
    cleaner_id = data.cleanerId

    # Customers and cleaners can only open chats they are part of
    if participant.sender_type == "customer":
        if data.chatType == "office_cleaner":
            raise HTTPException(status_code=403, detail="Not allowed to open this chat")
        customer_id = participant.customer_id
    elif participant.sender_type == "cleaner":
        if data.chatType == "customer_office":
            raise HTTPException(status_code=403, detail="Not allowed to open this chat")
        cleaner_id = participant.cleaner_id

    if data.chatType == "customer_cleaner" and participant.sender_type != "admin":
        if not data.bookingId:
            raise HTTPException(status_code=400, detail="bookingId is required for customer-cleaner chats")
        booking = db.query(Booking).filter(Booking.id == data.bookingId).first()
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        if participant.sender_type == "customer":
            if booking.customer_id != customer_id:
                raise HTTPException(status_code=404, detail="Booking not found")
            cleaner_id = booking.cleaner_id
        else:
            if booking.cleaner_id != cleaner_id:
                raise HTTPException(status_code=404, detail="Booking not found")
            customer_id = booking.customer_id

    chat = get_or_create_chat(db, data.chatType, customer_id, cleaner_id, data.bookingId)
    return {
        "id": chat.id,
        "chat_type": chat.chat_type,
        "customer_id": chat.customer_id,
        "cleaner_id": chat.cleaner_id,
        "booking_id": chat.booking_id,
    }


@router.get("/{chat_id}/messages", response_model=list[ChatMessageResponse])
async def get_chat_messages(
    chat_id: int,
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_messages(db, chat_id, participant_for(current_user), limit)


@router.post("/{chat_id}/messages", response_model=ChatMessageResponse)
async def post_chat_message(
    chat_id: int,
    data: ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return send_message(
        db, chat_id, participant_for(current_user), data.message, data.messageType, data.fileUrl
    )


@router.post("/{chat_id}/read")
async def mark_chat_read(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = mark_read(db, chat_id, participant_for(current_user))
    return {"message": "Messages marked as read", "updated": updated}
