"""
Chat Service
In-app conversations between customers, cleaners and the office
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..auth import ROLE_ADMIN, ROLE_CLEANER, ROLE_CUSTOMER
from ..models import User
from ..models_chat import Chat, ChatMessage
from ..security_utils import sanitize_text

logger = logging.getLogger(__name__)

CHAT_TYPES = ("customer_office", "customer_cleaner", "office_cleaner")
MESSAGE_TYPES = ("text", "image", "file")

# Which chat types each sender type takes part in
PARTICIPANT_CHAT_TYPES = {
    "customer": ("customer_office", "customer_cleaner"),
    "cleaner": ("customer_cleaner", "office_cleaner"),
    "admin": CHAT_TYPES,
}


@dataclass
class Participant:
    sender_type: str
    user_id: int
    customer_id: Optional[int] = None
    cleaner_id: Optional[int] = None


def participant_for(user: User) -> Participant:
    if user.role == ROLE_ADMIN:
        return Participant("admin", user.id)
    if user.role == ROLE_CLEANER and user.cleaner_id:
        return Participant("cleaner", user.id, cleaner_id=user.cleaner_id)
    if user.role == ROLE_CUSTOMER and user.customer_id:
        return Participant("customer", user.id, customer_id=user.customer_id)
    raise HTTPException(status_code=403, detail="Account is not linked to a customer or cleaner")


def _can_access(chat: Chat, participant: Participant) -> bool:
    if chat.chat_type not in PARTICIPANT_CHAT_TYPES[participant.sender_type]:
        return False
    if participant.sender_type == "customer":
        return chat.customer_id == participant.customer_id
    if participant.sender_type == "cleaner":
        return chat.cleaner_id == participant.cleaner_id
    return True


def get_chat(db: Session, chat_id: int, participant: Participant) -> Chat:
    chat = db.query(Chat).filter(Chat.id == chat_id).first()
    if not chat or not _can_access(chat, participant):
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


def get_or_create_chat(
    db: Session,
    chat_type: str,
    customer_id: Optional[int] = None,
    cleaner_id: Optional[int] = None,
    booking_id: Optional[int] = None,
) -> Chat:
    """
    Return the active chat for the participants (and booking) or open a new one.

    Raises:
        HTTPException(400) unknown chat type or missing participant
    """
    if chat_type not in CHAT_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid chat type: {chat_type}")
    if chat_type in ("customer_office", "customer_cleaner") and not customer_id:
        raise HTTPException(status_code=400, detail="customer_id is required for this chat type")
    if chat_type in ("customer_cleaner", "office_cleaner") and not cleaner_id:
        raise HTTPException(status_code=400, detail="cleaner_id is required for this chat type")

    query = db.query(Chat).filter(Chat.chat_type == chat_type, Chat.is_active.is_(True))
    query = query.filter(Chat.customer_id == customer_id) if customer_id else query.filter(Chat.customer_id.is_(None))
    query = query.filter(Chat.cleaner_id == cleaner_id) if cleaner_id else query.filter(Chat.cleaner_id.is_(None))
    query = query.filter(Chat.booking_id == booking_id) if booking_id else query.filter(Chat.booking_id.is_(None))

    chat = query.first()
    if chat:
        return chat

    chat = Chat(chat_type=chat_type, customer_id=customer_id, cleaner_id=cleaner_id, booking_id=booking_id)
    db.add(chat)
    db.commit()
    db.refresh(chat)
    logger.info(f"💬 Chat {chat.id} opened ({chat_type})")
    return chat


def _unread_query(db: Session, chat_id: int, reader_type: str):
    return db.query(ChatMessage).filter(
        ChatMessage.chat_id == chat_id,
        ChatMessage.sender_type != reader_type,
        ChatMessage.is_read.is_(False),
    )


def list_chats(db: Session, participant: Participant) -> list[dict]:
    """Chats visible to the participant, most recent activity first"""
    query = db.query(Chat).filter(
        Chat.is_active.is_(True),
        Chat.chat_type.in_(PARTICIPANT_CHAT_TYPES[participant.sender_type]),
    )
    if participant.sender_type == "customer":
        query = query.filter(Chat.customer_id == participant.customer_id)
    elif participant.sender_type == "cleaner":
        query = query.filter(Chat.cleaner_id == participant.cleaner_id)

    chats = query.order_by(Chat.last_message_at.desc().nulls_last(), Chat.id.desc()).all()

    results = []
    for chat in chats:
        last_message = (
            db.query(ChatMessage)
            .filter(ChatMessage.chat_id == chat.id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .first()
        )
        results.append(
            {
                "id": chat.id,
                "chat_type": chat.chat_type,
                "customer_id": chat.customer_id,
                "cleaner_id": chat.cleaner_id,
                "booking_id": chat.booking_id,
                "last_message_at": chat.last_message_at,
                "last_message": (
                    {
                        "message": last_message.message,
                        "message_type": last_message.message_type,
                        "sender_type": last_message.sender_type,
                        "created_at": last_message.created_at,
                    }
                    if last_message
                    else None
                ),
                "unread_count": _unread_query(db, chat.id, participant.sender_type).count(),
            }
        )
    return results


def get_messages(db: Session, chat_id: int, participant: Participant, limit: int = 100) -> list[ChatMessage]:
    get_chat(db, chat_id, participant)
    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(messages))


def send_message(
    db: Session,
    chat_id: int,
    participant: Participant,
    message: Optional[str],
    message_type: str = "text",
    file_url: Optional[str] = None,
) -> ChatMessage:
    """
    Raises:
        HTTPException(400) empty text message or unknown message type
    """
    chat = get_chat(db, chat_id, participant)

    if message_type not in MESSAGE_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid message type: {message_type}")
    if message_type == "text" and not (message or "").strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    if message_type != "text" and not file_url:
        raise HTTPException(status_code=400, detail="file_url is required for attachments")

    chat_message = ChatMessage(
        chat_id=chat.id,
        sender_type=participant.sender_type,
        sender_id=participant.user_id,
        message=sanitize_text(message),
        message_type=message_type,
        file_url=file_url,
    )
    db.add(chat_message)
    chat.last_message_at = datetime.utcnow()
    db.commit()
    db.refresh(chat_message)
    return chat_message


def mark_read(db: Session, chat_id: int, participant: Participant) -> int:
    """Mark the other side's messages as read. Returns the number updated"""
    get_chat(db, chat_id, participant)
    updated = _unread_query(db, chat_id, participant.sender_type).update(
        {ChatMessage.is_read: True}, synchronize_session=False
    )
    db.commit()
    return updated
