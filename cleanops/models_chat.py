"""
Chat Models
Conversations between customers, cleaners and the office
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    chat_type = Column(String(30), nullable=False)  # customer_office, customer_cleaner, office_cleaner
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True, nullable=True)
    cleaner_id = Column(Integer, ForeignKey("cleaners.id"), index=True, nullable=True)
    booking_id = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    messages = relationship(
        "ChatMessage", back_populates="chat", order_by="ChatMessage.created_at"
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), index=True, nullable=False)
    sender_type = Column(String(20), nullable=False)  # customer, cleaner, admin
    sender_id = Column(Integer, nullable=True)
    message = Column(Text, nullable=True)
    message_type = Column(String(10), default="text")  # text, image, file
    file_url = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    chat = relationship("Chat", back_populates="messages")
