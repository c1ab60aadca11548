"""
Twilio SMS Routes
Inbound SMS webhook and the office SMS inbox
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, field_validator
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import Customer, User
from ..models_notifications import SmsConversation
from ..security_utils import sanitize_text
from ..services.twilio_service import EMPTY_TWIML, send_and_record_sms
from ..shared.validators import format_uk_phone, phone_match_suffix

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sms", tags=["SMS"])
webhook_router = APIRouter(prefix="/webhooks/twilio", tags=["webhooks"])


class SmsReplyRequest(BaseModel):
    to: str
    message: str
    customerId: Optional[int] = None

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        if not v.strip():
            raise ValueError("Message cannot be empty")
        return v


class SmsConversationResponse(BaseModel):
    id: int
    customer_id: Optional[int] = None
    phone_number: str
    message: str
    direction: str
    status: Optional[str] = None
    twilio_sid: Optional[str] = None
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def match_customer(db: Session, phone: str) -> Optional[Customer]:
    """Customer whose phone or WhatsApp number ends with the same ten digits"""
    suffix = phone_match_suffix(phone)
    if not suffix:
        return None
    candidates = (
        db.query(Customer)
        .filter(or_(Customer.phone.isnot(None), Customer.whatsapp.isnot(None)))
        .all()
    )
    for customer in candidates:
        if suffix in (phone_match_suffix(customer.phone), phone_match_suffix(customer.whatsapp)):
            return customer
    return None


def twiml_response() -> Response:
    return Response(content=EMPTY_TWIML, media_type="application/xml")


@webhook_router.post("/sms")
async def handle_incoming_sms(request: Request, db: Session = Depends(get_db)):
    """
    Store an inbound SMS. Twilio always gets an empty TwiML document back so
    it never retries or auto-replies.
    """
    try:
        form = await request.form()
        from_number = form.get("From")
        body = sanitize_text(form.get("Body")) or ""
        if not from_number:
            logger.warning("⚠️ Inbound SMS without a sender number")
            return twiml_response()

        customer = match_customer(db, from_number)
        db.add(
            SmsConversation(
                customer_id=customer.id if customer else None,
                phone_number=format_uk_phone(from_number) or from_number,
                message=body,
                direction="incoming",
                status="received",
                twilio_sid=form.get("MessageSid"),
                is_read=False,
            )
        )
        db.commit()
        logger.info(
            f"📱 Inbound SMS from {from_number}"
            f"{f' (customer {customer.id})' if customer else ' (unknown sender)'}"
        )
    except Exception as e:
        logger.error(f"❌ Failed to store inbound SMS: {e}")
        db.rollback()

    return twiml_response()


@router.get("/conversations", response_model=list[SmsConversationResponse])
async def list_sms_conversations(
    phone: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    unread_only: bool = Query(False),
    limit: int = Query(200, ge=1, le=1000),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(SmsConversation)
    if phone:
        query = query.filter(SmsConversation.phone_number.ilike(f"%{phone_match_suffix(phone)}"))
    if customer_id:
        query = query.filter(SmsConversation.customer_id == customer_id)
    if unread_only:
        query = query.filter(SmsConversation.is_read.is_(False))
    return query.order_by(SmsConversation.created_at.desc(), SmsConversation.id.desc()).limit(limit).all()


@router.post("/reply", response_model=SmsConversationResponse)
async def reply_to_sms(
    data: SmsReplyRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Send an SMS from the office inbox"""
    customer_id = data.customerId
    if not customer_id:
        customer = match_customer(db, data.to)
        customer_id = customer.id if customer else None
    return await send_and_record_sms(db, data.to, data.message, customer_id=customer_id)


@router.post("/conversations/{conversation_id}/read")
async def mark_sms_read(
    conversation_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    record = db.query(SmsConversation).filter(SmsConversation.id == conversation_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Message not found")

    # Reading one message clears the whole thread for that number
    updated = (
        db.query(SmsConversation)
        .filter(
            SmsConversation.phone_number == record.phone_number,
            SmsConversation.direction == "incoming",
            SmsConversation.is_read.is_(False),
        )
        .update({SmsConversation.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"message": "Conversation marked as read", "updated": updated}
