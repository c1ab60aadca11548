"""
Quote Lead Routes
Funnel tracking for the public quote form and office follow-up
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..config import FRONTEND_URL
from ..database import get_db
from ..email_service import send_quote_email
from ..models import QuoteLead, User
from ..rate_limiter import create_rate_limiter
from ..services.activity_logger import log_activity
from ..shared.formatters import format_money
from ..shared.validators import validate_email, validate_postcode, validate_uk_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quote-leads", tags=["Quote Leads"])

LEAD_STATUSES = ("new", "contacted", "converted", "lost")

rate_limit_quote_lead = create_rate_limiter(limit=60, window_seconds=3600, key_prefix="quote_lead")


class QuoteLeadUpsert(BaseModel):
    sessionId: str
    step: Optional[str] = None
    serviceType: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    postcode: Optional[str] = None
    quoteAmount: Optional[float] = None
    details: Optional[dict[str, Any]] = None

    @field_validator("sessionId")
    @classmethod
    def check_session_id(cls, v):
        if not v.strip():
            raise ValueError("sessionId is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        if v:
            return validate_uk_phone(v)
        return v

    @field_validator("postcode")
    @classmethod
    def check_postcode(cls, v):
        if v:
            return validate_postcode(v)
        return v


class QuoteLeadStatusUpdate(BaseModel):
    status: str
    convertedBookingId: Optional[int] = None
    sendQuote: bool = False

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v not in LEAD_STATUSES:
            raise ValueError(f"Status must be one of {', '.join(LEAD_STATUSES)}")
        return v


class QuoteLeadResponse(BaseModel):
    id: int
    session_id: str
    short_code: Optional[str] = None
    status: Optional[str] = None
    furthest_step: Optional[str] = None
    service_type: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    postcode: Optional[str] = None
    quote_amount: Optional[float] = None
    details: Optional[dict[str, Any]] = None
    converted_booking_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SharedQuoteResponse(BaseModel):
    short_code: str
    service_type: Optional[str] = None
    first_name: Optional[str] = None
    postcode: Optional[str] = None
    quote_amount: Optional[float] = None
    details: Optional[dict[str, Any]] = None

    class Config:
        from_attributes = True


UPSERT_FIELDS = {
    "step": "furthest_step",
    "serviceType": "service_type",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "postcode": "postcode",
    "quoteAmount": "quote_amount",
}


def upsert_quote_lead(db: Session, data: QuoteLeadUpsert) -> QuoteLead:
    """Create the lead for a form session or fill in what the visitor has entered since"""
    lead = db.query(QuoteLead).filter(QuoteLead.session_id == data.sessionId).first()
    if not lead:
        lead = QuoteLead(session_id=data.sessionId, status="new")
        db.add(lead)

    for key, column in UPSERT_FIELDS.items():
        value = getattr(data, key)
        if value is not None:
            setattr(lead, column, value)
    if data.details:
        lead.details = {**(lead.details or {}), **data.details}

    db.commit()
    db.refresh(lead)
    return lead


def quote_url(lead: QuoteLead) -> str:
    return f"{FRONTEND_URL}/quote/{lead.short_code}"


@router.post("", response_model=QuoteLeadResponse)
async def track_quote_lead(
    data: QuoteLeadUpsert,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_quote_lead),
):
    """Public: called by the quote form as the visitor moves through it"""
    return upsert_quote_lead(db, data)


@router.get("/shared/{short_code}", response_model=SharedQuoteResponse)
async def get_shared_quote(short_code: str, db: Session = Depends(get_db)):
    lead = db.query(QuoteLead).filter(QuoteLead.short_code == short_code.upper()).first()
    if not lead:
        raise HTTPException(status_code=404, detail="Quote not found")
    return lead


@router.get("", response_model=list[QuoteLeadResponse])
async def list_quote_leads(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(QuoteLead)
    if status:
        query = query.filter(QuoteLead.status == status)
    if search:
        term = f"%{search}%"
        query = query.filter(
            QuoteLead.email.ilike(term)
            | QuoteLead.first_name.ilike(term)
            | QuoteLead.last_name.ilike(term)
            | QuoteLead.phone.ilike(term)
            | QuoteLead.postcode.ilike(term)
        )
    return query.order_by(QuoteLead.updated_at.desc(), QuoteLead.id.desc()).offset(skip).limit(limit).all()


@router.patch("/{lead_id}", response_model=QuoteLeadResponse)
async def update_quote_lead_status(
    lead_id: int,
    data: QuoteLeadStatusUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    lead = db.query(QuoteLead).filter(QuoteLead.id == lead_id).first()
    if not lead:
        raise HTTPException(status_code=404, detail="Quote lead not found")

    if data.sendQuote:
        if not lead.email:
            raise HTTPException(status_code=400, detail="Lead has no email address")
        if lead.quote_amount is None:
            raise HTTPException(status_code=400, detail="Lead has no quote amount")
        try:
            await send_quote_email(
                lead.email,
                lead.first_name or "there",
                lead.service_type or "Cleaning",
                format_money(lead.quote_amount),
                quote_url(lead),
            )
            logger.info(f"📧 Quote {lead.short_code} emailed to {lead.email}")
        except Exception as e:
            logger.error(f"❌ Quote email failed for lead {lead.id}: {e}")
            raise HTTPException(status_code=502, detail="Failed to send quote email") from e

    previous = lead.status
    lead.status = data.status
    if data.convertedBookingId:
        lead.converted_booking_id = data.convertedBookingId
    db.commit()
    db.refresh(lead)

    log_activity(
        db,
        "quote_lead_updated",
        entity_type="quote_lead",
        entity_id=lead.id,
        details={"from": previous, "to": lead.status, "quote_sent": data.sendQuote},
        user_id=current_user.id,
    )
    return lead
