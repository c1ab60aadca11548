"""
Twilio SMS Service
Sends SMS from the company number and records outgoing messages
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ..config import COMPANY_SHORT_NAME, TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER
from ..models_notifications import SmsConversation
from ..shared.validators import format_uk_phone

logger = logging.getLogger(__name__)

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


class SMSError(Exception):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def send_sms(to_phone: str, message_body: str) -> dict:
    """
    Send SMS via Twilio

    Args:
        to_phone: Recipient phone number in any UK format
        message_body: SMS message content

    Returns:
        Dict with the Twilio message sid and the normalized number

    Raises:
        SMSError: missing credentials (500), bad input (400) or Twilio rejection (502)
    """
    if not TWILIO_ACCOUNT_SID or not TWILIO_AUTH_TOKEN or not TWILIO_PHONE_NUMBER:
        logger.error("❌ Twilio credentials not configured")
        raise SMSError("Twilio credentials not configured", status_code=500)

    formatted_phone = format_uk_phone(to_phone)
    if not formatted_phone or not message_body:
        raise SMSError("Phone number and message are required", status_code=400)

    logger.info(f"📱 Sending SMS to {formatted_phone}")
    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data={"To": formatted_phone, "From": TWILIO_PHONE_NUMBER, "Body": message_body},
                timeout=10.0,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio API error: {str(e)}")
        raise SMSError(str(e)) from e

    if response.status_code in [200, 201]:
        result = response.json()
        logger.info(f"✅ SMS sent successfully to {formatted_phone} (SID: {result.get('sid')})")
        return {"sid": result.get("sid"), "to": formatted_phone, "status": result.get("status")}

    error_data = response.json() if response.content else {}
    error_message = error_data.get("message", "Unknown error")
    error_code = error_data.get("code")
    logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
    raise SMSError(f"[{error_code}] {error_message}" if error_code else error_message)


async def send_and_record_sms(
    db: Session, to_phone: str, message_body: str, customer_id: Optional[int] = None
) -> SmsConversation:
    """Send an SMS and store it in the SMS inbox as an outgoing message"""
    record = SmsConversation(
        customer_id=customer_id,
        phone_number=format_uk_phone(to_phone) or to_phone,
        message=message_body,
        direction="outgoing",
        is_read=True,
    )
    try:
        result = await send_sms(to_phone, message_body)
        record.status = "sent"
        record.twilio_sid = result.get("sid")
    except SMSError:
        record.status = "failed"
        db.add(record)
        db.commit()
        raise

    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def payment_reminder_message(customer_name: Optional[str], amount: Optional[float], link: Optional[str]) -> str:
    name = customer_name or "there"
    return (
        f"Hi {name}, invoice for £{(amount or 0):.2f} sent by email from {COMPANY_SHORT_NAME}. "
        f"Check spam folder. Alternatively, you can pay here: {link or ''} Thanks."
    )


def booking_completed_message(customer_name: Optional[str], service_type: Optional[str]) -> str:
    name = customer_name or "there"
    service = service_type or "cleaning"
    return (
        f"Hi {name}, your {service} has been completed. "
        f"Thank you for choosing {COMPANY_SHORT_NAME}!"
    )
