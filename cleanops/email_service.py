"""
Email Service using Resend
MJML templates are compiled to HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import COMPANY_NAME, EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    account_credentials_template,
    booking_completed_template,
    booking_confirmation_template,
    password_reset_template,
    payment_link_template,
    photos_ready_template,
    quote_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        errors = getattr(result, "errors", None)
        if errors is None and isinstance(result, dict):
            errors = result.get("errors")
        if errors:
            logger.warning(f"MJML compilation warnings: {errors}")
        html = getattr(result, "html", None)
        if html is None and isinstance(result, dict):
            html = result.get("html", "")
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_html_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send ready-made HTML through Resend.

    Returns:
        Resend response dict (contains the delivery 'id')
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_email(to: Union[str, list[str]], subject: str, mjml_content: str) -> dict:
    """Compile an MJML template and send it"""
    return await send_html_email(to, subject, compile_mjml_to_html(mjml_content))


# ============================================
# Pre-built emails for common events
# ============================================


async def send_booking_confirmation_email(
    to: str, customer_name: str, booking_date: str, booking_time: str, address: str, total_cost: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Booking Confirmed - {COMPANY_NAME}",
        mjml_content=booking_confirmation_template(
            customer_name, booking_date, booking_time, address, total_cost
        ),
    )


async def send_booking_completed_email(
    to: str, customer_name: str, service_type: str, booking_date: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your cleaning is complete - {COMPANY_NAME}",
        mjml_content=booking_completed_template(customer_name, service_type, booking_date),
    )


async def send_payment_link_email(
    to: str, customer_name: str, amount: str, description: str, payment_url: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Payment request from {COMPANY_NAME}",
        mjml_content=payment_link_template(customer_name, amount, description, payment_url),
    )


async def send_quote_email(
    to: str, customer_name: str, service_type: str, quote_amount: str, quote_url: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your quote from {COMPANY_NAME}",
        mjml_content=quote_template(customer_name, service_type, quote_amount, quote_url),
    )


async def send_password_reset_email(to: str, reset_link: str) -> dict:
    return await send_email(
        to=to,
        subject=f"Reset Your Password - {COMPANY_NAME}",
        mjml_content=password_reset_template(reset_link),
    )


async def send_account_credentials_email(
    to: str, customer_name: str, temporary_password: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your {COMPANY_NAME} account",
        mjml_content=account_credentials_template(customer_name, to, temporary_password),
    )


async def send_photos_ready_email(
    to: str, customer_name: str, service_type: str, booking_date: str, photo_count: int, photos_url: str
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your cleaning photos are ready - {COMPANY_NAME}",
        mjml_content=photos_ready_template(customer_name, service_type, booking_date, photo_count, photos_url),
    )
