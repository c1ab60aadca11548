"""Shared validation utilities"""

import re
from typing import Optional


def format_uk_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a UK phone number to E.164 format for Twilio.

    Handles the formats customers actually type:
    - 07xxx / 01xxx / 02xxx national numbers -> +44xxxx
    - 44xxxx and 0044xxxx -> +44xxxx
    - +4444 7xxx (country code entered twice) -> +44 7xxx
    - anything else gets a leading +

    Returns None for empty input.
    """
    if not phone:
        return None

    cleaned = re.sub(r"[^\d+]", "", phone.strip())
    if not cleaned:
        return None

    # Country code entered twice, e.g. +44 447123456789
    duplicated = re.match(r"^\+?4444([789]\d+)$", cleaned)
    if duplicated:
        return f"+44{duplicated.group(1)}"

    if cleaned.startswith("+"):
        return cleaned

    if cleaned.startswith("0044"):
        return f"+44{cleaned[4:]}"

    if cleaned.startswith("44"):
        return f"+{cleaned}"

    if re.match(r"^0[127]", cleaned):
        return f"+44{cleaned[1:]}"

    return f"+{cleaned}"


def validate_uk_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number for storage.

    Raises:
        ValueError: If the number has too few or too many digits
    """
    if not phone:
        return phone

    normalized = format_uk_phone(phone)
    digits = re.sub(r"\D", "", normalized or "")
    if len(digits) < 10 or len(digits) > 15:
        raise ValueError("Invalid phone number")
    return normalized


def phone_match_suffix(phone: Optional[str], length: int = 10) -> str:
    """Last N digits of a number, used to match inbound SMS senders to customers"""
    digits = re.sub(r"\D", "", phone or "")
    return digits[-length:]


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_postcode(postcode: Optional[str]) -> Optional[str]:
    """Normalize a UK postcode to upper case with a single space before the inward code"""
    if not postcode:
        return postcode

    compact = re.sub(r"\s+", "", postcode).upper()
    if not re.match(r"^[A-Z]{1,2}\d[A-Z\d]?\d[A-Z]{2}$", compact):
        raise ValueError("Invalid UK postcode")
    return f"{compact[:-3]} {compact[-3:]}"


def is_cancelled_status(status: Optional[str]) -> bool:
    """Booking statuses are free text; any variant of cancelled counts"""
    value = (status or "").lower()
    return "cancelled" in value or "canceled" in value
