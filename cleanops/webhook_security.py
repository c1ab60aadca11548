"""
Webhook Security Module

Signature verification for inbound provider webhooks:
- Stripe: 'Stripe-Signature: t=<ts>,v1=<hex hmac of "ts.payload">'
- Resend (Svix): 'svix-id', 'svix-timestamp', 'svix-signature: v1,<base64 hmac>'
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def extract_svix_signing_key(secret: str) -> bytes:
    """
    Signing key bytes from a 'whsec_BASE64KEY' secret.
    Falls back to the raw UTF-8 bytes when the secret is not base64.
    """
    try:
        if secret.startswith("whsec_"):
            return base64.b64decode(secret[6:])
        return base64.b64decode(secret)
    except Exception:
        return secret.encode("utf-8")


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """Reject webhooks older (or further in the future) than max_age seconds"""
    if not timestamp:
        return False

    try:
        age = abs(int(time.time()) - int(timestamp))
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def parse_stripe_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    """Split 't=...,v1=...,v1=...' into the timestamp and every v1 signature"""
    timestamp = None
    signatures = []
    for item in header.split(","):
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        key = key.strip()
        if key == "t":
            timestamp = value.strip()
        elif key == "v1":
            signatures.append(value.strip())
    return timestamp, signatures


async def verify_stripe_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Verify a Stripe webhook and return the raw body.

    Raises:
        HTTPException(401) when the signature is missing, stale or wrong
        HTTPException(500) when no endpoint secret is configured
    """
    raw_body = await request.body()

    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    signature_header = request.headers.get("Stripe-Signature", "")
    if not signature_header:
        logger.warning("🚫 Stripe webhook missing signature header")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    timestamp, signatures = parse_stripe_signature_header(signature_header)
    if not timestamp or not signatures:
        logger.warning("🚫 Stripe webhook invalid signature format")
        raise HTTPException(status_code=401, detail="Invalid signature format")

    if not verify_timestamp(timestamp):
        raise HTTPException(status_code=401, detail="Webhook timestamp expired")

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning("🚫 Stripe webhook signature mismatch")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    logger.debug("✅ Stripe webhook signature verified")
    return raw_body


async def verify_svix_webhook(request: Request, secret: Optional[str]) -> bytes:
    """
    Verify a Svix-signed webhook (Resend delivery events) and return the raw body.
    The signature header may carry several space separated 'v1,<sig>' entries.
    """
    raw_body = await request.body()

    if not secret:
        logger.error("❌ RESEND_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    webhook_id = request.headers.get("svix-id", "")
    timestamp = request.headers.get("svix-timestamp", "")
    signature_header = request.headers.get("svix-signature", "")

    if not webhook_id or not timestamp or not signature_header:
        logger.warning("🚫 Svix webhook missing headers")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not verify_timestamp(timestamp):
        raise HTTPException(status_code=401, detail="Webhook timestamp expired")

    signing_key = extract_svix_signing_key(secret)
    signed_message = b".".join([webhook_id.encode("utf-8"), timestamp.encode("utf-8"), raw_body])
    expected_signature = base64.b64encode(
        hmac.new(signing_key, signed_message, hashlib.sha256).digest()
    ).decode("utf-8")

    received = [
        part.split(",", 1)[1] for part in signature_header.split() if part.startswith("v1,")
    ]
    if not any(constant_time_compare(expected_signature, sig) for sig in received):
        logger.warning(f"🚫 Svix webhook signature mismatch for {webhook_id}")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    logger.debug(f"✅ Svix webhook signature verified: {webhook_id}")
    return raw_body


def create_stripe_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header value, used when replaying events locally"""
    timestamp = timestamp or int(time.time())
    signature = compute_hmac_sha256(secret, f"{timestamp}".encode("utf-8") + b"." + payload)
    return f"t={timestamp},v1={signature}"
