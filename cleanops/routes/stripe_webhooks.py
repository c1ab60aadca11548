"""
Stripe Webhook Handler
Keeps saved cards in sync and marks Checkout payments as paid
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import STRIPE_WEBHOOK_SECRET
from ..database import get_db
from ..services import stripe_service
from ..services.payment_methods import mark_checkout_paid, sync_payment_method_from_stripe
from ..services.stripe_service import StripeError
from ..webhook_security import verify_stripe_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/stripe", tags=["webhooks"])

CARD_SYNC_EVENTS = (
    "setup_intent.succeeded",
    "payment_method.attached",
    "checkout.session.completed",
    "payment_intent.succeeded",
)


async def _payment_method_for_event(event_type: str, obj: dict) -> tuple[Optional[str], Optional[str]]:
    """(payment_method_id, stripe_customer_id) carried by the event object"""
    if event_type == "payment_method.attached":
        return obj.get("id"), obj.get("customer")

    if event_type == "checkout.session.completed":
        customer = obj.get("customer")
        if obj.get("setup_intent"):
            setup_intent = await stripe_service.retrieve_setup_intent(obj["setup_intent"])
            return setup_intent.get("payment_method"), customer or setup_intent.get("customer")
        if obj.get("payment_intent"):
            intent = await stripe_service.retrieve_payment_intent(obj["payment_intent"])
            return intent.get("payment_method"), customer or intent.get("customer")
        return None, customer

    return obj.get("payment_method"), obj.get("customer")


@router.post("")
async def handle_stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Handle Stripe webhook events

    Events handled:
    - setup_intent.succeeded / payment_method.attached / payment_intent.succeeded
      store the card on the customer named in the Stripe customer's metadata
    - checkout.session.completed - same, plus marks the session's bookings paid
    """
    raw_body = await verify_stripe_webhook(request, STRIPE_WEBHOOK_SECRET)

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except json.JSONDecodeError:
        logger.error("❌ Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON") from None

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info(f"📥 Received Stripe webhook: {event_type} ({event.get('id')})")

    result = {"received": True, "event_type": event_type}

    if event_type == "checkout.session.completed" and obj.get("id"):
        updated = mark_checkout_paid(db, obj["id"])
        result["bookings_paid"] = updated
        logger.info(f"✅ Checkout {obj['id']} completed, {updated} bookings marked paid")

    if event_type in CARD_SYNC_EVENTS:
        try:
            payment_method_id, stripe_customer_id = await _payment_method_for_event(event_type, obj)
            if payment_method_id and stripe_customer_id:
                method = await sync_payment_method_from_stripe(db, payment_method_id, stripe_customer_id)
                result["payment_method_synced"] = method is not None
            else:
                logger.info(f"ℹ️ {event_type} carries no saved card to sync")
        except StripeError as e:
            logger.error(f"❌ Card sync failed for {event_type}: {e.message}")
            result["payment_method_synced"] = False
    else:
        logger.info(f"ℹ️ Unhandled event type: {event_type}")

    return result
