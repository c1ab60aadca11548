"""
Stripe API Client
Thin async wrapper over the Stripe REST API (form-encoded requests, Bearer auth)
"""

import logging
from typing import Any, Optional

import httpx

from ..config import PAYMENT_CURRENCY, STRIPE_API_URL, STRIPE_RETURN_URL, STRIPE_SECRET_KEY

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """Error response from Stripe, keeping the fields callers report back"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        error_type: Optional[str] = None,
        decline_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.type = error_type
        self.decline_code = decline_code
        self.status_code = status_code

    def as_dict(self) -> dict:
        return {
            "error": self.message,
            "stripe_error_code": self.code,
            "stripe_error_type": self.type,
            "decline_code": self.decline_code,
        }


def encode_form(data: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """
    Flatten nested dicts/lists into Stripe's bracket form encoding:
    {"metadata": {"booking_id": 5}} -> {"metadata[booking_id]": "5"}
    {"payment_method_types": ["card"]} -> {"payment_method_types[0]": "card"}
    """
    encoded: dict[str, str] = {}
    for key, value in data.items():
        if value is None:
            continue
        field = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, dict):
            encoded.update(encode_form(value, field))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    encoded.update(encode_form(item, f"{field}[{index}]"))
                else:
                    encoded[f"{field}[{index}]"] = str(item)
        elif isinstance(value, bool):
            encoded[field] = "true" if value else "false"
        else:
            encoded[field] = str(value)
    return encoded


async def _request(
    method: str,
    path: str,
    data: Optional[dict[str, Any]] = None,
    params: Optional[dict[str, Any]] = None,
) -> dict:
    if not STRIPE_SECRET_KEY:
        logger.error("❌ STRIPE_SECRET_KEY not configured")
        raise StripeError("Stripe is not configured", error_type="configuration_error")

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.request(
                method,
                f"{STRIPE_API_URL}{path}",
                headers={"Authorization": f"Bearer {STRIPE_SECRET_KEY}"},
                data=encode_form(data) if data else None,
                params=params,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Stripe connection error on {method} {path}: {e}")
        raise StripeError(str(e), error_type="api_connection_error") from e

    body = response.json() if response.content else {}
    if response.status_code >= 400:
        error = body.get("error", {}) if isinstance(body, dict) else {}
        logger.error(
            f"❌ Stripe API error [{response.status_code}] {method} {path}: "
            f"{error.get('code')} - {error.get('message')}"
        )
        raise StripeError(
            error.get("message") or f"Stripe request failed with status {response.status_code}",
            code=error.get("code"),
            error_type=error.get("type"),
            decline_code=error.get("decline_code"),
            status_code=response.status_code,
        )
    return body


# ============================================================================
# PAYMENT INTENTS
# ============================================================================


async def create_payment_intent(
    amount: int,
    customer_id: str,
    payment_method_id: str,
    description: str,
    capture_method: str = "automatic",
    metadata: Optional[dict[str, Any]] = None,
) -> dict:
    """
    Create and confirm a PaymentIntent against a saved card.
    amount is in minor units (pence).
    """
    logger.info(f"💳 Creating {capture_method} PaymentIntent for {amount} {PAYMENT_CURRENCY}")
    return await _request(
        "POST",
        "/payment_intents",
        {
            "amount": amount,
            "currency": PAYMENT_CURRENCY,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "capture_method": capture_method,
            "confirm": True,
            "return_url": STRIPE_RETURN_URL,
            "description": description,
            "metadata": metadata or {},
        },
    )


async def capture_payment_intent(payment_intent_id: str, amount_to_capture: Optional[int] = None) -> dict:
    logger.info(f"💳 Capturing PaymentIntent {payment_intent_id}")
    return await _request(
        "POST",
        f"/payment_intents/{payment_intent_id}/capture",
        {"amount_to_capture": amount_to_capture} if amount_to_capture else None,
    )


async def cancel_payment_intent(payment_intent_id: str) -> dict:
    logger.info(f"💳 Cancelling PaymentIntent {payment_intent_id}")
    return await _request("POST", f"/payment_intents/{payment_intent_id}/cancel")


async def retrieve_payment_intent(payment_intent_id: str) -> dict:
    return await _request("GET", f"/payment_intents/{payment_intent_id}")


# ============================================================================
# CUSTOMERS, SETUP INTENTS & PAYMENT METHODS
# ============================================================================


async def find_customer_by_email(email: str) -> Optional[dict]:
    result = await _request("GET", "/customers", params={"email": email, "limit": 1})
    customers = result.get("data", [])
    return customers[0] if customers else None


async def create_customer(email: str, name: Optional[str], metadata: dict[str, Any]) -> dict:
    logger.info(f"👤 Creating Stripe customer for {email}")
    return await _request(
        "POST", "/customers", {"email": email, "name": name, "metadata": metadata}
    )


async def retrieve_customer(stripe_customer_id: str) -> dict:
    return await _request("GET", f"/customers/{stripe_customer_id}")


async def create_setup_intent(stripe_customer_id: str, metadata: dict[str, Any]) -> dict:
    return await _request(
        "POST",
        "/setup_intents",
        {
            "customer": stripe_customer_id,
            "payment_method_types": ["card"],
            "usage": "off_session",
            "metadata": metadata,
        },
    )


async def retrieve_setup_intent(setup_intent_id: str) -> dict:
    return await _request("GET", f"/setup_intents/{setup_intent_id}")


async def retrieve_payment_method(payment_method_id: str) -> dict:
    return await _request("GET", f"/payment_methods/{payment_method_id}")


async def list_payment_methods(stripe_customer_id: str) -> list[dict]:
    result = await _request(
        "GET",
        "/payment_methods",
        params={"customer": stripe_customer_id, "type": "card", "limit": 100},
    )
    return result.get("data", [])


async def detach_payment_method(payment_method_id: str) -> dict:
    return await _request("POST", f"/payment_methods/{payment_method_id}/detach")


# ============================================================================
# CHECKOUT
# ============================================================================


async def create_checkout_session(
    amount: int,
    description: str,
    success_url: str,
    cancel_url: str,
    customer_email: Optional[str] = None,
    stripe_customer_id: Optional[str] = None,
    save_card: bool = False,
    metadata: Optional[dict[str, Any]] = None,
) -> dict:
    """One-off card payment page. save_card keeps the card for off-session charges"""
    payload: dict[str, Any] = {
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "line_items": [
            {
                "quantity": 1,
                "price_data": {
                    "currency": PAYMENT_CURRENCY,
                    "unit_amount": amount,
                    "product_data": {"name": description},
                },
            }
        ],
        "metadata": metadata or {},
    }
    if stripe_customer_id:
        payload["customer"] = stripe_customer_id
    elif customer_email:
        payload["customer_email"] = customer_email
    if save_card:
        payload["payment_intent_data"] = {
            "setup_future_usage": "off_session",
            "metadata": metadata or {},
        }
    return await _request("POST", "/checkout/sessions", payload)


def card_details(payment_method: dict) -> dict:
    """Display fields of a card PaymentMethod"""
    card = payment_method.get("card") or {}
    return {
        "card_brand": card.get("brand"),
        "card_last4": card.get("last4"),
        "card_exp_month": card.get("exp_month"),
        "card_exp_year": card.get("exp_year"),
    }
