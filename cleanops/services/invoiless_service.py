"""
Invoiless API Client
Customers, invoices and invoice delivery for bookings paid by invoice
"""

import logging
from typing import Any, Optional

import httpx

from ..config import INVOILESS_API_KEY, INVOILESS_API_URL

logger = logging.getLogger(__name__)


class InvoilessError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def _request(
    method: str,
    path: str,
    json: Optional[dict[str, Any]] = None,
    params: Optional[dict[str, Any]] = None,
) -> Any:
    if not INVOILESS_API_KEY:
        logger.error("❌ INVOILESS_API_KEY not configured")
        raise InvoilessError("Invoiless is not configured")

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.request(
                method,
                f"{INVOILESS_API_URL}{path}",
                headers={"api-key": INVOILESS_API_KEY, "Content-Type": "application/json"},
                json=json,
                params=params,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Invoiless connection error on {method} {path}: {e}")
        raise InvoilessError(str(e)) from e

    if response.status_code >= 400:
        logger.error(f"❌ Invoiless API error [{response.status_code}] {method} {path}: {response.text}")
        raise InvoilessError(
            f"Invoiless request failed ({response.status_code}): {response.text}",
            status_code=response.status_code,
        )
    return response.json() if response.content else {}


def _as_list(result: Any) -> list[dict]:
    """Search endpoints answer either a bare list or {"data": [...]}"""
    if isinstance(result, list):
        return result
    if isinstance(result, dict):
        return result.get("data") or result.get("customers") or []
    return []


async def find_customer_by_email(email: str) -> Optional[dict]:
    """Exact, case-insensitive match on billTo.email among search results"""
    results = _as_list(await _request("GET", "/customers", params={"search": email}))
    target = email.strip().lower()
    for customer in results:
        bill_to = customer.get("billTo") or {}
        if (bill_to.get("email") or "").strip().lower() == target:
            return customer
    return None


async def create_customer(
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> dict:
    logger.info(f"👤 Creating Invoiless customer for {email}")
    bill_to = {
        "email": email,
        "firstName": first_name or "",
        "lastName": last_name or "",
        "phone": phone or "",
        "address": address or "",
    }
    return await _request("POST", "/customers", json={"billTo": bill_to})


async def get_customer(customer_id: str) -> dict:
    return await _request("GET", f"/customers/{customer_id}")


async def create_invoice(payload: dict[str, Any]) -> dict:
    return await _request("POST", "/invoices", json=payload)


async def get_invoice(invoice_id: str) -> dict:
    return await _request("GET", f"/invoices/{invoice_id}")


async def send_invoice(invoice_id: str, email: str, subject: str) -> dict:
    logger.info(f"📧 Sending Invoiless invoice {invoice_id} to {email}")
    return await _request(
        "POST", f"/invoices/{invoice_id}/send", json={"email": email, "subject": subject}
    )
