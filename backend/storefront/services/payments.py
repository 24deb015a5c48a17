import httpx
import logging
import uuid
from typing import Dict, Optional

from storefront.core.config import STRIPE_SECRET_KEY, STRIPE_API_URL, SUPPORTED_CURRENCIES

logger = logging.getLogger(__name__)

class PaymentError(Exception):
    pass

def format_amount_for_stripe(amount: float, currency: str) -> int:
    """Convert a decimal amount to the smallest currency unit"""
    if currency.upper() not in SUPPORTED_CURRENCIES:
        raise ValueError("Unsupported currency")
    return int(round(amount * 100))

def stripe_configured() -> bool:
    return bool(STRIPE_SECRET_KEY)

def _raise_for_stripe_error(response: httpx.Response):
    if response.status_code < 400:
        return
    try:
        message = response.json().get('error', {}).get('message', response.text)
    except ValueError:
        message = response.text
    logger.warning("Stripe request failed (%s): %s", response.status_code, message)
    raise PaymentError(message)

async def create_payment_intent(amount: int, currency: str, metadata: Optional[Dict[str, str]] = None):
    """Create a Stripe PaymentIntent for an amount in cents"""
    if not stripe_configured():
        intent_id = f"pi_demo_{uuid.uuid4().hex[:24]}"
        return {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_demo",
            "amount": amount,
            "currency": currency.lower(),
            "status": "requires_payment_method",
            "demo_mode": True
        }

    data = {
        "amount": amount,
        "currency": currency.lower(),
        "automatic_payment_methods[enabled]": "true"
    }
    for key, value in (metadata or {}).items():
        data[f"metadata[{key}]"] = value

    try:
        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.post(
                f"{STRIPE_API_URL}/payment_intents",
                data=data,
                auth=(STRIPE_SECRET_KEY, "")
            )
    except httpx.HTTPError as e:
        raise PaymentError(f"Payment provider unreachable: {e}")

    _raise_for_stripe_error(response)
    return response.json()

async def retrieve_payment_intent(payment_intent_id: str):
    """Fetch a PaymentIntent; demo intents always report success"""
    if not stripe_configured():
        return {"id": payment_intent_id, "status": "succeeded", "demo_mode": True}

    try:
        async with httpx.AsyncClient(timeout=30) as client:
            response = await client.get(
                f"{STRIPE_API_URL}/payment_intents/{payment_intent_id}",
                auth=(STRIPE_SECRET_KEY, "")
            )
    except httpx.HTTPError as e:
        raise PaymentError(f"Payment provider unreachable: {e}")

    _raise_for_stripe_error(response)
    return response.json()
