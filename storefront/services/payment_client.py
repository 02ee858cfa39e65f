"""
HTTP client for the Razorpay Orders API and callback signature checks
"""
import hashlib
import hmac
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

import httpx
from opentelemetry import trace
import logging

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount into the provider's smallest currency unit (x100)"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_signature(secret: str, provider_order_id: str, provider_payment_id: str) -> str:
    """HMAC-SHA256 hex digest over "<order_id>|<payment_id>" """
    payload = f"{provider_order_id}|{provider_payment_id}".encode()
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(
    secret: str,
    provider_order_id: str,
    provider_payment_id: str,
    signature: str
) -> bool:
    """Check a checkout callback signature; an empty secret never verifies"""
    if not secret:
        return False
    expected = generate_signature(secret, provider_order_id, provider_payment_id)
    return hmac.compare_digest(expected, signature)


class RazorpayClient:
    """Client for the Razorpay REST API"""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = httpx.AsyncClient(
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport
        )

    def is_configured(self) -> bool:
        """Whether API credentials were provided"""
        return bool(self.key_id and self.key_secret)

    def verify_payment_signature(
        self,
        provider_order_id: str,
        provider_payment_id: str,
        signature: str
    ) -> bool:
        """Recompute the checkout signature with our key secret"""
        if not self.key_secret:
            logger.error("RAZORPAY_KEY_SECRET not set - rejecting payment signature")
            return False
        return verify_signature(self.key_secret, provider_order_id, provider_payment_id, signature)

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        local_order_id: int
    ) -> Optional[Dict]:
        """
        Create a provider order (payment intent)

        Returns:
            Provider order dict or None if the call failed
        """
        with tracer.start_as_current_span("payment_client.create_order") as span:
            amount_minor = to_minor_units(amount)
            span.set_attribute("order.id", local_order_id)
            span.set_attribute("payment.amount_minor", amount_minor)
            span.set_attribute("payment.currency", currency)

            payload = {
                "amount": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": {"order_id": str(local_order_id)},
            }

            try:
                url = f"{self.base_url}/orders"
                logger.info(f"Calling payment provider: POST {url} for order {local_order_id}")

                response = await self.client.post(url, json=payload)

                span.set_attribute("http.status_code", response.status_code)

                if response.status_code in (200, 201):
                    try:
                        intent = response.json()
                    except ValueError as e:
                        logger.error(f"Payment provider returned a non-JSON body: {e}")
                        span.record_exception(e)
                        return None
                    if not isinstance(intent, dict):
                        logger.error(f"Payment provider returned unexpected body: {type(intent).__name__}")
                        return None
                    logger.info(f"Payment intent {intent.get('id')} created for order {local_order_id}")
                    return intent

                logger.error(
                    f"Payment provider error: {response.status_code} {response.text[:200]}"
                )
                return None

            except httpx.HTTPError as e:
                logger.error(f"Failed to call payment provider: {e}")
                span.record_exception(e)
                return None

    async def close(self):
        """Close the HTTP client"""
        await self.client.aclose()
