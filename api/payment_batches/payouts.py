# api/payment_batches/payouts.py
"""
Customer reward payout clients.

`SwishPayoutClient` talks to the Swish payouts API over HTTPS. Without a
configured `SWISH_API_URL` the mock client is used; it accepts every payout
and returns a synthetic reference.
"""
import secrets
import time
from decimal import Decimal

import httpx
import structlog

from config import settings
from core.errors import PayoutError


logger = structlog.get_logger(__name__)


class MockPayoutClient:
    async def send_payout(self, phone_number: str, amount: Decimal, message: str) -> str:
        reference = f"SWISH-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"
        logger.info("Mock payout sent", phone_suffix=phone_number[-4:], amount=str(amount), reference=reference)
        return reference


class SwishPayoutClient:
    def __init__(self, base_url: str, timeout: float, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send_payout(self, phone_number: str, amount: Decimal, message: str) -> str:
        payload = {
            "payeeAlias": phone_number.lstrip("+"),
            "amount": f"{amount:.2f}",
            "currency": "SEK",
            "message": message[:50],
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/api/v2/payouts", json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PayoutError(
                "Customer reward payout failed",
                details={"phone_suffix": phone_number[-4:], "reason": str(exc)},
            ) from exc

        return self._payout_reference(response, phone_number)

    @staticmethod
    def _payout_reference(response: httpx.Response, phone_number: str) -> str:
        """Reference from `Location` or the body `id`; "" when the provider sent neither."""
        location = response.headers.get("Location", "")
        reference = location.rsplit("/", 1)[-1]
        if reference:
            return reference
        try:
            body = response.json()
        except ValueError:
            body = None
        reference = body.get("id") if isinstance(body, dict) else None
        if not reference:
            logger.warning(
                "Payout accepted without a reference",
                phone_suffix=phone_number[-4:],
                status_code=response.status_code,
            )
            return ""
        return str(reference)


def get_payout_client() -> MockPayoutClient | SwishPayoutClient:
    if settings.SWISH_API_URL:
        return SwishPayoutClient(settings.SWISH_API_URL, settings.SWISH_API_TIMEOUT_SECONDS)
    return MockPayoutClient()
