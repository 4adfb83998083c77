"""Payment capture through Stripe's REST API."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

import httpx

from ...config import Settings, settings
from ...errors import PaymentFailedError

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def process_payment(self, user_id: str, amount: float, payment_method_id: str) -> str:
        """Charge ``amount`` and return the provider's transaction reference."""
        ...

    def refund(self, reference: str) -> str:
        ...


def to_minor_units(amount: float) -> int:
    """Convert a currency amount to cents, rounding half-up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentGateway:
    """Confirms a PaymentIntent in one call; refunds by intent id."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        currency: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.stripe_api_key
        if not self.api_key:
            raise ValueError("Stripe API key is not configured.")
        self.base_url = (base_url or settings.stripe_base_url).rstrip("/")
        self.currency = currency or settings.payment_currency
        self.timeout = timeout if timeout is not None else settings.payment_timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings) -> "StripePaymentGateway":
        return cls(
            api_key=config.stripe_api_key,
            base_url=config.stripe_base_url,
            currency=config.payment_currency,
            timeout=config.payment_timeout_seconds,
        )

    def _post(self, path: str, data: dict[str, Any], idempotency_key: str | None = None) -> dict[str, Any]:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        client = httpx.Client(
            base_url=self.base_url,
            auth=(self.api_key, ""),
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )
        try:
            response = client.post(path, data=data, headers=headers)
            payload = response.json()
            if response.status_code >= 400:
                message = payload.get("error", {}).get("message", f"HTTP {response.status_code}")
                raise PaymentFailedError(f"Stripe rejected the request: {message}")
            return payload
        except httpx.HTTPError as e:
            raise PaymentFailedError(f"Failed to reach Stripe: {e}") from e
        except ValueError as e:
            raise PaymentFailedError("Stripe returned a malformed response.") from e
        finally:
            client.close()

    def process_payment(self, user_id: str, amount: float, payment_method_id: str) -> str:
        if amount <= 0:
            raise PaymentFailedError("Payment amount must be positive.")
        payload = self._post(
            "/v1/payment_intents",
            {
                "amount": str(to_minor_units(amount)),
                "currency": self.currency,
                "payment_method": payment_method_id,
                "confirm": "true",
                "metadata[user_id]": user_id,
            },
        )
        status = payload.get("status")
        if status != "succeeded":
            raise PaymentFailedError(f"Payment intent {payload.get('id')} ended in status '{status}'.")
        logger.info(f"Payment intent {payload.get('id')} {status} for user {user_id}")
        return str(payload["id"])

    def refund(self, reference: str) -> str:
        payload = self._post(
            "/v1/refunds",
            {"payment_intent": reference},
            idempotency_key=f"refund-{reference}",
        )
        logger.warning(f"Refunded payment intent {reference} (refund {payload.get('id')})")
        return str(payload["id"])
