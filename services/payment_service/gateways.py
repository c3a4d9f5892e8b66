"""
Payment gateway adapters, one per provider tag.

A gateway does three things: create a provider-side order (the "intent"),
check that a webhook body was signed with our webhook secret, and map a
provider event onto the two outcomes the processor understands. The route's
provider tag selects the adapter; the payload is never inspected to guess it.
"""
import hashlib
import hmac
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import httpx
import structlog

from shared.errors import GatewayTimeoutError, UpstreamError, ValidationError

from .models import PaymentProvider

logger = structlog.get_logger(__name__)


class WebhookKind(str, Enum):
    CAPTURED = "captured"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentIntent:
    provider_order_id: str
    checkout: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookOutcome:
    kind: WebhookKind
    event: str
    provider_order_id: Optional[str] = None
    provider_payment_id: Optional[str] = None


def hmac_sha256_hex(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class PaymentGateway:
    provider: PaymentProvider
    signature_header: str = "x-signature"

    def __init__(self, webhook_secret: Optional[str]):
        self.webhook_secret = webhook_secret

    async def create_intent(self, order_id: int, amount: Decimal, currency: str) -> PaymentIntent:
        raise NotImplementedError

    def parse_webhook(self, payload: Dict[str, Any]) -> WebhookOutcome:
        raise NotImplementedError

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret:
            logger.error("webhook_secret_missing", provider=self.provider.value)
            return False
        if not signature:
            return False
        expected = hmac_sha256_hex(self.webhook_secret, raw_body)
        return hmac.compare_digest(expected, signature.strip())

    async def close(self) -> None:
        return None


class MockGateway(PaymentGateway):
    """Local provider for development and end-to-end tests.

    Webhook body: ``{"event": "payment.captured" | "payment.failed",
    "provider_order_id": ..., "provider_payment_id": ...}`` signed with
    HMAC-SHA256 in the ``x-signature`` header.
    """

    provider = PaymentProvider.MOCK
    signature_header = "x-signature"

    def __init__(self, webhook_secret: str, checkout_base_url: str = "https://mock-gateway.local/pay"):
        super().__init__(webhook_secret)
        self.checkout_base_url = checkout_base_url

    def sign(self, raw_body: bytes) -> str:
        return hmac_sha256_hex(self.webhook_secret, raw_body)

    async def create_intent(self, order_id, amount, currency):
        provider_order_id = f"mock_order_{uuid.uuid4().hex}"
        return PaymentIntent(
            provider_order_id=provider_order_id,
            checkout={
                "providerOrderId": provider_order_id,
                "checkoutUrl": f"{self.checkout_base_url}/{provider_order_id}",
                "amount": str(amount),
                "currency": currency,
                "orderId": order_id,
            },
        )

    def parse_webhook(self, payload):
        event = str(payload.get("event", ""))
        kind = {
            "payment.captured": WebhookKind.CAPTURED,
            "payment.failed": WebhookKind.FAILED,
        }.get(event, WebhookKind.IGNORED)
        return WebhookOutcome(
            kind=kind,
            event=event,
            provider_order_id=payload.get("provider_order_id"),
            provider_payment_id=payload.get("provider_payment_id"),
        )


class RazorpayGateway(PaymentGateway):
    provider = PaymentProvider.RAZORPAY
    signature_header = "x-razorpay-signature"

    CAPTURED_EVENTS = ("payment.captured", "order.paid")
    FAILED_EVENTS = ("payment.failed",)

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: Optional[str],
        client: httpx.AsyncClient,
        api_url: str = "https://api.razorpay.com",
    ):
        super().__init__(webhook_secret)
        self.key_id = key_id
        self.key_secret = key_secret
        self.client = client
        self.api_url = api_url.rstrip("/")

    async def create_intent(self, order_id, amount, currency):
        # Amount goes over the wire in paise
        amount_in_paise = int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))
        try:
            resp = await self.client.post(
                f"{self.api_url}/v1/orders",
                json={
                    "amount": amount_in_paise,
                    "currency": currency,
                    "receipt": str(order_id),
                    "notes": {"orderId": str(order_id)},
                },
                auth=(self.key_id, self.key_secret),
            )
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("razorpay_order_timeout", order_id=order_id, error=str(exc))
            raise GatewayTimeoutError("Payment gateway timed out")
        except httpx.HTTPError as exc:
            logger.error("razorpay_order_failed", order_id=order_id, error=str(exc))
            raise UpstreamError("Payment gateway rejected the request")

        data = resp.json()
        return PaymentIntent(
            provider_order_id=data["id"],
            checkout={
                "razorpayOrderId": data["id"],
                "amount": amount_in_paise,
                "currency": data.get("currency", currency),
                "key": self.key_id,
                "orderId": order_id,
            },
        )

    def parse_webhook(self, payload):
        event = str(payload.get("event", ""))
        body = payload.get("payload") or {}
        payment = (body.get("payment") or {}).get("entity") or {}
        order = (body.get("order") or {}).get("entity") or {}

        if event in self.CAPTURED_EVENTS:
            kind = WebhookKind.CAPTURED
        elif event in self.FAILED_EVENTS:
            kind = WebhookKind.FAILED
        else:
            kind = WebhookKind.IGNORED

        return WebhookOutcome(
            kind=kind,
            event=event,
            provider_order_id=payment.get("order_id") or order.get("id"),
            provider_payment_id=payment.get("id"),
        )


class GatewayRegistry:
    def __init__(self, gateways: Iterable[PaymentGateway]):
        self._gateways = {gateway.provider: gateway for gateway in gateways}

    @property
    def providers(self) -> List[str]:
        return sorted(provider.value for provider in self._gateways)

    def get(self, provider_tag: str) -> PaymentGateway:
        try:
            provider = PaymentProvider(str(provider_tag).upper())
        except ValueError:
            raise ValidationError("Invalid provider")
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise ValidationError(f"Provider {provider.value} is not configured")
        return gateway

    async def close(self) -> None:
        for gateway in self._gateways.values():
            await gateway.close()
