import base64
import json
from decimal import Decimal

import httpx
import pytest

from services.payment_service.gateways import (
    GatewayRegistry,
    MockGateway,
    RazorpayGateway,
    WebhookKind,
    hmac_sha256_hex,
)
from shared.errors import GatewayTimeoutError, UpstreamError, ValidationError


def razorpay(handler, webhook_secret="rzp-webhook-secret"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        webhook_secret=webhook_secret,
        client=client,
        api_url="https://api.razorpay.test",
    )


# --- Mock provider ---

def test_mock_signature_round_trip():
    gateway = MockGateway("secret")
    body = b'{"event":"payment.captured"}'

    assert gateway.verify_signature(body, gateway.sign(body))
    assert not gateway.verify_signature(body + b" ", gateway.sign(body))
    assert not gateway.verify_signature(body, None)
    assert not MockGateway("other-secret").verify_signature(body, gateway.sign(body))


def test_mock_webhook_mapping():
    gateway = MockGateway("secret")

    captured = gateway.parse_webhook({
        "event": "payment.captured",
        "provider_order_id": "mock_order_1",
        "provider_payment_id": "pay_1",
    })
    failed = gateway.parse_webhook({"event": "payment.failed", "provider_order_id": "mock_order_1"})
    other = gateway.parse_webhook({"event": "refund.processed"})

    assert (captured.kind, captured.provider_order_id, captured.provider_payment_id) == (
        WebhookKind.CAPTURED, "mock_order_1", "pay_1",
    )
    assert failed.kind == WebhookKind.FAILED
    assert other.kind == WebhookKind.IGNORED


async def test_mock_intent_issues_unique_provider_order_ids():
    gateway = MockGateway("secret")

    first = await gateway.create_intent(1, Decimal("480"), "INR")
    second = await gateway.create_intent(1, Decimal("480"), "INR")

    assert first.provider_order_id != second.provider_order_id
    assert first.checkout["amount"] == "480"


# --- Razorpay ---

async def test_razorpay_intent_posts_order_in_paise_with_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_RZP123", "currency": "INR", "status": "created"})

    gateway = razorpay(handler)
    intent = await gateway.create_intent(42, Decimal("580.50"), "INR")

    assert seen["path"] == "/v1/orders"
    assert seen["body"]["amount"] == 58050
    assert seen["body"]["receipt"] == "42"
    assert seen["auth"] == "Basic " + base64.b64encode(b"rzp_test_key:rzp_test_secret").decode()
    assert intent.provider_order_id == "order_RZP123"
    assert intent.checkout["key"] == "rzp_test_key"


async def test_razorpay_error_response_is_upstream_error():
    gateway = razorpay(lambda request: httpx.Response(500, json={"error": {"description": "boom"}}))

    with pytest.raises(UpstreamError):
        await gateway.create_intent(1, Decimal("10"), "INR")


async def test_razorpay_timeout_is_gateway_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GatewayTimeoutError):
        await razorpay(handler).create_intent(1, Decimal("10"), "INR")


def test_razorpay_signature_uses_webhook_secret():
    gateway = razorpay(lambda request: httpx.Response(200))
    body = b'{"event":"payment.captured"}'

    assert gateway.verify_signature(body, hmac_sha256_hex("rzp-webhook-secret", body))
    assert not gateway.verify_signature(body, hmac_sha256_hex("rzp_test_secret", body))


def test_razorpay_without_webhook_secret_rejects_everything():
    gateway = razorpay(lambda request: httpx.Response(200), webhook_secret=None)
    body = b"{}"

    assert not gateway.verify_signature(body, hmac_sha256_hex("", body))


def test_razorpay_event_mapping():
    gateway = razorpay(lambda request: httpx.Response(200))
    payment_entity = {"payment": {"entity": {"id": "pay_9", "order_id": "order_RZP123"}}}

    captured = gateway.parse_webhook({"event": "payment.captured", "payload": payment_entity})
    paid = gateway.parse_webhook({"event": "order.paid", "payload": {"order": {"entity": {"id": "order_RZP123"}}}})
    failed = gateway.parse_webhook({"event": "payment.failed", "payload": payment_entity})
    ignored = gateway.parse_webhook({"event": "refund.created", "payload": {}})

    assert (captured.kind, captured.provider_order_id, captured.provider_payment_id) == (
        WebhookKind.CAPTURED, "order_RZP123", "pay_9",
    )
    assert (paid.kind, paid.provider_order_id) == (WebhookKind.CAPTURED, "order_RZP123")
    assert failed.kind == WebhookKind.FAILED
    assert ignored.kind == WebhookKind.IGNORED


# --- Registry ---

def test_registry_selects_by_route_tag():
    mock = MockGateway("secret")
    registry = GatewayRegistry([mock])

    assert registry.get("mock") is mock
    assert registry.get("MOCK") is mock
    assert registry.providers == ["MOCK"]


def test_registry_rejects_unknown_or_unconfigured_provider():
    registry = GatewayRegistry([MockGateway("secret")])

    with pytest.raises(ValidationError):
        registry.get("paypal")
    with pytest.raises(ValidationError):
        registry.get("razorpay")
