"""End-to-end checks through the mounted HTTP apps."""
import json
from decimal import Decimal

from conftest import INTERNAL_KEY, auth_headers, place_order, seed_variant

BUYER = auth_headers("buyer-1")
SELLER_1 = auth_headers("seller-1", "SELLER")
SELLER_2 = auth_headers("seller-2", "SELLER")
ADMIN = auth_headers("admin-1", "ADMIN")
SUPER_ADMIN = auth_headers("root-1", "SUPER_ADMIN")


def signed(container, payload):
    raw = json.dumps(payload).encode()
    signature = container.gateways.get("MOCK").sign(raw)
    return raw, {"x-signature": signature, "content-type": "application/json"}


async def test_health(client):
    resp = await client.get("/payments/health")

    assert resp.status_code == 200
    assert resp.json() == {"service": "payment", "status": "running"}


async def test_order_lifecycle_over_http(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    v2 = await seed_variant(container, "seller-2", "200", stock=5)

    for variant_id, quantity in ((v1, 2), (v2, 1)):
        resp = await client.post("/cart/items", json={"variant_id": variant_id, "quantity": quantity}, headers=BUYER)
        assert resp.status_code == 200

    resp = await client.post("/checkout/", headers=BUYER)
    assert resp.status_code == 201
    order = resp.json()
    assert order["status"] == "PLACED"
    assert Decimal(order["total_amount"]) == Decimal("580")

    resp = await client.post("/payments/", json={"order_id": order["id"]}, headers=BUYER)
    assert resp.status_code == 201
    intent = resp.json()
    assert intent["status"] == "INITIATED"

    raw, headers = signed(container, {
        "event": "payment.captured",
        "provider_order_id": intent["provider_order_id"],
        "provider_payment_id": "pay_http_1",
    })
    resp = await client.post("/payments/webhook/mock", content=raw, headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "outcome": "captured"}

    # Redelivery is acknowledged and changes nothing
    resp = await client.post("/payments/webhook/mock", content=raw, headers=headers)
    assert resp.json() == {"status": "ok", "outcome": "duplicate"}

    resp = await client.get(f"/orders/{order['id']}", headers=BUYER)
    assert resp.json()["status"] == "CONFIRMED"

    shipment_ids = {}
    for seller, headers in (("seller-1", SELLER_1), ("seller-2", SELLER_2)):
        resp = await client.post(
            f"/shipments/orders/{order['id']}",
            json={"carrier": "BlueDart", "tracking_number": f"TRK-{seller}"},
            headers=headers,
        )
        assert resp.status_code == 201
        shipment_ids[seller] = resp.json()["id"]

    for status in ("SHIPPED", "DELIVERED"):
        for seller, headers in (("seller-1", SELLER_1), ("seller-2", SELLER_2)):
            resp = await client.put(
                f"/shipments/{shipment_ids[seller]}/status", json={"status": status}, headers=headers,
            )
            assert resp.status_code == 200
            assert resp.json()["status"] == status

    resp = await client.get(f"/shipments/orders/{order['id']}/tracking", headers=BUYER)
    tracking = resp.json()
    assert tracking["status"] == "DELIVERED"
    assert [s["status"] for s in tracking["shipments"]] == ["DELIVERED", "DELIVERED"]

    resp = await client.get("/payments/settlements/me", headers=SELLER_1)
    settlements = resp.json()["settlements"]
    assert [(s["seller_id"], Decimal(s["amount"]), s["status"]) for s in settlements] == [
        ("seller-1", Decimal("200"), "PENDING"),
    ]


async def test_webhook_with_bad_signature_is_rejected(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await place_order(container, "buyer-1", [(v1, 1)])
    resp = await client.post("/payments/", json={"order_id": order.id}, headers=BUYER)
    raw, headers = signed(container, {
        "event": "payment.captured",
        "provider_order_id": resp.json()["provider_order_id"],
    })
    headers["x-signature"] = "0" * 64

    resp = await client.post("/payments/webhook/mock", content=raw, headers=headers)

    assert resp.status_code == 400
    assert resp.json() == {"detail": "Invalid signature"}
    resp = await client.get(f"/orders/{order.id}", headers=BUYER)
    assert resp.json()["status"] == "PLACED"


async def test_webhook_for_unknown_provider(client):
    resp = await client.post("/payments/webhook/paypal", content=b"{}")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid provider"


async def test_protected_routes_need_a_token(client):
    assert (await client.post("/checkout/")).status_code == 401
    assert (await client.get("/orders/")).status_code == 401
    assert (await client.get("/admin/orders")).status_code == 401


async def test_roles_are_enforced(client):
    assert (await client.post("/checkout/", headers=SELLER_1)).status_code == 403
    assert (await client.get("/admin/orders", headers=BUYER)).status_code == 403
    assert (await client.get("/payments/settlements/me", headers=BUYER)).status_code == 403


async def test_insufficient_stock_reports_every_failing_line(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=1)
    await client.post("/cart/items", json={"variant_id": v1, "quantity": 1}, headers=BUYER)
    # Stock drops after the item was carted
    await place_order(container, "buyer-2", [(v1, 1)])

    resp = await client.post("/checkout/", headers=BUYER)

    assert resp.status_code == 409
    assert resp.json()["errors"] == [{"variant_id": v1, "requested": 1, "available": 0}]


async def test_force_confirm_is_super_admin_only(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await place_order(container, "buyer-1", [(v1, 1)])

    resp = await client.post(f"/admin/orders/{order.id}/force-confirm", headers=ADMIN)
    assert resp.status_code == 403

    resp = await client.post(f"/admin/orders/{order.id}/force-confirm", headers=SUPER_ADMIN)
    assert resp.status_code == 200
    assert resp.json()["order"]["status"] == "CONFIRMED"

    resp = await client.get(f"/admin/audit-logs/order/{order.id}", headers=ADMIN)
    assert [e["action"] for e in resp.json()["audit_logs"]] == ["ORDER_FORCE_CONFIRMED"]


async def test_admin_cancel_and_precondition_errors(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await place_order(container, "buyer-1", [(v1, 1)])

    resp = await client.post(f"/admin/orders/{order.id}/cancel", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Order cancelled"

    resp = await client.post(f"/admin/orders/{order.id}/cancel", headers=ADMIN)
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Order is already cancelled"}


async def test_internal_sync_requires_api_key(client, container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await place_order(container, "buyer-1", [(v1, 1)])

    resp = await client.post(f"/shipments/internal/orders/{order.id}/sync")
    assert resp.status_code == 403

    resp = await client.post(
        f"/shipments/internal/orders/{order.id}/sync",
        headers={"X-Internal-API-Key": INTERNAL_KEY},
    )
    assert resp.status_code == 200
    assert resp.json() == {"order_id": order.id, "status": "PLACED", "changed": False}


async def test_checkout_is_rate_limited_per_user(client):
    # Empty carts fail fast but still count against the limit
    statuses = [(await client.post("/checkout/", headers=BUYER)).status_code for _ in range(11)]

    assert statuses[:10] == [400] * 10
    assert statuses[10] == 429
    # Another buyer has their own budget
    assert (await client.post("/checkout/", headers=auth_headers("buyer-2"))).status_code == 400
