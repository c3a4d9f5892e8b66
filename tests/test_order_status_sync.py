from types import SimpleNamespace

from conftest import create_shipment, order_status, paid_order, seed_variant, set_shipment_status
from services.order_service.models import OrderStatus
from services.shipment_service.synchronizer import target_status


def shipment(seller_id, status):
    return SimpleNamespace(seller_id=seller_id, status=status)


async def two_seller_paid_order(container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    v2 = await seed_variant(container, "seller-2", "200", stock=5)
    return await paid_order(container, "buyer-1", [(v1, 1), (v2, 1)])


async def override(container, shipment_id, status, note="carrier correction"):
    async with container.sessionmaker() as db:
        return await container.shipments.admin_override(db, shipment_id, "admin-1", status, note)


# --- Pure derivation ---

def test_target_status_needs_a_shipment_from_every_seller():
    sellers = ["seller-1", "seller-2"]

    assert target_status([], sellers) is None
    assert target_status([shipment("seller-1", "DELIVERED")], sellers) is None


def test_target_status_follows_the_slowest_shipment():
    sellers = ["seller-1", "seller-2"]

    assert target_status([shipment("seller-1", "SHIPPED"), shipment("seller-2", "CREATED")], sellers) is None
    assert target_status(
        [shipment("seller-1", "DELIVERED"), shipment("seller-2", "SHIPPED")], sellers
    ) == OrderStatus.SHIPPED
    assert target_status(
        [shipment("seller-1", "DELIVERED"), shipment("seller-2", "DELIVERED")], sellers
    ) == OrderStatus.DELIVERED


# --- Against the database ---

async def test_partial_shipping_keeps_order_confirmed(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    await create_shipment(container, order.id, "seller-2")

    await set_shipment_status(container, first.id, "seller-1", "SHIPPED")

    assert await order_status(container, order.id) == "CONFIRMED"


async def test_seller_without_shipment_counts_as_not_shipped(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")

    await set_shipment_status(container, first.id, "seller-1", "SHIPPED")
    await set_shipment_status(container, first.id, "seller-1", "DELIVERED")

    assert await order_status(container, order.id) == "CONFIRMED"


async def test_order_follows_all_shipments_to_delivered(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    second = await create_shipment(container, order.id, "seller-2")

    await set_shipment_status(container, first.id, "seller-1", "SHIPPED")
    await set_shipment_status(container, second.id, "seller-2", "SHIPPED")
    assert await order_status(container, order.id) == "SHIPPED"

    await set_shipment_status(container, first.id, "seller-1", "DELIVERED")
    assert await order_status(container, order.id) == "SHIPPED"

    await set_shipment_status(container, second.id, "seller-2", "DELIVERED")
    assert await order_status(container, order.id) == "DELIVERED"


async def test_override_can_move_order_forward(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    second = await create_shipment(container, order.id, "seller-2")

    await override(container, first.id, "DELIVERED")
    await override(container, second.id, "DELIVERED")

    assert await order_status(container, order.id) == "DELIVERED"


async def test_override_never_regresses_the_order(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    second = await create_shipment(container, order.id, "seller-2")
    for s, seller in ((first, "seller-1"), (second, "seller-2")):
        await set_shipment_status(container, s.id, seller, "SHIPPED")
        await set_shipment_status(container, s.id, seller, "DELIVERED")
    assert await order_status(container, order.id) == "DELIVERED"

    updated = await override(container, first.id, "SHIPPED", note="proof of delivery missing")

    # The shipment moves, the order stays where it was
    assert updated.status == "SHIPPED"
    assert updated.events[-1].note == "Admin Override: proof of delivery missing"
    assert await order_status(container, order.id) == "DELIVERED"

    async with container.sessionmaker() as db:
        history = await container.audit.get_entity_history(db, "SHIPMENT", str(first.id))
    assert [entry.action for entry in history.audit_logs] == ["SHIPMENT_STATUS_OVERRIDE"]
    assert history.audit_logs[0].metadata == {
        "shipmentId": first.id,
        "orderId": order.id,
        "oldStatus": "DELIVERED",
        "newStatus": "SHIPPED",
        "reason": "proof of delivery missing",
    }


async def test_resync_is_idempotent(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    second = await create_shipment(container, order.id, "seller-2")
    await set_shipment_status(container, first.id, "seller-1", "SHIPPED")
    await set_shipment_status(container, second.id, "seller-2", "SHIPPED")

    async with container.sessionmaker() as db:
        first_run = await container.shipments.resync(db, order.id)
    async with container.sessionmaker() as db:
        second_run = await container.shipments.resync(db, order.id)

    assert (first_run.status, first_run.changed) == ("SHIPPED", False)
    assert (second_run.status, second_run.changed) == ("SHIPPED", False)


async def test_cancelled_order_is_never_resurrected(container):
    order = await two_seller_paid_order(container)
    first = await create_shipment(container, order.id, "seller-1")
    second = await create_shipment(container, order.id, "seller-2")
    async with container.sessionmaker() as db:
        await container.admin.cancel_order(db, order.id, "admin-1")

    await override(container, first.id, "DELIVERED")
    await override(container, second.id, "DELIVERED")
    async with container.sessionmaker() as db:
        result = await container.shipments.resync(db, order.id)

    assert (result.status, result.changed) == ("CANCELLED", False)
    assert await order_status(container, order.id) == "CANCELLED"
