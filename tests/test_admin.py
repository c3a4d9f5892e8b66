from decimal import Decimal

import pytest

from conftest import (
    create_shipment,
    deliver_webhook,
    initiate_payment,
    mock_webhook,
    order_status,
    paid_order,
    place_order,
    seed_variant,
    set_shipment_status,
)
from services.audit_service.repository import AuditRepository
from shared.cache import CacheKeys
from shared.errors import NotFoundError, PreconditionError


async def placed_order(container, buyer="buyer-1"):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    return await place_order(container, buyer, [(v1, 1)])


async def cancel(container, order_id, actor="admin-1"):
    async with container.sessionmaker() as db:
        return await container.admin.cancel_order(db, order_id, actor)


async def force_confirm(container, order_id, actor="root-1"):
    async with container.sessionmaker() as db:
        return await container.admin.force_confirm_order(db, order_id, actor)


async def audit_rows(container, **filters):
    async with container.sessionmaker() as db:
        return await AuditRepository.find_all(db, **filters)


# --- Cancel ---

async def test_cancel_placed_order_is_audited(container):
    order = await placed_order(container)

    result = await cancel(container, order.id)

    assert result.message == "Order cancelled"
    assert result.order.status == "CANCELLED"
    rows = await audit_rows(container, entity_type="ORDER", entity_id=str(order.id))
    assert [(r.actor_id, r.action) for r in rows] == [("admin-1", "ORDER_CANCELLED")]
    assert rows[0].details == {"previousStatus": "PLACED", "newStatus": "CANCELLED"}


async def test_cancel_shipped_order_is_allowed(container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await paid_order(container, "buyer-1", [(v1, 1)])
    shipment = await create_shipment(container, order.id, "seller-1")
    await set_shipment_status(container, shipment.id, "seller-1", "SHIPPED")

    result = await cancel(container, order.id)

    assert result.order.status == "CANCELLED"
    rows = await audit_rows(container, entity_id=str(order.id))
    assert rows[0].details["previousStatus"] == "SHIPPED"


async def test_delivered_order_cannot_be_cancelled(container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await paid_order(container, "buyer-1", [(v1, 1)])
    shipment = await create_shipment(container, order.id, "seller-1")
    await set_shipment_status(container, shipment.id, "seller-1", "SHIPPED")
    await set_shipment_status(container, shipment.id, "seller-1", "DELIVERED")

    with pytest.raises(PreconditionError):
        await cancel(container, order.id)

    assert await order_status(container, order.id) == "DELIVERED"
    assert await audit_rows(container, entity_type="ORDER") == []


async def test_cancelling_twice_leaves_a_single_entry(container):
    order = await placed_order(container)
    await cancel(container, order.id)

    with pytest.raises(PreconditionError):
        await cancel(container, order.id)

    assert len(await audit_rows(container, entity_type="ORDER")) == 1


async def test_cancel_unknown_order(container):
    with pytest.raises(NotFoundError):
        await cancel(container, 424242)
    assert await audit_rows(container) == []


# --- Force confirm ---

async def test_force_confirm_bypasses_payment(container):
    order = await placed_order(container)

    result = await force_confirm(container, order.id)

    assert result.message == "Order confirmed"
    assert result.order.status == "CONFIRMED"
    rows = await audit_rows(container, actor_id="root-1")
    assert [r.action for r in rows] == ["ORDER_FORCE_CONFIRMED"]
    assert rows[0].details == {
        "previousStatus": "PLACED",
        "newStatus": "CONFIRMED",
        "bypassedPayment": True,
    }


async def test_force_confirmed_order_can_be_shipped(container):
    order = await placed_order(container)
    await force_confirm(container, order.id)

    shipment = await create_shipment(container, order.id, "seller-1")

    assert shipment.status == "CREATED"


@pytest.mark.parametrize("setup, message", [
    ("confirmed", "Order is already confirmed"),
    ("cancelled", "Cannot confirm a cancelled order"),
])
async def test_force_confirm_rejects_non_placed_orders(container, setup, message):
    order = await placed_order(container)
    if setup == "confirmed":
        intent = await initiate_payment(container, "buyer-1", order.id)
        await deliver_webhook(container, mock_webhook(intent.provider_order_id))
    else:
        await cancel(container, order.id)

    with pytest.raises(PreconditionError) as exc:
        await force_confirm(container, order.id)

    assert exc.value.message == message
    assert await audit_rows(container, actor_id="root-1") == []


async def test_force_confirm_never_moves_a_shipped_order_back(container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    order = await paid_order(container, "buyer-1", [(v1, 1)])
    shipment = await create_shipment(container, order.id, "seller-1")
    await set_shipment_status(container, shipment.id, "seller-1", "SHIPPED")

    with pytest.raises(PreconditionError):
        await force_confirm(container, order.id)

    assert await order_status(container, order.id) == "SHIPPED"


# --- Views ---

async def test_admin_order_list_is_cached_and_invalidated(container, cache):
    order = await placed_order(container)

    async with container.sessionmaker() as db:
        listing = await container.admin.list_orders(db)
    assert [o.status for o in listing.orders] == ["PLACED"]
    assert await cache.get(CacheKeys.ADMIN_ORDERS) is not None

    await cancel(container, order.id)
    assert await cache.get(CacheKeys.ADMIN_ORDERS) is None

    async with container.sessionmaker() as db:
        listing = await container.admin.list_orders(db)
    assert [o.status for o in listing.orders] == ["CANCELLED"]


async def test_admin_sees_all_payments_and_settlements(container):
    v1 = await seed_variant(container, "seller-1", "100", stock=5)
    v2 = await seed_variant(container, "seller-2", "50", stock=5)
    await paid_order(container, "buyer-1", [(v1, 1)])
    await paid_order(container, "buyer-2", [(v2, 2)])

    async with container.sessionmaker() as db:
        payments = await container.admin.list_payments(db)
        settlements = await container.admin.list_settlements(db)

    assert sorted(p.status for p in payments.payments) == ["SUCCESS", "SUCCESS"]
    assert sorted((s.seller_id, s.amount) for s in settlements.settlements) == [
        ("seller-1", Decimal("100")),
        ("seller-2", Decimal("100")),
    ]
