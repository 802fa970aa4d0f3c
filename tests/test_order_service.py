"""Tests for the order aggregate: totals, snapshots, tenant isolation and versioning."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.tenant_context import TenantContext
from app.models import MenuItem, Order, OrderItemStatus, OrderStatus, OrderType
from app.schemas import OrderCreate, OrderItemCreate
from app.services.order_service import OrderService, calculate_order_totals
from tests.conftest import create_menu_item, create_table, create_tenant


def order_request(*lines, **kwargs) -> OrderCreate:
    return OrderCreate(
        items=[OrderItemCreate(menu_item_id=item.id, quantity=qty) for item, qty in lines],
        **kwargs,
    )


# =============================================================================
# TOTALS
# =============================================================================

def test_totals_reference_example():
    totals = calculate_order_totals(
        [(Decimal("10.00"), 2), (Decimal("5.00"), 1)],
        Decimal("0.05"),
        Decimal("0.10"),
    )

    assert totals == {
        "subtotal": Decimal("25.00"),
        "tax_amount": Decimal("1.25"),
        "service_charge": Decimal("2.50"),
        "total_amount": Decimal("28.75"),
    }


def test_totals_round_half_up_per_component():
    # 0.125 -> 0.13 for both tax and service charge
    totals = calculate_order_totals([("2.50", 1)], "0.05", "0.05")

    assert totals["tax_amount"] == Decimal("0.13")
    assert totals["service_charge"] == Decimal("0.13")
    assert totals["total_amount"] == Decimal("2.76")


def test_totals_accept_floats_without_binary_noise():
    totals = calculate_order_totals([(0.1, 3)], 0.0, 0.0)

    assert totals["subtotal"] == Decimal("0.30")
    assert totals["total_amount"] == Decimal("0.30")


# =============================================================================
# CREATE
# =============================================================================

@pytest.mark.asyncio
async def test_create_order(db_session, tenant, ctx, menu):
    table = await create_table(db_session, tenant)
    request = order_request(
        (menu["naan"], 2),
        (menu["chai"], 1),
        table_id=table.id,
        customer_name="Asha",
        order_type="takeaway",
        device_id="pos-1",
    )

    order = await OrderService(db_session).create_order(ctx, request)

    assert order.status == OrderStatus.PENDING
    assert order.order_type == OrderType.TAKEAWAY
    assert order.version == 1
    assert order.is_deleted is False
    assert order.synced_at is None
    assert order.table_id == table.id
    assert order.subtotal == Decimal("25.00")
    assert order.tax_amount == Decimal("1.25")
    assert order.service_charge == Decimal("2.50")
    assert order.total_amount == Decimal("28.75")
    assert [i.item_name for i in order.items] == ["Garlic Naan", "Masala Chai"]
    assert [i.line_total for i in order.items] == [Decimal("20.00"), Decimal("5.00")]
    assert all(i.status == OrderItemStatus.PENDING for i in order.items)


@pytest.mark.asyncio
async def test_create_order_unknown_tenant(db_session, menu):
    stranger = TenantContext.system(uuid.uuid4())

    with pytest.raises(NotFoundError):
        await OrderService(db_session).create_order(stranger, order_request((menu["naan"], 1)))


@pytest.mark.asyncio
async def test_create_order_unknown_table(db_session, ctx, menu):
    request = order_request((menu["naan"], 1), table_id=uuid.uuid4())

    with pytest.raises(NotFoundError):
        await OrderService(db_session).create_order(ctx, request)


@pytest.mark.asyncio
async def test_create_order_unknown_menu_item(db_session, ctx, menu):
    request = OrderCreate(items=[
        OrderItemCreate(menu_item_id=menu["naan"].id, quantity=1),
        OrderItemCreate(menu_item_id=uuid.uuid4(), quantity=1),
    ])

    with pytest.raises(NotFoundError):
        await OrderService(db_session).create_order(ctx, request)
    assert await OrderService(db_session).list_orders(ctx) == []


@pytest.mark.asyncio
async def test_create_order_rejects_other_tenants_menu(db_session, ctx):
    other = await create_tenant(db_session)
    foreign_item = await create_menu_item(db_session, other, "Foreign Dish", "9.00")

    with pytest.raises(NotFoundError):
        await OrderService(db_session).create_order(ctx, order_request((foreign_item, 1)))


@pytest.mark.asyncio
async def test_price_snapshots_are_independent(db_session, ctx, menu):
    service = OrderService(db_session)
    naan = menu["naan"]

    first = await service.create_order(ctx, order_request((naan, 1)))

    await db_session.execute(update(MenuItem).where(MenuItem.id == naan.id).values(price=Decimal("12.00")))
    await db_session.commit()

    second = await service.create_order(ctx, order_request((naan, 1)))
    reread = await service.get_order(ctx, first.id)

    assert reread.items[0].unit_price == Decimal("10.00")
    assert reread.subtotal == Decimal("10.00")
    assert second.items[0].unit_price == Decimal("12.00")


# =============================================================================
# READ
# =============================================================================

@pytest.mark.asyncio
async def test_list_orders_in_creation_order(db_session, ctx, menu):
    service = OrderService(db_session)
    created = [
        (await service.create_order(ctx, order_request((menu["chai"], n)))).id
        for n in (1, 2, 3)
    ]

    listed = await service.list_orders(ctx)

    assert [o.id for o in listed] == created


@pytest.mark.asyncio
async def test_orders_are_isolated_by_tenant(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))

    other = await create_tenant(db_session)
    other_ctx = TenantContext.system(other.id)

    assert await service.list_orders(other_ctx) == []
    with pytest.raises(NotFoundError):
        await service.get_order(other_ctx, order.id)
    with pytest.raises(NotFoundError):
        await service.update_order_status(other_ctx, order.id, "CONFIRMED")


@pytest.mark.asyncio
async def test_get_unknown_order(db_session, ctx):
    with pytest.raises(NotFoundError):
        await OrderService(db_session).get_order(ctx, uuid.uuid4())


# =============================================================================
# STATUS & VERSIONING
# =============================================================================

@pytest.mark.asyncio
async def test_update_status_bumps_version_and_clears_sync(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))
    await service.mark_synced(ctx, order.id, order.version)

    updated = await service.update_order_status(ctx, order.id, "confirmed")

    assert updated.status == OrderStatus.CONFIRMED
    assert updated.version == 2
    assert updated.synced_at is None

    again = await service.update_order_status(ctx, order.id, "PREPARING")
    assert again.version == 3


@pytest.mark.asyncio
async def test_update_status_unknown_order(db_session, ctx):
    with pytest.raises(NotFoundError):
        await OrderService(db_session).update_order_status(ctx, uuid.uuid4(), "CONFIRMED")


@pytest.mark.asyncio
async def test_update_status_invalid_value(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))

    with pytest.raises(ValidationError):
        await service.update_order_status(ctx, order.id, "TELEPORTED")
    assert (await service.get_order(ctx, order.id)).version == 1


@pytest.mark.asyncio
async def test_update_status_expected_version_mismatch(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))
    await service.update_order_status(ctx, order.id, "CONFIRMED", expected_version=1)

    with pytest.raises(ConflictError):
        await service.update_order_status(ctx, order.id, "READY", expected_version=1)
    assert (await service.get_order(ctx, order.id)).status == OrderStatus.CONFIRMED


@pytest.mark.asyncio
async def test_concurrent_writer_loses_version_race(session_maker, ctx, menu):
    async with session_maker() as setup:
        order = await OrderService(setup).create_order(ctx, order_request((menu["naan"], 1)))

    async with session_maker() as first, session_maker() as second:
        stale = await OrderService(second)._get_active_order(ctx, order.id)

        await OrderService(first).update_order_status(ctx, order.id, "CONFIRMED")

        # The second writer still holds version 1
        with pytest.raises(ConflictError):
            await OrderService(second)._versioned_update(ctx, stale, None, status=OrderStatus.CANCELLED)

    async with session_maker() as check:
        final = await OrderService(check).get_order(ctx, order.id)
    assert final.status == OrderStatus.CONFIRMED
    assert final.version == 2


# =============================================================================
# DELETE & SYNC
# =============================================================================

@pytest.mark.asyncio
async def test_delete_order_is_soft(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))

    deleted = await service.delete_order(ctx, order.id)

    assert deleted.is_deleted is True
    assert deleted.version == 2
    assert await service.list_orders(ctx) == []
    with pytest.raises(NotFoundError):
        await service.get_order(ctx, order.id)
    assert await db_session.get(Order, order.id) is not None


@pytest.mark.asyncio
async def test_pending_sync_and_acknowledgement(db_session, ctx, menu):
    service = OrderService(db_session)
    first = await service.create_order(ctx, order_request((menu["naan"], 1)))
    second = await service.create_order(ctx, order_request((menu["chai"], 1)))

    synced = await service.mark_synced(ctx, first.id, 1)

    assert synced.synced_at is not None
    assert synced.version == 1
    assert [o.id for o in await service.list_pending_sync(ctx)] == [second.id]


@pytest.mark.asyncio
async def test_mark_synced_with_stale_version(db_session, ctx, menu):
    service = OrderService(db_session)
    order = await service.create_order(ctx, order_request((menu["naan"], 1)))
    await service.update_order_status(ctx, order.id, "CONFIRMED")

    with pytest.raises(ConflictError):
        await service.mark_synced(ctx, order.id, 1)

    current = await service.get_order(ctx, order.id)
    assert current.synced_at is None
    assert current.version == 2


@pytest.mark.asyncio
async def test_mark_synced_unknown_order(db_session, ctx):
    with pytest.raises(NotFoundError):
        await OrderService(db_session).mark_synced(ctx, uuid.uuid4(), 1)
