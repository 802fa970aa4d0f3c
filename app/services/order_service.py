"""
Order Service

Order aggregate lifecycle for a single tenant:
    - Creation with menu snapshots and derived totals
    - Listing and lookup (always filtered by tenant, soft-deleted rows hidden)
    - Status transitions and soft delete guarded by the order version
    - Sync acknowledgement from downstream consumers

Every mutation is a conditional UPDATE on the version that was read, so two
writers racing on the same order cannot both succeed.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.tenant_context import TenantContext
from app.models import (
    MenuItem,
    Order,
    OrderItem,
    OrderItemStatus,
    OrderStatus,
    RestaurantTable,
    Tenant,
    utcnow,
)
from app.schemas import OrderCreate, OrderResponse

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from turning into 0.1000000000000000055
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to the currency minor unit."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_order_totals(
    lines: Iterable[tuple[Any, int]],
    tax_rate: Any,
    service_charge_rate: Any,
) -> dict[str, Decimal]:
    """
    Calculate subtotal, tax, service charge and total.

    Args:
        lines: (unit_price, quantity) pairs
        tax_rate: Fraction of the subtotal, e.g. 0.05
        service_charge_rate: Fraction of the subtotal, e.g. 0.10

    Each component is rounded half-up to 0.01; the total is the sum of the
    rounded components.

    Example:
        >>> calculate_order_totals([(10, 2), (5, 1)], "0.05", "0.10")["total_amount"]
        Decimal('28.75')
    """
    subtotal = sum(
        (_to_decimal(price) * quantity for price, quantity in lines),
        Decimal("0"),
    )
    subtotal = round_money(subtotal)
    tax_amount = round_money(subtotal * _to_decimal(tax_rate))
    service_charge = round_money(subtotal * _to_decimal(service_charge_rate))

    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "service_charge": service_charge,
        "total_amount": subtotal + tax_amount + service_charge,
    }


def parse_order_status(value: str) -> OrderStatus:
    """Case-insensitive lookup of an OrderStatus name."""
    try:
        return OrderStatus(value.strip().upper())
    except (AttributeError, ValueError):
        raise ValidationError(
            f"Invalid order status '{value}'. Options: {[s.value for s in OrderStatus]}"
        )


class OrderService:
    """All operations are scoped to ``ctx.tenant_id``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(self, ctx: TenantContext, request: OrderCreate) -> OrderResponse:
        """
        Create a PENDING order with item snapshots and computed totals.

        Raises:
            NotFoundError: Tenant, table or a menu item does not exist in
                the caller's tenant
        """
        tenant = await self.db.get(Tenant, ctx.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")

        if request.table_id is not None:
            table = await self.db.scalar(
                select(RestaurantTable).where(
                    RestaurantTable.id == request.table_id,
                    RestaurantTable.tenant_id == ctx.tenant_id,
                )
            )
            if table is None:
                raise NotFoundError(f"Table {request.table_id} not found")

        menu_items = await self._load_menu_items(ctx, [i.menu_item_id for i in request.items])

        items = []
        for position, requested in enumerate(request.items):
            menu_item = menu_items[requested.menu_item_id]
            items.append(
                OrderItem(
                    id=uuid.uuid4(),
                    menu_item_id=menu_item.id,
                    position=position,
                    item_name=menu_item.name,
                    unit_price=round_money(_to_decimal(menu_item.price)),
                    quantity=requested.quantity,
                    special_instructions=requested.special_instructions,
                    status=OrderItemStatus.PENDING,
                )
            )

        totals = calculate_order_totals(
            [(item.unit_price, item.quantity) for item in items],
            tenant.tax_rate,
            tenant.service_charge_rate,
        )

        order = Order(
            id=uuid.uuid4(),
            tenant_id=ctx.tenant_id,
            table_id=request.table_id,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            order_type=request.order_type,
            status=OrderStatus.PENDING,
            notes=request.notes,
            device_id=request.device_id,
            is_deleted=False,
            version=1,
            synced_at=None,
            items=items,
            **totals,
        )

        self.db.add(order)
        await self.db.commit()

        logger.info(
            f"Order {order.id} created: {len(items)} items, total {order.total_amount} {tenant.currency}"
        )
        return OrderResponse.model_validate(await self._reload(ctx, order.id))

    async def _load_menu_items(
        self,
        ctx: TenantContext,
        menu_item_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, MenuItem]:
        result = await self.db.execute(
            select(MenuItem).where(
                MenuItem.id.in_(list(dict.fromkeys(menu_item_ids))),
                MenuItem.tenant_id == ctx.tenant_id,
            )
        )
        found = {item.id: item for item in result.scalars().all()}

        for menu_item_id in menu_item_ids:
            if menu_item_id not in found:
                raise NotFoundError(f"Menu item {menu_item_id} not found")
        return found

    # =========================================================================
    # READ
    # =========================================================================

    async def list_orders(self, ctx: TenantContext) -> list[OrderResponse]:
        """Non-deleted orders of the tenant, oldest first."""
        result = await self.db.execute(
            self._active_orders(ctx).order_by(Order.created_at.asc(), Order.id.asc())
        )
        return [OrderResponse.model_validate(o) for o in result.scalars().all()]

    async def get_order(self, ctx: TenantContext, order_id: uuid.UUID) -> OrderResponse:
        return OrderResponse.model_validate(await self._get_active_order(ctx, order_id))

    async def list_pending_sync(self, ctx: TenantContext) -> list[OrderResponse]:
        """Orders changed since their last downstream sync."""
        result = await self.db.execute(
            self._active_orders(ctx)
            .where(Order.synced_at.is_(None))
            .order_by(Order.created_at.asc(), Order.id.asc())
        )
        return [OrderResponse.model_validate(o) for o in result.scalars().all()]

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def update_order_status(
        self,
        ctx: TenantContext,
        order_id: uuid.UUID,
        new_status: str,
        expected_version: Optional[int] = None,
    ) -> OrderResponse:
        """
        Move an order to ``new_status``.

        Raises:
            NotFoundError: Order does not exist in the caller's tenant
            ValidationError: ``new_status`` is not an OrderStatus name
            ConflictError: The order changed since it was read
        """
        order = await self._get_active_order(ctx, order_id)
        status = parse_order_status(new_status)
        previous = order.status

        await self._versioned_update(
            ctx, order, expected_version, status=status, updated_at=utcnow()
        )

        updated = await self._reload(ctx, order_id)
        logger.info(
            f"Order {order_id} status {previous.value} -> {status.value} (v{updated.version})"
        )
        return OrderResponse.model_validate(updated)

    async def delete_order(
        self,
        ctx: TenantContext,
        order_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> OrderResponse:
        """Soft delete. Returns the final projection of the deleted order."""
        order = await self._get_active_order(ctx, order_id)

        await self._versioned_update(
            ctx, order, expected_version, is_deleted=True, updated_at=utcnow()
        )

        deleted = await self._reload(ctx, order_id, include_deleted=True)
        logger.info(f"Order {order_id} deleted (v{deleted.version})")
        return OrderResponse.model_validate(deleted)

    async def mark_synced(
        self,
        ctx: TenantContext,
        order_id: uuid.UUID,
        version: int,
    ) -> OrderResponse:
        """
        Record that ``version`` of the order reached downstream consumers.

        Leaves the version untouched. Deleted orders can still be
        acknowledged, since their deletion is itself a change to sync.

        Raises:
            NotFoundError: Order does not exist in the caller's tenant
            ConflictError: The order has moved past ``version``
        """
        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.tenant_id == ctx.tenant_id,
                Order.version == version,
            )
            .values(synced_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            exists = await self.db.scalar(
                select(Order.id).where(Order.id == order_id, Order.tenant_id == ctx.tenant_id)
            )
            if exists is None:
                raise NotFoundError(f"Order {order_id} not found")
            raise ConflictError(f"Order {order_id} is no longer at version {version}")

        await self.db.commit()
        logger.debug(f"Order {order_id} v{version} marked synced")
        return OrderResponse.model_validate(
            await self._reload(ctx, order_id, include_deleted=True)
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _active_orders(ctx: TenantContext):
        return select(Order).where(
            Order.tenant_id == ctx.tenant_id,
            Order.is_deleted.is_(False),
        )

    async def _get_active_order(self, ctx: TenantContext, order_id: uuid.UUID) -> Order:
        order = await self.db.scalar(self._active_orders(ctx).where(Order.id == order_id))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _reload(
        self,
        ctx: TenantContext,
        order_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Order:
        query = select(Order).where(Order.id == order_id, Order.tenant_id == ctx.tenant_id)
        if not include_deleted:
            query = query.where(Order.is_deleted.is_(False))

        order = await self.db.scalar(query.execution_options(populate_existing=True))
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _versioned_update(
        self,
        ctx: TenantContext,
        order: Order,
        expected_version: Optional[int],
        **values: Any,
    ) -> None:
        """
        Apply ``values`` only if the order is still at the version read
        (or ``expected_version`` when the caller supplied one). Bumps the
        version, clears ``synced_at`` and commits.
        """
        read_version = order.version
        if expected_version is not None and expected_version != read_version:
            raise ConflictError(
                f"Order {order.id} is at version {read_version}, expected {expected_version}"
            )

        result = await self.db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.tenant_id == ctx.tenant_id,
                Order.version == read_version,
            )
            .values(version=Order.version + 1, synced_at=None, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning(f"Order {order.id} changed concurrently (read v{read_version})")
            raise ConflictError(f"Order {order.id} was modified concurrently")

        await self.db.commit()
