"""
SQLAlchemy Database Models

Multi-tenant restaurant billing schema:
- Tenants (restaurants) and their users
- Default feature flags per tenant
- Tables and menu items referenced by orders
- Orders with item snapshots, derived totals and optimistic versioning

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base


def utcnow() -> datetime:
    """Timezone-aware current UTC time (column defaults and comparisons)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS
# =============================================================================

class SubscriptionPlan(str, enum.Enum):
    """Commercial plan of a tenant."""
    TRIAL = "TRIAL"
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class SubscriptionStatus(str, enum.Enum):
    """Billing state of a tenant's subscription."""
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class UserRole(str, enum.Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    CASHIER = "CASHIER"
    WAITER = "WAITER"
    CHEF = "CHEF"


class AuthProvider(str, enum.Enum):
    GOOGLE = "GOOGLE"
    LOCAL = "LOCAL"


class TableStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"


class OrderType(str, enum.Enum):
    """How the order is served."""
    DINE_IN = "DINE_IN"
    TAKEAWAY = "TAKEAWAY"
    DELIVERY = "DELIVERY"


class OrderStatus(str, enum.Enum):
    """Order status workflow. COMPLETED and CANCELLED are terminal."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OrderItemStatus(str, enum.Enum):
    """Kitchen status of a single line."""
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    SERVED = "SERVED"
    CANCELLED = "CANCELLED"


# =============================================================================
# TENANCY
# =============================================================================

class Tenant(Base):
    """
    One onboarded restaurant - the unit of data isolation.

    Created once per owner email at first login; never hard-deleted.
    """
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Owner
    owner_email = Column(String(255), nullable=False, index=True)
    owner_name = Column(String(255), nullable=False)
    restaurant_name = Column(String(255), nullable=False)

    # Subscription
    subscription_plan = Column(
        Enum(SubscriptionPlan),
        default=SubscriptionPlan.TRIAL,
        nullable=False
    )
    subscription_status = Column(
        Enum(SubscriptionStatus),
        default=SubscriptionStatus.TRIAL,
        nullable=False
    )
    trial_end_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Quotas
    max_users = Column(Integer, default=5, nullable=False)
    max_storage_gb = Column(Integer, default=1, nullable=False)

    # Locale & billing
    currency = Column(String(3), default="INR", nullable=False)
    timezone = Column(String(64), default="Asia/Kolkata", nullable=False)
    tax_rate = Column(Numeric(5, 4), default=Decimal("0"), nullable=False)
    service_charge_rate = Column(Numeric(5, 4), default=Decimal("0"), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    def __repr__(self):
        return f"<Tenant {self.id} - {self.restaurant_name}>"


class User(Base):
    """
    A person signing in to a tenant. Email is unique across the system and
    is the de-duplication key for onboarding.
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)

    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    google_id = Column(String(255), nullable=True, index=True)
    role = Column(Enum(UserRole), default=UserRole.OWNER, nullable=False)
    auth_provider = Column(Enum(AuthProvider), default=AuthProvider.GOOGLE, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Single valid refresh token per user
    refresh_token = Column(Text, nullable=True)
    refresh_token_expiry = Column(DateTime(timezone=True), nullable=True)

    # Unused for social login
    password_hash = Column(String(255), nullable=False, default="PasswordHash")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    def __repr__(self):
        return f"<User {self.email} - {self.role.value}>"


class TenantFeature(Base):
    """Feature flag of a tenant, seeded at onboarding."""
    __tablename__ = "tenant_features"
    __table_args__ = (
        UniqueConstraint("tenant_id", "feature_key", name="uq_tenant_feature"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    feature_key = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


# =============================================================================
# FLOOR & MENU
# =============================================================================

class RestaurantTable(Base):
    __tablename__ = "restaurant_tables"
    __table_args__ = (
        UniqueConstraint("tenant_id", "table_number", name="uq_table_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    table_number = Column(String(20), nullable=False)
    capacity = Column(Integer, default=4, nullable=False)
    status = Column(Enum(TableStatus), default=TableStatus.AVAILABLE, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Table {self.table_number}>"


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem {self.name} - {self.price}>"


# =============================================================================
# ORDERS
# =============================================================================

class Order(Base):
    """
    Order aggregate - owns its items and carries derived totals.

    ``version`` grows by one on every mutation and every mutation clears
    ``synced_at`` so downstream consumers re-sync the row.
    """
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    table_id = Column(Uuid, ForeignKey("restaurant_tables.id"), nullable=True)

    # =========================================================================
    # CUSTOMER & SERVICE
    # =========================================================================
    customer_name = Column(String(100), nullable=True)
    customer_phone = Column(String(20), nullable=True)
    order_type = Column(
        Enum(OrderType),
        default=OrderType.DINE_IN,
        nullable=False
    )
    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )
    notes = Column(Text, nullable=True)
    device_id = Column(String(100), nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    service_charge = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    # =========================================================================
    # SYNC & VERSIONING
    # =========================================================================
    is_deleted = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, default=1, nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Order {self.id} - {self.order_type.value} - {self.status.value} - v{self.version}>"


class OrderItem(Base):
    """
    Snapshot of a menu item at order time. Name and unit price are copied,
    never read live from the menu.
    """
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    menu_item_id = Column(
        Uuid,
        ForeignKey("menu_items.id", ondelete="SET NULL"),
        nullable=True
    )
    position = Column(Integer, nullable=False, default=0)

    item_name = Column(String(150), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    special_instructions = Column(Text, nullable=True)
    status = Column(
        Enum(OrderItemStatus),
        default=OrderItemStatus.PENDING,
        nullable=False
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity

    def __repr__(self):
        return f"<OrderItem {self.quantity}x {self.item_name} @ {self.unit_price}>"
