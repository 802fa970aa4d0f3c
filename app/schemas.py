"""
Pydantic Schemas for Request/Response Validation

JSON uses camelCase keys (``accessToken``, ``menuItemId``...); snake_case
keys are accepted on input as well.

Author: Khalil Bannouri
Version: 1.0.0
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models import (
    AuthProvider,
    OrderItemStatus,
    OrderStatus,
    OrderType,
    SubscriptionPlan,
    SubscriptionStatus,
    UserRole,
)


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, attribute access from ORM rows."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# AUTH REQUEST SCHEMAS
# =============================================================================

class GoogleLoginRequest(CamelModel):
    """Identity submitted by the client after Google sign-in."""
    email: EmailStr = Field(..., examples=["owner@pizzeria.com"])
    name: str = Field(..., min_length=1, max_length=255, examples=["Asha Rao"])
    google_id: str = Field(..., min_length=1, max_length=255, examples=["108234567890123456789"])
    id_token: Optional[str] = Field(None, description="Google ID token (verified outside development)")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


# =============================================================================
# AUTH RESPONSE SCHEMAS
# =============================================================================

class UserResponse(CamelModel):
    """User projection returned to clients."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    name: str
    role: UserRole
    auth_provider: AuthProvider
    is_active: bool
    last_login: Optional[datetime]


class TenantResponse(CamelModel):
    """Tenant projection returned to clients."""
    id: uuid.UUID
    restaurant_name: str
    owner_email: str
    owner_name: str
    subscription_plan: SubscriptionPlan
    subscription_status: SubscriptionStatus
    trial_end_date: Optional[datetime]
    is_active: bool
    max_users: int
    max_storage_gb: int
    currency: str
    timezone: str
    tax_rate: Decimal
    service_charge_rate: Decimal


class AuthResponse(CamelModel):
    """Result of login and refresh."""
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    user: UserResponse
    tenant: TenantResponse


class CurrentUserResponse(CamelModel):
    user: UserResponse
    tenant: TenantResponse
    features: dict[str, bool]


# =============================================================================
# ORDER REQUEST SCHEMAS
# =============================================================================

class OrderItemCreate(CamelModel):
    """Single requested line - price comes from the menu, never the client."""
    menu_item_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=999, examples=[2])
    special_instructions: Optional[str] = Field(None, max_length=500)


class OrderCreate(CamelModel):
    """Request schema for creating a new order."""

    table_id: Optional[uuid.UUID] = None

    # Customer Info
    customer_name: Optional[str] = Field(None, max_length=100, examples=["John Doe"])
    customer_phone: Optional[str] = Field(None, max_length=20, examples=["555-123-4567"])

    order_type: OrderType = Field(default=OrderType.DINE_IN, examples=["DINE_IN"])
    notes: Optional[str] = Field(None, max_length=1000)
    device_id: Optional[str] = Field(None, max_length=100, examples=["pos-terminal-01"])

    items: List[OrderItemCreate] = Field(..., min_length=1)

    @field_validator("order_type", mode="before")
    @classmethod
    def normalize_order_type(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class OrderStatusUpdate(CamelModel):
    """New status; validated against OrderStatus by the service."""
    status: str = Field(..., min_length=1, examples=["CONFIRMED"])
    expected_version: Optional[int] = Field(None, ge=1)


class OrderSyncAck(CamelModel):
    """Downstream acknowledgement that a given version has been synced."""
    version: int = Field(..., ge=1)


# =============================================================================
# ORDER RESPONSE SCHEMAS
# =============================================================================

class OrderItemResponse(CamelModel):
    id: uuid.UUID
    menu_item_id: Optional[uuid.UUID]
    item_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    special_instructions: Optional[str]
    status: OrderItemStatus


class OrderResponse(CamelModel):
    """Full projection of a persisted order."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    table_id: Optional[uuid.UUID]
    customer_name: Optional[str]
    customer_phone: Optional[str]
    order_type: OrderType
    status: OrderStatus
    notes: Optional[str]
    device_id: Optional[str]
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total_amount: Decimal
    is_deleted: bool
    version: int
    synced_at: Optional[datetime]
    created_at: datetime
    updated_at: Optional[datetime]
    items: List[OrderItemResponse]


class OrderListResponse(CamelModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


# =============================================================================
# GENERIC
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    identity_provider: str
    timestamp: datetime
