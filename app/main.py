"""
FastAPI Application Entry Point

Restaurant Billing API - multi-tenant onboarding, authentication and
order lifecycle. Identity is verified by a Mock verifier in development and
by Google in staging/production.

Endpoints:
    - POST /auth/google: Login / first-login onboarding
    - POST /auth/refresh: Rotate refresh token
    - GET /auth/me: Current user, tenant and features
    - POST /orders: Create order
    - GET /orders: List orders
    - GET /orders/sync/pending: Orders awaiting downstream sync
    - GET /orders/{id}: Get order
    - PATCH /orders/{id}/status: Change order status
    - POST /orders/{id}/sync: Acknowledge a synced version
    - DELETE /orders/{id}: Soft delete
    - GET /health: System health check

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import redis
from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from app.core.config import get_settings, setup_logging
from app.core.exceptions import AuthenticationError, BillingError, InvalidTokenError
from app.core.security import get_token_service
from app.core.tenant_context import TenantContext, bind_tenant_context, request_id_var
from app.database import engine, get_db, init_db
from app.schemas import (
    AuthResponse,
    CurrentUserResponse,
    ErrorResponse,
    GoogleLoginRequest,
    HealthResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderSyncAck,
    RefreshTokenRequest,
)
from app.services.auth_service import AuthService
from app.services.identity import get_identity_verifier
from app.services.order_service import OrderService
from app.tasks import queue_order_export

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Log service configuration
    verifier = get_identity_verifier()
    logger.info(f"Identity Verifier: {verifier.provider_name}")
    logger.info(f"Order export: {'enabled' if settings.order_export_enabled else 'disabled'}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant billing backend: Google sign-in onboarding, "
        "token rotation and versioned order lifecycle."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Assign a request id (or reuse the caller's) for log correlation."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_tenant_context(
    authorization: Optional[str] = Header(None),
) -> TenantContext:
    """Resolve the caller's tenant and user from the bearer access token."""
    if not authorization:
        raise AuthenticationError("Missing bearer token")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("Authorization header must be 'Bearer <token>'")

    claims = get_token_service().decode_access_token(token.strip())
    ctx = TenantContext.from_claims(claims)
    bind_tenant_context(ctx)
    return ctx


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(db)


def get_order_service(db: AsyncSession = Depends(get_db)) -> OrderService:
    return OrderService(db)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check identity verifier
    verifier = get_identity_verifier()
    identity_status = "healthy" if await verifier.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, identity_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        identity_provider=f"{verifier.provider_name}: {identity_status}",
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/auth/google",
    response_model=AuthResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
    summary="Login with Google",
)
async def google_login(
    request: GoogleLoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Log in with a Google identity.

    The first login for an email onboards a new restaurant (tenant) with
    the caller as OWNER.
    """
    return await auth_service.google_login(request)


@app.post(
    "/auth/refresh",
    response_model=AuthResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
    summary="Rotate Refresh Token",
)
async def refresh_token(
    request: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a refresh token for a new pair. The old token stops working."""
    return await auth_service.refresh(request)


@app.get(
    "/auth/me",
    response_model=CurrentUserResponse,
    responses=ERROR_RESPONSES,
    tags=["Auth"],
)
async def current_user(
    ctx: TenantContext = Depends(get_tenant_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> CurrentUserResponse:
    return await auth_service.get_current_user(ctx)


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Create a new order.

    Prices are taken from the tenant's menu at creation time; totals are
    computed with the tenant's tax and service-charge rates.
    """
    order = await order_service.create_order(ctx, order_data)
    queue_order_export(order)
    return order


@app.get(
    "/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Non-deleted orders of the caller's restaurant, oldest first."""
    orders = await order_service.list_orders(ctx)
    return OrderListResponse(total=len(orders), orders=orders)


@app.get(
    "/orders/sync/pending",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Orders Pending Sync",
)
async def list_pending_sync(
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    orders = await order_service.list_pending_sync(ctx)
    return OrderListResponse(total=len(orders), orders=orders)


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: uuid.UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    return await order_service.get_order(ctx, order_id)


@app.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: uuid.UUID,
    update: OrderStatusUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Change the status of an order.

    Send ``expectedVersion`` to fail with 409 instead of overwriting a
    change made by another device.
    """
    order = await order_service.update_order_status(
        ctx, order_id, update.status, expected_version=update.expected_version
    )
    queue_order_export(order)
    return order


@app.post(
    "/orders/{order_id}/sync",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Acknowledge Order Sync",
)
async def acknowledge_sync(
    order_id: uuid.UUID,
    ack: OrderSyncAck,
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return await order_service.mark_synced(ctx, order_id, ack.version)


@app.delete(
    "/orders/{order_id}",
    status_code=204,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Delete Order",
)
async def delete_order(
    order_id: uuid.UUID,
    expected_version: Optional[int] = Query(None, alias="expectedVersion", ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    order_service: OrderService = Depends(get_order_service),
) -> Response:
    """Soft delete. The order disappears from listings but is still exported."""
    order = await order_service.delete_order(ctx, order_id, expected_version=expected_version)
    queue_order_export(order)
    return Response(status_code=204)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Render domain failures with the status code carried by the exception."""
    if exc.status_code == 401:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} failed ({exc.status_code}): {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, detail=exc.message).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
