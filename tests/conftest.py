"""Pytest configuration and fixtures."""

import os

# Settings are cached on first use; pin the test environment before any app import
os.environ["ENV_MODE"] = "development"
os.environ["ORDER_EXPORT_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-signing-key-for-restaurant-billing-suite"

import uuid
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.security import TokenService
from app.core.tenant_context import TenantContext
from app.database import Base, get_db
from app.models import MenuItem, RestaurantTable, Tenant, utcnow

TEST_SECRET = "test-signing-key-for-restaurant-billing-suite"


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    import app.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret_key=TEST_SECRET)


# =============================================================================
# DATA FIXTURES
# =============================================================================

async def create_tenant(
    session: AsyncSession,
    tax_rate: str = "0.05",
    service_charge_rate: str = "0.10",
) -> Tenant:
    tenant = Tenant(
        id=uuid.uuid4(),
        owner_email=f"owner-{uuid.uuid4().hex[:8]}@example.com",
        owner_name="Test Owner",
        restaurant_name="Test Owner's Restaurant",
        trial_end_date=utcnow(),
        tax_rate=Decimal(tax_rate),
        service_charge_rate=Decimal(service_charge_rate),
    )
    session.add(tenant)
    await session.commit()
    return tenant


async def create_menu_item(
    session: AsyncSession,
    tenant: Tenant,
    name: str,
    price: str,
) -> MenuItem:
    item = MenuItem(id=uuid.uuid4(), tenant_id=tenant.id, name=name, price=Decimal(price))
    session.add(item)
    await session.commit()
    return item


async def create_table(session: AsyncSession, tenant: Tenant, number: str = "T1") -> RestaurantTable:
    table = RestaurantTable(id=uuid.uuid4(), tenant_id=tenant.id, table_number=number)
    session.add(table)
    await session.commit()
    return table


@pytest_asyncio.fixture
async def tenant(db_session) -> Tenant:
    return await create_tenant(db_session)


@pytest.fixture
def ctx(tenant) -> TenantContext:
    return TenantContext(tenant_id=tenant.id, user_id=uuid.uuid4(), email="owner@example.com", role="OWNER")


@pytest_asyncio.fixture
async def menu(db_session, tenant) -> dict[str, MenuItem]:
    return {
        "naan": await create_menu_item(db_session, tenant, "Garlic Naan", "10.00"),
        "chai": await create_menu_item(db_session, tenant, "Masala Chai", "5.00"),
    }


# =============================================================================
# API CLIENT
# =============================================================================

@pytest_asyncio.fixture
async def client(session_maker):
    """HTTP client bound to the app, with database sessions from the test engine."""
    from app.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
