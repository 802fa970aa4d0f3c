"""Tests for onboarding, login and refresh-token rotation."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import ExpiredTokenError, InvalidTokenError, NotFoundError
from app.core.tenant_context import TenantContext
from app.models import (
    SubscriptionPlan,
    SubscriptionStatus,
    Tenant,
    TenantFeature,
    User,
    UserRole,
    as_utc,
    utcnow,
)
from app.schemas import GoogleLoginRequest, RefreshTokenRequest
from app.services.auth_service import AuthService
from app.services.feature_service import DEFAULT_FEATURES, FeatureService
from app.services.identity import MockIdentityVerifier, VerifiedIdentity


@pytest.fixture
def auth_service(db_session, token_service) -> AuthService:
    return AuthService(db_session, token_service=token_service, identity_verifier=MockIdentityVerifier())


def identity(email: str = "owner@pizzeria.com") -> VerifiedIdentity:
    return VerifiedIdentity(email=email, name="Asha Rao", google_id="g-123")


async def count(db_session, model) -> int:
    return await db_session.scalar(select(func.count()).select_from(model))


# =============================================================================
# LOGIN
# =============================================================================

@pytest.mark.asyncio
async def test_first_login_onboards_tenant(auth_service, db_session, token_service):
    response = await auth_service.login(identity())

    assert response.token_type == "Bearer"
    assert response.user.email == "owner@pizzeria.com"
    assert response.user.role == UserRole.OWNER
    assert response.tenant.restaurant_name == "Asha Rao's Restaurant"
    assert response.tenant.subscription_plan == SubscriptionPlan.TRIAL
    assert response.tenant.subscription_status == SubscriptionStatus.TRIAL
    assert response.tenant.currency == "INR"
    assert response.tenant.timezone == "Asia/Kolkata"
    assert response.tenant.max_users == 5
    assert response.tenant.tax_rate == Decimal("0.05")

    trial_days = (as_utc(response.tenant.trial_end_date) - utcnow()).days
    assert trial_days in (6, 7)

    claims = token_service.decode_access_token(response.access_token)
    assert claims["tenant_id"] == str(response.tenant.id)
    assert claims["role"] == "OWNER"

    user = await db_session.get(User, response.user.id)
    assert user.refresh_token == response.refresh_token
    assert as_utc(user.refresh_token_expiry) > utcnow() + timedelta(days=6)


@pytest.mark.asyncio
async def test_first_login_initializes_default_features(auth_service, db_session):
    response = await auth_service.login(identity())

    features = await FeatureService(db_session).get_enabled_features(response.tenant.id)
    assert features == DEFAULT_FEATURES


@pytest.mark.asyncio
async def test_repeat_login_creates_nothing(auth_service, db_session):
    first = await auth_service.login(identity())
    second = await auth_service.login(identity())

    assert second.tenant.id == first.tenant.id
    assert second.user.id == first.user.id
    assert second.refresh_token != first.refresh_token
    assert await count(db_session, Tenant) == 1
    assert await count(db_session, User) == 1
    assert await count(db_session, TenantFeature) == len(DEFAULT_FEATURES)


@pytest.mark.asyncio
async def test_login_replaces_previous_refresh_token(auth_service):
    first = await auth_service.login(identity())
    await auth_service.login(identity())

    with pytest.raises(ExpiredTokenError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token=first.refresh_token))


@pytest.mark.asyncio
async def test_concurrent_first_login_falls_back_to_existing_account(
    auth_service, db_session, session_maker, token_service, monkeypatch
):
    async with session_maker() as other:
        winner = await AuthService(
            other, token_service=token_service, identity_verifier=MockIdentityVerifier()
        ).login(identity())

    # The losing request looked the email up before the winner committed
    real_lookup = auth_service._find_user_by_email
    lookups = []

    async def stale_then_real(email):
        lookups.append(email)
        if len(lookups) == 1:
            return None
        return await real_lookup(email)

    monkeypatch.setattr(auth_service, "_find_user_by_email", stale_then_real)

    response = await auth_service.login(identity())

    assert len(lookups) == 2
    assert response.user.id == winner.user.id
    assert response.tenant.id == winner.tenant.id
    assert await count(db_session, Tenant) == 1
    assert await count(db_session, User) == 1
    stored = await db_session.scalar(select(User.refresh_token).where(User.id == winner.user.id))
    assert stored == response.refresh_token


@pytest.mark.asyncio
async def test_google_login_goes_through_verifier(auth_service):
    request = GoogleLoginRequest(email="  Chef@Example.COM ", name="  Ravi ", google_id="g-1")

    response = await auth_service.google_login(request)

    assert response.user.email == "chef@example.com"
    assert response.user.name == "Ravi"


# =============================================================================
# REFRESH
# =============================================================================

@pytest.mark.asyncio
async def test_refresh_rotates_token(auth_service, db_session):
    login = await auth_service.login(identity())

    refreshed = await auth_service.refresh(RefreshTokenRequest(refresh_token=login.refresh_token))

    assert refreshed.refresh_token != login.refresh_token
    assert refreshed.user.id == login.user.id
    user = await db_session.get(User, login.user.id)
    assert user.refresh_token == refreshed.refresh_token

    with pytest.raises(ExpiredTokenError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token=login.refresh_token))


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(auth_service):
    login = await auth_service.login(identity())

    with pytest.raises(InvalidTokenError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token=login.access_token))


@pytest.mark.asyncio
async def test_refresh_rejects_garbage(auth_service):
    with pytest.raises(InvalidTokenError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token="not-a-token"))


@pytest.mark.asyncio
async def test_refresh_for_unknown_user(auth_service, token_service):
    token = token_service.issue_refresh_token(uuid.uuid4())

    with pytest.raises(NotFoundError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token=token))


@pytest.mark.asyncio
async def test_refresh_after_stored_expiry(auth_service, db_session):
    login = await auth_service.login(identity())
    user = await db_session.get(User, login.user.id)
    user.refresh_token_expiry = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    with pytest.raises(ExpiredTokenError):
        await auth_service.refresh(RefreshTokenRequest(refresh_token=login.refresh_token))


@pytest.mark.asyncio
async def test_concurrent_refresh_only_one_rotation_wins(auth_service, session_maker, token_service):
    login = await auth_service.login(identity())
    request = RefreshTokenRequest(refresh_token=login.refresh_token)

    async with session_maker() as first, session_maker() as second:
        first_service = AuthService(first, token_service=token_service)
        second_service = AuthService(second, token_service=token_service)
        # Both requests read the user before either rotates
        await first.get(User, login.user.id)
        await second.get(User, login.user.id)

        winner = await first_service.refresh(request)
        with pytest.raises(ExpiredTokenError):
            await second_service.refresh(request)

    async with session_maker() as check:
        stored = await check.scalar(select(User.refresh_token).where(User.id == login.user.id))
    assert stored == winner.refresh_token


# =============================================================================
# CURRENT USER
# =============================================================================

@pytest.mark.asyncio
async def test_get_current_user(auth_service):
    login = await auth_service.login(identity())
    ctx = TenantContext(tenant_id=login.tenant.id, user_id=login.user.id, role="OWNER")

    me = await auth_service.get_current_user(ctx)

    assert me.user.id == login.user.id
    assert me.tenant.id == login.tenant.id
    assert me.features["orders"] is True
    assert me.features["reports"] is False


@pytest.mark.asyncio
async def test_get_current_user_in_wrong_tenant(auth_service):
    login = await auth_service.login(identity())
    ctx = TenantContext(tenant_id=uuid.uuid4(), user_id=login.user.id, role="OWNER")

    with pytest.raises(NotFoundError):
        await auth_service.get_current_user(ctx)


@pytest.mark.asyncio
async def test_feature_initialization_is_idempotent(db_session, tenant):
    service = FeatureService(db_session)

    created = await service.initialize_default_features(tenant.id)
    again = await service.initialize_default_features(tenant.id)
    await db_session.commit()

    assert len(created) == len(DEFAULT_FEATURES)
    assert again == []
