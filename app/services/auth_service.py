"""
Authentication Service

Onboarding, login and refresh-token rotation.

Login:
    - First login for an email creates the tenant, its OWNER user and the
      default features in a single transaction.
    - Later logins only touch last-login.
    - Every login issues a fresh access/refresh pair and stores the refresh
      token on the user, replacing the previous one.

Refresh:
    - The presented refresh token must validate, belong to an existing user,
      equal the stored token and not be past the stored expiry.
    - Rotation is a compare-and-swap on the stored token, so a refresh token
      can be redeemed exactly once.

Author: Khalil Bannouri
Version: 1.0.0
"""

import hmac
import logging
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import ExpiredTokenError, InvalidTokenError, NotFoundError
from app.core.security import REFRESH_TOKEN_TYPE, TokenService, get_token_service
from app.core.tenant_context import TenantContext
from app.models import (
    AuthProvider,
    SubscriptionPlan,
    SubscriptionStatus,
    Tenant,
    User,
    UserRole,
    as_utc,
    utcnow,
)
from app.schemas import (
    AuthResponse,
    CurrentUserResponse,
    GoogleLoginRequest,
    RefreshTokenRequest,
    TenantResponse,
    UserResponse,
)
from app.services.feature_service import FeatureService
from app.services.identity import BaseIdentityVerifier, VerifiedIdentity, get_identity_verifier

logger = logging.getLogger(__name__)

# Social-login users never authenticate with a password
SOCIAL_LOGIN_PASSWORD_HASH = "PasswordHash"


class AuthService:
    """
    Tenant-scoped authentication.

    Collaborators default to the application-wide instances; tests pass
    their own.
    """

    def __init__(
        self,
        db: AsyncSession,
        token_service: Optional[TokenService] = None,
        identity_verifier: Optional[BaseIdentityVerifier] = None,
        feature_service: Optional[FeatureService] = None,
    ):
        self.db = db
        self.settings = get_settings()
        self.token_service = token_service or get_token_service()
        self.identity_verifier = identity_verifier or get_identity_verifier()
        self.feature_service = feature_service or FeatureService(db)

    # =========================================================================
    # LOGIN
    # =========================================================================

    async def google_login(self, request: GoogleLoginRequest) -> AuthResponse:
        """Verify a Google sign-in request, then log the identity in."""
        identity = await self.identity_verifier.verify(
            email=request.email,
            name=request.name,
            google_id=request.google_id,
            id_token=request.id_token,
        )
        return await self.login(identity)

    async def login(self, identity: VerifiedIdentity) -> AuthResponse:
        """
        Log in a verified identity, onboarding a new tenant on first sight.

        Returns:
            AuthResponse: Fresh token pair plus user and tenant projections
        """
        user = await self._find_user_by_email(identity.email)

        if user is None:
            try:
                user = await self._onboard(identity)
            except IntegrityError:
                # Another request onboarded the same email first
                await self.db.rollback()
                logger.info(f"Concurrent onboarding for {identity.email}; using existing account")
                user = await self._find_user_by_email(identity.email)
                if user is None:
                    raise
                user.last_login = utcnow()
        else:
            user.last_login = utcnow()

        tenant = await self._get_tenant(user.tenant_id)
        response = await self._issue_tokens(user, tenant)
        logger.info(f"User {user.id} logged in to tenant {tenant.id}")
        return response

    async def _onboard(self, identity: VerifiedIdentity) -> User:
        """
        Create tenant, owner and default features.

        Everything is flushed in the current transaction and committed
        together with the first refresh token, so a failure leaves nothing
        behind.
        """
        now = utcnow()
        settings = self.settings

        tenant = Tenant(
            id=uuid.uuid4(),
            owner_email=identity.email,
            owner_name=identity.name,
            restaurant_name=f"{identity.name}'s Restaurant",
            subscription_plan=SubscriptionPlan.TRIAL,
            subscription_status=SubscriptionStatus.TRIAL,
            trial_end_date=now + timedelta(days=settings.trial_period_days),
            is_active=True,
            max_users=settings.default_max_users,
            max_storage_gb=settings.default_max_storage_gb,
            currency=settings.default_currency,
            timezone=settings.default_timezone,
            tax_rate=settings.default_tax_rate,
            service_charge_rate=settings.default_service_charge_rate,
        )
        self.db.add(tenant)
        await self.db.flush()

        user = User(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            email=identity.email,
            name=identity.name,
            google_id=identity.google_id,
            role=UserRole.OWNER,
            auth_provider=AuthProvider.GOOGLE,
            is_active=True,
            last_login=now,
            password_hash=SOCIAL_LOGIN_PASSWORD_HASH,
        )
        self.db.add(user)
        await self.db.flush()

        await self.feature_service.initialize_default_features(tenant.id)

        logger.info(f"New tenant created: {tenant.id} (owner {identity.email})")
        return user

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(self, request: RefreshTokenRequest) -> AuthResponse:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            InvalidTokenError: Token does not validate as a refresh token
            NotFoundError: Token subject is not a known user
            ExpiredTokenError: Token was superseded or the stored expiry passed
        """
        presented = request.refresh_token

        if not self.token_service.validate(presented, token_type=REFRESH_TOKEN_TYPE):
            logger.warning("Refresh rejected: invalid refresh token")
            raise InvalidTokenError("Invalid refresh token")

        user_id = self.token_service.extract_subject(presented)
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")

        stored = user.refresh_token
        expiry = as_utc(user.refresh_token_expiry)
        if (
            stored is None
            or not hmac.compare_digest(stored.encode(), presented.encode())
            or expiry is None
            or expiry < utcnow()
        ):
            logger.warning(f"Refresh rejected for user {user.id}: token superseded or expired")
            raise ExpiredTokenError("Refresh token expired")

        tenant = await self._get_tenant(user.tenant_id)
        response = await self._issue_tokens(user, tenant, presented_token=presented)
        logger.info(f"Refresh token rotated for user {user.id}")
        return response

    # =========================================================================
    # CURRENT USER
    # =========================================================================

    async def get_current_user(self, ctx: TenantContext) -> CurrentUserResponse:
        """User, tenant and enabled features of an authenticated context."""
        user = await self.db.get(User, ctx.user_id) if ctx.user_id else None
        if user is None or user.tenant_id != ctx.tenant_id:
            raise NotFoundError("User not found")

        tenant = await self._get_tenant(ctx.tenant_id)
        features = await self.feature_service.get_enabled_features(tenant.id)
        return CurrentUserResponse(
            user=UserResponse.model_validate(user),
            tenant=TenantResponse.model_validate(tenant),
            features=features,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _find_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def _get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        tenant = await self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    async def _issue_tokens(
        self,
        user: User,
        tenant: Tenant,
        presented_token: Optional[str] = None,
    ) -> AuthResponse:
        """
        Issue a token pair, store the refresh token and commit.

        When ``presented_token`` is given the stored token is replaced only
        if it still equals the presented one.
        """
        access_token = self.token_service.issue_access_token(
            user_id=user.id,
            email=user.email,
            tenant_id=tenant.id,
            role=user.role.value,
        )
        refresh_token = self.token_service.issue_refresh_token(user.id)
        expiry = utcnow() + timedelta(days=self.settings.refresh_token_expire_days)

        if presented_token is None:
            user.refresh_token = refresh_token
            user.refresh_token_expiry = expiry
        else:
            result = await self.db.execute(
                update(User)
                .where(User.id == user.id, User.refresh_token == presented_token)
                .values(refresh_token=refresh_token, refresh_token_expiry=expiry)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.db.rollback()
                logger.warning(f"Refresh token for user {user.id} was rotated concurrently")
                raise ExpiredTokenError("Refresh token expired")
            user.refresh_token = refresh_token
            user.refresh_token_expiry = expiry

        await self.db.commit()

        return AuthResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            user=UserResponse.model_validate(user),
            tenant=TenantResponse.model_validate(tenant),
        )
