"""
Tenant Feature Flags

Seeds the default feature set of a freshly onboarded tenant and reads the
flags back. Initialization runs inside the onboarding transaction so a
tenant never exists without its features.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import TenantFeature

logger = logging.getLogger(__name__)

DEFAULT_FEATURES: dict[str, bool] = {
    "orders": True,
    "tables": True,
    "menu": True,
    "offline_sync": True,
    "kitchen_display": False,
    "reports": False,
}


class FeatureService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def initialize_default_features(self, tenant_id: uuid.UUID) -> list[TenantFeature]:
        """
        Add the default flags for a tenant. Keys that already exist are left
        untouched, so calling this twice is harmless.

        Does not commit; the caller owns the transaction.
        """
        result = await self.db.execute(
            select(TenantFeature.feature_key).where(TenantFeature.tenant_id == tenant_id)
        )
        existing = set(result.scalars().all())

        created = []
        for key, enabled in DEFAULT_FEATURES.items():
            if key in existing:
                continue
            feature = TenantFeature(tenant_id=tenant_id, feature_key=key, is_enabled=enabled)
            self.db.add(feature)
            created.append(feature)

        await self.db.flush()
        logger.info(f"Initialized {len(created)} default features for tenant {tenant_id}")
        return created

    async def get_enabled_features(self, tenant_id: uuid.UUID) -> dict[str, bool]:
        result = await self.db.execute(
            select(TenantFeature).where(TenantFeature.tenant_id == tenant_id)
        )
        return {f.feature_key: bool(f.is_enabled) for f in result.scalars().all()}
