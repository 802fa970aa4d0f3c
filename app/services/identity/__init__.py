"""
Identity Verifier Factory

Provides a single entry point for obtaining an identity verifier.
The factory pattern keeps AuthService agnostic about which one is used.

Usage:
    from app.services.identity import get_identity_verifier

    verifier = get_identity_verifier()
    identity = await verifier.verify(email, name, google_id, id_token)

Environment Switching:
    - ENV_MODE=development → MockIdentityVerifier (trusts the request)
    - ENV_MODE=staging → GoogleIdentityVerifier (test client id)
    - ENV_MODE=production → GoogleIdentityVerifier

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from app.core.config import get_settings
from app.services.identity.base import BaseIdentityVerifier, VerifiedIdentity
from app.services.identity.google import GoogleIdentityVerifier
from app.services.identity.mock import MockIdentityVerifier

logger = logging.getLogger(__name__)


@lru_cache()
def get_identity_verifier() -> BaseIdentityVerifier:
    """
    Get the configured identity verifier instance (cached).

    Raises:
        ValueError: If production mode but GOOGLE_CLIENT_ID is not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Identity Verifier: Using MockIdentityVerifier (development mode)")
        return MockIdentityVerifier()

    logger.info(
        f"Identity Verifier: Using GoogleIdentityVerifier "
        f"({settings.env_mode.value} mode)"
    )
    return GoogleIdentityVerifier()


def reset_identity_verifier() -> None:
    """
    Clear the cached verifier instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_identity_verifier.cache_clear()
    logger.debug("Identity verifier cache cleared")


__all__ = [
    "get_identity_verifier",
    "reset_identity_verifier",
    "BaseIdentityVerifier",
    "VerifiedIdentity",
    "MockIdentityVerifier",
    "GoogleIdentityVerifier",
]
