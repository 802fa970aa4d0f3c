"""
Mock Identity Verifier

Trusts the identity submitted with the login request without contacting
Google. Used in development mode (ENV_MODE=development) to:
    - Exercise onboarding and login locally
    - Drive the simulation script with throwaway accounts
    - Run the test-suite offline

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Optional

from app.services.identity.base import BaseIdentityVerifier, VerifiedIdentity

logger = logging.getLogger(__name__)


class MockIdentityVerifier(BaseIdentityVerifier):
    """Development verifier - the submitted email/name are taken as-is."""

    def __init__(self):
        logger.info("MockIdentityVerifier initialized (ID tokens are NOT verified)")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def verify(
        self,
        email: str,
        name: str,
        google_id: Optional[str],
        id_token: Optional[str],
    ) -> VerifiedIdentity:
        logger.debug(f"Mock: accepting identity {email}")
        return VerifiedIdentity(
            email=email.strip().lower(),
            name=name.strip(),
            google_id=google_id,
        )

    async def health_check(self) -> bool:
        return True
