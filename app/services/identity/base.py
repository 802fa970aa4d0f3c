"""
Identity Verifier Abstract Base Class

Defines the interface contract for turning a social-login request into a
trusted identity. Both MockIdentityVerifier and GoogleIdentityVerifier
implement it, so AuthService behaves identically regardless of which one
is active.

Design Pattern: Strategy Pattern
    - Development trusts the submitted identity (no Google project needed)
    - Staging/production verify the Google ID token with the issuer

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class VerifiedIdentity:
    """
    Identity AuthService is allowed to trust.

    Attributes:
        email: Normalized (lower-case) email, the account de-duplication key
        name: Display name
        google_id: Subject id at the identity provider
    """
    email: str
    name: str
    google_id: Optional[str] = None


class BaseIdentityVerifier(ABC):
    """Abstract base class for identity verifiers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g. "mock", "google")."""
        pass

    @abstractmethod
    async def verify(
        self,
        email: str,
        name: str,
        google_id: Optional[str],
        id_token: Optional[str],
    ) -> VerifiedIdentity:
        """
        Verify a login request.

        Args:
            email: Email submitted by the client
            name: Display name submitted by the client
            google_id: Google subject id submitted by the client
            id_token: Google ID token issued to the client

        Returns:
            VerifiedIdentity: Identity to log in as

        Raises:
            InvalidTokenError: If the request cannot be trusted
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the provider is usable."""
        pass
