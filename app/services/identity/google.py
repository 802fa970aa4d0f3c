"""
Google Identity Verifier

Production implementation that validates Google ID tokens with Google's
tokeninfo endpoint. Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - GOOGLE_CLIENT_ID must be set in environment (expected token audience)

API Documentation:
    https://developers.google.com/identity/sign-in/web/backend-auth

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from typing import Any, Optional

import httpx

from app.core.config import get_settings
from app.core.exceptions import InvalidTokenError
from app.services.identity.base import BaseIdentityVerifier, VerifiedIdentity

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


class GoogleIdentityVerifier(BaseIdentityVerifier):
    """
    Verifies ID tokens against Google before trusting the submitted email.

    Checks performed:
        1. Google accepts the token (signature, expiry)
        2. Issuer is Google and audience is our client id
        3. Email is verified and equals the submitted email
        4. Subject equals the submitted Google id (when one is given)

    Example:
        >>> verifier = GoogleIdentityVerifier()
        >>> identity = await verifier.verify(
        ...     email="owner@pizzeria.com",
        ...     name="Asha Rao",
        ...     google_id="1082...",
        ...     id_token="eyJhbGciOi...",
        ... )
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        tokeninfo_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the verifier.

        Raises:
            ValueError: If GOOGLE_CLIENT_ID is not configured
        """
        settings = get_settings()

        self._client_id = client_id or settings.google_client_id
        if not self._client_id:
            raise ValueError(
                "GOOGLE_CLIENT_ID is required for production mode. "
                "Set it in your .env file or environment variables."
            )
        self._tokeninfo_url = tokeninfo_url or settings.google_tokeninfo_url
        self._timeout = timeout or settings.identity_request_timeout
        self._transport = transport

        logger.info("GoogleIdentityVerifier initialized")

    @property
    def provider_name(self) -> str:
        return "google"

    async def _fetch_token_info(self, id_token: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(self._tokeninfo_url, params={"id_token": id_token})
            except httpx.HTTPError as e:
                logger.error(f"Google: tokeninfo request failed - {e}")
                raise InvalidTokenError("Identity provider unavailable") from e

        if response.status_code != 200:
            logger.warning(f"Google: ID token rejected ({response.status_code})")
            raise InvalidTokenError("Google ID token rejected")
        return response.json()

    async def verify(
        self,
        email: str,
        name: str,
        google_id: Optional[str],
        id_token: Optional[str],
    ) -> VerifiedIdentity:
        if not id_token:
            raise InvalidTokenError("Google ID token is required")

        info = await self._fetch_token_info(id_token)

        if info.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidTokenError("ID token was not issued by Google")
        if info.get("aud") != self._client_id:
            raise InvalidTokenError("ID token was issued for another client")
        # tokeninfo returns booleans as strings
        if str(info.get("email_verified", "")).lower() != "true":
            raise InvalidTokenError("Google account email is not verified")

        token_email = str(info.get("email", "")).strip().lower()
        if token_email != email.strip().lower():
            raise InvalidTokenError("ID token email does not match the request")
        if google_id and info.get("sub") != google_id:
            raise InvalidTokenError("ID token subject does not match the request")

        logger.info(f"Google: verified identity {token_email}")
        return VerifiedIdentity(
            email=token_email,
            name=info.get("name") or name.strip(),
            google_id=info.get("sub"),
        )

    async def health_check(self) -> bool:
        """Configured verifiers are considered healthy; Google is not probed."""
        return bool(self._client_id)
