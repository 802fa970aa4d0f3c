"""
Token Service

Issues and validates the signed credentials used by the API:

    - Access tokens carry user id, email, tenant id and role and live for
      minutes to hours.
    - Refresh tokens carry only the user id (plus a random jti so two tokens
      issued in the same second never collide) and live for days.

The service is a pure function of its signing key and the token it is
given; rotation bookkeeping lives in AuthService.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import jwt
from jwt.exceptions import ExpiredSignatureError, PyJWTError

from app.core.config import get_settings
from app.core.exceptions import ExpiredTokenError, InvalidTokenError, TokenError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class TokenService:
    """
    HMAC-signed JWT issuer/validator.

    Example:
        >>> service = TokenService(secret_key="s3cret")
        >>> token = service.issue_refresh_token(user_id)
        >>> service.validate(token, token_type="refresh")
        True
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(minutes=60),
        refresh_token_ttl: timedelta = timedelta(days=7),
    ):
        if not secret_key:
            raise ValueError("A signing key is required")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl

    def _encode(self, claims: dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def _decode(self, token: str, verify_exp: bool = True) -> dict[str, Any]:
        return jwt.decode(
            token,
            self._secret_key,
            algorithms=[self._algorithm],
            options={"require": ["exp", "sub"], "verify_exp": verify_exp},
        )

    # =========================================================================
    # ISSUING
    # =========================================================================

    def issue_access_token(
        self,
        user_id: uuid.UUID,
        email: str,
        tenant_id: uuid.UUID,
        role: str,
    ) -> str:
        """Issue a short-lived access token for a user of a tenant."""
        return self._encode(
            {
                "sub": str(user_id),
                "email": email,
                "tenant_id": str(tenant_id),
                "role": role,
                "type": ACCESS_TOKEN_TYPE,
            },
            self.access_token_ttl,
        )

    def issue_refresh_token(self, user_id: uuid.UUID) -> str:
        """Issue a long-lived refresh token carrying only the user id."""
        return self._encode(
            {
                "sub": str(user_id),
                "type": REFRESH_TOKEN_TYPE,
                "jti": secrets.token_urlsafe(16),
            },
            self.refresh_token_ttl,
        )

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, token: Optional[str], token_type: Optional[str] = None) -> bool:
        """
        Check signature and expiry (and the token type when given).

        Never raises; any malformed input is simply reported as invalid.
        """
        if not token or not isinstance(token, str):
            return False
        try:
            claims = self._decode(token)
        except PyJWTError as e:
            logger.debug(f"Token rejected: {e}")
            return False
        if token_type is not None and claims.get("type") != token_type:
            logger.debug(f"Token rejected: expected {token_type}, got {claims.get('type')}")
            return False
        return True

    def extract_subject(self, token: str) -> uuid.UUID:
        """
        Return the user id a token was issued to.

        Verifies the signature but not the expiry.

        Raises:
            TokenError: If the token is malformed, foreign or has no UUID subject
        """
        try:
            claims = self._decode(token, verify_exp=False)
            return uuid.UUID(str(claims["sub"]))
        except (PyJWTError, KeyError, ValueError) as e:
            raise TokenError("Token is malformed or was not issued by this service") from e

    def decode_access_token(self, token: str) -> dict[str, Any]:
        """
        Return the claims of a valid access token.

        Raises:
            ExpiredTokenError: If the token has expired
            InvalidTokenError: For any other defect (signature, type, shape)
        """
        try:
            claims = self._decode(token)
        except ExpiredSignatureError as e:
            raise ExpiredTokenError("Access token expired") from e
        except PyJWTError as e:
            raise InvalidTokenError("Invalid access token") from e

        if claims.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError("Not an access token")
        return claims


@lru_cache()
def get_token_service() -> TokenService:
    """Get the token service configured from application settings."""
    settings = get_settings()
    return TokenService(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        access_token_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_token_ttl=timedelta(days=settings.refresh_token_expire_days),
    )
