"""
Tenant Context

The authenticated identity of a request (tenant, user, role). It is built
from the access token by the API layer and passed explicitly into every
service call; services never look it up from shared state.

The request id and tenant id are additionally published through context
variables so log records can be correlated with the request that produced
them. Context variables are copied per asyncio task, so concurrent requests
never observe each other's values.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Optional

from app.core.exceptions import InvalidTokenError

# Log correlation only - business logic receives TenantContext explicitly
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
tenant_id_var: ContextVar[str] = ContextVar("tenant_id", default="-")

SYSTEM_ROLE = "SYSTEM"


@dataclass(frozen=True)
class TenantContext:
    """
    Identity a service call executes on behalf of.

    Attributes:
        tenant_id: Tenant every read/write is scoped to
        user_id: Authenticated user (None for background jobs)
        email: Authenticated user's email
        role: User role name, or SYSTEM for background jobs
    """
    tenant_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    role: str = SYSTEM_ROLE

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TenantContext":
        """Build a context from decoded access-token claims."""
        try:
            return cls(
                tenant_id=uuid.UUID(str(claims["tenant_id"])),
                user_id=uuid.UUID(str(claims["sub"])),
                email=claims.get("email"),
                role=str(claims.get("role", "")),
            )
        except (KeyError, ValueError) as e:
            raise InvalidTokenError("Access token is missing tenant claims") from e

    @classmethod
    def system(cls, tenant_id: uuid.UUID) -> "TenantContext":
        """Context for work done by the platform itself (e.g. sync workers)."""
        return cls(tenant_id=tenant_id)

    @property
    def is_system(self) -> bool:
        return self.role == SYSTEM_ROLE


def bind_tenant_context(ctx: TenantContext) -> None:
    """Publish the tenant id of the current request for log records."""
    tenant_id_var.set(str(ctx.tenant_id))


class RequestContextFilter(logging.Filter):
    """Adds ``request_id`` and ``tenant_id`` attributes to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.tenant_id = tenant_id_var.get()
        return True
