"""
Core module initialization.
Exports configuration, logging, token and tenant-context utilities.
"""

from app.core.config import get_settings, Settings, EnvironmentMode
from app.core.security import TokenService, get_token_service
from app.core.tenant_context import TenantContext

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "TokenService",
    "get_token_service",
    "TenantContext",
]
