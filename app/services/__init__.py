"""
                        Services Module

Business logic, one service per concern. External providers follow the
Mock (development) / Real (production) pattern.

Services:
    - auth_service: Onboarding, login and refresh-token rotation
    - order_service: Order aggregate, totals and versioned mutations
    - feature_service: Default tenant feature flags
    - identity: Mock / Google identity verification
    - order_export: Per-tenant Excel ledger with file locking
"""

from app.services.auth_service import AuthService
from app.services.feature_service import FeatureService
from app.services.order_export import OrderLedgerExporter, get_order_exporter
from app.services.order_service import OrderService, calculate_order_totals

__all__ = [
    "AuthService",
    "FeatureService",
    "OrderService",
    "OrderLedgerExporter",
    "calculate_order_totals",
    "get_order_exporter",
]
