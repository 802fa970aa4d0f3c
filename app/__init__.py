"""
                Restaurant Billing Backend

Multi-tenant billing backend for restaurants: social-login onboarding,
refresh-token rotation and a versioned order lifecycle with downstream
ledger export.

Author: Khalil_Bannouri
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "Khalil_Bannouri"
