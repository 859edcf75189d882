# src/yogic_ledger/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .activity import router as activity_router
from .auth import router as auth_router
from .internal import router as internal_router
from .referrals import router as referrals_router
from .rewards import router as rewards_router
from .system import router as system_router

__all__ = [
    "activity_router",
    "auth_router",
    "internal_router",
    "referrals_router",
    "rewards_router",
    "system_router",
]
