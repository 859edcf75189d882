# src/yogic_ledger/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    activity_router,
    auth_router,
    internal_router,
    referrals_router,
    rewards_router,
    system_router,
)

__all__ = [
    "activity_router",
    "auth_router",
    "internal_router",
    "referrals_router",
    "rewards_router",
    "system_router",
]
