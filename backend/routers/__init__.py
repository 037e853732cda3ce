"""API routers."""
from backend.routers import admin, health, matches, realtime, referrals, requests, wallet

__all__ = [
    "admin",
    "health",
    "matches",
    "realtime",
    "referrals",
    "requests",
    "wallet",
]
