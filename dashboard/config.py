"""
Dashboard configuration — all environment variables in one place.

Read from environment at import time. Components accept explicit overrides,
so tests never need to touch the environment.
"""

from __future__ import annotations

import os


def _float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


class Settings:
    """Application settings from environment variables."""

    # REST backend
    API_URL: str = os.environ.get("DASHBOARD_API_URL", "http://localhost:5000/api")
    API_TOKEN: str = os.environ.get("DASHBOARD_API_TOKEN", "")
    REQUEST_TIMEOUT_SECONDS: float = _float("REQUEST_TIMEOUT_SECONDS", 10.0)

    # Quiet periods
    SEARCH_DEBOUNCE_SECONDS: float = _float("SEARCH_DEBOUNCE_SECONDS", 0.3)
    SUBMIT_QUIET_PERIOD_SECONDS: float = _float("SUBMIT_QUIET_PERIOD_SECONDS", 0.5)

    # Real-time channel
    DEDUP_WINDOW_SIZE: int = _int("DEDUP_WINDOW_SIZE", 500)

    # Notifications
    NOTIFICATION_CAPACITY: int = _int("NOTIFICATION_CAPACITY", 100)
    NOTIFICATION_BUCKET_SECONDS: int = _int("NOTIFICATION_BUCKET_SECONDS", 60)

    # Lookup caches
    BRANCH_CACHE_TTL_SECONDS: float = _float("BRANCH_CACHE_TTL_SECONDS", 300.0)


settings = Settings()
