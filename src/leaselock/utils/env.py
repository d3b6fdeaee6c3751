"""Environment lookups for connection and logging defaults."""

from __future__ import annotations

import os
from typing import Optional


DEFAULT_REDIS_URL = "redis://localhost:6379/0"
REDIS_URL_VARIABLES = ("LEASELOCK_REDIS_URL", "REDIS_URL")

_DISABLED = frozenset({"0", "false", "no", "off"})


def env_flag(name: str, *, default: bool = False) -> bool:
    """Read an on/off switch; unset or blank keeps ``default``."""
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw not in _DISABLED


def redis_url_from_env(override: Optional[str] = None) -> str:
    """Pick the Redis URL: explicit value, then LEASELOCK_REDIS_URL, then REDIS_URL."""
    if override:
        return override
    for variable in REDIS_URL_VARIABLES:
        value = os.getenv(variable)
        if value:
            return value
    return DEFAULT_REDIS_URL
