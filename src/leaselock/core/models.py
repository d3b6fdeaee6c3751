"""Data models shared across the lock store, sweeper and backends."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError, InvalidTtlError, LockConflictedError, LockExpiredError


DEFAULT_SPACE = "lock"


class LockRecord(BaseModel):
    """Server-side row tracking the current owner of a resource."""

    key: str
    token: str
    expire: float

    def is_expired(self, now: float) -> bool:
        return self.expire < now


class InsertResult(str, Enum):
    """Outcome of an insert-if-absent request."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class SaveStatus(str, Enum):
    """Outcome of ``LockStore.save``."""

    ACQUIRED = "acquired"
    ALREADY_HELD = "already_held"
    CONFLICTED = "conflicted"
    EXPIRED = "expired"


class SaveResult(BaseModel):
    """Explicit result of a save attempt so callers branch on data."""

    resource: str
    status: SaveStatus
    holder: Optional[LockRecord] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.status in (SaveStatus.ACQUIRED, SaveStatus.ALREADY_HELD)

    def raise_for_status(self) -> "SaveResult":
        """Raise the matching exception for a failed save, return self otherwise."""
        if self.status is SaveStatus.CONFLICTED:
            raise LockConflictedError(self.resource)
        if self.status is SaveStatus.EXPIRED:
            raise LockExpiredError(self.resource)
        return self


class ValidatedSettings(BaseModel):
    """Settings base whose invalid values raise ``ConfigurationError`` on construction."""

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as exc:
            raise as_configuration_error(exc) from exc


def as_configuration_error(exc: ValidationError) -> ConfigurationError:
    message = f"Invalid lock settings: {exc}"
    if any("initial_ttl" in error["loc"] for error in exc.errors()):
        return InvalidTtlError(message)
    return ConfigurationError(message)


class StoreSettings(ValidatedSettings):
    """Tunables for ``LockStore``."""

    initial_ttl: float = 300.0
    max_save_retries: int = Field(default=1, ge=0)
    # Fold the ownership check into the expiry update (single CAS script).
    atomic_extend: bool = False

    @field_validator("initial_ttl")
    @classmethod
    def _check_ttl(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"InitialTtl expects a strictly positive TTL. Got {value}.")
        return value


class SweeperSettings(ValidatedSettings):
    """Tunables for ``ExpirationSweeper`` and ``SweeperAgent``."""

    limit: int = 100
    interval_seconds: float = Field(default=60.0, gt=0)

    @field_validator("limit")
    @classmethod
    def _check_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError(f"Limit expects a strictly positive. Got {value}.")
        return value
