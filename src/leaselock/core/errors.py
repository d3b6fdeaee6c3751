"""Exception hierarchy shared by every lock component."""

from __future__ import annotations

from typing import Optional


class LockError(Exception):
    """Base class for all leaselock errors."""


class ConfigurationError(LockError, ValueError):
    """Raised at construction time for invalid options."""


class InvalidTtlError(ConfigurationError):
    """Raised when a TTL is not strictly positive."""


class LockConflictedError(LockError):
    """Another live holder owns the resource."""

    def __init__(self, resource: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Lock '{resource}' is held by another owner")
        self.resource = resource


class LockExpiredError(LockError):
    """The key's lifetime elapsed before the operation completed."""

    def __init__(self, resource: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Failed to store the '{resource}' lock: TTL elapsed")
        self.resource = resource


class LockAcquiringError(LockError):
    """Blocking acquisition gave up."""


class LockReleasingError(LockError):
    """The lock was still present after an explicit release."""


class TransportError(LockError):
    """A request to the remote store failed."""


class SpaceNotFoundError(TransportError):
    """The backing space was never provisioned or has been dropped."""

    def __init__(self, space: str) -> None:
        super().__init__(f"Space '{space}' does not exist")
        self.space = space
