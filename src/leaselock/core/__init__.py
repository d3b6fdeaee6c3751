"""Lock protocol primitives."""

from .errors import (
    ConfigurationError,
    InvalidTtlError,
    LockAcquiringError,
    LockConflictedError,
    LockError,
    LockExpiredError,
    LockReleasingError,
    SpaceNotFoundError,
    TransportError,
)
from .key import Key
from .locks import Lock, LockManager
from .models import (
    InsertResult,
    LockRecord,
    SaveResult,
    SaveStatus,
    StoreSettings,
    SweeperSettings,
)
from .space import InMemoryLockSpace, LockSpace
from .store import LockStore, PersistingStore
from .sweeper import ExpirationSweeper, SweeperAgent

__all__ = [
    "ConfigurationError",
    "ExpirationSweeper",
    "InMemoryLockSpace",
    "InsertResult",
    "InvalidTtlError",
    "Key",
    "Lock",
    "LockAcquiringError",
    "LockConflictedError",
    "LockError",
    "LockExpiredError",
    "LockManager",
    "LockRecord",
    "LockReleasingError",
    "LockSpace",
    "LockStore",
    "PersistingStore",
    "SaveResult",
    "SaveStatus",
    "SpaceNotFoundError",
    "StoreSettings",
    "SweeperAgent",
    "SweeperSettings",
    "TransportError",
]
