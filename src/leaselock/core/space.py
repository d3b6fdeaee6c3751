"""Remote-store boundary for lock records, plus an in-process backend."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional, Protocol, runtime_checkable

from .errors import ConfigurationError, SpaceNotFoundError
from .models import DEFAULT_SPACE, InsertResult, LockRecord


def validate_space_name(name: str) -> str:
    if not name:
        raise ConfigurationError("Space should be defined")
    return name


@runtime_checkable
class LockSpace(Protocol):
    """Operations the lock protocol needs from the backing store.

    Point operations are single requests. ``delete_if_token`` and ``sweep``
    must run atomically on the store side.
    """

    name: str

    async def insert(self, record: LockRecord) -> InsertResult:
        ...

    async def get(self, key: str) -> Optional[LockRecord]:
        ...

    async def update_expire(self, key: str, expire: float, *, token: Optional[str] = None) -> bool:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def delete_if_token(self, key: str, token: str) -> bool:
        ...

    async def sweep(self, limit: int, timestamp: float) -> int:
        ...

    async def count(self) -> int:
        ...

    async def close(self) -> None:
        ...


class InMemoryLockSpace:
    """Single-process lock space guarded by an asyncio lock."""

    def __init__(self, name: str = DEFAULT_SPACE, *, provisioned: bool = True) -> None:
        self.name = validate_space_name(name)
        self._records: Dict[str, LockRecord] = {}
        self._lock = asyncio.Lock()
        self._provisioned = provisioned

    def setup(self) -> None:
        self._provisioned = True

    def drop(self) -> None:
        self._provisioned = False
        self._records.clear()

    def _ensure_space(self) -> None:
        if not self._provisioned:
            raise SpaceNotFoundError(self.name)

    async def insert(self, record: LockRecord) -> InsertResult:
        async with self._lock:
            self._ensure_space()
            if record.key in self._records:
                return InsertResult.DUPLICATE
            self._records[record.key] = record.model_copy()
            return InsertResult.INSERTED

    async def get(self, key: str) -> Optional[LockRecord]:
        async with self._lock:
            self._ensure_space()
            record = self._records.get(key)
            return record.model_copy() if record else None

    async def update_expire(self, key: str, expire: float, *, token: Optional[str] = None) -> bool:
        async with self._lock:
            self._ensure_space()
            record = self._records.get(key)
            if record is None or (token is not None and record.token != token):
                return False
            self._records[key] = record.model_copy(update={"expire": expire})
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._ensure_space()
            return self._records.pop(key, None) is not None

    async def delete_if_token(self, key: str, token: str) -> bool:
        async with self._lock:
            self._ensure_space()
            record = self._records.get(key)
            if record is None or record.token != token:
                return False
            del self._records[key]
            return True

    async def sweep(self, limit: int, timestamp: float) -> int:
        async with self._lock:
            self._ensure_space()
            counter = 0
            for record in sorted(self._records.values(), key=lambda item: item.expire):
                if counter >= limit or record.expire > timestamp:
                    break
                if self._records.pop(record.key, None) is not None:
                    counter += 1
            return counter

    async def count(self) -> int:
        async with self._lock:
            self._ensure_space()
            return len(self._records)

    async def close(self) -> None:
        return None
