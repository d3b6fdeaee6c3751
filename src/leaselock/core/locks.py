"""High-level async locks built on a persisting store."""

from __future__ import annotations

from typing import Optional

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_exponential_jitter

from leaselock.utils.logging import get_logger

from .errors import InvalidTtlError, LockAcquiringError, LockConflictedError, LockExpiredError, LockReleasingError
from .key import Key
from .models import SaveStatus
from .store import PersistingStore


class Lock:
    """A lease on one resource.

    ``async with lock as acquired`` tries once without blocking and releases on
    exit only if the lock was taken.
    """

    def __init__(
        self,
        key: Key,
        store: PersistingStore,
        *,
        ttl: Optional[float] = 300.0,
        auto_release: bool = True,
        max_attempts: int = 10,
        max_wait: float = 5.0,
    ) -> None:
        if ttl is not None and ttl <= 0:
            raise InvalidTtlError(f"Lock ttl expects a strictly positive TTL. Got {ttl}.")
        self._key = key
        self._store = store
        self._ttl = ttl
        self._auto_release = auto_release
        self._max_attempts = max_attempts
        self._max_wait = max_wait
        self._dirty = False
        self.logger = get_logger("Lock")

    @property
    def key(self) -> Key:
        return self._key

    async def __aenter__(self) -> bool:
        return await self.acquire()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._dirty and self._auto_release:
            await self.release()

    async def acquire(self, blocking: bool = False) -> bool:
        """Take the lock; with ``blocking`` retry with backoff until it is free."""
        if not blocking:
            return await self._try_acquire()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential_jitter(initial=0.05, max=self._max_wait),
            retry=retry_if_result(lambda acquired: acquired is False),
        )
        try:
            return await retrying(self._try_acquire)
        except RetryError as exc:
            raise LockAcquiringError(
                f"Failed to acquire '{self._key}' after {self._max_attempts} attempts"
            ) from exc

    async def _try_acquire(self) -> bool:
        result = await self._store.save(self._key)
        if result.status is SaveStatus.CONFLICTED:
            self.logger.info("Lock %s is busy", self._key)
            return False
        result.raise_for_status()
        self._dirty = True
        if self._ttl:
            await self.refresh()
        return True

    async def refresh(self, ttl: Optional[float] = None) -> None:
        """Push the expiry back to ``ttl`` seconds from now."""
        ttl = ttl or self._ttl
        if not ttl:
            raise InvalidTtlError("You have to define an expiration duration.")

        extended = await self._store.put_off_expiration(self._key, ttl)
        self._dirty = extended
        if not extended:
            # The lease is gone; the key must not look live.
            self._key.reduce_lifetime(0)
            raise LockConflictedError(str(self._key), f"Lock '{self._key}' is no longer owned")
        if self._key.is_expired():
            raise LockExpiredError(str(self._key))

    async def is_acquired(self) -> bool:
        self._dirty = await self._store.exists(self._key)
        return self._dirty

    async def release(self) -> None:
        await self._store.delete(self._key)
        self._dirty = False
        if await self._store.exists(self._key):
            raise LockReleasingError(f"Failed to release the '{self._key}' lock")

    def is_expired(self) -> bool:
        return self._key.is_expired()

    @property
    def remaining_lifetime(self) -> Optional[float]:
        return self._key.remaining_lifetime


class LockManager:
    """Creates ``Lock`` objects sharing one store."""

    def __init__(self, store: PersistingStore) -> None:
        self._store = store

    def lock(self, resource: str, ttl: Optional[float] = 300.0, *, auto_release: bool = True) -> Lock:
        return Lock(Key(resource), self._store, ttl=ttl, auto_release=auto_release)
