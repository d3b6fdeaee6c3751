"""Lock store implementing acquire/verify/extend/release with CAS semantics."""

from __future__ import annotations

import abc
import time
from typing import Optional

from leaselock.utils.logging import get_logger

from .errors import SpaceNotFoundError
from .key import Key
from .models import InsertResult, LockRecord, SaveResult, SaveStatus, StoreSettings
from .space import LockSpace


class PersistingStore(abc.ABC):
    """Operations a lock needs from its persistence layer."""

    @abc.abstractmethod
    async def save(self, key: Key) -> SaveResult:  # pragma: no cover - interface
        """Acquire the lock for ``key`` or re-affirm it if already owned."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: Key, token: Optional[str] = None) -> bool:  # pragma: no cover - interface
        """Release the lock if it is still owned by ``token``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def exists(self, key: Key) -> bool:  # pragma: no cover - interface
        """Return whether ``key`` currently holds a live lock."""
        raise NotImplementedError

    @abc.abstractmethod
    async def put_off_expiration(self, key: Key, ttl: float) -> bool:  # pragma: no cover - interface
        """Extend the lease of an owned lock by ``ttl`` seconds from now."""
        raise NotImplementedError


class LockStore(PersistingStore):
    """Optimistic, lock-free lock protocol on top of a ``LockSpace``.

    All coordination is delegated to the space: inserts are insert-if-absent,
    releases are compare-and-delete on the owner token, and ownership always
    passes through an absent record before a new token can take it.
    """

    def __init__(self, space: LockSpace, settings: Optional[StoreSettings] = None) -> None:
        self.space = space
        self.settings = settings or StoreSettings()
        self.logger = get_logger("LockStore")

    @staticmethod
    def _expiration_timestamp(key: Key) -> float:
        return time.time() + (key.remaining_lifetime or 0.0)

    async def save(self, key: Key) -> SaveResult:
        key.reduce_lifetime(self.settings.initial_ttl)
        attempts = 0
        holder: Optional[LockRecord] = None

        while attempts <= self.settings.max_save_retries:
            attempts += 1
            record = LockRecord(
                key=key.resource,
                token=key.token,
                expire=self._expiration_timestamp(key),
            )
            if await self.space.insert(record) is InsertResult.INSERTED:
                status = await self._check_not_expired(key, SaveStatus.ACQUIRED)
                if status is SaveStatus.ACQUIRED:
                    self.logger.info("Acquired lock %s", key.resource)
                return SaveResult(resource=key.resource, status=status, attempts=attempts)

            holder = await self.space.get(key.resource)
            if holder is None:
                # Released between our insert and the read.
                continue

            if holder.token == key.token:
                status = await self._check_not_expired(key, SaveStatus.ALREADY_HELD)
                return SaveResult(resource=key.resource, status=status, attempts=attempts)

            if holder.is_expired(time.time()):
                if attempts > self.settings.max_save_retries:
                    # Reclaiming without a retry left would orphan the resource.
                    self.logger.warning("Gave up acquiring %s after %d attempts", key.resource, attempts)
                    break
                self.logger.info("Lock %s expired at %.3f; reclaiming", key.resource, holder.expire)
                await self.delete(key, holder.token)
                continue

            self.logger.warning("Lock %s is held by another owner", key.resource)
            break
        else:
            self.logger.warning("Gave up acquiring %s after %d attempts", key.resource, attempts)

        return SaveResult(
            resource=key.resource,
            status=SaveStatus.CONFLICTED,
            holder=holder,
            attempts=attempts,
        )

    async def _check_not_expired(self, key: Key, status: SaveStatus) -> SaveStatus:
        if not key.is_expired():
            return status
        self.logger.warning("Lock %s expired before it was stored; releasing", key.resource)
        await self.delete(key)
        return SaveStatus.EXPIRED

    async def exists(self, key: Key) -> bool:
        try:
            record = await self.space.get(key.resource)
        except SpaceNotFoundError:
            # A missing space is an empty lock table for read-only checks.
            self.logger.debug("Space %s is missing; %s treated as absent", self.space.name, key.resource)
            return False
        if record is None:
            return False
        return record.token == key.token and record.expire >= time.time()

    async def put_off_expiration(self, key: Key, ttl: float) -> bool:
        if not await self.exists(key):
            return False

        key.reset_lifetime()
        key.reduce_lifetime(ttl)
        token = key.token if self.settings.atomic_extend else None
        updated = await self.space.update_expire(
            key.resource,
            self._expiration_timestamp(key),
            token=token,
        )
        if updated:
            self.logger.debug("Extended lock %s by %.3fs", key.resource, ttl)
        return updated

    async def delete(self, key: Key, token: Optional[str] = None) -> bool:
        deleted = await self.space.delete_if_token(key.resource, token or key.token)
        if deleted:
            self.logger.info("Released lock %s", key.resource)
        return deleted
