from __future__ import annotations

import time
from typing import Optional

import pytest

from leaselock.core.errors import (
    ConfigurationError,
    InvalidTtlError,
    LockConflictedError,
    LockExpiredError,
    SpaceNotFoundError,
    TransportError,
)
from leaselock.core.key import Key
from leaselock.core.models import InsertResult, LockRecord, SaveStatus, StoreSettings
from leaselock.core.space import InMemoryLockSpace
from leaselock.core.store import LockStore


class ExpiredKey(Key):
    def is_expired(self) -> bool:
        return True


class StickySpace(InMemoryLockSpace):
    """Space whose CAS delete never lands, as if a rival re-inserted every time."""

    async def delete_if_token(self, key: str, token: str) -> bool:
        return False


class ReplacedStaleSpace(InMemoryLockSpace):
    """Every reclaimed holder is replaced by another holder that has also expired."""

    async def delete_if_token(self, key: str, token: str) -> bool:
        deleted = await super().delete_if_token(key, token)
        await self.insert(LockRecord(key=key, token=f"{token}-next", expire=time.time() - 10))
        return deleted


class VanishingSpace(InMemoryLockSpace):
    """Reports a duplicate for a record that is already gone when re-read."""

    def __init__(self, phantoms: int = 1) -> None:
        super().__init__()
        self.phantoms = phantoms

    async def insert(self, record: LockRecord) -> InsertResult:
        if self.phantoms:
            self.phantoms -= 1
            return InsertResult.DUPLICATE
        return await super().insert(record)


class BrokenSpace(InMemoryLockSpace):
    async def insert(self, record: LockRecord) -> InsertResult:
        raise TransportError("connection reset")

    async def get(self, key: str) -> Optional[LockRecord]:
        raise TransportError("connection reset")


@pytest.mark.asyncio
async def test_save_exists_delete(store):
    key = Key("resource")

    assert await store.exists(key) is False
    result = await store.save(key)
    assert result.status is SaveStatus.ACQUIRED
    assert result.ok
    assert await store.exists(key) is True
    assert await store.delete(key) is True
    assert await store.exists(key) is False


@pytest.mark.asyncio
async def test_save_with_different_resources(store):
    key1 = Key("resource-1")
    key2 = Key("resource-2")

    await store.save(key1)
    assert await store.exists(key1)
    assert not await store.exists(key2)

    await store.save(key2)
    assert await store.exists(key1)
    assert await store.exists(key2)

    await store.delete(key1)
    assert not await store.exists(key1)
    assert await store.exists(key2)


@pytest.mark.asyncio
async def test_mutual_exclusion_on_same_resource(store, space):
    key1 = Key("shared")
    key2 = Key("shared")

    (await store.save(key1)).raise_for_status()

    result = await store.save(key2)
    assert result.status is SaveStatus.CONFLICTED
    assert result.holder is not None and result.holder.token == key1.token
    with pytest.raises(LockConflictedError):
        result.raise_for_status()

    # The failed attempt leaves the current holder untouched.
    assert await store.exists(key1)
    assert not await store.exists(key2)
    assert await space.count() == 1

    await store.delete(key1)
    assert (await store.save(key2)).status is SaveStatus.ACQUIRED
    assert not await store.exists(key1)
    assert await store.exists(key2)


@pytest.mark.asyncio
async def test_save_twice_is_idempotent(store):
    key = Key("resource")

    first = await store.save(key)
    second = await store.save(key)

    assert first.status is SaveStatus.ACQUIRED
    assert second.status is SaveStatus.ALREADY_HELD
    assert second.raise_for_status() is second


@pytest.mark.asyncio
async def test_delete_with_foreign_token_is_noop(store, space):
    owner = Key("resource")
    intruder = Key("resource")
    await store.save(owner)

    assert await store.delete(intruder) is False
    assert await store.delete(owner, "not-the-token") is False
    assert await store.exists(owner)
    assert await space.count() == 1


@pytest.mark.asyncio
async def test_delete_absent_record_is_noop(store):
    assert await store.delete(Key("nobody")) is False


@pytest.mark.asyncio
async def test_expired_holder_is_replaced(store, space):
    key1 = Key("resource")
    key2 = Key("resource")

    await store.save(key1)
    await space.update_expire("resource", time.time() - 1)
    assert not await store.exists(key1)
    assert not await store.exists(key2)

    result = await store.save(key2)

    assert result.status is SaveStatus.ACQUIRED
    assert result.attempts == 2
    assert not await store.exists(key1)
    assert await store.exists(key2)


@pytest.mark.asyncio
async def test_retry_cap_surfaces_conflict():
    space = StickySpace()
    store = LockStore(space, StoreSettings(max_save_retries=2))
    await space.insert(LockRecord(key="resource", token="stale", expire=time.time() - 10))

    result = await store.save(Key("resource"))

    assert result.status is SaveStatus.CONFLICTED
    assert result.attempts == 3


@pytest.mark.asyncio
async def test_zero_retries_never_reclaims():
    space = InMemoryLockSpace()
    store = LockStore(space, StoreSettings(max_save_retries=0))
    await space.insert(LockRecord(key="resource", token="stale", expire=time.time() - 10))

    result = await store.save(Key("resource"))

    assert result.status is SaveStatus.CONFLICTED
    assert (await space.get("resource")).token == "stale"


@pytest.mark.asyncio
async def test_last_attempt_does_not_reclaim_expired_holder():
    space = ReplacedStaleSpace()
    store = LockStore(space)
    await space.insert(LockRecord(key="resource", token="stale", expire=time.time() - 10))

    result = await store.save(Key("resource"))

    assert result.status is SaveStatus.CONFLICTED
    assert result.attempts == 2
    assert result.holder.token == "stale-next"
    # The holder found on the final attempt is left for the sweeper.
    assert (await space.get("resource")).token == "stale-next"


@pytest.mark.asyncio
async def test_vanished_holder_is_retried():
    space = VanishingSpace()
    store = LockStore(space)
    key = Key("resource")

    result = await store.save(key)

    assert result.status is SaveStatus.ACQUIRED
    assert result.attempts == 2
    assert await store.exists(key)


@pytest.mark.asyncio
async def test_vanished_holder_without_retries_is_conflict():
    space = VanishingSpace()
    store = LockStore(space, StoreSettings(max_save_retries=0))

    result = await store.save(Key("resource"))

    assert result.status is SaveStatus.CONFLICTED
    assert result.holder is None
    assert result.attempts == 1
    assert await space.count() == 0


@pytest.mark.asyncio
async def test_save_reports_expiry_and_cleans_up(store, space):
    key = ExpiredKey("resource")

    result = await store.save(key)

    assert result.status is SaveStatus.EXPIRED
    assert await space.count() == 0
    with pytest.raises(LockExpiredError):
        result.raise_for_status()


@pytest.mark.asyncio
async def test_save_uses_initial_ttl(space):
    store = LockStore(space, StoreSettings(initial_ttl=30))
    key = Key("resource")

    await store.save(key)

    record = await space.get("resource")
    assert record.token == key.token
    assert time.time() < record.expire <= time.time() + 30


@pytest.mark.asyncio
async def test_put_off_expiration(store, space):
    key = Key("resource")
    await store.save(key)
    before = (await space.get("resource")).expire

    assert await store.put_off_expiration(key, 600) is True

    after = (await space.get("resource")).expire
    assert after != before
    assert after > time.time() + 500


@pytest.mark.asyncio
async def test_put_off_expiration_requires_ownership(store, space):
    owner = Key("resource")
    other = Key("resource")
    await store.save(owner)
    before = await space.get("resource")

    assert await store.put_off_expiration(other, 600) is False
    assert await space.get("resource") == before


@pytest.mark.asyncio
async def test_put_off_expiration_on_expired_lock_is_noop(store, space):
    key = Key("resource")
    await store.save(key)
    stale = time.time() - 1
    await space.update_expire("resource", stale)

    assert await store.put_off_expiration(key, 600) is False
    assert (await space.get("resource")).expire == stale


@pytest.mark.asyncio
async def test_atomic_extension_checks_token(atomic_store, space):
    key = Key("resource")
    await atomic_store.save(key)

    assert await atomic_store.put_off_expiration(key, 600) is True
    assert await space.update_expire("resource", time.time() + 5, token="other") is False


@pytest.mark.asyncio
async def test_exists_on_dropped_space(store, space):
    key = Key("resource")
    await store.save(key)

    space.drop()

    assert await store.exists(key) is False


@pytest.mark.asyncio
async def test_save_on_missing_space_raises():
    store = LockStore(InMemoryLockSpace(provisioned=False))

    with pytest.raises(SpaceNotFoundError, match="Space 'lock' does not exist"):
        await store.save(Key("resource"))


@pytest.mark.asyncio
async def test_delete_on_missing_space_raises():
    store = LockStore(InMemoryLockSpace(provisioned=False))

    with pytest.raises(SpaceNotFoundError):
        await store.delete(Key("resource"))


@pytest.mark.asyncio
async def test_transport_errors_propagate():
    store = LockStore(BrokenSpace())

    with pytest.raises(TransportError, match="connection reset"):
        await store.save(Key("resource"))
    with pytest.raises(TransportError):
        await store.exists(Key("resource"))


def test_invalid_initial_ttl():
    with pytest.raises(InvalidTtlError, match="InitialTtl expects a strictly positive TTL. Got 0"):
        StoreSettings(initial_ttl=0)


def test_negative_retry_cap_is_rejected():
    with pytest.raises(ConfigurationError, match="max_save_retries"):
        StoreSettings(max_save_retries=-1)


def test_invalid_space_name():
    with pytest.raises(ConfigurationError, match="Space should be defined"):
        InMemoryLockSpace("")
