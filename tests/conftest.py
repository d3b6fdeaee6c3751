from __future__ import annotations

import time

import pytest

from leaselock.core.models import LockRecord, StoreSettings
from leaselock.core.space import InMemoryLockSpace
from leaselock.core.store import LockStore


@pytest.fixture
def space() -> InMemoryLockSpace:
    return InMemoryLockSpace()


@pytest.fixture
def store(space: InMemoryLockSpace) -> LockStore:
    return LockStore(space)


@pytest.fixture
def make_record():
    def _make(key: str, *, token: str = "token", offset: float = 0.0) -> LockRecord:
        return LockRecord(key=key, token=token, expire=time.time() + offset)

    return _make


@pytest.fixture
def atomic_store(space: InMemoryLockSpace) -> LockStore:
    return LockStore(space, StoreSettings(atomic_extend=True))
