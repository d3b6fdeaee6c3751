"""Redis-backed lock space; every operation is a single Lua script."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from redis.asyncio import Redis
from redis.commands.core import AsyncScript
from redis.exceptions import RedisError, ResponseError

from leaselock.utils.env import redis_url_from_env

from .errors import SpaceNotFoundError, TransportError
from .models import DEFAULT_SPACE, InsertResult, LockRecord
from .space import validate_space_name


SPACE_NOT_FOUND = "SPACE_NOT_FOUND"

# Shared prologue: KEYS[1] is the schema marker, ARGV[1] the space name.
_GUARD = f"""
if redis.call('exists', KEYS[1]) == 0 then
    return redis.error_reply('{SPACE_NOT_FOUND} ' .. ARGV[1])
end
"""

# KEYS: schema, record, expire index, token_key index
# ARGV: space, key, token, expire
INSERT_SCRIPT = _GUARD + """
if redis.call('exists', KEYS[2]) == 1 then
    return 0
end
local member = ARGV[3] .. ':' .. ARGV[2]
if redis.call('sismember', KEYS[4], member) == 1 then
    return 0
end
redis.call('hset', KEYS[2], 'key', ARGV[2], 'token', ARGV[3], 'expire', ARGV[4])
redis.call('zadd', KEYS[3], ARGV[4], ARGV[2])
redis.call('sadd', KEYS[4], member)
return 1
"""

# KEYS: schema, record
# ARGV: space
SELECT_SCRIPT = _GUARD + """
return redis.call('hmget', KEYS[2], 'token', 'expire')
"""

# KEYS: schema, record, expire index
# ARGV: space, key, expire, token ('' updates unconditionally)
UPDATE_EXPIRE_SCRIPT = _GUARD + """
local token = redis.call('hget', KEYS[2], 'token')
if not token then
    return 0
end
if ARGV[4] ~= '' and token ~= ARGV[4] then
    return 0
end
redis.call('hset', KEYS[2], 'expire', ARGV[3])
redis.call('zadd', KEYS[3], ARGV[3], ARGV[2])
return 1
"""

# KEYS: schema, record, expire index, token_key index
# ARGV: space, key, token ('' deletes unconditionally)
DELETE_SCRIPT = _GUARD + """
local token = redis.call('hget', KEYS[2], 'token')
if not token then
    return 0
end
if ARGV[3] ~= '' and token ~= ARGV[3] then
    return 0
end
redis.call('del', KEYS[2])
redis.call('zrem', KEYS[3], ARGV[2])
redis.call('srem', KEYS[4], token .. ':' .. ARGV[2])
return 1
"""

# KEYS: schema, expire index, token_key index
# ARGV: space, limit, timestamp, record key prefix
SWEEP_SCRIPT = _GUARD + """
local names = redis.call('zrangebyscore', KEYS[2], '-inf', ARGV[3], 'LIMIT', 0, tonumber(ARGV[2]))
local counter = 0
for _, name in ipairs(names) do
    local record = ARGV[4] .. name
    local token = redis.call('hget', record, 'token')
    redis.call('zrem', KEYS[2], name)
    if token then
        redis.call('del', record)
        redis.call('srem', KEYS[3], token .. ':' .. name)
        counter = counter + 1
    end
end
return counter
"""

# KEYS: schema, expire index
# ARGV: space
COUNT_SCRIPT = _GUARD + """
return redis.call('zcard', KEYS[2])
"""


@dataclass(frozen=True, slots=True)
class SpaceKeys:
    """Redis key layout of one space; the hash tag pins it to a single slot."""

    space: str

    @property
    def prefix(self) -> str:
        return f"{{{self.space}}}"

    @property
    def schema(self) -> str:
        return f"{self.prefix}:schema"

    @property
    def expire(self) -> str:
        return f"{self.prefix}:expire"

    @property
    def token_key(self) -> str:
        return f"{self.prefix}:token_key"

    @property
    def record_prefix(self) -> str:
        return f"{self.prefix}:record:"

    def record(self, key: str) -> str:
        return f"{self.record_prefix}{key}"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _timestamp(value: float) -> str:
    return repr(float(value))


class RedisLockSpace:
    """Lock space stored in Redis hashes with sorted-set and set indexes."""

    def __init__(
        self,
        redis: Optional[Redis] = None,
        *,
        name: str = DEFAULT_SPACE,
        url: Optional[str] = None,
    ) -> None:
        self.name = validate_space_name(name)
        self.keys = SpaceKeys(name)
        self._redis = redis or Redis.from_url(
            redis_url_from_env(url), decode_responses=True
        )
        self._insert = self._redis.register_script(INSERT_SCRIPT)
        self._select = self._redis.register_script(SELECT_SCRIPT)
        self._update_expire = self._redis.register_script(UPDATE_EXPIRE_SCRIPT)
        self._delete = self._redis.register_script(DELETE_SCRIPT)
        self._sweep = self._redis.register_script(SWEEP_SCRIPT)
        self._count = self._redis.register_script(COUNT_SCRIPT)

    @property
    def redis(self) -> Redis:
        return self._redis

    async def _run(self, script: AsyncScript, keys: Sequence[str], args: Sequence[Any]) -> Any:
        try:
            return await script(keys=list(keys), args=[self.name, *args])
        except ResponseError as exc:
            if SPACE_NOT_FOUND in str(exc):
                raise SpaceNotFoundError(self.name) from exc
            raise TransportError(f"Redis rejected request on space '{self.name}': {exc}") from exc
        except RedisError as exc:
            raise TransportError(f"Redis request on space '{self.name}' failed: {exc}") from exc

    async def insert(self, record: LockRecord) -> InsertResult:
        inserted = await self._run(
            self._insert,
            [self.keys.schema, self.keys.record(record.key), self.keys.expire, self.keys.token_key],
            [record.key, record.token, _timestamp(record.expire)],
        )
        return InsertResult.INSERTED if int(inserted) else InsertResult.DUPLICATE

    async def get(self, key: str) -> Optional[LockRecord]:
        values: List[Any] = await self._run(self._select, [self.keys.schema, self.keys.record(key)], [])
        token, expire = (_text(value) for value in values)
        if token is None or expire is None:
            return None
        return LockRecord(key=key, token=token, expire=float(expire))

    async def update_expire(self, key: str, expire: float, *, token: Optional[str] = None) -> bool:
        updated = await self._run(
            self._update_expire,
            [self.keys.schema, self.keys.record(key), self.keys.expire],
            [key, _timestamp(expire), token or ""],
        )
        return bool(int(updated))

    async def delete(self, key: str) -> bool:
        return await self._delete_record(key, "")

    async def delete_if_token(self, key: str, token: str) -> bool:
        if not token:
            return False
        return await self._delete_record(key, token)

    async def _delete_record(self, key: str, token: str) -> bool:
        deleted = await self._run(
            self._delete,
            [self.keys.schema, self.keys.record(key), self.keys.expire, self.keys.token_key],
            [key, token],
        )
        return bool(int(deleted))

    async def sweep(self, limit: int, timestamp: float) -> int:
        counter = await self._run(
            self._sweep,
            [self.keys.schema, self.keys.expire, self.keys.token_key],
            [limit, _timestamp(timestamp), self.keys.record_prefix],
        )
        return int(counter)

    async def count(self) -> int:
        return int(await self._run(self._count, [self.keys.schema, self.keys.expire], []))

    async def close(self) -> None:
        await self._redis.aclose()
