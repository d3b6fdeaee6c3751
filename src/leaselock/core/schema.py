"""Provisioning of the Redis keys backing a lock space."""

from __future__ import annotations

import datetime as dt
from typing import Dict

from redis.asyncio import Redis
from redis.exceptions import RedisError

from leaselock.utils.logging import get_logger

from .errors import TransportError
from .models import DEFAULT_SPACE
from .space import validate_space_name
from .space_redis import SpaceKeys


FORMAT = "key:string,token:string,expire:number"
INDEXES = "key:hash:unique,token_key:hash:unique,expire:tree"

# KEYS: schema, expire index, token_key index
# ARGV: record key prefix
DROP_SCRIPT = """
local names = redis.call('zrange', KEYS[2], 0, -1)
for _, name in ipairs(names) do
    redis.call('del', ARGV[1] .. name)
end
redis.call('del', KEYS[1], KEYS[2], KEYS[3])
return #names
"""


class SchemaManager:
    """Creates and drops the schema marker and indexes of a space."""

    def __init__(self, redis: Redis, *, space: str = DEFAULT_SPACE) -> None:
        self.space = validate_space_name(space)
        self.keys = SpaceKeys(space)
        self._redis = redis
        self._drop = redis.register_script(DROP_SCRIPT)
        self.logger = get_logger("SchemaManager")

    async def setup(self) -> None:
        """Provision the space; existing spaces are left untouched."""
        fields: Dict[str, str] = {
            "format": FORMAT,
            "indexes": INDEXES,
            "created_at": dt.datetime.now(dt.timezone.utc).isoformat(),
        }
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for field, value in fields.items():
                    pipe.hsetnx(self.keys.schema, field, value)
                created = await pipe.execute()
        except RedisError as exc:
            raise TransportError(f"Failed to provision space '{self.space}': {exc}") from exc
        if any(created):
            self.logger.info("Provisioned lock space %s", self.space)

    async def tear_down(self) -> int:
        """Drop the space with every record in it; returns the number of records removed."""
        try:
            removed = await self._drop(
                keys=[self.keys.schema, self.keys.expire, self.keys.token_key],
                args=[self.keys.record_prefix],
            )
        except RedisError as exc:
            raise TransportError(f"Failed to drop space '{self.space}': {exc}") from exc
        self.logger.info("Dropped lock space %s (%d record(s))", self.space, int(removed))
        return int(removed)

    async def is_provisioned(self) -> bool:
        try:
            return bool(await self._redis.exists(self.keys.schema))
        except RedisError as exc:
            raise TransportError(f"Failed to inspect space '{self.space}': {exc}") from exc
