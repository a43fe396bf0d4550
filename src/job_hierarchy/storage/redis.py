"""
Redis-backed tree store.

Requires redis (async): pip install redis

Atomicity
---------
- Field writes, multi-field writes and increments run in a MULTI/EXEC
  pipeline together with the EXPIRE that refreshes the sliding TTL.
- ``link`` is one MULTI/EXEC across the child's hash and the parent's
  children list.
- ``increment_path`` runs as a single Lua script, so the walk from a job to
  its root is applied by the server as one atomic unit instead of one
  round trip per level.

Cluster note
------------
The Lua walk touches keys derived from parent ids that are not declared in
KEYS, so it requires all job keys of a tree to live on the same node (a
single instance, or a hash-tagged ``key_prefix`` such as
``{hierarchy}:job``).

Failures
--------
Redis timeouts and connection losses are raised as retryable
StoreTimeoutError / StoreConnectionError; any other Redis error is raised as
StoreError. Each translated failure is logged at error level before it is
raised; nothing is retried here.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import redis.asyncio as redis_lib
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import THIRTY_DAYS
from ..errors import ErrorContext, StoreConnectionError, StoreError, StoreTimeoutError
from ..jobs.types import PARENT_FIELD
from ..logging import get_logger
from .base import TreeStore

# ARGV: key prefix, field, amount, ttl, parent field, max depth, start job id
INCREMENT_PATH_LUA = """
local prefix = ARGV[1]
local field = ARGV[2]
local amount = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])
local parent_field = ARGV[5]
local max_depth = tonumber(ARGV[6])
local id = ARGV[7]
local seen = {}
local hops = 0
while id and not seen[id] and hops < max_depth do
  seen[id] = true
  local key = prefix .. ':' .. id
  redis.call('HINCRBY', key, field, amount)
  redis.call('EXPIRE', key, ttl)
  hops = hops + 1
  id = redis.call('HGET', key, parent_field)
end
return hops
"""


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisTreeStore(TreeStore):
    """TreeStore on a shared Redis instance.

    Example:
        ```python
        store = RedisTreeStore.from_url("redis://localhost:6379/0")
        await store.set(store.job_key("jid"), "s", "0")
        ```
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        key_prefix: str = "hierarchy:job",
        ttl_seconds: int = THIRTY_DAYS,
        max_depth: int = 10_000,
    ):
        super().__init__(key_prefix=key_prefix, ttl_seconds=ttl_seconds, max_depth=max_depth)
        self._client = client
        self._logger = get_logger()
        self._increment_path_script = client.register_script(INCREMENT_PATH_LUA)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> RedisTreeStore:
        client = redis_lib.from_url(url, decode_responses=True)
        return cls(client, **kwargs)

    @property
    def client(self) -> Any:
        return self._client

    @contextmanager
    def _errors(self, operation: str, key: str | None = None) -> Iterator[None]:
        """Translate redis exceptions into store errors."""
        context = ErrorContext(operation=operation, key=key)
        try:
            yield
        except RedisError as e:
            error: StoreError
            if isinstance(e, RedisTimeoutError):
                error = StoreTimeoutError(f"Redis {operation} timed out", context=context, cause=e)
            elif isinstance(e, RedisConnectionError):
                error = StoreConnectionError(
                    f"Redis connection failed during {operation}", context=context, cause=e
                )
            else:
                error = StoreError(f"Redis {operation} failed: {e}", context=context, cause=e)
            self._logger.log_error(error, f"Store {operation} failed")
            raise error from e

    # Hash fields

    async def get(self, key: str, field: str) -> str | None:
        with self._errors("get", key):
            return _decode(await self._client.hget(key, field))

    async def get_all(self, key: str) -> dict[str, str]:
        with self._errors("get_all", key):
            raw = await self._client.hgetall(key)
        return {_decode(k): _decode(v) for k, v in (raw or {}).items()}

    async def set(self, key: str, field: str, value: str) -> None:
        with self._errors("set", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, field, value)
                pipe.expire(key, self.ttl_seconds)
                await pipe.execute()

    async def multi_set(self, key: str, mapping: dict[str, str]) -> None:
        if not mapping:
            return
        with self._errors("multi_set", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, self.ttl_seconds)
                await pipe.execute()

    async def increment(self, key: str, field: str, amount: int = 1) -> int:
        with self._errors("increment", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key, field, amount)
                pipe.expire(key, self.ttl_seconds)
                value, _ = await pipe.execute()
        return int(value)

    # Lists

    async def list_append(self, key: str, value: str) -> int:
        with self._errors("list_append", key):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, value)
                pipe.expire(key, self.ttl_seconds)
                length, _ = await pipe.execute()
        return int(length)

    async def list_all(self, key: str) -> list[str]:
        with self._errors("list_all", key):
            items = await self._client.lrange(key, 0, -1)
        return [_decode(item) for item in items or []]

    # Keys

    async def exists(self, key: str) -> bool:
        with self._errors("exists", key):
            return bool(await self._client.exists(key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with self._errors("delete", keys[0]):
            return int(await self._client.delete(*keys))

    # Multi-key operations

    async def link(self, parent_id: str, child_id: str) -> None:
        child_key = self.job_key(child_id)
        children_key = self.children_key(parent_id)
        with self._errors("link", child_key):
            async with self._client.pipeline(transaction=True) as pipe:
                # child -> parent
                pipe.hset(child_key, PARENT_FIELD, parent_id)
                pipe.expire(child_key, self.ttl_seconds)
                # parent -> child
                pipe.rpush(children_key, child_id)
                pipe.expire(children_key, self.ttl_seconds)
                await pipe.execute()

    async def increment_path(self, job_id: str, field: str, amount: int) -> int:
        with self._errors("increment_path", self.job_key(job_id)):
            hops = await self._increment_path_script(
                keys=[],
                args=[
                    self.key_prefix,
                    field,
                    amount,
                    self.ttl_seconds,
                    PARENT_FIELD,
                    self.max_depth,
                    job_id,
                ],
            )
        return int(hops)

    async def close(self) -> None:
        with self._errors("close"):
            await self._client.aclose()


__all__ = ["RedisTreeStore", "INCREMENT_PATH_LUA"]
