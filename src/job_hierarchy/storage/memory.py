"""
In-memory tree store.

Suitable for testing and single-process deployments. All operations run under
one asyncio.Lock, so multi-field writes, links and ancestor walks are atomic
with respect to other coroutines. Expiration is applied lazily on access.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from ..config import THIRTY_DAYS
from ..jobs.types import PARENT_FIELD
from .base import TreeStore


class InMemoryTreeStore(TreeStore):
    """In-memory TreeStore implementation.

    Args:
        clock: Monotonic time source used for expirations (injectable for tests)
    """

    def __init__(
        self,
        key_prefix: str = "hierarchy:job",
        ttl_seconds: int = THIRTY_DAYS,
        max_depth: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(key_prefix=key_prefix, ttl_seconds=ttl_seconds, max_depth=max_depth)
        self._hashes: dict[str, dict[str, str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._expires_at: dict[str, float] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    # Internal helpers; callers hold the lock

    def _purge(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and deadline <= self._clock():
            self._hashes.pop(key, None)
            self._lists.pop(key, None)
            self._expires_at.pop(key, None)

    def _touch(self, key: str) -> None:
        self._expires_at[key] = self._clock() + self.ttl_seconds

    def _hash(self, key: str) -> dict[str, str]:
        self._purge(key)
        return self._hashes.setdefault(key, {})

    def _incr(self, key: str, field: str, amount: int) -> int:
        fields = self._hash(key)
        value = int(fields.get(field) or 0) + amount
        fields[field] = str(value)
        self._touch(key)
        return value

    # Hash fields

    async def get(self, key: str, field: str) -> str | None:
        async with self._lock:
            self._purge(key)
            return self._hashes.get(key, {}).get(field)

    async def get_all(self, key: str) -> dict[str, str]:
        async with self._lock:
            self._purge(key)
            return dict(self._hashes.get(key, {}))

    async def set(self, key: str, field: str, value: str) -> None:
        async with self._lock:
            self._hash(key)[field] = str(value)
            self._touch(key)

    async def multi_set(self, key: str, mapping: dict[str, str]) -> None:
        if not mapping:
            return
        async with self._lock:
            self._hash(key).update({f: str(v) for f, v in mapping.items()})
            self._touch(key)

    async def increment(self, key: str, field: str, amount: int = 1) -> int:
        async with self._lock:
            return self._incr(key, field, amount)

    # Lists

    async def list_append(self, key: str, value: str) -> int:
        async with self._lock:
            self._purge(key)
            items = self._lists.setdefault(key, [])
            items.append(value)
            self._touch(key)
            return len(items)

    async def list_all(self, key: str) -> list[str]:
        async with self._lock:
            self._purge(key)
            return list(self._lists.get(key, []))

    # Keys

    async def exists(self, key: str) -> bool:
        async with self._lock:
            self._purge(key)
            return bool(self._hashes.get(key)) or bool(self._lists.get(key))

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            deleted = 0
            for key in keys:
                self._purge(key)
                found = bool(self._hashes.pop(key, None)) | bool(self._lists.pop(key, None))
                self._expires_at.pop(key, None)
                deleted += int(found)
            return deleted

    # Multi-key operations

    async def link(self, parent_id: str, child_id: str) -> None:
        child_key = self.job_key(child_id)
        children_key = self.children_key(parent_id)
        async with self._lock:
            self._hash(child_key)[PARENT_FIELD] = parent_id
            self._touch(child_key)
            self._purge(children_key)
            self._lists.setdefault(children_key, []).append(child_id)
            self._touch(children_key)

    async def increment_path(self, job_id: str, field: str, amount: int) -> int:
        async with self._lock:
            visited: set[str] = set()
            current: str | None = job_id
            while current and current not in visited and len(visited) < self.max_depth:
                visited.add(current)
                key = self.job_key(current)
                self._incr(key, field, amount)
                current = self._hashes[key].get(PARENT_FIELD)
            return len(visited)

    # Introspection for tests

    def ttl(self, key: str) -> float | None:
        """Seconds until the key expires, or None when it has no expiration."""
        deadline = self._expires_at.get(key)
        if deadline is None:
            return None
        return deadline - self._clock()

    def keys(self) -> list[str]:
        return sorted(set(self._hashes) | set(self._lists))


__all__ = ["InMemoryTreeStore"]
