"""
Tree store interface.

A TreeStore is a thin transactional facade over a shared hash/list key-value
store. Every write refreshes the touched key's sliding expiration inside the
same atomic unit. Reads of missing keys never fail; they return empty values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..config import THIRTY_DAYS


class TreeStore(ABC):
    """Abstract interface for job tree persistence.

    Key layout:
    - ``{key_prefix}:{job_id}``: the job's record hash
    - ``{key_prefix}:{job_id}:children``: the job's ordered children list

    Implementations must be safe for concurrent use by many coroutines and,
    for shared backends, by many processes.
    """

    def __init__(
        self,
        key_prefix: str = "hierarchy:job",
        ttl_seconds: int = THIRTY_DAYS,
        max_depth: int = 10_000,
    ):
        self.key_prefix = key_prefix
        self.ttl_seconds = ttl_seconds
        self.max_depth = max_depth

    def job_key(self, job_id: str) -> str:
        return f"{self.key_prefix}:{job_id}"

    def children_key(self, job_id: str) -> str:
        return f"{self.job_key(job_id)}:children"

    # Hash fields

    @abstractmethod
    async def get(self, key: str, field: str) -> str | None:
        """Read one hash field; None when the key or field is missing."""
        ...

    @abstractmethod
    async def get_all(self, key: str) -> dict[str, str]:
        """Read every field of a hash; empty dict when missing."""
        ...

    @abstractmethod
    async def set(self, key: str, field: str, value: str) -> None:
        """Write one field and refresh the key's expiration, atomically."""
        ...

    @abstractmethod
    async def multi_set(self, key: str, mapping: dict[str, str]) -> None:
        """Write several fields and refresh the expiration, atomically."""
        ...

    @abstractmethod
    async def increment(self, key: str, field: str, amount: int = 1) -> int:
        """Add ``amount`` to an integer field and refresh the expiration. Returns the new value."""
        ...

    # Lists

    @abstractmethod
    async def list_append(self, key: str, value: str) -> int:
        """Append to a list and refresh its expiration. Returns the new length."""
        ...

    @abstractmethod
    async def list_all(self, key: str) -> list[str]:
        """Return the whole list in insertion order; empty when missing."""
        ...

    # Keys

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns how many existed."""
        ...

    # Multi-key operations

    @abstractmethod
    async def link(self, parent_id: str, child_id: str) -> None:
        """Draw a parent/child relationship in one transaction.

        Sets the child's parent field and appends the child to the parent's
        children list, refreshing both expirations. Appends are never
        deduplicated.
        """
        ...

    @abstractmethod
    async def increment_path(self, job_id: str, field: str, amount: int) -> int:
        """Add ``amount`` to ``field`` on a job and every one of its ancestors.

        The whole walk up the parent links is one atomic operation. The walk
        stops at a record without a parent, at a record already visited, or
        after ``max_depth`` hops. Returns the number of records updated.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


__all__ = ["TreeStore"]
