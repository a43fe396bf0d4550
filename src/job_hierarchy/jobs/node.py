"""
Job tree nodes.

A JobNode is a lazy handle on one job's record: constructing it touches no
store, every accessor is a store round trip. All tree walks are iterative so
that workflow depth is bounded only by the data.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator

from .types import (
    COMPLETED_AT_FIELD,
    ENQUEUED_AT_FIELD,
    FINISHED_SUBTREE_SIZE_FIELD,
    INFO_FIELD,
    PARENT_FIELD,
    RUN_AT_FIELD,
    STATUS_FIELD,
    SUBTREE_SIZE_FIELD,
    JobRecord,
    JobStatus,
    decode_time,
    to_datetime,
)

if TYPE_CHECKING:
    from ..hierarchy import Hierarchy
    from ..workflows import Workflow


class JobNode:
    """One job in a workflow tree."""

    def __init__(self, job_id: str, hierarchy: Hierarchy):
        self._id = job_id
        self._hierarchy = hierarchy

    @property
    def id(self) -> str:
        return self._id

    @property
    def hierarchy(self) -> Hierarchy:
        return self._hierarchy

    @property
    def key(self) -> str:
        return self._hierarchy.store.job_key(self._id)

    @property
    def children_key(self) -> str:
        return self._hierarchy.store.children_key(self._id)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, JobNode) and other._id == self._id

    def __hash__(self) -> int:
        return hash((JobNode, self._id))

    def __repr__(self) -> str:
        return f"JobNode({self._id!r})"

    def _find(self, job_id: str) -> JobNode:
        return JobNode(job_id, self._hierarchy)

    # Record access

    async def exists(self) -> bool:
        return await self._hierarchy.store.exists(self.key)

    async def load(self) -> JobRecord:
        """Read the whole record in one round trip."""
        fields = await self._hierarchy.store.get_all(self.key)
        return JobRecord.from_fields(self._id, fields)

    async def info(self) -> dict[str, Any]:
        raw = await self._hierarchy.store.get(self.key, INFO_FIELD)
        return json.loads(raw) if raw else {}

    async def delete(self) -> int:
        """Delete this job and its whole subtree, children before parents.

        Not isolated: a key written by a concurrent writer after it was
        visited is left to expire on its own. Returns the number of jobs
        visited.
        """
        order: list[JobNode] = []
        stack: list[JobNode] = [self]
        seen: set[str] = set()
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            order.append(node)
            stack.extend(await node.children())

        store = self._hierarchy.store
        for node in reversed(order):
            await store.delete(node.children_key, node.key)
        return len(order)

    # Tree exploration

    async def parent(self) -> JobNode | None:
        parent_id = await self._hierarchy.store.get(self.key, PARENT_FIELD)
        if parent_id:
            return self._find(parent_id)
        return None

    async def children(self) -> list[JobNode]:
        child_ids = await self._hierarchy.store.list_all(self.children_key)
        return [self._find(child_id) for child_id in child_ids]

    async def is_root(self) -> bool:
        return await self.parent() is None

    async def is_leaf(self) -> bool:
        return not await self._hierarchy.store.list_all(self.children_key)

    async def root(self) -> JobNode:
        """Walk up the parent links and return the tree's root."""
        node = self
        seen = {node.id}
        while True:
            parent = await node.parent()
            if parent is None or parent.id in seen:
                return node
            seen.add(parent.id)
            node = parent

    async def leaves(self) -> list[JobNode]:
        """Every leaf under this job, left to right; a leaf returns itself."""
        leaves: list[JobNode] = []
        stack: list[tuple[JobNode, frozenset[str]]] = [(self, frozenset())]
        while stack:
            node, path = stack.pop()
            path = path | {node.id}
            children = [child for child in await node.children() if child.id not in path]
            if children:
                stack.extend((child, path) for child in reversed(children))
            else:
                leaves.append(node)
        return leaves

    async def subtree_jobs(self) -> AsyncIterator[JobNode]:
        """Walk the subtree rooted here depth-first, pre-order.

        Children are visited in insertion order, duplicates included. A job
        that appears among its own descendants is not descended into again.
        Each call returns a fresh one-shot iterator.
        """
        stack: list[tuple[JobNode, frozenset[str]]] = [(self, frozenset())]
        while stack:
            node, path = stack.pop()
            yield node
            path = path | {node.id}
            children = await node.children()
            stack.extend((child, path) for child in reversed(children) if child.id not in path)

    async def add_child(self, child: JobNode) -> None:
        """Draw a parent/child relationship and fold the child's counters into every ancestor."""
        hierarchy = self._hierarchy
        await hierarchy.store.link(self.id, child.id)

        record = await child.load()
        await hierarchy.counter.increment_subtree_size(self, record.subtree_size)
        await hierarchy.counter.increment_finished_subtree_size(self, record.finished_subtree_size)

        hierarchy.logger.debug(
            "Child attached",
            job_id=self.id,
            child_id=child.id,
            subtree_size=record.subtree_size,
            finished_subtree_size=record.finished_subtree_size,
        )
        if record.status is not JobStatus.UNKNOWN:
            await hierarchy.workflows.sync(self, record.status)

    async def workflow(self) -> Workflow:
        return await self._hierarchy.workflows.find(self)

    # Counters

    async def subtree_size(self) -> int:
        """The cached cardinality of the tree rooted at this job."""
        return int(await self._hierarchy.store.get(self.key, SUBTREE_SIZE_FIELD) or 0)

    async def finished_subtree_size(self) -> int:
        """The cached count of finished jobs in the tree rooted at this job."""
        return int(await self._hierarchy.store.get(self.key, FINISHED_SUBTREE_SIZE_FIELD) or 0)

    # Status

    async def status(self) -> JobStatus:
        return JobStatus.from_code(await self._hierarchy.store.get(self.key, STATUS_FIELD))

    async def update_status(self, new_status: JobStatus | str) -> bool:
        return await self._hierarchy.status_machine.update_status(self, new_status)

    async def enqueue(self) -> bool:
        return await self.update_status(JobStatus.ENQUEUED)

    async def run(self) -> bool:
        return await self.update_status(JobStatus.RUNNING)

    async def complete(self) -> bool:
        return await self.update_status(JobStatus.COMPLETE)

    async def requeue(self) -> bool:
        return await self.update_status(JobStatus.REQUEUED)

    async def fail(self) -> bool:
        return await self.update_status(JobStatus.FAILED)

    async def is_enqueued(self) -> bool:
        return await self.status() is JobStatus.ENQUEUED

    async def is_running(self) -> bool:
        return await self.status() is JobStatus.RUNNING

    async def is_complete(self) -> bool:
        return await self.status() is JobStatus.COMPLETE

    async def is_requeued(self) -> bool:
        return await self.status() is JobStatus.REQUEUED

    async def is_failed(self) -> bool:
        return await self.status() is JobStatus.FAILED

    async def is_finished(self) -> bool:
        return (await self.status()).is_terminal

    # Timestamps

    async def _time(self, field: str) -> datetime | None:
        return to_datetime(decode_time(await self._hierarchy.store.get(self.key, field)))

    async def enqueued_at(self) -> datetime | None:
        return await self._time(ENQUEUED_AT_FIELD)

    async def run_at(self) -> datetime | None:
        return await self._time(RUN_AT_FIELD)

    async def complete_at(self) -> datetime | None:
        if await self.is_complete():
            return await self._time(COMPLETED_AT_FIELD)
        return None

    async def failed_at(self) -> datetime | None:
        if await self.is_failed():
            return await self._time(COMPLETED_AT_FIELD)
        return None

    async def finished_at(self) -> datetime | None:
        return await self._time(COMPLETED_AT_FIELD)

    # Serialisation

    async def as_dict(self) -> dict[str, Any]:
        """Nested ``{"name": <job class>, "children": [...]}`` view.

        Children are ordered by class name for display; this is not the
        tree's insertion order.
        """
        top: dict[str, Any] = {"name": (await self.info()).get("class"), "children": []}
        entries: list[dict[str, Any]] = [top]
        stack: list[tuple[JobNode, dict[str, Any], frozenset[str]]] = [(self, top, frozenset())]
        while stack:
            node, entry, path = stack.pop()
            path = path | {node.id}
            for child in await node.children():
                if child.id in path:
                    continue
                child_entry = {"name": (await child.info()).get("class"), "children": []}
                entry["children"].append(child_entry)
                entries.append(child_entry)
                stack.append((child, child_entry, path))

        for entry in entries:
            entry["children"].sort(key=lambda e: (e["name"] is None, str(e["name"] or "")))
        return top


__all__ = ["JobNode"]
