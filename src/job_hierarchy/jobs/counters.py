"""
Subtree counters.

Every job record carries two aggregates over the subtree rooted at it:
``subtree_size`` (jobs in the subtree, itself included) and
``finished_subtree_size`` (jobs in the subtree in a terminal status).
Increments are applied to a job and all of its ancestors through the store's
atomic ``increment_path``.

Attaching a child and propagating its counters are two separate atomic
units, as are a terminal status write and its finished increment, so the
aggregates are eventually consistent. ``reconcile`` recomputes them from the
tree itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..logging import Timer
from .types import FINISHED_SUBTREE_SIZE_FIELD, SUBTREE_SIZE_FIELD

if TYPE_CHECKING:
    from ..hierarchy import Hierarchy
    from .node import JobNode


@dataclass
class Correction:
    """A counter that disagreed with the tree."""
    job_id: str
    field: str
    stored: int
    actual: int


@dataclass
class ReconcileReport:
    """Outcome of a reconciliation pass."""
    root_id: str
    checked: int = 0
    corrections: list[Correction] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.corrections


class SubtreeCounter:
    """Maintains subtree_size and finished_subtree_size aggregates."""

    def __init__(self, hierarchy: Hierarchy):
        self._hierarchy = hierarchy

    async def increment_subtree_size(self, node: JobNode, amount: int = 1) -> int:
        """Add ``amount`` to subtree_size on ``node`` and every ancestor. Returns records touched."""
        return await self._increment(node, SUBTREE_SIZE_FIELD, amount)

    async def increment_finished_subtree_size(self, node: JobNode, amount: int = 1) -> int:
        """Add ``amount`` to finished_subtree_size on ``node`` and every ancestor."""
        return await self._increment(node, FINISHED_SUBTREE_SIZE_FIELD, amount)

    async def _increment(self, node: JobNode, field: str, amount: int) -> int:
        if amount == 0:
            return 0
        return await self._hierarchy.store.increment_path(node.id, field, amount)

    async def reconcile(self, node: JobNode) -> ReconcileReport:
        """Recompute both aggregates for every job under ``node`` and rewrite drifted values.

        Counters are rewritten with absolute values, so increments made by
        other writers while the pass runs can be lost; run it on a quiescent
        tree. Ancestors of ``node`` are not touched.
        """
        store = self._hierarchy.store
        logger = self._hierarchy.logger
        report = ReconcileReport(root_id=node.id)
        timer = Timer()

        # Pre-order walk, visiting each distinct job once
        order: list[JobNode] = []
        children_of: dict[str, list[str]] = {}
        stack: list[JobNode] = [node]
        while stack:
            current = stack.pop()
            if current.id in children_of:
                continue
            children = await current.children()
            children_of[current.id] = [child.id for child in children]
            order.append(current)
            stack.extend(child for child in children if child.id not in children_of)

        sizes: dict[str, int] = {}
        finished: dict[str, int] = {}
        # Reversed pre-order visits every child before its parent
        for current in reversed(order):
            record = await current.load()
            child_ids = [c for c in children_of[current.id] if c in sizes]
            actual_size = 1 + sum(sizes[c] for c in child_ids)
            actual_finished = int(record.status.is_terminal) + sum(finished[c] for c in child_ids)
            sizes[current.id] = actual_size
            finished[current.id] = actual_finished
            report.checked += 1

            updates: dict[str, str] = {}
            if record.subtree_size != actual_size:
                report.corrections.append(
                    Correction(current.id, SUBTREE_SIZE_FIELD, record.subtree_size, actual_size)
                )
                updates[SUBTREE_SIZE_FIELD] = str(actual_size)
            if record.finished_subtree_size != actual_finished:
                report.corrections.append(
                    Correction(
                        current.id,
                        FINISHED_SUBTREE_SIZE_FIELD,
                        record.finished_subtree_size,
                        actual_finished,
                    )
                )
                updates[FINISHED_SUBTREE_SIZE_FIELD] = str(actual_finished)
            if updates:
                await store.multi_set(current.key, updates)

        with logger.job_context(operation="reconcile"):
            for correction in report.corrections:
                logger.warning(
                    "Counter drift corrected",
                    job_id=correction.job_id,
                    field=correction.field,
                    stored=correction.stored,
                    actual=correction.actual,
                )
            logger.info(
                "Reconcile finished",
                root_id=report.root_id,
                checked=report.checked,
                corrections=len(report.corrections),
                duration_ms=round(timer.stop(), 2),
            )
        return report


__all__ = ["SubtreeCounter", "ReconcileReport", "Correction"]
