"""
Workflow registry.

A workflow is the job tree hanging off a root job and is addressed by the
root's id. Its status and finished-at live on the root's record (fields
``w`` / ``wf``) and are synchronised from job transitions:

- a failed job fails the workflow, which then stays failed
- a completed job completes the workflow once every job under the root is
  finished
- any other job activity keeps (or puts back) the workflow in running

When no workflow status has been recorded yet, the root's own status stands
in for it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator

from .events.types import HierarchyEventType
from .jobs.node import JobNode
from .jobs.types import (
    WORKFLOW_FINISHED_AT_FIELD,
    WORKFLOW_STATUS_FIELD,
    JobStatus,
    decode_time,
    encode_time,
    to_datetime,
)

if TYPE_CHECKING:
    from .hierarchy import Hierarchy


class Workflow:
    """Handle on the workflow rooted at ``root``."""

    def __init__(self, root: JobNode):
        self._root = root

    @property
    def id(self) -> str:
        return self._root.id

    @property
    def root(self) -> JobNode:
        return self._root

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Workflow) and other.id == self.id

    def __hash__(self) -> int:
        return hash((Workflow, self.id))

    def __repr__(self) -> str:
        return f"Workflow({self.id!r})"

    async def _recorded_status(self) -> JobStatus:
        store = self._root.hierarchy.store
        return JobStatus.from_code(await store.get(self._root.key, WORKFLOW_STATUS_FIELD))

    async def status(self) -> JobStatus:
        recorded = await self._recorded_status()
        if recorded is not JobStatus.UNKNOWN:
            return recorded
        return await self._root.status()

    async def finished_at(self) -> datetime | None:
        store = self._root.hierarchy.store
        return to_datetime(decode_time(await store.get(self._root.key, WORKFLOW_FINISHED_AT_FIELD)))

    async def is_finished(self) -> bool:
        return (await self.status()).is_terminal

    async def job_count(self) -> int:
        return await self._root.subtree_size()

    async def finished_job_count(self) -> int:
        return await self._root.finished_subtree_size()

    async def jobs(self) -> AsyncIterator[JobNode]:
        async for job in self._root.subtree_jobs():
            yield job

    async def as_dict(self) -> dict[str, Any]:
        return await self._root.as_dict()

    async def update_status(self, from_job_status: JobStatus) -> bool:
        """Fold one job's new status into the workflow status.

        Returns True when the workflow status changed.
        """
        hierarchy = self._root.hierarchy
        current = await self._recorded_status()
        if current is JobStatus.FAILED:
            return False

        if from_job_status is JobStatus.FAILED:
            target = JobStatus.FAILED
        elif from_job_status is JobStatus.COMPLETE:
            record = await self._root.load()
            if record.finished_subtree_size >= record.subtree_size:
                target = JobStatus.COMPLETE
            else:
                target = JobStatus.RUNNING
        elif from_job_status in (JobStatus.ENQUEUED, JobStatus.RUNNING, JobStatus.REQUEUED):
            target = JobStatus.RUNNING
        else:
            return False

        if target is current:
            return False

        finished_at = hierarchy.clock() if target.is_terminal else None
        await hierarchy.store.multi_set(
            self._root.key,
            {
                WORKFLOW_STATUS_FIELD: target.code,
                WORKFLOW_FINISHED_AT_FIELD: encode_time(finished_at) or "",
            },
        )
        hierarchy.logger.debug(
            f"Workflow {self.id}: {current.value} -> {target.value}",
            workflow_id=self.id,
        )
        await hierarchy.event_bus.publish_status(
            HierarchyEventType.WORKFLOW_UPDATE,
            self.id,
            target,
            current,
            workflow_id=self.id,
        )
        return True


class WorkflowRegistry:
    """Resolves workflows from root ids and from member jobs."""

    def __init__(self, hierarchy: Hierarchy):
        self._hierarchy = hierarchy

    def find_by_root_id(self, root_id: str) -> Workflow:
        return Workflow(self._hierarchy.find_job(root_id))

    async def find(self, job: JobNode) -> Workflow:
        return Workflow(await job.root())

    async def sync(self, job: JobNode, job_status: JobStatus) -> Workflow:
        """Resolve ``job``'s workflow and fold ``job_status`` into it."""
        workflow = await self.find(job)
        await workflow.update_status(job_status)
        return workflow


__all__ = ["Workflow", "WorkflowRegistry"]
