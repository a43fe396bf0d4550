"""
Lifecycle adapter for job frameworks.

WorkflowTracker is the glue a job framework's hooks call into:

- ``on_enqueue`` from the client side, when a job is pushed to a queue
- ``track`` around the execution of a job on a worker

It implements no queueing or retry scheduling of its own; it only reads the
job payload to decide which status a finished attempt ends in.

Payload keys:
- ``class`` / ``queue`` (and any ``workflow_keys``): stored as job info
- ``workflow``: opt a job that is not already inside a workflow into tracking
- ``retry``: True, False, or the maximum number of retries
- ``retry_count``: retries already performed (absent on the first attempt)
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator

from .context import WorkflowContext
from .errors import HierarchyError, IllegalTransitionError, JobShutdown, is_retryable
from .jobs.types import JobStatus

if TYPE_CHECKING:
    from .hierarchy import Hierarchy
    from .jobs.node import JobNode


class WorkflowTracker:
    """Records job lifecycles into the hierarchy."""

    def __init__(self, hierarchy: Hierarchy):
        self._hierarchy = hierarchy

    @property
    def hierarchy(self) -> Hierarchy:
        return self._hierarchy

    def is_tracked(self, payload: dict[str, Any], ctx: WorkflowContext | None = None) -> bool:
        """A job is tracked when it opts in or is enqueued from inside a workflow."""
        return bool(payload.get("workflow")) or (ctx is not None and ctx.in_workflow)

    async def on_enqueue(
        self,
        job_id: str,
        payload: dict[str, Any],
        ctx: WorkflowContext | None = None,
    ) -> JobNode | None:
        """Create the job's node and attach it under the enqueuing job, if any.

        A job pushed again (a retry, or a redelivery) keeps its record, its
        counters and its parent; only its status moves back to enqueued.
        Returns None for untracked jobs.
        """
        if not self.is_tracked(payload, ctx):
            return None

        hierarchy = self._hierarchy
        job = hierarchy.find_job(job_id)
        if await job.exists():
            attach = await job.is_root()
        else:
            job = await hierarchy.create_job(job_id, payload)
            attach = True
        if attach and ctx is not None and ctx.job_id and ctx.job_id != job_id:
            parent = hierarchy.find_job(ctx.job_id)
            await parent.add_child(job)
        await self._record(job, JobStatus.ENQUEUED)
        return job

    def max_retries(self, payload: dict[str, Any]) -> int:
        retry = payload.get("retry", False)
        if retry is True:
            return self._hierarchy.settings.default_max_retries
        if retry is False or retry is None:
            return 0
        return max(int(retry), 0)

    def retries_remaining(self, payload: dict[str, Any]) -> bool:
        retry_count = int(payload.get("retry_count") or 0)
        return retry_count < self.max_retries(payload)

    def status_after_error(self, error: BaseException, payload: dict[str, Any]) -> JobStatus:
        """Status a job ends in when an attempt raised ``error``.

        Library errors flagged as not retryable fail the job at once; any
        other error is retried while the payload allows it.
        """
        if isinstance(error, (JobShutdown, asyncio.CancelledError)):
            return JobStatus.REQUEUED
        if isinstance(error, HierarchyError) and not is_retryable(error):
            return JobStatus.FAILED
        if self.retries_remaining(payload):
            return JobStatus.REQUEUED
        return JobStatus.FAILED

    async def _record(self, job: JobNode, status: JobStatus) -> None:
        # Out-of-order hooks must not stop the job itself from running
        try:
            await job.update_status(status)
        except IllegalTransitionError as e:
            self._hierarchy.logger.warning(
                "Lifecycle status not recorded",
                job_id=job.id,
                status=status.value,
                error=e.message,
            )

    @asynccontextmanager
    async def track(
        self,
        job_id: str,
        payload: dict[str, Any],
        ctx: WorkflowContext | None = None,
    ) -> AsyncIterator[WorkflowContext]:
        """Wrap one execution attempt of a job.

        Yields the context the job's own code should run under (and pass to
        the jobs it enqueues). The job's exception, if any, is re-raised after
        its status is recorded.

        Example:
            ```python
            async with tracker.track(jid, payload, ctx) as job_ctx:
                await perform(payload, job_ctx)
            ```
        """
        job = self._hierarchy.find_job(job_id)
        if not await job.exists():
            # Not tracked at enqueue time; its own jobs stay outside any workflow too
            yield ctx or WorkflowContext()
            return

        if ctx is not None and ctx.workflow_id:
            job_ctx = ctx.child(job_id)
        else:
            job_ctx = WorkflowContext(job_id=job_id, workflow_id=(await job.root()).id)
        await self._record(job, JobStatus.RUNNING)
        try:
            yield job_ctx
        except (Exception, asyncio.CancelledError) as e:
            status = self.status_after_error(e, payload)
            self._hierarchy.logger.info(
                f"Job attempt raised {type(e).__name__}",
                job_id=job_id,
                workflow_id=job_ctx.workflow_id,
                status=status.value,
            )
            await self._record(job, status)
            raise
        await self._record(job, JobStatus.COMPLETE)


__all__ = ["WorkflowTracker"]
