"""
Job status state machine.

update_status is the single entry point for status changes. It validates the
target, writes the status code and its timestamp in one atomic multi-field
write, keeps finished_subtree_size in step with terminal states, publishes a
job.update event and synchronises the workflow view.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import ErrorContext, IllegalTransitionError, InvalidStatusError
from ..events.types import HierarchyEventType
from .types import STATUS_FIELD, JobStatus, can_transition, encode_time

if TYPE_CHECKING:
    from ..hierarchy import Hierarchy
    from .node import JobNode


def coerce_status(value: JobStatus | str) -> JobStatus:
    """Turn a status or its name into a settable JobStatus.

    Raises:
        InvalidStatusError: For anything outside the enumeration, and for
            UNKNOWN, which is never written.
    """
    status: JobStatus | None = None
    if isinstance(value, JobStatus):
        status = value
    elif isinstance(value, str):
        try:
            status = JobStatus(value.lower())
        except ValueError:
            status = None
    if status is None or status is JobStatus.UNKNOWN:
        raise InvalidStatusError(status=value)
    return status


class StatusMachine:
    """Validates and applies job status transitions."""

    def __init__(self, hierarchy: Hierarchy):
        self._hierarchy = hierarchy

    async def update_status(self, job: JobNode, new_status: JobStatus | str) -> bool:
        """Move ``job`` to ``new_status``.

        Returns False, with no writes and no event, when the job is already
        in that status.

        Raises:
            InvalidStatusError: ``new_status`` is not a settable status.
            IllegalTransitionError: The transition is not legal and the
                hierarchy runs with strict transitions.
        """
        target = coerce_status(new_status)
        hierarchy = self._hierarchy
        old_status = await job.status()
        if target is old_status:
            return False

        legal = can_transition(old_status, target)
        if not legal and hierarchy.settings.strict_transitions:
            raise IllegalTransitionError(
                from_status=old_status,
                to_status=target,
                context=ErrorContext(job_id=job.id, operation="update_status"),
            )

        fields = {STATUS_FIELD: target.code}
        if target.timestamp_field:
            fields[target.timestamp_field] = encode_time(hierarchy.clock())
        await hierarchy.store.multi_set(job.key, fields)
        hierarchy.logger.log_transition(job.id, old_status.value, target.value, legal=legal)

        # Only crossings of the terminal boundary move the finished counter
        if target.is_terminal and not old_status.is_terminal:
            await hierarchy.counter.increment_finished_subtree_size(job, 1)
        elif old_status.is_terminal and not target.is_terminal:
            await hierarchy.counter.increment_finished_subtree_size(job, -1)

        workflow = await hierarchy.workflows.find(job)
        await hierarchy.event_bus.publish_status(
            HierarchyEventType.JOB_UPDATE,
            job.id,
            target,
            old_status,
            workflow_id=workflow.id,
        )
        await workflow.update_status(target)
        return True


__all__ = ["StatusMachine", "coerce_status"]
