"""
Hierarchy facade.

The Hierarchy owns the store, the event bus, the settings and the logger, and
wires the components that share them: SubtreeCounter, StatusMachine and
WorkflowRegistry. JobNode handles reach those components through it.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable

from .config import HierarchySettings, get_settings
from .errors import ErrorContext, InvalidJobIdError
from .events import EventBus, NullEventBus, RedisEventBus
from .jobs.counters import SubtreeCounter
from .jobs.node import JobNode
from .jobs.status import StatusMachine
from .jobs.types import (
    FINISHED_SUBTREE_SIZE_FIELD,
    INFO_FIELD,
    SUBTREE_SIZE_FIELD,
    filter_info,
)
from .logging import StructuredLogger, configure_logging, get_logger
from .storage import InMemoryTreeStore, RedisTreeStore, TreeStore
from .workflows import Workflow, WorkflowRegistry


def validate_job_id(job_id: Any) -> str:
    """Job ids are non-empty strings without whitespace or ':' (the key separator)."""
    if (
        not isinstance(job_id, str)
        or not job_id
        or ":" in job_id
        or any(ch.isspace() for ch in job_id)
    ):
        raise InvalidJobIdError(job_id=job_id, context=ErrorContext(operation="validate_job_id"))
    return job_id


class Hierarchy:
    """Entry point for job tree operations.

    Example:
        ```python
        hierarchy = Hierarchy()  # in-memory store, no notifications
        root = await hierarchy.create_job("jid-1", {"class": "ImportJob", "queue": "default"})
        child = await hierarchy.create_job("jid-2", {"class": "ParseJob"})
        await root.add_child(child)
        await child.enqueue()
        ```
    """

    def __init__(
        self,
        store: TreeStore | None = None,
        event_bus: EventBus | None = None,
        settings: HierarchySettings | None = None,
        logger: StructuredLogger | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.store = store or InMemoryTreeStore(
            key_prefix=self.settings.key_prefix,
            ttl_seconds=self.settings.ttl_seconds,
            max_depth=self.settings.max_depth,
        )
        self.event_bus = event_bus or NullEventBus()
        self.logger = logger or get_logger()
        self.clock = clock

        self.counter = SubtreeCounter(self)
        self.status_machine = StatusMachine(self)
        self.workflows = WorkflowRegistry(self)

    @classmethod
    def from_settings(cls, settings: HierarchySettings | None = None) -> Hierarchy:
        """Build a Redis-backed hierarchy (store and pub/sub notifications) from settings."""
        settings = settings or get_settings()
        # Store and bus pick up the configured logger through get_logger()
        logger = configure_logging(
            level=settings.log_level,
            json_output=settings.log_format == "json",
        )
        store = RedisTreeStore.from_url(
            settings.redis_url,
            key_prefix=settings.key_prefix,
            ttl_seconds=settings.ttl_seconds,
            max_depth=settings.max_depth,
        )
        bus = RedisEventBus(store.client, channel_prefix=settings.event_channel_prefix)
        return cls(store=store, event_bus=bus, settings=settings, logger=logger)

    # Jobs

    def find_job(self, job_id: str) -> JobNode:
        """Lazy handle; use ``exists()`` to tell a created job from an empty one."""
        return JobNode(validate_job_id(job_id), self)

    async def create_job(
        self,
        job_id: str,
        raw_metadata: dict[str, Any] | None = None,
    ) -> JobNode:
        """Create (or reinitialise) a job record.

        Stores the allow-listed metadata and resets the counters to a
        single unfinished job. Existing parent and children links under the
        same id are left in place.
        """
        job = self.find_job(job_id)
        info = filter_info(raw_metadata or {}, self.settings.info_keys)
        await self.store.multi_set(
            job.key,
            {
                INFO_FIELD: json.dumps(info),
                SUBTREE_SIZE_FIELD: "1",
                FINISHED_SUBTREE_SIZE_FIELD: "0",
            },
        )
        self.logger.debug("Job created", job_id=job_id, job_class=info.get("class"))
        return job

    # Workflows

    def find_workflow(self, root_id: str) -> Workflow:
        return self.workflows.find_by_root_id(root_id)

    async def workflow_of(self, job: JobNode) -> Workflow:
        return await self.workflows.find(job)

    async def close(self) -> None:
        await self.event_bus.close()
        await self.store.close()


__all__ = ["Hierarchy", "validate_job_id"]
