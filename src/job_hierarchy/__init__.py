"""
Job Hierarchy - workflow trees for background jobs.

This package tracks which job enqueued which, and the lifecycle status of
every job, in a shared Redis store:
- Job tree with parent/child links and iterative walks
- Status state machine (enqueued, running, complete, requeued, failed)
- Subtree counters kept up to date as jobs are attached and finish
- Workflow view aggregated at the root of each tree
- Status-change notifications over an event bus

Example:
    ```python
    from job_hierarchy import Hierarchy, HierarchySettings, WorkflowTracker

    hierarchy = Hierarchy.from_settings(HierarchySettings.from_env())
    tracker = WorkflowTracker(hierarchy)

    # Client side
    await tracker.on_enqueue(jid, {"class": "ImportJob", "queue": "default", "workflow": True})

    # Worker side
    async with tracker.track(jid, payload) as ctx:
        await tracker.on_enqueue(child_jid, {"class": "ParseJob"}, ctx)

    workflow = await hierarchy.find_job(jid).workflow()
    print(await workflow.status(), await workflow.as_dict())
    ```
"""

from .errors import (
    ErrorCode,
    ErrorContext,
    HierarchyError,
    ValidationError,
    InvalidJobIdError,
    InvalidStatusError,
    IllegalTransitionError,
    StoreError,
    StoreConnectionError,
    StoreTimeoutError,
    ConfigError,
    JobShutdown,
    is_retryable,
)
from .config import HierarchySettings, get_settings, configure, load_env
from .logging import StructuredLogger, get_logger, configure_logging
from .jobs import (
    JobStatus,
    JobRecord,
    VALID_TRANSITIONS,
    JobNode,
    StatusMachine,
    SubtreeCounter,
    ReconcileReport,
)
from .events import (
    HierarchyEvent,
    HierarchyEventType,
    EventBus,
    EventSubscription,
    InMemoryEventBus,
    NullEventBus,
    RedisEventBus,
)
from .storage import TreeStore, InMemoryTreeStore, RedisTreeStore
from .workflows import Workflow, WorkflowRegistry
from .hierarchy import Hierarchy, validate_job_id
from .context import WorkflowContext, inject_headers, extract_context
from .lifecycle import WorkflowTracker

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ErrorCode",
    "ErrorContext",
    "HierarchyError",
    "ValidationError",
    "InvalidJobIdError",
    "InvalidStatusError",
    "IllegalTransitionError",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "ConfigError",
    "JobShutdown",
    "is_retryable",
    # Config / logging
    "HierarchySettings",
    "get_settings",
    "configure",
    "load_env",
    "StructuredLogger",
    "get_logger",
    "configure_logging",
    # Jobs
    "JobStatus",
    "JobRecord",
    "VALID_TRANSITIONS",
    "JobNode",
    "StatusMachine",
    "SubtreeCounter",
    "ReconcileReport",
    # Events
    "HierarchyEvent",
    "HierarchyEventType",
    "EventBus",
    "EventSubscription",
    "InMemoryEventBus",
    "NullEventBus",
    "RedisEventBus",
    # Storage
    "TreeStore",
    "InMemoryTreeStore",
    "RedisTreeStore",
    # Workflows
    "Workflow",
    "WorkflowRegistry",
    # Entry points
    "Hierarchy",
    "validate_job_id",
    "WorkflowContext",
    "inject_headers",
    "extract_context",
    "WorkflowTracker",
]
