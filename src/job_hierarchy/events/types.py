"""
Hierarchy event types.

Events are emitted once per effective job status transition (job.update) and
once per workflow status change (workflow.update). They are designed to be:
- Serializable to JSON
- Publishable over Redis pub/sub
- Filterable by kind, job and workflow
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..jobs.types import JobStatus


class HierarchyEventType(str, Enum):
    """Event kinds published by the hierarchy."""

    JOB_UPDATE = "job.update"
    WORKFLOW_UPDATE = "workflow.update"


@dataclass
class HierarchyEvent:
    """A status change of a job or of a workflow."""
    kind: HierarchyEventType
    job_id: str
    new_status: JobStatus
    old_status: JobStatus
    workflow_id: str | None = None

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)
    schema_version: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "event_id": self.event_id,
            "kind": self.kind.value,
            "job_id": self.job_id,
            "workflow_id": self.workflow_id,
            "new_status": self.new_status.value,
            "old_status": self.old_status.value,
            "timestamp": self.timestamp,
            "schema_version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HierarchyEvent:
        """Deserialize from dictionary."""
        return cls(
            kind=HierarchyEventType(data["kind"]),
            job_id=data["job_id"],
            workflow_id=data.get("workflow_id"),
            new_status=JobStatus(data["new_status"]),
            old_status=JobStatus(data["old_status"]),
            event_id=data.get("event_id", str(uuid.uuid4())),
            timestamp=data.get("timestamp", time.time()),
            schema_version=data.get("schema_version", 1),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: str | bytes) -> HierarchyEvent:
        return cls.from_dict(json.loads(data))


__all__ = [
    "HierarchyEventType",
    "HierarchyEvent",
]
