"""
Job types for the job hierarchy.

This module defines the JobStatus enum, the legal transition table and the
JobRecord dataclass. JobRecord.to_fields / JobRecord.from_fields are the one
place where Python values are converted to and from the store's string
hash fields.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable

# Job hash fields
INFO_FIELD = "i"
PARENT_FIELD = "p"
STATUS_FIELD = "s"

ENQUEUED_AT_FIELD = "e"
RUN_AT_FIELD = "r"
COMPLETED_AT_FIELD = "c"

WORKFLOW_STATUS_FIELD = "w"
WORKFLOW_FINISHED_AT_FIELD = "wf"
SUBTREE_SIZE_FIELD = "t"
FINISHED_SUBTREE_SIZE_FIELD = "tf"


class JobStatus(str, Enum):
    """Job lifecycle states.

    State transitions:
    - any -> ENQUEUED (job pushed, or pushed again, by the client)
    - ENQUEUED -> RUNNING (worker picks it up)
    - RUNNING -> COMPLETE (finished successfully)
    - RUNNING -> REQUEUED (retryable failure or worker shutdown)
    - REQUEUED -> ENQUEUED | RUNNING (retry)
    - RUNNING | REQUEUED -> FAILED (retries exhausted or not retryable)

    UNKNOWN is the absence of a stored value and is never written.
    """
    UNKNOWN = "unknown"
    ENQUEUED = "enqueued"
    RUNNING = "running"
    COMPLETE = "complete"
    REQUEUED = "requeued"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {JobStatus.COMPLETE, JobStatus.FAILED}

    @property
    def code(self) -> str | None:
        """Single-character code stored in the status field."""
        return _STATUS_CODES.get(self)

    @property
    def timestamp_field(self) -> str | None:
        """Hash field stamped when this status is reached, if any."""
        return _TIMESTAMP_FIELDS.get(self)

    @classmethod
    def from_code(cls, code: str | None) -> JobStatus:
        """Decode a stored status code; missing or unrecognised codes are UNKNOWN."""
        return _STATUS_BY_CODE.get(code, cls.UNKNOWN)


_STATUS_CODES: dict[JobStatus, str] = {
    JobStatus.ENQUEUED: "0",
    JobStatus.RUNNING: "1",
    JobStatus.COMPLETE: "2",
    JobStatus.REQUEUED: "3",
    JobStatus.FAILED: "4",
}
_STATUS_BY_CODE: dict[str | None, JobStatus] = {v: k for k, v in _STATUS_CODES.items()}

_TIMESTAMP_FIELDS: dict[JobStatus, str] = {
    JobStatus.ENQUEUED: ENQUEUED_AT_FIELD,
    JobStatus.RUNNING: RUN_AT_FIELD,
    JobStatus.COMPLETE: COMPLETED_AT_FIELD,
    JobStatus.FAILED: COMPLETED_AT_FIELD,
}


# Valid state transitions
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.UNKNOWN: {JobStatus.ENQUEUED},
    JobStatus.ENQUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {
        JobStatus.ENQUEUED,
        JobStatus.COMPLETE,
        JobStatus.REQUEUED,
        JobStatus.FAILED,
    },
    JobStatus.REQUEUED: {JobStatus.ENQUEUED, JobStatus.RUNNING, JobStatus.FAILED},
    # Terminal states can only be pushed again
    JobStatus.COMPLETE: {JobStatus.ENQUEUED},
    JobStatus.FAILED: {JobStatus.ENQUEUED},
}


def can_transition(old_status: JobStatus, new_status: JobStatus) -> bool:
    """Check if moving from old_status to new_status is legal."""
    return new_status in VALID_TRANSITIONS.get(old_status, set())


def filter_info(raw: dict[str, Any], keys: Iterable[str]) -> dict[str, Any]:
    """Keep the allow-listed keys plus whatever the payload names in ``workflow_keys``."""
    keys_to_keep = list(dict.fromkeys([*keys, *_as_list(raw.get("workflow_keys"))]))
    return {k: v for k, v in raw.items() if k in keys_to_keep}


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def encode_time(value: float | None) -> str | None:
    return None if value is None else repr(float(value))


def decode_time(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def to_datetime(value: float | None) -> datetime | None:
    """Epoch seconds to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass
class JobRecord:
    """Typed view of a job's hash record.

    A record read for a job that was never created has every field at its
    empty value; use the store's existence check to tell the two apart.
    """
    job_id: str
    info: dict[str, Any] = field(default_factory=dict)
    parent_id: str | None = None
    status: JobStatus = JobStatus.UNKNOWN

    # Timestamps (epoch seconds)
    enqueued_at: float | None = None
    run_at: float | None = None
    completed_at: float | None = None

    # Workflow view, meaningful on a root only
    workflow_status: JobStatus = JobStatus.UNKNOWN
    workflow_finished_at: float | None = None

    # Aggregates
    subtree_size: int = 0
    finished_subtree_size: int = 0

    def to_fields(self) -> dict[str, str]:
        """Serialize to store hash fields, omitting empty values."""
        fields: dict[str, str | None] = {
            INFO_FIELD: json.dumps(self.info) if self.info else None,
            PARENT_FIELD: self.parent_id,
            STATUS_FIELD: self.status.code,
            ENQUEUED_AT_FIELD: encode_time(self.enqueued_at),
            RUN_AT_FIELD: encode_time(self.run_at),
            COMPLETED_AT_FIELD: encode_time(self.completed_at),
            WORKFLOW_STATUS_FIELD: self.workflow_status.code,
            WORKFLOW_FINISHED_AT_FIELD: encode_time(self.workflow_finished_at),
            SUBTREE_SIZE_FIELD: str(self.subtree_size),
            FINISHED_SUBTREE_SIZE_FIELD: str(self.finished_subtree_size),
        }
        return {k: v for k, v in fields.items() if v is not None}

    @classmethod
    def from_fields(cls, job_id: str, fields: dict[str, str]) -> JobRecord:
        """Deserialize from store hash fields."""
        raw_info = fields.get(INFO_FIELD)
        return cls(
            job_id=job_id,
            info=json.loads(raw_info) if raw_info else {},
            parent_id=fields.get(PARENT_FIELD) or None,
            status=JobStatus.from_code(fields.get(STATUS_FIELD)),
            enqueued_at=decode_time(fields.get(ENQUEUED_AT_FIELD)),
            run_at=decode_time(fields.get(RUN_AT_FIELD)),
            completed_at=decode_time(fields.get(COMPLETED_AT_FIELD)),
            workflow_status=JobStatus.from_code(fields.get(WORKFLOW_STATUS_FIELD)),
            workflow_finished_at=decode_time(fields.get(WORKFLOW_FINISHED_AT_FIELD)),
            subtree_size=int(fields.get(SUBTREE_SIZE_FIELD) or 0),
            finished_subtree_size=int(fields.get(FINISHED_SUBTREE_SIZE_FIELD) or 0),
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain dictionary (for logging and inspection)."""
        return {
            "job_id": self.job_id,
            "info": dict(self.info),
            "parent_id": self.parent_id,
            "status": self.status.value,
            "enqueued_at": self.enqueued_at,
            "run_at": self.run_at,
            "completed_at": self.completed_at,
            "workflow_status": self.workflow_status.value,
            "workflow_finished_at": self.workflow_finished_at,
            "subtree_size": self.subtree_size,
            "finished_subtree_size": self.finished_subtree_size,
        }


__all__ = [
    "JobStatus",
    "JobRecord",
    "VALID_TRANSITIONS",
    "can_transition",
    "filter_info",
    "encode_time",
    "decode_time",
    "to_datetime",
    "INFO_FIELD",
    "PARENT_FIELD",
    "STATUS_FIELD",
    "ENQUEUED_AT_FIELD",
    "RUN_AT_FIELD",
    "COMPLETED_AT_FIELD",
    "WORKFLOW_STATUS_FIELD",
    "WORKFLOW_FINISHED_AT_FIELD",
    "SUBTREE_SIZE_FIELD",
    "FINISHED_SUBTREE_SIZE_FIELD",
]
