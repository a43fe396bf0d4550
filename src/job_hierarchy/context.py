"""
Workflow context for the job hierarchy.

The WorkflowContext names the job currently executing and the root of its
workflow. It is a plain immutable value passed explicitly down the call
chain (into enqueue hooks, and across process boundaries through request
headers) rather than process-wide state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping

JOB_HEADER = "X-Workflow-Job-Id"
WORKFLOW_HEADER = "X-Workflow-Id"


def _environ_name(header: str) -> str:
    """Header name as it appears in a WSGI/ASGI-style environ."""
    return "HTTP_" + header.upper().replace("-", "_")


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


@dataclass(frozen=True)
class WorkflowContext:
    """Identity of the job whose code is running.

    Attributes:
        job_id: The current job; jobs it enqueues become its children.
        workflow_id: Id of the current workflow's root job.
    """
    job_id: str | None = None
    workflow_id: str | None = None

    @property
    def in_workflow(self) -> bool:
        return self.job_id is not None

    def child(self, job_id: str) -> WorkflowContext:
        """Context for code running inside ``job_id``, started from this context.

        A job started outside any workflow roots a new one.
        """
        return WorkflowContext(job_id=job_id, workflow_id=self.workflow_id or job_id)

    def to_dict(self) -> dict[str, Any]:
        return {"job_id": self.job_id, "workflow_id": self.workflow_id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowContext:
        return cls(job_id=data.get("job_id"), workflow_id=data.get("workflow_id"))


def inject_headers(
    ctx: WorkflowContext | None,
    headers: MutableMapping[str, str] | None = None,
) -> MutableMapping[str, str]:
    """Write the context into outgoing request headers.

    Nothing is written unless both ids are known.
    """
    headers = {} if headers is None else headers
    if ctx is not None and ctx.job_id and ctx.workflow_id:
        headers[JOB_HEADER] = ctx.job_id
        headers[WORKFLOW_HEADER] = ctx.workflow_id
    return headers


def extract_context(headers: Mapping[Any, Any]) -> WorkflowContext | None:
    """Read a context from incoming request headers or a WSGI/ASGI environ.

    Header names are matched case-insensitively. Returns None unless both the
    job and the workflow header are present.
    """
    lowered = {_text(k).lower(): v for k, v in headers.items()}

    def lookup(header: str) -> str | None:
        value = lowered.get(header.lower()) or lowered.get(_environ_name(header).lower())
        return _text(value) if value else None

    job_id = lookup(JOB_HEADER)
    workflow_id = lookup(WORKFLOW_HEADER)
    if job_id and workflow_id:
        return WorkflowContext(job_id=job_id, workflow_id=workflow_id)
    return None


__all__ = [
    "WorkflowContext",
    "JOB_HEADER",
    "WORKFLOW_HEADER",
    "inject_headers",
    "extract_context",
]
