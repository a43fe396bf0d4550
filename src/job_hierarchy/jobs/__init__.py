"""
Job tree for the job hierarchy.

This module provides:
- JobStatus / JobRecord: Status enumeration and typed job record
- JobNode: Tree node handle (links, walks, status, counters)
- StatusMachine: Status transitions
- SubtreeCounter: Subtree aggregates and reconciliation
"""

from .types import (
    JobStatus,
    JobRecord,
    VALID_TRANSITIONS,
    can_transition,
    filter_info,
)
from .node import JobNode
from .status import StatusMachine, coerce_status
from .counters import SubtreeCounter, ReconcileReport, Correction

__all__ = [
    "JobStatus",
    "JobRecord",
    "VALID_TRANSITIONS",
    "can_transition",
    "filter_info",
    "JobNode",
    "StatusMachine",
    "coerce_status",
    "SubtreeCounter",
    "ReconcileReport",
    "Correction",
]
