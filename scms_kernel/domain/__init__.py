"""
Pure domain layer.

Value objects and workflow definitions with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (the SystemClock is the one sanctioned exception)

All domain objects are immutable.
"""

from scms_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from scms_kernel.domain.results import (
    NO_CHANGE,
    REASON_EXPIRED,
    REASON_LIMIT_REACHED,
    REASON_REVOKED,
    AccessAttempt,
    AccessResult,
    Apply,
    ModifyFn,
    ModifyResult,
    NoChange,
    TokenCheck,
)
from scms_kernel.domain.workflow import (
    JobTransition,
    SimpleTransition,
    Transition,
    Workflow,
    WorkflowState,
    job_type_of,
    transition_from_dict,
    validate_workflow,
)

__all__ = [
    "AccessAttempt",
    "AccessResult",
    "Apply",
    "Clock",
    "DeterministicClock",
    "JobTransition",
    "ModifyFn",
    "ModifyResult",
    "NO_CHANGE",
    "NoChange",
    "REASON_EXPIRED",
    "REASON_LIMIT_REACHED",
    "REASON_REVOKED",
    "SimpleTransition",
    "SystemClock",
    "TokenCheck",
    "Transition",
    "Workflow",
    "WorkflowState",
    "job_type_of",
    "transition_from_dict",
    "validate_workflow",
]
