"""
Result value objects returned by kernel services.

Responsibility:
    Typed, frozen results for the two caller-facing primitives whose outcome
    is not simply "the updated row":

    * ``Apply`` / ``NoChange`` -- what an OCC modify function decided.
    * ``AccessAttempt`` / ``AccessResult`` -- input and outcome of one
      magic-link access check.

Architecture position:
    Kernel > Domain -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union
from uuid import UUID


@dataclass(frozen=True)
class Apply:
    """Write ``payload`` as the record's new value."""

    payload: Any


@dataclass(frozen=True)
class NoChange:
    """Leave the record as it is; no write, no occ bump."""


NO_CHANGE = NoChange()

ModifyResult = Union[Apply, NoChange]
ModifyFn = Callable[[Any], ModifyResult]


# Reason strings surfaced to the link holder.
REASON_REVOKED = "Link has been revoked"
REASON_EXPIRED = "Link has expired"
REASON_LIMIT_REACHED = "Access limit reached"


@dataclass(frozen=True)
class AccessAttempt:
    """Request metadata recorded on the access log row."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AccessResult:
    """
    Outcome of ``AccessGate.validate_and_log_access``.

    Contract: ``reason`` is None exactly when ``valid`` is True.
    ``access_log_id`` identifies the log row written for this attempt.
    """

    valid: bool
    access_log_id: UUID
    reason: str | None = None

    @classmethod
    def granted(cls, access_log_id: UUID) -> AccessResult:
        return cls(valid=True, access_log_id=access_log_id)

    @classmethod
    def denied(cls, access_log_id: UUID, reason: str) -> AccessResult:
        return cls(valid=False, access_log_id=access_log_id, reason=reason)


@dataclass(frozen=True)
class TokenCheck:
    """Non-atomic validity snapshot for display purposes (no log row)."""

    valid: bool
    reason: str | None = None
