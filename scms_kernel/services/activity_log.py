"""
ActivityLog -- append-only activity feed writer.

Responsibility:
    Records one ActivityRecord per state change (status change, job
    start/failure, record update, magic-link lifecycle) inside the
    transaction that performs the change.

Architecture position:
    Kernel > Services -- session-bound (see ``BaseService``).

Invariants enforced:
    - Append-only: this service only INSERTs.  UPDATE/DELETE of activity
      rows are rejected by ``db/immutability.py``.
    - Atomicity with the caller: rows are flushed in the caller's session
      and committed (or rolled back) with the caller's change.

Failure modes:
    - Any database error propagates; the caller's transaction rolls back
      and the change it was recording is undone with it.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from scms_kernel.logging_config import get_logger
from scms_kernel.models.activity import ActivityKind, ActivityRecord
from scms_kernel.services.base import BaseService

logger = get_logger("services.activity_log")


class ActivityLog(BaseService[ActivityRecord]):
    """
    Writes activity records in the caller's transaction.

    Guarantees:
        - ``append`` issues exactly one INSERT and flushes it.
        - ``occurred_at`` comes from the injected clock.
    """

    def append(
        self,
        kind: ActivityKind,
        subject_type: str,
        subject_id: UUID,
        actor_id: str,
        status: str | None = None,
        snapshot: dict[str, Any] | None = None,
    ) -> ActivityRecord:
        record = ActivityRecord(
            kind=kind.value,
            subject_type=subject_type,
            subject_id=subject_id,
            actor_id=str(actor_id),
            occurred_at=self._clock.now(),
            status=status,
            snapshot=snapshot,
        )
        self.session.add(record)
        self.session.flush()
        logger.debug(
            "activity_appended",
            extra={
                "activity_id": str(record.id),
                "kind": kind.value,
                "subject_type": subject_type,
                "subject_id": str(subject_id),
            },
        )
        return record

    def list_for_subject(
        self,
        subject_type: str,
        subject_id: UUID,
    ) -> list[ActivityRecord]:
        """Activity for one subject, oldest first."""
        return list(
            self.session.execute(
                select(ActivityRecord)
                .where(
                    ActivityRecord.subject_type == subject_type,
                    ActivityRecord.subject_id == subject_id,
                )
                .order_by(ActivityRecord.occurred_at)
            ).scalars()
        )
