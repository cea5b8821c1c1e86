"""
Module: scms_kernel.models.activity
Responsibility: ORM persistence for the append-only activity feed.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Activity records are append-only; no UPDATE or DELETE (ORM listeners
      in db/immutability.py).
    - Every status change, job start, job failure and magic-link lifecycle
      change produces exactly one ActivityRecord, in the same transaction
      as the change it describes.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from scms_kernel.db.base import Base, UUIDString


class ActivityKind(str, Enum):
    """Kinds of activity recorded against a subject."""

    # Workflow
    STATUS_CHANGE = "status_change"
    TRANSITION_STARTED = "transition_started"
    TRANSITION_FAILED = "transition_failed"

    # Versioned records
    RECORD_UPDATED = "record_updated"

    # Magic links
    TOKEN_CREATED = "token_created"
    TOKEN_REVOKED = "token_revoked"
    TOKEN_REACTIVATED = "token_reactivated"
    TOKEN_DELETED = "token_deleted"


class ActivityRecord(Base):
    """
    One entry in a subject's activity feed.

    Contract:
        Rows are written once by ActivityLog and never changed.

    Non-goals:
        - Rendering the feed; ``snapshot`` holds raw structured context.
    """

    __tablename__ = "activity_records"

    __table_args__ = (
        Index("idx_activity_subject", "subject_type", "subject_id"),
        Index("idx_activity_kind", "kind"),
        Index("idx_activity_occurred", "occurred_at"),
    )

    subject_type: Mapped[str] = mapped_column(String(64), nullable=False)

    subject_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    kind: Mapped[ActivityKind] = mapped_column(String(32), nullable=False)

    # Status of the subject after the change, when it has one
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)

    snapshot: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ActivityRecord {self.kind} on {self.subject_type}:{self.subject_id}>"
