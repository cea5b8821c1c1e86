"""
Module: scms_kernel.models.access_token
Responsibility: ORM persistence for magic-link access tokens and their
    access log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``access_limit`` is NULL (unlimited) or a positive integer; AccessGate
      validates it before any row is written.
    - For a token with a limit, the number of successful AccessLogEntry
      rows never exceeds the limit.  The check and the log insert happen
      under one row lock (AccessGate.validate_and_log_access).
    - AccessLogEntry rows are append-only and have no foreign key to the
      token, so they survive token deletion.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from scms_kernel.db.base import Base, TimestampedBase, UUIDString


class AccessToken(TimestampedBase):
    """
    A magic link granting time- and count-limited access to a subject.

    Guarantees:
        - ``expiry`` None means the token never expires.
        - ``access_limit`` None means unlimited successful accesses.
    """

    __tablename__ = "access_tokens"

    __table_args__ = (
        Index("idx_access_token_subject", "subject_id"),
    )

    # What the link is for (e.g. "submission_preview")
    kind: Mapped[str] = mapped_column(String(64), nullable=False)

    # What the link grants access to (e.g. a submission id)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)

    data: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    expiry: Mapped[datetime | None] = mapped_column(nullable=True)

    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    access_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AccessToken {self.kind}:{self.id} revoked={self.revoked}>"


class AccessLogEntry(Base):
    """
    One access attempt against a token, successful or not.

    Contract:
        Written once by AccessGate and never changed.
    """

    __tablename__ = "access_log_entries"

    __table_args__ = (
        Index("idx_access_log_token", "token_id", "success"),
        Index("idx_access_log_occurred", "occurred_at"),
    )

    # No foreign key: log rows outlive the token
    token_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    def __repr__(self) -> str:
        return f"<AccessLogEntry {self.token_id} success={self.success}>"
