"""
Module: scms_kernel.models.submission_version
Responsibility: ORM persistence for a submission version, the record whose
    publication status is advanced by the workflow engine.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``status`` changes only through WorkflowEngine.
    - ``pending_transition`` is non-null exactly while a job-backed
      transition is in flight; it carries the job correlation id.
    - ``date_published`` is write-once: the first transition that sets it
      wins and later transitions keep the stored date.
    - ``occ`` increments by exactly 1 on every write, as for VersionedRecord.
"""

from datetime import date
from typing import Any

from sqlalchemy import Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from scms_kernel.db.base import TimestampedBase


class SubmissionVersion(TimestampedBase):
    """
    One version of a submission on a site.

    Guarantees:
        - ``pending_correlation_id`` is the id of the in-flight job, if any.
    """

    __tablename__ = "submission_versions"

    __table_args__ = (
        Index("idx_submission_version_site", "site_name"),
        Index("idx_submission_version_submission", "submission_id"),
        Index("idx_submission_version_status", "status"),
    )

    # Tenant
    site_name: Mapped[str] = mapped_column(String(128), nullable=False)

    submission_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(64), nullable=False)

    pending_transition: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    date_published: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Work metadata (title, slug, cdn key, ...)
    payload: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    occ: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<SubmissionVersion {self.id} {self.status} occ={self.occ}>"

    @property
    def pending_correlation_id(self) -> str | None:
        if not self.pending_transition:
            return None
        return self.pending_transition.get("correlation_id")
