"""
Module: scms_kernel.models.versioned_record
Responsibility: ORM persistence for generic JSON-valued records mutated under
    optimistic concurrency (work versions, site data, form configuration).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - occ starts at 1 and every successful write increments it by exactly 1,
      conditioned on the writer having read the current value.  Only
      VersionedRecordStore writes payload/occ.

Failure modes:
    - OCCConflictError (raised by the store) when writers keep colliding.
"""

from typing import Any

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from scms_kernel.db.base import TimestampedBase


class VersionedRecord(TimestampedBase):
    """
    A JSON payload guarded by an optimistic-concurrency counter.

    Contract:
        ``payload`` is replaced wholesale by each write; it is never edited
        in place through the ORM.

    Guarantees:
        - ``occ`` == 1 + number of successful writes.
    """

    __tablename__ = "versioned_records"

    __table_args__ = (Index("idx_versioned_record_kind", "kind"),)

    # Free-form label for what the payload holds (e.g. "work_version")
    kind: Mapped[str] = mapped_column(String(64), nullable=False)

    payload: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    occ: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<VersionedRecord {self.kind}:{self.id} occ={self.occ}>"
