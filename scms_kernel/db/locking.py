"""
Module: scms_kernel.db.locking
Responsibility: Exclusive row locks and conditional (compare-and-set) writes,
    expressed once so services do not depend on dialect details.
Architecture position: Kernel > DB.  Imported by kernel services only.

Invariants enforced:
    - ``lock_row`` returns only after the caller's transaction holds an
      exclusive lock covering the row; competing lockers block until commit
      or rollback.
    - ``compare_and_set`` writes only when the stored ``occ`` still equals
      the value the caller read, and always increments it by exactly 1.

Failure modes:
    - OperationalError if the lock cannot be acquired within the driver's
      lock/busy timeout.
"""

from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from scms_kernel.logging_config import get_logger

logger = get_logger("db.locking")

M = TypeVar("M")


def lock_row(session: Session, model: type[M], row_id: UUID) -> M | None:
    """
    Load ``row_id`` under an exclusive lock held until the transaction ends.

    On PostgreSQL this is ``SELECT ... FOR UPDATE``.  Dialects without row
    locks (SQLite) instead start the transaction with a no-op self-update,
    which takes the database write lock before anything is read.

    Returns:
        The freshly loaded instance, or None if no such row exists.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return session.execute(
            select(model)
            .where(model.id == row_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    touched = session.execute(
        update(model)
        .where(model.id == row_id)
        .values(id=model.id)
        .execution_options(synchronize_session=False)
    ).rowcount
    if touched == 0:
        return None
    return session.execute(
        select(model)
        .where(model.id == row_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def compare_and_set(
    session: Session,
    model: type,
    row_id: UUID,
    expected_occ: int,
    values: dict[str, Any],
    now: datetime,
) -> bool:
    """
    Conditionally write ``values`` and bump ``occ``.

    Returns:
        True if exactly one row was written, False if another writer
        changed ``occ`` (or removed the row) since it was read.
    """
    result = session.execute(
        update(model)
        .where(model.id == row_id, model.occ == expected_occ)
        .values(**values, occ=expected_occ + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    landed = result.rowcount == 1
    if not landed:
        logger.debug(
            "compare_and_set_missed",
            extra={
                "table": model.__tablename__,
                "row_id": str(row_id),
                "expected_occ": expected_occ,
            },
        )
    return landed
