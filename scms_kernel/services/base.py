"""
BaseService -- abstract base for session-bound kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write inside a transaction someone else opened.  They
    receive a SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: session-bound services flush within the
    caller's transaction and never commit or roll back themselves, so
    their writes land or vanish together with the caller's change.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from scms_kernel.db.base import Base
from scms_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-bound kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
