"""
VersionedRecordStore -- optimistic-concurrency updates of JSON records.

Responsibility:
    Read-modify-write of a record's JSON payload without holding locks
    between the read and the write.  The write is conditioned on the
    ``occ`` value that was read; a writer that lost the race re-reads and
    re-runs its modify function.

Architecture position:
    Kernel > Services.  Owns its transactions: every attempt opens one
    session and one transaction from the injected session factory.

Invariants enforced:
    - Every landed write increments ``occ`` by exactly 1, so after any
      interleaving ``occ == 1 + number of landed writes``.
    - No lost updates: a write lands only if ``occ`` is unchanged since
      the read that fed the modify function.
    - ``NoChange`` performs zero writes and never bumps ``occ``.
    - At most ``max_retries`` attempts (reads + modify calls) per update.

Failure modes:
    - RecordNotFoundError if the record does not exist.
    - OCCConflictError after ``max_retries`` attempts all lost their
      conditional write.  Nothing is committed in that case.
    - Exceptions raised by ``modify`` propagate after rollback; they are
      not retried.
"""

import copy
import time
from typing import Any, Callable, Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from scms_kernel.db.engine import transaction
from scms_kernel.db.locking import compare_and_set
from scms_kernel.domain.clock import Clock, SystemClock
from scms_kernel.domain.results import Apply, ModifyFn, NoChange
from scms_kernel.exceptions import OCCConflictError, RecordNotFoundError
from scms_kernel.logging_config import LogContext, get_logger
from scms_kernel.models.activity import ActivityKind
from scms_kernel.models.versioned_record import VersionedRecord
from scms_kernel.services.activity_log import ActivityLog

logger = get_logger("services.versioned_record_store")

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 0.1

R = TypeVar("R")


class VersionedRecordStore(Generic[R]):
    """
    OCC store for any model with ``payload``, ``occ`` and ``updated_at``.

    Contract:
        ``update`` calls ``modify`` with a private copy of the current
        payload; the function returns ``Apply(new_payload)`` or
        ``NoChange()`` and must have no side effects, since it may run
        several times.

    Guarantees:
        - Returned records are detached snapshots taken inside the
          transaction that wrote (or read) them.

    Non-goals:
        - Does NOT serialise writers; contention is resolved by retry.
        - Does NOT merge concurrent payloads; each attempt recomputes.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        model: type[R] = VersionedRecord,
        clock: Clock | None = None,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._session_factory = session_factory
        self._model = model
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    @property
    def _record_type(self) -> str:
        return self._model.__name__

    def create(self, payload: Any = None, **columns: Any) -> R:
        """Insert a new record with ``occ`` = 1."""
        with transaction(self._session_factory) as session:
            now = self._clock.now()
            record = self._model(
                payload=payload,
                occ=1,
                created_at=now,
                updated_at=now,
                **columns,
            )
            session.add(record)
            session.flush()
        logger.info(
            "versioned_record_created",
            extra={"record_type": self._record_type, "record_id": str(record.id)},
        )
        return record

    def get(self, record_id: UUID) -> R:
        with transaction(self._session_factory) as session:
            record = session.get(self._model, record_id)
            if record is None:
                raise RecordNotFoundError(self._record_type, str(record_id))
            return record

    def update(
        self,
        record_id: UUID,
        modify: ModifyFn,
        max_retries: int | None = None,
        actor_id: str | None = None,
    ) -> R:
        """
        Apply ``modify`` to the record's payload under optimistic concurrency.

        Preconditions:
            - ``max_retries`` >= 1; it bounds the total number of attempts
              and defaults to the store's own setting.
        Postconditions:
            - On ``Apply`` exactly one write landed and ``occ`` rose by 1.
            - On ``NoChange`` nothing was written.
            - If ``actor_id`` is given, a RECORD_UPDATED activity is
              committed with the landed write.

        Raises:
            RecordNotFoundError: record does not exist.
            OCCConflictError: every attempt lost to a concurrent writer.
        """
        if max_retries is None:
            max_retries = self._max_retries
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        with LogContext.bind(record_id=str(record_id), actor_id=actor_id):
            for attempt in range(1, max_retries + 1):
                landed, record = self._attempt(record_id, modify, actor_id)
                if landed:
                    if attempt > 1:
                        logger.info(
                            "occ_write_landed_after_retry",
                            extra={
                                "record_type": self._record_type,
                                "attempt": attempt,
                                "occ": record.occ,
                            },
                        )
                    return record

                logger.warning(
                    "occ_write_conflict",
                    extra={
                        "record_type": self._record_type,
                        "attempt": attempt,
                        "max_retries": max_retries,
                    },
                )
                if attempt < max_retries:
                    self._sleep(self._retry_delay)

            logger.error(
                "occ_retries_exhausted",
                extra={"record_type": self._record_type, "attempts": max_retries},
            )
            raise OCCConflictError(self._record_type, str(record_id), max_retries)

    def _attempt(
        self,
        record_id: UUID,
        modify: ModifyFn,
        actor_id: str | None,
    ) -> tuple[bool, R | None]:
        """One read-modify-conditional-write cycle in its own transaction.

        Returns (True, record) when finished (written or NoChange) and
        (False, None) when the conditional write matched no row.
        """
        with transaction(self._session_factory) as session:
            record = session.get(self._model, record_id)
            if record is None:
                raise RecordNotFoundError(self._record_type, str(record_id))
            read_occ = record.occ

            outcome = modify(copy.deepcopy(record.payload))
            if isinstance(outcome, NoChange):
                logger.debug("occ_update_no_change", extra={"occ": read_occ})
                return True, record
            if not isinstance(outcome, Apply):
                raise TypeError(
                    f"modify must return Apply or NoChange, got {type(outcome).__name__}"
                )

            if not compare_and_set(
                session,
                self._model,
                record_id,
                read_occ,
                {"payload": outcome.payload},
                self._clock.now(),
            ):
                return False, None

            if actor_id is not None:
                ActivityLog(session, self._clock).append(
                    ActivityKind.RECORD_UPDATED,
                    subject_type=self._record_type,
                    subject_id=record_id,
                    actor_id=actor_id,
                    snapshot={"occ": read_occ + 1},
                )
            session.refresh(record)
            return True, record
