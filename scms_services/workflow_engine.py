"""
scms_services.workflow_engine -- submission status transitions.

Responsibility:
    Validates and executes workflow transitions on submission versions.
    A ``SimpleTransition`` changes the status in one transaction.  A
    ``JobTransition`` records itself as pending in one transaction and
    hands the work to the job service after commit; the job's result is
    applied later through ``complete_job_transition``.

Architecture position:
    Services layer.  May import from scms_kernel (domain, db, models,
    services).  Owns its transactions (session factory injected).

Invariants enforced:
    - Only declared edges are taken: (current status, target) must be a
      transition of the workflow.  No implicit self loops.
    - The actor must hold ALL of the transition's required scopes on the
      record's site.  Both checks run before any write.
    - The status write is conditioned on the ``occ`` read in the same
      attempt; a lost race re-reads, re-validates and retries, bounded by
      ``max_retries``.
    - ``date_published`` is first-write-wins.
    - External calls (job dispatch, notifications) happen after commit
      and never fail or undo the transition.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from scms_kernel.db.engine import transaction
from scms_kernel.db.locking import compare_and_set, lock_row
from scms_kernel.domain.clock import Clock, SystemClock
from scms_kernel.domain.workflow import (
    JobTransition,
    SimpleTransition,
    Transition,
    Workflow,
    transition_from_dict,
)
from scms_kernel.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    MissingCredentialsError,
    OCCConflictError,
    RecordNotFoundError,
    StaleJobCompletionError,
)
from scms_kernel.logging_config import LogContext, get_logger
from scms_kernel.models.activity import ActivityKind
from scms_kernel.models.submission_version import SubmissionVersion
from scms_kernel.services.activity_log import ActivityLog
from scms_services.job_dispatcher import JobCredentials, JobDispatcher, JobRequest
from scms_services.notifications import NotificationSink, NullNotificationSink
from scms_services.scopes import ScopeChecker
from scms_services.slugs import NullSlugApplier, SlugApplier

logger = get_logger("services.workflow_engine")

_SUBJECT_TYPE = "SubmissionVersion"

DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 0.1

OUTCOME_APPLIED = "applied"
OUTCOME_JOB_STARTED = "job_started"
OUTCOME_JOB_COMPLETED = "job_completed"
OUTCOME_JOB_FAILED = "job_failed"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_FORBIDDEN = "forbidden"


def _emit_transition_trace(
    workflow_name: str,
    record_id: UUID,
    from_state: str,
    to_state: str,
    outcome: str,
    started: float,
    transition_name: str | None = None,
    **extra: Any,
) -> None:
    """Emit one structured record per transition outcome."""
    logger.info(
        "workflow_transition",
        extra={
            "workflow": workflow_name,
            "submission_version_id": str(record_id),
            "from_state": from_state,
            "to_state": to_state,
            "transition": transition_name,
            "outcome": outcome,
            "duration_ms": round((time.monotonic() - started) * 1000, 3),
            **extra,
        },
    )


@dataclass(frozen=True)
class TransitionContext:
    """Who is asking, and how job requests should authenticate as them.

    ``job_credentials`` is required only for job-backed transitions.
    """

    actor_id: str
    job_credentials: JobCredentials | None = None


class WorkflowEngine:
    """
    Executes workflow transitions on submission versions.

    Contract:
        ``transition`` returns the record as committed.  For a job-backed
        transition that is the record with ``pending_transition`` set and
        ``status`` unchanged.

    Guarantees:
        - InvalidTransitionError, ForbiddenError and MissingCredentialsError
          are raised before anything is written.
        - Exactly one activity record per committed change.

    Non-goals:
        - Does not run jobs or wait for them.
        - Does not format notification messages beyond a JSON event.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        scope_checker: ScopeChecker,
        job_dispatcher: JobDispatcher,
        notification_sink: NotificationSink | None = None,
        slug_applier: SlugApplier | None = None,
        clock: Clock | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._session_factory = session_factory
        self._scope_checker = scope_checker
        self._job_dispatcher = job_dispatcher
        self._notification_sink = notification_sink or NullNotificationSink()
        self._slug_applier = slug_applier or NullSlugApplier()
        self._clock = clock or SystemClock()
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve(
        self,
        ctx: TransitionContext,
        workflow: Workflow,
        site_name: str,
        record_id: UUID,
        current_state: str,
        target_state: str,
        started: float,
    ) -> Transition:
        transition = workflow.get_transition(current_state, target_state)
        if transition is None:
            _emit_transition_trace(
                workflow.name, record_id, current_state, target_state,
                OUTCOME_NO_TRANSITION, started,
            )
            raise InvalidTransitionError(workflow.name, current_state, target_state)

        if not self._scope_checker.has_scopes(
            ctx.actor_id, site_name, transition.required_scopes
        ):
            _emit_transition_trace(
                workflow.name, record_id, current_state, target_state,
                OUTCOME_FORBIDDEN, started, transition.name,
            )
            raise ForbiddenError(
                ctx.actor_id, site_name, transition.required_scopes, transition.name
            )

        if isinstance(transition, JobTransition) and ctx.job_credentials is None:
            raise MissingCredentialsError(transition.name)

        return transition

    # ------------------------------------------------------------------
    # transition
    # ------------------------------------------------------------------

    def transition(
        self,
        ctx: TransitionContext,
        record: SubmissionVersion,
        workflow: Workflow,
        target_state: str,
        date_published: date | None = None,
    ) -> SubmissionVersion:
        """
        Move ``record`` towards ``target_state``.

        Args:
            ctx: Acting user and (for job transitions) job credentials.
            record: The submission version as the caller last saw it.  Only
                its id and site are used; the edge and scope checks run
                against the stored row re-read on every attempt, so a
                stale ``record.status`` neither blocks nor permits a move.
            workflow: The site's workflow.
            target_state: Desired status.
            date_published: Publication date to use if the transition sets
                one and the record has none yet.  Defaults to today.

        Raises:
            InvalidTransitionError: no edge from the current status.
            ForbiddenError: actor lacks a required scope.
            MissingCredentialsError: job transition without credentials.
            RecordNotFoundError: record no longer exists.
            OCCConflictError: concurrent writers won every attempt.
        """
        started = time.monotonic()
        with LogContext.bind(actor_id=ctx.actor_id, site=record.site_name, record_id=str(record.id)):
            for attempt in range(1, self._max_retries + 1):
                outcome = self._attempt(ctx, record.id, workflow, target_state, date_published, started)
                if outcome is not None:
                    updated, transition, from_state = outcome
                    if isinstance(transition, JobTransition):
                        self._dispatch_job(ctx, updated, transition)
                        _emit_transition_trace(
                            workflow.name, updated.id, from_state, target_state,
                            OUTCOME_JOB_STARTED, started, transition.name,
                            job_type=transition.job_type,
                            correlation_id=updated.pending_correlation_id,
                        )
                    else:
                        _emit_transition_trace(
                            workflow.name, updated.id, from_state, target_state,
                            OUTCOME_APPLIED, started, transition.name,
                        )
                        self._notify(updated, transition, from_state, ctx.actor_id)
                    return updated

                logger.warning(
                    "transition_occ_conflict",
                    extra={"attempt": attempt, "max_retries": self._max_retries},
                )
                if attempt < self._max_retries:
                    self._sleep(self._retry_delay)

            raise OCCConflictError(_SUBJECT_TYPE, str(record.id), self._max_retries)

    def _attempt(
        self,
        ctx: TransitionContext,
        record_id: UUID,
        workflow: Workflow,
        target_state: str,
        date_published: date | None,
        started: float,
    ) -> tuple[SubmissionVersion, Transition, str] | None:
        """One read-validate-conditional-write cycle.  None means the write lost."""
        with transaction(self._session_factory) as session:
            current = session.get(SubmissionVersion, record_id)
            if current is None:
                raise RecordNotFoundError(_SUBJECT_TYPE, str(record_id))
            from_state = current.status
            transition = self._resolve(
                ctx, workflow, current.site_name, record_id,
                from_state, target_state, started,
            )
            published = current.date_published or date_published or self._clock.today()
            now = self._clock.now()

            if isinstance(transition, SimpleTransition):
                values: dict[str, Any] = {"status": target_state, "pending_transition": None}
                if transition.sets_published_date and current.date_published is None:
                    values["date_published"] = published
                kind = ActivityKind.STATUS_CHANGE
                status = target_state
                snapshot = {
                    "transition": transition.to_dict(),
                    "from_status": from_state,
                    "date_published": published.isoformat()
                    if transition.sets_published_date else None,
                }
            else:
                correlation_id = str(uuid4())
                values = {
                    "pending_transition": {
                        "workflow": workflow.name,
                        "transition": transition.to_dict(),
                        "correlation_id": correlation_id,
                        "started_at": now.isoformat(),
                        "started_by": ctx.actor_id,
                        "date_published": published.isoformat()
                        if transition.sets_published_date else None,
                    }
                }
                kind = ActivityKind.TRANSITION_STARTED
                status = from_state
                snapshot = {
                    "transition": transition.to_dict(),
                    "correlation_id": correlation_id,
                }

            if not compare_and_set(
                session, SubmissionVersion, record_id, current.occ, values, now
            ):
                return None

            session.refresh(current)
            if isinstance(transition, SimpleTransition) and transition.updates_slug:
                self._slug_applier.apply(session, current)
            ActivityLog(session, self._clock).append(
                kind,
                subject_type=_SUBJECT_TYPE,
                subject_id=record_id,
                actor_id=ctx.actor_id,
                status=status,
                snapshot=snapshot,
            )
            return current, transition, from_state

    # ------------------------------------------------------------------
    # Job completion
    # ------------------------------------------------------------------

    def complete_job_transition(
        self,
        record_id: UUID,
        correlation_id: str,
        actor_id: str,
        succeeded: bool = True,
        date_published: date | None = None,
        message: str | None = None,
    ) -> SubmissionVersion:
        """
        Apply the result of the job started by a job-backed transition.

        On success the status moves to the transition's target, the pending
        transition is cleared, and ``date_published`` is set if the
        transition sets it and the record has none (``date_published``
        argument, else the date fixed when the job started, else today).
        On failure the pending transition is cleared, the status is kept,
        and a TRANSITION_FAILED activity records ``message``.

        Raises:
            RecordNotFoundError: record no longer exists.
            StaleJobCompletionError: ``correlation_id`` is not the pending job.
        """
        started = time.monotonic()
        with LogContext.bind(actor_id=actor_id, record_id=str(record_id), correlation_id=correlation_id):
            with transaction(self._session_factory) as session:
                current = lock_row(session, SubmissionVersion, record_id)
                if current is None:
                    raise RecordNotFoundError(_SUBJECT_TYPE, str(record_id))
                pending = current.pending_transition
                if current.pending_correlation_id != correlation_id:
                    raise StaleJobCompletionError(
                        str(record_id), correlation_id, current.pending_correlation_id
                    )

                transition = transition_from_dict(pending["transition"])
                from_state = current.status
                now = self._clock.now()

                current.pending_transition = None
                current.occ = current.occ + 1
                current.updated_at = now
                if succeeded:
                    current.status = transition.target_state
                    if transition.sets_published_date and current.date_published is None:
                        stored = pending.get("date_published")
                        current.date_published = (
                            date_published
                            or (date.fromisoformat(stored) if stored else None)
                            or self._clock.today()
                        )
                session.flush()

                if succeeded:
                    if transition.updates_slug:
                        self._slug_applier.apply(session, current)
                    ActivityLog(session, self._clock).append(
                        ActivityKind.STATUS_CHANGE,
                        subject_type=_SUBJECT_TYPE,
                        subject_id=record_id,
                        actor_id=actor_id,
                        status=current.status,
                        snapshot={
                            "transition": transition.to_dict(),
                            "from_status": from_state,
                            "correlation_id": correlation_id,
                            "date_published": current.date_published.isoformat()
                            if current.date_published else None,
                        },
                    )
                else:
                    ActivityLog(session, self._clock).append(
                        ActivityKind.TRANSITION_FAILED,
                        subject_type=_SUBJECT_TYPE,
                        subject_id=record_id,
                        actor_id=actor_id,
                        status=current.status,
                        snapshot={
                            "transition": transition.to_dict(),
                            "correlation_id": correlation_id,
                            "message": message,
                        },
                    )

            _emit_transition_trace(
                pending.get("workflow", ""), record_id, from_state,
                transition.target_state,
                OUTCOME_JOB_COMPLETED if succeeded else OUTCOME_JOB_FAILED,
                started, transition.name,
            )
            if succeeded:
                self._notify(current, transition, from_state, actor_id)
            return current

    # ------------------------------------------------------------------
    # After-commit side effects
    # ------------------------------------------------------------------

    def _dispatch_job(
        self,
        ctx: TransitionContext,
        record: SubmissionVersion,
        transition: JobTransition,
    ) -> None:
        pending = record.pending_transition or {}
        work = record.payload or {}
        payload: dict[str, Any] = {
            "site_id": record.site_name,
            "user_id": ctx.actor_id,
            "submission_version_id": str(record.id),
            "cdn": work.get("cdn"),
            "key": work.get("cdn_key"),
            **transition.job_options,
            "updates_slug": transition.updates_slug,
        }
        if transition.sets_published_date:
            payload["date_published"] = pending.get("date_published")

        request = JobRequest(
            id=pending["correlation_id"],
            job_type=transition.job_type.upper(),
            payload=payload,
        )
        try:
            self._job_dispatcher.dispatch(request, ctx.job_credentials)
        except Exception:
            logger.error(
                "job_dispatch_failed",
                extra={"job_id": request.id, "job_type": request.job_type},
                exc_info=True,
            )

    def _notify(
        self,
        record: SubmissionVersion,
        transition: Transition,
        from_state: str,
        actor_id: str,
    ) -> None:
        event = {
            "event": "status_change",
            "site": record.site_name,
            "submission_id": record.submission_id,
            "submission_version_id": str(record.id),
            "from_status": from_state,
            "to_status": record.status,
            "transition": transition.name,
            "actor_id": actor_id,
            "date_published": record.date_published.isoformat()
            if record.date_published else None,
        }
        try:
            self._notification_sink.notify(event)
        except Exception:
            logger.warning("notification_failed", extra={"to_status": record.status}, exc_info=True)
