"""
AccessGate -- atomic validation and logging of magic-link access.

Responsibility:
    Decides whether one access attempt against a magic-link token is
    allowed, and records the attempt, in a single transaction that holds
    an exclusive lock on the token row.  Also owns the token lifecycle:
    create, revoke, reactivate, delete, and the read helpers used to
    display tokens and their access history.

Architecture position:
    Kernel > Services.  Owns its transactions (session factory injected).
    No external I/O happens while the token row is locked.

Invariants enforced:
    - Limit safety: for a token with ``access_limit`` = N, at most N
      attempts are ever granted, however many run concurrently.  The
      count of prior successes and the new log row are read and written
      under the same row lock.
    - Exactly one AccessLogEntry per call, success or failure.
    - Check order is fixed: revoked, then expired, then access limit.
    - ``access_limit`` is validated before any row is written.

Failure modes:
    - TokenNotFoundError when the token row cannot be found or locked.
    - InvalidAccessLimitError (a ValidationError) from ``create_token``.
    - Database errors propagate after rollback; no log row is written.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from scms_kernel.db.engine import transaction
from scms_kernel.db.locking import lock_row
from scms_kernel.domain.clock import Clock, SystemClock
from scms_kernel.domain.results import (
    REASON_EXPIRED,
    REASON_LIMIT_REACHED,
    REASON_REVOKED,
    AccessAttempt,
    AccessResult,
    TokenCheck,
)
from scms_kernel.exceptions import InvalidAccessLimitError, TokenNotFoundError
from scms_kernel.logging_config import LogContext, get_logger
from scms_kernel.models.access_token import AccessLogEntry, AccessToken
from scms_kernel.models.activity import ActivityKind
from scms_kernel.services.activity_log import ActivityLog

logger = get_logger("services.access_gate")

DEFAULT_ACCESS_LOG_LIMIT = 50

_SUBJECT_TYPE = "AccessToken"


def validate_access_limit(access_limit: Any) -> None:
    """
    Reject anything but None or a positive integer.

    Raises:
        InvalidAccessLimitError: for booleans, non-integers, zero and
            negative values.
    """
    if access_limit is None:
        return
    if isinstance(access_limit, bool) or not isinstance(access_limit, int):
        raise InvalidAccessLimitError(access_limit)
    if access_limit < 1:
        raise InvalidAccessLimitError(access_limit)


@dataclass(frozen=True)
class TokenSummary:
    """A token together with its number of successful accesses."""

    token: AccessToken
    access_count: int


def _successful_access_count(session: Session, token_id: UUID) -> int:
    return session.execute(
        select(func.count())
        .select_from(AccessLogEntry)
        .where(
            AccessLogEntry.token_id == token_id,
            AccessLogEntry.success.is_(True),
        )
    ).scalar_one()


class AccessGate:
    """
    Magic-link access control.

    Contract:
        ``validate_and_log_access`` is the only path that grants access.
        Expected denials (revoked, expired, limit reached) are returned as
        ``AccessResult`` values, never raised, so their log row commits.

    Guarantees:
        - Concurrent callers against one token are serialised on its row.
        - Revoked tokens are always denied, regardless of expiry or limit.

    Non-goals:
        - Does NOT issue or verify the secret in the link URL; the token
          id is the lookup key handed in by the caller.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Atomic access check
    # ------------------------------------------------------------------

    def validate_and_log_access(
        self,
        token_id: UUID,
        attempt: AccessAttempt | None = None,
    ) -> AccessResult:
        """
        Check one access attempt and record it, atomically.

        Postconditions:
            - Exactly one AccessLogEntry was committed for this call.
            - ``result.valid`` is True iff the entry has success=True.

        Raises:
            TokenNotFoundError: token does not exist (nothing is logged).
        """
        attempt = attempt or AccessAttempt()
        with LogContext.bind(token_id=str(token_id)):
            with transaction(self._session_factory) as session:
                token = lock_row(session, AccessToken, token_id)
                if token is None:
                    raise TokenNotFoundError(str(token_id))

                now = self._clock.now()
                reason: str | None = None
                if token.revoked:
                    reason = REASON_REVOKED
                elif token.expiry is not None and token.expiry < now:
                    reason = REASON_EXPIRED
                elif token.access_limit is not None:
                    used = _successful_access_count(session, token_id)
                    if used >= token.access_limit:
                        reason = REASON_LIMIT_REACHED

                entry = AccessLogEntry(
                    token_id=token_id,
                    occurred_at=now,
                    success=reason is None,
                    reason=reason,
                    ip_address=attempt.ip_address,
                    user_agent=attempt.user_agent,
                )
                session.add(entry)
                session.flush()
                entry_id = entry.id

            if reason is None:
                logger.info("magic_link_access_granted", extra={"access_log_id": str(entry_id)})
                return AccessResult.granted(entry_id)

            logger.info(
                "magic_link_access_denied",
                extra={"access_log_id": str(entry_id), "reason": reason},
            )
            return AccessResult.denied(entry_id, reason)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_token(
        self,
        kind: str,
        subject_id: str,
        created_by_id: str,
        data: dict[str, Any] | None = None,
        expiry_duration: timedelta | None = None,
        access_limit: int | None = None,
    ) -> AccessToken:
        """
        Create a magic-link token.

        ``expiry_duration`` is measured from now; None never expires.

        Raises:
            InvalidAccessLimitError: ``access_limit`` is not None or a
                positive integer.  Nothing is persisted.
        """
        validate_access_limit(access_limit)

        now = self._clock.now()
        with transaction(self._session_factory) as session:
            token = AccessToken(
                kind=kind,
                subject_id=str(subject_id),
                created_by_id=str(created_by_id),
                data=data,
                expiry=now + expiry_duration if expiry_duration is not None else None,
                revoked=False,
                access_limit=access_limit,
                created_at=now,
                updated_at=now,
            )
            session.add(token)
            session.flush()
            ActivityLog(session, self._clock).append(
                ActivityKind.TOKEN_CREATED,
                subject_type=_SUBJECT_TYPE,
                subject_id=token.id,
                actor_id=created_by_id,
                snapshot={
                    "kind": kind,
                    "subject_id": str(subject_id),
                    "access_limit": access_limit,
                    "expiry": token.expiry.isoformat() if token.expiry else None,
                },
            )

        logger.info(
            "magic_link_created",
            extra={
                "token_id": str(token.id),
                "kind": kind,
                "access_limit": access_limit,
            },
        )
        return token

    def revoke_token(self, token_id: UUID, actor_id: str) -> AccessToken:
        """Revoke a token.  Idempotent: revoking twice records one activity."""
        return self._set_revoked(token_id, actor_id, True)

    def reactivate_token(self, token_id: UUID, actor_id: str) -> AccessToken:
        """Clear the revoked flag.  Expiry and access limit still apply."""
        return self._set_revoked(token_id, actor_id, False)

    def _set_revoked(self, token_id: UUID, actor_id: str, revoked: bool) -> AccessToken:
        with transaction(self._session_factory) as session:
            token = lock_row(session, AccessToken, token_id)
            if token is None:
                raise TokenNotFoundError(str(token_id))
            if token.revoked == revoked:
                return token

            token.revoked = revoked
            token.updated_at = self._clock.now()
            session.flush()
            ActivityLog(session, self._clock).append(
                ActivityKind.TOKEN_REVOKED if revoked else ActivityKind.TOKEN_REACTIVATED,
                subject_type=_SUBJECT_TYPE,
                subject_id=token_id,
                actor_id=actor_id,
            )

        logger.info(
            "magic_link_revoked" if revoked else "magic_link_reactivated",
            extra={"token_id": str(token_id)},
        )
        return token

    def delete_token(self, token_id: UUID, actor_id: str) -> None:
        """Delete a token.  Its access log rows are kept."""
        with transaction(self._session_factory) as session:
            token = lock_row(session, AccessToken, token_id)
            if token is None:
                raise TokenNotFoundError(str(token_id))
            snapshot = {"kind": token.kind, "subject_id": token.subject_id}
            session.delete(token)
            session.flush()
            ActivityLog(session, self._clock).append(
                ActivityKind.TOKEN_DELETED,
                subject_type=_SUBJECT_TYPE,
                subject_id=token_id,
                actor_id=actor_id,
                snapshot=snapshot,
            )
        logger.info("magic_link_deleted", extra={"token_id": str(token_id)})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_token(self, token_id: UUID) -> AccessToken:
        with transaction(self._session_factory) as session:
            token = session.get(AccessToken, token_id)
            if token is None:
                raise TokenNotFoundError(str(token_id))
            return token

    def check_token(self, token_id: UUID) -> TokenCheck:
        """
        Report whether a token would currently be accepted.

        Non-atomic and writes no log row: for display only.  Access must
        go through ``validate_and_log_access``.
        """
        with transaction(self._session_factory) as session:
            token = session.get(AccessToken, token_id)
            if token is None:
                raise TokenNotFoundError(str(token_id))
            if token.revoked:
                return TokenCheck(False, REASON_REVOKED)
            if token.expiry is not None and token.expiry < self._clock.now():
                return TokenCheck(False, REASON_EXPIRED)
            if token.access_limit is not None:
                if _successful_access_count(session, token_id) >= token.access_limit:
                    return TokenCheck(False, REASON_LIMIT_REACHED)
            return TokenCheck(True)

    def list_tokens_for_subject(self, subject_id: str) -> list[TokenSummary]:
        """Tokens for one subject, newest first, with successful access counts."""
        successes = (
            select(
                AccessLogEntry.token_id.label("token_id"),
                func.count().label("access_count"),
            )
            .where(AccessLogEntry.success.is_(True))
            .group_by(AccessLogEntry.token_id)
            .subquery()
        )
        with transaction(self._session_factory) as session:
            rows = session.execute(
                select(AccessToken, func.coalesce(successes.c.access_count, 0))
                .outerjoin(successes, successes.c.token_id == AccessToken.id)
                .where(AccessToken.subject_id == str(subject_id))
                .order_by(AccessToken.created_at.desc())
            ).all()
        return [TokenSummary(token=token, access_count=count) for token, count in rows]

    def get_access_log(
        self,
        token_id: UUID,
        limit: int = DEFAULT_ACCESS_LOG_LIMIT,
    ) -> list[AccessLogEntry]:
        """Most recent access attempts for a token, newest first.

        Works after the token has been deleted.
        """
        with transaction(self._session_factory) as session:
            return list(
                session.execute(
                    select(AccessLogEntry)
                    .where(AccessLogEntry.token_id == token_id)
                    .order_by(AccessLogEntry.occurred_at.desc())
                    .limit(limit)
                ).scalars()
            )
