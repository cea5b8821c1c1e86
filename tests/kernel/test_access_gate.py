"""
Tests for AccessGate (magic-link validation, logging and lifecycle).

Verifies:
- Access limit enforcement and one log row per attempt
- Check order: revoked, then expired, then limit
- access_limit validation rejects bad values before anything is written
- Revoke / reactivate / delete lifecycle and its activity trail
- Access log survives token deletion
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from scms_kernel.domain.results import (
    REASON_EXPIRED,
    REASON_LIMIT_REACHED,
    REASON_REVOKED,
    AccessAttempt,
)
from scms_kernel.exceptions import InvalidAccessLimitError, TokenNotFoundError, ValidationError
from scms_kernel.models.access_token import AccessLogEntry, AccessToken
from scms_kernel.models.activity import ActivityKind, ActivityRecord
from scms_kernel.services.access_gate import AccessGate, validate_access_limit
from scms_kernel.services.activity_log import ActivityLog

SUBJECT = "submission-42"
CREATOR = "editor-1"


@pytest.fixture
def gate(session_factory, clock):
    return AccessGate(session_factory, clock=clock)


@pytest.fixture
def make_token(gate):
    def _make(**kwargs):
        kwargs.setdefault("kind", "submission_preview")
        kwargs.setdefault("subject_id", SUBJECT)
        kwargs.setdefault("created_by_id", CREATOR)
        return gate.create_token(**kwargs)

    return _make


class TestAccessLimit:

    def test_limit_two_allows_exactly_two(self, gate, make_token):
        token = make_token(access_limit=2)

        results = [gate.validate_and_log_access(token.id) for _ in range(3)]

        assert [r.valid for r in results] == [True, True, False]
        assert results[2].reason == REASON_LIMIT_REACHED
        assert results[0].reason is None

        log = gate.get_access_log(token.id)
        assert len(log) == 3
        assert sum(1 for e in log if e.success) == 2
        assert {e.id for e in log} == {r.access_log_id for r in results}

    def test_failed_attempts_do_not_use_up_the_limit(self, gate, make_token, clock):
        token = make_token(access_limit=1)
        gate.revoke_token(token.id, CREATOR)
        assert gate.validate_and_log_access(token.id).valid is False

        gate.reactivate_token(token.id, CREATOR)
        assert gate.validate_and_log_access(token.id).valid is True
        assert gate.validate_and_log_access(token.id).valid is False

    def test_unlimited_token(self, gate, make_token):
        token = make_token()
        assert all(gate.validate_and_log_access(token.id).valid for _ in range(5))

    def test_attempt_metadata_is_logged(self, gate, make_token):
        token = make_token()
        gate.validate_and_log_access(
            token.id, AccessAttempt(ip_address="203.0.113.9", user_agent="curl/8.5")
        )

        [entry] = gate.get_access_log(token.id)
        assert entry.ip_address == "203.0.113.9"
        assert entry.user_agent == "curl/8.5"


class TestCheckOrder:

    def test_revoked_always_denied(self, gate, make_token):
        token = make_token()
        gate.revoke_token(token.id, CREATOR)

        result = gate.validate_and_log_access(token.id)
        assert result.valid is False
        assert result.reason == REASON_REVOKED

    def test_revoked_wins_over_expired_and_limit(self, gate, make_token, clock):
        token = make_token(access_limit=1, expiry_duration=timedelta(minutes=5))
        gate.validate_and_log_access(token.id)
        gate.revoke_token(token.id, CREATOR)
        clock.advance(600)

        assert gate.validate_and_log_access(token.id).reason == REASON_REVOKED

    def test_expiry_is_exclusive(self, gate, make_token, clock):
        token = make_token(expiry_duration=timedelta(hours=1))

        clock.advance(3600)
        assert gate.validate_and_log_access(token.id).valid is True

        clock.advance(1)
        result = gate.validate_and_log_access(token.id)
        assert result.valid is False
        assert result.reason == REASON_EXPIRED

    def test_expired_wins_over_limit(self, gate, make_token, clock):
        token = make_token(access_limit=1, expiry_duration=timedelta(seconds=10))
        gate.validate_and_log_access(token.id)
        clock.advance(11)

        assert gate.validate_and_log_access(token.id).reason == REASON_EXPIRED

    def test_unknown_token_raises_and_logs_nothing(self, gate, session):
        with pytest.raises(TokenNotFoundError) as exc_info:
            gate.validate_and_log_access(uuid4())
        assert exc_info.value.code == "TOKEN_NOT_FOUND"
        assert session.query(AccessLogEntry).count() == 0


class TestAccessLimitValidation:

    @pytest.mark.parametrize("bad", [0, -1, True, False, 1.5, 2.0, "3"])
    def test_rejects_before_writing(self, make_token, session, bad):
        with pytest.raises(InvalidAccessLimitError) as exc_info:
            make_token(access_limit=bad)

        assert isinstance(exc_info.value, ValidationError)
        assert str(exc_info.value) == "Access limit must be a positive integer"
        assert session.query(AccessToken).count() == 0
        assert session.query(ActivityRecord).count() == 0

    @pytest.mark.parametrize("good", [None, 1, 50])
    def test_accepts_none_and_positive_ints(self, good):
        validate_access_limit(good)


class TestLifecycle:

    def test_create_records_activity(self, make_token, session, clock):
        token = make_token(access_limit=3, expiry_duration=timedelta(days=7))

        assert token.expiry == clock.now() + timedelta(days=7)
        [activity] = ActivityLog(session).list_for_subject("AccessToken", token.id)
        assert activity.kind == ActivityKind.TOKEN_CREATED
        assert activity.actor_id == CREATOR
        assert activity.snapshot["access_limit"] == 3

    def test_revoke_is_idempotent(self, gate, make_token, session, clock):
        token = make_token()
        clock.advance(1)
        gate.revoke_token(token.id, CREATOR)
        clock.advance(1)
        again = gate.revoke_token(token.id, CREATOR)

        assert again.revoked is True
        kinds = [a.kind for a in ActivityLog(session).list_for_subject("AccessToken", token.id)]
        assert kinds == [ActivityKind.TOKEN_CREATED, ActivityKind.TOKEN_REVOKED]

    def test_reactivate_keeps_expiry(self, gate, make_token, clock):
        token = make_token(expiry_duration=timedelta(seconds=30))
        gate.revoke_token(token.id, CREATOR)
        clock.advance(60)
        gate.reactivate_token(token.id, CREATOR)

        assert gate.validate_and_log_access(token.id).reason == REASON_EXPIRED

    def test_delete_keeps_access_log(self, gate, make_token, session):
        token = make_token()
        gate.validate_and_log_access(token.id)

        gate.delete_token(token.id, "editor-2")

        with pytest.raises(TokenNotFoundError):
            gate.get_token(token.id)
        with pytest.raises(TokenNotFoundError):
            gate.validate_and_log_access(token.id)
        assert len(gate.get_access_log(token.id)) == 1

        deleted = [
            a for a in ActivityLog(session).list_for_subject("AccessToken", token.id)
            if a.kind == ActivityKind.TOKEN_DELETED
        ]
        assert len(deleted) == 1
        assert deleted[0].actor_id == "editor-2"
        assert deleted[0].snapshot == {"kind": "submission_preview", "subject_id": SUBJECT}

    def test_lifecycle_on_unknown_token(self, gate):
        with pytest.raises(TokenNotFoundError):
            gate.revoke_token(uuid4(), CREATOR)
        with pytest.raises(TokenNotFoundError):
            gate.delete_token(uuid4(), CREATOR)


class TestReads:

    def test_check_token_writes_nothing(self, gate, make_token, session):
        token = make_token(access_limit=1)

        check = gate.check_token(token.id)
        assert check.valid is True
        assert session.query(AccessLogEntry).count() == 0

        gate.validate_and_log_access(token.id)
        check = gate.check_token(token.id)
        assert check.valid is False
        assert check.reason == REASON_LIMIT_REACHED

    def test_list_tokens_with_counts(self, gate, make_token, clock):
        first = make_token()
        clock.advance(10)
        second = make_token(access_limit=5)
        make_token(subject_id="other-submission")

        gate.validate_and_log_access(first.id)
        gate.validate_and_log_access(first.id)
        gate.revoke_token(second.id, CREATOR)
        gate.validate_and_log_access(second.id)

        summaries = gate.list_tokens_for_subject(SUBJECT)

        assert [s.token.id for s in summaries] == [second.id, first.id]
        assert [s.access_count for s in summaries] == [0, 2]

    def test_access_log_newest_first_and_limited(self, gate, make_token, clock):
        token = make_token()
        for _ in range(4):
            gate.validate_and_log_access(token.id)
            clock.advance(1)

        log = gate.get_access_log(token.id, limit=3)

        assert len(log) == 3
        assert log[0].occurred_at > log[1].occurred_at > log[2].occurred_at


class TestLogging:

    def test_denial_is_logged_with_reason(self, gate, make_token, captured_logs):
        token = make_token()
        gate.revoke_token(token.id, CREATOR)
        gate.validate_and_log_access(token.id)

        [denied] = [r for r in captured_logs() if r["message"] == "magic_link_access_denied"]
        assert denied["reason"] == REASON_REVOKED
        assert denied["token_id"] == str(token.id)
