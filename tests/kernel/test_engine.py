"""Tests for the transaction scope helpers in scms_kernel.db.engine."""

import pytest

from scms_kernel.db.engine import get_engine, is_postgres, session_scope, transaction
from scms_kernel.models.versioned_record import VersionedRecord


def _new_record(clock) -> VersionedRecord:
    now = clock.now()
    return VersionedRecord(kind="t", payload={"v": 1}, occ=1, created_at=now, updated_at=now)


class TestTransaction:

    def test_commits_on_success(self, session_factory, clock):
        with transaction(session_factory) as session:
            record = _new_record(clock)
            session.add(record)

        with session_factory() as session:
            assert session.get(VersionedRecord, record.id) is not None

    def test_rolls_back_and_reraises(self, session_factory, clock, captured_logs):
        with pytest.raises(RuntimeError):
            with transaction(session_factory) as session:
                record = _new_record(clock)
                session.add(record)
                session.flush()
                raise RuntimeError("abort")

        with session_factory() as session:
            assert session.get(VersionedRecord, record.id) is None
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())

    def test_session_scope_uses_module_engine(self, session_factory, clock):
        with session_scope() as session:
            record = _new_record(clock)
            session.add(record)

        with session_factory() as session:
            assert session.get(VersionedRecord, record.id) is not None


def test_dialect_detection(db_engine):
    assert get_engine() is db_engine
    assert is_postgres() == (db_engine.dialect.name == "postgresql")


def test_naive_datetimes_rejected(session_factory):
    from datetime import datetime

    from sqlalchemy.exc import StatementError

    with pytest.raises(StatementError) as exc_info:
        with transaction(session_factory) as session:
            naive = datetime(2024, 1, 1, 12, 0)
            session.add(VersionedRecord(kind="t", occ=1, created_at=naive, updated_at=naive))
    assert "Naive datetime" in str(exc_info.value)
