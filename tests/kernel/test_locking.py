"""Tests for row locking and compare-and-set writes."""

from uuid import uuid4

from scms_kernel.db.locking import compare_and_set, lock_row
from scms_kernel.models.versioned_record import VersionedRecord
from scms_kernel.services.versioned_record_store import VersionedRecordStore


class TestCompareAndSet:

    def test_matching_occ_writes_and_bumps(self, session_factory, clock):
        record = VersionedRecordStore(session_factory, clock=clock).create({"v": 1}, kind="t")

        with session_factory() as session:
            assert compare_and_set(
                session, VersionedRecord, record.id, 1, {"payload": {"v": 2}}, clock.now()
            )
            session.commit()
            reloaded = session.get(VersionedRecord, record.id)
            session.refresh(reloaded)
            assert reloaded.occ == 2
            assert reloaded.payload == {"v": 2}

    def test_stale_occ_writes_nothing(self, session_factory, clock, captured_logs):
        record = VersionedRecordStore(session_factory, clock=clock).create({"v": 1}, kind="t")

        with session_factory() as session:
            assert not compare_and_set(
                session, VersionedRecord, record.id, 7, {"payload": {"v": 2}}, clock.now()
            )
            session.commit()
            reloaded = session.get(VersionedRecord, record.id)
            assert reloaded.occ == 1
            assert reloaded.payload == {"v": 1}

        assert any(
            r["message"] == "compare_and_set_missed" and r["expected_occ"] == 7
            for r in captured_logs()
        )

    def test_missing_row(self, session_factory, clock):
        with session_factory() as session:
            assert not compare_and_set(session, VersionedRecord, uuid4(), 1, {}, clock.now())


class TestLockRow:

    def test_returns_fresh_row(self, session_factory, clock):
        record = VersionedRecordStore(session_factory, clock=clock).create({"v": 1}, kind="t")

        with session_factory() as session:
            locked = lock_row(session, VersionedRecord, record.id)
            assert locked is not None
            assert locked.id == record.id
            assert locked.occ == 1
            session.rollback()

    def test_lock_leaves_row_unchanged(self, session_factory, clock):
        record = VersionedRecordStore(session_factory, clock=clock).create({"v": 1}, kind="t")

        with session_factory() as session:
            lock_row(session, VersionedRecord, record.id)
            session.commit()

        with session_factory() as session:
            reloaded = session.get(VersionedRecord, record.id)
            assert reloaded.occ == 1
            assert reloaded.updated_at == record.updated_at

    def test_missing_row_returns_none(self, session_factory):
        with session_factory() as session:
            assert lock_row(session, VersionedRecord, uuid4()) is None
            session.rollback()
