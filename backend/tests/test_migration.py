"""Integration tests for the local-to-remote proposal migration."""

from __future__ import annotations

import unittest
from collections.abc import Sequence

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from policymap.adapters.base import PersistenceError
from policymap.adapters.keyvalue import MIGRATION_FLAG_KEY, MIGRATION_LEDGER_KEY, MemoryKeyValueStore
from policymap.adapters.local import LocalProposalAdapter
from policymap.adapters.remote import SqlProposalAdapter
from policymap.models.base import Base
from policymap.models.proposal import ProposalRow
from policymap.schemas.proposal import Proposal
from policymap.services.migration import LocalToRemoteMigration


class _FlakyRemote(SqlProposalAdapter):
    """Fails the n-th ``insert_batch`` call (1-based) once."""

    def __init__(self, session_factory, fail_on_call: int | None = None) -> None:
        super().__init__(session_factory)
        self.fail_on_call = fail_on_call
        self.calls = 0

    def insert_batch(self, proposals: Sequence[Proposal]) -> list[Proposal]:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise PersistenceError("remote rejected batch")
        return super().insert_batch(proposals)


class _LedgerRejectingStore(MemoryKeyValueStore):
    """Refuses ledger writes while ``reject_ledger`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.reject_ledger = True

    def set_item(self, key: str, value: str) -> None:
        if self.reject_ledger and key == MIGRATION_LEDGER_KEY:
            raise PersistenceError("ledger file is read-only")
        super().set_item(key, value)


def _local_records(count: int) -> list[Proposal]:
    return [
        Proposal(
            id=index,
            slug=f"city-{index}",
            title=f"Proposal {index}",
            city=f"City {index}",
            timestamp=index * 1_000,
        )
        for index in range(1, count + 1)
    ]


class LocalToRemoteMigrationTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        with self.SessionLocal() as db:
            db.execute(delete(ProposalRow))
            db.commit()
        self.kv = MemoryKeyValueStore()
        self.local = LocalProposalAdapter(self.kv)
        self.delays: list[float] = []

    def _migration(self, remote: SqlProposalAdapter, mode: str = "ledger") -> LocalToRemoteMigration:
        return LocalToRemoteMigration(
            self.kv,
            self.local,
            remote,
            batch_size=5,
            batch_delay=1.0,
            sleep=self.delays.append,
            mode=mode,
        )

    def _remote_count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(ProposalRow)) or 0

    def _remote_source_ids(self) -> list[str]:
        with self.SessionLocal() as db:
            return sorted(db.scalars(select(ProposalRow.source_id)).all())

    def test_copies_all_records_in_batches_and_marks_complete(self) -> None:
        self.local.write_all(_local_records(7))

        report = self._migration(SqlProposalAdapter(self.SessionLocal)).run()

        self.assertEqual(report.status, "completed")
        self.assertEqual((report.inserted, report.batches), (7, 2))
        self.assertEqual(self.delays, [1.0])
        self.assertEqual(self._remote_count(), 7)
        self.assertEqual(self.kv.get_item(MIGRATION_FLAG_KEY), "true")

    def test_second_run_is_a_no_op(self) -> None:
        self.local.write_all(_local_records(3))
        remote = SqlProposalAdapter(self.SessionLocal)
        self._migration(remote).run()

        report = self._migration(remote).run()

        self.assertEqual(report.status, "already_completed")
        self.assertEqual(self._remote_count(), 3)

    def test_empty_local_collection_marks_complete(self) -> None:
        report = self._migration(SqlProposalAdapter(self.SessionLocal)).run()

        self.assertEqual(report.status, "no_local_records")
        self.assertEqual(self.kv.get_item(MIGRATION_FLAG_KEY), "true")

    def test_populated_remote_table_wins(self) -> None:
        remote = SqlProposalAdapter(self.SessionLocal)
        remote.write_all([Proposal(id=1, slug="lima", city="Lima", title="Existing")])
        self.local.write_all(_local_records(2))

        report = self._migration(remote).run()

        self.assertEqual(report.status, "remote_not_empty")
        self.assertEqual(self._remote_count(), 1)
        self.assertEqual(self.kv.get_item(MIGRATION_FLAG_KEY), "true")

    def test_ledger_mode_resumes_after_failed_batch_without_duplicates(self) -> None:
        self.local.write_all(_local_records(7))

        with self.assertLogs("policymap.services", level="ERROR"):
            failed = self._migration(_FlakyRemote(self.SessionLocal, fail_on_call=2)).run()

        self.assertEqual(failed.status, "failed")
        self.assertEqual((failed.inserted, failed.failed), (5, 2))
        self.assertIsNone(self.kv.get_item(MIGRATION_FLAG_KEY))

        resumed = self._migration(SqlProposalAdapter(self.SessionLocal)).run()

        self.assertEqual(resumed.status, "completed")
        self.assertEqual((resumed.inserted, resumed.skipped), (2, 5))
        self.assertEqual(self._remote_source_ids(), sorted(str(index) for index in range(1, 8)))
        self.assertEqual(self.kv.get_item(MIGRATION_FLAG_KEY), "true")

    def test_rows_committed_without_ledger_entry_are_not_inserted_again(self) -> None:
        self.kv = _LedgerRejectingStore()
        self.local = LocalProposalAdapter(self.kv)
        self.local.write_all(_local_records(7))

        with self.assertLogs("policymap.services.migration", level="ERROR"):
            failed = self._migration(SqlProposalAdapter(self.SessionLocal)).run()

        self.assertEqual(failed.status, "failed")
        self.assertEqual(failed.inserted, 7)
        self.assertIn("ledger not saved", failed.error)
        self.assertIsNone(self.kv.get_item(MIGRATION_FLAG_KEY))

        self.kv.reject_ledger = False
        resumed = self._migration(SqlProposalAdapter(self.SessionLocal)).run()

        self.assertEqual(resumed.status, "completed")
        self.assertEqual((resumed.inserted, resumed.skipped), (0, 7))
        self.assertEqual(self._remote_source_ids(), sorted(str(index) for index in range(1, 8)))

    def test_remote_gate_mode_loses_failed_batches_on_rerun(self) -> None:
        self.local.write_all(_local_records(7))

        with self.assertLogs("policymap.services", level="ERROR"):
            failed = self._migration(_FlakyRemote(self.SessionLocal, fail_on_call=2), mode="remote_gate").run()
        rerun = self._migration(SqlProposalAdapter(self.SessionLocal), mode="remote_gate").run()

        self.assertEqual(failed.status, "failed")
        self.assertEqual(rerun.status, "remote_not_empty")
        self.assertEqual(self._remote_count(), 5)

    def test_unknown_mode_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self._migration(SqlProposalAdapter(self.SessionLocal), mode="bogus")


if __name__ == "__main__":
    unittest.main()
