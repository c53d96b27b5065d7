"""Tests for CSV parsing and batched remote inserts."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from sqlalchemy import create_engine, delete, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from policymap.adapters.base import PersistenceError
from policymap.adapters.remote import SqlProposalAdapter
from policymap.models.base import Base
from policymap.models.proposal import ProposalRow
from policymap.schemas.proposal import Proposal
from policymap.services.importer import insert_in_batches, read_csv_proposals

CSV_TEXT = """name,city,state,country,tags,stakeholders,metrics,timeline,lat,lng,created_at
Telehealth,Ithaca,NY,USA,"{Telehealth,Rural Health}",Clinics|State,Usage up|ER down,Q1|Q4,42.44,-76.50,2024-05-01T00:00:00Z
Clinics,Cairo,,Egypt,Primary Care,,,,,,
Vaccines,Lima,,Peru,,,,,,,
"""


class ReadCsvTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "proposals.csv"
        self.path.write_text(CSV_TEXT, encoding="utf-8")

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_tags_and_pipe_separated_columns(self) -> None:
        ithaca, cairo, lima = read_csv_proposals(self.path)

        self.assertEqual(ithaca.tags, ["Telehealth", "Rural Health"])
        self.assertEqual(ithaca.stakeholders, "Clinics\nState")
        self.assertEqual(ithaca.metrics, "Usage up\nER down")
        self.assertEqual(ithaca.timeline, "Q1\nQ4")
        self.assertEqual(ithaca.slug, "ithaca")
        self.assertEqual(ithaca.lat, 42.44)
        self.assertIsNotNone(ithaca.timestamp)
        self.assertEqual(cairo.tags, ["Primary Care"])
        self.assertIsNone(cairo.lat)
        self.assertEqual(lima.tags, [])


class _FailingSecondBatch(SqlProposalAdapter):
    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.calls = 0

    def insert_batch(self, proposals):
        self.calls += 1
        if self.calls == 2:
            raise PersistenceError("rate limited")
        return super().insert_batch(proposals)


class InsertInBatchesTests(unittest.TestCase):
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
        self.records = [Proposal(slug=f"c{index}", city=f"C{index}") for index in range(12)]

    def _count(self) -> int:
        with self.SessionLocal() as db:
            return db.scalar(select(func.count()).select_from(ProposalRow)) or 0

    def test_sequential_batches_with_flat_delay(self) -> None:
        delays: list[float] = []

        report = insert_in_batches(
            SqlProposalAdapter(self.SessionLocal),
            self.records,
            batch_size=5,
            batch_delay=1.0,
            sleep=delays.append,
        )

        self.assertTrue(report.success)
        self.assertEqual((report.inserted, report.batches), (12, 3))
        self.assertEqual(delays, [1.0, 1.0])
        self.assertEqual(self._count(), 12)

    def test_failed_batch_aborts_remaining_batches(self) -> None:
        with self.assertLogs("policymap.services.importer", level="ERROR"):
            report = insert_in_batches(
                _FailingSecondBatch(self.SessionLocal),
                self.records,
                batch_size=5,
                batch_delay=0,
            )

        self.assertFalse(report.success)
        self.assertEqual((report.inserted, report.failed, report.batches), (5, 7, 1))
        self.assertEqual(self._count(), 5)


if __name__ == "__main__":
    unittest.main()
