"""Tests for the proposal record store over the local adapter."""

from __future__ import annotations

import itertools
import json
import tempfile
import unittest
from collections.abc import Sequence
from pathlib import Path

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.adapters.keyvalue import MemoryKeyValueStore
from policymap.adapters.local import LocalProposalAdapter
from policymap.adapters.static_files import JsonFileAdapter
from policymap.schemas.proposal import Proposal, ProposalDraft, ProposalPatch
from policymap.services.history import HistoryLog
from policymap.services.record_store import ProposalsChanged, ProposalStore


class _BrokenAdapter(ProposalAdapter):
    name = "broken"

    def read_all(self) -> list[Proposal]:
        raise PersistenceError("storage offline")

    def write_all(self, proposals: Sequence[Proposal]) -> None:
        raise PersistenceError("storage offline")


def _draft(city: str, title: str = "Clinic Network", **fields) -> dict:
    return {"title": title, "city": city, "state": "ST", "country": "Egypt", **fields}


class ProposalStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.kv = MemoryKeyValueStore()
        ticks = itertools.count(1_000, 1_000)
        self.clock = lambda: next(ticks)
        self.history = HistoryLog(self.kv, clock=self.clock)
        self.store = ProposalStore(LocalProposalAdapter(self.kv), history=self.history, clock=self.clock)

    def test_create_assigns_id_slug_and_timestamp(self) -> None:
        created = self.store.create(_draft("New Delhi"))

        assert created is not None
        self.assertEqual(created.id, 1)
        self.assertEqual(created.slug, "new-delhi")
        self.assertIsNotNone(created.timestamp)
        self.assertEqual(self.store.get(1), created)
        self.assertEqual(self.store.get("1"), created)
        self.assertEqual(self.store.get_by_slug("New-Delhi.html"), created)
        self.assertEqual(self.history.entries()[0]["action"], "Create")

    def test_create_accepts_draft_model_and_increments_ids(self) -> None:
        first = self.store.create(ProposalDraft(title="A", city="Cairo"))
        second = self.store.create(ProposalDraft(title="B", city="Lima"))

        assert first is not None and second is not None
        self.assertEqual((first.id, second.id), (1, 2))
        self.assertEqual(len(self.store.list()), 2)

    def test_colliding_city_slugs_get_numeric_suffix(self) -> None:
        first = self.store.create(_draft("Springfield", title="One"))
        second = self.store.create(_draft("Springfield", title="Two"))

        assert first is not None and second is not None
        self.assertEqual(first.slug, "springfield")
        self.assertEqual(second.slug, "springfield-2")
        self.assertEqual(self.store.get_by_slug("springfield-2"), second)

    def test_string_id_collections_get_epoch_style_ids(self) -> None:
        self.assertTrue(self.store.replace_all([{"id": "p5", "city": "Cairo", "title": "Legacy"}]))

        created = self.store.create(_draft("Giza"))

        assert created is not None
        self.assertIsInstance(created.id, str)
        self.assertTrue(str(created.id).startswith("p"))

    def test_update_city_moves_slug(self) -> None:
        created = self.store.create(_draft("Cairo"))
        assert created is not None

        updated = self.store.update(created.id, {"city": "Giza"})

        assert updated is not None
        self.assertEqual(updated.slug, "giza")
        self.assertIsNone(self.store.get_by_slug("cairo"))
        self.assertEqual(self.store.get_by_slug("giza"), updated)

    def test_update_keeps_id_and_timestamp(self) -> None:
        created = self.store.create(_draft("Cairo"))
        assert created is not None

        updated = self.store.update(created.id, {"id": 50, "timestamp": 1, "title": "Renamed"})

        assert updated is not None
        self.assertEqual(updated.id, created.id)
        self.assertEqual(updated.timestamp, created.timestamp)
        self.assertEqual(updated.title, "Renamed")
        self.assertEqual(updated.slug, "cairo")

    def test_update_with_patch_model_records_pre_edit_snapshot(self) -> None:
        created = self.store.create(_draft("Cairo", title="Before"))
        assert created is not None

        self.store.update(created.id, ProposalPatch(title="After"))

        entry = self.history.entries()[0]
        self.assertEqual(entry["action"], "Edit")
        self.assertEqual(entry["proposal"]["title"], "Before")

    def test_update_missing_record_returns_none(self) -> None:
        self.assertIsNone(self.store.update(404, {"title": "x"}))

    def test_delete_then_undo_restores_identical_record(self) -> None:
        kept = self.store.create(_draft("Lima"))
        doomed = self.store.create(_draft("Cairo", tags=["Care", "Access"], lat=30.04, lng=31.23))
        assert kept is not None and doomed is not None

        self.assertTrue(self.store.delete(doomed.id))
        self.assertEqual(len(self.store.list()), 1)
        self.assertIsNone(self.store.get(doomed.id))
        self.assertEqual(self.history.entries()[0]["action"], "Delete")

        restored = self.store.undo_delete(0)

        self.assertEqual(restored, doomed)
        self.assertEqual(len(self.store.list()), 2)
        self.assertEqual(self.store.get(doomed.id), doomed)
        actions = [entry["action"] for entry in self.history.entries()]
        self.assertEqual(actions[0], "Undo Delete")
        self.assertNotIn("Delete", actions)

    def test_undo_is_refused_when_id_exists_or_entry_is_not_a_delete(self) -> None:
        created = self.store.create(_draft("Cairo"))
        assert created is not None

        self.assertIsNone(self.store.undo_delete(0))
        self.history.record("Delete", "stale snapshot", proposal=created)
        self.assertIsNone(self.store.undo_delete(0))
        self.assertIsNone(self.store.undo_delete(99))

    def test_delete_missing_record_returns_false(self) -> None:
        self.assertFalse(self.store.delete(12))

    def test_get_latest_returns_newest_first(self) -> None:
        created = [self.store.create(_draft(city)) for city in ("A", "B", "C", "D")]

        latest = self.store.get_latest()

        self.assertEqual([item.city for item in latest], ["D", "C", "B"])
        self.assertEqual(len(self.store.get_latest(10)), len(created))
        self.assertEqual(self.store.get_latest(0), [])

    def test_subscribers_are_notified_and_listener_errors_are_contained(self) -> None:
        events: list[ProposalsChanged] = []

        def broken_listener(_event: ProposalsChanged) -> None:
            raise RuntimeError("listener bug")

        unsubscribe = self.store.subscribe(events.append)
        self.store.subscribe(broken_listener)

        with self.assertLogs("policymap.services.record_store", level="ERROR"):
            created = self.store.create(_draft("Cairo"))
        assert created is not None
        self.assertEqual(events, [ProposalsChanged("create", created.id)])

        unsubscribe()
        with self.assertLogs("policymap.services.record_store", level="ERROR"):
            self.store.delete(created.id)
        self.assertEqual(len(events), 1)

    def test_adapter_failures_collapse_to_empty_results(self) -> None:
        store = ProposalStore(_BrokenAdapter())

        with self.assertLogs("policymap.services.record_store", level="ERROR"):
            self.assertEqual(store.list(), [])
            self.assertIsNone(store.get(1))
            self.assertIsNone(store.create(_draft("Cairo")))
            self.assertIsNone(store.update(1, {"title": "x"}))
            self.assertFalse(store.delete(1))
            self.assertFalse(store.replace_all([]))

    def test_replace_all_fills_missing_ids_and_slugs(self) -> None:
        self.assertTrue(
            self.store.replace_all(
                [
                    {"healthcareIssue": "Telehealth", "city": "Ithaca"},
                    {"id": 7, "name": "Clinics", "city": "Ithaca"},
                ]
            )
        )

        proposals = self.store.list()

        self.assertEqual([item.id for item in proposals], [8, 7])
        self.assertEqual([item.slug for item in proposals], ["ithaca", "ithaca-2"])


class IdlessRecordTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        path = Path(self.tmp.name) / "proposals.json"
        path.write_text(
            json.dumps(
                [
                    {"name": "Rural Telehealth", "city": "Ithaca", "slug": "ithaca"},
                    {"name": "Clinic Network", "city": "Cairo", "slug": "cairo"},
                ]
            ),
            encoding="utf-8",
        )
        kv = MemoryKeyValueStore()
        self.history = HistoryLog(kv)
        self.store = ProposalStore(JsonFileAdapter(path), history=self.history)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def test_records_without_ids_are_addressed_by_slug(self) -> None:
        self.assertEqual(self.store.get("ithaca").title, "Rural Telehealth")

        updated = self.store.update("/proposals/Ithaca.html", {"title": "Telehealth Vans"})

        self.assertIsNotNone(updated)
        self.assertIsNone(updated.id)
        self.assertEqual(self.store.get_by_slug("ithaca").title, "Telehealth Vans")

    def test_delete_and_undo_by_slug(self) -> None:
        self.assertTrue(self.store.delete("cairo"))
        self.assertIsNone(self.store.get_by_slug("cairo"))

        restored = self.store.undo_delete(0)

        self.assertIsNotNone(restored)
        self.assertEqual(restored.slug, "cairo")
        self.assertIsNone(self.store.undo_delete(0))

    def test_unknown_slug_and_missing_id_are_not_found(self) -> None:
        self.assertIsNone(self.store.update(None, {"title": "x"}))
        self.assertFalse(self.store.delete("lima"))



if __name__ == "__main__":
    unittest.main()
