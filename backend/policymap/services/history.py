"""Admin action history kept as a JSON array in the key/value store."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from policymap.adapters.keyvalue import HISTORY_KEY, KeyValueStore
from policymap.schema.proposal_fields import dump_record
from policymap.schemas.proposal import Proposal

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAP = 100


class HistoryLog:
    """Newest-first list of ``{action, timestamp, details, proposal?}`` entries."""

    def __init__(
        self,
        kv: KeyValueStore,
        key: str = HISTORY_KEY,
        cap: int | None = DEFAULT_HISTORY_CAP,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.kv = kv
        self.key = key
        self.cap = cap
        self._clock = clock or (lambda: int(time.time() * 1000))

    def entries(self) -> list[dict[str, Any]]:
        raw = self.kv.get_item(self.key)
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("history.malformed_payload key=%s", self.key)
            return []
        if not isinstance(payload, list):
            logger.warning("history.malformed_payload key=%s type=%s", self.key, type(payload).__name__)
            return []
        return [entry for entry in payload if isinstance(entry, dict)]

    def record(self, action: str, details: str, proposal: Proposal | None = None) -> dict[str, Any]:
        """Prepend one entry and persist the capped log."""

        entry: dict[str, Any] = {
            "action": action,
            "timestamp": self._clock(),
            "details": details,
        }
        if proposal is not None:
            entry["proposal"] = dump_record(proposal)
        entries = [entry, *self.entries()]
        if self.cap:
            entries = entries[: self.cap]
        self._save(entries)
        return entry

    def pop(self, index: int) -> dict[str, Any] | None:
        entries = self.entries()
        if index < 0 or index >= len(entries):
            return None
        entry = entries.pop(index)
        self._save(entries)
        return entry

    def clear(self) -> None:
        self.kv.remove_item(self.key)

    def _save(self, entries: list[dict[str, Any]]) -> None:
        self.kv.set_item(self.key, json.dumps(entries, ensure_ascii=False))
