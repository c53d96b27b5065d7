"""String key/value stores with browser localStorage semantics."""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from policymap.adapters.base import PersistenceError

PROPOSALS_KEY = "polityxMapProposals"
HISTORY_KEY = "polityxMapHistory"
MIGRATION_FLAG_KEY = "proposalsMigrationCompleted"
MIGRATION_LEDGER_KEY = "proposalsMigrationLedger"


class KeyValueStore(ABC):
    """Synchronous string store; last writer wins."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored string or ``None``."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete ``key`` if present."""


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, mainly for tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """All keys kept in one JSON object on disk, rewritten atomically on every change."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def get_item(self, key: str) -> str | None:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Cannot read key/value file {self.path}: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Malformed key/value file {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise PersistenceError(f"Key/value file {self.path} does not hold an object")
        return {str(key): str(value) for key, value in payload.items()}

    def _dump(self, items: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(items, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write key/value file {self.path}: {exc}") from exc
