"""Local adapter: the whole collection serialized under one key."""

from __future__ import annotations

import json
from collections.abc import Sequence

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.adapters.keyvalue import PROPOSALS_KEY, KeyValueStore
from policymap.schema.proposal_fields import dump_records, normalize_record
from policymap.schemas.proposal import Proposal


class LocalProposalAdapter(ProposalAdapter):
    """Read/write the entire collection as one JSON blob in a key/value store."""

    name = "local"

    def __init__(self, kv: KeyValueStore, key: str = PROPOSALS_KEY) -> None:
        self.kv = kv
        self.key = key

    def read_all(self) -> list[Proposal]:
        raw = self.kv.get_item(self.key)
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Malformed proposals payload under {self.key!r}: {exc}") from exc
        if not isinstance(payload, list):
            raise PersistenceError(f"Proposals payload under {self.key!r} is not an array")
        return [normalize_record(item) for item in payload if isinstance(item, dict)]

    def write_all(self, proposals: Sequence[Proposal]) -> None:
        self.kv.set_item(self.key, json.dumps(dump_records(proposals), ensure_ascii=False))
