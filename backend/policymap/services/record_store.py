"""Proposal record store: CRUD over a pluggable whole-collection adapter."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.schema.proposal_fields import (
    normalize_patch,
    normalize_proposal_id,
    normalize_record,
    sort_latest,
)
from policymap.schema.slugs import normalize_slug_lookup, slugify, unique_slug
from policymap.schemas.proposal import Proposal, ProposalId
from policymap.services.history import HistoryLog

logger = logging.getLogger(__name__)

DELETE_ACTIONS = frozenset({"Delete", "Delete Proposal"})


@dataclass(frozen=True, slots=True)
class ProposalsChanged:
    """Notification emitted once per successful mutation."""

    action: str
    proposal_id: ProposalId | None = None


Listener = Callable[[ProposalsChanged], None]


class ProposalStore:
    """Read-modify-write access to the proposal collection.

    Every mutation reads the whole collection from the adapter, applies the
    change in memory and writes the whole collection back. Adapter failures
    are logged and reported as ``None``/``False``/``[]``.
    """

    def __init__(
        self,
        adapter: ProposalAdapter,
        *,
        history: HistoryLog | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.adapter = adapter
        self.history = history
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._listeners: list[Listener] = []

    def list(self) -> list[Proposal]:
        try:
            return self.adapter.read_all()
        except PersistenceError:
            logger.exception("proposals.read_failed adapter=%s", self.adapter.name)
            return []

    def get(self, proposal_id: Any) -> Proposal | None:
        """Find a proposal by id; records stored without an id are found by slug."""

        proposals = self.list()
        index = _index_of(proposals, normalize_proposal_id(proposal_id))
        return None if index is None else proposals[index]

    def get_by_slug(self, slug: str) -> Proposal | None:
        """Find a proposal by its URL slug (``Ithaca``, ``ithaca.html`` and ``/ithaca/`` all match)."""

        target = normalize_slug_lookup(slug)
        if not target:
            return None
        for proposal in self.list():
            if proposal.slug.lower() == target:
                return proposal
        return None

    def get_latest(self, count: int = 3) -> list[Proposal]:
        if count <= 0:
            return []
        return sort_latest(self.list())[:count]

    def create(self, draft: Mapping[str, Any] | BaseModel) -> Proposal | None:
        """Assign id, slug and timestamp to ``draft``, then append it to the collection."""

        proposal = normalize_record(_as_mapping(draft))
        try:
            proposals = self.adapter.read_all()
            taken = {item.slug for item in proposals}
            base_slug = normalize_slug_lookup(proposal.slug) or slugify(proposal.city)
            proposal = proposal.model_copy(
                update={
                    "id": self._next_id(proposals),
                    "slug": unique_slug(base_slug, taken),
                    "timestamp": proposal.timestamp if proposal.timestamp is not None else self._clock(),
                }
            )
            self.adapter.write_all([*proposals, proposal])
        except PersistenceError:
            logger.exception("proposals.create_failed adapter=%s title=%s", self.adapter.name, proposal.title)
            return None

        logger.info("proposals.created id=%s slug=%s", proposal.id, proposal.slug)
        self._record_history("Create", f"Created proposal: {proposal.title}")
        self._notify(ProposalsChanged("create", proposal.id))
        return proposal

    def update(self, proposal_id: Any, patch: Mapping[str, Any] | BaseModel) -> Proposal | None:
        """Merge ``patch`` into one record; ``id`` and ``timestamp`` never change."""

        target = normalize_proposal_id(proposal_id)
        changes = normalize_patch(_as_mapping(patch, exclude_unset=True))
        changes.pop("slug", None)
        try:
            proposals = self.adapter.read_all()
            index = _index_of(proposals, target)
            if index is None:
                return None
            current = proposals[index]
            if not changes:
                return current
            if "city" in changes:
                taken = {item.slug for position, item in enumerate(proposals) if position != index}
                changes["slug"] = unique_slug(slugify(changes["city"]), taken)
            updated = current.model_copy(update=changes)
            proposals[index] = updated
            self.adapter.write_all(proposals)
        except PersistenceError:
            logger.exception("proposals.update_failed adapter=%s id=%s", self.adapter.name, target)
            return None

        logger.info("proposals.updated id=%s fields=%s", updated.id, ",".join(sorted(changes)))
        self._record_history("Edit", f"Edited proposal: {current.title}", proposal=current)
        self._notify(ProposalsChanged("update", updated.id))
        return updated

    def delete(self, proposal_id: Any) -> bool:
        target = normalize_proposal_id(proposal_id)
        try:
            proposals = self.adapter.read_all()
            index = _index_of(proposals, target)
            if index is None:
                return False
            removed = proposals.pop(index)
            self.adapter.write_all(proposals)
        except PersistenceError:
            logger.exception("proposals.delete_failed adapter=%s id=%s", self.adapter.name, target)
            return False

        logger.info("proposals.deleted id=%s", removed.id)
        self._record_history("Delete", f"Deleted proposal: {removed.title}", proposal=removed)
        self._notify(ProposalsChanged("delete", removed.id))
        return True

    def undo_delete(self, history_index: int = 0) -> Proposal | None:
        """Restore the snapshot kept by a delete history entry.

        Refused (``None``) when the entry is not a delete, carries no snapshot,
        or a record with the same id already exists.
        """

        if self.history is None:
            return None
        try:
            entries = self.history.entries()
            if history_index < 0 or history_index >= len(entries):
                return None
            entry = entries[history_index]
            snapshot = entry.get("proposal") or entry.get("proposalData")
            if entry.get("action") not in DELETE_ACTIONS or not isinstance(snapshot, dict):
                return None
            restored = normalize_record(snapshot)
            proposals = self.adapter.read_all()
            identity = restored.id if restored.id is not None else restored.slug
            if _index_of(proposals, identity) is not None:
                logger.warning("proposals.undo_refused id=%s reason=id_exists", identity)
                return None
            self.adapter.write_all([*proposals, restored])
            self.history.pop(history_index)
            self.history.record("Undo Delete", f"Restored proposal: {restored.title}")
        except PersistenceError:
            logger.exception("proposals.undo_failed adapter=%s history_index=%d", self.adapter.name, history_index)
            return None

        logger.info("proposals.restored id=%s", restored.id)
        self._notify(ProposalsChanged("undo_delete", restored.id))
        return restored

    def replace_all(self, records: Iterable[Mapping[str, Any] | BaseModel]) -> bool:
        """Bulk-load a collection, filling in missing ids and slugs."""

        proposals = [normalize_record(_as_mapping(record)) for record in records]
        loaded: list[Proposal] = []
        taken: set[str] = set()
        for proposal in proposals:
            updates: dict[str, Any] = {}
            if proposal.id is None:
                updates["id"] = self._next_id([*proposals, *loaded])
            slug = unique_slug(normalize_slug_lookup(proposal.slug) or slugify(proposal.city), taken)
            if slug != proposal.slug:
                updates["slug"] = slug
            taken.add(slug)
            loaded.append(proposal.model_copy(update=updates) if updates else proposal)
        try:
            self.adapter.write_all(loaded)
        except PersistenceError:
            logger.exception("proposals.replace_failed adapter=%s rows=%d", self.adapter.name, len(loaded))
            return False

        logger.info("proposals.replaced adapter=%s rows=%d", self.adapter.name, len(loaded))
        self._notify(ProposalsChanged("replace"))
        return True

    def history_entries(self) -> list[dict[str, Any]]:
        if self.history is None:
            return []
        try:
            return self.history.entries()
        except PersistenceError:
            logger.exception("proposals.history_read_failed")
            return []

    def record_event(self, action: str, details: str) -> None:
        """Append a non-mutation entry (login, logout) to the history log."""

        self._record_history(action, details)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications; returns the unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ProposalsChanged) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("proposals.listener_failed action=%s", event.action)

    def _record_history(self, action: str, details: str, proposal: Proposal | None = None) -> None:
        if self.history is None:
            return
        try:
            self.history.record(action, details, proposal=proposal)
        except PersistenceError:
            logger.exception("proposals.history_write_failed action=%s", action)

    def _next_id(self, proposals: Iterable[Proposal]) -> ProposalId:
        ids = {proposal.id for proposal in proposals if proposal.id is not None}
        if any(isinstance(value, str) for value in ids):
            stamp = self._clock()
            while f"p{stamp}" in ids:
                stamp += 1
            return f"p{stamp}"
        return max((value for value in ids if isinstance(value, int)), default=0) + 1


def _as_mapping(value: Mapping[str, Any] | BaseModel, *, exclude_unset: bool = False) -> Mapping[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_unset=exclude_unset)
    return value


def _index_of(proposals: list[Proposal], target: ProposalId | None) -> int | None:
    """Position of the record with id ``target``, falling back to the slug of id-less records."""

    if target is None:
        return None
    for index, proposal in enumerate(proposals):
        if proposal.id == target:
            return index
    if not isinstance(target, str):
        return None
    slug = normalize_slug_lookup(target)
    for index, proposal in enumerate(proposals):
        if proposal.id is None and proposal.slug.lower() == slug:
            return index
    return None
