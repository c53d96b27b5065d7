"""One-way copy of the local proposal collection into the remote table."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from policymap.adapters.base import PersistenceError
from policymap.adapters.keyvalue import MIGRATION_FLAG_KEY, MIGRATION_LEDGER_KEY, KeyValueStore
from policymap.adapters.local import LocalProposalAdapter
from policymap.adapters.remote import SqlProposalAdapter
from policymap.schema.proposal_fields import composite_key
from policymap.schemas.proposal import Proposal
from policymap.services.importer import insert_in_batches

logger = logging.getLogger(__name__)

MigrationMode = Literal["ledger", "remote_gate"]

STATUS_COMPLETED = "completed"
STATUS_ALREADY_COMPLETED = "already_completed"
STATUS_NO_LOCAL_RECORDS = "no_local_records"
STATUS_REMOTE_NOT_EMPTY = "remote_not_empty"
STATUS_FAILED = "failed"


@dataclass(slots=True)
class MigrationReport:
    status: str
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    batches: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status != STATUS_FAILED


def ledger_key(proposal: Proposal) -> str:
    """Stable acknowledgement key for one local record."""

    if proposal.id is not None:
        return str(proposal.id)
    city, title = composite_key(proposal)
    return f"{city}|{title}"


class LocalToRemoteMigration:
    """Copy local proposals into the remote table in small sequential batches.

    ``mode="remote_gate"`` keeps the historical behavior: any row in the
    remote table marks the migration complete, so batches lost to a failed
    run are never retried. ``mode="ledger"`` records every acknowledged local
    record after each committed batch and resumes with the rest on re-run;
    rows that committed remotely without reaching the ledger are recognised
    by their ``source_id`` and not inserted again. The remote gate only
    applies before anything was migrated.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        local: LocalProposalAdapter,
        remote: SqlProposalAdapter,
        *,
        batch_size: int = 5,
        batch_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        mode: MigrationMode = "ledger",
    ) -> None:
        if mode not in ("ledger", "remote_gate"):
            raise ValueError(f"Unknown migration mode: {mode}")
        self.kv = kv
        self.local = local
        self.remote = remote
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.sleep = sleep
        self.mode = mode

    def run(self) -> MigrationReport:
        try:
            return self._run()
        except PersistenceError as exc:
            logger.exception("migration.failed mode=%s", self.mode)
            return MigrationReport(status=STATUS_FAILED, error=str(exc))

    def _run(self) -> MigrationReport:
        if self.kv.get_item(MIGRATION_FLAG_KEY):
            logger.info("migration.skipped reason=%s", STATUS_ALREADY_COMPLETED)
            return MigrationReport(status=STATUS_ALREADY_COMPLETED)

        proposals = self.local.read_all()
        if not proposals:
            self._mark_complete()
            logger.info("migration.skipped reason=%s", STATUS_NO_LOCAL_RECORDS)
            return MigrationReport(status=STATUS_NO_LOCAL_RECORDS)

        ledger = self._load_ledger() if self.mode == "ledger" else set()
        copied = self._unacknowledged_copies(proposals, ledger) if self.mode == "ledger" else set()
        if not ledger and not copied and self.remote.has_any_rows():
            self._mark_complete()
            logger.info("migration.skipped reason=%s local_rows=%d", STATUS_REMOTE_NOT_EMPTY, len(proposals))
            return MigrationReport(status=STATUS_REMOTE_NOT_EMPTY, skipped=len(proposals))
        if copied:
            logger.warning("migration.unacknowledged_rows_found rows=%d", len(copied))
            ledger.update(copied)
            self._save_ledger(ledger)

        pending = [proposal for proposal in proposals if ledger_key(proposal) not in ledger]
        skipped = len(proposals) - len(pending)
        logger.info(
            "migration.started mode=%s local_rows=%d pending=%d batch_size=%d",
            self.mode,
            len(proposals),
            len(pending),
            self.batch_size,
        )
        ledger_errors: list[str] = []

        def acknowledge(batch: Sequence[Proposal]) -> None:
            if self.mode != "ledger":
                return
            ledger.update(ledger_key(proposal) for proposal in batch)
            try:
                self._save_ledger(ledger)
            except PersistenceError as exc:
                logger.exception("migration.ledger_write_failed rows=%d", len(batch))
                ledger_errors.append(str(exc))

        report = insert_in_batches(
            self.remote,
            pending,
            batch_size=self.batch_size,
            batch_delay=self.batch_delay,
            sleep=self.sleep,
            on_batch=acknowledge,
        )
        error = report.error
        if error is None and ledger_errors:
            error = f"Migration ledger not saved: {ledger_errors[-1]}"
        if error is not None:
            logger.error(
                "migration.incomplete mode=%s inserted=%d failed=%d",
                self.mode,
                report.inserted,
                report.failed,
            )
            return MigrationReport(
                status=STATUS_FAILED,
                inserted=report.inserted,
                skipped=skipped,
                failed=report.failed,
                batches=report.batches,
                error=error,
            )

        self._mark_complete()
        logger.info("migration.completed mode=%s inserted=%d skipped=%d", self.mode, report.inserted, skipped)
        return MigrationReport(
            status=STATUS_COMPLETED,
            inserted=report.inserted,
            skipped=skipped,
            batches=report.batches,
        )

    def _mark_complete(self) -> None:
        self.kv.set_item(MIGRATION_FLAG_KEY, "true")

    def _load_ledger(self) -> set[str]:
        raw = self.kv.get_item(MIGRATION_LEDGER_KEY)
        if not raw:
            return set()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("migration.malformed_ledger key=%s", MIGRATION_LEDGER_KEY)
            return set()
        if not isinstance(payload, list):
            logger.warning("migration.malformed_ledger key=%s", MIGRATION_LEDGER_KEY)
            return set()
        return {str(item) for item in payload}

    def _save_ledger(self, ledger: set[str]) -> None:
        self.kv.set_item(MIGRATION_LEDGER_KEY, json.dumps(sorted(ledger)))

    def _unacknowledged_copies(self, proposals: Sequence[Proposal], ledger: set[str]) -> set[str]:
        """Ledger keys of records whose rows committed remotely but never reached the ledger."""

        candidates = [
            str(proposal.id)
            for proposal in proposals
            if proposal.id is not None and ledger_key(proposal) not in ledger
        ]
        return self.remote.existing_source_ids(candidates)
