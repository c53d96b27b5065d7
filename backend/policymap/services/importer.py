"""Bulk import of proposals from CSV or JS data files into the remote table."""

from __future__ import annotations

import csv
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from policymap.adapters.base import PersistenceError
from policymap.adapters.remote import SqlProposalAdapter
from policymap.adapters.static_files import JsSourceFileAdapter
from policymap.schema.proposal_fields import normalize_record
from policymap.schema.slugs import slugify
from policymap.schemas.proposal import Proposal

logger = logging.getLogger(__name__)

LINE_SEPARATED_COLUMNS: tuple[str, ...] = ("stakeholders", "metrics", "timeline")


@dataclass(slots=True)
class ImportReport:
    """Outcome of a batched insert."""

    total: int = 0
    inserted: int = 0
    failed: int = 0
    batches: int = 0
    error: str | None = None
    inserted_records: list[Proposal] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None


def read_csv_proposals(path: Path | str) -> list[Proposal]:
    """Parse a proposals CSV export.

    ``tags`` may be a PostgreSQL array literal (``{a,b}``) or a single bare
    value; the multi-line narrative columns use ``|`` between lines.
    """

    proposals: list[Proposal] = []
    with Path(path).open(newline="", encoding="utf-8-sig") as handle:
        for row in csv.DictReader(handle):
            record: dict[str, object] = {key.strip(): value for key, value in row.items() if key}
            for column in LINE_SEPARATED_COLUMNS:
                value = record.get(column)
                if isinstance(value, str) and value:
                    record[column] = "\n".join(value.split("|"))
            proposal = normalize_record(record)
            if not proposal.slug:
                proposal = proposal.model_copy(update={"slug": slugify(proposal.city)})
            proposals.append(proposal)
    logger.info("import.csv_parsed path=%s rows=%d", path, len(proposals))
    return proposals


def read_js_proposals(path: Path | str) -> list[Proposal]:
    return JsSourceFileAdapter(path).read_all()


def insert_in_batches(
    remote: SqlProposalAdapter,
    records: Sequence[Proposal],
    *,
    batch_size: int = 5,
    batch_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    on_batch: Callable[[Sequence[Proposal]], None] | None = None,
) -> ImportReport:
    """Insert ``records`` strictly sequentially, ``batch_size`` at a time.

    A flat ``batch_delay`` separates batches. The first failing batch aborts
    the rest; rows from earlier batches stay committed. ``on_batch`` is called
    with the source records of every batch that committed.
    """

    batch_size = max(1, batch_size)
    report = ImportReport(total=len(records))
    total_batches = (len(records) + batch_size - 1) // batch_size
    for number, start in enumerate(range(0, len(records), batch_size), start=1):
        if number > 1 and batch_delay > 0:
            sleep(batch_delay)
        batch = records[start : start + batch_size]
        try:
            inserted = remote.insert_batch(batch)
        except PersistenceError as exc:
            report.failed = len(records) - report.inserted
            report.error = str(exc)
            logger.exception(
                "import.batch_failed batch=%d/%d rows=%d",
                number,
                total_batches,
                len(batch),
            )
            return report
        report.batches += 1
        report.inserted += len(inserted)
        report.inserted_records.extend(inserted)
        logger.info(
            "import.batch_inserted batch=%d/%d rows=%d inserted_total=%d",
            number,
            total_batches,
            len(inserted),
            report.inserted,
        )
        if on_batch is not None:
            on_batch(batch)
    return report
