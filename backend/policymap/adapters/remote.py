"""Remote relational adapter over the ``proposals`` table."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.models.proposal import ProposalRow
from policymap.schema.proposal_fields import datetime_to_epoch_ms, epoch_ms_to_datetime
from policymap.schemas.proposal import Proposal

logger = logging.getLogger(__name__)

_COPIED_COLUMNS: tuple[str, ...] = (
    "slug",
    "title",
    "city",
    "state",
    "country",
    "description",
    "background",
    "policy",
    "stakeholders",
    "costs",
    "metrics",
    "timeline",
    "proposal_text",
    "lat",
    "lng",
    "full_name",
    "email",
    "institution",
    "image",
)


def remote_payload(proposal: Proposal) -> dict[str, Any]:
    """Column values for one proposal; the local ``timestamp`` becomes ``created_at``."""

    payload: dict[str, Any] = {column: getattr(proposal, column) for column in _COPIED_COLUMNS}
    payload["tags_json"] = list(proposal.tags)
    if proposal.timestamp is not None:
        payload["created_at"] = epoch_ms_to_datetime(proposal.timestamp)
    return payload


def row_to_proposal(row: ProposalRow) -> Proposal:
    """Map a table row back to the canonical record."""

    values: dict[str, Any] = {column: getattr(row, column) for column in _COPIED_COLUMNS}
    return Proposal(
        id=row.id,
        tags=list(row.tags_json or []),
        timestamp=datetime_to_epoch_ms(row.created_at) if row.created_at is not None else None,
        **values,
    )


class SqlProposalAdapter(ProposalAdapter):
    """Proposal collection stored one row per record in a relational table."""

    name = "remote"

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def read_all(self) -> list[Proposal]:
        stmt = select(ProposalRow).order_by(ProposalRow.created_at.desc(), ProposalRow.id.desc())
        try:
            with self._session_factory() as db:
                return [row_to_proposal(row) for row in db.scalars(stmt).all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to read proposals table: {exc}") from exc

    def write_all(self, proposals: Sequence[Proposal]) -> None:
        """Synchronize the table to ``proposals`` in one transaction."""

        try:
            with self._session_factory() as db, db.begin():
                existing = {row.id: row for row in db.scalars(select(ProposalRow)).all()}
                kept_ids: set[int] = set()
                inserted_explicit_id = False
                for proposal in proposals:
                    payload = remote_payload(proposal)
                    if isinstance(proposal.id, int) and proposal.id in existing:
                        row = existing[proposal.id]
                        for column, value in payload.items():
                            setattr(row, column, value)
                        kept_ids.add(row.id)
                        continue
                    row = ProposalRow(**payload)
                    if isinstance(proposal.id, int):
                        row.id = proposal.id
                        inserted_explicit_id = True
                    elif proposal.id is not None:
                        row.source_id = str(proposal.id)
                    db.add(row)
                    db.flush()
                    kept_ids.add(row.id)
                for row_id, row in existing.items():
                    if row_id not in kept_ids:
                        db.delete(row)
                if inserted_explicit_id:
                    _sync_id_sequence(db)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to write proposals table: {exc}") from exc

    def has_any_rows(self) -> bool:
        """Row-count-limited existence test."""

        try:
            with self._session_factory() as db:
                return db.scalar(select(ProposalRow.id).limit(1)) is not None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to query proposals table: {exc}") from exc

    def existing_source_ids(self, source_ids: Sequence[str]) -> set[str]:
        """Subset of ``source_ids`` already stored in the table."""

        if not source_ids:
            return set()
        stmt = select(ProposalRow.source_id).where(ProposalRow.source_id.in_(list(source_ids)))
        try:
            with self._session_factory() as db:
                return {value for value in db.scalars(stmt).all() if value is not None}
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to query proposals table: {exc}") from exc

    def insert_batch(self, proposals: Sequence[Proposal]) -> list[Proposal]:
        """Insert one batch in a single transaction; ids are assigned by the database."""

        try:
            with self._session_factory() as db:
                with db.begin():
                    rows: list[ProposalRow] = []
                    for proposal in proposals:
                        row = ProposalRow(**remote_payload(proposal))
                        if proposal.id is not None:
                            row.source_id = str(proposal.id)
                        db.add(row)
                        rows.append(row)
                for row in rows:
                    db.refresh(row)
                return [row_to_proposal(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to insert proposal batch: {exc}") from exc

    def wait_until_ready(
        self,
        *,
        attempts: int = 3,
        base_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Startup connectivity check with bounded retries and exponential backoff."""

        attempts = max(1, attempts)
        for attempt in range(1, attempts + 1):
            try:
                with self._session_factory() as db:
                    db.execute(select(ProposalRow.id).limit(1))
                return
            except SQLAlchemyError as exc:
                logger.warning(
                    "remote.connectivity_check_failed attempt=%d/%d error=%s",
                    attempt,
                    attempts,
                    exc,
                )
                if attempt == attempts:
                    raise PersistenceError(
                        f"Remote proposals table unreachable after {attempts} attempts"
                    ) from exc
                sleep(base_delay * 2**attempt)


def _sync_id_sequence(db: Session) -> None:
    # Explicit ids do not advance a PostgreSQL serial sequence.
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(
        text(
            "SELECT setval(pg_get_serial_sequence('proposals', 'id'), "
            "(SELECT COALESCE(MAX(id), 1) FROM proposals))"
        )
    )
