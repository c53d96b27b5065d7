"""One-pass normalization of drifting proposal field names.

Older records use ``healthcareIssue``, ``latitude``/``longitude``, ``fullName``,
``university`` and ISO ``created_at`` strings; newer ones use ``name``,
``lat``/``lng``, ``full_name`` and epoch-millisecond ``timestamp`` values.
Adapters call :func:`normalize_record` once at the boundary so nothing
downstream needs ``a or b`` fallback chains.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from policymap.schemas.proposal import Proposal, ProposalId

# Canonical field -> accepted input keys, newest spelling first.
FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "title": ("title", "name", "healthcareIssue"),
    "policy": ("policy", "overview"),
    "proposal_text": ("proposal_text", "fullText"),
    "lat": ("lat", "latitude"),
    "lng": ("lng", "longitude"),
    "full_name": ("full_name", "fullName"),
    "institution": ("institution", "university"),
    "timestamp": ("timestamp", "created_at"),
}
TEXT_FIELDS: tuple[str, ...] = (
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
    "full_name",
    "email",
    "institution",
    "image",
)
CANONICAL_FIELDS: tuple[str, ...] = tuple(Proposal.model_fields)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_record(raw: Mapping[str, Any]) -> Proposal:
    """Build a canonical :class:`Proposal` from any historical record shape."""

    values: dict[str, Any] = {}
    for field in CANONICAL_FIELDS:
        keys = FIELD_SYNONYMS.get(field, (field,))
        candidates = [raw[key] for key in keys if key in raw]
        values[field] = _coerce_first(field, candidates)
    return Proposal(**{key: value for key, value in values.items() if value is not None})


def normalize_patch(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Map a partial update onto canonical names, keeping only fields that are present."""

    patch: dict[str, Any] = {}
    for field in CANONICAL_FIELDS:
        if field in ("id", "timestamp"):
            continue
        keys = FIELD_SYNONYMS.get(field, (field,))
        present = [raw[key] for key in keys if key in raw]
        if not present:
            continue
        value = _coerce_first(field, present)
        if value is None and field in TEXT_FIELDS:
            value = ""
        if value is None and field == "tags":
            value = []
        patch[field] = value
    return patch


def dump_record(proposal: Proposal) -> dict[str, Any]:
    """Serialize a proposal to the canonical JSON shape written by file adapters."""

    return proposal.model_dump(mode="json")


def dump_records(proposals: Iterable[Proposal]) -> list[dict[str, Any]]:
    return [dump_record(proposal) for proposal in proposals]


def normalize_proposal_id(value: Any) -> ProposalId | None:
    """Normalize the three id schemes: ints, ``"p<ms>"`` strings, or nothing."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    return text


def sort_latest(proposals: Sequence[Proposal]) -> list[Proposal]:
    """Newest first by ``timestamp``; records without one sort last."""

    return sorted(proposals, key=lambda proposal: proposal.timestamp or 0, reverse=True)


def composite_key(proposal: Proposal) -> tuple[str, str]:
    """Identity used when reconciling the static data files."""

    return (_fold(proposal.city), _fold(proposal.title))


def datetime_to_epoch_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def epoch_ms_to_datetime(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


def _coerce_first(field: str, candidates: list[Any]) -> Any:
    for candidate in candidates:
        value = _coerce(field, candidate)
        if value is None:
            continue
        if field in TEXT_FIELDS and not value:
            continue
        if field == "tags" and not value:
            continue
        return value
    return None


def _coerce(field: str, value: Any) -> Any:
    if field == "id":
        return normalize_proposal_id(value)
    if field in ("lat", "lng"):
        return _coerce_coordinate(value)
    if field == "timestamp":
        return _coerce_timestamp(value)
    if field == "tags":
        return clean_tags(value)
    if value is None:
        return None
    return str(value).strip()


def clean_tags(value: Any) -> list[str]:
    """Normalize tags to a de-duplicated list, keeping insertion order."""

    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("{") and text.endswith("}"):
            items: Iterable[Any] = text[1:-1].split(",")
        else:
            items = [text]
    elif isinstance(value, (list, tuple)):
        items = value
    else:
        return []
    cleaned: list[str] = []
    seen: set[str] = set()
    for item in items:
        tag = str(item or "").strip().strip('"')
        if not tag or tag in seen:
            continue
        seen.add(tag)
        cleaned.append(tag)
    return cleaned


def _coerce_coordinate(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _coerce_timestamp(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return datetime_to_epoch_ms(value)
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return datetime_to_epoch_ms(parsed)


def _fold(value: str) -> str:
    return " ".join(value.split()).lower()
