"""City-derived URL slugs for proposal pages."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

DEFAULT_SLUG = "proposal"

_MULTISPACE_RE = re.compile(r"\s+")
_NON_WORD_RE = re.compile(r"[^\w-]", re.ASCII)


def slugify(city: str | None) -> str:
    """Derive the URL path segment for a city name.

    ``"New Delhi"`` becomes ``"new-delhi"``; surrounding whitespace is dropped
    and accented letters are folded to ASCII before non-word characters are
    stripped.
    """

    folded = unicodedata.normalize("NFKD", (city or "").strip())
    folded = folded.encode("ascii", "ignore").decode("ascii")
    hyphenated = _MULTISPACE_RE.sub("-", folded.lower())
    return _NON_WORD_RE.sub("", hyphenated) or DEFAULT_SLUG


def normalize_slug_lookup(value: str | None) -> str:
    """Normalize a slug taken from a URL (``/proposals/Ithaca.html`` style)."""

    cleaned = (value or "").strip().strip("/").lower()
    if cleaned.endswith(".html"):
        cleaned = cleaned[: -len(".html")]
    return cleaned.rsplit("/", 1)[-1]


def unique_slug(base: str, taken: Iterable[str]) -> str:
    """Return ``base`` or the first free ``base-N`` (N >= 2)."""

    taken_set = set(taken)
    if base not in taken_set:
        return base
    counter = 2
    while f"{base}-{counter}" in taken_set:
        counter += 1
    return f"{base}-{counter}"
