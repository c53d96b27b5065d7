"""Static data-file pair consumed by the generated site: proposals.json and proposals.js."""

from __future__ import annotations

import json
import os
import re
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import json5

from policymap.adapters.base import PersistenceError, ProposalAdapter
from policymap.schema.proposal_fields import dump_records, normalize_record
from policymap.schemas.proposal import Proposal

_ASSIGNMENT_RE = re.compile(r"\bproposals\s*=\s*")

JS_MODULE_TEMPLATE = """export const proposals = {array};

// Export for ES modules
try {{
  if (typeof module !== 'undefined') module.exports = {{ proposals }};
}} catch (e) {{}}
"""


def _records_from_payload(payload: Any, source: Path) -> list[Proposal]:
    if not isinstance(payload, list):
        raise PersistenceError(f"{source} does not hold a proposals array")
    return [normalize_record(item) for item in payload if isinstance(item, dict)]


def _write_text_atomic(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc


def read_text(path: Path) -> str | None:
    """UTF-8 file contents, or ``None`` when the file does not exist."""

    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        raise PersistenceError(f"Failed to read {path}: {exc}") from exc


class JsonFileAdapter(ProposalAdapter):
    """Pretty-printed JSON array on disk."""

    name = "json"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read_all(self) -> list[Proposal]:
        text = read_text(self.path)
        if text is None or not text.strip():
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"{self.path} is not valid JSON: {exc}") from exc
        return _records_from_payload(payload, self.path)

    def write_all(self, proposals: Sequence[Proposal]) -> None:
        _write_text_atomic(self.path, serialize_array(proposals) + "\n")


class JsSourceFileAdapter(ProposalAdapter):
    """JavaScript module declaring ``export const proposals = [...]``.

    Reading locates the ``proposals =`` assignment and parses the array
    literal that follows with JSON5, so trailing commas, single quotes,
    unquoted keys and comments are accepted. Writing swaps only that array
    region so hand-written code around it survives. A file whose array
    cannot be located is never rewritten; a missing or blank file is created
    with the ES module declaration and a CommonJS export trailer.
    """

    name = "js"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def read_all(self) -> list[Proposal]:
        text = read_text(self.path)
        if text is None or not text.strip():
            return []
        start, end = self._array_span(text)
        try:
            payload = json5.loads(text[start:end])
        except ValueError as exc:
            raise PersistenceError(f"{self.path} array literal cannot be parsed: {exc}") from exc
        return _records_from_payload(payload, self.path)

    def write_all(self, proposals: Sequence[Proposal]) -> None:
        array = serialize_array(proposals)
        text = read_text(self.path)
        if text is None or not text.strip():
            content = JS_MODULE_TEMPLATE.format(array=array)
        else:
            start, end = self._array_span(text)
            content = text[:start] + array + text[end:]
        _write_text_atomic(self.path, content)

    def _array_span(self, text: str) -> tuple[int, int]:
        match = _ASSIGNMENT_RE.search(text)
        if match is None:
            raise PersistenceError(f"{self.path} has no proposals assignment")
        start = match.end()
        if not text.startswith("[", start):
            raise PersistenceError(f"{self.path} proposals assignment is not an array literal")
        end = _literal_end(text, start)
        if end is None:
            raise PersistenceError(f"{self.path} array literal is not terminated")
        return start, end


def _literal_end(text: str, start: int) -> int | None:
    """Index just past the bracket closing the literal opened at ``start``.

    Brackets inside string literals and comments are ignored.
    """

    depth = 0
    index = start
    length = len(text)
    while index < length:
        char = text[index]
        if char in "\"'`":
            index += 1
            while index < length and text[index] != char:
                index += 2 if text[index] == "\\" else 1
        elif text.startswith("//", index):
            newline = text.find("\n", index)
            index = length if newline == -1 else newline
        elif text.startswith("/*", index):
            close = text.find("*/", index + 2)
            if close == -1:
                return None
            index = close + 1
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return None


def serialize_array(proposals: Sequence[Proposal]) -> str:
    return json.dumps(dump_records(proposals), indent=2, ensure_ascii=False)
