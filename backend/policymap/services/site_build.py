"""Static site build: reconcile the data-file pair and regenerate proposal pages."""

from __future__ import annotations

import html
import json
import logging
import re
import shutil
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jinja2

from policymap.adapters.base import PersistenceError
from policymap.adapters.static_files import JsonFileAdapter, JsSourceFileAdapter, read_text
from policymap.config import Settings
from policymap.schema.proposal_fields import composite_key, dump_record, dump_records, normalize_record
from policymap.schema.slugs import DEFAULT_SLUG, slugify, unique_slug
from policymap.schemas.proposal import Proposal

logger = logging.getLogger(__name__)

LIST_START_MARKER = "<!-- PROPOSALS_LIST_START -->"
LIST_END_MARKER = "<!-- PROPOSALS_LIST_END -->"
MAP_START_MARKER = "<!-- MAP_DATA_START -->"
MAP_END_MARKER = "<!-- MAP_DATA_END -->"
PROTECTED_PAGE_DIRS = frozenset({"template", "_template"})
SITE_NAME = "PolityxMap"

PLACEHOLDER_RECORD: dict[str, Any] = {
    "title": "Healthcare Access Expansion",
    "city": "Sample",
    "state": "ST",
    "country": "USA",
    "description": "This is a sample proposal to demonstrate how proposals work.",
    "background": "Healthcare access remains a significant challenge in many communities.",
    "policy": "This policy aims to expand healthcare access through community partnerships.",
    "stakeholders": "Local government, healthcare providers, community organizations, residents.",
    "costs": "Initial investment of $500,000 with ongoing costs of $100,000 annually.",
    "metrics": "Increase in healthcare access by 20% over 2 years, reduction in ER visits by 15%.",
    "timeline": "6 month planning phase followed by 18 month implementation.",
    "tags": ["Access", "Community", "Healthcare"],
    "lat": 40.7128,
    "lng": -74.0060,
    "full_name": "Sample Author",
    "institution": "Sample University",
}

DEFAULT_PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{{ page_title }}</title>
  <meta content="{{ description }}" name="description"/>
  <meta property="og:title" content="{{ page_title }}" />
  <meta property="og:description" content="{{ description }}" />
  <meta property="og:type" content="website" />
  <meta property="og:url" content="/proposals/{{ proposal.slug }}" />
</head>
<body>
  <main class="proposal">
    <h1>{{ proposal.title }}</h1>
    <p class="proposal-location">{{ location }}</p>
    {% if proposal.tags %}
    <ul class="proposal-tags">
      {% for tag in proposal.tags %}<li>{{ tag }}</li>{% endfor %}
    </ul>
    {% endif %}
    {% for heading, body in sections %}
    <section>
      <h2>{{ heading }}</h2>
      {% for line in body.splitlines() if line.strip() %}<p>{{ line }}</p>{% endfor %}
    </section>
    {% endfor %}
    {% if proposal.full_name %}
    <p class="proposal-author">{{ proposal.full_name }}{% if proposal.institution %}, {{ proposal.institution }}{% endif %}</p>
    {% endif %}
  </main>
  <script>
    window.PRELOADED_PROPOSAL = {{ payload | tojson }};
  </script>
</body>
</html>
"""

_SECTION_HEADINGS: tuple[tuple[str, str], ...] = (
    ("description", "Summary"),
    ("background", "Background"),
    ("policy", "Policy"),
    ("stakeholders", "Stakeholders"),
    ("costs", "Costs"),
    ("metrics", "Metrics"),
    ("timeline", "Timeline"),
    ("proposal_text", "Full Proposal"),
)
_TITLE_RE = re.compile(r"<title>.*?</title>", re.DOTALL | re.IGNORECASE)
_META_DESCRIPTION_RE = re.compile(r"<meta\s+[^>]*name=\"description\"[^>]*>", re.IGNORECASE)

_JINJA_ENV = jinja2.Environment(
    loader=jinja2.DictLoader({"proposal.html": DEFAULT_PAGE_TEMPLATE}),
    autoescape=True,
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(slots=True)
class BuildReport:
    proposals: int = 0
    used_placeholder: bool = False
    pages_written: int = 0
    aliases_written: int = 0
    stale_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def merge_static_records(js_records: Sequence[Proposal], json_records: Sequence[Proposal]) -> list[Proposal]:
    """Union of both files keyed by ``(city, title)``; the JS file wins ties."""

    merged: list[Proposal] = []
    seen: set[tuple[str, str]] = set()
    for proposal in [*js_records, *json_records]:
        key = composite_key(proposal)
        if key in seen:
            continue
        seen.add(key)
        merged.append(proposal)
    return merged


def placeholder_proposal() -> Proposal:
    return normalize_record(PLACEHOLDER_RECORD)


def assign_unique_slugs(proposals: Iterable[Proposal]) -> list[Proposal]:
    """Give every record a distinct city-derived slug, in collection order."""

    taken: set[str] = set()
    assigned: list[Proposal] = []
    for proposal in proposals:
        base = slugify(proposal.city) if proposal.city else (proposal.slug or DEFAULT_SLUG)
        slug = unique_slug(base, taken)
        taken.add(slug)
        assigned.append(proposal if slug == proposal.slug else proposal.model_copy(update={"slug": slug}))
    return assigned


def splice_marker_block(document: str, start_marker: str, end_marker: str, variable: str, payload: Any) -> str | None:
    """Replace the block between two HTML comment markers with a data script.

    Returns ``None`` when either marker is missing.
    """

    start = document.find(start_marker)
    end = document.find(end_marker, start + len(start_marker)) if start != -1 else -1
    if start == -1 or end == -1:
        return None
    block = (
        f"{start_marker}\n"
        "      <script>\n"
        "        // This data is generated by the policymap build.\n"
        f"        window.{variable} = {_script_json(payload)};\n"
        "      </script>\n"
        f"      {end_marker}"
    )
    return document[:start] + block + document[end + len(end_marker) :]


def page_title(proposal: Proposal) -> str:
    title = proposal.title or "Healthcare Proposal"
    return f"{title} | {_location(proposal)} | {SITE_NAME}"


def inject_proposal_data(template_html: str, proposal: Proposal) -> str:
    """Fill a site-provided page template with one proposal."""

    title = html.escape(page_title(proposal))
    description = html.escape(proposal.description or "Healthcare policy proposal information")
    script = (
        "\n<script>\n"
        "  // Preloaded proposal data\n"
        f"  window.PRELOADED_PROPOSAL = {_script_json(dump_record(proposal))};\n"
        "</script>\n"
    )
    document = template_html.replace("</body>", f"{script}\n</body>", 1)
    document = _TITLE_RE.sub(lambda _match: f"<title>{title}</title>", document, count=1)
    if proposal.description:
        document = _META_DESCRIPTION_RE.sub(
            lambda _match: f'<meta content="{description}" name="description"/>',
            document,
            count=1,
        )
    og_tags = (
        "\n"
        f'  <meta property="og:title" content="{title}" />\n'
        f'  <meta property="og:description" content="{description}" />\n'
        '  <meta property="og:type" content="website" />\n'
        f'  <meta property="og:url" content="/proposals/{html.escape(proposal.slug)}" />\n'
    )
    return document.replace("</title>", f"</title>{og_tags}", 1)


def render_default_page(proposal: Proposal) -> str:
    sections = [
        (heading, getattr(proposal, field_name))
        for field_name, heading in _SECTION_HEADINGS
        if getattr(proposal, field_name)
    ]
    return _JINJA_ENV.get_template("proposal.html").render(
        proposal=proposal,
        page_title=page_title(proposal),
        description=proposal.description or "Healthcare policy proposal information",
        location=_location(proposal),
        sections=sections,
        payload=dump_record(proposal),
    )


class SiteBuilder:
    """Regenerate the static site from ``data/proposals.js`` and ``data/proposals.json``.

    Every filesystem step is best-effort: failures are logged and collected in
    the report, and later steps still run.
    """

    def __init__(
        self,
        site_root: Path | str,
        data_dir: Path | str | None = None,
        *,
        legacy_page_aliases: Mapping[str, str] | None = None,
    ) -> None:
        self.site_root = Path(site_root)
        self.data_dir = Path(data_dir) if data_dir is not None else self.site_root / "data"
        self.legacy_page_aliases = dict(legacy_page_aliases or {})
        self.js_adapter = JsSourceFileAdapter(self.data_dir / "proposals.js")
        self.json_adapter = JsonFileAdapter(self.data_dir / "proposals.json")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SiteBuilder":
        return cls(
            settings.site_root,
            settings.resolved_data_dir,
            legacy_page_aliases=settings.legacy_page_aliases,
        )

    @property
    def pages_dir(self) -> Path:
        return self.site_root / "proposals"

    def build(self) -> BuildReport:
        report = BuildReport()
        js_records = self._step(report, "read proposals.js", self.js_adapter.read_all)
        json_records = self._step(report, "read proposals.json", self.json_adapter.read_all)
        # An unreadable source may still hold real records: it and existing pages are left alone.
        js_readable = js_records is not None
        json_readable = json_records is not None
        sources_intact = js_readable and json_readable
        js_records = js_records or []
        json_records = json_records or []
        proposals = merge_static_records(js_records, json_records)
        if not proposals and sources_intact:
            logger.warning("build.no_proposals_found using_placeholder=true")
            proposals = [placeholder_proposal()]
            report.used_placeholder = True
        proposals = assign_unique_slugs(proposals)
        report.proposals = len(proposals)
        logger.info(
            "build.merged js_rows=%d json_rows=%d merged_rows=%d",
            len(js_records),
            len(json_records),
            len(proposals),
        )

        if json_readable:
            self._step(report, "write proposals.json", lambda: self.json_adapter.write_all(proposals))
        if js_readable:
            self._step(report, "write proposals.js", lambda: self.js_adapter.write_all(proposals))
        if sources_intact:
            self._step(report, "update proposals.html", lambda: self._update_listing_page(proposals))
            self._step(report, "update index.html", lambda: self._update_map_data(proposals))

        for proposal in proposals:
            if self._step(report, f"write page {proposal.slug}", lambda p=proposal: self._write_page(p)):
                report.pages_written += 1

        slugs = {proposal.slug for proposal in proposals}
        alias_dirs: set[str] = set()
        for alias, target in self.legacy_page_aliases.items():
            if target not in slugs or alias in slugs:
                continue
            alias_dirs.add(alias)
            if self._step(report, f"write alias {alias}", lambda a=alias, t=target: self._copy_alias(a, t)):
                report.aliases_written += 1

        if sources_intact:
            removed = self._step(report, "remove stale pages", lambda: self._remove_stale_pages(slugs | alias_dirs))
            report.stale_removed = removed or []
        else:
            logger.warning("build.stale_cleanup_skipped reason=source_read_failed")

        logger.info(
            "build.finished proposals=%d pages=%d aliases=%d stale_removed=%d errors=%d",
            report.proposals,
            report.pages_written,
            report.aliases_written,
            len(report.stale_removed),
            len(report.errors),
        )
        return report

    def _step(self, report: BuildReport, name: str, action: Callable[[], Any]) -> Any:
        try:
            result = action()
        except (OSError, PersistenceError, jinja2.TemplateError) as exc:
            logger.exception("build.step_failed step=%s", name)
            report.errors.append(f"{name}: {exc}")
            return None
        return True if result is None else result

    def _update_listing_page(self, proposals: Sequence[Proposal]) -> None:
        path = self.site_root / "proposals.html"
        text = read_text(path)
        if text is None:
            return
        updated = splice_marker_block(
            text,
            LIST_START_MARKER,
            LIST_END_MARKER,
            "GENERATED_PROPOSALS_DATA",
            dump_records(proposals),
        )
        if updated is None:
            logger.warning("build.markers_missing path=%s", path)
            return
        path.write_text(updated, encoding="utf-8")

    def _update_map_data(self, proposals: Sequence[Proposal]) -> None:
        path = self.site_root / "index.html"
        text = read_text(path)
        if text is None:
            return
        mapped = [proposal for proposal in proposals if proposal.has_coordinates]
        updated = splice_marker_block(
            text,
            MAP_START_MARKER,
            MAP_END_MARKER,
            "GENERATED_MAP_DATA",
            dump_records(mapped),
        )
        if updated is None:
            logger.warning("build.markers_missing path=%s", path)
            return
        path.write_text(updated, encoding="utf-8")

    def _write_page(self, proposal: Proposal) -> None:
        template = read_text(self.site_root / "proposal.html")
        if template is not None:
            document = inject_proposal_data(template, proposal)
        else:
            document = render_default_page(proposal)
        page_dir = self.pages_dir / proposal.slug
        page_dir.mkdir(parents=True, exist_ok=True)
        (page_dir / "index.html").write_text(document, encoding="utf-8")

    def _copy_alias(self, alias: str, target: str) -> None:
        alias_dir = self.pages_dir / alias
        alias_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.pages_dir / target / "index.html", alias_dir / "index.html")

    def _remove_stale_pages(self, keep: set[str]) -> list[str]:
        if not self.pages_dir.is_dir():
            return []
        removed: list[str] = []
        for entry in sorted(self.pages_dir.iterdir()):
            if not entry.is_dir() or entry.name in PROTECTED_PAGE_DIRS or entry.name in keep:
                continue
            shutil.rmtree(entry)
            removed.append(entry.name)
            logger.info("build.stale_page_removed slug=%s", entry.name)
        return removed


def _location(proposal: Proposal) -> str:
    return f"{proposal.city}, {proposal.state} {proposal.country}".strip()


def _script_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False).replace("</", "<\\/")
