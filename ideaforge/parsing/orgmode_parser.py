"""
Org-mode parser — turns IdeaForge project documents into a Section tree.

Handles:
  - `#+KEY: value` metadata before the first heading
  - headings (`*` count = level) with an optional trailing `:tag1:tag2:` block
  - `:PROPERTIES:` / `:END:` drawers with `:KEY: value` lines
  - a CHANGELOG-tagged section with `- vN (date): description` entries

The parser never raises on text input. Problems are collected as
ParseIssue records and returned next to the best-effort Document.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from ideaforge.models.document import (
    RESERVED_TAGS,
    ChangelogEntry,
    Document,
    ParseIssue,
    ParseResult,
    Section,
)
from ideaforge.models.enums import IssueKind

logger = logging.getLogger(__name__)

# ── Line patterns ────────────────────────────────────────

HEADING_RE = re.compile(r"^(\*+)\s+(.*?)(?:\s+(:\S+:))?\s*$")
METADATA_RE = re.compile(r"^#\+(\w+):\s*(.*)$")
DRAWER_START_RE = re.compile(r"^\s*:PROPERTIES:\s*$", re.IGNORECASE)
DRAWER_END_RE = re.compile(r"^\s*:END:\s*$", re.IGNORECASE)
PROPERTY_RE = re.compile(r"^\s*:([\w-]+):\s*(.*?)\s*$")
TAG_RE = re.compile(r"^[A-Za-z0-9_-]+$")
CHANGELOG_ENTRY_RE = re.compile(r"^-\s*v(\d+)(?:\s*\(([^)]*)\))?\s*:?\s*(.*?)\s*$", re.IGNORECASE)
CHANGELOG_ITEM_RE = re.compile(r"^\s+-\s+(.*?)\s*$")

DEFAULT_MAX_ERRORS = 50


class _ErrorLimitReached(Exception):
    """Internal signal: stop scanning, keep what we have."""


@dataclass
class _Node:
    level: int
    heading: str
    line: int
    tags: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    body_lines: list[str] = field(default_factory=list)
    children: list["_Node"] = field(default_factory=list)


@dataclass
class _Drawer:
    owner: Optional[_Node]
    line: int
    properties: dict[str, str] = field(default_factory=dict)


class _ParseRun:
    """Mutable scanning state for one parse() call."""

    def __init__(self, max_errors: int):
        self.max_errors = max_errors
        self.errors: list[ParseIssue] = []
        self.metadata: dict[str, str] = {}
        self.roots: list[_Node] = []
        self.stack: list[_Node] = []
        self.drawer: Optional[_Drawer] = None
        self.seen_heading = False

    # ── Error collection ─────────────────────────────────

    def error(self, kind: IssueKind, message: str, line: int, section: Optional[str] = None) -> None:
        if len(self.errors) >= self.max_errors:
            self.errors.append(ParseIssue(
                kind=IssueKind.TOO_MANY_ERRORS,
                message=f"Too many errors ({self.max_errors}); parsing stopped",
                line=line,
            ))
            raise _ErrorLimitReached()
        self.errors.append(ParseIssue(kind=kind, message=message, line=line, section=section))

    # ── Line handlers ────────────────────────────────────

    def feed(self, lineno: int, line: str) -> None:
        if self.drawer is not None:
            if DRAWER_END_RE.match(line):
                self._close_drawer()
                return
            if HEADING_RE.match(line):
                self.error(
                    IssueKind.INVALID_STRUCTURE,
                    f"Property block opened on line {self.drawer.line} is missing :END:",
                    lineno,
                    self._owner_heading(),
                )
                self._close_drawer()
            else:
                self._drawer_line(lineno, line)
                return

        heading = HEADING_RE.match(line)
        if heading:
            self._open_section(lineno, heading)
            return

        if DRAWER_START_RE.match(line):
            owner = self.stack[-1] if self.stack else None
            if owner is None:
                self.error(IssueKind.INVALID_STRUCTURE, "Property block outside of any section", lineno)
            self.drawer = _Drawer(owner=owner, line=lineno)
            return

        if not self.seen_heading:
            meta = METADATA_RE.match(line)
            if meta:
                self.metadata[meta.group(1).lower()] = meta.group(2).strip()
            return

        self.stack[-1].body_lines.append(line)

    def finish(self, last_line: int) -> None:
        if self.drawer is not None:
            self.error(
                IssueKind.INVALID_STRUCTURE,
                f"Property block opened on line {self.drawer.line} is missing :END:",
                last_line,
                self._owner_heading(),
            )
            self._close_drawer()

    def _open_section(self, lineno: int, match: re.Match) -> None:
        self.seen_heading = True
        level = len(match.group(1))
        text = match.group(2).strip()

        parent_level = self.stack[-1].level if self.stack else 0
        had_parent = bool(self.stack)
        node = _Node(level=level, heading=text, line=lineno)

        # Attach first so the structure survives an error-limit stop below
        while self.stack and self.stack[-1].level >= level:
            self.stack.pop()
        if self.stack:
            self.stack[-1].children.append(node)
        else:
            self.roots.append(node)
        self.stack.append(node)

        if had_parent and level > parent_level + 1:
            self.error(
                IssueKind.INVALID_STRUCTURE,
                f"Heading level jumped from {parent_level} to {level}",
                lineno,
                text,
            )
        if not text:
            self.error(IssueKind.INVALID_STRUCTURE, "Empty heading", lineno)
        if match.group(3):
            node.tags = self._split_tags(match.group(3), lineno, text)

    def _split_tags(self, block: str, lineno: int, heading: str) -> list[str]:
        tags: list[str] = []
        for tag in block.strip(":").split(":"):
            if not tag or tag in tags:
                continue
            tags.append(tag)
            if not TAG_RE.match(tag):
                self.error(IssueKind.INVALID_FORMAT, f"Invalid tag format: '{tag}'", lineno, heading)
        return tags

    def _drawer_line(self, lineno: int, line: str) -> None:
        if not line.strip():
            return
        prop = PROPERTY_RE.match(line)
        if prop:
            self.drawer.properties[prop.group(1)] = prop.group(2)
            return
        self.error(
            IssueKind.INVALID_FORMAT,
            f"Malformed property line: '{line.strip()}'",
            lineno,
            self._owner_heading(),
        )

    def _close_drawer(self) -> None:
        drawer, self.drawer = self.drawer, None
        if drawer.owner is not None:
            drawer.owner.properties.update(drawer.properties)

    def _owner_heading(self) -> Optional[str]:
        if self.drawer is not None and self.drawer.owner is not None:
            return self.drawer.owner.heading
        return None


class OrgModeParser:
    """Parse org-mode text into an immutable Document."""

    def __init__(self, max_errors: int = DEFAULT_MAX_ERRORS):
        self.max_errors = max_errors

    def parse(self, text: Any) -> ParseResult:
        if not isinstance(text, str) or not text.strip():
            logger.warning("[PARSER] Rejected empty or non-text input")
            return ParseResult(errors=[
                ParseIssue(kind=IssueKind.INPUT, message="Input must be non-empty text")
            ])

        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        run = _ParseRun(self.max_errors)
        try:
            for lineno, raw in enumerate(lines, start=1):
                run.feed(lineno, raw.rstrip())
            run.finish(len(lines))
        except _ErrorLimitReached:
            logger.warning(f"[PARSER] Error limit {self.max_errors} reached; returning partial document")

        sections = tuple(_freeze(node, ()) for node in run.roots)
        change_history = _parse_changelog(sections)
        document = Document(
            title=run.metadata.get("title", "").strip() or "Untitled",
            metadata=dict(run.metadata),
            sections=sections,
            version=_resolve_version(run.metadata, change_history),
            change_history=change_history,
        )
        logger.debug(
            f"[PARSER] {len(sections)} top-level sections | "
            f"{sum(1 for _ in document.iter_sections())} total | "
            f"{len(run.errors)} errors | version {document.version}"
        )
        return ParseResult(document=document, errors=run.errors)


def parse_org(text: Any, max_errors: int = DEFAULT_MAX_ERRORS) -> ParseResult:
    """Convenience wrapper around OrgModeParser."""
    return OrgModeParser(max_errors=max_errors).parse(text)


# ── Tree freezing ────────────────────────────────────────

def _freeze(node: _Node, inherited: tuple[str, ...]) -> Section:
    effective = _dedupe(tuple(node.tags) + inherited)
    passed_down = tuple(t for t in effective if t.upper() not in RESERVED_TAGS)
    return Section(
        level=node.level,
        heading=node.heading,
        body="\n".join(node.body_lines).strip(),
        tags=tuple(node.tags),
        effective_tags=effective,
        properties=dict(node.properties),
        children=tuple(_freeze(child, passed_down) for child in node.children),
        source_line=node.line,
    )


def _dedupe(tags: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(tags))


# ── Version / changelog ──────────────────────────────────

def _parse_changelog(sections: tuple[Section, ...]) -> tuple[ChangelogEntry, ...]:
    changelog = None
    for top in sections:
        for section in top.walk():
            if section.has_tag("CHANGELOG", inherited=False):
                changelog = section
                break
        if changelog is not None:
            break
    if changelog is None or not changelog.body:
        return ()

    entries: list[dict[str, Any]] = []
    for line in changelog.body.split("\n"):
        # a "- vN" line opens a new entry at any indent
        entry = CHANGELOG_ENTRY_RE.match(line.strip())
        if entry:
            changes = [entry.group(3)] if entry.group(3) else []
            entries.append({
                "version": entry.group(1),
                "date": (entry.group(2) or "").strip() or None,
                "changes": changes,
            })
            continue
        item = CHANGELOG_ITEM_RE.match(line)
        if item and entries:
            entries[-1]["changes"].append(item.group(1))
    return tuple(
        ChangelogEntry(version=e["version"], date=e["date"], changes=tuple(e["changes"]))
        for e in entries
    )


def _resolve_version(metadata: dict[str, str], history: tuple[ChangelogEntry, ...]) -> str:
    explicit = metadata.get("version", "").strip()
    if explicit:
        return explicit
    if history:
        return str(max(int(entry.version) for entry in history))
    return "1"
