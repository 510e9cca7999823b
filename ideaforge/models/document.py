"""
Parsed org-mode document tree.

Sections and documents are frozen once the parser hands them out; every
consumer (validator, extractor, pipeline stages) only reads them.
"""

from __future__ import annotations

from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict

from .enums import IssueKind

# Marker tags that describe the section itself and never flow to children
RESERVED_TAGS = frozenset({"RESPONSE", "CHANGELOG"})


class ParseIssue(BaseModel):
    """A recoverable problem found while parsing or validating."""
    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    line: Optional[int] = None
    section: Optional[str] = None
    suggestion: Optional[str] = None

    @property
    def location(self) -> str:
        parts = []
        if self.section:
            parts.append(self.section)
        if self.line is not None:
            parts.append(f"line {self.line}")
        return ", ".join(parts) or "document"


class ChangelogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    date: Optional[str] = None
    changes: tuple[str, ...] = ()


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: int
    heading: str
    body: str = ""
    tags: tuple[str, ...] = ()
    effective_tags: tuple[str, ...] = ()
    properties: dict[str, str] = {}
    children: tuple[Section, ...] = ()
    source_line: int = 0

    def has_tag(self, tag: str, inherited: bool = True) -> bool:
        pool = self.effective_tags if inherited else self.tags
        wanted = tag.upper()
        return any(t.upper() == wanted for t in pool)

    def find_child(self, heading: str) -> Optional[Section]:
        """Direct child whose heading matches case-insensitively."""
        wanted = heading.strip().lower()
        for child in self.children:
            if child.heading.strip().lower() == wanted:
                return child
        return None

    def walk(self) -> Iterator[Section]:
        """Depth-first, document order, including self."""
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def is_leaf(self) -> bool:
        return not self.children


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = "Untitled"
    metadata: dict[str, str] = {}
    sections: tuple[Section, ...] = ()
    version: str = "1"
    change_history: tuple[ChangelogEntry, ...] = ()

    def find_section(self, heading: str) -> Optional[Section]:
        """Top-level section by heading, case-insensitive."""
        wanted = heading.strip().lower()
        for section in self.sections:
            if section.heading.strip().lower() == wanted:
                return section
        return None

    def iter_sections(self) -> Iterator[Section]:
        for section in self.sections:
            yield from section.walk()


class ParseResult(BaseModel):
    document: Optional[Document] = None
    errors: list[ParseIssue] = []

    @property
    def ok(self) -> bool:
        return self.document is not None and not self.errors


class ValidationResult(BaseModel):
    is_valid: bool = True
    errors: list[ParseIssue] = []
    warnings: list[ParseIssue] = []
    score: int = 100


Section.model_rebuild()
