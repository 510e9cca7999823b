"""
Org-mode writer — renders a Document back to org text.

parse(to_org(doc)) reproduces the heading text, level, tags and
properties of every section.
"""

from __future__ import annotations

from ideaforge.models.document import Document, Section


def to_org(document: Document) -> str:
    lines: list[str] = []
    metadata = dict(document.metadata)
    metadata.setdefault("title", document.title)
    # Title first, the rest in insertion order
    lines.append(f"#+TITLE: {metadata.pop('title')}")
    for key, value in metadata.items():
        lines.append(f"#+{key.upper()}: {value}")
    if document.sections:
        lines.append("")
    for section in document.sections:
        _write_section(section, lines)
    return "\n".join(lines).rstrip() + "\n"


def _write_section(section: Section, lines: list[str]) -> None:
    heading = f"{'*' * section.level} {section.heading}"
    if section.tags:
        heading += " :" + ":".join(section.tags) + ":"
    lines.append(heading)
    if section.properties:
        lines.append(":PROPERTIES:")
        for key, value in section.properties.items():
            lines.append(f":{key}: {value}".rstrip())
        lines.append(":END:")
    if section.body:
        lines.append(section.body)
    for child in section.children:
        _write_section(child, lines)
