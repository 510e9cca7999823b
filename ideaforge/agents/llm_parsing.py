"""
Helpers that turn line-oriented LLM answers into structured records.

    MUST: F1 (core flow), T2
    SHOULD: F2

Each requirement id is assigned to the first category line that mentions it.
Ids not present in *known_ids* are ignored.
"""

from __future__ import annotations

import re
from typing import Iterable

from ideaforge.models.enums import DependencyType
from ideaforge.models.schemas import Dependency

REQUIREMENT_ID_RE = re.compile(r"\b([FT]\d+)\b", re.IGNORECASE)
DEPENDENCY_RE = re.compile(
    r"DEP:\s*([FT]\d+)\s*->\s*([FT]\d+)\s*\[(\w+)\]\s*(.*)", re.IGNORECASE
)

# extra relationship words an LLM tends to use
_DEPENDENCY_ALIASES = {
    "REQUIRES": DependencyType.REQUIRES,
    "BLOCKS": DependencyType.REQUIRES,
    "ENHANCES": DependencyType.ENHANCES,
    "EXTENDS": DependencyType.ENHANCES,
    "RELATED": DependencyType.ENHANCES,
    "CONFLICTS": DependencyType.CONFLICTS,
}


def parse_categorized_ids(
    text: str,
    categories: dict[str, str],
    known_ids: Iterable[str],
) -> dict[str, tuple[str, str]]:
    """
    Map requirement id → (category, rationale).

    *categories* maps accepted line prefixes (upper-case, without the colon)
    to the category value they stand for, e.g. {"WON'T": "WONT"}.
    """
    remaining = {i.upper() for i in known_ids}
    prefixes = sorted(categories, key=len, reverse=True)
    result: dict[str, tuple[str, str]] = {}
    current: str | None = None

    for raw in text.splitlines():
        line = raw.strip().lstrip("-* ").strip()
        upper = line.upper()
        for prefix in prefixes:
            if upper.startswith(prefix + ":") or upper.startswith(prefix + " HAVE:"):
                current = categories[prefix]
                line = line.split(":", 1)[1]
                break
        if current is None:
            continue
        for match in REQUIREMENT_ID_RE.finditer(line):
            req_id = match.group(1).upper()
            if req_id not in remaining:
                continue
            remaining.discard(req_id)
            rationale = re.search(rf"{re.escape(match.group(1))}\s*\(([^)]+)\)", line)
            result[req_id] = (current, rationale.group(1).strip() if rationale else "")
    return result


def parse_dependencies(text: str, known_ids: Iterable[str]) -> list[Dependency]:
    valid = {i.upper() for i in known_ids}
    seen: set[tuple[str, str, DependencyType]] = set()
    dependencies: list[Dependency] = []

    for line in text.splitlines():
        match = DEPENDENCY_RE.search(line)
        if not match:
            continue
        source, target, kind, reason = match.groups()
        source, target = source.upper(), target.upper()
        dep_type = _DEPENDENCY_ALIASES.get(kind.upper())
        if dep_type is None or source == target:
            continue
        if source not in valid or target not in valid:
            continue
        key = (source, target, dep_type)
        if key in seen:
            continue
        seen.add(key)
        dependencies.append(Dependency(
            requirement_id=source,
            depends_on=target,
            type=dep_type,
            rationale=reason.strip(),
        ))
    return dependencies
