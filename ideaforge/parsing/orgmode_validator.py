"""
Document validator — compares a parsed Document against the IdeaForge
project template.

Missing required (sub)sections are errors. Everything else that deviates
from the template is a warning. The score is

    max(0, 100 - 10 * errors - 2 * warnings)
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from ideaforge.models.document import Document, ParseIssue, Section, ValidationResult
from ideaforge.models.enums import IssueKind, MoscowCategory

logger = logging.getLogger(__name__)

# ── Template ─────────────────────────────────────────────

REQUIRED_SECTIONS = [
    "Project Overview",
    "User Stories",
    "Requirements",
    "Technology Choices",
    "Brainstorming",
]

# canonical name → accepted spellings
OPTIONAL_SECTIONS = {
    "Notes": ["Notes"],
    "Outstanding Questions and Concerns": [
        "Outstanding Questions and Concerns",
        "Oustanding Questions and Concerns",
    ],
    "Additional Research Subjects": ["Additional Research Subjects"],
    "Changelog": ["Changelog"],
}

REQUIRED_SUBSECTIONS = {
    "Requirements": ["Functional Requirements", "Technical Requirements"],
    "Brainstorming": [
        "Core Features",
        "Architecture Considerations",
        "UI/UX Ideas",
        "Potential Integrations",
        "Future Possibilities",
    ],
}

TECHNOLOGY_CATEGORIES = ["Frontend Framework", "Backend/Hosting", "Database", "Authentication"]

METADATA_PLACEHOLDERS = ["[Project Name]", "[Your Name]", "[DATE]"]

MOSCOW_TAGS = {c.value for c in MoscowCategory}

HEADING_PLACEHOLDER_RE = re.compile(r"\[[^\]]+\]")

ERROR_WEIGHT = 10
WARNING_WEIGHT = 2


def compute_score(error_count: int, warning_count: int) -> int:
    return max(0, min(100, 100 - ERROR_WEIGHT * error_count - WARNING_WEIGHT * warning_count))


class OrgModeValidator:
    """Read-only template check. One instance can validate many documents."""

    def validate(self, document: Document) -> ValidationResult:
        errors: list[ParseIssue] = []
        warnings: list[ParseIssue] = []

        self._check_metadata(document, warnings)
        self._check_required_sections(document, errors, warnings)
        self._check_requirements(document, warnings)
        self._check_technology_choices(document, warnings)
        self._check_optional_sections(document, warnings)
        self._check_heading_placeholders(document, warnings)

        score = compute_score(len(errors), len(warnings))
        logger.debug(f"[VALIDATOR] {len(errors)} errors | {len(warnings)} warnings | score {score}")
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            score=score,
        )

    # ── Checks ───────────────────────────────────────────

    def _check_metadata(self, document: Document, warnings: list[ParseIssue]) -> None:
        if not document.metadata.get("title"):
            warnings.append(ParseIssue(
                kind=IssueKind.MISSING_SECTION,
                message="Document is missing #+TITLE",
                line=1,
                suggestion="Add '#+TITLE: Your Project Name' at the top of the file",
            ))
        for key, value in document.metadata.items():
            for placeholder in METADATA_PLACEHOLDERS:
                if placeholder.lower() in value.lower():
                    warnings.append(ParseIssue(
                        kind=IssueKind.PLACEHOLDER,
                        message=f"Metadata '{key}' still contains placeholder {placeholder}",
                        section="metadata",
                    ))

    def _check_required_sections(
        self,
        document: Document,
        errors: list[ParseIssue],
        warnings: list[ParseIssue],
    ) -> None:
        for name in REQUIRED_SECTIONS:
            section = document.find_section(name)
            if section is None:
                errors.append(ParseIssue(
                    kind=IssueKind.MISSING_SECTION,
                    message=f"Missing required section: {name}",
                    section=name,
                    suggestion=f"Add a top-level '* {name}' heading",
                ))
                continue
            self._check_subsections(section, name, errors, warnings)

        present = [
            s.heading.strip().lower()
            for s in document.sections
            if s.heading.strip().lower() in {n.lower() for n in REQUIRED_SECTIONS}
        ]
        expected = [n.lower() for n in REQUIRED_SECTIONS if n.lower() in present]
        if present != expected:
            warnings.append(ParseIssue(
                kind=IssueKind.STYLE,
                message="Top-level sections are not in template order",
                suggestion=" → ".join(REQUIRED_SECTIONS),
            ))

    def _check_subsections(
        self,
        section: Section,
        name: str,
        errors: list[ParseIssue],
        warnings: list[ParseIssue],
    ) -> None:
        required = REQUIRED_SUBSECTIONS.get(name)
        if not required:
            return
        for sub in required:
            if section.find_child(sub) is None:
                errors.append(ParseIssue(
                    kind=IssueKind.MISSING_SECTION,
                    message=f"Missing required subsection: {name} > {sub}",
                    line=section.source_line,
                    section=name,
                ))
        allowed = {s.lower() for s in required}
        for child in section.children:
            if child.heading.strip().lower() in allowed or child.has_tag("RESPONSE", inherited=False):
                continue
            warnings.append(ParseIssue(
                kind=IssueKind.STYLE,
                message=f"Unexpected subsection under {name}: {child.heading}",
                line=child.source_line,
                section=name,
            ))

    def _check_requirements(self, document: Document, warnings: list[ParseIssue]) -> None:
        requirements = document.find_section("Requirements")
        if requirements is None:
            return

        leaves: list[Section] = []
        for group in REQUIRED_SUBSECTIONS["Requirements"]:
            container = requirements.find_child(group)
            if container is not None:
                leaves.extend(requirement_leaves(container))

        if not leaves:
            warnings.append(ParseIssue(
                kind=IssueKind.EMPTY_SECTION,
                message="No requirements defined",
                line=requirements.source_line,
                section="Requirements",
            ))
            return

        for leaf in leaves:
            moscow = [t for t in leaf.effective_tags if t.upper() in MOSCOW_TAGS]
            if len(moscow) != 1:
                warnings.append(ParseIssue(
                    kind=IssueKind.MISSING_TAG,
                    message=(
                        f"Requirement '{leaf.heading}' has {len(moscow)} MoSCoW tags; expected exactly one"
                    ),
                    line=leaf.source_line,
                    section=leaf.heading,
                    suggestion="Tag the heading with one of :MUST: :SHOULD: :COULD: :WONT:",
                ))
            if not leaf.body:
                warnings.append(ParseIssue(
                    kind=IssueKind.EMPTY_SECTION,
                    message=f"Requirement '{leaf.heading}' has no description",
                    line=leaf.source_line,
                    section=leaf.heading,
                ))

    def _check_technology_choices(self, document: Document, warnings: list[ParseIssue]) -> None:
        section = document.find_section("Technology Choices")
        if section is None:
            return
        for category in TECHNOLOGY_CATEGORIES:
            if section.find_child(category) is None:
                warnings.append(ParseIssue(
                    kind=IssueKind.MISSING_SECTION,
                    message=f"Technology category not covered: {category}",
                    line=section.source_line,
                    section="Technology Choices",
                ))

    def _check_optional_sections(self, document: Document, warnings: list[ParseIssue]) -> None:
        for canonical, spellings in OPTIONAL_SECTIONS.items():
            section = _find_any(document, spellings)
            if section is None:
                warnings.append(ParseIssue(
                    kind=IssueKind.MISSING_SECTION,
                    message=f"Optional section missing: {canonical}",
                    section=canonical,
                ))
                continue
            if not section.body and section.is_leaf:
                warnings.append(ParseIssue(
                    kind=IssueKind.EMPTY_SECTION,
                    message=f"Section '{section.heading}' is empty",
                    line=section.source_line,
                    section=section.heading,
                ))
            if canonical == "Changelog" and not section.has_tag("CHANGELOG", inherited=False):
                warnings.append(ParseIssue(
                    kind=IssueKind.MISSING_TAG,
                    message="Changelog section should be tagged :CHANGELOG:",
                    line=section.source_line,
                    section=section.heading,
                ))

    def _check_heading_placeholders(self, document: Document, warnings: list[ParseIssue]) -> None:
        for section in document.iter_sections():
            if HEADING_PLACEHOLDER_RE.search(section.heading):
                warnings.append(ParseIssue(
                    kind=IssueKind.PLACEHOLDER,
                    message=f"Heading contains placeholder text: {section.heading}",
                    line=section.source_line,
                    section=section.heading,
                ))


def requirement_leaves(container: Section) -> list[Section]:
    """Leaf sections below a requirements group, in document order."""
    leaves: list[Section] = []
    for child in _content_children(container):
        if _content_children(child):
            leaves.extend(requirement_leaves(child))
        else:
            leaves.append(child)
    return leaves


def _content_children(section: Section) -> list[Section]:
    return [c for c in section.children if not c.has_tag("RESPONSE", inherited=False)]


def _find_any(document: Document, names: list[str]) -> Optional[Section]:
    for name in names:
        section = document.find_section(name)
        if section is not None:
            return section
    return None


def validate_document(document: Document) -> ValidationResult:
    return OrgModeValidator().validate(document)
