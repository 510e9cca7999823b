"""
Data extractor — walks a parsed Document into domain records.

Section lookups are case-insensitive and only look at the expected level
(top-level sections, then their direct children).
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from ideaforge.models.document import Document, Section
from ideaforge.models.enums import MoscowCategory, RequirementKind
from ideaforge.models.schemas import (
    BrainstormIdea,
    ExtractedData,
    QuestionAnswer,
    Requirement,
    TechnologyChoice,
    UserStory,
)
from ideaforge.parsing.orgmode_validator import (
    MOSCOW_TAGS,
    OPTIONAL_SECTIONS,
    requirement_leaves,
)

logger = logging.getLogger(__name__)

USER_STORY_RE = re.compile(
    r"^As\s+an?\s+(.+?),\s*I\s+want\s+(.+?)(?:,?\s+so\s+that\s+(.+?))?\.?$",
    re.IGNORECASE,
)
MOSCOW_PREFIX_RE = re.compile(r"^(MUST|SHOULD|COULD|WONT|WON'T)\s*[:\-]\s*", re.IGNORECASE)
BULLET_RE = re.compile(r"^\s*[-+*]\s+(.*)$")
QUESTION_RE = re.compile(r"^\s*(?:Q|Question)\s*:\s*(.+)$", re.IGNORECASE)
ANSWER_RE = re.compile(r"^\s*(?:A|Answer)\s*:\s*(.+)$", re.IGNORECASE)

TAGGED_CONFIDENCE = 10
PREFIX_CONFIDENCE = 8
DEFAULT_CONFIDENCE = 5
MAX_CHOICE_WORDS = 3
UNDECIDED = "To be determined"


class DataExtractor:
    """Turns a validated Document into an ExtractedData bundle."""

    def extract(self, document: Document) -> ExtractedData:
        data = ExtractedData(
            title=document.title,
            version=document.version,
            project_overview=self._project_overview(document),
            user_stories=self._user_stories(document),
            requirements=self._requirements(document),
            technology_choices=self._technology_choices(document),
            brainstorm_ideas=self._brainstorm_ideas(document),
            notes=self._notes(document),
            questions=self._questions(document),
            questions_answers=self._questions_answers(document),
            research_subjects=self._research_subjects(document),
        )
        logger.info(
            f"[EXTRACTOR] {len(data.requirements)} requirements | "
            f"{len(data.user_stories)} user stories | "
            f"{len(data.brainstorm_ideas)} ideas | "
            f"{len(data.questions_answers)} Q&A pairs"
        )
        return data

    # ── Sections ─────────────────────────────────────────

    def _project_overview(self, document: Document) -> str:
        section = document.find_section("Project Overview")
        if section is None:
            return ""
        parts = [section.body] + [
            f"{child.heading}\n{child.body}".strip() for child in section.children
        ]
        return "\n\n".join(p for p in parts if p)

    def _user_stories(self, document: Document) -> list[UserStory]:
        section = document.find_section("User Stories")
        if section is None:
            return []

        stories: list[UserStory] = []

        def _add(text: str, source: str) -> bool:
            match = USER_STORY_RE.match(" ".join(text.split()))
            if not match:
                return False
            stories.append(UserStory(
                id=f"US{len(stories) + 1}",
                role=match.group(1).strip(),
                action=match.group(2).strip(),
                benefit=(match.group(3) or "").strip(),
                source_section=source,
            ))
            return True

        for bullet in extract_bullets(section.body):
            _add(bullet, section.heading)
        for child in section.children:
            if not _add(child.heading, child.heading):
                _add(child.body, child.heading)
        return stories

    def _requirements(self, document: Document) -> list[Requirement]:
        section = document.find_section("Requirements")
        if section is None:
            return []

        requirements: list[Requirement] = []
        groups = [
            ("Functional Requirements", RequirementKind.FUNCTIONAL, "F"),
            ("Technical Requirements", RequirementKind.TECHNICAL, "T"),
        ]
        for heading, kind, prefix in groups:
            container = section.find_child(heading)
            if container is None:
                continue
            for index, leaf in enumerate(requirement_leaves(container), start=1):
                requirements.append(_to_requirement(leaf, kind, f"{prefix}{index}"))
        return requirements

    def _technology_choices(self, document: Document) -> list[TechnologyChoice]:
        section = document.find_section("Technology Choices")
        if section is None:
            return []

        choices: list[TechnologyChoice] = []
        for child in section.children:
            lines = [ln.strip() for ln in child.body.split("\n") if ln.strip()]
            first = _strip_bullet(lines[0]) if lines else ""
            if first and len(first.split()) <= MAX_CHOICE_WORDS:
                choice, rationale = first, "\n".join(lines[1:])
            else:
                choice, rationale = UNDECIDED, "\n".join(lines)
            choices.append(TechnologyChoice(category=child.heading, choice=choice, rationale=rationale))
        return choices

    def _brainstorm_ideas(self, document: Document) -> list[BrainstormIdea]:
        section = document.find_section("Brainstorming")
        if section is None:
            return []

        ideas: list[BrainstormIdea] = []
        for category in section.children:
            for bullet in extract_bullets(category.body):
                ideas.append(BrainstormIdea(category=category.heading, title=bullet))
            for idea in category.children:
                ideas.append(BrainstormIdea(
                    category=category.heading,
                    title=idea.heading,
                    description=idea.body,
                ))
        return ideas

    def _notes(self, document: Document) -> list[str]:
        section = document.find_section("Notes")
        if section is None:
            return []
        notes = _paragraphs(section.body)
        for child in section.children:
            notes.extend(_paragraphs(f"{child.heading}\n{child.body}"))
        return notes

    def _questions(self, document: Document) -> list[str]:
        section = _find_first(document, OPTIONAL_SECTIONS["Outstanding Questions and Concerns"])
        if section is None:
            return []
        raw = list(extract_bullets(section.body)) + [child.heading for child in section.children]
        return [q if q.endswith("?") else f"{q}?" for q in (r.strip() for r in raw) if q]

    def _questions_answers(self, document: Document) -> list[QuestionAnswer]:
        pairs: list[QuestionAnswer] = []
        for section in document.iter_sections():
            pairs.extend(extract_qa_pairs(section.body))
        return pairs

    def _research_subjects(self, document: Document) -> list[str]:
        section = document.find_section("Additional Research Subjects")
        if section is None:
            return []
        subjects = list(extract_bullets(section.body)) + [c.heading for c in section.children]
        return list(dict.fromkeys(s.strip() for s in subjects if s.strip()))


def extract_data(document: Document) -> ExtractedData:
    return DataExtractor().extract(document)


# ── Text helpers ─────────────────────────────────────────

def extract_bullets(text: str) -> list[str]:
    """`- item` / `+ item` / `* item` lines; deeper-indented lines continue the item."""
    bullets: list[str] = []
    indent: Optional[int] = None
    for line in text.split("\n"):
        match = BULLET_RE.match(line)
        if match:
            bullets.append(match.group(1).strip())
            indent = len(line) - len(line.lstrip())
            continue
        stripped = line.strip()
        if not stripped:
            indent = None
            continue
        if bullets and indent is not None and len(line) - len(stripped) > indent:
            bullets[-1] = f"{bullets[-1]} {stripped}"
        else:
            indent = None
    return [b for b in bullets if b]


def extract_qa_pairs(text: str) -> list[QuestionAnswer]:
    pairs: list[QuestionAnswer] = []
    for line in text.split("\n"):
        question = QUESTION_RE.match(line)
        if question:
            pairs.append(QuestionAnswer(question=question.group(1).strip()))
            continue
        answer = ANSWER_RE.match(line)
        if answer and pairs and not pairs[-1].answer:
            pairs[-1] = QuestionAnswer(question=pairs[-1].question, answer=answer.group(1).strip())
    return pairs


def _to_requirement(leaf: Section, kind: RequirementKind, req_id: str) -> Requirement:
    title = leaf.heading
    moscow, confidence = MoscowCategory.SHOULD, DEFAULT_CONFIDENCE

    prefix = MOSCOW_PREFIX_RE.match(title)
    if prefix:
        title = title[prefix.end():].strip()
        moscow = MoscowCategory(prefix.group(1).upper().replace("'", ""))
        confidence = PREFIX_CONFIDENCE

    tagged = [t.upper() for t in leaf.effective_tags if t.upper() in MOSCOW_TAGS]
    if tagged:
        moscow, confidence = MoscowCategory(tagged[0]), TAGGED_CONFIDENCE

    return Requirement(
        id=req_id,
        title=title,
        description=leaf.body,
        kind=kind,
        moscow=moscow,
        moscow_confidence=confidence,
        tags=[t for t in leaf.tags if t.upper() not in MOSCOW_TAGS],
    )


def _paragraphs(text: str) -> list[str]:
    return [" ".join(p.split()) for p in re.split(r"\n\s*\n", text) if p.strip()]


def _strip_bullet(line: str) -> str:
    match = BULLET_RE.match(line)
    return match.group(1).strip() if match else line


def _find_first(document: Document, names: Iterable[str]) -> Optional[Section]:
    for name in names:
        section = document.find_section(name)
        if section is not None:
            return section
    return None
