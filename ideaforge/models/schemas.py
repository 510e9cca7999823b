"""
Reusable data schemas for the records flowing through the pipeline.
Each schema represents a clearly-bounded data object produced by one stage.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .enums import (
    DependencyType,
    KanoCategory,
    MoscowCategory,
    RequirementKind,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Extracted document records ───────────────────────────


class UserStory(BaseModel):
    id: str
    role: str
    action: str
    benefit: str = ""
    source_section: str = ""


class Requirement(BaseModel):
    id: str  # F1, F2 … functional / T1, T2 … technical
    title: str
    description: str = ""
    kind: RequirementKind = RequirementKind.FUNCTIONAL
    moscow: MoscowCategory = MoscowCategory.SHOULD
    moscow_confidence: int = 5  # 10 = tagged in the document
    kano: Optional[KanoCategory] = None
    tags: list[str] = []


class TechnologyChoice(BaseModel):
    category: str
    choice: str
    rationale: str = ""


class BrainstormIdea(BaseModel):
    category: str
    title: str
    description: str = ""


class QuestionAnswer(BaseModel):
    question: str
    answer: str = ""


class ExtractedData(BaseModel):
    """Everything the Data Extractor pulls out of one document."""
    title: str = ""
    version: str = "1"
    project_overview: str = ""
    user_stories: list[UserStory] = []
    requirements: list[Requirement] = []
    technology_choices: list[TechnologyChoice] = []
    brainstorm_ideas: list[BrainstormIdea] = []
    notes: list[str] = []
    questions: list[str] = []
    questions_answers: list[QuestionAnswer] = []
    research_subjects: list[str] = []


# ── Categorization ───────────────────────────────────────


class CategorizedRequirement(BaseModel):
    requirement_id: str
    rationale: str = ""


class MoscowAnalysis(BaseModel):
    must: list[CategorizedRequirement] = []
    should: list[CategorizedRequirement] = []
    could: list[CategorizedRequirement] = []
    wont: list[CategorizedRequirement] = []

    def bucket(self, category: MoscowCategory) -> list[CategorizedRequirement]:
        return getattr(self, category.value.lower())

    def total(self) -> int:
        return len(self.must) + len(self.should) + len(self.could) + len(self.wont)


class KanoAnalysis(BaseModel):
    basic: list[CategorizedRequirement] = []
    performance: list[CategorizedRequirement] = []
    excitement: list[CategorizedRequirement] = []

    def bucket(self, category: KanoCategory) -> list[CategorizedRequirement]:
        return getattr(self, category.value)

    def total(self) -> int:
        return len(self.basic) + len(self.performance) + len(self.excitement)


class Dependency(BaseModel):
    requirement_id: str
    depends_on: str
    type: DependencyType = DependencyType.REQUIRES
    rationale: str = ""


# ── Research ─────────────────────────────────────────────


class ResearchItem(BaseModel):
    """One normalized search hit from an enrichment source."""
    source: str
    id: str
    title: str
    url: str = ""
    score: float = 0.0
    author: str = ""
    comments: int = 0
    created_at: Optional[str] = None
    summary: str = ""


class ResearchSummary(BaseModel):
    topic: str
    timestamp: datetime = Field(default_factory=_utcnow)
    total_results: int = 0
    top_results: list[ResearchItem] = []
    insights: list[str] = []
    recommendations: list[str] = []
    sources_succeeded: list[str] = []
    sources_failed: list[str] = []
    is_fallback: bool = False


# ── Refinement ───────────────────────────────────────────


class FeedbackEntry(BaseModel):
    """A `:RESPONSE:` annotation the author left in the document."""
    response: str
    tag: str = ""
    section: str = ""
    line: int = 0
    iteration: int = 0


class CategoryChange(BaseModel):
    requirement_id: str
    moscow: MoscowCategory
    reason: str = ""


class IntegrationOutcome(BaseModel):
    requirement_updates: list[str] = []
    category_changes: list[CategoryChange] = []
    new_requirements: list[Requirement] = []
    clarifications: list[str] = []


class RefinementRecord(BaseModel):
    """One entry of the pipeline change log."""
    iteration: int
    changes: list[str] = []
    summary: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
