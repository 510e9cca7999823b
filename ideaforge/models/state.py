"""
Pipeline state — the single object that flows through every stage.

Design rules:
  1. Each field is "owned" by one stage (see comments).
  2. Stages may READ any field but only WRITE their owned fields, by
     returning a partial update dict.
  3. Every field declares how updates merge (Replace unless annotated).
     errors / change_log / feedback / analysis_notes only ever grow.
  4. Control flow (current / next stage) is not part of this model; the
     engine keeps it in its own cursor.
"""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, Field

from ideaforge.orchestration.channels import AppendList, AppendSet
from .document import Document, ValidationResult
from .schemas import (
    BrainstormIdea,
    Dependency,
    ExtractedData,
    FeedbackEntry,
    IntegrationOutcome,
    KanoAnalysis,
    MoscowAnalysis,
    QuestionAnswer,
    RefinementRecord,
    Requirement,
    ResearchItem,
    ResearchSummary,
    UserStory,
)


class ProjectState(BaseModel):
    """The shared state passed through every stage of the analysis graph."""

    # ── Input ────────────────────────────────────────────
    source_path: str = ""
    raw_content: str = ""
    session_id: str = ""

    # ── Document parser (owner: document_parser) ─────────
    document: Optional[Document] = None
    validation: Optional[ValidationResult] = None
    extracted: ExtractedData = Field(default_factory=ExtractedData)
    requirements: list[Requirement] = []
    user_stories: list[UserStory] = []
    brainstorm_ideas: list[BrainstormIdea] = []
    questions_answers: list[QuestionAnswer] = []
    research_subjects: list[str] = []

    # ── Analysis (owners: analysis stages) ───────────────
    analysis_notes: Annotated[list[str], AppendList] = []
    moscow: MoscowAnalysis = Field(default_factory=MoscowAnalysis)
    kano: KanoAnalysis = Field(default_factory=KanoAnalysis)
    dependencies: list[Dependency] = []

    # ── Research (owners: technology_* / research_*) ─────
    technologies: Annotated[list[str], AppendSet] = []
    research_topics: Annotated[list[str], AppendSet] = []
    research_summaries: dict[str, ResearchSummary] = {}
    source_results: dict[str, list[ResearchItem]] = {}
    synthesis: str = ""

    # ── Refinement (owners: response / feedback / changelog) ──
    feedback: Annotated[list[FeedbackEntry], AppendList] = []
    refinement_iteration: int = 0
    integrated_iteration: int = 0
    integration: Optional[IntegrationOutcome] = None
    change_log: Annotated[list[RefinementRecord], AppendList] = []

    # ── Errors (append-only) ─────────────────────────────
    errors: Annotated[list[str], AppendList] = []

    def requirement(self, requirement_id: str) -> Optional[Requirement]:
        for req in self.requirements:
            if req.id == requirement_id:
                return req
        return None

    def pending_feedback(self) -> list[FeedbackEntry]:
        """Feedback collected for the current iteration but not yet integrated."""
        if self.integrated_iteration >= self.refinement_iteration:
            return []
        return [f for f in self.feedback if f.iteration == self.refinement_iteration]
