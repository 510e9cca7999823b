"""
Feedback Integration Agent
Responsibility: Apply the current iteration's `:RESPONSE:` feedback to the
                requirements: priority changes, new requirements and
                clarifications.

A priority the author sets through feedback is treated like a document tag,
so the categorization stages keep it on the next pass.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.llm_parsing import REQUIREMENT_ID_RE
from ideaforge.agents.prompts import FEEDBACK_PROMPT, format_requirements
from ideaforge.models.enums import MoscowCategory, RequirementKind, StageName
from ideaforge.models.schemas import CategoryChange, FeedbackEntry, IntegrationOutcome, Requirement
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_json_call

logger = logging.getLogger(__name__)

FEEDBACK_CONFIDENCE = 10

_MOSCOW_WORD_RE = re.compile(r"\b(MUST|SHOULD|COULD|WONT|WON'T)\b")
_NEW_REQUIREMENT_RE = re.compile(r"^\s*(?:Add|New requirement)\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)


class FeedbackIntegrationAgent(BaseAgent):
    name = StageName.FEEDBACK_INTEGRATION

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        pending = state.pending_feedback()
        if not pending:
            return _no_feedback(state)

        prompt = FEEDBACK_PROMPT.format(
            requirements=format_requirements(state.requirements),
            moscow="\n".join(
                f"{c.value}: {', '.join(r.requirement_id for r in state.moscow.bucket(c)) or '-'}"
                for c in MoscowCategory
            ),
            feedback="\n".join(f"{f.section}: {f.tag}: {f.response}" for f in pending),
        )
        outcome = llm_json_call(prompt, IntegrationOutcome)
        return _integrate(state, outcome, len(pending))

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        pending = state.pending_feedback()
        if not pending:
            return _no_feedback(state)
        return _integrate(state, interpret_feedback(pending, state.requirements), len(pending))


def interpret_feedback(entries: list[FeedbackEntry], requirements: list[Requirement]) -> IntegrationOutcome:
    """Rule-based reading of author feedback."""
    outcome = IntegrationOutcome()
    known = {r.id: r for r in requirements}
    next_ids = _IdAllocator(requirements)

    for entry in entries:
        text = f"{entry.tag}\n{entry.response}"
        targets = [m.group(1).upper() for m in REQUIREMENT_ID_RE.finditer(text) if m.group(1).upper() in known]
        if not targets:
            targets = [r.id for r in requirements if r.title.strip().lower() == entry.section.strip().lower()]
        targets = list(dict.fromkeys(targets))

        category = _MOSCOW_WORD_RE.search(text)
        moscow = MoscowCategory(category.group(1).replace("'", "")) if category else None

        additions = _NEW_REQUIREMENT_RE.findall(entry.response)
        for title in additions:
            outcome.new_requirements.append(Requirement(
                id=next_ids.allocate(RequirementKind.FUNCTIONAL),
                title=title.strip(),
                description=f"Added from feedback on {entry.section}",
                moscow=moscow or MoscowCategory.SHOULD,
                moscow_confidence=FEEDBACK_CONFIDENCE if moscow else 5,
            ))
        if additions:
            continue

        if targets and moscow:
            for req_id in targets:
                outcome.category_changes.append(CategoryChange(
                    requirement_id=req_id, moscow=moscow, reason=entry.response.splitlines()[0],
                ))
        elif targets:
            outcome.requirement_updates.extend(f"{req_id}: {entry.response}" for req_id in targets)
        else:
            outcome.clarifications.append(f"{entry.section}: {entry.response}")
    return outcome


def apply_outcome(requirements: list[Requirement], outcome: IntegrationOutcome) -> list[Requirement]:
    updated = {r.id: r for r in requirements}

    for change in outcome.category_changes:
        req = updated.get(change.requirement_id)
        if req is None:
            logger.warning(f"[FEEDBACK] Category change for unknown requirement {change.requirement_id}")
            continue
        updated[req.id] = req.model_copy(update={
            "moscow": change.moscow,
            "moscow_confidence": FEEDBACK_CONFIDENCE,
        })

    for note in outcome.requirement_updates:
        req_id, _, text = note.partition(":")
        req = updated.get(req_id.strip().upper())
        if req is None or not text.strip():
            continue
        description = f"{req.description}\n\nClarification: {text.strip()}".strip()
        updated[req.id] = req.model_copy(update={"description": description})

    for new in with_final_ids(requirements, outcome).new_requirements:
        updated[new.id] = new

    return list(updated.values())


def with_final_ids(requirements: list[Requirement], outcome: IntegrationOutcome) -> IntegrationOutcome:
    """Copy of *outcome* whose new requirements carry the ids they are stored under.

    A proposed id is kept when it is free; otherwise the next F<n> / T<n> is used.
    """
    ids = _IdAllocator(requirements)
    placed: list[Requirement] = []
    for new in outcome.new_requirements:
        wanted = (new.id or "").strip().upper()
        req_id = wanted if wanted and not ids.taken(wanted) else ids.allocate(new.kind)
        ids.reserve(req_id)
        kind = RequirementKind.TECHNICAL if req_id.startswith("T") else RequirementKind.FUNCTIONAL
        placed.append(new.model_copy(update={"id": req_id, "kind": kind}))
    return outcome.model_copy(update={"new_requirements": placed})


class _IdAllocator:
    """Hands out the next free F<n> / T<n> id."""

    def __init__(self, requirements: list[Requirement]):
        self._used = {r.id.upper() for r in requirements}

    def taken(self, req_id: str) -> bool:
        return req_id.upper() in self._used

    def reserve(self, req_id: str) -> None:
        self._used.add(req_id.upper())

    def allocate(self, kind: RequirementKind) -> str:
        prefix = "T" if kind == RequirementKind.TECHNICAL else "F"
        n = 1
        while f"{prefix}{n}" in self._used:
            n += 1
        req_id = f"{prefix}{n}"
        self._used.add(req_id)
        return req_id


def _integrate(state: ProjectState, outcome: IntegrationOutcome, responses: int) -> dict[str, Any]:
    outcome = with_final_ids(state.requirements, outcome)
    requirements = apply_outcome(state.requirements, outcome)
    logger.info(
        f"[FEEDBACK] Iteration {state.refinement_iteration}: {responses} responses | "
        f"{len(outcome.category_changes)} category changes | "
        f"{len(outcome.new_requirements)} new requirements | "
        f"{len(outcome.requirement_updates)} updates | "
        f"{len(outcome.clarifications)} clarifications"
    )
    return {
        "requirements": requirements,
        "integration": outcome,
        "integrated_iteration": state.refinement_iteration,
        "analysis_notes": [
            f"Feedback integration: {responses} responses applied in iteration {state.refinement_iteration}"
        ],
    }


def _no_feedback(state: ProjectState) -> dict[str, Any]:
    logger.info("[FEEDBACK] No pending feedback")
    return {"integrated_iteration": state.refinement_iteration, "integration": IntegrationOutcome()}
