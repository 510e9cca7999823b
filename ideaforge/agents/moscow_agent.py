"""
MoSCoW Categorization Agent
Responsibility: Place every requirement in exactly one of MUST / SHOULD /
                COULD / WONT.

A priority the document states explicitly (a MoSCoW tag or a `MUST:` style
heading prefix) always wins. Only requirements that fell back to the default
priority are sent to the LLM.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.llm_parsing import parse_categorized_ids
from ideaforge.agents.prompts import MOSCOW_PROMPT, format_requirements
from ideaforge.models.enums import MoscowCategory, StageName
from ideaforge.models.schemas import CategorizedRequirement, MoscowAnalysis, Requirement
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

LLM_CONFIDENCE = 7
EXPLICIT_CONFIDENCE = 8

_CATEGORY_PREFIXES = {
    "MUST": MoscowCategory.MUST.value,
    "SHOULD": MoscowCategory.SHOULD.value,
    "COULD": MoscowCategory.COULD.value,
    "WONT": MoscowCategory.WONT.value,
    "WON'T": MoscowCategory.WONT.value,
}


class MoscowCategorizationAgent(BaseAgent):
    name = StageName.MOSCOW_CATEGORIZATION

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"moscow": MoscowAnalysis()}

        undecided = [r for r in state.requirements if not is_explicit(r)]
        assigned: dict[str, tuple[str, str]] = {}
        if undecided:
            prompt = MOSCOW_PROMPT.format(
                title=state.extracted.title or "Untitled",
                analysis="\n".join(state.analysis_notes[-10:]),
                requirements=format_requirements(undecided),
            )
            response = llm_text_call(prompt, max_retries=1)
            assigned = parse_categorized_ids(response, _CATEGORY_PREFIXES, [r.id for r in undecided])
            logger.info(f"[MOSCOW] LLM categorized {len(assigned)}/{len(undecided)} undecided requirements")

        requirements = []
        for req in state.requirements:
            if req.id in assigned:
                category, reason = assigned[req.id]
                req = req.model_copy(update={
                    "moscow": MoscowCategory(category),
                    "moscow_confidence": LLM_CONFIDENCE,
                })
                requirements.append((req, reason or "categorized by LLM"))
            else:
                requirements.append((req, _default_rationale(req)))

        return _result(requirements)

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"moscow": MoscowAnalysis()}
        return _result([(r, _default_rationale(r)) for r in state.requirements])


def is_explicit(req: Requirement) -> bool:
    """True when the priority came from the document or the author's feedback."""
    return req.moscow_confidence >= EXPLICIT_CONFIDENCE


def _default_rationale(req: Requirement) -> str:
    if req.moscow_confidence >= 10:
        return "tagged in document"
    if is_explicit(req):
        return "priority stated in heading"
    if req.moscow_confidence == LLM_CONFIDENCE:
        return "categorized by LLM"
    return "default priority"


def _result(pairs: list[tuple[Requirement, str]]) -> dict[str, Any]:
    analysis = MoscowAnalysis()
    for req, rationale in pairs:
        analysis.bucket(req.moscow).append(
            CategorizedRequirement(requirement_id=req.id, rationale=rationale)
        )
    logger.info(
        f"[MOSCOW] must={len(analysis.must)} should={len(analysis.should)} "
        f"could={len(analysis.could)} wont={len(analysis.wont)}"
    )
    return {
        "moscow": analysis,
        "requirements": [req for req, _ in pairs],
    }
