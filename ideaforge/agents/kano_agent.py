"""
Kano Evaluation Agent
Responsibility: Classify each requirement as a basic, performance or
                excitement feature. Requirements the LLM does not mention
                default to performance.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.llm_parsing import parse_categorized_ids
from ideaforge.agents.prompts import KANO_PROMPT, format_requirements
from ideaforge.models.enums import KanoCategory, MoscowCategory, StageName
from ideaforge.models.schemas import CategorizedRequirement, KanoAnalysis, Requirement
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

_CATEGORY_PREFIXES = {
    "BASIC": KanoCategory.BASIC.value,
    "PERFORMANCE": KanoCategory.PERFORMANCE.value,
    "EXCITEMENT": KanoCategory.EXCITEMENT.value,
}

_MOSCOW_TO_KANO = {
    MoscowCategory.MUST: KanoCategory.BASIC,
    MoscowCategory.SHOULD: KanoCategory.PERFORMANCE,
    MoscowCategory.COULD: KanoCategory.EXCITEMENT,
    MoscowCategory.WONT: KanoCategory.EXCITEMENT,
}


class KanoEvaluationAgent(BaseAgent):
    name = StageName.KANO_EVALUATION

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"kano": KanoAnalysis()}

        moscow = state.moscow
        prompt = KANO_PROMPT.format(
            title=state.extracted.title or "Untitled",
            moscow="\n".join(
                f"{c.value}: {', '.join(r.requirement_id for r in moscow.bucket(c)) or '-'}"
                for c in MoscowCategory
            ),
            requirements=format_requirements(state.requirements),
            user_stories="\n".join(
                f"- As a {s.role}, I want {s.action}" for s in state.user_stories[:5]
            ) or "(none)",
        )
        response = llm_text_call(prompt, max_retries=1)
        assigned = parse_categorized_ids(response, _CATEGORY_PREFIXES, [r.id for r in state.requirements])
        logger.info(f"[KANO] LLM evaluated {len(assigned)}/{len(state.requirements)} requirements")

        decisions = []
        for req in state.requirements:
            if req.id in assigned:
                category, reason = assigned[req.id]
                decisions.append((req, KanoCategory(category), reason or "evaluated by Kano model"))
            else:
                decisions.append((req, KanoCategory.PERFORMANCE, "default categorization"))
        return _result(decisions)

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"kano": KanoAnalysis()}
        decisions = [
            (req, _MOSCOW_TO_KANO[req.moscow], f"derived from {req.moscow.value} priority")
            for req in state.requirements
        ]
        return _result(decisions)


def _result(decisions: list[tuple[Requirement, KanoCategory, str]]) -> dict[str, Any]:
    analysis = KanoAnalysis()
    requirements = []
    for req, category, rationale in decisions:
        analysis.bucket(category).append(
            CategorizedRequirement(requirement_id=req.id, rationale=rationale)
        )
        requirements.append(req.model_copy(update={"kano": category}))
    logger.info(
        f"[KANO] basic={len(analysis.basic)} performance={len(analysis.performance)} "
        f"excitement={len(analysis.excitement)}"
    )
    return {"kano": analysis, "requirements": requirements}
