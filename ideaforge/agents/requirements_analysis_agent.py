"""
Requirements Analysis Agent
Responsibility: Summarize the project's goals, success factors and risks
                from its requirements and user stories.

Findings are appended to `analysis_notes`; the categorization stages read
them as context.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.prompts import REQUIREMENTS_ANALYSIS_PROMPT, format_requirements
from ideaforge.models.enums import MoscowCategory, RequirementKind, StageName
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

_FINDING_PREFIXES = ("GOAL:", "SUCCESS:", "RISK:")

# keywords that mark a requirement as delivery-risky in mock mode
_RISK_KEYWORDS = {
    "real-time": "Real-time behaviour needs careful infrastructure planning",
    "offline": "Offline support adds synchronization complexity",
    "payment": "Payment handling brings compliance obligations",
    "auth": "Authentication must be designed before dependent features",
    "scale": "Scalability targets need load testing early",
    "integration": "Third-party integrations add external failure points",
}


class RequirementsAnalysisAgent(BaseAgent):
    name = StageName.REQUIREMENTS_ANALYSIS

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"analysis_notes": ["Requirements analysis: no requirements to analyze"]}

        prompt = REQUIREMENTS_ANALYSIS_PROMPT.format(
            title=state.extracted.title or "Untitled",
            overview=state.extracted.project_overview or "(none)",
            requirements=format_requirements(state.requirements),
            user_stories="\n".join(
                f"- As a {s.role}, I want {s.action}" for s in state.user_stories
            ) or "(none)",
        )
        response = llm_text_call(prompt, max_retries=1)
        findings = [
            line.strip().lstrip("-* ").strip()
            for line in response.splitlines()
            if line.strip().lstrip("-* ").upper().startswith(_FINDING_PREFIXES)
        ]
        logger.info(f"[ANALYSIS] {len(findings)} findings from LLM")
        return {"analysis_notes": [_header(state), *findings]}

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.requirements:
            return {"analysis_notes": ["Requirements analysis: no requirements to analyze"]}

        notes = [_header(state)]
        for req in state.requirements:
            if req.moscow == MoscowCategory.MUST:
                notes.append(f"GOAL: deliver {req.id} {req.title}")

        text = " ".join(f"{r.title} {r.description}".lower() for r in state.requirements)
        for keyword, risk in _RISK_KEYWORDS.items():
            if keyword in text:
                notes.append(f"RISK: {risk}")

        if state.user_stories:
            roles = sorted({s.role for s in state.user_stories})
            notes.append(f"SUCCESS: satisfy {len(state.user_stories)} user stories for {', '.join(roles)}")

        logger.info(f"[ANALYSIS] {len(notes) - 1} heuristic findings")
        return {"analysis_notes": notes}


def _header(state: ProjectState) -> str:
    functional = sum(1 for r in state.requirements if r.kind == RequirementKind.FUNCTIONAL)
    technical = len(state.requirements) - functional
    return (
        f"Requirements analysis: {len(state.requirements)} requirements "
        f"({functional} functional, {technical} technical), "
        f"{len(state.user_stories)} user stories"
    )

