"""
Dependency Analysis Agent
Responsibility: Find typed dependencies (REQUIRES / ENHANCES / CONFLICTS)
                between requirements.

Mock mode relies on explicit references: a requirement whose text names
another requirement's id requires it, and every functional requirement that
mentions authentication or storage requires the technical requirement that
provides it.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.llm_parsing import REQUIREMENT_ID_RE, parse_dependencies
from ideaforge.agents.prompts import DEPENDENCY_PROMPT, format_requirements
from ideaforge.models.enums import DependencyType, RequirementKind, StageName
from ideaforge.models.schemas import Dependency, Requirement
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

_CONFLICT_RE = re.compile(r"\b(conflicts? with|incompatible with)\s+([FT]\d+)\b", re.IGNORECASE)
_ENHANCE_RE = re.compile(r"\b(extends|enhances|builds on)\s+([FT]\d+)\b", re.IGNORECASE)

# shared capabilities a technical requirement can provide to functional ones
_CAPABILITIES = ("auth", "database", "storage", "api")


class DependencyAnalysisAgent(BaseAgent):
    name = StageName.DEPENDENCY_ANALYSIS

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        if len(state.requirements) < 2:
            return {"dependencies": []}

        prompt = DEPENDENCY_PROMPT.format(
            title=state.extracted.title or "Untitled",
            requirements=format_requirements(state.requirements),
        )
        response = llm_text_call(prompt, max_retries=1)
        dependencies = parse_dependencies(response, [r.id for r in state.requirements])
        logger.info(f"[DEPENDENCY] LLM found {len(dependencies)} dependencies")
        return {"dependencies": dependencies}

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        dependencies = find_explicit_dependencies(state.requirements)
        logger.info(f"[DEPENDENCY] {len(dependencies)} dependencies from explicit references")
        return {"dependencies": dependencies}


def find_explicit_dependencies(requirements: list[Requirement]) -> list[Dependency]:
    known = {r.id for r in requirements}
    found: dict[tuple[str, str], Dependency] = {}

    def add(source: str, target: str, dep_type: DependencyType, rationale: str) -> None:
        if source == target or target not in known or (source, target) in found:
            return
        found[(source, target)] = Dependency(
            requirement_id=source, depends_on=target, type=dep_type, rationale=rationale,
        )

    for req in requirements:
        text = f"{req.title} {req.description}"
        for match in _CONFLICT_RE.finditer(text):
            add(req.id, match.group(2).upper(), DependencyType.CONFLICTS, "stated conflict")
        for match in _ENHANCE_RE.finditer(text):
            add(req.id, match.group(2).upper(), DependencyType.ENHANCES, "stated extension")
        for match in REQUIREMENT_ID_RE.finditer(text):
            add(req.id, match.group(1).upper(), DependencyType.REQUIRES, "referenced by id")

    technical = [r for r in requirements if r.kind == RequirementKind.TECHNICAL]
    for req in requirements:
        if req.kind != RequirementKind.FUNCTIONAL:
            continue
        text = f"{req.title} {req.description}".lower()
        for capability in _CAPABILITIES:
            if capability not in text:
                continue
            for provider in technical:
                if capability in provider.title.lower():
                    add(req.id, provider.id, DependencyType.REQUIRES, f"needs {capability} support")

    return sorted(found.values(), key=lambda d: (d.requirement_id, d.depends_on))
