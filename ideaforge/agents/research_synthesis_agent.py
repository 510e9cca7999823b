"""
Research Synthesis Agent
Responsibility: Condense the per-topic research summaries into one report
                the author can act on.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.prompts import SYNTHESIS_PROMPT
from ideaforge.models.enums import StageName
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

NO_RESEARCH = "No research findings to synthesize."


class ResearchSynthesisAgent(BaseAgent):
    name = StageName.RESEARCH_SYNTHESIS

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.research_summaries and not state.technologies:
            return {"synthesis": NO_RESEARCH}

        prompt = SYNTHESIS_PROMPT.format(
            title=state.extracted.title or "Untitled",
            technologies=", ".join(state.technologies) or "(none)",
            must_haves="\n".join(
                f"- {c.requirement_id}" for c in state.moscow.must[:5]
            ) or "(none)",
            findings=_findings(state),
        )
        synthesis = llm_text_call(prompt, max_retries=1).strip()
        logger.info(f"[SYNTHESIS] {len(synthesis)} chars from LLM")
        return {"synthesis": synthesis or build_report(state)}

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        if not state.research_summaries and not state.technologies:
            return {"synthesis": NO_RESEARCH}
        report = build_report(state)
        logger.info(f"[SYNTHESIS] {len(state.research_summaries)} topics condensed")
        return {"synthesis": report}


def build_report(state: ProjectState) -> str:
    """Deterministic markdown report built from the summaries alone."""
    lines = [f"# Research synthesis: {state.extracted.title or 'Untitled'}", ""]
    if state.technologies:
        lines += [f"Technologies: {', '.join(state.technologies)}", ""]

    insights: list[str] = []
    recommendations: list[str] = []
    unavailable: list[str] = []
    for topic, summary in state.research_summaries.items():
        if summary.is_fallback:
            unavailable.append(topic)
            continue
        insights.extend(f"{topic}: {i}" for i in summary.insights)
        recommendations.extend(r for r in summary.recommendations if r not in recommendations)

    lines.append("## Key Insights")
    lines += [f"- {i}" for i in insights] or ["- No external insights available"]
    lines += ["", "## Recommendations"]
    lines += [f"- {r}" for r in recommendations] or ["- Validate technology choices with a small prototype"]
    if unavailable:
        lines += ["", "## Unavailable research"]
        lines += [f"- {t}" for t in unavailable]
    total = sum(s.total_results for s in state.research_summaries.values())
    lines += ["", f"Analyzed {total} research items across {len(state.source_results)} sources."]
    return "\n".join(lines)


def _findings(state: ProjectState) -> str:
    parts = []
    for topic, summary in state.research_summaries.items():
        parts.append(f"## {topic}")
        if summary.is_fallback:
            parts.append("(research unavailable)")
            continue
        parts += [f"- {item.title} ({item.source}, score {item.score:.1f})" for item in summary.top_results[:5]]
        parts += [f"- insight: {i}" for i in summary.insights]
    return "\n".join(parts) or "(none)"
