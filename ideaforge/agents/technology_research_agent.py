"""
Technology Research Agent
Responsibility: Look up every research topic (plus the document's own
                research subjects) through the Resilience Bridge and store
                one summary per topic.

External failures never fail this stage: the bridge hands back a fallback
summary for any topic whose sources were all unavailable.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.config import Settings
from ideaforge.models.enums import StageName
from ideaforge.models.schemas import ResearchItem, ResearchSummary
from ideaforge.models.state import ProjectState
from ideaforge.services.research_bridge import ResearchBridge

logger = logging.getLogger(__name__)

MAX_TOPICS = 10


class TechnologyResearchAgent(BaseAgent):
    name = StageName.TECHNOLOGY_RESEARCH

    def __init__(self, settings: Optional[Settings] = None, bridge: Optional[ResearchBridge] = None):
        super().__init__(settings)
        self.bridge = bridge

    async def _real_process(self, state: ProjectState) -> dict[str, Any]:
        topics = research_queue(state)
        if not topics:
            return {"analysis_notes": ["Technology research: nothing to research"]}
        if self.bridge is None or not self.settings.enrichment_enabled:
            logger.info("[RESEARCH] Enrichment disabled; skipping external research")
            return {"analysis_notes": [f"Technology research: skipped {len(topics)} topics (enrichment disabled)"]}

        summaries = await self.bridge.research_topics(topics, session_id=state.session_id or "default")
        fallbacks = [t for t, s in summaries.items() if s.is_fallback]
        logger.info(f"[RESEARCH] {len(summaries)} topics researched | {len(fallbacks)} fell back")

        return {
            "research_summaries": summaries,
            "source_results": group_by_source(summaries),
            "analysis_notes": [
                f"Technology research: {len(summaries)} topics, "
                f"{len(summaries) - len(fallbacks)} with results, {len(fallbacks)} unavailable"
            ],
        }


def research_queue(state: ProjectState) -> list[str]:
    """Topics to research, generated topics first, duplicates removed."""
    topics = list(dict.fromkeys(
        t.strip() for t in [*state.research_topics, *state.research_subjects] if t.strip()
    ))
    return topics[:MAX_TOPICS]


def group_by_source(summaries: dict[str, ResearchSummary]) -> dict[str, list[ResearchItem]]:
    """Every top result, per source, best score first. Independent of completion order."""
    grouped: dict[str, dict[str, ResearchItem]] = {}
    for topic in sorted(summaries):
        for item in summaries[topic].top_results:
            grouped.setdefault(item.source, {}).setdefault(item.id, item)
    return {
        source: sorted(items.values(), key=lambda i: (-i.score, i.id))
        for source, items in sorted(grouped.items())
    }
