"""
Pipeline graph — the 11-stage IdeaForge analysis pipeline.

    document_parser ─┬─────────────────────────────► requirements_analysis
                     └► response_processing ─┬─────► requirements_analysis
                                             └► feedback_integration
                                                 └► changelog_generation ─► requirements_analysis | END
    requirements_analysis → moscow_categorization → kano_evaluation
      → dependency_analysis → technology_extraction → technology_research
      → research_synthesis ─► feedback_integration | END

All stages are BaseAgent subclasses; the Stage Graph Engine merges their
partial updates and keeps control flow in its cursor.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from langgraph.graph import END

from ideaforge.agents import (
    ChangelogGenerationAgent,
    DependencyAnalysisAgent,
    DocumentParserAgent,
    FeedbackIntegrationAgent,
    KanoEvaluationAgent,
    MoscowCategorizationAgent,
    RequirementsAnalysisAgent,
    ResearchSynthesisAgent,
    ResponseProcessingAgent,
    TechnologyExtractionAgent,
    TechnologyResearchAgent,
)
from ideaforge.config import Settings, get_settings
from ideaforge.models.enums import StageName as S
from ideaforge.models.state import ProjectState
from ideaforge.orchestration.engine import CompiledStageGraph, RunResult, StageGraph
from ideaforge.orchestration.transitions import (
    FINISH,
    route_after_changelog,
    route_after_parse,
    route_after_responses,
    route_after_synthesis,
)
from ideaforge.services.research_bridge import ResearchBridge

logger = logging.getLogger(__name__)


# ── Build the graph ──────────────────────────────────────

def build_graph(
    settings: Optional[Settings] = None,
    bridge: Optional[ResearchBridge] = None,
) -> CompiledStageGraph:
    """
    Construct and compile the pipeline.
    Without a *bridge* the research stage is skipped; the caller owns the
    bridge and closes it.
    """
    settings = settings or get_settings()

    graph = StageGraph(
        ProjectState,
        max_steps=settings.max_stage_steps,
        stage_timeout=settings.stage_timeout_seconds,
    )

    # ── Stages ───────────────────────────────────────────
    agents = [
        DocumentParserAgent(settings),
        RequirementsAnalysisAgent(settings),
        MoscowCategorizationAgent(settings),
        KanoEvaluationAgent(settings),
        DependencyAnalysisAgent(settings),
        TechnologyExtractionAgent(settings),
        TechnologyResearchAgent(settings, bridge=bridge),
        ResearchSynthesisAgent(settings),
        ResponseProcessingAgent(settings),
        FeedbackIntegrationAgent(settings),
        ChangelogGenerationAgent(settings),
    ]
    for agent in agents:
        graph.register(agent.name, agent.process)

    graph.set_entry(S.DOCUMENT_PARSER)

    # ── Edges ────────────────────────────────────────────

    # parser → refinement or analysis
    graph.add_conditional_edge(
        S.DOCUMENT_PARSER,
        route_after_parse,
        [S.RESPONSE_PROCESSING, S.REQUIREMENTS_ANALYSIS],
    )
    graph.add_conditional_edge(
        S.RESPONSE_PROCESSING,
        route_after_responses,
        [S.FEEDBACK_INTEGRATION, S.REQUIREMENTS_ANALYSIS],
    )
    graph.add_edge(S.FEEDBACK_INTEGRATION, S.CHANGELOG_GENERATION)
    graph.add_conditional_edge(
        S.CHANGELOG_GENERATION,
        route_after_changelog,
        {S.REQUIREMENTS_ANALYSIS: S.REQUIREMENTS_ANALYSIS, FINISH: END},
    )

    # analysis chain (linear)
    graph.add_edge(S.REQUIREMENTS_ANALYSIS, S.MOSCOW_CATEGORIZATION)
    graph.add_edge(S.MOSCOW_CATEGORIZATION, S.KANO_EVALUATION)
    graph.add_edge(S.KANO_EVALUATION, S.DEPENDENCY_ANALYSIS)
    graph.add_edge(S.DEPENDENCY_ANALYSIS, S.TECHNOLOGY_EXTRACTION)
    graph.add_edge(S.TECHNOLOGY_EXTRACTION, S.TECHNOLOGY_RESEARCH)
    graph.add_edge(S.TECHNOLOGY_RESEARCH, S.RESEARCH_SYNTHESIS)
    graph.add_conditional_edge(
        S.RESEARCH_SYNTHESIS,
        route_after_synthesis,
        {S.FEEDBACK_INTEGRATION: S.FEEDBACK_INTEGRATION, FINISH: END},
    )

    return graph.compile()


# ── Convenience runner ───────────────────────────────────

async def run_pipeline(
    raw_content: str = "",
    source_path: str = "",
    *,
    settings: Optional[Settings] = None,
    bridge: Optional[ResearchBridge] = None,
    initial_state: Optional[dict[str, Any]] = None,
) -> RunResult:
    """
    Build the graph and run it end-to-end on one document.
    No checkpoints are written; see PipelineRunner for resumable runs.
    """
    settings = settings or get_settings()
    owned = None
    if bridge is None and settings.enrichment_enabled:
        bridge = owned = ResearchBridge.from_settings(settings)
    compiled = build_graph(settings, bridge)

    state = dict(initial_state or {})
    state.setdefault("raw_content", raw_content)
    state.setdefault("source_path", source_path)

    logger.info("═" * 60)
    logger.info("  IDEAFORGE PIPELINE STARTING")
    logger.info("═" * 60)

    try:
        result = await compiled.run(state)
    finally:
        if owned is not None:
            await owned.aclose()

    logger.info("═" * 60)
    logger.info(
        f"  PIPELINE FINISHED — {len(result.visited)} stages | "
        f"halted={result.halted} | errors={len(result.state.errors)}"
    )
    logger.info("═" * 60)
    return result
