"""
Routing functions for the pipeline's conditional edges.

Each function receives the merged ProjectState after its stage finished and
returns the label of the next stage, or FINISH to end the run.
"""

from __future__ import annotations

from ideaforge.agents.response_processing_agent import RESPONSE_MARKER
from ideaforge.models.enums import StageName
from ideaforge.models.state import ProjectState

FINISH = "finish"


# ── After document parsing ───────────────────────────────

def route_after_parse(state: ProjectState) -> str:
    """
    Document carries :RESPONSE: annotations → refinement first.
    Otherwise → straight into analysis.
    """
    if RESPONSE_MARKER in state.raw_content:
        return StageName.RESPONSE_PROCESSING.value
    return StageName.REQUIREMENTS_ANALYSIS.value


# ── After response processing ────────────────────────────

def route_after_responses(state: ProjectState) -> str:
    """New feedback → integrate it. Nothing new → analyze as usual."""
    if state.pending_feedback():
        return StageName.FEEDBACK_INTEGRATION.value
    return StageName.REQUIREMENTS_ANALYSIS.value


# ── After changelog generation ───────────────────────────

def route_after_changelog(state: ProjectState) -> str:
    """Re-run the analysis on the refined requirements, if there are any."""
    if state.requirements:
        return StageName.REQUIREMENTS_ANALYSIS.value
    return FINISH


# ── After research synthesis ─────────────────────────────

def route_after_synthesis(state: ProjectState) -> str:
    """Feedback of the current iteration still unintegrated → loop back."""
    if state.pending_feedback():
        return StageName.FEEDBACK_INTEGRATION.value
    return FINISH
