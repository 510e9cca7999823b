"""
Changelog Generation Agent
Responsibility: Record what the last feedback integration changed as one
                entry of the append-only change log.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.models.enums import StageName
from ideaforge.models.schemas import IntegrationOutcome, RefinementRecord
from ideaforge.models.state import ProjectState

logger = logging.getLogger(__name__)


class ChangelogGenerationAgent(BaseAgent):
    name = StageName.CHANGELOG_GENERATION

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        iteration = state.refinement_iteration
        if any(r.iteration == iteration for r in state.change_log):
            logger.info(f"[CHANGELOG] Iteration {iteration} already recorded")
            return {}

        outcome = state.integration or IntegrationOutcome()
        responses = sum(1 for f in state.feedback if f.iteration == iteration)
        record = RefinementRecord(
            iteration=iteration,
            changes=describe_changes(outcome),
            summary=(
                f"Iteration {iteration}: {responses} responses integrated, "
                f"{len(outcome.category_changes)} priority changes, "
                f"{len(outcome.new_requirements)} new requirements, "
                f"{len(outcome.clarifications)} clarifications"
            ),
        )
        logger.info(f"[CHANGELOG] {record.summary}")
        return {"change_log": [record]}


def describe_changes(outcome: IntegrationOutcome) -> list[str]:
    changes = [
        f"{c.requirement_id} moved to {c.moscow.value}" + (f": {c.reason}" if c.reason else "")
        for c in outcome.category_changes
    ]
    changes += [f"Added {r.id}: {r.title}" for r in outcome.new_requirements]
    changes += [f"Updated {u}" for u in outcome.requirement_updates]
    changes += [f"Clarified {c}" for c in outcome.clarifications]
    return changes
