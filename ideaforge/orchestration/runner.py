"""
Pipeline Runner — resumable, checkpointed pipeline runs.

    runner = PipelineRunner()
    result = runner.analyze_sync(text, identity="ideas/todo-app.org")

Each document identity maps to a stable session. A checkpoint is written
after every stage; if the last checkpoint of a session belongs to an
unfinished run over the same text, the next analyze() resumes at the stage
that was about to run. Otherwise a fresh run starts, carrying over the
session's refinement history (feedback, iteration counters, change log).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from ideaforge.config import Settings, get_settings
from ideaforge.models.state import ProjectState
from ideaforge.orchestration.engine import RunCursor, RunResult
from ideaforge.orchestration.graph import build_graph
from ideaforge.persistence.checkpoint_store import Checkpoint, store_from_settings
from ideaforge.persistence.session_manager import SessionManager
from ideaforge.services.research_bridge import ResearchBridge

logger = logging.getLogger(__name__)

# fields a new run inherits from the session's previous run
HISTORY_FIELDS = ("feedback", "refinement_iteration", "integrated_iteration", "change_log")


class PipelineRunner:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        sessions: Optional[SessionManager] = None,
        bridge: Optional[ResearchBridge] = None,
    ):
        self.settings = settings or get_settings()
        self.sessions = sessions or SessionManager(store_from_settings(self.settings))
        self.bridge = bridge

    async def analyze(
        self,
        raw_content: str,
        identity: str,
        force_new: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult:
        session = self.sessions.get_or_create(identity, force_new=force_new)
        previous = self.sessions.load(session.id)

        start_at: Optional[str] = None
        if _resumable(previous, raw_content):
            state = ProjectState.model_validate(previous.state)
            start_at = previous.cursor["next_stage"]
            logger.info(f"[RUNNER] Resuming session {session.id} at {start_at} (checkpoint v{previous.version})")
        else:
            state = self._initial_state(raw_content, identity, session.id, previous)

        def on_stage_end(stage: str, current: ProjectState, cursor: RunCursor) -> None:
            version = self.sessions.save(session.id, current, cursor.snapshot())
            logger.debug(f"[RUNNER] Checkpoint v{version} after {stage}")

        logger.info("═" * 60)
        logger.info(f"  ANALYSIS STARTING — {identity} (session {session.id})")
        logger.info("═" * 60)

        bridge, owned = self.bridge, None
        if bridge is None and self.settings.enrichment_enabled:
            bridge = owned = ResearchBridge.from_settings(self.settings)
        try:
            result = await build_graph(self.settings, bridge).run(
                state,
                start_at=start_at,
                cancel_event=cancel_event,
                on_stage_end=on_stage_end,
            )
        finally:
            if owned is not None:
                await owned.aclose()

        logger.info("═" * 60)
        logger.info(
            f"  ANALYSIS FINISHED — {len(result.visited)} stages | "
            f"halted={result.halted} | errors={len(result.state.errors)}"
        )
        logger.info("═" * 60)
        return result

    def analyze_sync(self, raw_content: str, identity: str, force_new: bool = False) -> RunResult:
        return asyncio.run(self.analyze(raw_content, identity, force_new=force_new))

    @staticmethod
    def _initial_state(
        raw_content: str,
        identity: str,
        session_id: str,
        previous: Optional[Checkpoint],
    ) -> ProjectState:
        values: dict[str, Any] = {
            "raw_content": raw_content,
            "source_path": identity,
            "session_id": session_id,
        }
        if previous is not None:
            history = ProjectState.model_validate(previous.state)
            values.update({name: getattr(history, name) for name in HISTORY_FIELDS})
            logger.info(
                f"[RUNNER] Starting new run in session {session_id} "
                f"(refinement iteration {history.refinement_iteration})"
            )
        return ProjectState(**values)


def _resumable(checkpoint: Optional[Checkpoint], raw_content: str) -> bool:
    if checkpoint is None or checkpoint.finished:
        return False
    if checkpoint.cursor.get("halted"):
        return False
    return checkpoint.state.get("raw_content") == raw_content
