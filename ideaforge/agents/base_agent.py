"""
Base agent class that every pipeline stage inherits.

Design:
  - `process()` is registered with the Stage Graph Engine as the stage function.
  - `_real_process()` is the single abstract method — override in each agent.
  - `_mock_process()` is used when settings.mock_mode is on; agents that never
    call the LLM simply inherit the default, which delegates to `_real_process()`.
  - Agents return a partial update dict; the engine merges it into the state.
"""

from __future__ import annotations

import inspect
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, Union

from pydantic import BaseModel

from ideaforge.config import Settings, get_settings
from ideaforge.errors import FatalStageError
from ideaforge.models.enums import StageName
from ideaforge.models.state import ProjectState

logger = logging.getLogger(__name__)

StageResult = Union[dict[str, Any], Awaitable[dict[str, Any]]]


class BaseAgent(ABC):
    """Abstract base for all pipeline agents."""

    name: StageName  # set in each subclass

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def mock_mode(self) -> bool:
        return self.settings.mock_mode

    # ── Public entry point (called by the engine) ────────

    async def process(self, state: ProjectState) -> dict[str, Any]:
        t0 = time.perf_counter()
        separator = "═" * 70
        logger.info(f"\n{separator}")
        logger.info(f"▶ [{self.name.value}] STARTING{' (mock)' if self.mock_mode else ''}")
        logger.info(separator)

        _log_state_summary("INPUT STATE", state.model_dump())

        handler = self._mock_process if self.mock_mode else self._real_process
        try:
            update = handler(state)
            if inspect.isawaitable(update):
                update = await update
            update = dict(update or {})
        except FatalStageError as exc:
            elapsed = time.perf_counter() - t0
            logger.error(f"✘ [{self.name.value}] STOPPED after {elapsed:.3f}s: {exc}")
            logger.info(f"{separator}\n")
            raise
        except Exception as exc:
            elapsed = time.perf_counter() - t0
            logger.exception(f"✘ [{self.name.value}] FAILED after {elapsed:.3f}s: {exc}")
            logger.info(f"{separator}\n")
            raise

        elapsed = time.perf_counter() - t0
        logger.info(f"✔ [{self.name.value}] COMPLETED in {elapsed:.3f}s")
        _log_update("STATE UPDATE", update)
        logger.info(f"{separator}\n")
        return update

    # ── Subclass hooks ───────────────────────────────────

    @abstractmethod
    def _real_process(self, state: ProjectState) -> StageResult:
        """
        Real implementation (LLM-backed where the stage needs one).
        Must be overridden by each agent.
        """
        ...

    def _mock_process(self, state: ProjectState) -> StageResult:
        return self._real_process(state)


# ── Debug helpers (module-level) ─────────────────────────

def _log_state_summary(label: str, state: dict[str, Any]) -> None:
    """One line per populated state field; empty fields are only counted."""
    filled = {k: v for k, v in state.items() if v not in (None, "", [], {}, 0)}
    lines = [f"  ┌─ {label}"]
    lines += [f"  │  {key}: {_describe(filled[key])}" for key in sorted(filled)]
    lines.append(f"  └─ {len(filled)} populated, {len(state) - len(filled)} empty")
    logger.debug("\n".join(lines))


def _log_update(label: str, update: dict[str, Any]) -> None:
    if not update:
        logger.debug(f"  ── {label}: nothing written")
        return
    written = ", ".join(f"{key}={_describe(update[key])}" for key in sorted(update))
    logger.debug(f"  ── {label}: {written}")


def _describe(value: Any, limit: int = 80) -> str:
    if isinstance(value, str):
        return repr(value) if len(value) <= limit else f"{len(value)} chars"
    if isinstance(value, (list, tuple)):
        return f"{len(value)} items"
    if isinstance(value, dict):
        return f"{len(value)} keys"
    if isinstance(value, BaseModel):
        return type(value).__name__
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "…"
