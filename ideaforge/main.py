"""
IdeaForge — Main Entry Point

Analyze an org-mode project document (CLI):
    python -m ideaforge path/to/idea.org
    python -m ideaforge path/to/idea.org --new     # ignore earlier checkpoints

Or import and run programmatically:
    from ideaforge.main import run
    result = run("path/to/idea.org")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from ideaforge.config import get_settings
from ideaforge.errors import InputError
from ideaforge.models.state import ProjectState
from ideaforge.orchestration.engine import RunResult
from ideaforge.orchestration.runner import PipelineRunner
from ideaforge.utils.logger import setup_logging


def run(file_path: str, force_new: bool = False) -> RunResult:
    """Run the full analysis pipeline on one file and return the result."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    path = Path(file_path)
    if not path.is_file():
        raise InputError(f"No such file: {file_path}")

    logger.info("=" * 60)
    logger.info(f"  {settings.app_name.upper()}")
    logger.info(
        f"  Mode: {'MOCK' if settings.mock_mode else 'LLM'} | "
        f"Started: {datetime.now(timezone.utc).isoformat()}"
    )
    logger.info("=" * 60)

    runner = PipelineRunner(settings)
    result = runner.analyze_sync(
        path.read_text(encoding="utf-8"),
        identity=str(path),
        force_new=force_new,
    )

    _print_summary(result)
    return result


def _print_summary(result: RunResult) -> None:
    """Print a human-readable summary of the pipeline result."""
    logger = logging.getLogger(__name__)
    state: ProjectState = result.state
    validation = state.validation

    logger.info("")
    logger.info("-" * 60)
    logger.info("  ANALYSIS SUMMARY")
    logger.info("-" * 60)
    logger.info(f"  Title:          {state.extracted.title or 'N/A'}")
    logger.info(f"  Version:        {state.extracted.version}")
    logger.info(f"  Session:        {state.session_id}")
    logger.info(f"  Stages run:     {len(result.visited)}")
    if result.halted:
        logger.info(f"  Halted:         {result.cursor.halt_reason}")
    if validation is not None:
        logger.info(
            f"  Validation:     score {validation.score} "
            f"({len(validation.errors)} errors, {len(validation.warnings)} warnings)"
        )
    logger.info(f"  Requirements:   {len(state.requirements)}")
    logger.info(
        f"  MoSCoW:         must={len(state.moscow.must)} should={len(state.moscow.should)} "
        f"could={len(state.moscow.could)} wont={len(state.moscow.wont)}"
    )
    logger.info(
        f"  Kano:           basic={len(state.kano.basic)} performance={len(state.kano.performance)} "
        f"excitement={len(state.kano.excitement)}"
    )
    logger.info(f"  Dependencies:   {len(state.dependencies)}")
    logger.info(f"  Technologies:   {', '.join(state.technologies) or 'none'}")
    logger.info(f"  Research:       {len(state.research_summaries)} topics")
    logger.info(f"  Refinements:    {state.refinement_iteration}")

    if state.errors:
        logger.info(f"  Errors ({len(state.errors)}):")
        for error in state.errors[:10]:
            logger.info(f"    - {error}")

    logger.info("-" * 60)
