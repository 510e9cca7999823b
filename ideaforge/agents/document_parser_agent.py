"""
Document Parser Agent
Responsibility: Turn the raw org-mode text into a Document, validate it
                against the project template and extract the structured
                records every later stage reads.

Empty or non-text input stops the run. Parse issues and template errors are
recorded in the error list; the run continues on whatever was recovered.
"""

from __future__ import annotations

import logging
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.errors import FatalStageError
from ideaforge.models.enums import IssueKind, StageName
from ideaforge.models.state import ProjectState
from ideaforge.parsing.data_extractor import DataExtractor
from ideaforge.parsing.orgmode_parser import OrgModeParser
from ideaforge.parsing.orgmode_validator import OrgModeValidator

logger = logging.getLogger(__name__)


class DocumentParserAgent(BaseAgent):
    name = StageName.DOCUMENT_PARSER

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        result = OrgModeParser(max_errors=self.settings.parser_max_errors).parse(state.raw_content)

        if result.document is None:
            issue = next((e for e in result.errors if e.kind == IssueKind.INPUT), None)
            raise FatalStageError(issue.message if issue else "document could not be parsed")

        document = result.document
        validation = OrgModeValidator().validate(document)
        extracted = DataExtractor().extract(document)

        errors = [f"parse: {e.message} ({e.location})" for e in result.errors]
        errors.extend(f"validation: {e.message}" for e in validation.errors)

        logger.info(
            f"[PARSER] '{document.title}' v{document.version} | "
            f"{len(extracted.requirements)} requirements | "
            f"{len(extracted.user_stories)} user stories | "
            f"score {validation.score} ({len(validation.errors)} errors, "
            f"{len(validation.warnings)} warnings)"
        )

        update: dict[str, Any] = {
            "document": document,
            "validation": validation,
            "extracted": extracted,
            "requirements": extracted.requirements,
            "user_stories": extracted.user_stories,
            "brainstorm_ideas": extracted.brainstorm_ideas,
            "questions_answers": extracted.questions_answers,
            "research_subjects": extracted.research_subjects,
        }
        if errors:
            update["errors"] = errors
        return update
