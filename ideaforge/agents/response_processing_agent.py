"""
Response Processing Agent
Responsibility: Collect the `:RESPONSE:` annotations the author added to the
                document and open a new refinement iteration for them.

Two annotation forms are recognized:

    ** Make login optional                :RESPONSE:
    Guests should be able to browse first.

    :RESPONSE: priority
    F3 should be a MUST for launch.

The response text is every following line up to the next heading, the next
`:RESPONSE:` marker or a drawer end. Responses already collected in an
earlier iteration are not collected again.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.models.enums import StageName
from ideaforge.models.schemas import FeedbackEntry
from ideaforge.models.state import ProjectState

logger = logging.getLogger(__name__)

RESPONSE_MARKER = ":RESPONSE:"

_HEADING_RE = re.compile(r"^(\*+)\s+(.*?)\s*$")
_HEADING_TAGS_RE = re.compile(r"\s+(:[^\s]+:)\s*$")
_INLINE_RESPONSE_RE = re.compile(r":RESPONSE:\s*(.+)")
_DRAWER_LINE_RE = re.compile(r"^\s*:[A-Za-z_-]+:")


class ResponseProcessingAgent(BaseAgent):
    name = StageName.RESPONSE_PROCESSING

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        found = extract_responses(state.raw_content)
        seen = {(f.section, f.tag, f.response) for f in state.feedback}
        new = [r for r in found if (r.section, r.tag, r.response) not in seen]

        if not new:
            logger.info(f"[RESPONSE] {len(found)} responses found, none new")
            return {}

        iteration = state.refinement_iteration + 1
        entries = [r.model_copy(update={"iteration": iteration}) for r in new]
        by_section: dict[str, int] = {}
        for entry in entries:
            by_section[entry.section] = by_section.get(entry.section, 0) + 1

        logger.info(f"[RESPONSE] Iteration {iteration}: {len(entries)} new responses")
        return {
            "feedback": entries,
            "refinement_iteration": iteration,
            "analysis_notes": [
                f"Refinement iteration {iteration}: "
                + ", ".join(f"{section} ({count})" for section, count in by_section.items())
            ],
        }


def extract_responses(content: str) -> list[FeedbackEntry]:
    lines = content.replace("\r\n", "\n").split("\n")
    responses: list[FeedbackEntry] = []
    section = "Unknown"

    for index, line in enumerate(lines):
        heading = _HEADING_RE.match(line)
        tag = None
        if heading:
            title = heading.group(2)
            tags = _HEADING_TAGS_RE.search(title)
            tag_names = tags.group(1).strip(":").split(":") if tags else []
            if "RESPONSE" in tag_names:
                tag = title[:tags.start()].strip()
            else:
                section = (title[:tags.start()] if tags else title).strip()
                continue
        else:
            inline = _INLINE_RESPONSE_RE.search(line)
            if inline:
                tag = inline.group(1).strip()

        if not tag or not re.search(r"[A-Za-z0-9]", tag):
            continue

        text = _collect_body(lines, index + 1)
        if text:
            responses.append(FeedbackEntry(response=text, tag=tag, section=section, line=index + 1))
    return responses


def _collect_body(lines: list[str], start: int) -> str:
    body: list[str] = []
    for line in lines[start:]:
        if _HEADING_RE.match(line) or RESPONSE_MARKER in line or line.strip() == ":END:":
            break
        if _DRAWER_LINE_RE.match(line):
            continue
        if line.strip():
            body.append(line.strip())
    return "\n".join(body)
