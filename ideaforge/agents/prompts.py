"""Prompt templates for the LLM-backed stages. Filled with str.format()."""

from __future__ import annotations

from ideaforge.models.schemas import Requirement


def format_requirements(requirements: list[Requirement]) -> str:
    """One `ID: title - description` line per requirement."""
    lines = []
    for req in requirements:
        line = f"{req.id}: {req.title}"
        if req.description:
            line += f" - {req.description[:300]}"
        lines.append(line)
    return "\n".join(lines) or "(none)"


REQUIREMENTS_ANALYSIS_PROMPT = """You are a senior product analyst reviewing a project idea.

Project: {title}

Overview:
{overview}

Requirements:
{requirements}

User stories:
{user_stories}

Identify the project's core goals, the critical success factors and the main
delivery risks. Answer with one finding per line, each line starting with
"GOAL:", "SUCCESS:" or "RISK:".
"""

MOSCOW_PROMPT = """You are a product prioritization expert specializing in the MoSCoW method.
Categorize each requirement into exactly one category:

MUST: critical for launch, the project fails without it
SHOULD: important, but the project can succeed without it temporarily
COULD: nice to have, adds value but not critical
WONT: out of scope for this release

Project: {title}

{analysis}

Requirements to categorize:
{requirements}

Output format (use the exact requirement IDs, optional reason in parentheses):
MUST: F1 (reason), T2
SHOULD: F2
COULD: F3
WONT: F4
"""

KANO_PROMPT = """You are a UX researcher expert in the Kano model.

BASIC: expected by users; their absence causes dissatisfaction
PERFORMANCE: the more the better; satisfaction grows with quality
EXCITEMENT: unexpected delighters; their presence greatly increases satisfaction

Project: {title}

MoSCoW priorities:
{moscow}

Requirements to evaluate:
{requirements}

User stories:
{user_stories}

Output format (use the exact requirement IDs, optional reason in parentheses):
BASIC: F1 (users expect this)
PERFORMANCE: F2
EXCITEMENT: F3 (would delight users)
"""

DEPENDENCY_PROMPT = """You are a software architect expert in dependency analysis.
Identify dependencies between the requirements below.

REQUIRES: requirement A needs requirement B to function
ENHANCES: requirement A builds upon or improves requirement B
CONFLICTS: requirements A and B cannot coexist as specified

Project: {title}

Requirements:
{requirements}

Output one dependency per line:
DEP: <from_id> -> <to_id> [TYPE] <reason>
"""

TECHNOLOGY_PROMPT = """List the concrete technologies (languages, frameworks, databases,
platforms, protocols) that this project uses or clearly needs.

{content}

Answer with one technology name per line and nothing else.
"""

SYNTHESIS_PROMPT = """You are a technical advisor. Summarize the research below into
actionable guidance for the project "{title}".

Technologies: {technologies}

Must-have requirements:
{must_haves}

Research findings:
{findings}

Write a short report with the sections "Key Insights", "Recommendations" and
"Risks". Use bullet points.
"""

FEEDBACK_PROMPT = """You are refining a project plan using the author's feedback.

Current requirements:
{requirements}

MoSCoW priorities:
{moscow}

Author feedback (section: tag: response):
{feedback}

Return the updates implied by the feedback:
- requirement_updates: short notes about requirements whose wording changed
- category_changes: requirement_id, new MoSCoW category (MUST/SHOULD/COULD/WONT), reason
- new_requirements: requirements that should be added (id, title, description)
- clarifications: general clarifications that affect understanding
"""
