"""
Technology Extraction Agent
Responsibility: Detect the technologies a project names, normalize their
                spelling, and derive the research topics the research stage
                will look up.

Topics come from four places: comparisons between competing technologies,
best practices for the leading ones, known integration pairs, and
project-specific concerns found in the requirements.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ideaforge.agents.base_agent import BaseAgent
from ideaforge.agents.prompts import TECHNOLOGY_PROMPT
from ideaforge.models.enums import StageName
from ideaforge.models.state import ProjectState
from ideaforge.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

TECHNOLOGY_PATTERNS = [
    # mobile (before web so "React Native" wins over "React")
    r"React Native|Flutter|SwiftUI",
    # languages
    r"JavaScript|TypeScript|Python|Java|C\+\+|C#|Ruby|Golang|Rust|Swift|Kotlin|PHP|Scala",
    # web frameworks
    r"React(?:\.js)?|Angular(?:\.js)?|Vue(?:\.js)?|Svelte|Next\.js|Nuxt\.js|Django|Flask|FastAPI|Express(?:\.js)?|Spring|Rails|Laravel",
    r"Node(?:\.js)?|node\.js|NodeJS",
    # databases
    r"PostgreSQL|Postgres|MySQL|MongoDB|Redis|Elasticsearch|DynamoDB|Cassandra|SQLite|Firebase|Supabase",
    # cloud
    r"AWS|Amazon Web Services|Azure|Google Cloud|GCP|Heroku|Vercel|Netlify",
    # devops
    r"Docker|Kubernetes|k8s|Terraform|GitHub Actions|GitLab CI",
    # APIs
    r"GraphQL|WebSockets?|gRPC|REST(?:ful)?",
    # data / ML
    r"TensorFlow|PyTorch|Scikit-learn|Pandas|NumPy|Spark|Kafka|RabbitMQ",
    # auth
    r"OAuth(?: ?2(?:\.0)?)?|Auth0|JWT",
]

_TECH_RE = re.compile(r"(?<![\w.])(" + "|".join(TECHNOLOGY_PATTERNS) + r")(?![\w])")

NORMALIZATIONS = {
    "node": "Node.js",
    "node.js": "Node.js",
    "nodejs": "Node.js",
    "react": "React",
    "react.js": "React",
    "vue": "Vue.js",
    "vue.js": "Vue.js",
    "angular": "Angular",
    "angular.js": "Angular",
    "express": "Express.js",
    "express.js": "Express.js",
    "postgres": "PostgreSQL",
    "k8s": "Kubernetes",
    "amazon web services": "AWS",
    "gcp": "Google Cloud",
    "golang": "Go",
    "websocket": "WebSockets",
    "websockets": "WebSockets",
    "restful": "REST",
    "oauth": "OAuth 2.0",
    "oauth2": "OAuth 2.0",
    "oauth 2": "OAuth 2.0",
    "oauth2.0": "OAuth 2.0",
    "oauth 2.0": "OAuth 2.0",
}

FRONTEND_FRAMEWORKS = ["React", "Angular", "Vue.js", "Svelte", "Next.js", "Nuxt.js"]
DATABASES = ["PostgreSQL", "MySQL", "MongoDB", "Redis", "DynamoDB", "Cassandra", "SQLite", "Firebase", "Supabase"]
CLOUD_PROVIDERS = ["AWS", "Azure", "Google Cloud", "Heroku", "Vercel", "Netlify"]
BACKEND_RUNTIMES = ["Node.js", "Python", "Java", "Go", "Ruby", "PHP"]

MAX_BEST_PRACTICE_TOPICS = 5


class TechnologyExtractionAgent(BaseAgent):
    name = StageName.TECHNOLOGY_EXTRACTION

    def _real_process(self, state: ProjectState) -> dict[str, Any]:
        content = _collect_content(state)
        technologies = detect_technologies(content)

        response = llm_text_call(TECHNOLOGY_PROMPT.format(content=content[:8000]))
        for line in response.splitlines():
            name = line.strip().lstrip("-*• ").strip()
            if name and len(name.split()) <= 3:
                technologies.append(normalize_technology(name))

        return self._result(state, _dedupe(technologies))

    def _mock_process(self, state: ProjectState) -> dict[str, Any]:
        return self._result(state, detect_technologies(_collect_content(state)))

    def _result(self, state: ProjectState, technologies: list[str]) -> dict[str, Any]:
        topics = generate_research_topics(technologies, state)
        logger.info(f"[TECH] {len(technologies)} technologies | {len(topics)} research topics")
        logger.debug(f"[TECH] technologies={technologies} topics={topics}")
        return {"technologies": technologies, "research_topics": topics}


def detect_technologies(content: str) -> list[str]:
    """Technologies named in *content*, normalized, in first-mention order."""
    return _dedupe(normalize_technology(m.group(1)) for m in _TECH_RE.finditer(content))


def normalize_technology(name: str) -> str:
    return NORMALIZATIONS.get(name.strip().lower(), name.strip())


def generate_research_topics(technologies: list[str], state: ProjectState) -> list[str]:
    topics: list[str] = []
    topics.extend(_comparisons(technologies))
    topics.extend(f"{tech} best practices" for tech in technologies[:MAX_BEST_PRACTICE_TOPICS])
    topics.extend(_integrations(technologies))
    topics.extend(_project_topics(technologies, state))
    return _dedupe(topics)


def _comparisons(technologies: list[str]) -> list[str]:
    topics = []
    frontend = [t for t in technologies if t in FRONTEND_FRAMEWORKS]
    if len(frontend) >= 2:
        topics.append(f"{' vs '.join(frontend)} comparison")
    databases = [t for t in technologies if t in DATABASES]
    if len(databases) >= 2:
        topics.append(f"{' vs '.join(databases[:2])} for web applications")
    clouds = [t for t in technologies if t in CLOUD_PROVIDERS]
    if len(clouds) >= 2:
        topics.append(f"{' vs '.join(clouds[:2])} pricing and features")
    return topics


def _integrations(technologies: list[str]) -> list[str]:
    present = set(technologies)
    topics = []
    if {"React", "Node.js"} <= present:
        topics.append("React Node.js full stack setup")
    if {"Docker", "Kubernetes"} <= present:
        topics.append("Docker Kubernetes deployment guide")
    if present & set(DATABASES) and present & set(BACKEND_RUNTIMES):
        topics.append("Database ORM best practices")
    if "GraphQL" in present:
        topics.append("GraphQL server implementation")
    return topics


def _project_topics(technologies: list[str], state: ProjectState) -> list[str]:
    text = " ".join(f"{r.title} {r.description}".lower() for r in state.requirements)
    topics = []
    if "real-time" in text or "realtime" in text:
        topics.append("WebSocket vs Server-Sent Events")
        if "Node.js" in technologies:
            topics.append("Socket.io real-time implementation")
    if "auth" in text:
        topics.append("JWT vs session authentication")
        topics.append("OAuth 2.0 implementation guide")
    if "scale" in text or "scalab" in text or "performance" in text:
        topics.append("Microservices architecture patterns")
        topics.append("Caching strategies Redis vs Memcached")
    return topics


def _collect_content(state: ProjectState) -> str:
    parts = [state.extracted.project_overview]
    parts.extend(f"{r.title}\n{r.description}" for r in state.requirements)
    parts.extend(f"{c.category}: {c.choice}\n{c.rationale}" for c in state.extracted.technology_choices)
    parts.extend(f"{i.title}\n{i.description}" for i in state.brainstorm_ideas)
    parts.extend(
        f"{qa.question}\n{qa.answer}"
        for qa in state.questions_answers
        if any(k in qa.question.lower() for k in ("tech", "stack", "framework", "language", "database", "api"))
    )
    return "\n".join(p for p in parts if p)


def _dedupe(items) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result
