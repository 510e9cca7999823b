"""
Research Bridge — resilient fan-out to the enrichment sources.

  fetch(source, query)      one source, behind its circuit breaker, with retry
  research_topic(topic)     every source concurrently; partial failure tolerated,
                            total failure returns a marked fallback summary
  research_topics(topics)   fixed-size batches with a delay in between

In-flight HTTP calls are capped by one semaphore shared by all topics.
ExternalSourceError never escapes research_topic / research_topics.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ideaforge.config import Settings, get_settings
from ideaforge.errors import CircuitOpenError, ExternalSourceError
from ideaforge.models.enums import ResearchSource
from ideaforge.models.schemas import ResearchItem, ResearchSummary
from ideaforge.services.circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry
from ideaforge.services.enrichment_client import EnrichmentClient, SearchOptions
from ideaforge.services.response_transformer import transform_hackernews, transform_reddit
from ideaforge.services.retry import RetryPolicy, call_with_retry
from ideaforge.services.session_tracker import SessionTracker

logger = logging.getLogger(__name__)

FALLBACK_INSIGHTS = [
    "External research services are currently unavailable",
    "Consider checking service status or trying again later",
]

_COMMON_WORDS = frozenset(
    "about after again being could every first other their there these thing think those "
    "through using which would where while https really should people because"
    .split()
)
_ALTERNATIVE_RE = re.compile(r"\b(instead of|alternative|better than|vs\.|versus|compared to|replace)\b", re.I)
_SECURITY_RE = re.compile(r"\b(security|vulnerability|CVE|exploit|breach|attack|unsafe)\b", re.I)
_PERFORMANCE_RE = re.compile(r"\b(performance|slow|fast|optimization|bottleneck|memory|cpu)\b", re.I)
HIGH_SCORE = 100


@dataclass(frozen=True)
class SourceSpec:
    name: str
    path: str
    transform: Callable[[dict[str, Any]], ResearchItem]
    filters: Callable[[str], dict[str, Any]] = field(default=lambda query: {})


def tech_subreddits(query: str) -> list[str]:
    """Subreddits worth searching for a technology query."""
    q = query.lower()
    subreddits = ["programming", "webdev", "learnprogramming"]
    keyword_map = [
        (("javascript", "node"), ["javascript", "node"]),
        (("typescript",), ["typescript"]),
        (("react",), ["reactjs", "reactnative"]),
        (("vue",), ["vuejs"]),
        (("angular",), ["angular"]),
        (("python",), ["python", "learnpython"]),
        (("django",), ["django"]),
        (("flask",), ["flask"]),
        (("rust",), ["rust"]),
        (("golang", " go "), ["golang"]),
        (("docker", "kubernetes", "k8s"), ["docker", "kubernetes", "devops"]),
        (("aws", "azure", "cloud"), ["aws", "cloudcomputing"]),
        (("postgres", "mysql", "mongodb", "database", "redis"), ["database"]),
        (("machine learning", "tensorflow", "pytorch"), ["machinelearning"]),
    ]
    padded = f" {q} "
    for keywords, extra in keyword_map:
        if any(k in padded for k in keywords):
            subreddits.extend(extra)
    return list(dict.fromkeys(subreddits))


def default_sources(settings: Settings) -> list[SourceSpec]:
    return [
        SourceSpec(
            name=ResearchSource.HACKERNEWS.value,
            path=settings.hackernews_path,
            transform=transform_hackernews,
            filters=lambda query: {"tags": ["story", "comment"]},
        ),
        SourceSpec(
            name=ResearchSource.REDDIT.value,
            path=settings.reddit_path,
            transform=transform_reddit,
            filters=lambda query: {"subreddits": tech_subreddits(query)},
        ),
    ]


class ResearchBridge:
    def __init__(
        self,
        client: EnrichmentClient,
        settings: Optional[Settings] = None,
        *,
        sources: Optional[list[SourceSpec]] = None,
        tracker: Optional[SessionTracker] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.sources = sources if sources is not None else default_sources(self.settings)
        self.tracker = tracker or SessionTracker(
            idle_timeout=self.settings.session_idle_timeout_seconds,
            error_log_limit=self.settings.session_error_log_limit,
        )
        self.breakers = breakers or CircuitBreakerRegistry(CircuitBreakerConfig.from_settings(self.settings))
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.settings)
        self.batch_size = max(1, self.settings.research_batch_size)
        self.batch_delay = self.settings.research_batch_delay_seconds
        self._sleep = sleep
        self._in_flight: Optional[asyncio.Semaphore] = None
        self._in_flight_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> ResearchBridge:
        settings = settings or get_settings()
        return cls(EnrichmentClient(settings), settings)

    async def aclose(self) -> None:
        await self.client.aclose()

    def _limiter(self) -> asyncio.Semaphore:
        """One semaphore per event loop, shared by every topic and source."""
        loop = asyncio.get_running_loop()
        if self._in_flight is None or self._in_flight_loop is not loop:
            self._in_flight = asyncio.Semaphore(max(1, self.settings.max_in_flight_requests))
            self._in_flight_loop = loop
        return self._in_flight

    def _source(self, name: str) -> SourceSpec:
        for spec in self.sources:
            if spec.name == name:
                return spec
        raise KeyError(f"Unknown research source: {name}")

    # ── Single source ────────────────────────────────────

    async def fetch(self, source: str, query: str, session_id: str = "default") -> list[ResearchItem]:
        """One source, one query. Raises ExternalSourceError (incl. CircuitOpenError)."""
        spec = self._source(source)
        breaker = self.breakers.get(spec.name)
        options = SearchOptions(
            limit=self.settings.research_result_limit,
            sort_by=self.settings.research_sort_by,
            time_window=self.settings.research_time_window,
            source_filters=spec.filters(query),
        )

        limiter = self._limiter()

        async def attempt():
            async with limiter:
                return await breaker.call(self.client.search, spec.name, spec.path, query, session_id, options)

        self.tracker.track_request(session_id, query)
        started = time.perf_counter()
        try:
            response, attempts = await call_with_retry(attempt, self.retry_policy, sleep=self._sleep)
            items = [spec.transform(raw) for raw in response.items]
        except asyncio.CancelledError:
            latency = (time.perf_counter() - started) * 1000
            logger.info(f"[BRIDGE] {spec.name} call for {query!r} cancelled after {latency:.0f}ms")
            self.tracker.track_cancelled(session_id, query, latency, source=spec.name)
            raise
        except CircuitOpenError:
            logger.info(f"[BRIDGE] {spec.name} circuit open; skipping {query!r}")
            self.tracker.track_short_circuit(session_id, query, spec.name)
            raise
        except ExternalSourceError as exc:
            latency = (time.perf_counter() - started) * 1000
            logger.warning(f"[BRIDGE] {spec.name} failed for {query!r}: {exc}")
            self.tracker.track_failure(session_id, query, exc, latency, source=spec.name)
            raise
        except Exception as exc:
            latency = (time.perf_counter() - started) * 1000
            logger.warning(f"[BRIDGE] {spec.name} returned unusable data for {query!r}: {exc}")
            self.tracker.track_failure(session_id, query, exc, latency, source=spec.name)
            raise ExternalSourceError(spec.name, f"Unusable response: {exc}") from exc

        latency = (time.perf_counter() - started) * 1000
        self.tracker.track_success(session_id, query, latency, attempts)
        logger.debug(f"[BRIDGE] {spec.name} → {len(items)} items for {query!r} ({attempts} attempt(s))")
        return items

    # ── One topic, every source ──────────────────────────

    async def research_topic(self, topic: str, session_id: str = "default") -> ResearchSummary:
        names = [spec.name for spec in self.sources]
        outcomes = await asyncio.gather(
            *(self.fetch(name, topic, session_id) for name in names),
            return_exceptions=True,
        )

        items: list[ResearchItem] = []
        succeeded: list[str] = []
        failed: list[str] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                failed.append(name)
                continue
            succeeded.append(name)
            items.extend(outcome)

        if not succeeded:
            logger.warning(f"[BRIDGE] All sources failed for {topic!r}; returning fallback")
            self.tracker.track_error(session_id, topic, "all research sources failed", context={"sources": failed})
            return fallback_summary(topic, failed)

        limit = self.settings.max_results_per_source * 2
        top = sorted(items, key=lambda i: (-i.score, i.source, i.id))[:limit]
        return ResearchSummary(
            topic=topic,
            total_results=len(items),
            top_results=top,
            insights=extract_insights(items),
            recommendations=generate_recommendations(items, topic),
            sources_succeeded=succeeded,
            sources_failed=failed,
        )

    # ── Many topics ──────────────────────────────────────

    async def research_topics(self, topics: list[str], session_id: str = "default") -> dict[str, ResearchSummary]:
        """Summaries keyed by topic, in input order (duplicates collapsed)."""
        unique = list(dict.fromkeys(t for t in topics if t.strip()))
        results: dict[str, ResearchSummary] = {}
        logger.info(
            f"[BRIDGE] Researching {len(unique)} topics in batches of {self.batch_size} "
            f"for session {session_id}"
        )
        for start in range(0, len(unique), self.batch_size):
            batch = unique[start:start + self.batch_size]
            summaries = await asyncio.gather(*(self.research_topic(t, session_id) for t in batch))
            results.update(zip(batch, summaries))
            if start + self.batch_size < len(unique) and self.batch_delay > 0:
                await self._sleep(self.batch_delay)
        return results

    def stats(self) -> dict[str, Any]:
        return {"breakers": self.breakers.stats(), "sessions": self.tracker.get_stats()}


# ── Summaries ────────────────────────────────────────────

def fallback_summary(topic: str, failed_sources: Optional[list[str]] = None) -> ResearchSummary:
    return ResearchSummary(
        topic=topic,
        total_results=0,
        top_results=[],
        insights=list(FALLBACK_INSIGHTS),
        recommendations=[
            f"Manual research recommended for {topic}",
            "Check official documentation and community forums directly",
            "Service interruption may be temporary - retry in a few minutes",
        ],
        sources_failed=list(failed_sources or []),
        is_fallback=True,
    )


def extract_insights(items: list[ResearchItem]) -> list[str]:
    if not items:
        return ["No research data available"]

    insights: list[str] = []
    words = Counter(
        word
        for item in items
        for word in re.findall(r"[a-z][a-z0-9+#.-]+", f"{item.title} {item.summary}".lower())
        if len(word) > 4 and word not in _COMMON_WORDS
    )
    themes = [w for w, count in sorted(words.items(), key=lambda kv: (-kv[1], kv[0])) if count > 2][:5]
    if themes:
        insights.append(f"Common themes: {', '.join(themes)}")

    per_source = Counter(item.source for item in items)
    insights.append(
        "Results by source: " + ", ".join(f"{name} {count}" for name, count in sorted(per_source.items()))
    )

    popular = [item for item in items if item.score >= HIGH_SCORE]
    if popular:
        insights.append(f"{len(popular)} highly-rated discussions (score {HIGH_SCORE}+)")
    return insights


def generate_recommendations(items: list[ResearchItem], topic: str) -> list[str]:
    if not items:
        return ["Consider searching for more specific information or alternative sources"]

    texts = [f"{item.title} {item.summary}" for item in items]
    recommendations: list[str] = []
    if sum(1 for t in texts if _ALTERNATIVE_RE.search(t)) >= 3:
        recommendations.append(f"Research alternatives to {topic} mentioned in community discussions")
    if sum(1 for t in texts if _SECURITY_RE.search(t)) >= 2:
        recommendations.append(f"Review security considerations and best practices for {topic}")
    if sum(1 for t in texts if _PERFORMANCE_RE.search(t)) >= 3:
        recommendations.append(f"Consider performance implications and optimization strategies for {topic}")
    if not recommendations:
        recommendations.append(f"Review the top community discussions on {topic} before committing to it")
    return recommendations
