"""
Tests: Resilience Bridge over mocked enrichment webhooks (httpx.MockTransport).

Run with:
    pytest ideaforge/tests/test_research_bridge.py -v
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from ideaforge.config import Settings
from ideaforge.errors import AuthenticationError, CircuitOpenError, SourceHTTPError
from ideaforge.models.enums import CircuitState
from ideaforge.services.enrichment_client import EnrichmentClient
from ideaforge.services.research_bridge import (
    FALLBACK_INSIGHTS,
    ResearchBridge,
    extract_insights,
    generate_recommendations,
    tech_subreddits,
)
from ideaforge.services.response_transformer import recency_penalty, transform_hackernews, transform_reddit

HN_HIT = {
    "objectID": "101",
    "title": "React performance tips",
    "points": 150,
    "num_comments": 10,
    "author": "pg",
    "url": "https://example.com/react",
}
REDDIT_POST = {
    "id": "r1",
    "title": "React in production",
    "ups": 100,
    "upvote_ratio": 0.9,
    "num_comments": 5,
    "permalink": "/r/reactjs/comments/r1",
}


def _ok(items):
    return httpx.Response(
        200,
        json={"status": "success", "data": {"items": items, "totalCount": len(items)}, "metadata": {"cached": False}},
    )


class FakeWebhooks:
    """Routes requests by source path; each source has a queue of responses."""

    def __init__(self, **queues):
        self.queues = {name: list(responses) for name, responses in queues.items()}
        self.requests: list[httpx.Request] = []

    def calls(self, source: str) -> int:
        return sum(1 for r in self.requests if source in r.url.path)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        source = "hackernews" if "hackernews" in request.url.path else "reddit"
        queue = self.queues.get(source) or []
        # the last queued response repeats
        template = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)


def _settings(**overrides) -> Settings:
    values = dict(
        enrichment_base_url="http://n8n.test",
        retry_max_attempts=1,
        retry_initial_delay_seconds=0,
        retry_jitter=False,
        breaker_failure_threshold=2,
        research_batch_size=2,
        research_batch_delay_seconds=0,
    )
    values.update(overrides)
    return Settings(**values)


def _bridge(webhooks: FakeWebhooks, settings=None, sleeps=None) -> ResearchBridge:
    settings = settings or _settings()
    http = httpx.AsyncClient(transport=httpx.MockTransport(webhooks))
    client = EnrichmentClient(settings, http_client=http)

    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return ResearchBridge(client, settings, sleep=fake_sleep)


class TestFetch:
    def test_payload_and_transform(self):
        webhooks = FakeWebhooks(reddit=[_ok([REDDIT_POST])])
        bridge = _bridge(webhooks)
        items = asyncio.run(bridge.fetch("reddit", "react hooks", session_id="s1"))

        assert [i.id for i in items] == ["r1"]
        assert items[0].url == "https://reddit.com/r/reactjs/comments/r1"
        request = webhooks.requests[0]
        assert str(request.url) == "http://n8n.test/webhook/ideaforge/reddit-search"
        body = json.loads(request.content)
        assert body["query"] == "react hooks"
        assert body["sessionId"] == "s1"
        assert "reactjs" in body["options"]["sourceFilters"]["subreddits"]

    def test_retries_then_succeeds(self):
        webhooks = FakeWebhooks(hackernews=[httpx.Response(503), _ok([HN_HIT])])
        bridge = _bridge(webhooks)
        items = asyncio.run(bridge.fetch("hackernews", "react"))
        assert len(items) == 1
        assert webhooks.calls("hackernews") == 2
        metrics = bridge.tracker.get_session_metrics("default")
        assert metrics.retried_success_count == 1

    def test_auth_failure_not_retried(self):
        webhooks = FakeWebhooks(hackernews=[httpx.Response(401)])
        bridge = _bridge(webhooks)
        with pytest.raises(AuthenticationError):
            asyncio.run(bridge.fetch("hackernews", "react"))
        assert webhooks.calls("hackernews") == 1

    def test_rate_limit_body_honours_retry_after(self):
        limited = httpx.Response(200, json={"status": "rateLimited", "metadata": {"retryAfter": 2}})
        webhooks = FakeWebhooks(hackernews=[limited, _ok([HN_HIT])])
        sleeps = []
        bridge = _bridge(webhooks, sleeps=sleeps)
        asyncio.run(bridge.fetch("hackernews", "react"))
        assert sleeps == [2.0]

    def test_breaker_opens_and_short_circuits(self):
        webhooks = FakeWebhooks(reddit=[httpx.Response(500)])
        bridge = _bridge(webhooks)

        with pytest.raises(SourceHTTPError):
            asyncio.run(bridge.fetch("reddit", "vue"))
        assert webhooks.calls("reddit") == 2

        with pytest.raises(CircuitOpenError):
            asyncio.run(bridge.fetch("reddit", "svelte"))
        assert webhooks.calls("reddit") == 2
        assert bridge.tracker.get_session_metrics("default").short_circuit_count == 1


class TestResearchTopic:
    def test_merges_sources(self):
        webhooks = FakeWebhooks(hackernews=[_ok([HN_HIT])], reddit=[_ok([REDDIT_POST])])
        summary = asyncio.run(_bridge(webhooks).research_topic("React best practices"))
        assert summary.sources_succeeded == ["hackernews", "reddit"]
        assert summary.sources_failed == []
        assert summary.total_results == 2
        assert [i.source for i in summary.top_results] == ["hackernews", "reddit"]
        assert not summary.is_fallback

    def test_partial_failure(self):
        webhooks = FakeWebhooks(hackernews=[_ok([HN_HIT])], reddit=[httpx.Response(500)])
        bridge = _bridge(webhooks)
        summary = asyncio.run(bridge.research_topic("React best practices", session_id="s2"))
        assert summary.sources_succeeded == ["hackernews"]
        assert summary.sources_failed == ["reddit"]
        assert not summary.is_fallback

        metrics = bridge.tracker.get_session_metrics("s2")
        assert metrics.request_count == 2
        assert metrics.success_count == 1
        assert metrics.failure_count == 1
        assert [(e.source, e.error_type) for e in metrics.error_log] == [("reddit", "SourceHTTPError")]

    def test_total_failure_returns_fallback(self):
        webhooks = FakeWebhooks(hackernews=[httpx.Response(500)], reddit=[httpx.Response(500)])
        bridge = _bridge(webhooks)
        summary = asyncio.run(bridge.research_topic("Kafka vs RabbitMQ"))
        assert summary.is_fallback
        assert summary.insights == FALLBACK_INSIGHTS
        assert summary.recommendations[0] == "Manual research recommended for Kafka vs RabbitMQ"
        assert sorted(summary.sources_failed) == ["hackernews", "reddit"]
        assert bridge.tracker.get_error_sessions() == ["default"]

    def test_many_topics_in_order(self):
        webhooks = FakeWebhooks(hackernews=[_ok([HN_HIT])], reddit=[_ok([])])
        topics = ["React", "Node.js", "React", "PostgreSQL", " "]
        results = asyncio.run(_bridge(webhooks).research_topics(topics, session_id="s9"))
        assert list(results) == ["React", "Node.js", "PostgreSQL"]
        assert all(s.total_results == 1 for s in results.values())

    def test_delay_between_batches(self):
        webhooks = FakeWebhooks(hackernews=[_ok([HN_HIT])], reddit=[_ok([])])
        sleeps = []
        settings = _settings(research_batch_size=2, research_batch_delay_seconds=1.5)
        bridge = _bridge(webhooks, settings=settings, sleeps=sleeps)
        results = asyncio.run(bridge.research_topics(["A", "B", "C", "D", "E"]))

        assert list(results) == ["A", "B", "C", "D", "E"]
        # three batches, a pause between each pair, none after the last
        assert sleeps == [1.5, 1.5]
        assert len(webhooks.requests) == 10

    def test_in_flight_calls_are_capped(self):
        in_flight = 0
        peak = 0

        async def slow_source(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _ok([HN_HIT] if "hackernews" in request.url.path else [])

        settings = _settings(max_in_flight_requests=2, research_batch_size=4)
        http = httpx.AsyncClient(transport=httpx.MockTransport(slow_source))
        bridge = ResearchBridge(EnrichmentClient(settings, http_client=http), settings)
        results = asyncio.run(bridge.research_topics(["A", "B", "C", "D"]))

        assert len(results) == 4
        assert peak == 2
        assert bridge.tracker.get_session_metrics("default").success_count == 8


class TestCancellation:
    def test_cancelled_calls_are_closed_out(self):
        arrived = []

        async def hang(request: httpx.Request) -> httpx.Response:
            arrived.append(request.url.path)
            await asyncio.sleep(3600)
            return _ok([])

        settings = _settings()
        http = httpx.AsyncClient(transport=httpx.MockTransport(hang))
        bridge = ResearchBridge(EnrichmentClient(settings, http_client=http), settings)

        async def scenario():
            task = asyncio.create_task(bridge.research_topic("React", session_id="s3"))
            while len(arrived) < 2:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        metrics = bridge.tracker.get_session_metrics("s3")
        assert metrics.request_count == 2
        assert metrics.cancelled_count == 2
        assert metrics.success_count == 0
        assert metrics.failure_count == 0
        assert sorted(e.source for e in metrics.error_log) == ["hackernews", "reddit"]
        assert all(e.context["cancelled"] for e in metrics.error_log)
        assert bridge.tracker.get_stats()["total_cancelled"] == 2
        # a cancelled call counts as neither success nor failure
        for name in ("hackernews", "reddit"):
            assert bridge.breakers.get(name).state is CircuitState.CLOSED


class TestSummaries:
    def test_insights_and_recommendations(self):
        items = [
            transform_hackernews({**HN_HIT, "objectID": str(n), "title": f"Security breach in React app {n}"})
            for n in range(3)
        ]
        insights = extract_insights(items)
        assert any(i.startswith("Common themes:") and "security" in i for i in insights)
        assert "Results by source: hackernews 3" in insights
        assert "3 highly-rated discussions (score 100+)" in insights
        recommendations = generate_recommendations(items, "React")
        assert "Review security considerations and best practices for React" in recommendations

    def test_empty_results(self):
        assert extract_insights([]) == ["No research data available"]
        assert len(generate_recommendations([], "x")) == 1

    def test_subreddits_for_query(self):
        subreddits = tech_subreddits("Django with PostgreSQL")
        assert subreddits[:3] == ["programming", "webdev", "learnprogramming"]
        assert "django" in subreddits
        assert "database" in subreddits


class TestTransforms:
    NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_recency_penalty(self):
        assert recency_penalty("2026-02-27T00:00:00Z", self.NOW) == 0.0
        assert recency_penalty("2025-12-01T00:00:00Z", self.NOW) == 30.0
        assert recency_penalty(None, self.NOW) == 0.0

    def test_hackernews_comment_score(self):
        hit = {"objectID": "9", "comment_text": "Use hooks", "points": 10, "num_comments": 0}
        item = transform_hackernews(hit, now=self.NOW)
        assert item.title == "Use hooks"
        assert item.score == pytest.approx(8.0)
        assert item.url == "https://news.ycombinator.com/item?id=9"

    def test_reddit_post_and_comment(self):
        post = transform_reddit(REDDIT_POST, now=self.NOW)
        assert post.score == pytest.approx(105.0)
        comment = transform_reddit(
            {"id": "c1", "body": "Agreed", "ups": 30, "depth": 2, "link_title": "React in production"},
            now=self.NOW,
        )
        assert comment.title == "Comment on: React in production"
        assert comment.score == pytest.approx(10.0)
