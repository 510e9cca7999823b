"""
Tests: per-session call accounting.

Run with:
    pytest ideaforge/tests/test_session_tracker.py -v
"""

import json

from ideaforge.errors import SourceHTTPError
from ideaforge.services.session_tracker import SessionTracker


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRecording:
    def test_counters_accumulate(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_request("s1", "React best practices")
        tracker.track_success("s1", "React best practices", latency_ms=120.0)
        tracker.track_request("s1", "React best practices")
        tracker.track_success("s1", "React best practices", latency_ms=80.0, attempts=2)

        metrics = tracker.get_session_metrics("s1")
        assert metrics.request_count == 2
        assert metrics.success_count == 2
        assert metrics.retried_success_count == 1
        assert metrics.topics == ["React best practices"]
        assert metrics.per_topic_latencies["React best practices"] == [120.0, 80.0]
        assert metrics.average_response_ms == 100.0

    def test_failure_logs_error_details(self):
        tracker = SessionTracker(clock=FakeClock())
        error = SourceHTTPError("reddit", 502, context={"url": "http://n8n/webhook/reddit"})
        tracker.track_failure("s1", "Vue.js best practices", error, latency_ms=40.0, source="reddit")

        metrics = tracker.get_session_metrics("s1")
        assert metrics.failure_count == 1
        entry = metrics.error_log[0]
        assert entry.error_type == "SourceHTTPError"
        assert entry.source == "reddit"
        assert entry.context == {"url": "http://n8n/webhook/reddit", "status_code": 502}

    def test_short_circuit(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_short_circuit("s1", "Redis caching", "hackernews")
        metrics = tracker.get_session_metrics("s1")
        assert metrics.short_circuit_count == 1
        assert metrics.failure_count == 0
        assert metrics.error_log[0].context == {"short_circuit": True}

    def test_error_log_is_bounded(self):
        tracker = SessionTracker(error_log_limit=3, clock=FakeClock())
        for i in range(5):
            tracker.track_error("s1", "topic", f"problem {i}")
        log = tracker.get_session_metrics("s1").error_log
        assert [e.message for e in log] == ["problem 2", "problem 3", "problem 4"]

    def test_metrics_are_copies(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_request("s1", "t")
        copy = tracker.get_session_metrics("s1")
        copy.request_count = 99
        assert tracker.get_session_metrics("s1").request_count == 1


class TestHousekeeping:
    def test_idle_sessions_evicted(self):
        clock = FakeClock()
        tracker = SessionTracker(idle_timeout=300, clock=clock)
        tracker.track_request("old", "t")
        clock.now += 301
        tracker.track_request("new", "t")
        assert tracker.get_session_metrics("old") is None
        assert tracker.get_session_metrics("new") is not None

    def test_stats_and_error_sessions(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_request("a", "Kafka")
        tracker.track_request("b", "Kafka")
        tracker.track_failure("b", "Kafka", "timeout")
        stats = tracker.get_stats()
        assert stats["total_sessions"] == 2
        assert stats["total_requests"] == 2
        assert stats["total_failures"] == 1
        assert stats["top_topics"] == ["Kafka"]
        assert tracker.get_error_sessions() == ["b"]

    def test_export_and_clear(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_request("s1", "Docker")
        exported = json.loads(tracker.export_session_data("s1"))
        assert exported["session_id"] == "s1"
        assert tracker.clear_session("s1")
        assert tracker.export_session_data("s1") is None
        assert not tracker.clear_session("s1")

    def test_explicit_eviction(self):
        clock = FakeClock()
        tracker = SessionTracker(idle_timeout=60, clock=clock)
        tracker.track_request("a", "t")
        clock.now += 30
        tracker.track_request("b", "t")
        clock.now += 45
        assert tracker.evict_idle() == ["a"]
        assert list(tracker.get_all_sessions()) == ["b"]

    def test_clear_all(self):
        tracker = SessionTracker(clock=FakeClock())
        tracker.track_request("a", "t")
        tracker.track_request("b", "t")
        assert set(tracker.get_all_sessions()) == {"a", "b"}
        tracker.clear_all()
        assert tracker.get_all_sessions() == {}
