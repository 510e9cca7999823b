"""
Tests: per-source circuit breaker.

Run with:
    pytest ideaforge/tests/test_circuit_breaker.py -v
"""

import asyncio

import pytest

from ideaforge.errors import CircuitOpenError, SourceConnectionError
from ideaforge.models.enums import CircuitState
from ideaforge.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _breaker(clock: FakeClock, **overrides) -> CircuitBreaker:
    config = CircuitBreakerConfig(
        failure_threshold=3, reset_timeout=30.0, success_threshold=2, window=60.0,
    ).model_copy(update=overrides)
    return CircuitBreaker("hackernews", config, clock=clock)


class TestTransitions:
    def test_opens_after_consecutive_failures(self):
        breaker = _breaker(FakeClock())
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        assert not breaker.allow_request()

    def test_success_resets_the_streak(self):
        breaker = _breaker(FakeClock())
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED

    def test_failures_outside_window_do_not_count(self):
        clock = FakeClock()
        breaker = _breaker(clock)
        breaker.record_failure()
        breaker.record_failure()
        clock.advance(61)
        breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED

    def test_half_open_after_reset_timeout(self):
        clock = FakeClock()
        breaker = _breaker(clock)
        breaker.force_open()
        clock.advance(29)
        assert breaker.state is CircuitState.OPEN
        assert breaker.retry_in() == pytest.approx(1.0)
        clock.advance(1)
        assert breaker.state is CircuitState.HALF_OPEN
        assert breaker.allow_request()

    def test_half_open_closes_after_successes(self):
        clock = FakeClock()
        breaker = _breaker(clock)
        breaker.force_open()
        clock.advance(30)
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        breaker = _breaker(clock)
        breaker.force_open()
        clock.advance(30)
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        assert breaker.retry_in() == pytest.approx(30.0)

    def test_force_closed_and_reset(self):
        breaker = _breaker(FakeClock())
        breaker.force_open()
        breaker.force_closed()
        assert breaker.state is CircuitState.CLOSED
        breaker.record_failure()
        breaker.reset()
        assert breaker.stats()["total_failures"] == 0


class TestCall:
    def test_open_breaker_rejects_without_calling(self):
        breaker = _breaker(FakeClock())
        breaker.force_open()
        calls = []

        async def fetch():
            calls.append(1)
            return "data"

        with pytest.raises(CircuitOpenError):
            asyncio.run(breaker.call(fetch))
        assert calls == []
        assert breaker.stats()["rejected"] == 1

    def test_call_records_outcomes(self):
        breaker = _breaker(FakeClock())

        async def ok():
            return 7

        async def fail():
            raise SourceConnectionError("hackernews", "refused")

        assert asyncio.run(breaker.call(ok)) == 7
        with pytest.raises(SourceConnectionError):
            asyncio.run(breaker.call(fail))

        stats = breaker.stats()
        assert stats["total_requests"] == 2
        assert stats["total_successes"] == 1
        assert stats["total_failures"] == 1
        assert stats["recent_failures"] == 1

    def test_cancelled_call_records_nothing(self):
        breaker = _breaker(FakeClock())

        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(breaker.call(cancelled))
        stats = breaker.stats()
        assert stats["total_failures"] == 0
        assert stats["total_successes"] == 0


class TestRegistry:
    def test_one_breaker_per_name(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1))
        hn = registry.get("hackernews")
        assert registry.get("hackernews") is hn
        hn.record_failure()
        assert registry.get("reddit").state is CircuitState.CLOSED
        assert registry.names() == ["hackernews", "reddit"]
        assert registry.stats()["hackernews"]["state"] == CircuitState.OPEN.value

    def test_reset_all(self):
        registry = CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=1))
        registry.get("reddit").record_failure()
        registry.reset_all()
        assert registry.get("reddit").state is CircuitState.CLOSED
