"""
Circuit breaker — one per enrichment source.

  CLOSED    → OPEN       failure_threshold consecutive failures inside window
  OPEN      → HALF_OPEN  reset_timeout seconds after opening (checked lazily)
  HALF_OPEN → CLOSED     success_threshold consecutive successes
  HALF_OPEN → OPEN       any failure

All bookkeeping happens under a lock and never across an await, so many
concurrent topics can share one breaker. A call cancelled mid-flight
records neither success nor failure.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from ideaforge.config import Settings
from ideaforge.errors import CircuitOpenError
from ideaforge.models.enums import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    success_threshold: int = 2
    window: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> CircuitBreakerConfig:
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=settings.breaker_reset_timeout_seconds,
            success_threshold=settings.breaker_success_threshold,
            window=settings.breaker_window_seconds,
        )


class CircuitBreaker:
    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None, clock: Clock = time.monotonic):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_times: deque[float] = deque()
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None
        self._last_failure_at: Optional[float] = None
        self._total_requests = 0
        self._total_failures = 0
        self._total_successes = 0
        self._rejected = 0

    # ── State ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh(self._clock())
            return self._state

    def _refresh(self, now: float) -> None:
        if self._state is CircuitState.OPEN and self._opened_at is not None:
            if now - self._opened_at >= self.config.reset_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self._half_open_successes = 0

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        logger.info(f"[BREAKER:{self.name}] {self._state.value} → {new_state.value}")
        self._state = new_state

    def _open(self, now: float) -> None:
        self._transition(CircuitState.OPEN)
        self._opened_at = now
        self._half_open_successes = 0

    def _prune(self, now: float) -> None:
        horizon = now - self.config.window
        while self._failure_times and self._failure_times[0] < horizon:
            self._failure_times.popleft()

    def retry_in(self) -> float:
        with self._lock:
            if self._state is not CircuitState.OPEN or self._opened_at is None:
                return 0.0
            return max(0.0, self.config.reset_timeout - (self._clock() - self._opened_at))

    # ── Accounting ───────────────────────────────────────

    def allow_request(self) -> bool:
        with self._lock:
            self._refresh(self._clock())
            self._total_requests += 1
            if self._state is CircuitState.OPEN:
                self._rejected += 1
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            self._total_successes += 1
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
                    self._failure_times.clear()
                    self._opened_at = None
            else:
                # consecutive means a success wipes the streak
                self._failure_times.clear()

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._total_failures += 1
            self._last_failure_at = now
            if self._state is CircuitState.HALF_OPEN:
                self._open(now)
                return
            if self._state is CircuitState.OPEN:
                return
            self._failure_times.append(now)
            self._prune(now)
            if len(self._failure_times) >= self.config.failure_threshold:
                self._open(now)

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run *fn* through the breaker; raise CircuitOpenError without calling it when OPEN."""
        if not self.allow_request():
            raise CircuitOpenError(self.name, retry_in=self.retry_in())
        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    # ── Manual control ───────────────────────────────────

    def force_open(self) -> None:
        with self._lock:
            self._open(self._clock())

    def force_closed(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_times.clear()
            self._half_open_successes = 0
            self._opened_at = None

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_times.clear()
            self._half_open_successes = 0
            self._opened_at = None
            self._last_failure_at = None
            self._total_requests = 0
            self._total_failures = 0
            self._total_successes = 0
            self._rejected = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            now = self._clock()
            self._refresh(now)
            self._prune(now)
            return {
                "name": self.name,
                "state": self._state.value,
                "recent_failures": len(self._failure_times),
                "half_open_successes": self._half_open_successes,
                "total_requests": self._total_requests,
                "total_failures": self._total_failures,
                "total_successes": self._total_successes,
                "rejected": self._rejected,
                "last_failure_at": self._last_failure_at,
            }


class CircuitBreakerRegistry:
    """Owns one breaker per source name. Not a global: create one per bridge."""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None, clock: Clock = time.monotonic):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, self.config, clock=self._clock)
                self._breakers[name] = breaker
            return breaker

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._breakers)

    def stats(self) -> dict[str, dict[str, Any]]:
        return {name: self.get(name).stats() for name in self.names()}

    def reset_all(self) -> None:
        for name in self.names():
            self.get(name).reset()
