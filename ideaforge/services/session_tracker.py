"""
Session Tracker — per-session call accounting for the enrichment bridge.

Metrics are created on first use and only ever added to. Sessions idle
for longer than idle_timeout are evicted lazily on the next write.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, Field

from ideaforge.errors import ExternalSourceError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class SessionError(BaseModel):
    timestamp: datetime
    topic: str = ""
    source: str = ""
    error_type: str = ""
    message: str = ""
    context: dict[str, Any] = {}


class SessionMetrics(BaseModel):
    session_id: str
    started_at: datetime
    last_activity: datetime
    request_count: int = 0
    success_count: int = 0
    retried_success_count: int = 0
    failure_count: int = 0
    short_circuit_count: int = 0
    cancelled_count: int = 0
    topics: list[str] = []
    per_topic_latencies: dict[str, list[float]] = Field(default_factory=dict)
    error_log: list[SessionError] = []
    total_response_ms: float = 0.0

    @property
    def average_response_ms(self) -> float:
        samples = sum(len(v) for v in self.per_topic_latencies.values())
        return self.total_response_ms / samples if samples else 0.0


class SessionTracker:
    def __init__(
        self,
        idle_timeout: Optional[float] = 300.0,
        error_log_limit: int = 50,
        clock: Clock = time.time,
    ):
        self.idle_timeout = idle_timeout
        self.error_log_limit = error_log_limit
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, SessionMetrics] = {}
        self._last_seen: dict[str, float] = {}

    # ── Internal ─────────────────────────────────────────

    def _now(self) -> tuple[float, datetime]:
        ts = self._clock()
        return ts, datetime.fromtimestamp(ts, tz=timezone.utc)

    def _touch(self, session_id: str, topic: str = "") -> SessionMetrics:
        """Caller holds the lock."""
        ts, now = self._now()
        self._evict_idle_locked(ts)
        metrics = self._sessions.get(session_id)
        if metrics is None:
            metrics = SessionMetrics(session_id=session_id, started_at=now, last_activity=now)
            self._sessions[session_id] = metrics
            logger.debug(f"[TRACKER] New session {session_id}")
        metrics.last_activity = now
        self._last_seen[session_id] = ts
        if topic and topic not in metrics.topics:
            metrics.topics.append(topic)
        return metrics

    def _log_error(
        self,
        metrics: SessionMetrics,
        topic: str,
        source: str,
        error: Union[BaseException, str],
        context: Optional[Mapping[str, Any]],
    ) -> None:
        if isinstance(error, ExternalSourceError):
            details = {**error.context, **(context or {})}
            if error.status_code is not None:
                details.setdefault("status_code", error.status_code)
            message, error_type = error.message, type(error).__name__
        elif isinstance(error, BaseException):
            details, message, error_type = dict(context or {}), str(error), type(error).__name__
        else:
            details, message, error_type = dict(context or {}), error, "Error"
        metrics.error_log.append(SessionError(
            timestamp=metrics.last_activity,
            topic=topic,
            source=source,
            error_type=error_type,
            message=message,
            context=details,
        ))
        if len(metrics.error_log) > self.error_log_limit:
            del metrics.error_log[: len(metrics.error_log) - self.error_log_limit]

    def _evict_idle_locked(self, ts: float) -> list[str]:
        if not self.idle_timeout:
            return []
        expired = [sid for sid, seen in self._last_seen.items() if ts - seen > self.idle_timeout]
        for sid in expired:
            self._sessions.pop(sid, None)
            self._last_seen.pop(sid, None)
        if expired:
            logger.info(f"[TRACKER] Evicted {len(expired)} idle sessions")
        return expired

    # ── Recording ────────────────────────────────────────

    def track_request(self, session_id: str, topic: str) -> None:
        with self._lock:
            self._touch(session_id, topic).request_count += 1

    def track_success(self, session_id: str, topic: str, latency_ms: float, attempts: int = 1) -> None:
        with self._lock:
            metrics = self._touch(session_id, topic)
            metrics.success_count += 1
            if attempts > 1:
                metrics.retried_success_count += 1
            metrics.per_topic_latencies.setdefault(topic, []).append(latency_ms)
            metrics.total_response_ms += latency_ms

    def track_failure(
        self,
        session_id: str,
        topic: str,
        error: Union[BaseException, str],
        latency_ms: Optional[float] = None,
        source: str = "",
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        with self._lock:
            metrics = self._touch(session_id, topic)
            metrics.failure_count += 1
            if latency_ms is not None:
                metrics.per_topic_latencies.setdefault(topic, []).append(latency_ms)
                metrics.total_response_ms += latency_ms
            self._log_error(metrics, topic, source, error, context)

    def track_error(
        self,
        session_id: str,
        topic: str,
        error: Union[BaseException, str],
        source: str = "",
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Log an error without counting a failed request."""
        with self._lock:
            metrics = self._touch(session_id, topic)
            self._log_error(metrics, topic, source, error, context)

    def track_cancelled(self, session_id: str, topic: str, latency_ms: float, source: str = "") -> None:
        """Close out a request whose call was cancelled mid-flight."""
        with self._lock:
            metrics = self._touch(session_id, topic)
            metrics.cancelled_count += 1
            self._log_error(
                metrics, topic, source, "request cancelled",
                {"cancelled": True, "latency_ms": round(latency_ms, 1)},
            )

    def track_short_circuit(self, session_id: str, topic: str, source: str) -> None:
        with self._lock:
            metrics = self._touch(session_id, topic)
            metrics.short_circuit_count += 1
            self._log_error(metrics, topic, source, f"circuit open for {source}", {"short_circuit": True})

    # ── Reading ──────────────────────────────────────────

    def get_session_metrics(self, session_id: str) -> Optional[SessionMetrics]:
        """A copy; mutating it does not affect the tracker."""
        with self._lock:
            metrics = self._sessions.get(session_id)
            return metrics.model_copy(deep=True) if metrics else None

    def get_all_sessions(self) -> dict[str, SessionMetrics]:
        with self._lock:
            return {sid: m.model_copy(deep=True) for sid, m in self._sessions.items()}

    def get_stats(self, active_within: float = 3600.0) -> dict[str, Any]:
        with self._lock:
            ts = self._clock()
            topics: Counter[str] = Counter()
            for metrics in self._sessions.values():
                topics.update(metrics.topics)
            return {
                "total_sessions": len(self._sessions),
                "active_sessions": sum(
                    1 for seen in self._last_seen.values() if ts - seen <= active_within
                ),
                "total_requests": sum(m.request_count for m in self._sessions.values()),
                "total_failures": sum(m.failure_count for m in self._sessions.values()),
                "total_short_circuits": sum(m.short_circuit_count for m in self._sessions.values()),
                "total_cancelled": sum(m.cancelled_count for m in self._sessions.values()),
                "top_topics": [topic for topic, _ in topics.most_common(10)],
            }

    def get_error_sessions(self) -> list[str]:
        with self._lock:
            return [sid for sid, m in self._sessions.items() if m.error_log]

    def export_session_data(self, session_id: str) -> Optional[str]:
        with self._lock:
            metrics = self._sessions.get(session_id)
            return metrics.model_dump_json(indent=2) if metrics else None

    # ── Housekeeping ─────────────────────────────────────

    def evict_idle(self) -> list[str]:
        with self._lock:
            return self._evict_idle_locked(self._clock())

    def clear_session(self, session_id: str) -> bool:
        with self._lock:
            self._last_seen.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._last_seen.clear()
