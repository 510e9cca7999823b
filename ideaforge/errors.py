"""
Exception hierarchy.

Nothing here is allowed to terminate a run: stage failures become entries
in the error list, external failures become fallback results. These
classes exist so each layer can tell the categories apart.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class IdeaForgeError(Exception):
    """Root of every project-specific exception."""


class InputError(IdeaForgeError):
    """Absent or non-text input; there is nothing to analyse."""


class GraphDefinitionError(IdeaForgeError, ValueError):
    """A stage graph cannot be compiled as declared."""


# ── Stage failures ───────────────────────────────────────


class StageError(IdeaForgeError):
    """A stage raised; recorded and the run continues."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} error: {message}")
        self.stage = stage
        self.message = message


class FatalStageError(IdeaForgeError):
    """Raised by a stage to end the run early with a visible error."""

    def __init__(self, message: str, update: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.update = dict(update or {})


# ── External enrichment sources ──────────────────────────


class ExternalSourceError(IdeaForgeError):
    """Base for failures talking to an enrichment source."""

    retryable = False

    def __init__(
        self,
        source: str,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(f"[{source}] {message}")
        self.source = source
        self.message = message
        self.status_code = status_code
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "source": self.source,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": is_retryable(self),
            "context": self.context,
        }


class SourceHTTPError(ExternalSourceError):
    """Non-2xx response. Only 5xx is transient."""

    def __init__(self, source: str, status_code: int, message: str = "", **kwargs: Any):
        super().__init__(source, message or f"HTTP {status_code}", status_code=status_code, **kwargs)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code is not None and self.status_code >= 500


class RateLimitError(ExternalSourceError):
    retryable = True

    def __init__(self, source: str, retry_after: Optional[float] = None, message: str = "Rate limited"):
        super().__init__(source, message, status_code=429)
        self.retry_after = retry_after


class SourceTimeoutError(ExternalSourceError):
    retryable = True


class SourceConnectionError(ExternalSourceError):
    retryable = True


class AuthenticationError(ExternalSourceError):
    """401 / 403 — a configuration problem, never retried."""


class CircuitOpenError(ExternalSourceError):
    """The source's breaker is OPEN; the call was not attempted."""

    def __init__(self, source: str, retry_in: float = 0.0):
        super().__init__(source, f"Circuit open, retry in {retry_in:.1f}s")
        self.retry_in = retry_in


def is_retryable(exc: BaseException) -> bool:
    """Transient failure classes: connection, timeout, 5xx, 429."""
    if isinstance(exc, ExternalSourceError):
        return bool(exc.retryable)
    return False
