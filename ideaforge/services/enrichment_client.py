"""
Enrichment client — async HTTP access to the n8n research webhooks.

Every call posts

    {query, sessionId, options: {limit, sortBy, timeWindow, sourceFilters}}

to <base_url>/<webhook_path>/<source path> and expects

    {status: success|error|rateLimited, data?: {items, totalCount}, metadata: {cached, durationMs}}

Transport and protocol failures are mapped onto the ExternalSourceError
family so the retry policy can classify them.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ideaforge.config import Settings, get_settings
from ideaforge.errors import (
    AuthenticationError,
    ExternalSourceError,
    RateLimitError,
    SourceConnectionError,
    SourceHTTPError,
    SourceTimeoutError,
)
from ideaforge.models.enums import SourceStatus

logger = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    limit: int = 30
    sort_by: str = "relevance"
    time_window: str = "year"
    source_filters: dict[str, Any] = {}

    def to_payload(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "sortBy": self.sort_by,
            "timeWindow": self.time_window,
            "sourceFilters": self.source_filters,
        }


class SourceData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]] = []
    total_count: int = Field(default=0, alias="totalCount")


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    cached: bool = False
    duration_ms: float = Field(default=0.0, alias="durationMs")
    retry_after: Optional[float] = Field(default=None, alias="retryAfter")


class SourceResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    status: SourceStatus
    data: Optional[SourceData] = None
    metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
    error: Optional[str] = None

    @property
    def items(self) -> list[dict[str, Any]]:
        return self.data.items if self.data else []


class EnrichmentClient:
    """Thin async wrapper around httpx for the enrichment webhooks."""

    def __init__(self, settings: Optional[Settings] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings or get_settings()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self.settings.enrichment_timeout_seconds)

    async def __aenter__(self) -> EnrichmentClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def url_for(self, path: str) -> str:
        base = self.settings.enrichment_base_url.rstrip("/")
        hook = self.settings.enrichment_webhook_path.strip("/")
        return f"{base}/{hook}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.enrichment_api_key:
            headers["X-API-Key"] = self.settings.enrichment_api_key
        return headers

    async def search(
        self,
        source: str,
        path: str,
        query: str,
        session_id: str,
        options: Optional[SearchOptions] = None,
    ) -> SourceResponse:
        options = options or SearchOptions()
        payload = {"query": query, "sessionId": session_id, "options": options.to_payload()}
        url = self.url_for(path)
        logger.debug(f"[ENRICH:{source}] POST {url} query={query!r}")

        try:
            response = await self._client.post(
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.settings.enrichment_timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise SourceTimeoutError(source, f"Request timed out: {exc}", context={"url": url}) from exc
        except httpx.TransportError as exc:
            raise SourceConnectionError(source, f"Connection failed: {exc}", context={"url": url}) from exc

        self._raise_for_status(source, response)

        try:
            parsed = SourceResponse.model_validate(response.json())
        except ValueError as exc:
            raise ExternalSourceError(source, f"Malformed response body: {exc}", response.status_code) from exc

        if parsed.status is SourceStatus.RATE_LIMITED:
            retry_after = parsed.metadata.retry_after or _retry_after(response)
            raise RateLimitError(source, retry_after=retry_after)
        if parsed.status is SourceStatus.ERROR:
            raise ExternalSourceError(source, parsed.error or "Source reported an error", response.status_code)

        logger.debug(
            f"[ENRICH:{source}] {len(parsed.items)} items | cached={parsed.metadata.cached} | "
            f"{parsed.metadata.duration_ms:.0f}ms"
        )
        return parsed

    @staticmethod
    def _raise_for_status(source: str, response: httpx.Response) -> None:
        code = response.status_code
        if code < 400:
            return
        if code == 429:
            raise RateLimitError(source, retry_after=_retry_after(response))
        if code in (401, 403):
            raise AuthenticationError(source, f"HTTP {code}: check the enrichment API key", status_code=code)
        raise SourceHTTPError(source, code, f"HTTP {code}: {response.text[:200]}")


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
