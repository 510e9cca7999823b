"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "IdeaForge Document Analysis"
    debug: bool = False
    mock_mode: bool = True  # When True, stages use deterministic heuristics instead of the LLM

    # ── LLM ──────────────────────────────────────────────
    groq_api_key: str = ""
    llm_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 4096

    # ── Parser ───────────────────────────────────────────
    parser_max_errors: int = 50

    # ── Stage Graph Engine ───────────────────────────────
    max_stage_steps: int = 100
    stage_timeout_seconds: Optional[float] = None

    # ── Enrichment service (n8n webhooks) ────────────────
    enrichment_enabled: bool = True
    enrichment_base_url: str = "http://localhost:5678"
    enrichment_webhook_path: str = "webhook"
    enrichment_api_key: str = ""
    enrichment_timeout_seconds: float = 30.0
    hackernews_path: str = "ideaforge/hackernews-search"
    reddit_path: str = "ideaforge/reddit-search"
    research_result_limit: int = 30
    research_sort_by: str = "relevance"
    research_time_window: str = "year"
    max_results_per_source: int = 10

    # ── Concurrency ──────────────────────────────────────
    max_in_flight_requests: int = 5
    research_batch_size: int = 3
    research_batch_delay_seconds: float = 1.0

    # ── Retry ────────────────────────────────────────────
    retry_max_attempts: int = 3  # retries after the first attempt
    retry_initial_delay_seconds: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay_seconds: float = 30.0
    retry_jitter: bool = True

    # ── Circuit Breaker ──────────────────────────────────
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 30.0
    breaker_success_threshold: int = 2
    breaker_window_seconds: float = 60.0

    # ── Session Tracker ──────────────────────────────────
    session_idle_timeout_seconds: float = 300.0
    session_error_log_limit: int = 50

    # ── Checkpoints ──────────────────────────────────────
    checkpoint_backend: str = "memory"  # "memory" | "mongo"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "ideaforge"
    mongodb_checkpoint_collection: str = "checkpoints"

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
