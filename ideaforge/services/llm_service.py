"""
LLM Service — Groq chat models for the LLM-backed stages.

  - get_llm()         → ChatGroq built from the current settings (cached per model config)
  - llm_text_call()   → cleaned text answer; empty answers are retried
  - llm_json_call()   → answer parsed into a Pydantic model

Only reached when mock_mode is off; mock runs never construct a client.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel

from ideaforge.config import Settings, get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# reasoning models on Groq prepend their chain of thought in <think> blocks
_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r"^```[\w-]*\n(.*?)\n```$", re.DOTALL)

_clients: dict[tuple[str, float, int], Any] = {}


def get_llm(settings: Optional[Settings] = None):
    settings = settings or get_settings()
    if not settings.groq_api_key:
        raise ValueError("GROQ_API_KEY is not set; enable MOCK_MODE or provide a key")

    key = (settings.llm_model, settings.llm_temperature, settings.llm_max_tokens)
    if key not in _clients:
        from langchain_groq import ChatGroq

        _clients[key] = ChatGroq(
            api_key=settings.groq_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )
        logger.info(f"[LLM] Groq client ready: {settings.llm_model} (temperature {settings.llm_temperature})")
    return _clients[key]


def clean_text(content: str) -> str:
    """Drop reasoning blocks and a wrapping code fence."""
    text = _THINK_BLOCK_RE.sub("", content).strip()
    fenced = _FENCE_RE.match(text)
    return fenced.group(1).strip() if fenced else text


def llm_text_call(prompt: str, max_retries: int = 0) -> str:
    """Ask for a plain-text answer. An empty answer is retried *max_retries* times."""
    llm = get_llm()
    attempts = max_retries + 1
    logger.debug(f"[LLM-TEXT] Prompt: {len(prompt)} chars, up to {attempts} attempts")

    for attempt in range(1, attempts + 1):
        t0 = time.perf_counter()
        response = llm.invoke(prompt)
        text = clean_text(response.content or "")
        meta = getattr(response, "response_metadata", None) or {}
        logger.info(
            f"[LLM-TEXT] attempt {attempt}/{attempts}: {len(text)} chars in "
            f"{time.perf_counter() - t0:.2f}s | finish_reason={meta.get('finish_reason', 'unknown')} | "
            f"tokens={(meta.get('token_usage') or {}).get('total_tokens', '?')}"
        )
        if text:
            return text

    logger.warning(f"[LLM-TEXT] No usable answer after {attempts} attempts")
    return ""


def llm_json_call(prompt: str, output_model: Type[T]) -> T:
    """Ask for an answer shaped like *output_model* via with_structured_output()."""
    structured = get_llm().with_structured_output(output_model)

    t0 = time.perf_counter()
    result = structured.invoke(prompt)
    logger.info(f"[LLM-JSON] {output_model.__name__} parsed in {time.perf_counter() - t0:.2f}s")
    return result
