"""
Text-generation client used for the qualitative report.

One provider (the Anthropic Messages API over httpx). Timeouts and 429s
are retried through RetryExecutor; any other HTTP error surfaces at once.
The report generator treats every failure raised here as recoverable and
falls back to its local template.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import structlog

from fincoach.core.config import settings
from fincoach.core.exceptions import LLMRateLimitError, LLMTimeoutError
from fincoach.core.retry import RetryExecutor

log = structlog.get_logger(__name__)

ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """What the report generator needs from a text-generation provider."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """Return a single completion for ``prompt``; overrides apply to this call only."""


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, (LLMTimeoutError, LLMRateLimitError))


def _first_text(data: Dict[str, Any]) -> str:
    for block in data.get("content") or []:
        if block.get("type", "text") == "text":
            return block.get("text", "")
    return ""


class AnthropicClient(LLMClient):
    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        retry: Optional[RetryExecutor] = None,
        base_url: str = ANTHROPIC_BASE_URL,
    ):
        """
        Args:
            model: Model id (defaults to settings.report_model)
            temperature: Sampling temperature
            max_tokens: Completion token cap
            timeout: Per-request timeout in seconds
            api_key: Defaults to settings.anthropic_api_key
            retry: Policy for timeouts and 429s (one retry by default)
            base_url: API root

        Raises:
            ValueError: If no API key is available
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        self.model = model or settings.report_model
        self.temperature = (
            temperature if temperature is not None else settings.report_temperature
        )
        self.max_tokens = max_tokens or settings.report_max_tokens
        self.timeout = timeout or settings.report_timeout
        self.retry = retry or RetryExecutor(max_retries=1, base_delay=1.0)
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Raises:
            LLMTimeoutError: Still timing out after the retry budget
            LLMRateLimitError: Still rate limited after the retry budget
            httpx.HTTPStatusError: Any other error status (not retried)
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        return await self.retry.execute(
            lambda: self._send(payload, timeout or self.timeout),
            should_retry=_is_transient,
        )

    async def _send(self, payload: Dict[str, Any], timeout: float) -> LLMResponse:
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    f"{self.base_url}/messages", headers=self._headers(), json=payload
                )
                response.raise_for_status()
        except httpx.TimeoutException as e:
            log.warning("report_llm_timeout", model=self.model, timeout_seconds=timeout)
            raise LLMTimeoutError(f"Report generation timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                log.warning("report_llm_rate_limited", model=self.model)
                raise LLMRateLimitError("Report model rate limit exceeded") from e
            log.error(
                "report_llm_http_error", model=self.model, status_code=e.response.status_code
            )
            raise

        data = response.json()
        usage = data.get("usage") or {}
        result = LLMResponse(
            content=_first_text(data),
            model=data.get("model", self.model),
            usage={
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
            },
            latency_ms=(time.perf_counter() - started) * 1000,
            raw_response=data,
        )
        log.info(
            "report_llm_call_complete",
            model=result.model,
            latency_ms=round(result.latency_ms, 2),
            **result.usage,
        )
        return result


def get_report_llm_client() -> Optional[LLMClient]:
    """Client for qualitative reports, or None when no API key is configured."""
    if not settings.anthropic_api_key:
        log.info("report_llm_disabled", reason="no_api_key")
        return None
    return AnthropicClient()
