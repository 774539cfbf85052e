"""
OpenAI-Compatible Provider
==========================

Supports the OpenAI API and compatible endpoints (Moonshot, vLLM, LM Studio)
through OPENAI_BASE_URL. Rate-limit and transient errors are retried by the
client's own backoff.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .provider_base import (
    ProviderBase,
    LLMMessage,
    LLMResponse,
    ResponseFormat,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(ProviderBase):
    """OpenAI-compatible chat completions provider."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = 3,
    ):
        """
        Initialize OpenAI-compatible provider.

        Args:
            model: Model name (OPENAI_MODEL env, else DEFAULT_MODEL)
            temperature: Sampling temperature (0.0-1.0)
            max_tokens: Maximum output tokens
            timeout: Request timeout in seconds
            api_key: API key (defaults to env var)
            base_url: API base URL for compatible servers
            max_retries: Client retries on 429/5xx
        """
        super().__init__(
            model or os.environ.get("OPENAI_MODEL", self.DEFAULT_MODEL),
            temperature, max_tokens, timeout,
        )
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._base_url = base_url or os.environ.get("OPENAI_BASE_URL")
        self._max_retries = max_retries
        self._client: Optional[OpenAI] = None

    @property
    def provider_name(self) -> str:
        return "openai"

    def _get_client(self) -> OpenAI:
        """Lazy-create the OpenAI client."""
        if self._client is None:
            kwargs: Dict[str, Any] = {
                "api_key": self._api_key or "sk-no-key-required",
                "timeout": self.timeout,
                "max_retries": self._max_retries,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def is_available(self) -> bool:
        """Check that an API key is configured."""
        if self._available is None:
            self._available = bool(self._api_key)
        return self._available

    def chat(
        self,
        messages: List[LLMMessage],
        response_format: ResponseFormat = ResponseFormat.TEXT,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        api_messages = [{"role": m.role, "content": m.content} for m in messages]

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": api_messages,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if response_format == ResponseFormat.JSON:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._get_client().chat.completions.create(**kwargs)
            choice = response.choices[0]
            usage = response.usage
            return LLMResponse(
                content=choice.message.content or "",
                input_tokens=getattr(usage, "prompt_tokens", 0) if usage else 0,
                output_tokens=getattr(usage, "completion_tokens", 0) if usage else 0,
                model=self.model,
                finish_reason=choice.finish_reason or "stop",
                raw_response=response,
            )
        except Exception as e:
            logger.error(f"OpenAI API call failed: {e}")
            return LLMResponse(
                content="",
                model=self.model,
                finish_reason="error",
            )
