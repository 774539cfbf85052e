"""
Anthropic Claude Provider
=========================

Claude integration via the Messages API. Used as the second text provider
when no OpenAI-compatible key is configured.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import anthropic

from .provider_base import (
    ProviderBase,
    LLMMessage,
    LLMResponse,
    ResponseFormat,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(ProviderBase):
    """Claude provider via Anthropic API."""

    DEFAULT_MODEL = "claude-3-5-haiku-20241022"

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        api_key: Optional[str] = None,
    ):
        super().__init__(
            model or os.environ.get("ANTHROPIC_MODEL", self.DEFAULT_MODEL),
            temperature, max_tokens, timeout,
        )
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._client: Optional[anthropic.Anthropic] = None

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def _get_client(self) -> Optional[anthropic.Anthropic]:
        """Lazy-create the Anthropic client."""
        if self._client is None:
            if self._api_key:
                self._client = anthropic.Anthropic(
                    api_key=self._api_key,
                    timeout=self.timeout,
                )
            else:
                logger.warning("ANTHROPIC_API_KEY not set")
        return self._client

    def is_available(self) -> bool:
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
        """
        Send chat request to Claude.

        System messages are lifted into the ``system`` parameter; JSON mode
        is requested through the system prompt (see ProviderBase.chat_json).
        """
        client = self._get_client()
        if client is None:
            return LLMResponse(
                content="",
                model=self.model,
                finish_reason="error",
            )

        system_content = ""
        api_messages = []
        for msg in messages:
            if msg.role == "system":
                system_content = msg.content
            else:
                api_messages.append({"role": msg.role, "content": msg.content})

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": api_messages,
            "temperature": temperature if temperature is not None else self.temperature,
        }
        if system_content:
            kwargs["system"] = system_content

        try:
            response = client.messages.create(**kwargs)

            content = ""
            for block in response.content:
                if hasattr(block, "text"):
                    content = block.text

            return LLMResponse(
                content=content,
                input_tokens=getattr(response.usage, "input_tokens", 0),
                output_tokens=getattr(response.usage, "output_tokens", 0),
                model=self.model,
                finish_reason=response.stop_reason or "stop",
                raw_response=response,
            )

        except Exception as e:
            logger.error(f"Anthropic API call failed: {e}")
            return LLMResponse(
                content="",
                model=self.model,
                finish_reason="error",
            )
