"""
LLM Provider Base - Abstract Interface
======================================

Defines the abstract base class for text-generation providers used to
propose workflow candidates and to produce LLM-backed predictions.
All providers must implement: provider_name, is_available(), chat()
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ResponseFormat(Enum):
    """Output format for LLM responses."""
    TEXT = "text"
    JSON = "json"


@dataclass
class LLMMessage:
    """A message in a conversation."""
    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    finish_reason: str = ""
    raw_response: Optional[Any] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error" or not self.content


_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(content: str) -> Optional[Dict[str, Any]]:
    """
    Pull the first JSON object out of model output.

    Handles bare JSON, fenced ```json blocks and prose around an object.
    Returns None when nothing parseable is found.
    """
    if not content:
        return None
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass
    match = _JSON_BLOCK.search(text)
    if match is None:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class ProviderBase(ABC):
    """
    Abstract base class for all LLM providers.

    Subclasses must implement:
    - provider_name (property): String identifier
    - is_available(): Check if provider can be used
    - chat(): Main chat interface

    Providers never raise from chat(); failures come back as an
    LLMResponse with finish_reason="error".
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ):
        """
        Initialize provider.

        Args:
            model: Model identifier
            temperature: Sampling temperature (0.0-1.0)
            max_tokens: Maximum output tokens
            timeout: Request timeout in seconds
        """
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._available: Optional[bool] = None

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return provider identifier (openai, anthropic)."""

    @abstractmethod
    def is_available(self) -> bool:
        """True if an API key or endpoint is configured."""

    @abstractmethod
    def chat(
        self,
        messages: List[LLMMessage],
        response_format: ResponseFormat = ResponseFormat.TEXT,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Send a chat request to the LLM.

        Args:
            messages: Conversation history
            response_format: Desired output format
            temperature: Override default temperature
            max_tokens: Override default max tokens

        Returns:
            LLMResponse with content and metadata
        """

    def chat_json(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """Chat with JSON response mode."""
        json_instruction = "Respond with valid JSON only. No additional text."
        enhanced_messages = list(messages)

        if enhanced_messages and enhanced_messages[0].role == "system":
            enhanced_messages[0] = LLMMessage(
                role="system",
                content=f"{enhanced_messages[0].content}\n\n{json_instruction}",
            )
        else:
            enhanced_messages.insert(0, LLMMessage(role="system", content=json_instruction))

        return self.chat(
            enhanced_messages,
            response_format=ResponseFormat.JSON,
            temperature=temperature or 0.0,  # Low temp for structured output
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r}, available={self._available})"
