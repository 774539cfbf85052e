"""
LLM Provider Router
===================

Routes text-generation requests to the first available provider in the
configured order (``llm.providers`` in base.yaml, default OpenAI-compatible
then Anthropic). When nothing is configured, chat() returns an error
response instead of raising, so callers fall back to deterministic logic.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .provider_base import ProviderBase, LLMMessage, LLMResponse
from .provider_anthropic import AnthropicProvider
from .provider_openai import OpenAIProvider

logger = logging.getLogger(__name__)


class TaskType(Enum):
    """Task types for provider selection."""
    GENERATION = "generation"   # Propose a workflow candidate
    PREDICTION = "prediction"   # Trading signal from analysis context


# Provider priority by task type
TASK_PROVIDER_PRIORITY: Dict[TaskType, List[str]] = {
    TaskType.GENERATION: ["openai", "anthropic"],
    TaskType.PREDICTION: ["openai", "anthropic"],
}


class ProviderRouter:
    """Routes LLM requests to the first available provider."""

    PROVIDER_CLASSES: Dict[str, Type[ProviderBase]] = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
    }

    def __init__(
        self,
        provider_order: Optional[List[str]] = None,
        provider_kwargs: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize router.

        Args:
            provider_order: Override provider priority for every task type
            provider_kwargs: Shared kwargs (temperature, max_tokens, timeout)
        """
        self._provider_order = provider_order
        self._provider_kwargs = provider_kwargs or {}
        self._providers: Dict[str, ProviderBase] = {}
        self._availability_cache: Dict[str, bool] = {}

    def _get_provider(self, name: str) -> Optional[ProviderBase]:
        """Get or create a provider instance."""
        if name not in self._providers:
            provider_class = self.PROVIDER_CLASSES.get(name)
            if provider_class is None:
                logger.warning(f"Unknown provider: {name}")
                return None
            self._providers[name] = provider_class(**self._provider_kwargs)
        return self._providers[name]

    def _check_availability(self, provider: ProviderBase) -> bool:
        """Check provider availability with caching."""
        cache_key = f"{provider.provider_name}:{provider.model}"
        if cache_key not in self._availability_cache:
            self._availability_cache[cache_key] = provider.is_available()
        return self._availability_cache[cache_key]

    def get_provider(
        self,
        task_type: TaskType = TaskType.GENERATION,
        provider_type: Optional[str] = None,
    ) -> Optional[ProviderBase]:
        """
        Get the best available provider for a task.

        Args:
            task_type: Type of task (affects provider selection)
            provider_type: Force specific provider (openai, anthropic)

        Returns:
            Best available provider, or None if none available
        """
        if provider_type:
            order = [provider_type]
        else:
            order = self._provider_order or TASK_PROVIDER_PRIORITY[task_type]

        for provider_name in order:
            provider = self._get_provider(provider_name)
            if provider and self._check_availability(provider):
                logger.debug(f"Selected provider: {provider_name} for {task_type.value}")
                return provider

        logger.debug(f"No provider available for task type: {task_type.value}")
        return None

    def is_available(self) -> bool:
        return self.get_provider() is not None

    def chat(
        self,
        messages: List[LLMMessage],
        task_type: TaskType = TaskType.GENERATION,
        **kwargs,
    ) -> LLMResponse:
        """Send chat request to best available provider."""
        provider = self.get_provider(task_type=task_type)
        if provider is None:
            return LLMResponse(
                content="No LLM provider available",
                finish_reason="error",
            )
        return provider.chat(messages, **kwargs)

    def chat_json(
        self,
        messages: List[LLMMessage],
        task_type: TaskType = TaskType.PREDICTION,
        **kwargs,
    ) -> LLMResponse:
        provider = self.get_provider(task_type=task_type)
        if provider is None:
            return LLMResponse(
                content="No LLM provider available",
                finish_reason="error",
            )
        return provider.chat_json(messages, **kwargs)

    def clear_availability_cache(self) -> None:
        """Clear availability cache to force re-checking."""
        self._availability_cache.clear()


# =============================================================================
# Convenience Functions
# =============================================================================

def build_router_from_settings() -> ProviderRouter:
    """Router configured from the ``llm`` settings section."""
    from config.settings_loader import get_llm_config

    cfg = get_llm_config()
    return ProviderRouter(
        provider_order=cfg["providers"],
        provider_kwargs={
            "temperature": cfg["temperature"],
            "max_tokens": cfg["max_tokens"],
            "timeout": cfg["timeout"],
        },
    )


def quick_chat(
    prompt: str,
    system: Optional[str] = None,
    router: Optional[ProviderRouter] = None,
) -> str:
    """
    Quick one-shot chat.

    Returns:
        Response text or empty string on error
    """
    messages = []
    if system:
        messages.append(LLMMessage(role="system", content=system))
    messages.append(LLMMessage(role="user", content=prompt))

    response = (router or build_router_from_settings()).chat(messages)
    return "" if response.is_error else response.content
