"""
LLM Provider Layer - Multi-Provider Abstraction
===============================================

Unified text-generation interface used for workflow candidate proposals
and LLM-backed predictions:
- OpenAI-compatible (OpenAI, Moonshot, local servers)
- Anthropic (Claude)

Usage:
    from llm import ProviderRouter, LLMMessage

    router = ProviderRouter()
    response = router.chat([LLMMessage(role="user", content="Pick a workflow")])
    if not response.is_error:
        print(response.content)

Output is advisory only: every answer is validated by the caller and
replaced by a deterministic fallback when unusable.
"""

from .provider_base import (
    ProviderBase,
    LLMMessage,
    LLMResponse,
    ResponseFormat,
    extract_json,
)
from .router import ProviderRouter, TaskType, build_router_from_settings, quick_chat
from .provider_anthropic import AnthropicProvider
from .provider_openai import OpenAIProvider

__all__ = [
    # Base classes
    "ProviderBase",
    "LLMMessage",
    "LLMResponse",
    "ResponseFormat",
    "extract_json",
    # Providers
    "AnthropicProvider",
    "OpenAIProvider",
    # Routing
    "ProviderRouter",
    "TaskType",
    "build_router_from_settings",
    "quick_chat",
]
