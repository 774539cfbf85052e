"""
Candidate generation.

Turns the tree-search result into the round's candidate. When a text
generation service is configured it is asked to pick the next workflow
from the catalog; the answer is validated and, on any failure, timeout or
unknown name, replaced by the instrument's ranked preference list and then
the catalog's first entry. generate() never raises and always returns a
catalog member.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from core.exceptions import GenerationError
from llm.provider_base import LLMMessage, LLMResponse, extract_json
from workflows.catalog import VariantCatalog
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)

SOURCE_SERVICE = "service"
SOURCE_SEARCH = "search"
SOURCE_PREFERENCE = "preference"
SOURCE_DEFAULT = "catalog_default"

SYSTEM_PROMPT = (
    "You optimize quantitative trading workflows. Choose the next workflow "
    "to evaluate from the catalog provided. Answer with JSON: "
    '{"workflow": "<catalog name>", "reason": "..."}'
)


@dataclass(frozen=True)
class GenerationResult:
    variant: WorkflowVariant
    source: str
    error: Optional[str] = None


def _default_preferences(symbol: str) -> List[str]:
    from config.settings_loader import get_preferences

    return get_preferences(symbol)


class CandidateGenerator:
    def __init__(
        self,
        catalog: VariantCatalog,
        service=None,
        timeout: float = 20.0,
        preferences: Optional[Callable[[str], Sequence[str]]] = None,
    ):
        self.catalog = catalog
        self.service = service
        self.timeout = timeout
        self.preferences = preferences or _default_preferences

    def generate(
        self,
        symbol: str,
        searched: WorkflowVariant,
        current: Optional[WorkflowVariant] = None,
        current_score: Optional[float] = None,
    ) -> GenerationResult:
        if self.service is None:
            if self.catalog.contains(searched):
                return GenerationResult(searched, SOURCE_SEARCH)
            return self.fallback(symbol, "searched variant not in catalog")

        try:
            return GenerationResult(self._ask_service(symbol, searched, current, current_score),
                                    SOURCE_SERVICE)
        except GenerationError as e:
            logger.warning(f"Generation for {symbol} fell back: {e}")
            return self.fallback(symbol, e.message)

    def fallback(self, symbol: str, reason: str) -> GenerationResult:
        for name in self.preferences(symbol):
            variant = self.catalog.find(name)
            if variant is not None:
                return GenerationResult(variant, SOURCE_PREFERENCE, reason)
        return GenerationResult(self.catalog.first(), SOURCE_DEFAULT, reason)

    def build_prompt(
        self,
        symbol: str,
        searched: WorkflowVariant,
        current: Optional[WorkflowVariant],
        current_score: Optional[float],
    ) -> str:
        lines = [f"Instrument: {symbol}"]
        if current is not None:
            score = f"{current_score:.2%}" if current_score is not None else "n/a"
            lines.append(f"Current workflow: {current.name} (win rate {score})")
        lines.append(f"Tree search suggests: {searched.name}")
        lines.append("Catalog:")
        lines.extend(f"- {entry}" for entry in self.catalog.describe())
        return "\n".join(lines)

    def _ask_service(
        self,
        symbol: str,
        searched: WorkflowVariant,
        current: Optional[WorkflowVariant],
        current_score: Optional[float],
    ) -> WorkflowVariant:
        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(role="user", content=self.build_prompt(symbol, searched, current, current_score)),
        ]
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wfo-generate")
        try:
            future = pool.submit(self.service.chat, messages)
            response = future.result(timeout=self.timeout)
        except FutureTimeout:
            raise GenerationError("Generation timed out",
                                  context={"symbol": symbol, "timeout": self.timeout}) from None
        except Exception as e:
            raise GenerationError("Generation service failed",
                                  context={"symbol": symbol}, cause=e) from e
        finally:
            pool.shutdown(wait=False)

        if not isinstance(response, LLMResponse) or not isinstance(response.content, str):
            raise GenerationError("Generation service returned a malformed answer",
                                  context={"symbol": symbol, "answer": repr(response)[:80]})
        if response.is_error:
            raise GenerationError("Generation service returned an error",
                                  context={"symbol": symbol, "content": response.content[:80]})

        name = self._parse_name(response.content)
        variant = self.catalog.find(name) if name else None
        if variant is None:
            raise GenerationError("Generated workflow is not in the catalog",
                                  context={"symbol": symbol, "answer": (name or response.content)[:80]})
        return variant

    def _parse_name(self, content: str) -> Optional[str]:
        payload = extract_json(content)
        if payload and isinstance(payload.get("workflow"), str):
            return payload["workflow"].strip()
        text = content.strip().strip("`'\" \n")
        return text if text in self.catalog else None
