"""
Variant Catalog.

A closed, ordered set of named workflow variants. Entries come only from
code: the built-in templates below, or variants derived from them by
registered transformations and admitted after validation. Nothing supplied
at runtime is ever executed.

Usage:
    from workflows.catalog import default_catalog

    catalog = default_catalog()
    technical = catalog.get("technical")
    catalog.names()   # ('technical', 'sentiment', 'full', 'quick', 'sentiment_driven')
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import CatalogError, ConfigurationError
from workflows.steps import (
    FETCH_BARS,
    FETCH_NEWS,
    PREDICT,
    SENTIMENT,
    TECHNICAL,
    get_handler,
    get_step,
)
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)


BUILTIN_VARIANTS: List[WorkflowVariant] = [
    WorkflowVariant(
        name="technical",
        steps=(FETCH_BARS, TECHNICAL, PREDICT),
        description="Price bars, technical indicators, prediction",
    ),
    WorkflowVariant(
        name="sentiment",
        steps=(FETCH_NEWS, SENTIMENT, PREDICT),
        description="Headlines, sentiment, prediction",
    ),
    WorkflowVariant(
        name="full",
        steps=(FETCH_BARS, TECHNICAL, FETCH_NEWS, SENTIMENT, PREDICT),
        prompt_style="multi_factor",
        description="Technical and sentiment analysis combined",
    ),
]


def register_workflow(name: str, handler: str, **tunables) -> WorkflowVariant:
    """Add a handler-backed built-in variant."""
    spec = get_handler(handler)
    variant = WorkflowVariant(name=name, handler=handler, description=spec.description, **tunables)
    BUILTIN_VARIANTS.append(variant)
    return variant


register_workflow("quick", handler="light_analysis")
register_workflow("sentiment_driven", handler="sentiment_driven")


def validate_variant(variant: WorkflowVariant) -> None:
    """Raise CatalogError unless every step/handler referenced is registered."""
    if variant.handler is not None:
        get_handler(variant.handler)
    for step in variant.steps:
        get_step(step)


class VariantCatalog:
    """Ordered, thread-safe registry of workflow variants."""

    def __init__(self, variants: Iterable[WorkflowVariant] = ()):
        self._variants: Dict[str, WorkflowVariant] = {}
        self._lock = threading.Lock()
        for variant in variants:
            self.register(variant)

    def register(self, variant: WorkflowVariant) -> WorkflowVariant:
        validate_variant(variant)
        with self._lock:
            if variant.name in self._variants:
                raise CatalogError(f"Duplicate variant name {variant.name!r}")
            self._variants[variant.name] = variant
        return variant

    def admit(self, variant: WorkflowVariant) -> WorkflowVariant:
        """
        Admit a derived variant.

        Returns the stored entry: an existing variant with the same name or
        the same key wins, otherwise the new variant is validated and added.
        """
        validate_variant(variant)
        with self._lock:
            existing = self._variants.get(variant.name)
            if existing is not None:
                return existing
            for stored in self._variants.values():
                if stored.key == variant.key:
                    return stored
            self._variants[variant.name] = variant
            logger.debug(f"Admitted variant {variant.name} ({variant.key})")
        return variant

    def get(self, name: str) -> WorkflowVariant:
        with self._lock:
            variant = self._variants.get(name)
        if variant is None:
            raise CatalogError(f"Unknown variant {name!r}", context={"known": list(self.names())})
        return variant

    def find(self, name: str) -> Optional[WorkflowVariant]:
        with self._lock:
            return self._variants.get(name)

    def names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._variants)

    def first(self) -> WorkflowVariant:
        with self._lock:
            if not self._variants:
                raise ConfigurationError("Variant catalog is empty")
            return next(iter(self._variants.values()))

    def contains(self, variant: WorkflowVariant) -> bool:
        with self._lock:
            return self._variants.get(variant.name) == variant

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._variants

    def __iter__(self) -> Iterator[WorkflowVariant]:
        with self._lock:
            return iter(list(self._variants.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._variants)

    def copy(self) -> "VariantCatalog":
        return VariantCatalog(list(self))

    def describe(self) -> List[str]:
        return [f"{v.name}: {v.description or ', '.join(v.steps)}" for v in self]


def default_catalog() -> VariantCatalog:
    """Fresh catalog holding the built-in variants."""
    return VariantCatalog(BUILTIN_VARIANTS)
