"""
Workflow transformations.

Each transformation maps a variant to a new variant. Handler variants are
first expanded to their equivalent step list, so every result is
declarative. A transformation may produce a pipeline whose step order no
longer satisfies data dependencies (``reorder_nodes``); such variants fail
at execution time and score accordingly.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Tuple

from core.exceptions import CatalogError
from workflows.steps import (
    FETCH_BARS,
    FETCH_NEWS,
    PREDICT,
    SENTIMENT,
    TECHNICAL,
    get_handler,
)
from workflows.variant import CONFIDENCE_LEVELS, WorkflowVariant

ENRICHMENT_STEPS = (TECHNICAL, SENTIMENT, FETCH_NEWS)

Transformation = Callable[[WorkflowVariant, str], WorkflowVariant]

TRANSFORMATIONS: Dict[str, Transformation] = {}


def transformation(name: str):
    def decorator(fn: Transformation) -> Transformation:
        TRANSFORMATIONS[name] = fn
        return fn
    return decorator


def expand_steps(variant: WorkflowVariant) -> Tuple[str, ...]:
    """Step list of a variant, expanding handlers to their equivalents."""
    if variant.handler is not None:
        return get_handler(variant.handler).equivalent_steps
    return variant.steps


def _insert_before_predict(steps: List[str], *new: str) -> List[str]:
    missing = [s for s in new if s not in steps]
    if not missing:
        return steps
    at = steps.index(PREDICT) if PREDICT in steps else len(steps)
    return steps[:at] + missing + steps[at:]


def _derive(variant: WorkflowVariant, action: str, steps: List[str], **changes) -> WorkflowVariant:
    if PREDICT not in steps:
        steps = steps + [PREDICT]
    return variant.derive(action, steps=tuple(steps), handler=None, **changes)


@transformation("add_technical_analysis")
def add_technical_analysis(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    steps = _insert_before_predict(list(expand_steps(variant)), FETCH_BARS, TECHNICAL)
    return _derive(variant, action, steps)


@transformation("add_sentiment_analysis")
def add_sentiment_analysis(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    steps = _insert_before_predict(list(expand_steps(variant)), FETCH_NEWS, SENTIMENT)
    return _derive(variant, action, steps)


@transformation("add_news_fetch")
def add_news_fetch(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    steps = _insert_before_predict(list(expand_steps(variant)), FETCH_NEWS)
    return _derive(variant, action, steps)


@transformation("modify_prompt")
def modify_prompt(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    style = "standard" if variant.prompt_style == "multi_factor" else "multi_factor"
    return _derive(variant, action, list(expand_steps(variant)), prompt_style=style)


@transformation("change_confidence_threshold")
def change_confidence_threshold(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    levels = list(CONFIDENCE_LEVELS)
    if variant.min_confidence in levels:
        nxt = levels[(levels.index(variant.min_confidence) + 1) % len(levels)]
    else:
        nxt = levels[0]
    return _derive(variant, action, list(expand_steps(variant)), min_confidence=nxt)


@transformation("add_ensemble")
def add_ensemble(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    return _derive(variant, action, list(expand_steps(variant)), ensemble=True)


@transformation("remove_node")
def remove_node(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    """Drop sentiment if present, else the last enrichment step."""
    steps = list(expand_steps(variant))
    if SENTIMENT in steps:
        steps.remove(SENTIMENT)
    else:
        for name in reversed(steps):
            if name in ENRICHMENT_STEPS:
                steps.remove(name)
                break
    return _derive(variant, action, steps)


@transformation("reorder_nodes")
def reorder_nodes(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    """Swap the bar fetch and technical analysis steps."""
    steps = list(expand_steps(variant))
    if FETCH_BARS in steps and TECHNICAL in steps:
        i, j = steps.index(FETCH_BARS), steps.index(TECHNICAL)
        steps[i], steps[j] = steps[j], steps[i]
    return _derive(variant, action, steps)


def transformation_names() -> Tuple[str, ...]:
    return tuple(TRANSFORMATIONS)


def apply_transformation(variant: WorkflowVariant, action: str) -> WorkflowVariant:
    try:
        fn = TRANSFORMATIONS[action]
    except KeyError:
        raise CatalogError(f"Unknown transformation {action!r}") from None
    return fn(variant, action)
