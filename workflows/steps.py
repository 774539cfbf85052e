"""
Step and handler registries.

Steps are small units declaring the artifact they need and the artifact
they produce. Handlers are named callables that run a fixed recipe; each
handler also declares the step list it is equivalent to, so transformations
can rewrite it declaratively.

Both registries are populated at import time from this module only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Sequence, Tuple

from analysis.technical import analyze
from core.exceptions import CatalogError, WorkflowExecutionError
from workflows.context import StepContext

logger = logging.getLogger(__name__)

FETCH_BARS = "fetch_bars"
TECHNICAL = "technical"
FETCH_NEWS = "fetch_news"
SENTIMENT = "sentiment"
PREDICT = "predict"

# Roughly six months of trading days for the light analysis recipe
LIGHT_WINDOW = 126


@dataclass(frozen=True)
class StepSpec:
    name: str
    fn: Callable
    requires: Tuple[str, ...]
    provides: str


@dataclass(frozen=True)
class HandlerSpec:
    name: str
    fn: Callable
    equivalent_steps: Tuple[str, ...]
    description: str = ""


_STEPS: Dict[str, StepSpec] = {}
_HANDLERS: Dict[str, HandlerSpec] = {}


def register_step(name: str, provides: str, requires: Sequence[str] = ()):
    def decorator(fn):
        _STEPS[name] = StepSpec(name=name, fn=fn, requires=tuple(requires), provides=provides)
        return fn
    return decorator


def register_handler(name: str, equivalent_steps: Sequence[str], description: str = ""):
    def decorator(fn):
        _HANDLERS[name] = HandlerSpec(
            name=name, fn=fn, equivalent_steps=tuple(equivalent_steps), description=description
        )
        return fn
    return decorator


def get_step(name: str) -> StepSpec:
    try:
        return _STEPS[name]
    except KeyError:
        raise CatalogError(f"Unknown step {name!r}", context={"known": sorted(_STEPS)}) from None


def get_handler(name: str) -> HandlerSpec:
    try:
        return _HANDLERS[name]
    except KeyError:
        raise CatalogError(f"Unknown handler {name!r}", context={"known": sorted(_HANDLERS)}) from None


def step_names() -> Tuple[str, ...]:
    return tuple(_STEPS)


def handler_names() -> Tuple[str, ...]:
    return tuple(_HANDLERS)


def run_step(name: str, ctx: StepContext, variant) -> StepContext:
    spec = get_step(name)
    missing = [a for a in spec.requires if not ctx.has(a)]
    if missing:
        raise WorkflowExecutionError(
            f"Step {name!r} requires {missing}",
            context={"symbol": ctx.symbol, "trace": list(ctx.trace)},
        )
    return spec.fn(ctx, variant)


def run_steps(steps: Sequence[str], ctx: StepContext, variant) -> StepContext:
    for name in steps:
        ctx = run_step(name, ctx, variant)
    return ctx


# =============================================================================
# Steps
# =============================================================================

@register_step(FETCH_BARS, provides="bars")
def fetch_bars(ctx: StepContext, variant) -> StepContext:
    if ctx.history is not None:
        bars = ctx.history
    else:
        bars = ctx.services.price_feed.fetch(ctx.symbol, ctx.services.period).bars
    return ctx.with_artifact(FETCH_BARS, bars=bars)


@register_step(TECHNICAL, provides="tech", requires=("bars",))
def technical(ctx: StepContext, variant) -> StepContext:
    return ctx.with_artifact(TECHNICAL, tech=analyze(ctx.bars))


@register_step(FETCH_NEWS, provides="news")
def fetch_news(ctx: StepContext, variant) -> StepContext:
    return ctx.with_artifact(FETCH_NEWS, news=ctx.services.news_feed.fetch(ctx.symbol))


@register_step(SENTIMENT, provides="sentiment", requires=("news",))
def sentiment(ctx: StepContext, variant) -> StepContext:
    return ctx.with_artifact(SENTIMENT, sentiment=ctx.services.sentiment.analyze(ctx.news))


@register_step(PREDICT, provides="prediction")
def predict(ctx: StepContext, variant) -> StepContext:
    return ctx.with_artifact(PREDICT, prediction=ctx.services.predictor.predict(ctx, variant))


# =============================================================================
# Handlers
# =============================================================================

@register_handler(
    "light_analysis",
    equivalent_steps=(FETCH_BARS, TECHNICAL, PREDICT),
    description="Technical-only call on the most recent six months of bars",
)
def light_analysis(ctx: StepContext, variant) -> StepContext:
    ctx = run_step(FETCH_BARS, ctx, variant)
    ctx = ctx.with_artifact("window", bars=ctx.bars.tail(LIGHT_WINDOW))
    ctx = run_step(TECHNICAL, ctx, variant)
    return run_step(PREDICT, ctx, variant)


@register_handler(
    "sentiment_driven",
    equivalent_steps=(FETCH_NEWS, SENTIMENT, PREDICT),
    description="Headline sentiment call, confidence blended with sentiment confidence",
)
def sentiment_driven(ctx: StepContext, variant) -> StepContext:
    ctx = run_steps((FETCH_NEWS, SENTIMENT, PREDICT), ctx, variant)
    blended = (ctx.prediction.confidence + ctx.sentiment.confidence) / 2
    prediction = _with_confidence(ctx.prediction, blended)
    return ctx.with_artifact("blend", prediction=prediction)


@register_handler(
    "full_analysis",
    equivalent_steps=(FETCH_BARS, TECHNICAL, FETCH_NEWS, SENTIMENT, PREDICT),
    description="Technical and sentiment analysis feeding one prediction",
)
def full_analysis(ctx: StepContext, variant) -> StepContext:
    return run_steps((FETCH_BARS, TECHNICAL, FETCH_NEWS, SENTIMENT, PREDICT), ctx, variant)


def _with_confidence(prediction, confidence: float):
    return replace(prediction, confidence=round(float(confidence), 4))


def light_prediction(ctx: StepContext, variant) -> Optional[object]:
    """Prediction of the light analysis recipe, used by ensembles."""
    return light_analysis(ctx, variant).prediction
