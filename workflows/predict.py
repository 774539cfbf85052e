"""
Prediction providers.

RulePredictor turns the technical summary and headline sentiment into a
buy/sell/hold call deterministically. LLMPredictor asks a text provider for
the same JSON shape and falls back to the rule output whenever the answer
is missing or malformed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from llm.provider_base import LLMMessage, extract_json

logger = logging.getLogger(__name__)

SIGNALS = ("buy", "sell", "hold")

# Weights for the multi_factor style
TECH_WEIGHT = 0.6
SENTIMENT_WEIGHT = 0.4
# Minimum combined conviction before leaving hold
SIGNAL_CUTOFF = 0.1


@dataclass(frozen=True)
class Prediction:
    signal: str
    confidence: float
    reasoning: str = ""
    source: str = "rule"
    risk_level: str = "medium"
    key_factors: tuple = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal": self.signal,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "source": self.source,
            "risk_level": self.risk_level,
            "key_factors": list(self.key_factors),
        }


class PredictionProvider(Protocol):
    def predict(self, ctx, variant) -> Prediction:
        ...


def _tech_vote(ctx) -> Optional[float]:
    if ctx.tech is None:
        return None
    summary = ctx.tech.summary
    if summary.direction == "buy":
        return summary.strength
    if summary.direction == "sell":
        return -summary.strength
    return 0.0


def _sentiment_vote(ctx) -> Optional[float]:
    if ctx.sentiment is None:
        return None
    # sentiment_score is 0..1 around 0.5; scale to -1..1 and damp by confidence
    return (ctx.sentiment.sentiment_score - 0.5) * 2 * ctx.sentiment.confidence


class RulePredictor:
    """Deterministic composite of technical and sentiment votes."""

    name = "rule"

    def combine(self, ctx, prompt_style: str = "standard") -> float:
        tech = _tech_vote(ctx)
        sent = _sentiment_vote(ctx)
        if tech is None and sent is None:
            return 0.0
        if tech is None:
            return sent
        if sent is None:
            return tech
        if prompt_style == "multi_factor":
            return TECH_WEIGHT * tech + SENTIMENT_WEIGHT * sent
        # standard: technicals lead, sentiment breaks a neutral tape
        return tech if tech != 0.0 else sent

    def predict(self, ctx, variant) -> Prediction:
        score = self.combine(ctx, variant.prompt_style)
        if score > SIGNAL_CUTOFF:
            signal = "buy"
        elif score < -SIGNAL_CUTOFF:
            signal = "sell"
        else:
            signal = "hold"

        factors: List[str] = []
        if ctx.tech is not None:
            factors.append(f"technical:{ctx.tech.summary.direction}")
        if ctx.sentiment is not None:
            factors.append(f"sentiment:{ctx.sentiment.overall_sentiment}")

        strength = abs(score)
        return Prediction(
            signal=signal,
            confidence=round(min(0.95, 0.5 + strength / 2), 4),
            reasoning=f"composite score {score:+.3f} ({variant.prompt_style})",
            source=self.name,
            risk_level="low" if strength > 0.6 else "medium" if strength > 0.3 else "high",
            key_factors=tuple(factors),
        )


SYSTEM_PROMPT = (
    "You are an experienced quantitative trading analyst. Produce a next-day "
    "trading signal from the data provided, weighing risk against reward."
)


def build_prediction_prompt(ctx, variant) -> str:
    lines = [f"Instrument: {ctx.symbol}", f"As of: {ctx.as_of}"]
    if ctx.tech is not None:
        s = ctx.tech.summary
        lines.append(
            f"Technical: direction={s.direction} strength={s.strength:.2f} price={s.price:.2f} "
            f"votes={s.signal_count} rsi={ctx.tech.indicators.get('rsi', float('nan')):.1f}"
        )
    if ctx.sentiment is not None:
        sent = ctx.sentiment
        lines.append(
            f"Sentiment: {sent.overall_sentiment} score={sent.sentiment_score:.2f} "
            f"impact={sent.market_impact} key_words={', '.join(sent.key_words) or 'n/a'}"
        )
    if ctx.bars is not None and len(ctx.bars) >= 2:
        last, prev = ctx.bars["close"].iloc[-1], ctx.bars["close"].iloc[-2]
        lines.append(f"Market: close={last:.2f} change={(last - prev) / prev * 100:+.2f}%")
    if variant.prompt_style == "multi_factor":
        lines.append("Weigh technical, sentiment and market factors together before deciding.")
    lines.append(
        'Return JSON: {"signal": "buy|sell|hold", "confidence": 0.0-1.0, '
        '"reasoning": "...", "risk_level": "low|medium|high", "key_factors": ["..."]}'
    )
    return "\n".join(lines)


def parse_prediction(payload: Optional[Dict[str, Any]], source: str) -> Optional[Prediction]:
    """Validate a model answer; None when unusable."""
    if not payload:
        return None
    signal = str(payload.get("signal", "")).strip().lower()
    if signal not in SIGNALS:
        return None
    try:
        confidence = float(payload.get("confidence"))
    except (TypeError, ValueError):
        return None
    if not 0.0 <= confidence <= 1.0:
        return None
    factors = payload.get("key_factors") or []
    return Prediction(
        signal=signal,
        confidence=confidence,
        reasoning=str(payload.get("reasoning", "")),
        source=source,
        risk_level=str(payload.get("risk_level", "medium")),
        key_factors=tuple(str(f) for f in factors) if isinstance(factors, list) else (),
    )


class LLMPredictor:
    """Chat-model prediction with a rule-based fallback."""

    name = "llm"

    def __init__(self, service, fallback: Optional[RulePredictor] = None):
        self.service = service
        self.fallback = fallback or RulePredictor()

    def predict(self, ctx, variant) -> Prediction:
        messages = [
            LLMMessage(role="system", content=SYSTEM_PROMPT),
            LLMMessage(role="user", content=build_prediction_prompt(ctx, variant)),
        ]
        try:
            response = self.service.chat_json(messages)
            parsed = None if response.is_error else parse_prediction(
                extract_json(response.content), source=self.name
            )
        except Exception as e:
            logger.warning(f"LLM prediction failed for {ctx.symbol}: {e}")
            parsed = None
        if parsed is None:
            return self.fallback.predict(ctx, variant)
        return parsed


def build_predictor(kind: str = "rule") -> PredictionProvider:
    if kind == "llm":
        from llm.router import build_router_from_settings

        return LLMPredictor(build_router_from_settings())
    return RulePredictor()
