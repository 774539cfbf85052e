from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.structured_log import jlog
from workflows.executor import WorkflowExecutor
from workflows.variant import WorkflowVariant

logger = logging.getLogger(__name__)

FALLBACK_INSUFFICIENT_DATA = "insufficient_data"
FALLBACK_EVALUATION_ERROR = "evaluation_error"


@dataclass
class WalkForwardConfig:
    lookback: int = 30
    horizon: int = 30
    trade_tail: int = 10
    insufficient_data_score: float = 0.0
    error_score: float = 0.5
    period: str = "1y"

    @classmethod
    def from_settings(cls) -> "WalkForwardConfig":
        from config.settings_loader import get_backtest_config, get_data_config

        return cls(period=get_data_config()["period"], **get_backtest_config())

    def required_bars(self, horizon: Optional[int] = None) -> int:
        return self.lookback + (horizon if horizon is not None else self.horizon) + 1


@dataclass(frozen=True)
class TradeRecord:
    date: str
    signal: str
    confidence: float
    price: float
    actual_return: float
    realized_return: float
    correct: Optional[bool]   # None for hold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "signal": self.signal,
            "confidence": self.confidence,
            "price": self.price,
            "actual_return": self.actual_return,
            "realized_return": self.realized_return,
            "correct": self.correct,
        }


@dataclass(frozen=True)
class EvaluationResult:
    score: float
    total_trades: int = 0
    wins: int = 0
    win_rate: float = 0.0
    total_return: float = 0.0
    average_return: float = 0.0
    sharpe_ratio: float = 0.0
    trades: tuple = field(default=())
    steps_evaluated: int = 0
    steps_skipped: int = 0
    holds: int = 0
    synthetic: bool = False
    fallback_reason: Optional[str] = None
    symbol: str = ""
    variant: str = ""
    evaluated_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def is_fallback(self) -> bool:
        return self.fallback_reason is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "variant": self.variant,
            "score": self.score,
            "total_trades": self.total_trades,
            "wins": self.wins,
            "win_rate": self.win_rate,
            "total_return": self.total_return,
            "average_return": self.average_return,
            "sharpe_ratio": self.sharpe_ratio,
            "trades": [t.to_dict() for t in self.trades],
            "steps_evaluated": self.steps_evaluated,
            "steps_skipped": self.steps_skipped,
            "holds": self.holds,
            "synthetic": self.synthetic,
            "fallback_reason": self.fallback_reason,
            "evaluated_at": self.evaluated_at,
        }


def sharpe(returns: List[float]) -> float:
    """mean / population std; 0 when std is (numerically) 0 or undefined."""
    if not returns:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = float(arr.std(ddof=0))
    if not math.isfinite(std) or std < 1e-12:
        return 0.0
    return float(arr.mean() / std)


class WalkForwardEvaluator:
    """
    Scores a workflow variant by replaying it bar by bar.

    At each decision index i in [lookback, min(lookback + horizon, n - 1))
    the variant sees bars[0..i] and its signal is judged against the move
    from close[i] to close[i + 1]. Hold signals never count as trades.

    score = win rate over directional signals. Fallbacks: 0.0 when the
    series is shorter than lookback + horizon + 1, 0.5 when evaluation
    fails internally. Never raises.
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        config: Optional[WalkForwardConfig] = None,
        store=None,
    ):
        self.executor = executor
        self.config = config or WalkForwardConfig()
        self.store = store

    def score(self, variant: WorkflowVariant, symbol: str, horizon: Optional[int] = None) -> float:
        return self.evaluate(variant, symbol, horizon).score

    def evaluate(
        self,
        variant: WorkflowVariant,
        symbol: str,
        horizon: Optional[int] = None,
    ) -> EvaluationResult:
        try:
            history = self.executor.services.price_feed.fetch(symbol, self.config.period)
            result = self.evaluate_bars(variant, history.bars, symbol, horizon,
                                        synthetic=history.synthetic)
        except Exception as e:
            logger.error(f"Evaluation of {variant.name} on {symbol} failed: {e}")
            result = self._fallback(variant, symbol, self.config.error_score,
                                    FALLBACK_EVALUATION_ERROR)
        self._persist(result)
        return result

    def evaluate_bars(
        self,
        variant: WorkflowVariant,
        bars: pd.DataFrame,
        symbol: str,
        horizon: Optional[int] = None,
        synthetic: bool = False,
    ) -> EvaluationResult:
        horizon = self.config.horizon if horizon is None else horizon
        try:
            return self._walk(variant, bars, symbol, horizon, synthetic)
        except Exception as e:
            logger.error(f"Walk-forward of {variant.name} on {symbol} failed: {e}")
            jlog("evaluation_fallback", level="WARNING", symbol=symbol,
                 variant=variant.name, reason=FALLBACK_EVALUATION_ERROR, error=str(e))
            return self._fallback(variant, symbol, self.config.error_score,
                                  FALLBACK_EVALUATION_ERROR, synthetic)

    def _walk(
        self,
        variant: WorkflowVariant,
        bars: pd.DataFrame,
        symbol: str,
        horizon: int,
        synthetic: bool,
    ) -> EvaluationResult:
        cfg = self.config
        n = len(bars)
        if n < cfg.required_bars(horizon):
            logger.info(
                f"{symbol}: {n} bars < {cfg.required_bars(horizon)} required, "
                f"scoring {variant.name} as {cfg.insufficient_data_score}"
            )
            return self._fallback(variant, symbol, cfg.insufficient_data_score,
                                  FALLBACK_INSUFFICIENT_DATA, synthetic)

        bars = bars.reset_index(drop=True)
        closes = bars["close"].astype(float).to_numpy()
        has_ts = "timestamp" in bars.columns

        trades: List[TradeRecord] = []
        realized: List[float] = []
        wins = evaluated = skipped = holds = 0

        end = min(cfg.lookback + horizon, n - 1)
        for i in range(cfg.lookback, end):
            as_of = pd.Timestamp(bars["timestamp"].iloc[i]) if has_ts else None
            try:
                prediction = self.executor.predict(
                    variant, symbol, history=bars.iloc[: i + 1], as_of=as_of
                )
            except Exception as e:
                logger.debug(f"{symbol} step {i} skipped for {variant.name}: {e}")
                skipped += 1
                continue
            if prediction is None:
                skipped += 1
                continue

            evaluated += 1
            actual = (closes[i + 1] - closes[i]) / closes[i]
            if prediction.signal == "buy":
                value, correct = actual, actual > 0
            elif prediction.signal == "sell":
                value, correct = -actual, actual < 0
            else:
                holds += 1
                value, correct = 0.0, None

            if correct is not None:
                realized.append(float(value))
                wins += int(correct)

            trades.append(TradeRecord(
                date=str(as_of.date()) if as_of is not None else str(i),
                signal=prediction.signal,
                confidence=float(prediction.confidence),
                price=float(closes[i]),
                actual_return=float(actual),
                realized_return=float(value),
                correct=correct,
            ))

        total = len(realized)
        win_rate = wins / total if total else 0.0
        total_return = float(sum(realized))
        tail = tuple(trades[-cfg.trade_tail:]) if cfg.trade_tail > 0 else ()

        return EvaluationResult(
            score=win_rate,
            total_trades=total,
            wins=wins,
            win_rate=win_rate,
            total_return=total_return,
            average_return=total_return / total if total else 0.0,
            sharpe_ratio=sharpe(realized),
            trades=tail,
            steps_evaluated=evaluated,
            steps_skipped=skipped,
            holds=holds,
            synthetic=synthetic,
            symbol=symbol,
            variant=variant.name,
        )

    def _fallback(
        self,
        variant: WorkflowVariant,
        symbol: str,
        score: float,
        reason: str,
        synthetic: bool = False,
    ) -> EvaluationResult:
        return EvaluationResult(
            score=score,
            fallback_reason=reason,
            synthetic=synthetic,
            symbol=symbol,
            variant=variant.name,
        )

    def _persist(self, result: EvaluationResult) -> None:
        if self.store is None:
            return
        try:
            self.store.save_evaluation(result.to_dict())
        except OSError as e:
            logger.warning(f"Could not persist evaluation for {result.symbol}: {e}")
