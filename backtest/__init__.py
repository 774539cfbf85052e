"""
Backtest module.

Provides the walk-forward evaluator that scores workflow variants against
historical price series.
"""
from __future__ import annotations

from .walk_forward import (
    EvaluationResult,
    TradeRecord,
    WalkForwardConfig,
    WalkForwardEvaluator,
    sharpe,
)

__all__ = [
    'EvaluationResult',
    'TradeRecord',
    'WalkForwardConfig',
    'WalkForwardEvaluator',
    'sharpe',
]
