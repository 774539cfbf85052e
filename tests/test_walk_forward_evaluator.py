"""
Tests for the walk-forward backtest evaluator.

The 40-bar alternating series makes every expected number hand-computable:
the close rises into odd bars and falls into even bars, so from decision
index i the next move is up exactly when i is even.
"""
from unittest.mock import MagicMock

import pytest

from backtest.walk_forward import (
    FALLBACK_EVALUATION_ERROR,
    FALLBACK_INSUFFICIENT_DATA,
    WalkForwardConfig,
    WalkForwardEvaluator,
    sharpe,
)
from optimization.results_store import ResultStore
from workflows.executor import WorkflowExecutor
from workflows.predict import Prediction
from workflows.variant import WorkflowVariant

BARS_ONLY = WorkflowVariant(name='bars_only', steps=('fetch_bars', 'predict'))


class ReversalPredictor:
    """Bets against the last move; always right on an alternating tape."""

    def predict(self, ctx, variant):
        closes = ctx.bars['close']
        signal = 'sell' if closes.iloc[-1] > closes.iloc[-2] else 'buy'
        return Prediction(signal=signal, confidence=0.9, source='reversal')


class ExplodingPredictor:
    def predict(self, ctx, variant):
        raise RuntimeError('model offline')


def _evaluator(make_services, predictor, bars=None, **cfg):
    services = make_services(bars={'TEST': bars} if bars is not None else None,
                             predictor=predictor)
    config = WalkForwardConfig(lookback=30, horizon=9, **cfg)
    return WalkForwardEvaluator(WorkflowExecutor(services), config)


# =============================================================================
# Alternating series scenario
# =============================================================================

class TestAlternatingScenario:
    """lookback=30, horizon=9 on 40 alternating bars."""

    def test_visits_indices_30_to_38(self, make_services, always_predictor, alternating_bars):
        """Each decision sees bars[0..i] for i = 30..38."""
        predictor = always_predictor('buy')
        evaluator = _evaluator(make_services, predictor)

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert predictor.seen_lengths == list(range(31, 40))
        assert result.steps_evaluated == 9
        assert result.steps_skipped == 0

    def test_always_buy_win_rate(self, make_services, always_predictor, alternating_bars):
        """Buy wins on even indices 30, 32, 34, 36, 38: 5 of 9."""
        evaluator = _evaluator(make_services, always_predictor('buy'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.total_trades == 9
        assert result.wins == 5
        assert result.score == pytest.approx(5 / 9)
        assert result.win_rate == result.score
        assert not result.is_fallback

    def test_always_sell_win_rate(self, make_services, always_predictor, alternating_bars):
        """Sell wins on the odd indices: 4 of 9."""
        evaluator = _evaluator(make_services, always_predictor('sell'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.wins == 4
        assert result.score == pytest.approx(4 / 9)

    def test_reversal_is_always_right(self, make_services, alternating_bars):
        evaluator = _evaluator(make_services, ReversalPredictor())

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.total_trades == 9
        assert result.score == 1.0
        assert all(t.correct for t in result.trades)
        assert result.total_return == pytest.approx(sum(abs(t.actual_return) for t in result.trades))

    def test_realized_returns_and_sharpe(self, make_services, always_predictor, alternating_bars):
        evaluator = _evaluator(make_services, always_predictor('buy'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        realized = [t.realized_return for t in result.trades]
        assert result.total_return == pytest.approx(sum(realized))
        assert result.average_return == pytest.approx(sum(realized) / 9)
        assert result.sharpe_ratio == pytest.approx(sharpe(realized))

    def test_trade_tail_is_bounded(self, make_services, always_predictor, alternating_bars):
        evaluator = _evaluator(make_services, always_predictor('buy'), trade_tail=4)

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert len(result.trades) == 4
        assert result.total_trades == 9
        assert result.trades[-1].date == str(alternating_bars['timestamp'].iloc[38].date())


# =============================================================================
# Hold policy and confidence gate
# =============================================================================

class TestHoldPolicy:
    """Hold is never counted as a win or a trade."""

    def test_all_holds_score_zero(self, make_services, always_predictor, alternating_bars):
        evaluator = _evaluator(make_services, always_predictor('hold'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.total_trades == 0
        assert result.holds == 9
        assert result.score == 0.0
        assert result.sharpe_ratio == 0.0
        assert all(t.correct is None and t.realized_return == 0.0 for t in result.trades)

    def test_low_confidence_becomes_hold(self, make_services, always_predictor, alternating_bars):
        """0.55 confidence is under the default 0.6 gate."""
        evaluator = _evaluator(make_services, always_predictor('buy', confidence=0.55))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.holds == 9
        assert result.total_trades == 0

    def test_lower_gate_lets_signal_through(self, make_services, always_predictor, alternating_bars):
        variant = WorkflowVariant(name='bars_only_05', steps=('fetch_bars', 'predict'),
                                  min_confidence=0.5)
        evaluator = _evaluator(make_services, always_predictor('buy', confidence=0.55))

        result = evaluator.evaluate_bars(variant, alternating_bars, 'TEST')

        assert result.total_trades == 9


# =============================================================================
# Fallbacks
# =============================================================================

class TestFallbacks:
    """Short series score 0.0, internal failures score 0.5, nothing raises."""

    def test_short_series_scores_zero(self, make_services, always_predictor, alternating_bars):
        evaluator = _evaluator(make_services, always_predictor('buy'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars.head(39), 'TEST')

        assert result.score == 0.0
        assert result.fallback_reason == FALLBACK_INSUFFICIENT_DATA

    def test_exact_minimum_length_is_evaluated(self, make_services, always_predictor, alternating_bars):
        config = WalkForwardConfig(lookback=30, horizon=9)
        assert config.required_bars() == 40

        evaluator = _evaluator(make_services, always_predictor('buy'))
        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.fallback_reason is None

    def test_failing_steps_are_skipped(self, make_services, alternating_bars):
        evaluator = _evaluator(make_services, ExplodingPredictor())

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars, 'TEST')

        assert result.steps_skipped == 9
        assert result.steps_evaluated == 0
        assert result.score == 0.0
        assert result.fallback_reason is None

    def test_broken_frame_scores_neutral(self, make_services, always_predictor, alternating_bars):
        evaluator = _evaluator(make_services, always_predictor('buy'))

        result = evaluator.evaluate_bars(BARS_ONLY, alternating_bars.drop(columns=['close']), 'TEST')

        assert result.score == 0.5
        assert result.fallback_reason == FALLBACK_EVALUATION_ERROR

    def test_feed_failure_scores_neutral(self, make_services, always_predictor):
        services = make_services(predictor=always_predictor('buy'))
        services.price_feed = MagicMock()
        services.price_feed.fetch.side_effect = RuntimeError('feed crashed')
        evaluator = WalkForwardEvaluator(WorkflowExecutor(services), WalkForwardConfig())

        result = evaluator.evaluate(BARS_ONLY, 'TEST')

        assert result.score == 0.5
        assert result.fallback_reason == FALLBACK_EVALUATION_ERROR

    def test_unreachable_source_uses_synthetic_series(self, make_services, always_predictor):
        """Synthetic 1y history (365 bars) is long enough and flagged."""
        services = make_services(predictor=always_predictor('buy'), fail=['TEST'])
        evaluator = WalkForwardEvaluator(WorkflowExecutor(services),
                                         WalkForwardConfig(lookback=30, horizon=9))

        result = evaluator.evaluate(BARS_ONLY, 'TEST')

        assert result.synthetic is True
        assert 0.0 <= result.score <= 1.0
        assert result.steps_evaluated == 9


# =============================================================================
# Determinism and persistence
# =============================================================================

class TestEvaluatorDeterminism:
    def test_same_series_same_score(self, offline_services):
        evaluator = WalkForwardEvaluator(WorkflowExecutor(offline_services),
                                         WalkForwardConfig(lookback=30, horizon=20))
        variant = WorkflowVariant(name='technical', steps=('fetch_bars', 'technical', 'predict'))

        first = evaluator.evaluate(variant, 'TEST')
        second = evaluator.evaluate(variant, 'TEST')

        assert first.score == second.score
        assert first.to_dict()['trades'] == second.to_dict()['trades']

    def test_short_horizon_override(self, make_services, always_predictor, alternating_bars):
        predictor = always_predictor('buy')
        evaluator = _evaluator(make_services, predictor, bars=alternating_bars)

        result = evaluator.evaluate(BARS_ONLY, 'TEST', horizon=3)

        assert predictor.seen_lengths == [31, 32, 33]
        assert result.total_trades == 3

    def test_evaluation_is_persisted(self, make_services, always_predictor, alternating_bars, tmp_path):
        services = make_services(bars={'TEST': alternating_bars}, predictor=always_predictor('buy'))
        store = ResultStore(tmp_path / 'storage')
        evaluator = WalkForwardEvaluator(WorkflowExecutor(services),
                                         WalkForwardConfig(lookback=30, horizon=9), store=store)

        evaluator.evaluate(BARS_ONLY, 'TEST')

        files = list((tmp_path / 'storage' / 'evaluations' / 'TEST').glob('bars_only_*.json'))
        assert len(files) == 1


class TestSharpe:
    def test_zero_for_empty_or_flat(self):
        assert sharpe([]) == 0.0
        assert sharpe([0.01, 0.01, 0.01]) == 0.0

    @pytest.mark.parametrize('value', [0.1, -0.1, 0.07, 1e-3])
    def test_zero_for_constant_with_rounding_noise(self, value):
        assert sharpe([value] * 3) == 0.0
        assert sharpe([value] * 7) == 0.0

    def test_population_std(self):
        # mean 0.01, population std 0.01
        assert sharpe([0.02, 0.0]) == pytest.approx(1.0)
