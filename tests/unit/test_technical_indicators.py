"""
Tests for technical indicators, per-indicator votes and the summary.
"""

import math

import numpy as np
import pandas as pd
import pytest

from analysis.technical import (
    MIN_BARS,
    IndicatorSignal,
    analyze,
    bollinger_signal,
    ema_signal,
    macd,
    macd_signal,
    rsi,
    rsi_signal,
    sma_signal,
    stochastic_signal,
    summarize,
)


def ramp(n, start=100.0, step=1.0):
    closes = start + step * np.arange(n)
    return pd.DataFrame({
        'timestamp': pd.date_range('2024-01-01', periods=n, freq='D'),
        'close': closes,
        'high': closes + 0.5,
        'low': closes - 0.5,
    })


# =============================================================================
# Indicators
# =============================================================================

class TestIndicators:
    def test_rsi_pinned_at_100_without_down_moves(self):
        values = rsi(ramp(30)['close'])
        assert values.iloc[:14].isna().all()
        assert values.iloc[-1] == pytest.approx(100.0)

    def test_rsi_flat_window_is_50(self):
        flat = pd.Series([10.0] * 30)
        assert rsi(flat).iloc[-1] == pytest.approx(50.0)

    def test_rsi_balanced_moves(self):
        closes = pd.Series([100.0 + (1 if i % 2 else 0) for i in range(40)])
        assert rsi(closes).iloc[-1] == pytest.approx(50.0, abs=5)

    def test_macd_masked_until_slow_window(self):
        out = macd(ramp(60)['close'])
        assert out.iloc[:25].isna().all().all()
        assert out.iloc[25:].notna().all().all()


# =============================================================================
# Votes
# =============================================================================

class TestSignals:
    @pytest.mark.parametrize('value,direction', [(80, 'sell'), (20, 'buy'), (50, 'neutral'),
                                                 (float('nan'), 'neutral')])
    def test_rsi(self, value, direction):
        assert rsi_signal(value).direction == direction

    def test_rsi_strength(self):
        assert rsi_signal(85).strength == pytest.approx(0.5)
        assert rsi_signal(15).strength == pytest.approx(0.5)

    def test_macd_strength_relative_to_price(self):
        sig = macd_signal(1.0, 0.5, 0.5, price=100.0)
        assert sig.direction == 'buy'
        assert sig.strength == pytest.approx(0.5)
        assert macd_signal(1.0, 0.5, 5.0, price=100.0).strength == 1.0

    def test_macd_sell_and_degenerate(self):
        assert macd_signal(-1.0, -0.5, -0.5, price=100.0).direction == 'sell'
        assert macd_signal(1.0, 0.5, 0.5, price=0.0).direction == 'neutral'
        assert macd_signal(float('nan'), 0.5, 0.5, price=10.0).direction == 'neutral'

    def test_bollinger(self):
        assert bollinger_signal(111, 110, 90).direction == 'sell'
        assert bollinger_signal(89, 110, 90).direction == 'buy'
        assert bollinger_signal(100, 110, 90).direction == 'neutral'

    def test_moving_averages(self):
        assert sma_signal(105, 100, 95).direction == 'buy'
        assert sma_signal(90, 95, 100).direction == 'sell'
        assert sma_signal(100, 95, 101).direction == 'neutral'
        assert ema_signal(2, 1).direction == 'buy'
        assert ema_signal(1, 2).direction == 'sell'

    def test_stochastic_needs_both_lines(self):
        assert stochastic_signal(85, 90).direction == 'sell'
        assert stochastic_signal(10, 15).direction == 'buy'
        assert stochastic_signal(85, 70).direction == 'neutral'


class TestSummary:
    """Stronger side wins when its average strength exceeds 0.3."""

    def test_buy_side_wins(self):
        summary = summarize({'a': IndicatorSignal('buy', 0.6), 'b': IndicatorSignal('sell', 0.2),
                             'c': IndicatorSignal('neutral', 0.0)}, price=10.0)
        assert summary.direction == 'buy'
        assert summary.strength == pytest.approx(0.6)
        assert summary.signal_count == {'buy': 1, 'sell': 1, 'neutral': 1}

    def test_weak_votes_stay_neutral(self):
        summary = summarize({'a': IndicatorSignal('buy', 0.25)}, price=10.0)
        assert summary.direction == 'neutral'
        assert summary.strength == 0.0

    def test_tie_is_neutral(self):
        summary = summarize({'a': IndicatorSignal('buy', 0.5), 'b': IndicatorSignal('sell', 0.5)}, 1.0)
        assert summary.direction == 'neutral'


# =============================================================================
# Snapshot
# =============================================================================

class TestAnalyze:
    def test_short_frame_is_neutral(self):
        snap = analyze(ramp(MIN_BARS - 1))
        assert snap.insufficient_data is True
        assert snap.summary.direction == 'neutral'
        assert snap.summary.price == pytest.approx(100.0 + MIN_BARS - 2)
        assert len(snap.signals) == 6

    def test_empty_frame(self):
        snap = analyze(pd.DataFrame({'close': []}))
        assert snap.insufficient_data is True
        assert snap.summary.price == 0.0

    def test_minimum_frame_votes_on_filled_windows(self):
        snap = analyze(ramp(MIN_BARS))
        assert snap.insufficient_data is False
        # 50-day SMA and 26-day MACD windows are not filled yet
        assert snap.signals['sma'].direction == 'neutral'
        assert snap.signals['macd'].direction == 'neutral'
        assert math.isnan(snap.indicators['sma50'])

    def test_full_frame(self, sample_ohlcv_data):
        snap = analyze(sample_ohlcv_data)

        assert set(snap.signals) == {'rsi', 'macd', 'bb', 'sma', 'ema', 'stoch'}
        assert snap.summary.direction in ('buy', 'sell', 'neutral')
        assert sum(snap.summary.signal_count.values()) == 6
        assert snap.summary.price == pytest.approx(sample_ohlcv_data['close'].iloc[-1])
        assert 0 <= snap.indicators['rsi'] <= 100

    def test_missing_high_low_uses_close(self):
        bars = ramp(40).drop(columns=['high', 'low'])
        snap = analyze(bars)
        assert snap.signals['stoch'].direction == 'sell'

    def test_deterministic(self, sample_ohlcv_data):
        assert analyze(sample_ohlcv_data).to_dict() == analyze(sample_ohlcv_data).to_dict()
