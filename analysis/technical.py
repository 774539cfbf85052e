"""
Technical Indicators and Signals
================================

Computes RSI(14), MACD(12,26,9), Bollinger Bands(20,2), SMA(20/50),
EMA(12/26) and Stochastic(14,3) on a daily bar frame, converts each
indicator into a directional vote and aggregates the votes into a
summary direction.

An indicator whose window is not yet filled votes neutral. Frames shorter
than MIN_BARS produce an all-neutral snapshot.

Usage:
    from analysis.technical import analyze

    snap = analyze(bars)
    snap.summary.direction   # 'buy' | 'sell' | 'neutral'
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np
import pandas as pd

MIN_BARS = 20
SUMMARY_STRENGTH_THRESHOLD = 0.3


@dataclass
class IndicatorSignal:
    direction: str   # buy | sell | neutral
    strength: float
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {'direction': self.direction, 'strength': self.strength, 'value': self.value}


@dataclass
class TechnicalSummary:
    direction: str
    strength: float
    price: float
    signal_count: Dict[str, int] = field(default_factory=dict)


@dataclass
class TechnicalSnapshot:
    indicators: Dict[str, float]
    signals: Dict[str, IndicatorSignal]
    summary: TechnicalSummary
    insufficient_data: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'indicators': dict(self.indicators),
            'signals': {k: v.to_dict() for k, v in self.signals.items()},
            'summary': {
                'direction': self.summary.direction,
                'strength': self.summary.strength,
                'price': self.summary.price,
                'signal_count': dict(self.summary.signal_count),
            },
            'insufficient_data': self.insufficient_data,
        }


# =============================================================================
# Indicators
# =============================================================================

def sma(s: pd.Series, n: int) -> pd.Series:
    return s.rolling(n, min_periods=n).mean()


def ema(s: pd.Series, n: int) -> pd.Series:
    return s.ewm(span=n, adjust=False).mean()


def rsi(c: pd.Series, n: int = 14) -> pd.Series:
    delta = c.diff()
    up = delta.clip(lower=0).rolling(n, min_periods=n).mean()
    down = (-delta.clip(upper=0)).rolling(n, min_periods=n).mean()
    rs = up / down.replace(0, np.nan)
    out = 100 - (100 / (1 + rs))
    # No down moves in the window: pinned at 100 (or 50 for a flat window)
    flat = pd.Series(np.where(up > 0, 100.0, 50.0), index=c.index)
    return out.where(down != 0, flat).where(down.notna())


def macd(c: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> pd.DataFrame:
    line = ema(c, fast) - ema(c, slow)
    sig = line.ewm(span=signal, adjust=False).mean()
    out = pd.DataFrame({'macd': line, 'signal': sig, 'histogram': line - sig})
    # EMA seeds from the first bar; mask until the slow window is filled
    out.iloc[: slow - 1] = np.nan
    return out


def bollinger(c: pd.Series, n: int = 20, k: float = 2.0) -> pd.DataFrame:
    mid = sma(c, n)
    sd = c.rolling(n, min_periods=n).std(ddof=0)
    return pd.DataFrame({'upper': mid + k * sd, 'middle': mid, 'lower': mid - k * sd})


def stochastic(df: pd.DataFrame, n: int = 14, d: int = 3) -> pd.DataFrame:
    hh = df['high'].rolling(n, min_periods=n).max()
    ll = df['low'].rolling(n, min_periods=n).min()
    rng = (hh - ll).replace(0, np.nan)
    k = 100 * (df['close'] - ll) / rng
    return pd.DataFrame({'k': k, 'd': k.rolling(d, min_periods=d).mean()})


# =============================================================================
# Signals
# =============================================================================

def _missing(*values: float) -> bool:
    return any(v is None or (isinstance(v, float) and math.isnan(v)) for v in values)


def rsi_signal(value: float) -> IndicatorSignal:
    if _missing(value):
        return IndicatorSignal('neutral', 0.0, None)
    if value > 70:
        return IndicatorSignal('sell', (value - 70) / 30, value)
    if value < 30:
        return IndicatorSignal('buy', (30 - value) / 30, value)
    return IndicatorSignal('neutral', 0.0, value)


def macd_signal(line: float, signal: float, hist: float, price: float) -> IndicatorSignal:
    value = {'macd': line, 'signal': signal, 'histogram': hist}
    if _missing(line, signal, hist) or price <= 0:
        return IndicatorSignal('neutral', 0.0, value)
    # Histogram relative to 1% of price
    strength = min(abs(hist) / (0.01 * price), 1.0)
    if line > signal and hist > 0:
        return IndicatorSignal('buy', strength, value)
    if line < signal and hist < 0:
        return IndicatorSignal('sell', strength, value)
    return IndicatorSignal('neutral', 0.0, value)


def bollinger_signal(price: float, upper: float, lower: float) -> IndicatorSignal:
    value = {'price': price, 'upper': upper, 'lower': lower}
    if _missing(upper, lower):
        return IndicatorSignal('neutral', 0.0, value)
    if price > upper:
        return IndicatorSignal('sell', 0.8, value)
    if price < lower:
        return IndicatorSignal('buy', 0.8, value)
    return IndicatorSignal('neutral', 0.0, value)


def sma_signal(price: float, sma20: float, sma50: float) -> IndicatorSignal:
    value = {'price': price, 'sma20': sma20, 'sma50': sma50}
    if _missing(sma20, sma50):
        return IndicatorSignal('neutral', 0.0, value)
    if price > sma20 > sma50:
        return IndicatorSignal('buy', 0.6, value)
    if price < sma20 < sma50:
        return IndicatorSignal('sell', 0.6, value)
    return IndicatorSignal('neutral', 0.0, value)


def ema_signal(ema12: float, ema26: float) -> IndicatorSignal:
    value = {'ema12': ema12, 'ema26': ema26}
    if _missing(ema12, ema26):
        return IndicatorSignal('neutral', 0.0, value)
    if ema12 > ema26:
        return IndicatorSignal('buy', 0.5, value)
    if ema12 < ema26:
        return IndicatorSignal('sell', 0.5, value)
    return IndicatorSignal('neutral', 0.0, value)


def stochastic_signal(k: float, d: float) -> IndicatorSignal:
    value = {'k': k, 'd': d}
    if _missing(k, d):
        return IndicatorSignal('neutral', 0.0, value)
    if k > 80 and d > 80:
        return IndicatorSignal('sell', 0.7, value)
    if k < 20 and d < 20:
        return IndicatorSignal('buy', 0.7, value)
    return IndicatorSignal('neutral', 0.0, value)


def summarize(signals: Dict[str, IndicatorSignal], price: float) -> TechnicalSummary:
    """Average the strength of buy and sell votes; the stronger side wins above 0.3."""
    buys = [s for s in signals.values() if s.direction == 'buy']
    sells = [s for s in signals.values() if s.direction == 'sell']
    buy_strength = sum(s.strength for s in buys) / len(buys) if buys else 0.0
    sell_strength = sum(s.strength for s in sells) / len(sells) if sells else 0.0

    direction, strength = 'neutral', 0.0
    if buy_strength > sell_strength and buy_strength > SUMMARY_STRENGTH_THRESHOLD:
        direction, strength = 'buy', buy_strength
    elif sell_strength > buy_strength and sell_strength > SUMMARY_STRENGTH_THRESHOLD:
        direction, strength = 'sell', sell_strength

    return TechnicalSummary(
        direction=direction,
        strength=float(strength),
        price=float(price),
        signal_count={
            'buy': len(buys),
            'sell': len(sells),
            'neutral': len(signals) - len(buys) - len(sells),
        },
    )


def neutral_snapshot(price: float = 0.0) -> TechnicalSnapshot:
    signals = {name: IndicatorSignal('neutral', 0.0, None)
               for name in ('rsi', 'macd', 'bb', 'sma', 'ema', 'stoch')}
    return TechnicalSnapshot(
        indicators={},
        signals=signals,
        summary=summarize(signals, price),
        insufficient_data=True,
    )


def analyze(bars: pd.DataFrame) -> TechnicalSnapshot:
    """Compute indicators on ``bars`` and vote on the last bar."""
    if bars is None or len(bars) == 0:
        return neutral_snapshot()
    close = bars['close'].astype(float)
    price = float(close.iloc[-1])
    if len(bars) < MIN_BARS:
        return neutral_snapshot(price)

    frame = bars if {'high', 'low'}.issubset(bars.columns) else bars.assign(high=close, low=close)

    m = macd(close).iloc[-1]
    bb = bollinger(close).iloc[-1]
    st = stochastic(frame).iloc[-1]
    indicators = {
        'rsi': float(rsi(close).iloc[-1]),
        'macd': float(m['macd']),
        'macd_signal': float(m['signal']),
        'macd_hist': float(m['histogram']),
        'bb_upper': float(bb['upper']),
        'bb_middle': float(bb['middle']),
        'bb_lower': float(bb['lower']),
        'sma20': float(sma(close, 20).iloc[-1]),
        'sma50': float(sma(close, 50).iloc[-1]),
        'ema12': float(ema(close, 12).iloc[-1]),
        'ema26': float(ema(close, 26).iloc[-1]),
        'stoch_k': float(st['k']),
        'stoch_d': float(st['d']),
    }

    signals = {
        'rsi': rsi_signal(indicators['rsi']),
        'macd': macd_signal(indicators['macd'], indicators['macd_signal'],
                            indicators['macd_hist'], price),
        'bb': bollinger_signal(price, indicators['bb_upper'], indicators['bb_lower']),
        'sma': sma_signal(price, indicators['sma20'], indicators['sma50']),
        'ema': ema_signal(indicators['ema12'], indicators['ema26']),
        'stoch': stochastic_signal(indicators['stoch_k'], indicators['stoch_d']),
    }
    return TechnicalSnapshot(indicators=indicators, signals=signals, summary=summarize(signals, price))
