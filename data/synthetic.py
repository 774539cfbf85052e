"""
Synthetic price series.

Seeded geometric random walk used when no market data source answers.
The same (symbol, bars, seed) always yields the same prices.
"""
from __future__ import annotations

import zlib
from typing import Optional

import numpy as np
import pandas as pd

from data.providers.yfinance_eod import BAR_COLUMNS

PERIOD_BARS = {
    "1y": 365,
    "6mo": 180,
}
DEFAULT_BARS = 90


def bars_for_period(period: str) -> int:
    """Bar count for a period string: 1y=365, 6mo=180, otherwise 90."""
    return PERIOD_BARS.get(period, DEFAULT_BARS)


def symbol_seed(symbol: str, base_seed: int = 0) -> int:
    """Stable per-symbol seed (crc32, unaffected by hash randomization)."""
    return (zlib.crc32(symbol.upper().encode("utf-8")) + base_seed) % (2 ** 32)


def generate_bars(
    symbol: str,
    n_bars: int,
    seed: int = 0,
    start_price: Optional[float] = None,
    daily_vol: float = 0.02,
    end: Optional[pd.Timestamp] = None,
) -> pd.DataFrame:
    """
    Generate ``n_bars`` daily OHLCV bars for ``symbol``.

    Returns:
        DataFrame with columns timestamp, symbol, open, high, low, close, volume
    """
    rng = np.random.default_rng(symbol_seed(symbol, seed))
    if start_price is None:
        start_price = float(rng.uniform(50, 300))

    returns = rng.normal(0.0005, daily_vol, n_bars)
    close = start_price * np.exp(np.cumsum(returns))
    open_ = np.concatenate([[start_price], close[:-1]]) * (1 + rng.normal(0, daily_vol / 4, n_bars))
    high = np.maximum(open_, close) * (1 + np.abs(rng.normal(0, daily_vol / 2, n_bars)))
    low = np.minimum(open_, close) * (1 - np.abs(rng.normal(0, daily_vol / 2, n_bars)))
    volume = rng.integers(1_000_000, 10_000_000, n_bars)

    end = end if end is not None else pd.Timestamp.today().normalize()
    dates = pd.date_range(end=end, periods=n_bars, freq="D")

    df = pd.DataFrame({
        'timestamp': dates,
        'symbol': symbol.upper(),
        'open': open_,
        'high': high,
        'low': low,
        'close': close,
        'volume': volume,
    })
    return df[BAR_COLUMNS]
