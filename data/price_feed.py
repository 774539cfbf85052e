"""
Price history feed with cache and synthetic fallback.

Usage:
    from data.price_feed import PriceFeed

    feed = PriceFeed()
    history = feed.fetch("AAPL", period="6mo")
    closes = history.bars["close"]
    if history.synthetic:
        ...  # source was unreachable
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import pandas as pd

from core.cache import TTLCache, get_shared_cache
from core.exceptions import DataUnavailableError
from core.structured_log import jlog
from data.providers.yfinance_eod import BAR_COLUMNS, YFinanceEODProvider
from data.synthetic import bars_for_period, generate_bars

logger = logging.getLogger(__name__)


class BarProvider(Protocol):
    name: str

    def fetch_symbol(self, symbol: str, period: str = "1y") -> pd.DataFrame:
        ...


@dataclass(frozen=True)
class PriceHistory:
    """Ordered daily bars for one instrument."""
    symbol: str
    bars: pd.DataFrame
    source: str
    synthetic: bool = False

    def __len__(self) -> int:
        return len(self.bars)

    @property
    def closes(self) -> pd.Series:
        return self.bars["close"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "source": self.source,
            "synthetic": self.synthetic,
            "bars": len(self.bars),
            "first": str(self.bars["timestamp"].iloc[0]) if len(self.bars) else None,
            "last": str(self.bars["timestamp"].iloc[-1]) if len(self.bars) else None,
        }


class PriceFeed:
    """
    Fetches daily bars for an instrument.

    The remote provider is tried first; any failure or empty answer is
    replaced by a seeded synthetic series flagged ``synthetic=True``
    (unless ``allow_synthetic`` is False, in which case DataUnavailableError
    is raised). Successful fetches are cached under ``kline_<symbol>_<period>``;
    synthetic fallbacks share the key for ``fallback_ttl_seconds``.
    """

    def __init__(
        self,
        provider: Optional[BarProvider] = None,
        cache: Optional[TTLCache] = None,
        synthetic_seed: int = 7,
        allow_synthetic: bool = True,
        fallback_ttl_seconds: float = 300.0,
    ):
        self.provider = provider if provider is not None else YFinanceEODProvider()
        self.cache = cache if cache is not None else get_shared_cache()
        self.synthetic_seed = synthetic_seed
        self.allow_synthetic = allow_synthetic
        self.fallback_ttl_seconds = fallback_ttl_seconds

    @staticmethod
    def cache_key(symbol: str, period: str) -> str:
        return f"kline_{symbol.upper()}_{period}"

    def fetch(self, symbol: str, period: str = "1y") -> PriceHistory:
        key = self.cache_key(symbol, period)
        cached = self.cache.get(key)
        if isinstance(cached, PriceHistory):
            return cached

        try:
            bars = self._fetch_remote(symbol, period)
            history = PriceHistory(symbol=symbol.upper(), bars=bars, source=self.provider.name)
            self.cache.set(key, history)
            return history
        except DataUnavailableError as e:
            if not self.allow_synthetic:
                raise
            logger.warning(f"Using synthetic bars for {symbol}: {e}")
            jlog("data_fallback", level="WARNING", symbol=symbol, period=period,
                 reason=e.message)
            history = self.synthetic(symbol, period)
            self.cache.set(key, history, ttl_seconds=self.fallback_ttl_seconds)
            return history

    def synthetic(self, symbol: str, period: str = "1y") -> PriceHistory:
        bars = generate_bars(symbol, bars_for_period(period), seed=self.synthetic_seed)
        return PriceHistory(symbol=symbol.upper(), bars=bars, source="synthetic", synthetic=True)

    def _fetch_remote(self, symbol: str, period: str) -> pd.DataFrame:
        try:
            df = self.provider.fetch_symbol(symbol, period=period)
        except Exception as e:
            raise DataUnavailableError(
                f"Provider {self.provider.name} failed", context={"symbol": symbol}, cause=e
            ) from e
        if df is None or df.empty:
            raise DataUnavailableError("No bars returned", context={"symbol": symbol})
        missing = [c for c in ('timestamp', 'close') if c not in df.columns]
        if missing:
            raise DataUnavailableError(
                f"Bars missing columns {missing}", context={"symbol": symbol}
            )
        for col in BAR_COLUMNS:
            if col not in df.columns:
                df = df.assign(**{col: df["close"] if col in ("open", "high", "low") else 0})
        return df.reset_index(drop=True)
