"""
Yahoo Finance EOD Data Provider
===============================

Free daily OHLCV data from Yahoo Finance via the yfinance library.

WARNING: This is an UNOFFICIAL API. Yahoo may rate limit or block requests
and change the API without notice. Callers treat an empty frame as
"unavailable" and fall back to synthetic bars.

Usage:
    from data.providers.yfinance_eod import YFinanceEODProvider

    provider = YFinanceEODProvider()
    df = provider.fetch_symbol('AAPL', period='6mo')
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import pandas as pd
import yfinance as yf

logger = logging.getLogger(__name__)

BAR_COLUMNS = ['timestamp', 'symbol', 'open', 'high', 'low', 'close', 'volume']


class YFinanceEODProvider:
    """
    Fetches daily OHLCV data from Yahoo Finance (UNOFFICIAL).

    Output columns: timestamp, symbol, open, high, low, close, volume
    """

    name = "yfinance"

    def __init__(
        self,
        rate_limit_delay: float = 0.2,
        timeout: float = 10.0,
    ):
        self.rate_limit_delay = rate_limit_delay
        self.timeout = timeout
        self._last_request_time = 0.0

    def _rate_limit(self):
        """Enforce rate limiting."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - elapsed)
        self._last_request_time = time.time()

    def fetch_symbol(
        self,
        symbol: str,
        period: str = "1y",
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> pd.DataFrame:
        """
        Fetch OHLCV data for a single symbol.

        Args:
            symbol: Stock ticker (e.g., 'AAPL')
            period: yfinance period string, ignored when start is given
            start: Start date (YYYY-MM-DD)
            end: End date (YYYY-MM-DD)

        Returns:
            DataFrame with BAR_COLUMNS, empty on any failure
        """
        try:
            self._rate_limit()
            ticker = yf.Ticker(symbol.upper())
            if start:
                df = ticker.history(start=start, end=end, auto_adjust=True, timeout=self.timeout)
            else:
                df = ticker.history(period=period, auto_adjust=True, timeout=self.timeout)

            if df is None or df.empty:
                logger.warning(f"No data from Yahoo Finance for {symbol}")
                return pd.DataFrame()

            return normalize_history(df, symbol)

        except Exception as e:
            logger.error(f"Error fetching {symbol} from Yahoo Finance: {e}")
            return pd.DataFrame()


def normalize_history(df: pd.DataFrame, symbol: str) -> pd.DataFrame:
    """Convert a yfinance history frame to BAR_COLUMNS sorted by date."""
    df = df.reset_index()
    df = df.rename(columns={
        'Date': 'timestamp',
        'Datetime': 'timestamp',
        'Open': 'open',
        'High': 'high',
        'Low': 'low',
        'Close': 'close',
        'Volume': 'volume',
    })
    df['symbol'] = symbol.upper()

    # Ensure timestamp is datetime (remove timezone)
    ts = pd.to_datetime(df['timestamp'])
    if ts.dt.tz is not None:
        ts = ts.dt.tz_localize(None)
    df['timestamp'] = ts

    for col in ['open', 'high', 'low', 'close']:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    df['volume'] = pd.to_numeric(df['volume'], errors='coerce').fillna(0).astype(int)

    df = df.dropna(subset=['close'])
    df = df[BAR_COLUMNS].sort_values('timestamp').reset_index(drop=True)
    logger.debug(f"Fetched {len(df)} rows for {symbol} from Yahoo Finance")
    return df
