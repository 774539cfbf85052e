"""
Pytest configuration and shared fixtures for workflow optimizer tests.
"""

import sys
from pathlib import Path

import pytest
import pandas as pd
import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from altdata.news import NewsFeed
from altdata.sentiment import SentimentAnalyzer
from backtest.walk_forward import EvaluationResult
from core.cache import TTLCache, reset_shared_cache
from core.structured_log import configure_log_dir
from data.price_feed import PriceFeed
from workflows.context import WorkflowServices
from workflows.predict import Prediction, RulePredictor


def make_alternating_bars(n_bars: int = 40, start_price: float = 100.0, symbol: str = 'TEST') -> pd.DataFrame:
    """Closes alternate +1%, -1%, +1%, ... starting from bar 1."""
    closes = [start_price]
    for k in range(1, n_bars):
        closes.append(closes[-1] * (1.01 if k % 2 == 1 else 0.99))
    closes = np.array(closes)
    return pd.DataFrame({
        'timestamp': pd.date_range(start='2024-01-01', periods=n_bars, freq='D'),
        'symbol': symbol,
        'open': closes,
        'high': closes * 1.005,
        'low': closes * 0.995,
        'close': closes,
        'volume': np.full(n_bars, 1_000_000),
    })


class FakeBarProvider:
    """In-memory bar source; symbols in ``fail`` raise like a dead endpoint."""

    name = 'fake'

    def __init__(self, bars=None, fail=()):
        self.bars = bars or {}
        self.fail = {s.upper() for s in fail}
        self.calls = []

    def fetch_symbol(self, symbol, period='1y'):
        self.calls.append((symbol, period))
        if symbol.upper() in self.fail:
            raise ConnectionError(f'{symbol} unreachable')
        return self.bars.get(symbol.upper(), pd.DataFrame()).copy()


class AlwaysPredictor:
    """Emits one fixed signal and remembers how many bars each call saw."""

    def __init__(self, signal='buy', confidence=0.9):
        self.signal = signal
        self.confidence = confidence
        self.seen_lengths = []

    def predict(self, ctx, variant):
        bars = ctx.bars if ctx.bars is not None else ctx.history
        self.seen_lengths.append(len(bars) if bars is not None else 0)
        return Prediction(signal=self.signal, confidence=self.confidence, source='stub')


class StubEvaluator:
    """
    Scores variants from a lookup table.

    ``short_scores`` (when given) answers the short search-horizon calls.
    Names in ``fail_on`` raise, which the optimizer must isolate as a failed
    round. ``calls`` records (variant name, horizon) pairs.
    """

    def __init__(self, scores=None, default=0.5, fail_on=(), short_scores=None):
        self.scores = dict(scores or {})
        self.short_scores = short_scores
        self.default = default
        self.fail_on = set(fail_on)
        self.calls = []

    def evaluate(self, variant, symbol, horizon=None):
        self.calls.append((variant.name, horizon))
        if variant.name in self.fail_on:
            raise RuntimeError(f'evaluation exploded for {variant.name}')
        table = self.scores
        if horizon is not None and self.short_scores is not None:
            table = self.short_scores
        return EvaluationResult(
            score=table.get(variant.name, self.default),
            symbol=symbol,
            variant=variant.name,
        )

    def score(self, variant, symbol, horizon=None):
        return self.evaluate(variant, symbol, horizon).score


@pytest.fixture(autouse=True)
def isolated_logs(tmp_path):
    """Route events.jsonl into the test's temp dir."""
    configure_log_dir(tmp_path / 'logs')
    reset_shared_cache()
    yield tmp_path / 'logs'
    configure_log_dir(None)
    reset_shared_cache()


@pytest.fixture
def alternating_bars():
    """40 bars of deterministic alternating +1%/-1% closes."""
    return make_alternating_bars(40)


@pytest.fixture
def sample_ohlcv_data():
    """Generate sample OHLCV data for testing with symbol column."""
    np.random.seed(42)
    dates = pd.date_range(start='2023-01-01', periods=250, freq='D')

    base_price = 100
    returns = np.random.randn(250) * 0.02  # 2% daily volatility
    prices = base_price * np.exp(np.cumsum(returns))

    df = pd.DataFrame({
        'timestamp': dates,
        'symbol': 'TEST',
        'open': prices * (1 + np.random.randn(250) * 0.005),
        'high': prices * (1 + np.abs(np.random.randn(250) * 0.01)),
        'low': prices * (1 - np.abs(np.random.randn(250) * 0.01)),
        'close': prices,
        'volume': np.random.randint(100000, 10000000, 250),
    })

    # Ensure high >= open, close, low and low <= open, close, high
    df['high'] = df[['open', 'high', 'close']].max(axis=1)
    df['low'] = df[['open', 'low', 'close']].min(axis=1)

    return df


@pytest.fixture
def make_services():
    """Factory for offline WorkflowServices (fake bars, generated news)."""
    def _make(bars=None, predictor=None, fail=(), period='1y'):
        provider = FakeBarProvider(bars=bars, fail=fail)
        return WorkflowServices(
            price_feed=PriceFeed(provider=provider, cache=TTLCache()),
            news_feed=NewsFeed(cache=TTLCache(), use_remote=False),
            sentiment=SentimentAnalyzer(),
            predictor=predictor or RulePredictor(),
            period=period,
        )
    return _make


@pytest.fixture
def offline_services(make_services, sample_ohlcv_data):
    """Services with 250 random-walk bars for TEST, AAPL and TSLA."""
    bars = {s: sample_ohlcv_data.assign(symbol=s) for s in ('TEST', 'AAPL', 'TSLA')}
    return make_services(bars=bars)


@pytest.fixture
def stub_evaluator():
    """Factory for table-driven evaluators."""
    return StubEvaluator


@pytest.fixture
def always_predictor():
    """Factory for fixed-signal predictors."""
    return AlwaysPredictor


@pytest.fixture
def fake_provider():
    """Factory for in-memory bar providers."""
    return FakeBarProvider
