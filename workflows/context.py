"""
Execution context shared by workflow steps.

StepContext carries the decision point (symbol, as-of date, point-in-time
bars) plus the artifacts produced so far. Steps never mutate a context;
they return a copy with their artifact filled in.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import pandas as pd

from altdata.news import NewsArticle, NewsFeed
from altdata.sentiment import SentimentAnalyzer, SentimentResult
from analysis.technical import TechnicalSnapshot
from data.price_feed import PriceFeed
from data.providers.yfinance_eod import YFinanceEODProvider

if TYPE_CHECKING:
    from workflows.predict import Prediction, PredictionProvider


@dataclass
class WorkflowServices:
    """External collaborators used by steps."""
    price_feed: PriceFeed
    news_feed: NewsFeed
    sentiment: SentimentAnalyzer
    predictor: "PredictionProvider"
    period: str = "1y"


@dataclass(frozen=True)
class StepContext:
    symbol: str
    services: WorkflowServices
    history: Optional[pd.DataFrame] = None   # bars through the decision index
    as_of: Optional[pd.Timestamp] = None
    bars: Optional[pd.DataFrame] = None
    tech: Optional[TechnicalSnapshot] = None
    news: Optional[List[NewsArticle]] = None
    sentiment: Optional[SentimentResult] = None
    prediction: Optional["Prediction"] = None
    trace: tuple = field(default=())

    def with_artifact(self, step: str, **artifacts: Any) -> "StepContext":
        return replace(self, trace=self.trace + (step,), **artifacts)

    def has(self, artifact: str) -> bool:
        return getattr(self, artifact) is not None

    def summary(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "as_of": str(self.as_of) if self.as_of is not None else None,
            "bars": len(self.bars) if self.bars is not None else 0,
            "tech": self.tech.summary.direction if self.tech else None,
            "news": len(self.news) if self.news is not None else 0,
            "sentiment": self.sentiment.overall_sentiment if self.sentiment else None,
            "trace": list(self.trace),
        }


def default_services(
    price_feed: Optional[PriceFeed] = None,
    news_feed: Optional[NewsFeed] = None,
    predictor: Optional["PredictionProvider"] = None,
) -> WorkflowServices:
    """Services wired from settings (yfinance data, VADER, rule or LLM predictor)."""
    from config.settings_loader import get_data_config, get_setting
    from workflows.predict import build_predictor

    data_cfg = get_data_config()
    return WorkflowServices(
        price_feed=price_feed or PriceFeed(
            provider=YFinanceEODProvider(timeout=data_cfg["request_timeout"]),
            synthetic_seed=data_cfg["synthetic_seed"],
            fallback_ttl_seconds=data_cfg["fallback_ttl_seconds"],
        ),
        news_feed=news_feed or NewsFeed(),
        sentiment=SentimentAnalyzer(),
        predictor=predictor or build_predictor(str(get_setting("prediction.provider", "rule"))),
        period=data_cfg["period"],
    )
