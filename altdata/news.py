"""
News headline feed.

Pulls recent headlines from Yahoo Finance via yfinance. When the source is
unreachable or returns nothing, a deterministic set of generated headlines
is used so sentiment steps always have input.

Usage:
    from altdata.news import NewsFeed

    feed = NewsFeed()
    articles = feed.fetch('AAPL', limit=10)
"""
from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import yfinance as yf

from core.cache import TTLCache, get_shared_cache

logger = logging.getLogger(__name__)

MOCK_TITLES = [
    "{symbol} reports strong quarterly earnings",
    "Analysts upgrade {symbol} stock rating",
    "{symbol} announces new product launch",
    "Market volatility affects {symbol} shares",
    "{symbol} expands into new markets",
    "Institutional investors increase {symbol} holdings",
    "{symbol} faces regulatory challenges",
    "Competition heats up for {symbol}",
    "{symbol} partners with tech giant",
    "{symbol} stock reaches new highs",
]


@dataclass
class NewsArticle:
    """A news headline."""
    title: str
    publisher: str = "Unknown"
    link: str = ""
    published_at: Optional[datetime] = None
    generated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'publisher': self.publisher,
            'link': self.link,
            'published_at': self.published_at.isoformat() if self.published_at else None,
            'generated': self.generated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NewsArticle":
        published = data.get('published_at')
        return cls(
            title=data.get('title', ''),
            publisher=data.get('publisher', 'Unknown'),
            link=data.get('link', ''),
            published_at=datetime.fromisoformat(published) if published else None,
            generated=bool(data.get('generated', False)),
        )


def generate_mock_news(symbol: str, count: int = 5) -> List[NewsArticle]:
    """Deterministic headlines for ``symbol`` (rotation keyed by the ticker)."""
    symbol = symbol.upper()
    offset = zlib.crc32(symbol.encode("utf-8")) % len(MOCK_TITLES)
    titles = [MOCK_TITLES[(offset + i) % len(MOCK_TITLES)] for i in range(count)]
    return [
        NewsArticle(title=t.format(symbol=symbol), publisher="generated", generated=True)
        for t in titles
    ]


def parse_yahoo_item(item: Dict[str, Any]) -> Optional[NewsArticle]:
    """Parse one ``Ticker.news`` entry (flat or nested ``content`` layout)."""
    content = item.get('content', item)
    title = content.get('title', item.get('title', ''))
    if not title:
        return None

    pub_time = None
    if 'providerPublishTime' in item:
        pub_time = datetime.fromtimestamp(item['providerPublishTime'])
    elif content.get('pubDate'):
        pub_time = datetime.fromisoformat(str(content['pubDate']).replace('Z', '+00:00'))

    publisher_obj = content.get('provider', item.get('publisher', {}))
    publisher = publisher_obj.get('displayName', 'Unknown') if isinstance(publisher_obj, dict) else str(publisher_obj)

    canonical_url = content.get('canonicalUrl', {})
    link = canonical_url.get('url', item.get('link', '')) if isinstance(canonical_url, dict) else str(canonical_url)

    return NewsArticle(title=title, publisher=publisher, link=link, published_at=pub_time)


class NewsFeed:
    """Headline source with cache and generated fallback."""

    def __init__(self, cache: Optional[TTLCache] = None, use_remote: bool = True):
        self.cache = cache if cache is not None else get_shared_cache()
        self.use_remote = use_remote

    def fetch(self, symbol: str, limit: int = 10) -> List[NewsArticle]:
        symbol = symbol.upper()
        key = f"news_{symbol}"
        cached = self.cache.get(key)
        if cached is not None:
            return [NewsArticle.from_dict(d) for d in cached]

        articles = self._fetch_yahoo(symbol, limit) if self.use_remote else []
        if not articles:
            logger.info(f"Using generated news for {symbol}")
            articles = generate_mock_news(symbol)

        self.cache.set(key, [a.to_dict() for a in articles])
        return articles

    def _fetch_yahoo(self, symbol: str, limit: int) -> List[NewsArticle]:
        try:
            news_data = yf.Ticker(symbol).news or []
        except Exception as e:
            logger.warning(f"Failed to fetch news for {symbol}: {e}")
            return []

        articles = []
        for item in news_data[:limit]:
            try:
                article = parse_yahoo_item(item)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Failed to parse news item: {e}")
                continue
            if article is not None:
                articles.append(article)

        logger.info(f"Fetched {len(articles)} news articles for {symbol} from Yahoo Finance")
        return articles
