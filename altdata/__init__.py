"""Alternative data sources (news headlines and sentiment)."""

from altdata.news import NewsArticle, NewsFeed, generate_mock_news
from altdata.sentiment import SentimentAnalyzer, SentimentResult, normalize_sentiment_to_conf

__all__ = [
    # News
    'NewsArticle',
    'NewsFeed',
    'generate_mock_news',
    # Sentiment
    'SentimentAnalyzer',
    'SentimentResult',
    'normalize_sentiment_to_conf',
]
