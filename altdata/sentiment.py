from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from altdata.news import NewsArticle


LABEL_THRESHOLD = 0.15     # avg compound needed for a positive/negative label
ARTICLE_THRESHOLD = 0.05   # per-headline polarity cut

_WORD = re.compile(r"[A-Za-z']+")


@dataclass
class SentimentResult:
    overall_sentiment: str          # positive | negative | neutral
    sentiment_score: float          # 0..1, 0.5 neutral
    market_impact: str              # bullish | bearish | neutral
    confidence: float
    news_count: int
    compound_mean: float = 0.0
    key_words: List[str] = field(default_factory=list)
    analysis: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_sentiment': self.overall_sentiment,
            'sentiment_score': self.sentiment_score,
            'market_impact': self.market_impact,
            'confidence': self.confidence,
            'news_count': self.news_count,
            'compound_mean': self.compound_mean,
            'key_words': list(self.key_words),
            'analysis': self.analysis,
        }


def normalize_sentiment_to_conf(sent_mean: float) -> float:
    # Map compound [-1,1] to [0,1]
    return max(0.0, min((float(sent_mean) + 1.0) / 2.0, 1.0))


def neutral_sentiment(news_count: int = 0) -> SentimentResult:
    return SentimentResult(
        overall_sentiment='neutral',
        sentiment_score=0.5,
        market_impact='neutral',
        confidence=0.5,
        news_count=news_count,
        analysis='No headlines to analyze',
    )


class SentimentAnalyzer:
    """VADER headline sentiment aggregated per instrument."""

    def __init__(self, analyzer: Optional[SentimentIntensityAnalyzer] = None):
        self.analyzer = analyzer or SentimentIntensityAnalyzer()

    def score_text(self, text: str) -> float:
        return float(self.analyzer.polarity_scores(text).get('compound', 0.0))

    def key_words(self, titles: Sequence[str], limit: int = 5) -> List[str]:
        """Headline words carrying the strongest lexicon valence."""
        lexicon = self.analyzer.lexicon
        weights: Dict[str, float] = {}
        for title in titles:
            for word in _WORD.findall(title.lower()):
                if word in lexicon:
                    weights[word] = float(lexicon[word])
        ranked = sorted(weights.items(), key=lambda kv: (-abs(kv[1]), kv[0]))
        return [w for w, _ in ranked[:limit]]

    def analyze(self, articles: Sequence[NewsArticle]) -> SentimentResult:
        titles = [a.title for a in articles if a.title]
        if not titles:
            return neutral_sentiment(len(articles))

        scores = [self.score_text(t) for t in titles]
        avg = sum(scores) / len(scores)
        positive = sum(1 for s in scores if s > ARTICLE_THRESHOLD)
        negative = sum(1 for s in scores if s < -ARTICLE_THRESHOLD)

        if avg > LABEL_THRESHOLD:
            label, impact = 'positive', 'bullish'
        elif avg < -LABEL_THRESHOLD:
            label, impact = 'negative', 'bearish'
        else:
            label, impact = 'neutral', 'neutral'

        # Agreement of headlines with the overall label, damped for small samples
        if label == 'positive':
            agreement = positive / len(scores)
        elif label == 'negative':
            agreement = negative / len(scores)
        else:
            agreement = 1.0 - (positive + negative) / len(scores)
        confidence = round(min(0.95, 0.4 + 0.5 * agreement * min(1.0, len(scores) / 5)), 4)

        return SentimentResult(
            overall_sentiment=label,
            sentiment_score=normalize_sentiment_to_conf(avg),
            market_impact=impact,
            confidence=confidence,
            news_count=len(titles),
            compound_mean=avg,
            key_words=self.key_words(titles),
            analysis=(
                f"{len(titles)} headlines: {positive} positive, {negative} negative, "
                f"mean compound {avg:+.3f}"
            ),
        )
