"""
Sentiment Aggregator

This module turns per-source sentiment (news, social media, analyst notes)
into one normalized score for the signal engine.

Core Philosophy:
- Every item is normalized to -1..+1 from a general lexicon (TextBlob polarity)
  blended with a financial lexicon, or taken as-is when already scored
- Items are weighted by source reliability x log(mentions + 1) so that noisy,
  high-volume sources cannot drown out a few reliable ones
- No input means neutral sentiment with minimal confidence, never an error
"""

import logging
import math
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from textblob import TextBlob, Word

from core.exceptions import ConfigError, InvalidInputError

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"[a-z]+(?:'[a-z]+)?")

FINANCIAL_LEXICON: Dict[str, int] = {
    # Positive financial terms
    'bullish': 3, 'rally': 2, 'surge': 2, 'breakout': 2, 'outperform': 2,
    'upgrade': 3, 'upgraded': 3, 'beat': 2, 'exceed': 2, 'strong': 2,
    'robust': 2, 'growth': 2, 'profit': 2, 'earnings': 1, 'revenue': 1,
    'dividend': 1, 'buy': 2, 'accumulate': 2, 'overweight': 2,

    # Negative financial terms
    'bearish': -3, 'crash': -3, 'plunge': -3, 'collapse': -3, 'underperform': -2,
    'downgrade': -3, 'downgraded': -3, 'miss': -2, 'disappoint': -2, 'weak': -2,
    'decline': -2, 'loss': -2, 'deficit': -2, 'sell': -2, 'reduce': -2,
    'underweight': -2, 'volatile': -1, 'uncertainty': -1, 'risk': -1,
}

THEME_TERMS: Tuple[str, ...] = (
    'earnings', 'revenue', 'profit', 'growth', 'margin',
    'upgrade', 'downgrade', 'target', 'buy', 'sell',
    'bullish', 'bearish', 'breakout', 'support', 'resistance',
)


class SourceType(Enum):
    """Origin of a sentiment item"""
    NEWS = "news"
    SOCIAL = "social"
    ANALYST = "analyst"
    OTHER = "other"


@dataclass
class SentimentConfig:
    """Configuration for sentiment aggregation"""
    financial_lexicon: Dict[str, int] = field(default_factory=lambda: dict(FINANCIAL_LEXICON))
    lexicon_scale: float = 3.0  # largest absolute term weight

    # Share of the financial lexicon in the per-item blend (general gets the rest)
    financial_weight: float = 0.5
    source_financial_weights: Dict[str, float] = field(default_factory=dict)

    # Reliability used when an item carries no explicit weight
    source_reliability: Dict[str, float] = field(default_factory=lambda: {
        'news': 1.5,
        'social': 0.8,
        'analyst': 2.0,
        'other': 1.0,
    })

    # Labels
    positive_threshold: float = 0.1
    negative_threshold: float = -0.1

    # Item confidence = min(max_item_confidence, |score| + confidence_floor)
    max_item_confidence: float = 0.8
    confidence_floor: float = 0.3
    empty_confidence: float = 0.1

    # Themes and trend tracking
    theme_terms: Tuple[str, ...] = THEME_TERMS
    max_themes: int = 5
    trend_window: int = 5
    trend_change_pct: float = 10.0

    def __post_init__(self):
        self.theme_terms = tuple(self.theme_terms)
        weights = [self.financial_weight] + list(self.source_financial_weights.values())
        for weight in weights:
            if not 0.5 <= weight <= 1.0:
                raise ConfigError(
                    f"Financial lexicon weight must be within [0.5, 1.0], got {weight}"
                )

    def financial_weight_for(self, source: str) -> float:
        return self.source_financial_weights.get(source, self.financial_weight)

    def reliability_for(self, source: str) -> float:
        return self.source_reliability.get(source, self.source_reliability.get('other', 1.0))


@dataclass(frozen=True)
class SentimentItem:
    """One piece of sentiment evidence: raw text or a pre-computed score"""
    source: Union[SourceType, str] = SourceType.OTHER
    text: Optional[str] = None
    score: Optional[float] = None  # -1 to +1, used when no text is given
    weight: Optional[float] = None  # source reliability override
    mentions: int = 1
    timestamp: Optional[datetime] = None
    confidence: Optional[float] = None

    @property
    def source_name(self) -> str:
        return self.source.value if isinstance(self.source, SourceType) else str(self.source).lower()


@dataclass(frozen=True)
class SourceSentiment:
    """Aggregated sentiment for one source type"""
    score: float
    confidence: float
    label: str
    weight: float
    mentions: int


@dataclass(frozen=True)
class SentimentResult:
    """Aggregated sentiment"""
    score: float  # -1 to +1
    confidence: float  # 0 to 1
    label: str  # 'positive', 'neutral', 'negative'
    source_count: int = 0
    sources: Dict[str, SourceSentiment] = field(default_factory=dict)
    key_themes: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class SentimentTrend:
    trend: str  # 'improving', 'declining', 'stable'
    direction: str  # 'positive', 'negative', 'neutral'
    change: float
    change_pct: float
    current: float
    previous: float


@dataclass(frozen=True)
class _ScoredItem:
    source: str
    score: float
    confidence: float
    weight: float
    mentions: int


def clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class SentimentAnalysisEngine:
    """Per-text sentiment from a general lexicon blended with a financial lexicon"""

    def __init__(self, config: SentimentConfig):
        self.config = config
        self.lexicon = config.financial_lexicon
        self.stemmed_lexicon = {Word(term).stem(): weight for term, weight in self.lexicon.items()}

    def tokenize(self, text: str) -> List[str]:
        return TOKEN_RE.findall(text.lower())

    def general_score(self, text: str) -> float:
        """TextBlob polarity, already in -1..+1"""
        return float(TextBlob(text).sentiment.polarity)

    def financial_score(self, tokens: Sequence[str]) -> float:
        """Average weight of matched financial terms, scaled to -1..+1"""
        total = 0
        count = 0
        for token in tokens:
            weight = self.lexicon.get(token)
            if weight is None:
                weight = self.stemmed_lexicon.get(Word(token).stem())
            if weight is not None:
                total += weight
                count += 1
        if count == 0:
            return 0.0
        return clamp(total / count / self.config.lexicon_scale)

    def analyze_text_sentiment(self, text: str, source: str = 'other') -> Tuple[float, float]:
        """
        Analyze sentiment of a single text

        Returns:
            Tuple of (sentiment_score, confidence)
            sentiment_score: -1 (very negative) to +1 (very positive)
            confidence: 0 to 1
        """
        tokens = self.tokenize(text or '')
        if not tokens:
            return 0.0, self.config.empty_confidence

        financial_weight = self.config.financial_weight_for(source)
        score = clamp(
            financial_weight * self.financial_score(tokens) +
            (1 - financial_weight) * self.general_score(text)
        )
        confidence = min(self.config.max_item_confidence, abs(score) + self.config.confidence_floor)
        return score, confidence

    def extract_financial_terms(self, text: str) -> List[Tuple[str, int]]:
        return [(token, self.lexicon[token]) for token in self.tokenize(text) if token in self.lexicon]


class SentimentAggregator:
    """
    Combines sentiment items from multiple sources into one SentimentResult
    """

    def __init__(self, config: SentimentConfig = None):
        self.config = config or SentimentConfig()
        self.engine = SentimentAnalysisEngine(self.config)

    def aggregate(self, items: Optional[Sequence[SentimentItem]]) -> SentimentResult:
        """
        Aggregate sentiment items

        Args:
            items: Sentiment items from any mix of sources; may be empty

        Returns:
            SentimentResult; neutral with minimal confidence when there is nothing to aggregate
        """
        if not items:
            logger.debug("No sentiment items supplied, returning neutral default")
            return self.default_result()

        scored = [self._score_item(item) for item in items]
        score, confidence, total_weight = self._weighted(scored)
        if total_weight <= 0:
            logger.debug("Sentiment items carry no weight, returning neutral default")
            return self.default_result(source_count=len(scored))

        sources = {}
        by_source = defaultdict(list)
        for entry in scored:
            by_source[entry.source].append(entry)
        for source, entries in by_source.items():
            source_score, source_confidence, source_weight = self._weighted(entries)
            sources[source] = SourceSentiment(
                score=source_score,
                confidence=source_confidence,
                label=self.label(source_score),
                weight=source_weight,
                mentions=sum(e.mentions for e in entries),
            )

        result = SentimentResult(
            score=score,
            confidence=confidence,
            label=self.label(score),
            source_count=len(scored),
            sources=sources,
            key_themes=tuple(self.extract_key_themes(items)),
        )
        logger.debug(f"Aggregated sentiment {result.score:.3f} ({result.label}) from {result.source_count} items")
        return result

    def default_result(self, source_count: int = 0) -> SentimentResult:
        return SentimentResult(
            score=0.0,
            confidence=self.config.empty_confidence,
            label='neutral',
            source_count=source_count,
        )

    def label(self, score: float) -> str:
        if score > self.config.positive_threshold:
            return 'positive'
        if score < self.config.negative_threshold:
            return 'negative'
        return 'neutral'

    def _score_item(self, item: SentimentItem) -> _ScoredItem:
        if item.mentions < 0:
            raise InvalidInputError(f"Mention count cannot be negative: {item.mentions}")

        source = item.source_name
        if item.text:
            score, confidence = self.engine.analyze_text_sentiment(item.text, source)
        elif item.score is not None:
            score = clamp(float(item.score))
            confidence = min(self.config.max_item_confidence, abs(score) + self.config.confidence_floor)
        else:
            score, confidence = 0.0, self.config.empty_confidence

        if item.confidence is not None:
            confidence = clamp(float(item.confidence), 0.0, 1.0)

        reliability = item.weight if item.weight is not None else self.config.reliability_for(source)
        if reliability < 0:
            raise InvalidInputError(f"Sentiment weight cannot be negative: {reliability}")

        return _ScoredItem(
            source=source,
            score=score,
            confidence=confidence,
            weight=reliability * math.log(item.mentions + 1),
            mentions=item.mentions,
        )

    def _weighted(self, entries: Sequence[_ScoredItem]) -> Tuple[float, float, float]:
        total_weight = sum(e.weight for e in entries)
        if total_weight <= 0:
            return 0.0, self.config.empty_confidence, 0.0
        score = sum(e.score * e.weight for e in entries) / total_weight
        confidence = sum(e.confidence * e.weight for e in entries) / total_weight
        return clamp(score), clamp(confidence, 0.0, 1.0), total_weight

    def extract_key_themes(self, items: Sequence[SentimentItem]) -> List[Tuple[str, int]]:
        """Most mentioned financial themes across item texts"""
        themes = Counter()
        terms = set(self.config.theme_terms)
        for item in items:
            if item.text:
                themes.update(t for t in self.engine.tokenize(item.text) if t in terms)
        ranked = sorted(themes.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked[:self.config.max_themes]

    def summarize(self, results: Sequence[SentimentResult]) -> Dict[str, float]:
        """Label distribution (percent) and average score over several results"""
        if not results:
            return {'positive': 0.0, 'negative': 0.0, 'neutral': 0.0, 'average': 0.0, 'total_analyzed': 0}

        counts = Counter(r.label for r in results)
        total = len(results)
        return {
            'positive': counts['positive'] / total * 100,
            'negative': counts['negative'] / total * 100,
            'neutral': counts['neutral'] / total * 100,
            'average': sum(r.score for r in results) / total,
            'total_analyzed': total,
        }

    def track_trend(self, history: Sequence[float]) -> SentimentTrend:
        """
        Compare the latest window of sentiment scores with the window before it
        """
        if len(history) < 2:
            current = float(history[-1]) if history else 0.0
            return SentimentTrend('stable', 'neutral', 0.0, 0.0, current, current)

        window = self.config.trend_window
        recent = list(history[-window:])
        older = list(history[-2 * window:-window])

        current = sum(recent) / len(recent)
        previous = sum(older) / len(older) if older else current
        change = current - previous
        if previous != 0:
            change_pct = abs(change) / abs(previous) * 100
        else:
            change_pct = 0.0 if change == 0 else 100.0

        trend, direction = 'stable', 'neutral'
        if change_pct > self.config.trend_change_pct:
            trend = 'improving' if change > 0 else 'declining'
            direction = 'positive' if change > 0 else 'negative'

        return SentimentTrend(trend, direction, change, change_pct, current, previous)

    def trend_from_items(self, items: Sequence[SentimentItem]) -> SentimentTrend:
        """Score dated items oldest first and track the trend of their scores"""
        undated = [item for item in items if item.timestamp is None]
        if undated:
            raise InvalidInputError(f"{len(undated)} sentiment item(s) have no timestamp")
        ordered = sorted(items, key=lambda item: item.timestamp)
        return self.track_trend([self._score_item(item).score for item in ordered])
