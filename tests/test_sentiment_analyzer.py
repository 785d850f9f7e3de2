"""
Unit tests for sentiment scoring and aggregation.
"""

import math
from datetime import datetime, timedelta

import pytest

from analyzers.sentiment_analyzer import (
    SentimentAggregator, SentimentAnalysisEngine, SentimentConfig, SentimentItem, SentimentResult,
    SourceType,
)
from core.exceptions import ConfigError, InvalidInputError


@pytest.fixture
def aggregator():
    return SentimentAggregator()


@pytest.fixture
def engine():
    return SentimentAnalysisEngine(SentimentConfig())


class TestTextScoring:

    def test_positive_financial_text(self, engine):
        score, confidence = engine.analyze_text_sentiment(
            "Strong earnings beat, analysts upgrade to buy", 'news')
        assert score > 0.1
        assert 0.3 <= confidence <= 0.8

    def test_negative_financial_text(self, engine):
        score, _ = engine.analyze_text_sentiment(
            "Shares plunge after earnings miss and analyst downgrade", 'news')
        assert score < -0.1

    def test_empty_text(self, engine):
        assert engine.analyze_text_sentiment('', 'social') == (0.0, 0.1)

    def test_financial_score_scaled_to_unit_range(self, engine):
        assert engine.financial_score(['bullish']) == pytest.approx(1.0)
        assert engine.financial_score(['bullish', 'crash']) == pytest.approx(0.0)
        assert engine.financial_score(['unrelated']) == 0.0

    def test_stemmed_match(self, engine):
        assert engine.financial_score(['surges']) == pytest.approx(2 / 3)

    def test_extract_financial_terms(self, engine):
        assert engine.extract_financial_terms("Bullish breakout, then a crash") == [
            ('bullish', 3), ('breakout', 2), ('crash', -3)]

    def test_financial_weight_cannot_trail_general(self):
        with pytest.raises(ConfigError):
            SentimentConfig(financial_weight=0.4)
        with pytest.raises(ConfigError):
            SentimentConfig(source_financial_weights={'social': 0.3})

    def test_source_specific_blend(self):
        config = SentimentConfig(source_financial_weights={'analyst': 1.0})
        engine = SentimentAnalysisEngine(config)
        score, _ = engine.analyze_text_sentiment("bullish", 'analyst')
        assert score == pytest.approx(1.0)


class TestAggregation:

    def test_empty_input_is_neutral_default(self, aggregator):
        for items in (None, []):
            result = aggregator.aggregate(items)
            assert result.score == 0.0
            assert result.confidence == pytest.approx(0.1)
            assert result.label == 'neutral'
            assert result.source_count == 0

    def test_reliability_weighted_mean(self, aggregator):
        result = aggregator.aggregate([
            SentimentItem(source=SourceType.NEWS, score=0.5),
            SentimentItem(source=SourceType.SOCIAL, score=-0.5),
        ])
        news, social = 1.5 * math.log(2), 0.8 * math.log(2)
        assert result.score == pytest.approx((0.5 * news - 0.5 * social) / (news + social))
        assert result.label == 'positive'
        assert result.confidence == pytest.approx(0.8)
        assert set(result.sources) == {'news', 'social'}
        assert result.sources['social'].label == 'negative'

    def test_mentions_are_log_dampened(self, aggregator):
        result = aggregator.aggregate([
            SentimentItem(source='social', score=1.0, mentions=1000),
            SentimentItem(source='analyst', score=-1.0, mentions=1),
        ])
        heavy, light = 0.8 * math.log(1001), 2.0 * math.log(2)
        assert result.score == pytest.approx((heavy - light) / (heavy + light))

    def test_explicit_weight_and_confidence(self, aggregator):
        result = aggregator.aggregate([
            SentimentItem(score=0.2, weight=3.0, confidence=0.9),
            SentimentItem(score=-0.2, weight=1.0, confidence=0.5),
        ])
        assert result.score == pytest.approx(0.1)
        assert result.confidence == pytest.approx((0.9 * 3 + 0.5) / 4)

    def test_scores_are_clamped(self, aggregator):
        result = aggregator.aggregate([SentimentItem(score=4.0)])
        assert result.score == 1.0
        assert result.confidence == pytest.approx(0.8)

    def test_negative_mentions_rejected(self, aggregator):
        with pytest.raises(InvalidInputError):
            aggregator.aggregate([SentimentItem(score=0.5, mentions=-1)])

    def test_negative_weight_rejected(self, aggregator):
        with pytest.raises(InvalidInputError):
            aggregator.aggregate([SentimentItem(score=0.5, weight=-1.0)])

    def test_weightless_items_fall_back_to_default(self, aggregator):
        result = aggregator.aggregate([SentimentItem(score=0.9, mentions=0)])
        assert result.score == 0.0
        assert result.label == 'neutral'
        assert result.source_count == 1

    def test_label_thresholds_exclusive(self, aggregator):
        assert aggregator.label(0.1) == 'neutral'
        assert aggregator.label(0.11) == 'positive'
        assert aggregator.label(-0.1) == 'neutral'
        assert aggregator.label(-0.11) == 'negative'

    def test_key_themes(self, aggregator):
        result = aggregator.aggregate([
            SentimentItem(source='news', text="Earnings growth beats; earnings guidance raised"),
            SentimentItem(source='social', text="earnings look fine"),
        ])
        assert result.key_themes[0] == ('earnings', 3)
        assert ('growth', 1) in result.key_themes


class TestSummaryAndTrend:

    def test_summarize(self, aggregator):
        results = [
            SentimentResult(score=0.5, confidence=0.8, label='positive'),
            SentimentResult(score=-0.5, confidence=0.8, label='negative'),
            SentimentResult(score=0.0, confidence=0.1, label='neutral'),
            SentimentResult(score=0.4, confidence=0.7, label='positive'),
        ]
        summary = aggregator.summarize(results)
        assert summary['positive'] == 50.0
        assert summary['negative'] == 25.0
        assert summary['average'] == pytest.approx(0.1)
        assert summary['total_analyzed'] == 4

    def test_summarize_empty(self, aggregator):
        assert aggregator.summarize([])['total_analyzed'] == 0

    def test_improving_trend(self, aggregator):
        trend = aggregator.track_trend([0.1] * 5 + [0.5] * 5)
        assert trend.trend == 'improving'
        assert trend.direction == 'positive'
        assert trend.change == pytest.approx(0.4)

    def test_declining_trend(self, aggregator):
        trend = aggregator.track_trend([0.5] * 5 + [0.1] * 5)
        assert trend.trend == 'declining'
        assert trend.direction == 'negative'

    def test_stable_trend(self, aggregator):
        assert aggregator.track_trend([0.2] * 10).trend == 'stable'
        assert aggregator.track_trend([0.3]).trend == 'stable'

    def test_trend_from_items_orders_by_timestamp(self, aggregator):
        start = datetime(2024, 3, 1)
        items = [SentimentItem(source='news', score=0.5 if day >= 5 else 0.1, timestamp=start + timedelta(days=day))
                 for day in range(10)]
        trend = aggregator.trend_from_items(list(reversed(items)))
        assert trend.trend == 'improving'
        assert trend.current == pytest.approx(0.5)
        assert trend.previous == pytest.approx(0.1)

    def test_trend_from_items_needs_timestamps(self, aggregator):
        with pytest.raises(InvalidInputError):
            aggregator.trend_from_items([SentimentItem(score=0.2)])
