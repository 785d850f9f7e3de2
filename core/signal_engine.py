"""
Signal Engine Module

Fuses four factor scores into one trading recommendation:
- Technical: strength-weighted vote of RSI, MACD, moving averages and chart patterns
- Sentiment: aggregated news/social/analyst sentiment
- Fundamental: valuation rule table
- Volume: recent volume against the prior window

The weighted sum decides BUY/SELL/HOLD; confidence, price targets, AI score and
a plain-language reasoning are derived from it. Every call is stateless.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from analyzers.fundamental_analyzer import FundamentalInput, FundamentalResult, FundamentalScorer
from analyzers.sentiment_analyzer import SentimentAggregator, SentimentItem, SentimentResult
from core.config import EngineConfig, FusionConfig
from core.exceptions import DegradedInputWarning, InvalidInputError
from core.market_data import PriceSeries, to_frame
from core.models import (
    Action, FundamentalBreakdown, Pattern, Signal, SignalBreakdown, SentimentBreakdown,
    SupportResistance, TechnicalAnalysis, TechnicalBreakdown, VolumeBreakdown,
)
from core.pattern_detector import HeuristicPatternDetector, PatternDetector
from core.technical_indicators import TechnicalIndicators, recent_volume_ratio

logger = logging.getLogger(__name__)

SentimentInput = Union[SentimentResult, Sequence[SentimentItem], None]
FundamentalsInput = Union[FundamentalInput, FundamentalResult, Dict[str, Any], None]


@dataclass(frozen=True)
class TechnicalVote:
    """One directional vote in the technical score"""
    source: str
    signal: Action
    strength: float


# ---------------------------------------------------------------------------
# Factor scores
# ---------------------------------------------------------------------------

def technical_votes(analysis: TechnicalAnalysis, config: FusionConfig) -> List[TechnicalVote]:
    """Collect the non-HOLD votes of RSI, MACD, moving averages and patterns"""
    votes = []
    indicators = analysis.indicators

    rsi = indicators.rsi
    if rsi.signal != Action.HOLD and (not rsi.saturated or config.saturated_rsi_votes):
        votes.append(TechnicalVote('rsi', rsi.signal, abs(rsi.value - 50) / 50))

    macd = indicators.macd
    if macd.signal != Action.HOLD:
        strength = abs(macd.components['histogram']) / config.macd_strength_divisor
        votes.append(TechnicalVote('macd', macd.signal, strength))

    moving_averages = indicators.moving_averages
    if moving_averages.signal != Action.HOLD:
        votes.append(TechnicalVote('moving_averages', moving_averages.signal, config.moving_average_strength))

    for pattern in analysis.patterns:
        votes.append(TechnicalVote(pattern.type.value, pattern.signal, pattern.confidence))

    return votes


def technical_score(votes: Sequence[TechnicalVote], config: FusionConfig) -> Tuple[float, Action, float]:
    """
    Net technical score and the technical verdict

    Returns:
        (score in [-1, 1], signal, confidence 0-100)
    """
    buy = sum(v.strength for v in votes if v.signal == Action.BUY)
    sell = sum(v.strength for v in votes if v.signal == Action.SELL)
    total = buy + sell
    if not votes or total <= 0:
        return 0.0, Action.HOLD, config.no_vote_confidence

    score = (buy - sell) / total
    if score > config.buy_threshold:
        signal = Action.BUY
    elif score < config.sell_threshold:
        signal = Action.SELL
    else:
        signal = Action.HOLD

    if signal == Action.HOLD:
        confidence = config.technical_hold_base_confidence - abs(score) * config.hold_confidence_scale
    else:
        confidence = min(config.max_confidence,
                         config.directional_base_confidence + abs(score) * config.directional_confidence_scale)
    return score, signal, confidence


def volume_score(volume: pd.Series, config: FusionConfig) -> Tuple[float, str, float]:
    """Score recent participation; returns (score, analysis, ratio)"""
    ratio = recent_volume_ratio(volume, config.volume_recent_window, config.volume_prior_window)
    if ratio > config.volume_surge_ratio:
        return config.volume_surge_score, 'High volume confirms price movement', ratio
    if ratio > config.volume_above_ratio:
        return config.volume_above_score, 'Above average volume supports trend', ratio
    if ratio < config.volume_weak_ratio:
        return config.volume_weak_score, 'Low volume indicates weak conviction', ratio
    return 0.0, 'Normal volume levels', ratio


# ---------------------------------------------------------------------------
# Decision
# ---------------------------------------------------------------------------

def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up (74.5 -> 75), unlike the built-in banker's round"""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def _percent(fraction: float) -> int:
    return int(round_half_up(fraction * 100))


def combine_scores(scores: Dict[str, float], config: FusionConfig) -> float:
    weights = config.weights()
    combined = sum(weights[name] * scores.get(name, 0.0) for name in weights)
    return max(-1.0, min(1.0, combined))


def decide(combined: float, config: FusionConfig) -> Tuple[Action, int]:
    """Action and confidence from the combined score; thresholds are exclusive"""
    magnitude = abs(combined)
    if combined > config.buy_threshold:
        action = Action.BUY
    elif combined < config.sell_threshold:
        action = Action.SELL
    else:
        action = Action.HOLD

    if action == Action.HOLD:
        confidence = max(config.min_hold_confidence,
                         config.hold_base_confidence - magnitude * config.hold_confidence_scale)
    else:
        confidence = min(config.max_confidence,
                         config.directional_base_confidence + magnitude * config.directional_confidence_scale)
    return action, int(round_half_up(max(0.0, min(100.0, confidence))))


def price_targets(close: float, volatility: float, action: Action, confidence: int,
                  levels: Optional[SupportResistance], config: FusionConfig) -> Tuple[float, float]:
    """
    Target price and stop loss from daily volatility

    BUY targets and stops are tightened to the nearest resistance above and
    the nearest support below the close; they are never loosened.
    """
    reach = volatility * config.target_volatility_multiple * confidence / 100

    if action == Action.BUY:
        target = close * (1 + reach)
        stop = close * (1 - volatility * config.stop_volatility_multiple)
        if levels is not None:
            above = [level.price for level in levels.resistance if level.price > close]
            if above:
                target = min(target, min(above))
            below = [level.price for level in levels.support if level.price < close]
            if below:
                stop = max(stop, max(below))
    elif action == Action.SELL:
        target = close * (1 - reach)
        stop = close * (1 + volatility * config.stop_volatility_multiple)
    else:
        target = close
        stop = close * (1 - volatility * config.hold_stop_volatility_multiple)

    return round_half_up(max(0.0, target), 2), round_half_up(max(0.0, stop), 2)


def ai_score(combined: float) -> float:
    return round_half_up(max(0.0, min(10.0, (combined + 1) * 5)), 1)


def top_pattern(patterns: Sequence[Pattern]) -> Optional[Pattern]:
    """Highest-confidence pattern, earliest detected on ties"""
    best = None
    for pattern in patterns:
        if best is None or pattern.confidence > best.confidence:
            best = pattern
    return best


def build_reasoning(technical: TechnicalBreakdown, sentiment: SentimentBreakdown, volume: VolumeBreakdown,
                    analysis: TechnicalAnalysis, combined: float, config: FusionConfig) -> str:
    clauses = [
        f"Technical analysis shows {technical.signal} signal with "
        f"{int(round_half_up(technical.confidence))}% confidence",
        f"Market sentiment is {sentiment.label} ({_percent(sentiment.score)}% score)",
        volume.analysis,
    ]

    pattern = top_pattern(analysis.patterns)
    if pattern is not None:
        clauses.append(f"{pattern.type.label.capitalize()} pattern detected with "
                       f"{_percent(pattern.confidence)}% confidence")

    medium = analysis.trend.medium_term
    clauses.append(f"Medium-term trend is {medium.direction} with {_percent(medium.strength)}% strength")

    if abs(combined) > config.strong_conviction_score:
        clauses.append('Strong conviction across multiple factors')
    elif abs(combined) < config.mixed_signals_score:
        clauses.append('Mixed signals suggest cautious approach')

    return '. '.join(clauses) + '.'


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class SignalEngine:
    """
    Multi-factor signal engine

    Holds configuration and collaborators only; no state is kept between calls,
    so one engine can serve concurrent analyses.
    """

    def __init__(self, config: EngineConfig = None, pattern_detector: PatternDetector = None):
        self.config = config or EngineConfig()
        self.indicators = TechnicalIndicators(self.config.indicators)
        self.pattern_detector = pattern_detector or HeuristicPatternDetector(self.config.patterns)
        self.sentiment_aggregator = SentimentAggregator(self.config.sentiment)
        self.fundamental_scorer = FundamentalScorer(self.config.fundamentals)

    def analyze_technicals(self, df: pd.DataFrame) -> TechnicalAnalysis:
        """Indicators, patterns, levels, trend, volatility and volume of a validated frame"""
        return TechnicalAnalysis(
            close=float(df['close'].iloc[-1]),
            indicators=self.indicators.calculate_all_indicators(df),
            patterns=tuple(self.pattern_detector.detect_patterns(df)),
            levels=self.pattern_detector.find_levels(df),
            trend=self.indicators.trend(df),
            volatility=self.indicators.volatility(df),
            volume=self.indicators.volume(df),
        )

    def analyze(self, price_series: PriceSeries, sentiment: SentimentInput = None,
                fundamentals: FundamentalsInput = None, symbol: str = 'UNKNOWN',
                as_of: Optional[datetime] = None) -> Signal:
        """
        Generate a trading signal

        Args:
            price_series: Chronological PriceBars or an OHLCV DataFrame
            sentiment: SentimentResult, or sentiment items to aggregate
            fundamentals: FundamentalInput, a dict of ratios, or a pre-computed FundamentalResult
            symbol: Ticker the signal is for
            as_of: Signal timestamp; defaults to the date of the last bar

        Returns:
            Signal

        Raises:
            InsufficientDataError: fewer bars than the configured minimum
            InvalidInputError: malformed bars or inputs
        """
        fusion = self.config.fusion
        df = to_frame(price_series, min_bars=self.config.min_bars)
        analysis = self.analyze_technicals(df)

        votes = technical_votes(analysis, fusion)
        tech_score, tech_signal, tech_confidence = technical_score(votes, fusion)
        sentiment_result = self._resolve_sentiment(sentiment, symbol)
        fundamental_result = self._resolve_fundamentals(fundamentals, symbol)
        vol_score, vol_analysis, vol_ratio = volume_score(df['volume'], fusion)

        combined = combine_scores({
            'technical': tech_score,
            'sentiment': sentiment_result.score,
            'fundamental': fundamental_result.score,
            'volume': vol_score,
        }, fusion)
        action, confidence = decide(combined, fusion)
        target, stop = price_targets(analysis.close, analysis.volatility.daily, action, confidence,
                                     analysis.levels, fusion)

        technical = TechnicalBreakdown(score=float(tech_score), signal=tech_signal.value,
                                       confidence=float(tech_confidence))
        sentiment_breakdown = SentimentBreakdown(score=float(sentiment_result.score), label=sentiment_result.label,
                                                 confidence=float(sentiment_result.confidence))
        volume = VolumeBreakdown(score=float(vol_score), analysis=vol_analysis, ratio=float(vol_ratio))
        breakdown = SignalBreakdown(
            technical=technical,
            sentiment=sentiment_breakdown,
            fundamental=FundamentalBreakdown(score=float(fundamental_result.score),
                                             factors=tuple(fundamental_result.factors)),
            volume=volume,
            combined_score=float(combined),
        )

        signal = Signal(
            symbol=symbol,
            action=action,
            confidence=confidence,
            target_price=target,
            stop_loss=stop,
            ai_score=ai_score(combined),
            reasoning=build_reasoning(technical, sentiment_breakdown, volume, analysis, combined, fusion),
            breakdown=breakdown,
            timestamp=as_of or self._last_bar_date(df),
        )
        logger.info(f"{symbol}: {action.value} ({confidence}% confidence, combined {combined:+.3f}, "
                    f"{len(votes)} technical votes)")
        return signal

    def _resolve_sentiment(self, sentiment: SentimentInput, symbol: str) -> SentimentResult:
        if sentiment is None:
            self._degraded(symbol, 'sentiment')
            return self.sentiment_aggregator.default_result()
        if isinstance(sentiment, SentimentResult):
            return sentiment
        if isinstance(sentiment, (str, bytes)) or not isinstance(sentiment, Sequence):
            raise InvalidInputError(f"Unsupported sentiment input: {type(sentiment).__name__}")
        return self.sentiment_aggregator.aggregate(sentiment)

    def _resolve_fundamentals(self, fundamentals: FundamentalsInput, symbol: str) -> FundamentalResult:
        if fundamentals is None:
            self._degraded(symbol, 'fundamentals')
            return self.fundamental_scorer.score(None)
        if isinstance(fundamentals, FundamentalResult):
            return fundamentals
        if isinstance(fundamentals, dict):
            fundamentals = FundamentalInput.from_dict(fundamentals)
        if not isinstance(fundamentals, FundamentalInput):
            raise InvalidInputError(f"Unsupported fundamentals input: {type(fundamentals).__name__}")
        return self.fundamental_scorer.score(fundamentals)

    @staticmethod
    def _degraded(symbol: str, factor: str):
        message = f"{symbol}: no {factor} supplied, factor contributes nothing to the signal"
        logger.warning(message)
        warnings.warn(message, DegradedInputWarning, stacklevel=4)

    @staticmethod
    def _last_bar_date(df: pd.DataFrame) -> Optional[datetime]:
        last = df['date'].iloc[-1]
        if pd.isna(last):
            return None
        return pd.Timestamp(last).to_pydatetime()


def analyze(price_series: PriceSeries, sentiment: SentimentInput = None, fundamentals: FundamentalsInput = None,
            symbol: str = 'UNKNOWN', config: EngineConfig = None, as_of: Optional[datetime] = None) -> Signal:
    """Convenience wrapper: analyze one symbol with a fresh engine"""
    return SignalEngine(config).analyze(price_series, sentiment=sentiment, fundamentals=fundamentals,
                                        symbol=symbol, as_of=as_of)
