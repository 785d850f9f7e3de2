"""
Signal Engine Data Models

Plain dataclasses passed between the indicator library, the pattern detector,
the sentiment/fundamental analyzers and the fusion engine. Everything the
engine emits is frozen: each analysis call produces fresh records.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Action(Enum):
    """Discrete trading action"""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PatternType(Enum):
    """Chart patterns recognised by the pattern detector"""
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    ASCENDING_TRIANGLE = "ascending_triangle"
    DESCENDING_TRIANGLE = "descending_triangle"

    @property
    def label(self) -> str:
        return self.value.replace('_', ' ')


@dataclass(frozen=True)
class PriceBar:
    """One OHLCV bar"""
    date: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class IndicatorReading:
    """Latest value of one indicator with its discrete signal"""
    name: str
    value: float
    signal: Action
    interpretation: str
    components: Dict[str, Any] = field(default_factory=dict)
    saturated: bool = False  # RSI only: no losses inside the lookback window


@dataclass(frozen=True)
class IndicatorSet:
    """Per-symbol indicator snapshot"""
    rsi: IndicatorReading
    macd: IndicatorReading
    bollinger: IndicatorReading
    moving_averages: IndicatorReading
    stochastic: IndicatorReading
    atr: IndicatorReading

    def readings(self) -> Tuple[IndicatorReading, ...]:
        return (self.rsi, self.macd, self.bollinger,
                self.moving_averages, self.stochastic, self.atr)


@dataclass(frozen=True)
class Pattern:
    """Detected chart pattern; advisory only"""
    type: PatternType
    signal: Action
    confidence: float  # 0 to 1


@dataclass(frozen=True)
class Level:
    """Support or resistance level"""
    price: float
    strength: float  # 0 to 1
    touches: int = 0


@dataclass(frozen=True)
class SupportResistance:
    support: Tuple[Level, ...] = ()
    resistance: Tuple[Level, ...] = ()


@dataclass(frozen=True)
class TrendReading:
    direction: str  # 'up', 'down', 'sideways'
    strength: float
    value: float


@dataclass(frozen=True)
class Trend:
    short_term: TrendReading
    medium_term: TrendReading
    long_term: TrendReading


@dataclass(frozen=True)
class VolatilityReading:
    daily: float
    annualized: float
    level: str  # 'low', 'medium', 'high'


@dataclass(frozen=True)
class VolumeReading:
    average: float
    recent: float
    ratio: float
    signal: str  # 'high', 'normal', 'low'
    interpretation: str


@dataclass(frozen=True)
class TechnicalAnalysis:
    """Everything derived from the price series alone"""
    close: float
    indicators: IndicatorSet
    patterns: Tuple[Pattern, ...]
    levels: SupportResistance
    trend: Trend
    volatility: VolatilityReading
    volume: VolumeReading


@dataclass(frozen=True)
class TechnicalBreakdown:
    score: float
    signal: str
    confidence: float


@dataclass(frozen=True)
class SentimentBreakdown:
    score: float
    label: str
    confidence: float


@dataclass(frozen=True)
class FundamentalBreakdown:
    score: float
    factors: Tuple[str, ...]


@dataclass(frozen=True)
class VolumeBreakdown:
    score: float
    analysis: str
    ratio: float


@dataclass(frozen=True)
class SignalBreakdown:
    technical: TechnicalBreakdown
    sentiment: SentimentBreakdown
    fundamental: FundamentalBreakdown
    volume: VolumeBreakdown
    combined_score: float


@dataclass(frozen=True)
class Signal:
    """Final trading recommendation for one symbol"""
    symbol: str
    action: Action
    confidence: int  # 0 to 100
    target_price: float
    stop_loss: float
    ai_score: float  # 0 to 10
    reasoning: str
    breakdown: SignalBreakdown
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-ready record using the dashboard's field names"""
        return {
            'symbol': self.symbol,
            'action': self.action.value,
            'confidence': self.confidence,
            'targetPrice': self.target_price,
            'stopLoss': self.stop_loss,
            'aiScore': self.ai_score,
            'reasoning': self.reasoning,
            'breakdown': asdict(self.breakdown),
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)


def bars_from_records(records: List[Dict[str, Any]]) -> List[PriceBar]:
    """Build PriceBars from dict records such as rows loaded from CSV or JSON"""
    return [
        PriceBar(
            date=record['date'],
            open=float(record['open']),
            high=float(record['high']),
            low=float(record['low']),
            close=float(record['close']),
            volume=float(record['volume']),
        )
        for record in records
    ]
