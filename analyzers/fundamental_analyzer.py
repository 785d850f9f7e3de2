"""
Fundamental Scorer

Maps valuation ratios to a bounded score through a fixed rule table:
- P/E below 15 rewards undervaluation, above 30 penalises a premium valuation
- P/B below 1.5 rewards book value, above 3 penalises a premium to book
- Dividend yield above 2% adds an income component
- Large market capitalisation adds stability

Missing ratios contribute nothing. The fired rules are listed, in evaluation
order, as human-readable factors.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

NO_DATA_FACTOR = 'No fundamental data available'


@dataclass
class FundamentalConfig:
    """Rule table thresholds and score adjustments"""
    pe_low: float = 15.0
    pe_low_score: float = 0.3
    pe_high: float = 30.0
    pe_high_score: float = -0.2

    pb_low: float = 1.5
    pb_low_score: float = 0.2
    pb_high: float = 3.0
    pb_high_score: float = -0.1

    dividend_yield_min: float = 2.0  # percent
    dividend_score: float = 0.1

    large_cap_threshold: float = 100_000  # millions
    large_cap_score: float = 0.1


@dataclass(frozen=True)
class FundamentalInput:
    """Valuation ratios; any of them may be unknown"""
    pe: Optional[float] = None
    pb: Optional[float] = None
    dividend_yield: Optional[float] = None  # percent
    market_cap: Optional[float] = None  # millions

    def __post_init__(self):
        for name in ('pe', 'pb', 'dividend_yield', 'market_cap'):
            value = getattr(self, name)
            if value is None:
                continue
            try:
                if isinstance(value, bool):
                    raise TypeError(name)
                object.__setattr__(self, name, float(value))
            except (TypeError, ValueError):
                raise InvalidInputError(f"Fundamental ratio {name} must be numeric, got {value!r}") from None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FundamentalInput':
        """Accepts both snake_case keys and the dashboard's pe/pb/dividend/marketCap keys"""
        return cls(
            pe=data.get('pe'),
            pb=data.get('pb'),
            dividend_yield=data.get('dividend_yield', data.get('dividend')),
            market_cap=data.get('market_cap', data.get('marketCap')),
        )

    def is_empty(self) -> bool:
        return all(v is None for v in (self.pe, self.pb, self.dividend_yield, self.market_cap))


@dataclass(frozen=True)
class FundamentalResult:
    score: float  # -1 to +1
    factors: Tuple[str, ...] = ()


def _usable(value: Optional[float]) -> bool:
    # Non-positive ratios (e.g. negative earnings) are not meaningful valuations
    return value is not None and value > 0


class FundamentalScorer:
    """Applies the fundamental rule table"""

    def __init__(self, config: FundamentalConfig = None):
        self.config = config or FundamentalConfig()

    def score(self, fundamentals: Optional[FundamentalInput]) -> FundamentalResult:
        if fundamentals is None or fundamentals.is_empty():
            return FundamentalResult(score=0.0, factors=(NO_DATA_FACTOR,))

        cfg = self.config
        score = 0.0
        factors = []

        if _usable(fundamentals.pe):
            if fundamentals.pe < cfg.pe_low:
                score += cfg.pe_low_score
                factors.append('Low P/E ratio indicates potential undervaluation')
            elif fundamentals.pe > cfg.pe_high:
                score += cfg.pe_high_score
                factors.append('High P/E ratio suggests premium valuation')

        if _usable(fundamentals.pb):
            if fundamentals.pb < cfg.pb_low:
                score += cfg.pb_low_score
                factors.append('Low P/B ratio indicates good book value')
            elif fundamentals.pb > cfg.pb_high:
                score += cfg.pb_high_score
                factors.append('High P/B ratio suggests premium to book value')

        if _usable(fundamentals.dividend_yield) and fundamentals.dividend_yield > cfg.dividend_yield_min:
            score += cfg.dividend_score
            factors.append('Good dividend yield provides income component')

        if _usable(fundamentals.market_cap) and fundamentals.market_cap > cfg.large_cap_threshold:
            score += cfg.large_cap_score
            factors.append('Large cap stock provides stability')

        score = max(-1.0, min(1.0, score))
        logger.debug(f"Fundamental score {score:.2f} from {len(factors)} rules")
        return FundamentalResult(score=score, factors=tuple(factors))
