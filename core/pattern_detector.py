"""
Pattern & Level Detector

Detects classic chart patterns and support/resistance levels:
- Double top / double bottom
- Head and shoulders
- Ascending / descending triangles
- Support and resistance levels clustered from local extrema, scored by touches

The heuristics are exposed through the PatternDetector interface so a more
rigorous detector can be swapped in without touching the fusion engine.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.signal import argrelextrema

from core.models import Action, Level, Pattern, PatternType, SupportResistance
from core.technical_indicators import relative_change

logger = logging.getLogger(__name__)


@dataclass
class PatternConfig:
    """Thresholds for pattern and level detection"""
    # Double top/bottom: halves of the window whose extrema match within tolerance
    double_window: int = 20
    double_tolerance: float = 0.02
    double_confidence: float = 0.7

    # Head and shoulders: thirds of the window, shoulders within tolerance
    hs_window: int = 30
    hs_shoulder_tolerance: float = 0.05
    hs_confidence: float = 0.8

    # Triangles: relative change of highs vs lows, |change| below flat threshold
    triangle_window: int = 20
    triangle_flat_threshold: float = 0.1
    triangle_confidence: float = 0.6

    # Support / resistance
    level_window: int = 50
    extrema_order: int = 2
    cluster_tolerance: float = 0.02
    touch_tolerance: float = 0.01
    full_strength_touches: int = 3
    max_levels: int = 3


class PatternDetector(ABC):
    """Strategy interface for pattern and level detection"""

    @abstractmethod
    def detect_patterns(self, df: pd.DataFrame) -> List[Pattern]:
        """Return zero or more patterns found in the OHLCV frame"""

    @abstractmethod
    def find_levels(self, df: pd.DataFrame) -> SupportResistance:
        """Return support and resistance levels for the OHLCV frame"""


class HeuristicPatternDetector(PatternDetector):
    """
    Window-comparison heuristics for patterns and extrema clustering for levels
    """

    def __init__(self, config: PatternConfig = None):
        self.config = config or PatternConfig()

    def detect_patterns(self, df: pd.DataFrame) -> List[Pattern]:
        highs = df['high'].to_numpy(dtype=float)
        lows = df['low'].to_numpy(dtype=float)
        cfg = self.config
        patterns = []

        if self.detect_double_top(highs):
            patterns.append(Pattern(PatternType.DOUBLE_TOP, Action.SELL, cfg.double_confidence))
        if self.detect_double_bottom(lows):
            patterns.append(Pattern(PatternType.DOUBLE_BOTTOM, Action.BUY, cfg.double_confidence))
        if self.detect_head_and_shoulders(highs):
            patterns.append(Pattern(PatternType.HEAD_AND_SHOULDERS, Action.SELL, cfg.hs_confidence))

        triangle = self.detect_triangle(highs, lows)
        if triangle is not None:
            pattern_type, signal = triangle
            patterns.append(Pattern(pattern_type, signal, cfg.triangle_confidence))

        if patterns:
            logger.debug(f"Detected patterns: {[p.type.value for p in patterns]}")
        return patterns

    def detect_double_top(self, highs: np.ndarray) -> bool:
        return self._matching_halves(highs, np.max)

    def detect_double_bottom(self, lows: np.ndarray) -> bool:
        return self._matching_halves(lows, np.min)

    def _matching_halves(self, values: np.ndarray, extreme: Callable) -> bool:
        window = self.config.double_window
        if len(values) < window:
            return False
        recent = values[-window:]
        half = window // 2
        first = float(extreme(recent[:half]))
        second = float(extreme(recent[half:]))
        return abs(first - second) / first < self.config.double_tolerance

    def detect_head_and_shoulders(self, highs: np.ndarray) -> bool:
        window = self.config.hs_window
        if len(highs) < window:
            return False
        recent = highs[-window:]
        third = window // 3

        left_shoulder = float(np.max(recent[:third]))
        head = float(np.max(recent[third:2 * third]))
        right_shoulder = float(np.max(recent[2 * third:]))

        return (head > left_shoulder and head > right_shoulder and
                abs(left_shoulder - right_shoulder) / left_shoulder < self.config.hs_shoulder_tolerance)

    def detect_triangle(self, highs: np.ndarray, lows: np.ndarray) -> Optional[Tuple[PatternType, Action]]:
        window = self.config.triangle_window
        if len(highs) < window:
            return None

        high_trend = relative_change(highs[-window:])
        low_trend = relative_change(lows[-window:])
        flat = self.config.triangle_flat_threshold

        # Flat support with rising highs
        if abs(low_trend) < flat and high_trend > 0:
            return PatternType.ASCENDING_TRIANGLE, Action.BUY
        # Flat resistance with falling lows
        if abs(high_trend) < flat and low_trend < 0:
            return PatternType.DESCENDING_TRIANGLE, Action.SELL
        return None

    def find_levels(self, df: pd.DataFrame) -> SupportResistance:
        window = self.config.level_window
        highs = df['high'].to_numpy(dtype=float)[-window:]
        lows = df['low'].to_numpy(dtype=float)[-window:]

        support = self._rank_levels(self.group_levels(self.local_extrema(lows, np.less)), lows)
        resistance = self._rank_levels(self.group_levels(self.local_extrema(highs, np.greater)), highs)
        return SupportResistance(support=tuple(support), resistance=tuple(resistance))

    def local_extrema(self, values: np.ndarray, comparator: Callable) -> List[float]:
        """Values strictly beyond `extrema_order` neighbours on each side"""
        order = self.config.extrema_order
        if len(values) < 2 * order + 1:
            return []
        (indices,) = argrelextrema(values, comparator, order=order)
        # argrelextrema clips at the edges; require full neighbourhoods
        return [float(values[i]) for i in indices if order <= i < len(values) - order]

    def group_levels(self, levels: List[float]) -> List[float]:
        """Greedily merge sorted levels whose neighbours sit within the cluster tolerance"""
        if not levels:
            return []

        ordered = sorted(levels)
        grouped = []
        current = [ordered[0]]
        for previous, value in zip(ordered, ordered[1:]):
            if abs(value - previous) / previous <= self.config.cluster_tolerance:
                current.append(value)
            else:
                grouped.append(sum(current) / len(current))
                current = [value]
        grouped.append(sum(current) / len(current))
        return grouped

    def count_touches(self, level: float, values: np.ndarray) -> int:
        return int(np.sum(np.abs(values - level) / level <= self.config.touch_tolerance))

    def _rank_levels(self, levels: List[float], values: np.ndarray) -> List[Level]:
        cfg = self.config
        scored = []
        for price in levels:
            touches = self.count_touches(price, values)
            strength = min(touches / cfg.full_strength_touches, 1.0)
            scored.append(Level(price=price, strength=strength, touches=touches))
        scored.sort(key=lambda level: (-level.touches, level.price))
        return scored[:cfg.max_levels]
