"""
Technical Indicators Module

This module implements the indicator library used by the signal engine:
- Relative Strength Index (RSI, Wilder smoothing)
- MACD with signal line and histogram
- Bollinger Bands
- Simple and Exponential Moving Averages (20/50, 12/26)
- Stochastic Oscillator (%K/%D)
- Average True Range (ATR)
- Trend, volatility and volume statistics

Every indicator is a pure function (DataFrame, config) -> IndicatorReading and
the library composes them through the fixed, ordered INDICATORS table.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import numpy as np
import pandas as pd

from core.exceptions import InsufficientDataError
from core.models import (
    Action, IndicatorReading, IndicatorSet, Trend, TrendReading,
    VolatilityReading, VolumeReading,
)

logger = logging.getLogger(__name__)


@dataclass
class TechnicalIndicatorConfig:
    """Configuration for technical indicators"""
    min_bars: int = 50

    # RSI settings
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    rsi_extreme_overbought: float = 80.0
    rsi_extreme_oversold: float = 20.0

    # MACD settings
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    # Bollinger Bands
    bb_period: int = 20
    bb_std: float = 2.0
    bb_edge: float = 0.2  # top/bottom share of the band range

    # Moving averages
    sma_short: int = 20
    sma_long: int = 50
    ema_fast: int = 12
    ema_slow: int = 26

    # Stochastic
    stoch_period: int = 14
    stoch_smooth: int = 3
    stoch_overbought: float = 80.0
    stoch_oversold: float = 20.0

    # ATR settings
    atr_period: int = 14
    atr_high_pct: float = 3.0
    atr_low_pct: float = 1.0

    # Trend windows and direction thresholds
    trend_short_window: int = 10
    trend_short_threshold: float = 0.02
    trend_medium_window: int = 30
    trend_medium_threshold: float = 0.05
    trend_long_window: int = 60
    trend_long_threshold: float = 0.10

    # Volatility
    trading_days: int = 252
    volatility_high: float = 0.30
    volatility_medium: float = 0.15

    # Volume
    volume_recent_window: int = 5
    volume_high_ratio: float = 1.5
    volume_low_ratio: float = 0.7
    volume_extreme_ratio: float = 2.0
    volume_weak_ratio: float = 0.5


# ---------------------------------------------------------------------------
# Moving average helpers
# ---------------------------------------------------------------------------

def sma(series: pd.Series, period: int) -> pd.Series:
    """Simple Moving Average"""
    return series.rolling(window=period).mean()


def ema(series: pd.Series, period: int) -> pd.Series:
    """
    Exponential Moving Average seeded with the first value

    Not seeded with an SMA of the first `period` closes, so values differ
    slightly from SMA-seeded implementations until the seed decays.
    """
    return series.ewm(span=period, adjust=False).mean()


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------

def wilder_rsi(close: np.ndarray, period: int = 14) -> Tuple[float, bool]:
    """
    Latest RSI value using Wilder smoothing

    Returns:
        Tuple of (rsi, saturated). saturated is True when the last `period`
        price changes are one-sided (only gains or only losses), even if an
        older move still keeps the smoothed value off 100 or 0. A history
        with neither gains nor losses reads 50.
    """
    delta = np.diff(np.asarray(close, dtype=float))
    if len(delta) < period:
        raise InsufficientDataError(period + 1, len(close))

    gains = np.clip(delta, 0.0, None)
    losses = np.clip(-delta, 0.0, None)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    recent_gains = bool(gains[-period:].any())
    recent_losses = bool(losses[-period:].any())
    saturated = recent_gains != recent_losses

    if avg_loss == 0:
        if avg_gain == 0:
            return 50.0, False
        return 100.0, saturated
    if avg_gain == 0:
        return 0.0, saturated

    rs = avg_gain / avg_loss
    return float(100.0 - (100.0 / (1.0 + rs))), saturated


def rsi_signal(value: float, config: TechnicalIndicatorConfig) -> Action:
    if value > config.rsi_overbought:
        return Action.SELL
    if value < config.rsi_oversold:
        return Action.BUY
    return Action.HOLD


def interpret_rsi(value: float, config: TechnicalIndicatorConfig) -> str:
    if value > config.rsi_extreme_overbought:
        return 'extremely overbought'
    if value > config.rsi_overbought:
        return 'overbought'
    if value < config.rsi_extreme_oversold:
        return 'extremely oversold'
    if value < config.rsi_oversold:
        return 'oversold'
    return 'neutral'


def calculate_rsi(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    value, saturated = wilder_rsi(df['close'].to_numpy(), config.rsi_period)
    return IndicatorReading(
        name='rsi',
        value=value,
        signal=rsi_signal(value, config),
        interpretation=interpret_rsi(value, config),
        saturated=saturated,
    )


# ---------------------------------------------------------------------------
# MACD
# ---------------------------------------------------------------------------

def macd_signal(line: float, signal: float, histogram: float) -> Action:
    """BUY/SELL only when the crossover and the histogram agree"""
    if line > signal and histogram > 0:
        return Action.BUY
    if line < signal and histogram < 0:
        return Action.SELL
    return Action.HOLD


def interpret_macd(line: float, signal: float, histogram: float) -> str:
    if line > signal:
        return 'Strong bullish momentum' if histogram > 0 else 'Weakening bullish momentum'
    if line < signal:
        return 'Strong bearish momentum' if histogram < 0 else 'Weakening bearish momentum'
    return 'No momentum'


def calculate_macd(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    close = df['close']
    macd_line = ema(close, config.macd_fast) - ema(close, config.macd_slow)
    signal_line = ema(macd_line, config.macd_signal)
    histogram = macd_line - signal_line

    line = float(macd_line.iloc[-1])
    signal = float(signal_line.iloc[-1])
    hist = float(histogram.iloc[-1])
    return IndicatorReading(
        name='macd',
        value=line,
        signal=macd_signal(line, signal, hist),
        interpretation=interpret_macd(line, signal, hist),
        components={'line': line, 'signal': signal, 'histogram': hist},
    )


# ---------------------------------------------------------------------------
# Bollinger Bands
# ---------------------------------------------------------------------------

def bollinger_position(price: float, upper: float, lower: float,
                       config: TechnicalIndicatorConfig) -> str:
    band_range = upper - lower
    if band_range <= 0:
        return 'middle'
    position = (price - lower) / band_range
    if position > 1 - config.bb_edge:
        return 'near_upper'
    if position < config.bb_edge:
        return 'near_lower'
    return 'middle'


def bollinger_signal(price: float, upper: float, lower: float) -> Action:
    # A zero-width band (no variance) carries no signal
    if upper <= lower:
        return Action.HOLD
    if price >= upper:
        return Action.SELL
    if price <= lower:
        return Action.BUY
    return Action.HOLD


def calculate_bollinger(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    window = df['close'].iloc[-config.bb_period:]
    middle = float(window.mean())
    std = float(window.std(ddof=0))
    upper = middle + config.bb_std * std
    lower = middle - config.bb_std * std
    price = float(df['close'].iloc[-1])

    position = bollinger_position(price, upper, lower, config)
    interpretation = {
        'near_upper': 'Price near upper band - potential reversal down',
        'near_lower': 'Price near lower band - potential reversal up',
    }.get(position, 'Price within normal range')

    return IndicatorReading(
        name='bollinger',
        value=middle,
        signal=bollinger_signal(price, upper, lower),
        interpretation=interpretation,
        components={'upper': upper, 'middle': middle, 'lower': lower, 'position': position},
    )


# ---------------------------------------------------------------------------
# Moving averages
# ---------------------------------------------------------------------------

def ma_signal(price: float, sma_short: float, sma_long: float) -> Action:
    if price > sma_short > sma_long:
        return Action.BUY
    if price < sma_short < sma_long:
        return Action.SELL
    return Action.HOLD


def calculate_moving_averages(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    close = df['close']
    price = float(close.iloc[-1])
    sma20 = float(sma(close, config.sma_short).iloc[-1])
    sma50 = float(sma(close, config.sma_long).iloc[-1])
    ema12 = float(ema(close, config.ema_fast).iloc[-1])
    ema26 = float(ema(close, config.ema_slow).iloc[-1])

    signal = ma_signal(price, sma20, sma50)
    if signal == Action.BUY:
        interpretation = 'Strong uptrend - price above both moving averages'
    elif signal == Action.SELL:
        interpretation = 'Strong downtrend - price below both moving averages'
    else:
        interpretation = 'Mixed signals - trend unclear'

    return IndicatorReading(
        name='moving_averages',
        value=sma20,
        signal=signal,
        interpretation=interpretation,
        components={'sma20': sma20, 'sma50': sma50, 'ema12': ema12, 'ema26': ema26},
    )


# ---------------------------------------------------------------------------
# Stochastic
# ---------------------------------------------------------------------------

def stochastic_signal(k: float, d: float, config: TechnicalIndicatorConfig) -> Action:
    if k > config.stoch_overbought and d > config.stoch_overbought:
        return Action.SELL
    if k < config.stoch_oversold and d < config.stoch_oversold:
        return Action.BUY
    return Action.HOLD


def calculate_stochastic(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    low_n = df['low'].rolling(config.stoch_period).min()
    high_n = df['high'].rolling(config.stoch_period).max()
    price_range = high_n - low_n
    stoch_k = ((df['close'] - low_n) / price_range.replace(0, np.nan) * 100).where(
        price_range != 0, 50.0)
    stoch_d = stoch_k.rolling(config.stoch_smooth).mean()

    k = float(stoch_k.iloc[-1])
    d = float(stoch_d.iloc[-1])
    if k > config.stoch_overbought:
        interpretation = 'Overbought conditions'
    elif k < config.stoch_oversold:
        interpretation = 'Oversold conditions'
    else:
        interpretation = 'Normal momentum range'

    return IndicatorReading(
        name='stochastic',
        value=k,
        signal=stochastic_signal(k, d, config),
        interpretation=interpretation,
        components={'k': k, 'd': d},
    )


# ---------------------------------------------------------------------------
# ATR
# ---------------------------------------------------------------------------

def interpret_atr(atr_percent: float, config: TechnicalIndicatorConfig) -> str:
    if atr_percent > config.atr_high_pct:
        return 'high volatility'
    if atr_percent < config.atr_low_pct:
        return 'low volatility'
    return 'normal'


def calculate_atr(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> IndicatorReading:
    """ATR as the simple rolling mean of the true range (not Wilder-smoothed)"""
    high_low = df['high'] - df['low']
    high_close = (df['high'] - df['close'].shift()).abs()
    low_close = (df['low'] - df['close'].shift()).abs()
    true_range = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
    atr = float(true_range.rolling(window=config.atr_period).mean().iloc[-1])

    price = float(df['close'].iloc[-1])
    atr_percent = atr / price * 100
    return IndicatorReading(
        name='atr',
        value=atr,
        signal=Action.HOLD,
        interpretation=interpret_atr(atr_percent, config),
        components={'percent': atr_percent},
    )


IndicatorFn = Callable[[pd.DataFrame, TechnicalIndicatorConfig], IndicatorReading]

# Fixed evaluation order; names match IndicatorSet fields
INDICATORS: Tuple[Tuple[str, IndicatorFn], ...] = (
    ('rsi', calculate_rsi),
    ('macd', calculate_macd),
    ('bollinger', calculate_bollinger),
    ('moving_averages', calculate_moving_averages),
    ('stochastic', calculate_stochastic),
    ('atr', calculate_atr),
)


# ---------------------------------------------------------------------------
# Trend, volatility, volume
# ---------------------------------------------------------------------------

def relative_change(values) -> float:
    """Relative change from the first to the last value"""
    values = np.asarray(values, dtype=float)
    if len(values) < 2 or values[0] == 0:
        return 0.0
    return float((values[-1] - values[0]) / values[0])


def _trend_reading(close: np.ndarray, window: int, threshold: float) -> TrendReading:
    change = relative_change(close[-window:])
    if change > threshold:
        direction = 'up'
    elif change < -threshold:
        direction = 'down'
    else:
        direction = 'sideways'
    return TrendReading(direction=direction, strength=abs(change), value=change)


def calculate_trend(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> Trend:
    close = df['close'].to_numpy()
    return Trend(
        short_term=_trend_reading(close, config.trend_short_window, config.trend_short_threshold),
        medium_term=_trend_reading(close, config.trend_medium_window, config.trend_medium_threshold),
        long_term=_trend_reading(close, config.trend_long_window, config.trend_long_threshold),
    )


def calculate_volatility(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> VolatilityReading:
    returns = df['close'].pct_change().dropna()
    daily = float(returns.std(ddof=0)) if len(returns) else 0.0
    annualized = daily * math.sqrt(config.trading_days)
    if annualized > config.volatility_high:
        level = 'high'
    elif annualized > config.volatility_medium:
        level = 'medium'
    else:
        level = 'low'
    return VolatilityReading(daily=daily, annualized=annualized, level=level)


def calculate_volume(df: pd.DataFrame, config: TechnicalIndicatorConfig) -> VolumeReading:
    volume = df['volume']
    average = float(volume.mean())
    recent = float(volume.iloc[-config.volume_recent_window:].mean())
    ratio = recent / average if average > 0 else 1.0

    if ratio > config.volume_high_ratio:
        signal = 'high'
    elif ratio < config.volume_low_ratio:
        signal = 'low'
    else:
        signal = 'normal'

    if ratio > config.volume_extreme_ratio:
        interpretation = 'Extremely high volume - strong interest'
    elif ratio > config.volume_high_ratio:
        interpretation = 'High volume - increased activity'
    elif ratio < config.volume_weak_ratio:
        interpretation = 'Low volume - weak interest'
    else:
        interpretation = 'Normal volume levels'

    return VolumeReading(average=average, recent=recent, ratio=ratio,
                         signal=signal, interpretation=interpretation)


def recent_volume_ratio(volume: pd.Series, recent: int = 5, prior: int = 15) -> float:
    """Average of the last `recent` bars over the average of the `prior` bars before them"""
    recent_avg = float(volume.iloc[-recent:].mean())
    prior_window = volume.iloc[-(recent + prior):-recent]
    prior_avg = float(prior_window.mean()) if len(prior_window) else 0.0
    if prior_avg <= 0:
        return 1.0
    return recent_avg / prior_avg


class TechnicalIndicators:
    """
    Indicator library over a validated OHLCV DataFrame
    """

    def __init__(self, config: TechnicalIndicatorConfig = None):
        self.config = config or TechnicalIndicatorConfig()

    def calculate_all_indicators(self, df: pd.DataFrame) -> IndicatorSet:
        """
        Calculate every indicator in INDICATORS order

        Args:
            df: DataFrame with OHLCV data

        Returns:
            IndicatorSet with the latest reading of each indicator

        Raises:
            InsufficientDataError: fewer bars than config.min_bars
        """
        if len(df) < self.config.min_bars:
            raise InsufficientDataError(self.config.min_bars, len(df))

        readings: Dict[str, IndicatorReading] = {}
        for name, fn in INDICATORS:
            readings[name] = fn(df, self.config)

        logger.debug(
            "Indicators: " + ", ".join(f"{r.name}={r.value:.4f}/{r.signal.value}" for r in readings.values())
        )
        return IndicatorSet(**readings)

    def trend(self, df: pd.DataFrame) -> Trend:
        return calculate_trend(df, self.config)

    def volatility(self, df: pd.DataFrame) -> VolatilityReading:
        return calculate_volatility(df, self.config)

    def volume(self, df: pd.DataFrame) -> VolumeReading:
        return calculate_volume(df, self.config)
