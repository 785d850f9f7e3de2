"""
Unit tests for the technical indicator library.
"""

import numpy as np
import pandas as pd
import pytest

from core.exceptions import InsufficientDataError
from core.market_data import to_frame
from core.models import Action
from core.technical_indicators import (
    INDICATORS, TechnicalIndicatorConfig, TechnicalIndicators, bollinger_position,
    bollinger_signal, calculate_atr, calculate_bollinger, calculate_macd, calculate_rsi,
    calculate_stochastic, ema, interpret_atr, interpret_rsi, ma_signal, macd_signal,
    recent_volume_ratio, relative_change, rsi_signal, wilder_rsi,
)
from conftest import make_bars, make_frame


@pytest.fixture
def config():
    return TechnicalIndicatorConfig()


@pytest.fixture
def indicators():
    return TechnicalIndicators()


class TestRSI:
    """RSI value, guards and signal rules."""

    def test_flat_series_reads_fifty(self):
        assert wilder_rsi(np.full(60, 100.0)) == (50.0, False)

    def test_only_gains_saturates_at_hundred(self):
        assert wilder_rsi(np.arange(100.0, 160.0)) == (100.0, True)

    def test_only_losses_saturates_at_zero(self):
        assert wilder_rsi(np.arange(200.0, 140.0, -1.0)) == (0.0, True)

    def test_early_dip_still_saturates(self):
        closes = np.array([100.0, 99.0] + [100.0 + i for i in range(58)])
        value, saturated = wilder_rsi(closes)
        assert 99.0 < value < 100.0
        assert saturated

    def test_recent_loss_clears_saturation(self):
        closes = np.array([100.0 + i for i in range(58)] + [150.0, 151.0])
        value, saturated = wilder_rsi(closes)
        assert value < 100.0
        assert not saturated

    def test_mixed_series_within_bounds(self):
        closes = np.array([100.0 + (i % 2) for i in range(60)])
        value, saturated = wilder_rsi(closes)
        assert 0.0 < value < 100.0
        assert not saturated

    def test_random_walk_within_bounds(self):
        rng = np.random.default_rng(7)
        closes = 100 + np.cumsum(rng.normal(0, 1, 200))
        value, _ = wilder_rsi(closes)
        assert 0.0 <= value <= 100.0

    @pytest.mark.parametrize("value,expected", [
        (75.0, Action.SELL),
        (25.0, Action.BUY),
        (50.0, Action.HOLD),
        (70.0, Action.HOLD),
        (30.0, Action.HOLD),
    ])
    def test_signal_thresholds(self, config, value, expected):
        assert rsi_signal(value, config) == expected

    @pytest.mark.parametrize("value,expected", [
        (85.0, 'extremely overbought'),
        (75.0, 'overbought'),
        (15.0, 'extremely oversold'),
        (25.0, 'oversold'),
        (50.0, 'neutral'),
    ])
    def test_interpretation(self, config, value, expected):
        assert interpret_rsi(value, config) == expected

    def test_reading_carries_saturation_flag(self, config):
        reading = calculate_rsi(make_frame([100 + i for i in range(60)]), config)
        assert reading.value == 100.0
        assert reading.saturated
        assert reading.signal == Action.SELL


class TestMACD:

    def test_ema_seeded_with_first_value(self):
        assert ema(pd.Series([10.0, 20.0, 20.0]), 3).tolist() == [10.0, 15.0, 17.5]

    def test_signal_rules(self):
        assert macd_signal(1.0, 0.5, 0.5) == Action.BUY
        assert macd_signal(-1.0, -0.5, -0.5) == Action.SELL
        assert macd_signal(0.0, 0.0, 0.0) == Action.HOLD

    def test_flat_series_has_no_momentum(self, config):
        reading = calculate_macd(make_frame([100.0] * 60), config)
        assert reading.components['histogram'] == pytest.approx(0.0, abs=1e-12)
        assert reading.signal == Action.HOLD

    def test_rising_series_is_bullish(self, config):
        reading = calculate_macd(make_frame([100 + i for i in range(60)]), config)
        assert reading.components['line'] > reading.components['signal']
        assert reading.components['histogram'] > 0
        assert reading.signal == Action.BUY


class TestBollinger:

    def test_zero_width_band_is_middle_and_hold(self, config):
        reading = calculate_bollinger(make_frame([100.0] * 60), config)
        assert reading.components['upper'] == reading.components['lower']
        assert reading.components['position'] == 'middle'
        assert reading.signal == Action.HOLD

    def test_band_touches(self):
        assert bollinger_signal(105.0, 104.0, 96.0) == Action.SELL
        assert bollinger_signal(95.0, 104.0, 96.0) == Action.BUY
        assert bollinger_signal(100.0, 104.0, 96.0) == Action.HOLD

    def test_positions(self, config):
        assert bollinger_position(103.5, 104.0, 96.0, config) == 'near_upper'
        assert bollinger_position(96.5, 104.0, 96.0, config) == 'near_lower'
        assert bollinger_position(100.0, 104.0, 96.0, config) == 'middle'

    def test_population_standard_deviation(self, config):
        closes = [100.0] * 40 + [100.0 + (i % 4) for i in range(20)]
        reading = calculate_bollinger(make_frame(closes), config)
        window = pd.Series(closes[-20:])
        expected_upper = window.mean() + 2 * window.std(ddof=0)
        assert reading.components['upper'] == pytest.approx(expected_upper)


class TestMovingAveragesAndStochastic:

    def test_ma_signal_rules(self):
        assert ma_signal(110.0, 105.0, 100.0) == Action.BUY
        assert ma_signal(90.0, 95.0, 100.0) == Action.SELL
        assert ma_signal(100.0, 105.0, 100.0) == Action.HOLD

    def test_stochastic_zero_range_reads_fifty(self, config):
        reading = calculate_stochastic(make_frame([100.0] * 60, spread=0.0), config)
        assert reading.components['k'] == 50.0
        assert reading.components['d'] == 50.0
        assert reading.signal == Action.HOLD

    def test_stochastic_rising_is_overbought(self, config):
        reading = calculate_stochastic(make_frame([100 + i for i in range(60)]), config)
        assert reading.components['k'] == pytest.approx(14 / 15 * 100)
        assert reading.signal == Action.SELL


class TestATR:

    def test_atr_is_simple_mean_of_true_range(self, config):
        highs = [101.0 if i % 2 else 103.0 for i in range(60)]
        reading = calculate_atr(make_frame([100.0] * 60, highs=highs, lows=[99.0] * 60), config)
        assert reading.value == pytest.approx(3.0)

    def test_atr_of_constant_spread(self, config):
        reading = calculate_atr(make_frame([100 + i for i in range(60)]), config)
        assert reading.value == pytest.approx(2.0)
        assert reading.components['percent'] == pytest.approx(2.0 / 159 * 100)
        assert reading.interpretation == 'normal'

    def test_interpretation(self, config):
        assert interpret_atr(3.5, config) == 'high volatility'
        assert interpret_atr(0.5, config) == 'low volatility'
        assert interpret_atr(2.0, config) == 'normal'


class TestTechnicalIndicators:

    def test_fewer_than_fifty_bars_fails(self, indicators):
        with pytest.raises(InsufficientDataError) as exc_info:
            indicators.calculate_all_indicators(make_frame([100 + i for i in range(49)]))
        assert exc_info.value.required == 50
        assert exc_info.value.received == 49

    def test_fifty_bars_succeeds(self, indicators):
        result = indicators.calculate_all_indicators(make_frame([100 + i for i in range(50)]))
        assert [r.name for r in result.readings()] == [name for name, _ in INDICATORS]

    def test_readings_are_fresh_per_call(self, indicators):
        df = make_frame([100 + (i % 7) for i in range(60)])
        assert indicators.calculate_all_indicators(df) == indicators.calculate_all_indicators(df)

    def test_trend_rising(self, indicators):
        trend = indicators.trend(make_frame([100 + i for i in range(60)]))
        assert trend.short_term.direction == 'up'
        assert trend.medium_term.value == pytest.approx(29 / 130)
        assert trend.medium_term.strength == pytest.approx(29 / 130)
        assert trend.long_term.direction == 'up'

    def test_trend_flat_is_sideways(self, indicators):
        trend = indicators.trend(make_frame([100.0] * 60))
        assert trend.short_term.direction == 'sideways'
        assert trend.medium_term.strength == 0.0

    def test_volatility_of_flat_series(self, indicators):
        reading = indicators.volatility(make_frame([100.0] * 60))
        assert reading.daily == 0.0
        assert reading.level == 'low'

    def test_volatility_annualized(self, indicators):
        closes = [100.0 * (1.03 if i % 2 else 1.0) for i in range(60)]
        reading = indicators.volatility(make_frame(closes))
        assert reading.annualized == pytest.approx(reading.daily * np.sqrt(252))
        assert reading.level == 'high'

    def test_volume_surge(self, indicators):
        volumes = [1000.0] * 55 + [3000.0] * 5
        reading = indicators.volume(make_frame([100.0] * 60, volumes=volumes))
        assert reading.ratio == pytest.approx(3000 / (70000 / 60))
        assert reading.signal == 'high'
        assert reading.interpretation == 'Extremely high volume - strong interest'

    def test_accepts_validated_bars(self, indicators):
        df = to_frame(make_bars([100 + i for i in range(60)]))
        assert indicators.calculate_all_indicators(df).moving_averages.signal == Action.BUY


def test_relative_change():
    assert relative_change([100.0, 110.0]) == pytest.approx(0.1)
    assert relative_change([100.0]) == 0.0


def test_recent_volume_ratio():
    volume = pd.Series([1000.0] * 15 + [3000.0] * 5)
    assert recent_volume_ratio(volume) == pytest.approx(3.0)
    assert recent_volume_ratio(pd.Series([0.0] * 15 + [10.0] * 5)) == 1.0
