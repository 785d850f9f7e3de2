"""
Shared price-series builders for the signal engine tests.
"""

from datetime import datetime, timedelta

import pandas as pd
import pytest

from core.models import PriceBar


START = datetime(2024, 1, 1)


def make_bars(closes, volumes=None, spread=1.0, start=START):
    """Daily bars around the given closes; high/low sit `spread` away from the close."""
    if volumes is None:
        volumes = [1000.0] * len(closes)
    bars = []
    for i, (close, volume) in enumerate(zip(closes, volumes)):
        bars.append(PriceBar(
            date=start + timedelta(days=i),
            open=float(close),
            high=float(close) + spread,
            low=float(close) - spread,
            close=float(close),
            volume=float(volume),
        ))
    return bars


def make_frame(closes, volumes=None, spread=1.0, highs=None, lows=None):
    """OHLCV DataFrame with a 'date' column."""
    closes = [float(c) for c in closes]
    n = len(closes)
    return pd.DataFrame({
        'date': pd.date_range(START, periods=n, freq='D'),
        'open': closes,
        'high': highs if highs is not None else [c + spread for c in closes],
        'low': lows if lows is not None else [c - spread for c in closes],
        'close': closes,
        'volume': volumes if volumes is not None else [1000.0] * n,
    })


@pytest.fixture
def rising_bars():
    """60 bars with close[i] = 100 + i."""
    return make_bars([100 + i for i in range(60)])


@pytest.fixture
def falling_bars():
    """60 bars with close[i] = 200 - i."""
    return make_bars([200 - i for i in range(60)])


@pytest.fixture
def flat_bars():
    """60 identical bars."""
    return make_bars([100.0] * 60, spread=0.0)
