"""
Market Data Validation

Converts an ordered price series (PriceBar records or an OHLCV DataFrame)
into the numeric DataFrame the indicator library works on, rejecting short
or malformed series before any indicator is computed.
"""

import logging
from typing import Sequence, Union

import numpy as np
import pandas as pd

from core.exceptions import InsufficientDataError, InvalidInputError
from core.models import PriceBar

logger = logging.getLogger(__name__)

PRICE_COLUMNS = ['open', 'high', 'low', 'close']
OHLCV_COLUMNS = PRICE_COLUMNS + ['volume']

PriceSeries = Union[Sequence[PriceBar], pd.DataFrame]


def to_frame(price_series: PriceSeries, min_bars: int = 50) -> pd.DataFrame:
    """
    Validate a price series and return it as a float OHLCV DataFrame

    Args:
        price_series: PriceBars in ascending date order, or a DataFrame with
            open/high/low/close/volume columns and an optional 'date' column
            (or DatetimeIndex)
        min_bars: Minimum number of bars required

    Returns:
        DataFrame indexed 0..n-1 with OHLCV columns and a 'date' column

    Raises:
        InsufficientDataError: fewer than min_bars bars
        InvalidInputError: malformed bars
    """
    if price_series is None:
        raise InsufficientDataError(min_bars, 0)

    if isinstance(price_series, pd.DataFrame):
        df = _frame_from_dataframe(price_series)
    else:
        df = _frame_from_bars(price_series)

    if len(df) < min_bars:
        raise InsufficientDataError(min_bars, len(df))

    _validate(df)
    return df


def _frame_from_bars(bars: Sequence[PriceBar]) -> pd.DataFrame:
    rows = []
    for i, bar in enumerate(bars):
        if not isinstance(bar, PriceBar):
            raise InvalidInputError(f"Bar {i} is not a PriceBar: {type(bar).__name__}")
        rows.append((bar.date, bar.open, bar.high, bar.low, bar.close, bar.volume))
    return pd.DataFrame(rows, columns=['date'] + OHLCV_COLUMNS)


def _frame_from_dataframe(source: pd.DataFrame) -> pd.DataFrame:
    columns = {c.lower(): c for c in source.columns}
    missing = [c for c in OHLCV_COLUMNS if c not in columns]
    if missing:
        raise InvalidInputError(f"Price frame is missing columns: {missing}")

    df = pd.DataFrame({c: source[columns[c]].to_numpy() for c in OHLCV_COLUMNS})
    if 'date' in columns:
        df.insert(0, 'date', source[columns['date']].to_numpy())
    elif isinstance(source.index, pd.DatetimeIndex):
        df.insert(0, 'date', source.index.to_numpy())
    else:
        df.insert(0, 'date', pd.NaT)
    return df


def _validate(df: pd.DataFrame):
    try:
        df[OHLCV_COLUMNS] = df[OHLCV_COLUMNS].astype(float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Non-numeric OHLCV value: {e}") from e

    values = df[OHLCV_COLUMNS].to_numpy()
    if not np.isfinite(values).all():
        row = int(np.where(~np.isfinite(values).all(axis=1))[0][0])
        raise InvalidInputError(f"Bar {row} contains a missing or infinite value")

    non_positive = (df[PRICE_COLUMNS] <= 0).any(axis=1)
    if non_positive.any():
        row = int(non_positive.idxmax())
        raise InvalidInputError(f"Bar {row} has a non-positive price")

    if (df['volume'] < 0).any():
        row = int((df['volume'] < 0).idxmax())
        raise InvalidInputError(f"Bar {row} has a negative volume")

    if (df['high'] < df['low']).any():
        row = int((df['high'] < df['low']).idxmax())
        raise InvalidInputError(f"Bar {row} has high below low")

    if df['date'].notna().all():
        try:
            dates = pd.to_datetime(df['date'])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Unparseable bar date: {e}") from e
        if not (dates.is_monotonic_increasing and dates.is_unique):
            raise InvalidInputError("Price series must be in strictly ascending date order")
        df['date'] = dates

    logger.debug(f"Validated price series of {len(df)} bars")
