# -*- coding: utf-8 -*-
"""
Candle window preparation.

Every analysis entry point runs its input through ``prepare_candles`` so the
detectors can assume a clean, positionally indexed OHLCV frame.
"""

import numpy as np
import pandas as pd
from typing import Iterable, Sequence, Union

from smctrader.exceptions import CandleValidationError


PRICE_COLUMNS = ['open', 'high', 'low', 'close']
CANDLE_COLUMNS = ['open_time', 'open', 'high', 'low', 'close', 'volume', 'close_time']

# Column order of a raw Binance kline row
KLINE_COLUMNS = [
    'open_time', 'open', 'high', 'low', 'close', 'volume',
    'close_time', 'quote_volume', 'trades', 'taker_buy_base',
    'taker_buy_quote', 'ignore'
]


def prepare_candles(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and standardize a candle window.

    Parameters
    ----------
    df : pd.DataFrame
        Candles with at least open, high, low, close columns. ``volume``
        defaults to 0 when absent; ``open_time``/``close_time`` are optional
        but, when present, must be strictly increasing.

    Returns
    -------
    pd.DataFrame
        Copy with float price/volume columns and a 0..n-1 RangeIndex.

    Raises
    ------
    CandleValidationError
        Missing columns, non-numeric, NaN/inf or non-positive prices,
        high below low, negative volume, or unordered timestamps.
    """
    missing_cols = [col for col in PRICE_COLUMNS if col not in df.columns]
    if missing_cols:
        raise CandleValidationError(f"Missing required columns: {missing_cols}")

    df_out = df.copy()
    if 'volume' not in df_out.columns:
        df_out['volume'] = 0.0

    for col in PRICE_COLUMNS + ['volume']:
        try:
            df_out[col] = pd.to_numeric(df_out[col], errors='raise').astype(float)
        except (ValueError, TypeError) as e:
            raise CandleValidationError(f"Column '{col}' is not numeric: {e}") from e

    values = df_out[PRICE_COLUMNS + ['volume']].to_numpy()
    if not np.isfinite(values).all():
        raise CandleValidationError("Candle window contains NaN or infinite values")
    if (df_out[PRICE_COLUMNS] <= 0).any().any():
        raise CandleValidationError("Candle prices must be positive")
    if (df_out['volume'] < 0).any():
        raise CandleValidationError("Candle volume must be non-negative")
    if (df_out['high'] < df_out['low']).any():
        raise CandleValidationError("Candle high below low")

    for col in ('open_time', 'close_time'):
        if col in df_out.columns:
            times = pd.to_datetime(df_out[col], utc=True)
            if times.isna().any():
                raise CandleValidationError(f"Column '{col}' contains missing timestamps")
            if not times.is_monotonic_increasing or times.duplicated().any():
                raise CandleValidationError(f"Column '{col}' is not strictly increasing")
            df_out[col] = times

    return df_out.reset_index(drop=True)


def candles_from_klines(klines: Iterable[Union[Sequence, dict]]) -> pd.DataFrame:
    """
    Build a candle window from raw kline rows.

    Accepts Binance REST rows (12-element lists, millisecond times, string
    prices) or dicts keyed by the candle column names.
    """
    rows = list(klines)
    if not rows:
        return pd.DataFrame(columns=CANDLE_COLUMNS)

    if isinstance(rows[0], dict):
        df = pd.DataFrame(rows)
    else:
        df = pd.DataFrame([list(row)[:len(KLINE_COLUMNS)] for row in rows],
                          columns=KLINE_COLUMNS[:len(rows[0])])

    for col in ('open_time', 'close_time'):
        if col in df.columns and pd.api.types.is_numeric_dtype(df[col]):
            df[col] = pd.to_datetime(df[col], unit='ms', utc=True)

    keep = [col for col in CANDLE_COLUMNS if col in df.columns]
    return prepare_candles(df[keep])
