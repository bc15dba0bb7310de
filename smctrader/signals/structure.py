# -*- coding: utf-8 -*-
"""
Market structure: swing points, Break of Structure and Change of Character.

A BOS is a close beyond a prior swing in the direction of the move that
created it (continuation). A CHOCH is a close through the latest swing of a
lower-high or higher-low sequence (the structure changing direction).
"""

import logging
import numpy as np
import pandas as pd

from smctrader.models import Bias


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

SWING_LOOKBACK = 3  # Candles on each side of a swing point
BOS_SWING_COUNT = 5  # Most recent swings of each kind checked for a break
BOS_MIN_DISPLACEMENT_PCT = 0.1
CHOCH_MIN_DISPLACEMENT_PCT = 0.15
CHOCH_MIN_SWINGS = 4
CHOCH_RECENT_SWINGS = 8

SWING_COLUMNS = ['index', 'price', 'kind']
STRUCTURE_COLUMNS = ['index', 'price', 'direction', 'displacement_pct']


def _empty(columns) -> pd.DataFrame:
    return pd.DataFrame(columns=columns)


# ============================================================================
# Swing Points
# ============================================================================

def detect_swing_points(candles: pd.DataFrame, lookback: int = SWING_LOOKBACK) -> pd.DataFrame:
    """
    Detect swing highs and swing lows over a symmetric window.

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared candle window.
    lookback : int, default SWING_LOOKBACK
        Candles required on each side of the swing.

    Returns
    -------
    pd.DataFrame
        Columns ``index`` (position in ``candles``), ``price`` and ``kind``
        ('high' or 'low'), ordered by index. An index can carry both kinds.
    """
    if len(candles) < 2 * lookback + 1:
        return _empty(SWING_COLUMNS)

    highs = candles['high'].to_numpy(dtype=float)
    lows = candles['low'].to_numpy(dtype=float)

    swings = []
    for i in range(lookback, len(candles) - lookback):
        window_start = i - lookback
        window_end = i + lookback + 1

        if highs[i] == np.max(highs[window_start:window_end]):
            swings.append({'index': i, 'price': highs[i], 'kind': 'high'})
        if lows[i] == np.min(lows[window_start:window_end]):
            swings.append({'index': i, 'price': lows[i], 'kind': 'low'})

    if not swings:
        return _empty(SWING_COLUMNS)
    return pd.DataFrame(swings, columns=SWING_COLUMNS)


def swings_of_kind(swings: pd.DataFrame, kind: str) -> pd.DataFrame:
    """Swing highs or swing lows, preserving order."""
    if len(swings) == 0:
        return swings
    return swings[swings['kind'] == kind]


def _first_break(closes: np.ndarray, start: int, level: float, bias: Bias,
                 min_displacement_pct: float):
    """First close from ``start`` beyond ``level`` by more than the threshold."""
    for i in range(start, len(closes)):
        if bias is Bias.BULLISH:
            if closes[i] <= level:
                continue
            displacement = (closes[i] - level) / level * 100.0
        else:
            if closes[i] >= level:
                continue
            displacement = (level - closes[i]) / level * 100.0
        if displacement > min_displacement_pct:
            return i, displacement
    return None


# ============================================================================
# Break of Structure
# ============================================================================

def detect_bos(candles: pd.DataFrame, swings: pd.DataFrame,
               swing_count: int = BOS_SWING_COUNT,
               min_displacement_pct: float = BOS_MIN_DISPLACEMENT_PCT) -> pd.DataFrame:
    """
    Detect Break of Structure signals.

    For each of the last ``swing_count`` swing highs (lows), the first later
    close above (below) the swing by more than ``min_displacement_pct``
    percent registers one bullish (bearish) BOS at the confirming candle.

    Returns
    -------
    pd.DataFrame
        Columns ``index``, ``price`` (broken level), ``direction`` and
        ``displacement_pct``, sorted by index.
    """
    if len(swings) == 0 or len(candles) == 0:
        return _empty(STRUCTURE_COLUMNS)

    closes = candles['close'].to_numpy(dtype=float)
    signals = []

    for kind, bias in (('high', Bias.BULLISH), ('low', Bias.BEARISH)):
        recent = swings_of_kind(swings, kind).tail(swing_count)
        for swing_index, swing_price in zip(recent['index'], recent['price']):
            hit = _first_break(closes, int(swing_index) + 1, float(swing_price), bias,
                               min_displacement_pct)
            if hit is None:
                continue
            index, displacement = hit
            signals.append({
                'index': index,
                'price': float(swing_price),
                'direction': bias.value,
                'displacement_pct': displacement,
            })

    if not signals:
        return _empty(STRUCTURE_COLUMNS)

    bos_df = pd.DataFrame(signals, columns=STRUCTURE_COLUMNS)
    return bos_df.sort_values('index', kind='stable').reset_index(drop=True)


# ============================================================================
# Change of Character
# ============================================================================

def detect_choch(candles: pd.DataFrame, swings: pd.DataFrame,
                 min_displacement_pct: float = CHOCH_MIN_DISPLACEMENT_PCT) -> pd.DataFrame:
    """
    Detect Change of Character signals.

    Among the last eight swings, two falling highs describe a downtrend: a
    close above the latest high is a bullish CHOCH. Two rising lows describe
    an uptrend: a close below the latest low is a bearish CHOCH. Needs at
    least four swings.
    """
    if len(swings) < CHOCH_MIN_SWINGS:
        return _empty(STRUCTURE_COLUMNS)

    closes = candles['close'].to_numpy(dtype=float)
    recent = swings.tail(CHOCH_RECENT_SWINGS)
    signals = []

    for kind, bias in (('high', Bias.BULLISH), ('low', Bias.BEARISH)):
        same_kind = swings_of_kind(recent, kind)
        if len(same_kind) < 2:
            continue
        previous, latest = same_kind.iloc[-2], same_kind.iloc[-1]

        # bullish CHOCH needs a lower high, bearish CHOCH a higher low
        if bias is Bias.BULLISH and not latest['price'] < previous['price']:
            continue
        if bias is Bias.BEARISH and not latest['price'] > previous['price']:
            continue

        level = float(latest['price'])
        hit = _first_break(closes, int(latest['index']) + 1, level, bias, min_displacement_pct)
        if hit is None:
            continue
        index, displacement = hit
        logger.debug(f"{bias.value} CHOCH at index {index} through {level:.4f}")
        signals.append({
            'index': index,
            'price': level,
            'direction': bias.value,
            'displacement_pct': displacement,
        })

    if not signals:
        return _empty(STRUCTURE_COLUMNS)

    choch_df = pd.DataFrame(signals, columns=STRUCTURE_COLUMNS)
    return choch_df.sort_values('index', kind='stable').reset_index(drop=True)
