# -*- coding: utf-8 -*-
"""
Price zones: order blocks, fair value gaps and liquidity pools.

Also holds the lookups the trade generator uses to turn zones into targets
and stops (nearest open gap, nearest unmitigated block, swept liquidity).
"""

from typing import Optional, Tuple

import numpy as np
import pandas as pd

from smctrader.models import Bias, Direction
from smctrader.signals.structure import swings_of_kind


# ============================================================================
# Configuration Constants
# ============================================================================

OB_LOOKBACK = 10  # Candles searched before a BOS for the order block
OB_MITIGATION_WINDOW = 5  # Mitigation checked up to this many candles past the BOS
LIQUIDITY_TOLERANCE = 0.003  # 0.3% for equal highs/lows
LIQUIDITY_MAX_STRENGTH = 3

SWEEP_WINDOW = 20  # Recent candles searched for swept liquidity
SWEEP_SWING_COUNT = 3
SWEEP_PROXIMITY = 0.001  # Wick must reach within 0.1% of the swing
SL_ATR_BUFFER = 0.5
SL_ATR_FALLBACK = 1.5

OB_COLUMNS = ['index', 'high', 'low', 'open', 'close', 'direction', 'mitigated', 'midpoint']
FVG_COLUMNS = ['index', 'high', 'low', 'direction', 'filled', 'midpoint']
LIQUIDITY_COLUMNS = ['price', 'kind', 'strength']


# ============================================================================
# Order Blocks
# ============================================================================

def detect_order_blocks(candles: pd.DataFrame, bos: pd.DataFrame,
                        lookback: int = OB_LOOKBACK,
                        mitigation_window: int = OB_MITIGATION_WINDOW) -> pd.DataFrame:
    """
    Locate the order block behind each BOS.

    A bullish BOS is preceded by a bullish order block: the last bearish
    candle among the ``lookback`` candles before the BOS candle (mirrored for
    bearish). The block is mitigated once any candle after it, up to
    ``mitigation_window - 1`` candles past the BOS, trades back to its low
    (bullish) or high (bearish).

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared candle window.
    bos : pd.DataFrame
        Output of ``detect_bos`` for the same window.

    Returns
    -------
    pd.DataFrame
        One row per BOS that has an order block, with columns OB_COLUMNS.
    """
    if len(bos) == 0 or len(candles) == 0:
        return pd.DataFrame(columns=OB_COLUMNS)

    opens = candles['open'].to_numpy(dtype=float)
    highs = candles['high'].to_numpy(dtype=float)
    lows = candles['low'].to_numpy(dtype=float)
    closes = candles['close'].to_numpy(dtype=float)

    blocks = []
    for bos_index, direction in zip(bos['index'], bos['direction']):
        bos_index = int(bos_index)
        bullish = direction == Bias.BULLISH.value
        start = max(0, bos_index - lookback)

        for i in range(bos_index - 1, start - 1, -1):
            opposite_colour = closes[i] < opens[i] if bullish else closes[i] > opens[i]
            if not opposite_colour:
                continue

            revisit = slice(i + 1, bos_index + mitigation_window)
            if bullish:
                mitigated = bool((lows[revisit] <= lows[i]).any())
            else:
                mitigated = bool((highs[revisit] >= highs[i]).any())

            blocks.append({
                'index': i,
                'high': highs[i],
                'low': lows[i],
                'open': opens[i],
                'close': closes[i],
                'direction': direction,
                'mitigated': mitigated,
                'midpoint': (highs[i] + lows[i]) / 2.0,
            })
            break

    if not blocks:
        return pd.DataFrame(columns=OB_COLUMNS)
    return pd.DataFrame(blocks, columns=OB_COLUMNS)


# ============================================================================
# Fair Value Gaps
# ============================================================================

def detect_fvgs(candles: pd.DataFrame) -> pd.DataFrame:
    """
    Detect three-candle fair value gaps.

    For each middle candle ``i``: a bullish gap when candle ``i+1``'s low is
    above candle ``i-1``'s high, a bearish gap when candle ``i+1``'s high is
    below candle ``i-1``'s low. A bullish gap is filled once a candle after
    the triple trades down to its lower bound; a bearish gap once a candle
    trades up to its upper bound.
    """
    if len(candles) < 3:
        return pd.DataFrame(columns=FVG_COLUMNS)

    highs = candles['high'].to_numpy(dtype=float)
    lows = candles['low'].to_numpy(dtype=float)

    gaps = []
    for i in range(1, len(candles) - 1):
        prev_high, prev_low = highs[i - 1], lows[i - 1]
        next_high, next_low = highs[i + 1], lows[i + 1]

        if next_low > prev_high:
            gap_high, gap_low = next_low, prev_high
            gaps.append({
                'index': i,
                'high': gap_high,
                'low': gap_low,
                'direction': Bias.BULLISH.value,
                'filled': bool((lows[i + 2:] <= gap_low).any()),
                'midpoint': (gap_high + gap_low) / 2.0,
            })

        if next_high < prev_low:
            gap_high, gap_low = prev_low, next_high
            gaps.append({
                'index': i,
                'high': gap_high,
                'low': gap_low,
                'direction': Bias.BEARISH.value,
                'filled': bool((highs[i + 2:] >= gap_high).any()),
                'midpoint': (gap_high + gap_low) / 2.0,
            })

    if not gaps:
        return pd.DataFrame(columns=FVG_COLUMNS)
    return pd.DataFrame(gaps, columns=FVG_COLUMNS)


# ============================================================================
# Liquidity Zones
# ============================================================================

def detect_liquidity_zones(candles: pd.DataFrame,
                           tolerance: float = LIQUIDITY_TOLERANCE) -> pd.DataFrame:
    """
    Detect equal highs and equal lows.

    Each high (low) with at least one later high (low) within ``tolerance``
    of it is reported; strength is the number of matching extremes
    including itself, capped at 3.
    """
    if len(candles) < 2:
        return pd.DataFrame(columns=LIQUIDITY_COLUMNS)

    zones = []
    for column, kind in (('high', 'equal_highs'), ('low', 'equal_lows')):
        levels = candles[column].to_numpy(dtype=float)
        for i, level in enumerate(levels):
            matches = int((np.abs(levels[i + 1:] - level) / level < tolerance).sum())
            if matches >= 1:
                zones.append({
                    'price': level,
                    'kind': kind,
                    'strength': min(LIQUIDITY_MAX_STRENGTH, matches + 1),
                })

    if not zones:
        return pd.DataFrame(columns=LIQUIDITY_COLUMNS)
    return pd.DataFrame(zones, columns=LIQUIDITY_COLUMNS)


# ============================================================================
# Zone Lookups
# ============================================================================

def _nearest(df: pd.DataFrame, column: str, price: float) -> Optional[pd.Series]:
    if len(df) == 0:
        return None
    distance = (df[column].astype(float) - price).abs()
    return df.loc[distance.idxmin()]


def find_nearest_unmitigated_ob(order_blocks: pd.DataFrame, price: float,
                                bias: Bias, side: Optional[str] = None) -> Optional[pd.Series]:
    """
    Nearest unmitigated order block of ``bias``.

    Bullish blocks are searched below ``price`` and bearish blocks above it,
    unless ``side`` ('above' or 'below') says otherwise.
    """
    if len(order_blocks) == 0:
        return None

    side = side or ('below' if bias is Bias.BULLISH else 'above')
    candidates = order_blocks[(~order_blocks['mitigated'].astype(bool))
                              & (order_blocks['direction'] == bias.value)]
    if side == 'below':
        candidates = candidates[candidates['midpoint'] < price]
    else:
        candidates = candidates[candidates['midpoint'] > price]
    return _nearest(candidates, 'midpoint', price)


def find_nearest_open_fvg(fvgs: pd.DataFrame, price: float, bias: Bias,
                          side: Optional[str] = None) -> Optional[pd.Series]:
    """
    Nearest unfilled fair value gap of ``bias``.

    Bullish gaps are searched above ``price`` (a magnet for longs) and
    bearish gaps below it, unless ``side`` ('above' or 'below') says otherwise.
    """
    if len(fvgs) == 0:
        return None

    side = side or ('above' if bias is Bias.BULLISH else 'below')
    candidates = fvgs[(~fvgs['filled'].astype(bool)) & (fvgs['direction'] == bias.value)]
    if side == 'above':
        candidates = candidates[candidates['midpoint'] > price]
    else:
        candidates = candidates[candidates['midpoint'] < price]
    return _nearest(candidates, 'midpoint', price)


def find_swept_liquidity_zone(candles: pd.DataFrame, swings: pd.DataFrame,
                              direction: Direction, price: float,
                              atr: float) -> Tuple[float, str]:
    """
    Stop-loss level behind swept liquidity.

    For a long, the most recent of the last three swing lows below ``price``
    that the recent candles wicked into and closed back above; the stop sits
    half an ATR beyond it. Falls back to an equal-lows cluster of the recent
    candles, then to 1.5 ATR from ``price``. Mirrored for shorts.

    Returns
    -------
    tuple of (float, str)
        Stop price and a label describing where it came from.
    """
    recent = candles.tail(SWEEP_WINDOW)
    highs = recent['high'].to_numpy(dtype=float)
    lows = recent['low'].to_numpy(dtype=float)
    closes = recent['close'].to_numpy(dtype=float)
    sign = direction.sign

    if direction is Direction.LONG:
        levels = swings_of_kind(swings, 'low')
        levels = levels[levels['price'] < price] if len(levels) else levels
    else:
        levels = swings_of_kind(swings, 'high')
        levels = levels[levels['price'] > price] if len(levels) else levels

    for level in reversed(levels['price'].tail(SWEEP_SWING_COUNT).tolist()):
        if direction is Direction.LONG:
            touched = lows <= level * (1 + SWEEP_PROXIMITY)
            recovered = touched & (closes > level)
        else:
            touched = highs >= level * (1 - SWEEP_PROXIMITY)
            recovered = touched & (closes < level)
        if recovered.any():
            kind = 'swing low' if direction is Direction.LONG else 'swing high'
            return level - sign * atr * SL_ATR_BUFFER, f"swept {kind}"

    if len(recent) > 0:
        extremes = lows if direction is Direction.LONG else highs
        extreme = extremes.min() if direction is Direction.LONG else extremes.max()
        cluster = extremes[np.abs(extremes - extreme) / extreme < LIQUIDITY_TOLERANCE]
        if len(cluster) >= 2:
            kind = 'equal lows' if direction is Direction.LONG else 'equal highs'
            return float(extreme) - sign * atr * SL_ATR_BUFFER, f"{kind} cluster"

    return price - sign * atr * SL_ATR_FALLBACK, 'ATR-based liquidity zone'
