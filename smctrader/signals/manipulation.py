# -*- coding: utf-8 -*-
"""
Stop-hunt and fakeout detection around recent swing levels.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from smctrader.models import Bias, ManipulationKind, ManipulationSignal
from smctrader.signals.structure import swings_of_kind


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

MIN_CANDLES = 5
RECENT_CANDLES = 10
RECENT_SWINGS = 3
STOP_HUNT_MIN_WICK_PCT = 0.3


def no_manipulation(price: float, description: str = 'No manipulation detected') -> ManipulationSignal:
    return ManipulationSignal(detected=False, kind=ManipulationKind.NONE,
                              price=price, description=description)


def _stop_hunt(recent: pd.DataFrame, levels, bias: Bias) -> Optional[ManipulationSignal]:
    """
    Wick through a swing level that closed back inside.

    ``bias`` is the side being hunted: BEARISH checks swing highs (buy stops
    taken above), BULLISH checks swing lows.
    """
    # the first recent candle is the reference bar, not a sweep candidate
    highs = recent['high'].to_numpy(dtype=float)[1:]
    lows = recent['low'].to_numpy(dtype=float)[1:]
    closes = recent['close'].to_numpy(dtype=float)[1:]

    for level in levels:
        if bias is Bias.BEARISH:
            pierced = (highs > level) & (closes < level)
            wick_pct = (highs - closes) / closes * 100.0
        else:
            pierced = (lows < level) & (closes > level)
            wick_pct = (closes - lows) / closes * 100.0

        hits = np.flatnonzero(pierced & (wick_pct > STOP_HUNT_MIN_WICK_PCT))
        if len(hits) == 0:
            continue

        i = hits[0]
        if bias is Bias.BEARISH:
            return ManipulationSignal(
                detected=True,
                kind=ManipulationKind.STOP_HUNT,
                price=float(highs[i]),
                description=(f"Stop hunt above swing high at {level:.4f}: wick of "
                             f"{wick_pct[i]:.2f}% closed back below. Bearish manipulation resolved."),
            )
        return ManipulationSignal(
            detected=True,
            kind=ManipulationKind.STOP_HUNT,
            price=float(lows[i]),
            description=(f"Stop hunt below swing low at {level:.4f}: wick of "
                         f"{wick_pct[i]:.2f}% closed back above. Bullish manipulation resolved."),
        )
    return None


def detect_manipulation(candles: pd.DataFrame, swings: pd.DataFrame,
                        current_price: float) -> ManipulationSignal:
    """
    Classify recent price action as a stop hunt, a fakeout or neither.

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared candle window.
    swings : pd.DataFrame
        Output of ``detect_swing_points`` for the same window.
    current_price : float
        Reported as the signal price when nothing is detected.

    Returns
    -------
    ManipulationSignal
        The first match in the order: stop hunt above highs, stop hunt below
        lows, fakeout above the latest high, fakeout below the latest low.

    Notes
    -----
    A fakeout is the last candle trading beyond the latest swing without
    closing beyond it. It marks an unconfirmed break; entries in that
    direction should wait for a displaced close.
    """
    if len(candles) < MIN_CANDLES:
        return no_manipulation(current_price, 'Insufficient data')

    recent = candles.tail(RECENT_CANDLES)
    swing_highs = swings_of_kind(swings, 'high')['price'].tail(RECENT_SWINGS).tolist() if len(swings) else []
    swing_lows = swings_of_kind(swings, 'low')['price'].tail(RECENT_SWINGS).tolist() if len(swings) else []

    signal = _stop_hunt(recent, swing_highs, Bias.BEARISH)
    if signal is None:
        signal = _stop_hunt(recent, swing_lows, Bias.BULLISH)
    if signal is not None:
        logger.debug(signal.description)
        return signal

    last = candles.iloc[-1]
    if swing_highs:
        level = swing_highs[-1]
        if last['high'] > level and last['close'] < level:
            return ManipulationSignal(
                detected=True,
                kind=ManipulationKind.FAKEOUT,
                price=float(last['high']),
                description=(f"Fakeout above {level:.4f} with no displacement close. "
                             f"Avoid Long entries until a BOS confirms."),
            )
    if swing_lows:
        level = swing_lows[-1]
        if last['low'] < level and last['close'] > level:
            return ManipulationSignal(
                detected=True,
                kind=ManipulationKind.FAKEOUT,
                price=float(last['low']),
                description=(f"Fakeout below {level:.4f} with no displacement close. "
                             f"Avoid Short entries until a BOS confirms."),
            )

    return no_manipulation(current_price)
