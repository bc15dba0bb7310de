# -*- coding: utf-8 -*-
"""
Wyckoff phase and institutional cycle labelling.
"""

import pandas as pd

from smctrader.models import Bias, InstitutionalCycle, ManipulationSignal, WyckoffPhase


# ============================================================================
# Configuration Constants
# ============================================================================

WYCKOFF_WINDOW = 20
RANGE_PRICE_CHANGE_PCT = 3.0
ACCUMULATION_VOLUME_CHANGE_PCT = 20.0
DISTRIBUTION_VOLUME_CHANGE_PCT = -10.0
CYCLE_RECENT_CANDLES = 5


def estimate_wyckoff_phase(candles: pd.DataFrame, window: int = WYCKOFF_WINDOW) -> WyckoffPhase:
    """
    Infer the Wyckoff phase from the drift of price and volume.

    The last ``window`` candles are split in two halves. Range-bound price
    with rising volume reads as accumulation, range-bound price with fading
    volume as distribution, and a >3% move on rising volume as markup or
    markdown.
    """
    if len(candles) < window:
        return WyckoffPhase.UNKNOWN

    recent = candles.tail(window)
    half = window // 2
    closes = recent['close'].astype(float)
    volumes = recent['volume'].astype(float)

    first_price, second_price = closes.iloc[:half].mean(), closes.iloc[half:].mean()
    first_volume, second_volume = volumes.iloc[:half].mean(), volumes.iloc[half:].mean()
    if first_price == 0 or first_volume == 0:
        return WyckoffPhase.UNKNOWN

    price_change = (second_price - first_price) / first_price * 100.0
    volume_change = (second_volume - first_volume) / first_volume * 100.0

    if abs(price_change) < RANGE_PRICE_CHANGE_PCT and volume_change > ACCUMULATION_VOLUME_CHANGE_PCT:
        return WyckoffPhase.ACCUMULATION
    if abs(price_change) < RANGE_PRICE_CHANGE_PCT and volume_change < DISTRIBUTION_VOLUME_CHANGE_PCT:
        return WyckoffPhase.DISTRIBUTION
    if price_change > RANGE_PRICE_CHANGE_PCT and volume_change > 0:
        return WyckoffPhase.MARKUP
    if price_change < -RANGE_PRICE_CHANGE_PCT and volume_change > 0:
        return WyckoffPhase.MARKDOWN
    return WyckoffPhase.UNKNOWN


def classify_institutional_cycle(candles: pd.DataFrame, bos: pd.DataFrame,
                                 manipulation: ManipulationSignal) -> InstitutionalCycle:
    """Where price sits in the accumulation / manipulation / distribution cycle."""
    if manipulation.detected:
        return InstitutionalCycle.MANIPULATION
    if len(bos) == 0 or len(candles) == 0:
        return InstitutionalCycle.ACCUMULATION

    last_bos = bos.iloc[-1]
    avg_close = candles['close'].tail(CYCLE_RECENT_CANDLES).astype(float).mean()

    if last_bos['direction'] == Bias.BULLISH.value and avg_close > last_bos['price']:
        return InstitutionalCycle.DISTRIBUTION
    if last_bos['direction'] == Bias.BEARISH.value and avg_close < last_bos['price']:
        return InstitutionalCycle.DISTRIBUTION
    return InstitutionalCycle.ACCUMULATION
