# -*- coding: utf-8 -*-
"""
Weighted market sentiment score.

Classic factors (RSI, MACD, price action, volume, momentum) always count
towards the total weight. Structural factors (volume spike, FVG imbalance,
liquidity sweep, Wyckoff phase) only enter the total when they fire, so a
quiet market is judged on the classic factors alone.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from smctrader.models import Bias, SentimentAnalysis, SentimentFactor, Trend, WyckoffPhase
from smctrader.runtime import Clock, SystemClock
from smctrader.signals.cycle import estimate_wyckoff_phase
from smctrader.signals.indicators import (
    RSI_OVERBOUGHT, RSI_OVERSOLD, calculate_momentum, calculate_rsi, ema_series,
)
from smctrader.signals.structure import detect_swing_points, swings_of_kind
from smctrader.signals.zones import detect_fvgs


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

# Classic factor weights
RSI_WEIGHT = 20
MACD_WEIGHT = 20
PRICE_ACTION_WEIGHT = 15
VOLUME_WEIGHT = 10
MOMENTUM_WEIGHT = 5

# Structural factor weights
VOLUME_SPIKE_WEIGHT = 15
FVG_IMBALANCE_MAX_WEIGHT = 12
FVG_IMBALANCE_STEP = 3
LIQUIDITY_SWEEP_WEIGHT = 12
WYCKOFF_RANGE_WEIGHT = 10  # accumulation / distribution
WYCKOFF_TREND_WEIGHT = 8  # markup / markdown

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9

PRICE_ACTION_WINDOW = 20
PRICE_ACTION_THRESHOLD_PCT = 2.0
VOLUME_WINDOW = 5
VOLUME_THRESHOLD_PCT = 15.0
MOMENTUM_THRESHOLD_PCT = 5.0

STRUCTURE_MIN_CANDLES = 22
VOLUME_SPIKE_LOOKBACK = 20
VOLUME_SPIKE_RATIO = 2.0
FVG_WINDOW = 50
SWEEP_RECENT_CANDLES = 10
SWEEP_SWING_COUNT = 3

SCORE_THRESHOLD = 0.1  # Net score must exceed 10% of the total weight


# ============================================================================
# Classic factors
# ============================================================================

def macd_signal(closes: np.ndarray) -> Trend:
    """
    MACD(12, 26, 9) direction.

    Bullish when the MACD line is above its signal line and above zero,
    bearish when below both, neutral otherwise or with fewer than 26 closes.
    """
    if len(closes) < MACD_SLOW:
        return Trend.NEUTRAL

    macd_line = ema_series(closes, MACD_FAST) - ema_series(closes, MACD_SLOW)
    macd = macd_line[-1]
    signal = pd.Series(macd_line[-MACD_SIGNAL:]).ewm(span=MACD_SIGNAL, adjust=False).mean().iloc[-1]

    if macd > signal and macd > 0:
        return Trend.BULLISH
    if macd < signal and macd < 0:
        return Trend.BEARISH
    return Trend.NEUTRAL


def price_action(closes: np.ndarray, window: int = PRICE_ACTION_WINDOW) -> Trend:
    """Compare the average close of the two halves of the last ``window`` closes."""
    if len(closes) < window:
        return Trend.NEUTRAL

    recent = closes[-window:]
    half = window // 2
    first, second = recent[:half].mean(), recent[half:].mean()
    change = (second - first) / first * 100.0

    if change > PRICE_ACTION_THRESHOLD_PCT:
        return Trend.BULLISH
    if change < -PRICE_ACTION_THRESHOLD_PCT:
        return Trend.BEARISH
    return Trend.NEUTRAL


def volume_trend(volumes: np.ndarray, window: int = VOLUME_WINDOW) -> str:
    """'increasing', 'decreasing' or 'stable' (last window vs the one before)."""
    if len(volumes) < 2 * window:
        return 'stable'

    recent = volumes[-window:].mean()
    previous = volumes[-2 * window:-window].mean()
    if previous == 0:
        return 'stable'

    change = (recent - previous) / previous * 100.0
    if change > VOLUME_THRESHOLD_PCT:
        return 'increasing'
    if change < -VOLUME_THRESHOLD_PCT:
        return 'decreasing'
    return 'stable'


# ============================================================================
# Structural factors
# ============================================================================

def volume_spike(candles: pd.DataFrame) -> Optional[Tuple[Bias, float]]:
    """Last volume against the average of the 20 before it; direction from candle colour."""
    volumes = candles['volume'].to_numpy(dtype=float)
    if len(volumes) < VOLUME_SPIKE_LOOKBACK + 2:
        return None

    baseline = volumes[-VOLUME_SPIKE_LOOKBACK - 1:-1].mean() or 1.0
    ratio = volumes[-1] / baseline
    if ratio < VOLUME_SPIKE_RATIO:
        return None

    last = candles.iloc[-1]
    bias = Bias.BULLISH if last['close'] > last['open'] else Bias.BEARISH
    return bias, ratio


def fvg_imbalance(candles: pd.DataFrame) -> Tuple[Optional[Bias], int, int, int]:
    """
    Count open fair value gaps of the last 50 candles.

    Returns
    -------
    tuple
        (dominant bias or None, weight, bullish count, bearish count). The
        weight is three points per gap of difference, capped at 12.
    """
    fvgs = detect_fvgs(candles.tail(FVG_WINDOW).reset_index(drop=True))
    if len(fvgs) == 0:
        return None, 0, 0, 0

    open_fvgs = fvgs[~fvgs['filled'].astype(bool)]
    bullish = int((open_fvgs['direction'] == Bias.BULLISH.value).sum())
    bearish = int((open_fvgs['direction'] == Bias.BEARISH.value).sum())

    if bullish == bearish:
        return None, 0, bullish, bearish
    bias = Bias.BULLISH if bullish > bearish else Bias.BEARISH
    weight = min(FVG_IMBALANCE_MAX_WEIGHT, abs(bullish - bearish) * FVG_IMBALANCE_STEP)
    return bias, weight, bullish, bearish


def liquidity_sweep_direction(candles: pd.DataFrame) -> Optional[Tuple[Bias, str]]:
    """
    Direction of the most recent resolved liquidity sweep.

    Swept lows that closed back above read bullish; swept highs that closed
    back below read bearish. Lows are checked first, most recent swing first.
    """
    if len(candles) < SWEEP_RECENT_CANDLES:
        return None

    swings = detect_swing_points(candles)
    if len(swings) == 0:
        return None

    recent = candles.tail(SWEEP_RECENT_CANDLES)
    highs = recent['high'].to_numpy(dtype=float)
    lows = recent['low'].to_numpy(dtype=float)
    closes = recent['close'].to_numpy(dtype=float)

    for level in reversed(swings_of_kind(swings, 'low')['price'].tail(SWEEP_SWING_COUNT).tolist()):
        if ((lows < level) & (closes > level)).any():
            return Bias.BULLISH, f"Equal lows swept at {level:.4f}, price recovered"

    for level in reversed(swings_of_kind(swings, 'high')['price'].tail(SWEEP_SWING_COUNT).tolist()):
        if ((highs > level) & (closes < level)).any():
            return Bias.BEARISH, f"Equal highs swept at {level:.4f}, price rejected"

    return None


WYCKOFF_BIAS = {
    WyckoffPhase.ACCUMULATION: (Bias.BULLISH, WYCKOFF_RANGE_WEIGHT),
    WyckoffPhase.MARKUP: (Bias.BULLISH, WYCKOFF_TREND_WEIGHT),
    WyckoffPhase.DISTRIBUTION: (Bias.BEARISH, WYCKOFF_RANGE_WEIGHT),
    WyckoffPhase.MARKDOWN: (Bias.BEARISH, WYCKOFF_TREND_WEIGHT),
}


# ============================================================================
# Aggregation
# ============================================================================

class _Tally:
    """Running bullish / bearish / total weights and the factor list."""

    def __init__(self):
        self.bullish = 0
        self.bearish = 0
        self.total = 0
        self.factors: List[SentimentFactor] = []

    def add(self, indicator: str, value: str, bias: Optional[Bias], weight: int):
        if bias is Bias.BULLISH:
            self.bullish += weight
            impact = 'positive'
        elif bias is Bias.BEARISH:
            self.bearish += weight
            impact = 'negative'
        else:
            impact = 'neutral'
        self.total += weight
        self.factors.append(SentimentFactor(indicator=indicator, value=value, impact=impact))


def _trend_bias(trend: Trend) -> Optional[Bias]:
    if trend is Trend.BULLISH:
        return Bias.BULLISH
    if trend is Trend.BEARISH:
        return Bias.BEARISH
    return None


def analyze_sentiment(candles: pd.DataFrame, clock: Optional[Clock] = None,
                      include_structure: bool = True) -> SentimentAnalysis:
    """
    Aggregate classic and structural factors into a sentiment label.

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared candle window.
    clock : Clock, optional
        Stamps the result; defaults to the system clock.
    include_structure : bool, default True
        Add the structural factors (needs at least 22 candles).

    Returns
    -------
    SentimentAnalysis
        ``score`` is bullish when the net score exceeds 10% of the total
        weight, bearish below -10%, neutral otherwise. ``strength`` is
        ``|net| / total * 100`` rounded and capped at 100.
    """
    clock = clock or SystemClock()
    closes = candles['close'].to_numpy(dtype=float)
    volumes = candles['volume'].to_numpy(dtype=float)
    tally = _Tally()

    # RSI
    rsi = calculate_rsi(closes)
    if rsi < RSI_OVERSOLD:
        tally.add('RSI', f"{rsi:.1f} (Oversold)", Bias.BULLISH, RSI_WEIGHT)
    elif rsi > RSI_OVERBOUGHT:
        tally.add('RSI', f"{rsi:.1f} (Overbought)", Bias.BEARISH, RSI_WEIGHT)
    else:
        tally.add('RSI', f"{rsi:.1f} (Neutral)", None, RSI_WEIGHT)

    # MACD
    macd = macd_signal(closes)
    macd_text = {Trend.BULLISH: 'Bullish crossover', Trend.BEARISH: 'Bearish crossover',
                 Trend.NEUTRAL: 'No clear signal'}[macd]
    tally.add('MACD', macd_text, _trend_bias(macd), MACD_WEIGHT)

    # Price action
    action = price_action(closes)
    action_text = {Trend.BULLISH: 'Uptrend detected', Trend.BEARISH: 'Downtrend detected',
                   Trend.NEUTRAL: 'Sideways movement'}[action]
    tally.add('Price Action', action_text, _trend_bias(action), PRICE_ACTION_WEIGHT)

    # Volume confirmed by momentum
    momentum = calculate_momentum(closes)
    volume = volume_trend(volumes)
    if volume == 'increasing' and momentum > 0:
        tally.add('Volume', 'Increasing with upward momentum', Bias.BULLISH, VOLUME_WEIGHT)
    elif volume == 'increasing' and momentum < 0:
        tally.add('Volume', 'Increasing with downward momentum', Bias.BEARISH, VOLUME_WEIGHT)
    else:
        tally.add('Volume', f"{volume} volume", None, VOLUME_WEIGHT)

    # Momentum
    if abs(momentum) > MOMENTUM_THRESHOLD_PCT:
        bias = Bias.BULLISH if momentum > 0 else Bias.BEARISH
        tally.add('Momentum', f"{momentum:+.2f}%", bias, MOMENTUM_WEIGHT)
    else:
        tally.add('Momentum', f"{momentum:.2f}%", None, MOMENTUM_WEIGHT)

    if include_structure and len(candles) >= STRUCTURE_MIN_CANDLES:
        spike = volume_spike(candles)
        if spike is not None:
            bias, ratio = spike
            tally.add('Volume Spike', f"{ratio:.1f}x avg volume, {bias.value} candle",
                      bias, VOLUME_SPIKE_WEIGHT)

        bias, weight, bullish, bearish = fvg_imbalance(candles)
        if bias is not None:
            tally.add('FVG Imbalance', f"{bullish} bullish / {bearish} bearish open FVGs",
                      bias, weight)

        sweep = liquidity_sweep_direction(candles)
        if sweep is not None:
            bias, description = sweep
            tally.add('Liquidity Sweep', description, bias, LIQUIDITY_SWEEP_WEIGHT)

        phase = estimate_wyckoff_phase(candles)
        if phase in WYCKOFF_BIAS:
            bias, weight = WYCKOFF_BIAS[phase]
            tally.add('Wyckoff Phase', f"{phase.value.capitalize()} phase detected", bias, weight)

    net = tally.bullish - tally.bearish
    if tally.total > 0:
        strength = min(100, int(round(abs(net) / tally.total * 100)))
    else:
        strength = 0

    if net > tally.total * SCORE_THRESHOLD:
        score = Trend.BULLISH
    elif net < -tally.total * SCORE_THRESHOLD:
        score = Trend.BEARISH
    else:
        score = Trend.NEUTRAL

    logger.debug(f"Sentiment {score.value} (strength {strength}, "
                 f"bullish {tally.bullish} / bearish {tally.bearish} of {tally.total})")

    return SentimentAnalysis(score=score, strength=strength, factors=tally.factors,
                             timestamp=clock.now())
