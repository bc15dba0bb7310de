# -*- coding: utf-8 -*-
"""
Reversal detection for open positions.

Recomputes classic signals (RSI divergence, EMA cross, candlestick
pattern, ATR spike, support/resistance break) and structural signals
(CHOCH, breaker block, liquidity sweep without BOS, opposing FVG) on the
position's timeframe, scores them with a ScoringPolicy and maps the result
to a recommended action.
"""

import logging
from dataclasses import dataclass, fields
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from smctrader.live.provider import CandleProvider, MARKET_DATA_ERRORS
from smctrader.models import (
    Bias, Direction, Modality, OpenPosition, ReversalAction, ReversalSignal, ScoringPolicy,
)
from smctrader.signals.candles import prepare_candles
from smctrader.signals.indicators import (
    FAST_EMA_PERIOD, SLOW_EMA_PERIOD, average_true_range, ema_series,
    find_support_resistance, rsi_series,
)
from smctrader.signals.structure import detect_bos, detect_choch, detect_swing_points, swings_of_kind
from smctrader.signals.zones import detect_fvgs, detect_order_blocks, find_nearest_open_fvg


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

MIN_CANDLES = 20
CLASSIC_MIN_CANDLES = 30  # RSI divergence and EMA cross
DIVERGENCE_WINDOW = 20
VOLATILITY_WINDOW = 15
VOLATILITY_REPORT_RATIO = 1.5
VOLATILITY_SIGNIFICANT_RATIO = 2.0
SWEEP_RECENT_CANDLES = 10
SWEEP_SWING_COUNT = 3
OPPOSING_FVG_DISTANCE = 0.02  # 2% of price
SL_TIGHTEN_ATR = 0.5

# Candlestick geometry
DOJI_BODY_RATIO = 0.1
HAMMER_WICK_RATIO = 2.0
HAMMER_OPPOSITE_WICK_RATIO = 0.5
STAR_BODY_RATIO = 0.3

# SIGNAL_COUNT policy: signals -> confidence
COUNT_CONFIDENCE = {1: 40, 2: 60, 3: 80}
COUNT_CONFIDENCE_MAX = 95
COUNT_REVERSAL = 2
COUNT_CLOSE = 3
COUNT_TIGHTEN = 2

# FIXED_WEIGHT policy: classic signal weights
FIXED_WEIGHTS = {
    'rsi_divergence': 25,
    'ema_cross': 30,
    'candle_pattern': 20,
    'volatility_spike': 10,
    'sr_violation': 15,
}
WEIGHT_REVERSAL = 50
WEIGHT_CLOSE = 75
WEIGHT_TIGHTEN = 50
STRUCTURAL_CONFIDENCE_FLOOR = 50  # FIXED_WEIGHT confidence under a CHOCH or sweep

# Candle window fetched per modality: (interval, limit)
REVERSAL_TIMEFRAMES: Dict[Modality, Tuple[str, int]] = {
    Modality.SCALPING: ('1m', 60),
    Modality.DAY_TRADING: ('15m', 60),
    Modality.SWING_TRADING: ('4h', 60),
    Modality.TREND_FOLLOWING: ('1d', 52),
}

NO_SIGNALS_REASON = 'No significant reversal signals detected'
INSUFFICIENT_DATA_REASON = 'Insufficient data for reversal analysis'
FETCH_FAILED_REASON = 'Unable to fetch market data for reversal analysis'


# ============================================================================
# Classic signals
# ============================================================================

def detect_rsi_divergence(candles: pd.DataFrame) -> Optional[Bias]:
    """
    RSI divergence over the last 20 candles.

    Bearish when the second half of the window prints a higher high than
    the first half while its RSI peak is lower; bullish when it prints a
    lower low while its RSI trough is higher. Needs 30 candles.
    """
    if len(candles) < CLASSIC_MIN_CANDLES:
        return None

    rsi = rsi_series(candles['close'].to_numpy(dtype=float))
    if len(rsi) < DIVERGENCE_WINDOW:
        return None

    half = DIVERGENCE_WINDOW // 2
    highs = candles['high'].to_numpy(dtype=float)[-DIVERGENCE_WINDOW:]
    lows = candles['low'].to_numpy(dtype=float)[-DIVERGENCE_WINDOW:]
    rsi = rsi[-DIVERGENCE_WINDOW:]

    if highs[half:].max() > highs[:half].max() and rsi[half:].max() < rsi[:half].max():
        return Bias.BEARISH
    if lows[half:].min() < lows[:half].min() and rsi[half:].min() > rsi[:half].min():
        return Bias.BULLISH
    return None


def detect_ema_cross(candles: pd.DataFrame) -> Optional[Bias]:
    """EMA 9/21 cross on the last candle: golden cross bullish, death cross bearish."""
    if len(candles) < CLASSIC_MIN_CANDLES:
        return None

    closes = candles['close'].to_numpy(dtype=float)
    fast = ema_series(closes, FAST_EMA_PERIOD)
    slow = ema_series(closes, SLOW_EMA_PERIOD)

    if fast[-2] <= slow[-2] and fast[-1] > slow[-1]:
        return Bias.BULLISH
    if fast[-2] >= slow[-2] and fast[-1] < slow[-1]:
        return Bias.BEARISH
    return None


def detect_candlestick_pattern(candles: pd.DataFrame) -> Optional[Tuple[str, Optional[Bias], int]]:
    """
    Reversal pattern formed by the last one to three candles.

    Returns
    -------
    tuple or None
        (pattern name, bias or None for a doji, strength 0-100). Patterns are
        tried in the order doji, hammer, shooting star, engulfing, evening
        star, morning star.
    """
    if len(candles) < 3:
        return None

    first, prev, last = (candles.iloc[i] for i in (-3, -2, -1))

    body = abs(last['close'] - last['open'])
    candle_range = last['high'] - last['low']
    lower_wick = min(last['open'], last['close']) - last['low']
    upper_wick = last['high'] - max(last['open'], last['close'])

    if body < candle_range * DOJI_BODY_RATIO:
        return 'doji', None, 60

    if (lower_wick > body * HAMMER_WICK_RATIO and upper_wick < body * HAMMER_OPPOSITE_WICK_RATIO
            and last['close'] > last['open']):
        return 'hammer', Bias.BULLISH, 70

    if (upper_wick > body * HAMMER_WICK_RATIO and lower_wick < body * HAMMER_OPPOSITE_WICK_RATIO
            and last['close'] < last['open']):
        return 'shooting star', Bias.BEARISH, 70

    prev_bullish = prev['close'] > prev['open']
    prev_bearish = prev['close'] < prev['open']
    if (prev_bearish and last['close'] > last['open']
            and last['open'] < prev['close'] and last['close'] > prev['open']):
        return 'bullish engulfing', Bias.BULLISH, 80
    if (prev_bullish and last['close'] < last['open']
            and last['open'] > prev['close'] and last['close'] < prev['open']):
        return 'bearish engulfing', Bias.BEARISH, 80

    first_body = abs(first['close'] - first['open'])
    small_middle = abs(prev['close'] - prev['open']) < first_body * STAR_BODY_RATIO
    first_mid = (first['open'] + first['close']) / 2.0
    if (first['close'] > first['open'] and small_middle
            and last['close'] < last['open'] and last['close'] < first_mid):
        return 'evening star', Bias.BEARISH, 85
    if (first['close'] < first['open'] and small_middle
            and last['close'] > last['open'] and last['close'] > first_mid):
        return 'morning star', Bias.BULLISH, 85

    return None


def volatility_spike_ratio(candles: pd.DataFrame, window: int = VOLATILITY_WINDOW) -> float:
    """ATR of the last ``window`` candles over the ATR of the ``window`` before; 0 if unknown."""
    if len(candles) < 2 * window:
        return 0.0

    period = window - 1
    current = average_true_range(candles.iloc[-window:], period)
    baseline = average_true_range(candles.iloc[-2 * window:-window], period)
    if baseline == 0:
        return 0.0
    return current / baseline


def detect_sr_violation(candles: pd.DataFrame, entry_price: float,
                        direction: Direction) -> Optional[Tuple[str, float]]:
    """
    Close through the nearest level protecting the position.

    Levels are clustered around the entry price. A Long is violated by a
    close below the nearest support, a Short by a close above the nearest
    resistance.
    """
    closes = candles['close'].to_numpy(dtype=float)
    levels = find_support_resistance(closes, entry_price)
    current = closes[-1]

    if direction is Direction.LONG and levels['support']:
        level = levels['support'][0]
        if current < level:
            return 'support break', level
    if direction is Direction.SHORT and levels['resistance']:
        level = levels['resistance'][0]
        if current > level:
            return 'resistance break', level
    return None


# ============================================================================
# Structural signals
# ============================================================================

def detect_breaker_block(candles: pd.DataFrame, order_blocks: pd.DataFrame,
                         direction: Direction) -> Optional[float]:
    """
    Mitigated order block on the position's side that price closed through.

    For a Long, a mitigated bullish block whose low is above the current
    close (institutional demand flipped to supply); mirrored for a Short.
    Returns the broken level of the most recent such block.
    """
    if len(order_blocks) == 0:
        return None

    price = float(candles['close'].iloc[-1])
    blocks = order_blocks[order_blocks['mitigated'].astype(bool)
                          & (order_blocks['direction'] == direction.bias.value)]

    for _, block in blocks.iloc[::-1].iterrows():
        if direction is Direction.LONG and price < block['low']:
            return float(block['low'])
        if direction is Direction.SHORT and price > block['high']:
            return float(block['high'])
    return None


def detect_sweep_without_bos(candles: pd.DataFrame, swings: pd.DataFrame, bos: pd.DataFrame,
                             direction: Direction) -> Optional[Tuple[float, str]]:
    """
    Liquidity taken beyond a swing in the position's favour with no follow-through.

    For a Long, a recent candle wicked above one of the last three swing
    highs and closed back below it, and no bullish BOS after that swing
    broke higher. Returns the sweep wick price and a description.
    """
    if len(swings) == 0:
        return None

    recent = candles.tail(SWEEP_RECENT_CANDLES)
    highs = recent['high'].to_numpy(dtype=float)
    lows = recent['low'].to_numpy(dtype=float)
    closes = recent['close'].to_numpy(dtype=float)
    long_side = direction is Direction.LONG

    levels = swings_of_kind(swings, 'high' if long_side else 'low').tail(SWEEP_SWING_COUNT)
    for swing_index, level in zip(levels['index'][::-1], levels['price'][::-1]):
        if long_side:
            swept = np.flatnonzero((highs > level) & (closes < level))
        else:
            swept = np.flatnonzero((lows < level) & (closes > level))
        if len(swept) == 0:
            continue

        if len(bos):
            follow = bos[(bos['index'] > swing_index) & (bos['direction'] == direction.bias.value)]
            follow = follow[follow['price'] > level] if long_side else follow[follow['price'] < level]
            if len(follow):
                continue

        if long_side:
            wick = float(highs[swept[0]])
            return wick, (f"Liquidity sweep above swing high at {level:.4f} without BOS "
                          f"continuation, bearish manipulation")
        wick = float(lows[swept[0]])
        return wick, (f"Liquidity sweep below swing low at {level:.4f} without BOS "
                      f"continuation, bullish manipulation")
    return None


# ============================================================================
# Evidence and scoring
# ============================================================================

@dataclass
class ReversalEvidence:
    """Description of every signal that fired against the position (None when quiet)."""
    rsi_divergence: Optional[str] = None
    ema_cross: Optional[str] = None
    candle_pattern: Optional[str] = None
    volatility_spike: Optional[str] = None
    sr_violation: Optional[str] = None
    choch: Optional[str] = None
    breaker_block: Optional[str] = None
    liquidity_sweep: Optional[str] = None
    opposing_fvg: Optional[str] = None

    CLASSIC = ('rsi_divergence', 'ema_cross', 'candle_pattern', 'volatility_spike', 'sr_violation')
    STRUCTURAL = ('choch', 'breaker_block', 'liquidity_sweep', 'opposing_fvg')

    @property
    def count(self) -> int:
        return sum(1 for f in fields(self) if getattr(self, f.name) is not None)

    @property
    def classic_weight(self) -> int:
        return sum(w for name, w in FIXED_WEIGHTS.items() if getattr(self, name) is not None)

    def descriptions(self) -> List[str]:
        """Structural descriptions first, then classic ones."""
        names = self.STRUCTURAL + self.CLASSIC
        return [getattr(self, name) for name in names if getattr(self, name) is not None]


def gather_evidence(position: OpenPosition, candles: pd.DataFrame,
                    timeframe: str = '') -> Tuple[ReversalEvidence, float]:
    """
    Run every detector against ``position``.

    Returns
    -------
    tuple
        (ReversalEvidence, ATR of the window).
    """
    direction = position.direction
    against = direction.bias.opposite
    price = float(candles['close'].iloc[-1])
    evidence = ReversalEvidence()

    divergence = detect_rsi_divergence(candles)
    if divergence is against:
        evidence.rsi_divergence = f"RSI {divergence.value} divergence"

    cross = detect_ema_cross(candles)
    if cross is against:
        name = 'golden cross' if cross is Bias.BULLISH else 'death cross'
        evidence.ema_cross = f"EMA {name} at {price:.4f}"

    pattern = detect_candlestick_pattern(candles)
    if pattern is not None and pattern[1] is against:
        evidence.candle_pattern = f"{pattern[0]} candlestick pattern"

    ratio = volatility_spike_ratio(candles)
    if ratio > VOLATILITY_SIGNIFICANT_RATIO:
        evidence.volatility_spike = f"ATR volatility spike ({ratio:.1f}x baseline)"
    elif ratio > VOLATILITY_REPORT_RATIO:
        logger.debug(f"{position.symbol}: elevated ATR ({ratio:.1f}x baseline)")

    violation = detect_sr_violation(candles, position.entry_price, direction)
    if violation is not None:
        evidence.sr_violation = f"{violation[0]} at {violation[1]:.4f}"

    swings = detect_swing_points(candles)
    bos = detect_bos(candles, swings)
    choch = detect_choch(candles, swings)
    order_blocks = detect_order_blocks(candles, bos)
    fvgs = detect_fvgs(candles)

    if len(choch):
        opposing = choch[choch['direction'] == against.value]
        if len(opposing):
            level = float(opposing['price'].iloc[-1])
            where = f" on {timeframe}" if timeframe else ''
            evidence.choch = f"CHOCH{where} at {level:.4f}"

    breaker = detect_breaker_block(candles, order_blocks, direction)
    if breaker is not None:
        evidence.breaker_block = f"Breaker Block at {breaker:.4f}"

    sweep = detect_sweep_without_bos(candles, swings, bos, direction)
    if sweep is not None:
        evidence.liquidity_sweep = sweep[1]

    gap = find_nearest_open_fvg(fvgs, price, against)
    if gap is not None and abs(gap['midpoint'] - price) / price < OPPOSING_FVG_DISTANCE:
        evidence.opposing_fvg = f"Opposing {against.value} FVG at {gap['midpoint']:.4f}"

    return evidence, average_true_range(candles)


def score_evidence(evidence: ReversalEvidence, policy: ScoringPolicy) -> Tuple[int, bool]:
    """
    Confidence (0-100) and whether a reversal is declared under ``policy``.

    Under FIXED_WEIGHT a CHOCH or a sweep without BOS lifts the confidence
    to at least STRUCTURAL_CONFIDENCE_FLOOR and declares the reversal, in
    line with the tighten action it triggers.
    """
    if policy is ScoringPolicy.FIXED_WEIGHT:
        confidence = min(100, evidence.classic_weight)
        if evidence.choch is not None or evidence.liquidity_sweep is not None:
            confidence = max(confidence, STRUCTURAL_CONFIDENCE_FLOOR)
        structural_flip = evidence.choch is not None and evidence.breaker_block is not None
        return confidence, confidence >= WEIGHT_REVERSAL or structural_flip

    count = evidence.count
    confidence = COUNT_CONFIDENCE_MAX if count > max(COUNT_CONFIDENCE) else COUNT_CONFIDENCE.get(count, 0)
    return confidence, count >= COUNT_REVERSAL


def decide_action(evidence: ReversalEvidence, confidence: int, policy: ScoringPolicy,
                  position: OpenPosition) -> ReversalAction:
    """
    Recommended action for the position.

    Structure takes precedence over scores: CHOCH plus breaker block
    reverses, CHOCH alone or a sweep without BOS tightens the stop. Then
    the policy's close / tighten thresholds apply. A reverse is downgraded
    to close until the position has reached TP1.
    """
    if evidence.choch and evidence.breaker_block:
        action = ReversalAction.REVERSE
    elif evidence.choch or evidence.liquidity_sweep:
        action = ReversalAction.TIGHTEN_SL
    elif policy is ScoringPolicy.SIGNAL_COUNT and evidence.count >= COUNT_CLOSE:
        action = ReversalAction.CLOSE
    elif policy is ScoringPolicy.SIGNAL_COUNT and evidence.count >= COUNT_TIGHTEN:
        action = ReversalAction.TIGHTEN_SL
    elif policy is ScoringPolicy.FIXED_WEIGHT and confidence > WEIGHT_CLOSE:
        action = ReversalAction.CLOSE
    elif policy is ScoringPolicy.FIXED_WEIGHT and confidence >= WEIGHT_TIGHTEN:
        action = ReversalAction.TIGHTEN_SL
    else:
        action = ReversalAction.NONE

    if action is ReversalAction.REVERSE and not position.reached_tp1():
        action = ReversalAction.CLOSE
    return action


def suggest_stop_loss(position: OpenPosition, atr: float) -> Optional[float]:
    """
    Stop half an ATR behind the current price.

    Never looser than the position's effective stop; None when the stop
    would sit at or beyond the current price and trigger immediately.
    """
    price = position.current_price
    if position.direction is Direction.LONG:
        stop = max(price - atr * SL_TIGHTEN_ATR, position.effective_stop_loss)
        return stop if stop < price else None
    stop = min(price + atr * SL_TIGHTEN_ATR, position.effective_stop_loss)
    return stop if stop > price else None


# ============================================================================
# Entry points
# ============================================================================

def detect_reversal(position: OpenPosition, candles: pd.DataFrame,
                    policy: ScoringPolicy = ScoringPolicy.SIGNAL_COUNT,
                    timeframe: str = '') -> ReversalSignal:
    """
    Assess whether an open position shows signs of reversal.

    Parameters
    ----------
    position : OpenPosition
        Position state; ``current_price`` anchors the suggested stop.
    candles : pd.DataFrame
        Prepared candle window on the position's reversal timeframe.
    policy : ScoringPolicy, default SIGNAL_COUNT
        How the evidence is scored.
    timeframe : str, optional
        Interval label used in the reason text.

    Returns
    -------
    ReversalSignal
    """
    if len(candles) < MIN_CANDLES:
        return ReversalSignal(detected_reversal=False, confidence=0,
                              reason=INSUFFICIENT_DATA_REASON)

    evidence, atr = gather_evidence(position, candles, timeframe)
    confidence, detected = score_evidence(evidence, policy)
    action = decide_action(evidence, confidence, policy, position)

    suggested = None
    if action in (ReversalAction.TIGHTEN_SL, ReversalAction.CLOSE):
        suggested = suggest_stop_loss(position, atr)
        if suggested is None and action is ReversalAction.TIGHTEN_SL:
            action = ReversalAction.NONE

    parts = evidence.descriptions()
    reason = ' + '.join(parts) if parts else NO_SIGNALS_REASON

    if detected:
        logger.info(f"{position.symbol} {position.direction.value}: reversal "
                    f"({confidence}%), action {action.value}: {reason}")

    return ReversalSignal(
        detected_reversal=detected,
        confidence=confidence,
        reason=reason,
        recommended_action=action,
        suggested_new_sl=suggested,
        signals=parts,
    )


class ReversalDetector:
    """Fetches the modality's reversal timeframe and runs ``detect_reversal``."""

    def __init__(self, provider: CandleProvider,
                 timeframes: Optional[Dict[Modality, Tuple[str, int]]] = None):
        self.provider = provider
        self.timeframes = timeframes or REVERSAL_TIMEFRAMES

    def check(self, position: OpenPosition,
              policy: ScoringPolicy = ScoringPolicy.SIGNAL_COUNT) -> ReversalSignal:
        interval, limit = self.timeframes[position.modality]
        try:
            candles = prepare_candles(self.provider.get_candles(position.symbol, interval, limit))
        except MARKET_DATA_ERRORS as e:
            logger.warning(f"Reversal check for {position.symbol} skipped: {e}")
            return ReversalSignal(detected_reversal=False, confidence=0,
                                  reason=FETCH_FAILED_REASON)
        return detect_reversal(position, candles, policy, timeframe=interval)
