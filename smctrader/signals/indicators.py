# -*- coding: utf-8 -*-
"""
Classic technical indicators.

RSI, EMA, ATR, momentum and volatility over a candle window, plus the
trend / signal-strength summary used to rank candidate symbols. Every
function returns a neutral default instead of raising when the window is
too short.
"""

import numpy as np
import pandas as pd
from typing import Dict, List, Sequence, Union

from smctrader.models import TechnicalIndicators, Trend


# ============================================================================
# Configuration Constants
# ============================================================================

RSI_PERIOD = 14
ATR_PERIOD = 14
MOMENTUM_PERIOD = 10
FAST_EMA_PERIOD = 9
SLOW_EMA_PERIOD = 21

RSI_NEUTRAL = 50.0
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0

# Support/resistance clustering
SR_CLUSTER_TOLERANCE = 0.005  # 0.5% of the reference price
SR_MIN_TOUCHES = 3
SR_MAX_LEVELS = 3

PriceSeries = Union[Sequence[float], np.ndarray, pd.Series]


def _as_array(values: PriceSeries) -> np.ndarray:
    return np.asarray(values, dtype=float)


# ============================================================================
# RSI
# ============================================================================

def rsi_series(closes: PriceSeries, period: int = RSI_PERIOD) -> np.ndarray:
    """
    Wilder-smoothed RSI series.

    The first value covers changes 1..period (seeded with their simple
    average); each later value applies Wilder's recursion. Returns an empty
    array when fewer than ``period + 1`` closes are supplied.
    """
    closes = _as_array(closes)
    if len(closes) < period + 1:
        return np.array([], dtype=float)

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    values = [_rsi_from_averages(avg_gain, avg_loss)]

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        values.append(_rsi_from_averages(avg_gain, avg_loss))

    return np.array(values, dtype=float)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else RSI_NEUTRAL
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(closes: PriceSeries, period: int = RSI_PERIOD) -> float:
    """Latest RSI value, or 50 when there is not enough data."""
    values = rsi_series(closes, period)
    if len(values) == 0:
        return RSI_NEUTRAL
    return float(values[-1])


# ============================================================================
# EMA
# ============================================================================

def ema_series(closes: PriceSeries, period: int) -> np.ndarray:
    """EMA seeded from the first close (no warm-up average)."""
    closes = _as_array(closes)
    if len(closes) == 0:
        return np.array([], dtype=float)
    return pd.Series(closes).ewm(span=period, adjust=False).mean().to_numpy()


def calculate_ema(closes: PriceSeries, period: int) -> float:
    values = ema_series(closes, period)
    if len(values) == 0:
        return 0.0
    return float(values[-1])


# ============================================================================
# ATR
# ============================================================================

def true_range(candles: pd.DataFrame) -> np.ndarray:
    """True range of every candle after the first (length n-1)."""
    if len(candles) < 2:
        return np.array([], dtype=float)

    high = candles['high'].to_numpy(dtype=float)[1:]
    low = candles['low'].to_numpy(dtype=float)[1:]
    prev_close = candles['close'].to_numpy(dtype=float)[:-1]

    hl = high - low
    hc = np.abs(high - prev_close)
    lc = np.abs(low - prev_close)

    return np.maximum(hl, np.maximum(hc, lc))


def average_true_range(candles: pd.DataFrame, period: int = ATR_PERIOD) -> float:
    """
    Simple average of the trailing ``period`` true ranges.

    Returns 0.0 when fewer than ``period + 1`` candles are available. This
    minimum covers the two-candle floor as well (a single candle has no
    true range), so a 5-candle window with the default period is 0.0.
    """
    if period <= 0:
        raise ValueError(f"period must be > 0, got {period}")
    if len(candles) < period + 1:
        return 0.0
    tr = true_range(candles)
    return float(tr[-period:].mean())


# ============================================================================
# Momentum / Volatility
# ============================================================================

def calculate_momentum(closes: PriceSeries, period: int = MOMENTUM_PERIOD) -> float:
    """Percent change between the last close and the close ``period`` bars earlier."""
    closes = _as_array(closes)
    if len(closes) < period + 1:
        return 0.0
    past = closes[-1 - period]
    if past == 0:
        return 0.0
    return float((closes[-1] - past) / past * 100.0)


def calculate_volatility(closes: PriceSeries) -> float:
    """Population standard deviation of simple returns, in percent."""
    closes = _as_array(closes)
    if len(closes) < 2:
        return 0.0
    returns = np.diff(closes) / closes[:-1]
    return float(np.std(returns) * 100.0)


# ============================================================================
# Trend / Signal Strength
# ============================================================================

def classify_trend(ema9: float, ema21: float, momentum: float) -> Trend:
    if ema9 > ema21 and momentum > 0:
        return Trend.BULLISH
    if ema9 < ema21 and momentum < 0:
        return Trend.BEARISH
    return Trend.NEUTRAL


def score_signal_strength(trend: Trend, momentum: float, rsi: float) -> float:
    """
    Rank a setup on a 0-100 scale.

    Neutral trends score 50. Trending setups get up to 30 points for
    momentum, +/-10 for RSI sitting on the trend's side of 50 and +/-10 for
    RSI not yet being stretched past 70 (bullish) or 30 (bearish).
    """
    if trend is Trend.NEUTRAL:
        return 50.0

    strength = 50.0 + min(30.0, abs(momentum) * 2.0)
    if trend is Trend.BULLISH:
        strength += 10.0 if rsi > RSI_NEUTRAL else -10.0
        strength += 10.0 if rsi < RSI_OVERBOUGHT else -10.0
    else:
        strength += 10.0 if rsi < RSI_NEUTRAL else -10.0
        strength += 10.0 if rsi > RSI_OVERSOLD else -10.0

    return float(min(100.0, max(0.0, strength)))


def compute_technical_indicators(candles: pd.DataFrame) -> TechnicalIndicators:
    """Indicator summary of a prepared candle window."""
    closes = candles['close'].to_numpy(dtype=float)

    rsi = calculate_rsi(closes)
    atr = average_true_range(candles)
    momentum = calculate_momentum(closes)
    ema9 = calculate_ema(closes, FAST_EMA_PERIOD)
    ema21 = calculate_ema(closes, SLOW_EMA_PERIOD)
    current_price = float(closes[-1]) if len(closes) else 0.0

    trend = classify_trend(ema9, ema21, momentum)
    signal_strength = score_signal_strength(trend, momentum, rsi)

    return TechnicalIndicators(
        rsi=rsi,
        atr=atr,
        momentum=momentum,
        trend=trend,
        ema9=ema9,
        ema21=ema21,
        current_price=current_price,
        signal_strength=signal_strength,
        volatility=calculate_volatility(closes),
    )


# ============================================================================
# Support / Resistance
# ============================================================================

def find_support_resistance(closes: PriceSeries, reference_price: float,
                            tolerance: float = SR_CLUSTER_TOLERANCE,
                            min_touches: int = SR_MIN_TOUCHES) -> Dict[str, List[float]]:
    """
    Cluster closes into horizontal levels around a reference price.

    Parameters
    ----------
    closes : array-like
        Close prices.
    reference_price : float
        Price that splits support (below) from resistance (at or above);
        also scales the clustering tolerance.
    tolerance : float, default SR_CLUSTER_TOLERANCE
        Cluster width as a fraction of ``reference_price``.
    min_touches : int, default SR_MIN_TOUCHES
        Minimum closes for a cluster to count as a level.

    Returns
    -------
    dict
        ``{'support': [...], 'resistance': [...]}``, each with at most three
        levels ordered nearest-first.
    """
    width = reference_price * tolerance
    clusters: List[List[float]] = []

    for price in np.sort(_as_array(closes)):
        for cluster in clusters:
            if abs(price - cluster[0]) <= width:
                cluster.append(float(price))
                break
        else:
            clusters.append([float(price)])

    levels = [float(np.mean(c)) for c in clusters if len(c) >= min_touches]
    support = [lvl for lvl in levels if lvl < reference_price]
    resistance = [lvl for lvl in levels if lvl >= reference_price]

    return {
        'support': support[-SR_MAX_LEVELS:][::-1],
        'resistance': resistance[:SR_MAX_LEVELS],
    }
