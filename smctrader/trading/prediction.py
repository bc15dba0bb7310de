# -*- coding: utf-8 -*-
"""
Short and medium term trend prediction.

Blends how far the last close sits from a moving average with recent
momentum, then discounts the confidence in volatile markets. Hourly closes
drive the 1-24 hour outlook, daily closes the 1-7 day outlook.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from smctrader.live.provider import CandleProvider
from smctrader.models import TrendDirection, TrendPrediction
from smctrader.runtime import Clock, SystemClock
from smctrader.signals.candles import prepare_candles
from smctrader.signals.indicators import PriceSeries, calculate_momentum


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

MIN_CLOSES = 10
MOMENTUM_BARS = 9  # last close against the 10th close from the end
VOLATILITY_WINDOW = 20
RANGE_WINDOW = 50

# (short average, medium average) periods per horizon
HOURLY_PERIODS = (6, 24)
DAILY_PERIODS = (3, 7)

# Candle windows fetched by TrendPredictor: (interval, limit)
HOURLY_WINDOW = ('1h', 100)
DAILY_WINDOW = ('1d', 30)

TREND_WEIGHT = 0.6
MOMENTUM_WEIGHT = 0.4
SIDEWAYS_BAND = 1.0  # |combined signal| below this is sideways

BASE_CONFIDENCE = 50
CALM_VOLATILITY = 2.0
CALM_BONUS = 20
CONFIDENCE_PER_POINT = 8
MAX_CONFIDENCE = 95
HIGH_VOLATILITY = 5.0
HIGH_VOLATILITY_PENALTY = 15
MIN_VOLATILE_CONFIDENCE = 40

SHORT_TERM = ('short-term', '1-24 hours')
MEDIUM_TERM = ('medium-term', '1-7 days')


@dataclass(frozen=True)
class TrendIndicators:
    short_term_trend: float  # % distance of the last close from the short average
    medium_term_trend: float
    volatility: float  # coefficient of variation of the last 20 closes, in %
    momentum: float
    support: float
    resistance: float


def trend_indicators(closes: PriceSeries, short_period: int, medium_period: int) -> TrendIndicators:
    """
    Trend inputs over a close series.

    Parameters
    ----------
    closes : array-like
        Close prices, oldest first; must not be empty.
    short_period, medium_period : int
        Moving average lengths for the two trend readings.

    Returns
    -------
    TrendIndicators
    """
    closes = np.asarray(closes, dtype=float)
    if len(closes) == 0:
        raise ValueError("closes must not be empty")

    current = closes[-1]

    def distance_from_average(period):
        average = closes[-period:].mean()
        return float((current - average) / average * 100.0) if average else 0.0

    recent = closes[-VOLATILITY_WINDOW:]
    mean = recent.mean()
    volatility = float(np.std(recent) / mean * 100.0) if mean else 0.0

    window = closes[-RANGE_WINDOW:]
    return TrendIndicators(
        short_term_trend=distance_from_average(short_period),
        medium_term_trend=distance_from_average(medium_period),
        volatility=volatility,
        momentum=calculate_momentum(closes, MOMENTUM_BARS),
        support=float(window.min()),
        resistance=float(window.max()),
    )


def predict_direction(trend_value: float, momentum: float,
                      volatility: float) -> Tuple[TrendDirection, int]:
    """
    Direction and confidence (0-100) from a trend reading and momentum.

    A combined signal inside +/-1 is sideways, with extra confidence when
    volatility is below 2%. Otherwise confidence grows 8 points per unit of
    signal up to 95. Volatility above 5% costs 15 points, floored at 40.
    """
    combined = trend_value * TREND_WEIGHT + momentum * MOMENTUM_WEIGHT

    if abs(combined) < SIDEWAYS_BAND:
        direction = TrendDirection.SIDEWAYS
        confidence = BASE_CONFIDENCE + (CALM_BONUS if volatility < CALM_VOLATILITY else 0)
    else:
        direction = TrendDirection.UP if combined > 0 else TrendDirection.DOWN
        confidence = min(MAX_CONFIDENCE, BASE_CONFIDENCE + abs(combined) * CONFIDENCE_PER_POINT)

    if volatility > HIGH_VOLATILITY:
        confidence = max(MIN_VOLATILE_CONFIDENCE, confidence - HIGH_VOLATILITY_PENALTY)

    return direction, int(math.floor(confidence + 0.5))


def _horizon(closes: PriceSeries, periods: Tuple[int, int], use_medium: bool,
             horizon: Tuple[str, str], clock: Clock) -> TrendPrediction:
    closes = np.asarray(closes, dtype=float)
    time_horizon, time_label = horizon

    if len(closes) < MIN_CLOSES:
        logger.debug(f"{time_horizon}: {len(closes)} closes, defaulting to sideways")
        return TrendPrediction(TrendDirection.SIDEWAYS, BASE_CONFIDENCE, time_horizon,
                               time_label, clock.now())

    indicators = trend_indicators(closes, *periods)
    trend_value = indicators.medium_term_trend if use_medium else indicators.short_term_trend
    direction, confidence = predict_direction(trend_value, indicators.momentum,
                                              indicators.volatility)
    return TrendPrediction(direction, confidence, time_horizon, time_label, clock.now())


def predict_trend(hourly_closes: PriceSeries, daily_closes: PriceSeries,
                  clock: Optional[Clock] = None) -> Dict[str, TrendPrediction]:
    """
    Short-term and medium-term outlook.

    The short-term call reads the 6-hour average of the hourly closes, the
    medium-term call the 7-day average of the daily closes. Fewer than 10
    closes yield a sideways prediction at 50% confidence.

    Returns
    -------
    dict
        ``{'short_term': TrendPrediction, 'medium_term': TrendPrediction}``
    """
    clock = clock or SystemClock()
    return {
        'short_term': _horizon(hourly_closes, HOURLY_PERIODS, False, SHORT_TERM, clock),
        'medium_term': _horizon(daily_closes, DAILY_PERIODS, True, MEDIUM_TERM, clock),
    }


class TrendPredictor:
    """Fetches hourly and daily closes for a symbol and runs ``predict_trend``."""

    def __init__(self, provider: CandleProvider, clock: Optional[Clock] = None):
        self.provider = provider
        self.clock = clock or SystemClock()

    def predict(self, symbol: str) -> Dict[str, TrendPrediction]:
        hourly = prepare_candles(self.provider.get_candles(symbol, *HOURLY_WINDOW))
        daily = prepare_candles(self.provider.get_candles(symbol, *DAILY_WINDOW))
        predictions = predict_trend(hourly['close'], daily['close'], clock=self.clock)

        short, medium = predictions['short_term'], predictions['medium_term']
        logger.info(f"{symbol} outlook: {short.direction.value} ({short.confidence}%) short term, "
                    f"{medium.direction.value} ({medium.confidence}%) medium term")
        return predictions
