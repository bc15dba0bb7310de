# -*- coding: utf-8 -*-
"""
Take-profit and stop-loss recommendations for a user-entered position.

Unlike the trade generator, the symbol, side, entry, stake and leverage are
given. Targets come from the position's market structure on the hourly
chart (open gaps, order blocks, swings) with volatility-scaled percentage
fallbacks; the stop comes from ATR and nearby support/resistance, capped
by a leverage-dependent share of the capital.
"""

import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd

from smctrader.live.provider import CandleProvider
from smctrader.models import Direction, PositionPlan, StopLossRecommendation, TakeProfitLevel
from smctrader.signals.candles import prepare_candles
from smctrader.signals.indicators import (
    average_true_range, calculate_volatility, find_support_resistance,
)
from smctrader.signals.structure import SWING_COLUMNS, detect_bos, detect_swing_points, swings_of_kind
from smctrader.signals.zones import (
    FVG_COLUMNS, OB_COLUMNS, detect_fvgs, detect_order_blocks, find_nearest_open_fvg,
    find_nearest_unmitigated_ob,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

POSITION_WINDOW = ('1h', 100)
MIN_STRUCTURE_CANDLES = 20
ATR_FALLBACK_PCT = 0.005  # ATR substitute as a fraction of entry

# Target search radius, in ATR
TP1_MAX_ATR = 3.0
TP2_MAX_ATR = 6.0
TP3_MAX_ATR = 12.0
TP2_SWING_CLEARANCE = 0.001

# Percentage fallbacks, scaled by max(1, volatility / 2)
TP_BASE_PCT = (0.015, 0.035, 0.06)
HIGH_LEVERAGE = 20
HIGH_LEVERAGE_TP_FACTOR = 0.7
ORDERING_FACTOR = 0.5  # Push past the previous target by half the next multiplier

# Stop-loss: (leverage above, capital risk %, ATR multiplier), first match wins
SL_RISK_TIERS = (
    (50, 0.8, 1.2),
    (20, 1.2, 1.2),
    (10, 1.5, 1.5),
)
SL_DEFAULT_RISK = (2.0, 2.0)
SL_LEVEL_BUFFER = 0.002  # Stop beyond support/resistance by 0.2%
SL_RISK_TOLERANCE = 1.5  # Re-anchor once the loss exceeds 1.5x the allowed risk
SL_ADJUSTED_RISK = 1.2

PARTIAL_TAKING_STRATEGY = (
    'Recommended strategy: Take 30-40% profit at TP1, move SL to breakeven. '
    'Take another 30-40% at TP2, move SL to TP1. Let final 20-30% run to TP3 '
    'with trailing stop at TP2. This protects capital while maximizing upside potential.'
)


# ============================================================================
# Take profit
# ============================================================================

def take_profit_multipliers(volatility: float, leverage: float) -> Tuple[float, float, float]:
    """Percentage fallbacks for TP1-TP3, widened by volatility and cut for high leverage."""
    factor = max(volatility / 2.0, 1.0)
    if leverage > HIGH_LEVERAGE:
        factor *= HIGH_LEVERAGE_TP_FACTOR
    return tuple(pct * factor for pct in TP_BASE_PCT)


def take_profit_targets(direction: Direction, entry: float, atr: float,
                        multipliers: Tuple[float, float, float], swings: pd.DataFrame,
                        order_blocks: pd.DataFrame, fvgs: pd.DataFrame) -> List[Tuple[float, str]]:
    """
    TP1-TP3 prices with the reasoning behind each.

    TP1 is the nearest open gap of the position's bias within 3 ATR, else the
    nearest unmitigated block of that bias on the profit side within 3 ATR.
    TP2 is the nearest swing clearing TP1 by 0.1% within 6 ATR. TP3 is the
    nearest unmitigated opposing block beyond TP2 within 12 ATR, else the
    nearest opposing open gap beyond TP2. Missing levels fall back to
    ``entry * (1 +/- multiplier)``, and each target is kept strictly beyond
    the previous one.
    """
    sign = direction.sign
    long_side = direction is Direction.LONG
    side = 'above' if long_side else 'below'
    bias = direction.bias
    opposing = bias.opposite
    m1, m2, m3 = multipliers

    def fallback(multiplier):
        return entry * (1 + sign * multiplier)

    # TP1
    gap = find_nearest_open_fvg(fvgs, entry, bias)
    block = find_nearest_unmitigated_ob(order_blocks, entry, bias, side=side)
    if gap is not None and abs(gap['midpoint'] - entry) <= TP1_MAX_ATR * atr:
        tp1 = float(gap['midpoint'])
        tp1_reason = (f"TP1 at FVG fill {tp1:.4f}: open {bias.value} fair value gap acts as the "
                      f"first price magnet. Take 30-40% profit here.")
    elif block is not None and abs(block['midpoint'] - entry) <= TP1_MAX_ATR * atr:
        tp1 = float(block['midpoint'])
        tp1_reason = (f"TP1 at OB mitigation zone {tp1:.4f}: unmitigated {bias.value} order block "
                      f"with pending institutional orders. Take 30-40% profit here.")
    else:
        tp1 = fallback(m1)
        tp1_reason = (f"TP1 at {tp1:.4f}: volatility-based conservative target "
                      f"(no FVG/OB within range). Take 30-40% profit here.")

    # TP2
    kind = 'high' if long_side else 'low'
    prices = swings_of_kind(swings, kind)['price'].astype(float) if len(swings) else pd.Series(dtype=float)
    if long_side:
        beyond = prices[(prices > tp1 * (1 + TP2_SWING_CLEARANCE)) & (prices - entry <= TP2_MAX_ATR * atr)]
        swing = beyond.min() if len(beyond) else None
    else:
        beyond = prices[(prices < tp1 * (1 - TP2_SWING_CLEARANCE)) & (entry - prices <= TP2_MAX_ATR * atr)]
        swing = beyond.max() if len(beyond) else None

    if swing is not None:
        tp2 = float(swing)
        tp2_reason = (f"TP2 at swing {kind} liquidity {tp2:.4f}: external liquidity pool where "
                      f"stops are clustered. Take 30-40% profit here.")
    else:
        tp2 = fallback(m2)
        tp2_reason = (f"TP2 at {tp2:.4f}: volatility-based moderate target "
                      f"(no swing {kind} within range). Take 30-40% profit here.")
    if sign * (tp2 - tp1) <= 0:
        tp2 = tp1 * (1 + sign * m2 * ORDERING_FACTOR)
        tp2_reason = f"TP2 at {tp2:.4f}: extended beyond TP1. Take 30-40% profit here."

    # TP3
    block = find_nearest_unmitigated_ob(order_blocks, entry, opposing)
    opposing_gap = find_nearest_open_fvg(fvgs, tp2, opposing, side=side)
    if (block is not None and sign * (block['midpoint'] - tp2) > 0
            and abs(block['midpoint'] - entry) <= TP3_MAX_ATR * atr):
        tp3 = float(block['midpoint'])
        tp3_reason = (f"TP3 at opposing {opposing.value} OB {tp3:.4f}: unmitigated institutional "
                      f"zone where price is likely to react. Let 20-30% run with trailing stop at TP2.")
    elif opposing_gap is not None:
        tp3 = float(opposing_gap['midpoint'])
        tp3_reason = (f"TP3 at {opposing.value} FVG {tp3:.4f}: open imbalance beyond TP2 as the "
                      f"extended target. Let 20-30% run with trailing stop at TP2.")
    else:
        tp3 = fallback(m3)
        tp3_reason = (f"TP3 at {tp3:.4f}: extended target (no opposing OB/FVG within range). "
                      f"Let 20-30% run with trailing stop at TP2.")
    if sign * (tp3 - tp2) <= 0:
        tp3 = tp2 * (1 + sign * m3 * ORDERING_FACTOR)
        tp3_reason = f"TP3 at {tp3:.4f}: extended beyond TP2. Let 20-30% run with trailing stop at TP2."

    return [(tp1, tp1_reason), (tp2, tp2_reason), (tp3, tp3_reason)]


def _position_atr(candles: pd.DataFrame, entry: float) -> float:
    atr = average_true_range(candles) if len(candles) >= MIN_STRUCTURE_CANDLES else 0.0
    return atr if atr > 0 else entry * ATR_FALLBACK_PCT


def calculate_take_profit_levels(candles: pd.DataFrame, entry: float, investment: float,
                                 leverage: float, direction: Direction) -> List[TakeProfitLevel]:
    """
    Three take-profit levels for a position.

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared hourly window of the symbol. Structure is only read from
        windows of at least 20 candles; shorter ones get the percentage
        targets and an ATR of 0.5% of entry.
    entry : float
        Entry price.
    investment : float
        Margin committed (USDT).
    leverage : float
        Position leverage.
    direction : Direction
        Position side.

    Returns
    -------
    list of TakeProfitLevel
        Levels 1-3, strictly ordered away from entry. Profit figures are
        return on margin, so they include leverage.
    """
    if entry <= 0 or leverage <= 0:
        raise ValueError(f"entry and leverage must be > 0, got {entry} and {leverage}")

    multipliers = take_profit_multipliers(calculate_volatility(candles['close']), leverage)
    atr = _position_atr(candles, entry)

    if len(candles) >= MIN_STRUCTURE_CANDLES:
        swings = detect_swing_points(candles)
        order_blocks = detect_order_blocks(candles, detect_bos(candles, swings))
        fvgs = detect_fvgs(candles)
    else:
        swings = pd.DataFrame(columns=SWING_COLUMNS)
        order_blocks = pd.DataFrame(columns=OB_COLUMNS)
        fvgs = pd.DataFrame(columns=FVG_COLUMNS)

    levels = []
    targets = take_profit_targets(direction, entry, atr, multipliers, swings, order_blocks, fvgs)
    for level, (price, reasoning) in enumerate(targets, start=1):
        profit_percent = direction.sign * (price - entry) / entry * 100.0 * leverage
        levels.append(TakeProfitLevel(
            level=level,
            price=price,
            profit_usd=investment * profit_percent / 100.0,
            profit_percent=profit_percent,
            reasoning=reasoning,
        ))
    return levels


# ============================================================================
# Stop loss
# ============================================================================

def stop_loss_risk(leverage: float) -> Tuple[float, float]:
    """(allowed capital risk %, ATR multiplier) for ``leverage``."""
    for above, risk_percent, atr_multiplier in SL_RISK_TIERS:
        if leverage > above:
            return risk_percent, atr_multiplier
    return SL_DEFAULT_RISK


def recommend_stop_loss(entry: float, investment: float, leverage: float, direction: Direction,
                        atr: float, levels: Dict[str, List[float]]) -> StopLossRecommendation:
    """
    Stop-loss from ATR and the nearest protective level.

    The ATR stop sits ``multiplier * ATR`` from entry. A Long takes the
    higher of that and 0.2% below the nearest support (mirrored for a
    Short). When the resulting loss on margin exceeds 1.5x the allowed
    capital risk, the stop is re-anchored so the loss is 1.2x that risk.

    Parameters
    ----------
    levels : dict
        Output of ``find_support_resistance`` around ``entry``.
    """
    risk_percent, atr_multiplier = stop_loss_risk(leverage)
    distance = atr / entry * atr_multiplier
    long_side = direction is Direction.LONG

    atr_stop = entry * (1 - direction.sign * distance)
    level = (levels.get('support') if long_side else levels.get('resistance')) or []
    if level:
        technical = level[0] * (1 - SL_LEVEL_BUFFER if long_side else 1 + SL_LEVEL_BUFFER)
        stop = max(technical, atr_stop) if long_side else min(technical, atr_stop)
    else:
        stop = atr_stop

    loss_percent = abs(stop - entry) / entry * 100.0 * leverage
    if loss_percent > risk_percent * SL_RISK_TOLERANCE:
        price_change = risk_percent * SL_ADJUSTED_RISK / leverage
        stop = entry * (1 - direction.sign * price_change / 100.0)
        logger.debug(f"Stop re-anchored to {stop:.4f} ({loss_percent:.2f}% loss over "
                     f"{risk_percent}% allowed)")

    loss_percent = abs(stop - entry) / entry * 100.0 * leverage
    loss_usd = investment * loss_percent / 100.0
    capital_risk = loss_usd / investment * 100.0 if investment > 0 else 0.0

    placement = ('Positioned beyond key support/resistance to avoid premature stops.' if level
                 else 'Based on volatility analysis.')
    reasoning = (f"Stop-loss calculated using {atr_multiplier:g}x ATR for {leverage:g}x leverage. "
                 f"{placement} Risk limited to {capital_risk:.2f}% of capital.")

    return StopLossRecommendation(
        price=stop,
        loss_usd=loss_usd,
        loss_percent=loss_percent,
        capital_risk_percent=capital_risk,
        reasoning=reasoning,
        partial_taking_strategy=PARTIAL_TAKING_STRATEGY,
    )


def calculate_stop_loss(candles: pd.DataFrame, entry: float, investment: float,
                        leverage: float, direction: Direction) -> StopLossRecommendation:
    """Stop-loss for a position from its prepared hourly window."""
    if entry <= 0 or leverage <= 0:
        raise ValueError(f"entry and leverage must be > 0, got {entry} and {leverage}")

    atr = _position_atr(candles, entry)
    levels = find_support_resistance(candles['close'].to_numpy(dtype=float), entry)
    return recommend_stop_loss(entry, investment, leverage, direction, atr, levels)


# ============================================================================
# Planner
# ============================================================================

class PositionPlanner:
    """Fetches the hourly window of a symbol and recommends targets and stop."""

    def __init__(self, provider: CandleProvider, window: Optional[Tuple[str, int]] = None):
        self.provider = provider
        self.window = window or POSITION_WINDOW

    def plan(self, symbol: str, direction: Direction, entry: float, investment: float,
             leverage: int) -> PositionPlan:
        """
        Raises
        ------
        CandleValidationError
            If the fetched window is malformed. Provider errors propagate.
        """
        direction = Direction(direction)
        candles = prepare_candles(self.provider.get_candles(symbol, *self.window))

        take_profits = calculate_take_profit_levels(candles, entry, investment, leverage, direction)
        stop_loss = calculate_stop_loss(candles, entry, investment, leverage, direction)

        logger.info(f"{symbol} {direction.value} @ {entry:.4f} x{leverage}: TP "
                    f"{'/'.join(f'{tp.price:.4f}' for tp in take_profits)} SL {stop_loss.price:.4f}")
        return PositionPlan(
            symbol=symbol,
            direction=direction,
            entry_price=entry,
            leverage=leverage,
            investment_amount=investment,
            take_profit_levels=take_profits,
            stop_loss=stop_loss,
        )
