# -*- coding: utf-8 -*-
"""
Recovery strategies for a losing position.

Builds up to four options (re-set TP/SL from ATR, partial close, hedge,
dollar-cost average) sized from the position's loss on margin, ordered
from lowest to highest risk.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

from smctrader.live.provider import CandleProvider, MARKET_DATA_ERRORS
from smctrader.models import (
    Direction, PositionSnapshot, RecoveryStrategy, RecoveryStrategyType, RiskLevel,
)
from smctrader.signals.candles import prepare_candles
from smctrader.signals.indicators import average_true_range, find_support_resistance
from smctrader.trading.pnl import calculate_pnl


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

RECOVERY_WINDOW = ('1h', 50)
ATR_FALLBACK_PCT = 0.005

# TP/SL adjustment, in ATR from the current price
ADJUSTED_TP_ATR = 2.5
ADJUSTED_SL_ATR = 1.2
ADJUSTMENT_MAX_RECOVERY = 80

# Partial close
SEVERE_LOSS_PCT = 30
PARTIAL_CLOSE_PCT = 30
SEVERE_PARTIAL_CLOSE_PCT = 50
PARTIAL_RECOVERY_RATIO = 0.8

# Hedge
HEDGE_MIN_LOSS_PCT = 5
HEDGE_SIZE_PER_LOSS = 1.5
HEDGE_MAX_SIZE_PCT = 80
HEDGE_RECOVERY_RATIO = 0.7
HEDGE_MAX_RECOVERY = 60
HEDGE_MAX_LEVERAGE = 5

# DCA
DCA_MAX_LOSS_PCT = 50
DCA_ATR = 1.5
DCA_MAX_RECOVERY = 70

RISK_ORDER = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def position_pnl_percent(position: PositionSnapshot) -> float:
    """Return on margin of the position, leverage included."""
    return calculate_pnl(position.entry_price, position.current_price, position.investment_amount,
                         position.leverage, position.direction)[1]


# ============================================================================
# Strategies
# ============================================================================

def tp_sl_adjustment_strategy(position: PositionSnapshot, atr: float) -> RecoveryStrategy:
    """New TP 2.5 ATR and SL 1.2 ATR from the current price."""
    price = position.current_price
    sign = position.direction.sign
    new_tp = price + sign * atr * ADJUSTED_TP_ATR
    new_sl = price - sign * atr * ADJUSTED_SL_ATR
    tp_distance = abs(new_tp - price) / price * 100.0
    sl_distance = abs(new_sl - price) / price * 100.0
    recovery = min(ADJUSTMENT_MAX_RECOVERY, tp_distance * position.leverage * 0.5)

    return RecoveryStrategy(
        strategy_type=RecoveryStrategyType.TP_SL_ADJUSTMENT,
        title='Adjust TP/SL Levels',
        description=(f"Recalibrate your Take Profit and Stop Loss levels based on current ATR "
                     f"({atr:.4f}). This gives the trade room to breathe while capping downside."),
        risk_level=RiskLevel.LOW,
        estimated_recovery_pct=_round_half_up(recovery),
        steps=[
            f"Move your Take Profit to ${new_tp:.4f} ({tp_distance:.2f}% from current price).",
            f"Tighten your Stop Loss to ${new_sl:.4f} ({sl_distance:.2f}% from current price).",
            f"Current ATR is ${atr:.4f}; levels are set at {ADJUSTED_TP_ATR:g}x ATR for TP and "
            f"{ADJUSTED_SL_ATR:g}x ATR for SL.",
            f"This gives a risk/reward ratio of {tp_distance / sl_distance:.2f}:1.",
            'Review and adjust again if ATR changes significantly.',
        ],
        params={
            'new_tp': round(new_tp, 4),
            'new_sl': round(new_sl, 4),
            'tp_distance_pct': round(tp_distance, 2),
            'sl_distance_pct': round(sl_distance, 2),
            'atr_used': round(atr, 4),
        },
    )


def partial_close_strategy(position: PositionSnapshot, pnl_percent: float) -> RecoveryStrategy:
    """Close 30% of the position, or 50% past a 30% loss."""
    close_pct = SEVERE_PARTIAL_CLOSE_PCT if abs(pnl_percent) > SEVERE_LOSS_PCT else PARTIAL_CLOSE_PCT
    kept = 1 - close_pct / 100.0
    capital = position.investment_amount * close_pct / 100.0
    exposure = position.total_exposure or position.investment_amount * position.leverage
    remaining = exposure * kept

    return RecoveryStrategy(
        strategy_type=RecoveryStrategyType.PARTIAL_CLOSE,
        title='Partial Position Close',
        description=(f"Close {close_pct}% of your position to reduce risk exposure and recover "
                     f"some capital while staying in the trade."),
        risk_level=RiskLevel.LOW,
        estimated_recovery_pct=_round_half_up(close_pct * PARTIAL_RECOVERY_RATIO),
        steps=[
            f"Close {close_pct}% of your {position.symbol} {position.direction.value} position at market price.",
            f"This recovers approximately ${capital:.2f} of capital.",
            f"Remaining exposure will be ~${remaining:.2f}.",
            'Move your stop-loss on the remaining position to break-even or tighter.',
            'Re-evaluate the remaining position once market conditions stabilise.',
        ],
        params={
            'close_pct': close_pct,
            'capital_recovered': round(capital, 2),
            'remaining_exposure': round(remaining, 2),
        },
    )


def hedge_strategy(position: PositionSnapshot, pnl_percent: float) -> RecoveryStrategy:
    """Opposite position sized at 1.5x the loss percentage, up to 80% of the stake."""
    size_pct = min(HEDGE_MAX_SIZE_PCT, abs(pnl_percent) * HEDGE_SIZE_PER_LOSS)
    hedge_direction = position.direction.opposite
    cost = position.investment_amount * size_pct / 100.0
    leverage = min(position.leverage, HEDGE_MAX_LEVERAGE)
    recovery = min(HEDGE_MAX_RECOVERY, size_pct * HEDGE_RECOVERY_RATIO)

    return RecoveryStrategy(
        strategy_type=RecoveryStrategyType.HEDGE,
        title='Hedge Position',
        description=(f"Open a {hedge_direction.value} position to offset further losses on your "
                     f"{position.direction.value} trade while you wait for a reversal."),
        risk_level=RiskLevel.MEDIUM,
        estimated_recovery_pct=_round_half_up(recovery),
        steps=[
            f"Open a {hedge_direction.value} position on {position.symbol} with "
            f"{_round_half_up(size_pct)}% of your current exposure (~${cost:.2f}).",
            f"Use a lower leverage of {leverage:g}x to reduce liquidation risk on the hedge.",
            'Set a tight stop-loss on the hedge at 1-2% from entry to cap hedge cost.',
            'Close the hedge when the original position recovers to break-even.',
        ],
        params={
            'hedge_size_pct': _round_half_up(size_pct),
            'hedge_direction': hedge_direction,
            'suggested_leverage': leverage,
            'estimated_hedge_cost': round(cost, 2),
        },
    )


def dca_strategy(position: PositionSnapshot, atr: float,
                 levels: Dict[str, List[float]]) -> Optional[RecoveryStrategy]:
    """
    Double the stake at the nearest protective level to pull the average entry in.

    A Long adds at the nearest support below the current price, a Short at
    the nearest resistance above it; without one the add sits 1.5 ATR away.
    Returns None when the level is not on the averaging side.
    """
    price = position.current_price
    entry = position.entry_price
    if position.direction is Direction.LONG:
        below = [level for level in levels.get('support', []) if level < price]
        add_price = below[0] if below else price - atr * DCA_ATR
        if add_price >= price:
            return None
    else:
        above = [level for level in levels.get('resistance', []) if level > price]
        add_price = above[0] if above else price + atr * DCA_ATR
        if add_price <= price:
            return None

    additional = position.investment_amount
    average_entry = (entry * position.investment_amount + add_price * additional) / \
        (position.investment_amount + additional)
    recovery = min(DCA_MAX_RECOVERY, abs(entry - average_entry) / abs(entry - price) * 100.0)

    return RecoveryStrategy(
        strategy_type=RecoveryStrategyType.DCA,
        title='Dollar-Cost Average (DCA)',
        description=(f"Add to your {position.direction.value} position at a better price to pull "
                     f"the average entry and break-even point closer."),
        risk_level=RiskLevel.HIGH,
        estimated_recovery_pct=_round_half_up(recovery),
        steps=[
            f"Wait for price to reach ~${add_price:.4f} before adding to the position.",
            f"Add ${additional:.2f} to bring your average entry to ${average_entry:.4f}.",
            f"Your new break-even price will be ${average_entry:.4f}.",
            'Set a new stop-loss beyond the DCA entry to protect against further losses.',
            'Only DCA with strong conviction in the trade thesis, never into a broken trend.',
        ],
        params={
            'additional_entry_price': round(add_price, 4),
            'additional_investment': round(additional, 2),
            'new_average_entry': round(average_entry, 4),
            'break_even_price': round(average_entry, 4),
        },
    )


# ============================================================================
# Entry points
# ============================================================================

def analyze_position_recovery(position: PositionSnapshot, atr: float,
                              levels: Optional[Dict[str, List[float]]] = None) -> List[RecoveryStrategy]:
    """
    Recovery options for ``position``, lowest risk first.

    Parameters
    ----------
    position : PositionSnapshot
        Position state.
    atr : float
        ATR of the recent hourly window; must be positive.
    levels : dict, optional
        ``find_support_resistance`` output around the current price.

    Returns
    -------
    list of RecoveryStrategy
        Empty unless the position is losing. TP/SL adjustment and partial
        close always apply; a hedge from a 5% loss; DCA up to a 50% loss.
    """
    pnl_percent = position_pnl_percent(position)
    if pnl_percent >= 0:
        return []
    if atr <= 0:
        raise ValueError(f"atr must be > 0, got {atr}")

    levels = levels or {'support': [], 'resistance': []}
    strategies = [
        tp_sl_adjustment_strategy(position, atr),
        partial_close_strategy(position, pnl_percent),
    ]
    if abs(pnl_percent) >= HEDGE_MIN_LOSS_PCT:
        strategies.append(hedge_strategy(position, pnl_percent))
    if abs(pnl_percent) <= DCA_MAX_LOSS_PCT:
        dca = dca_strategy(position, atr, levels)
        if dca is not None:
            strategies.append(dca)

    # stable sort keeps the build order within a risk level
    strategies.sort(key=lambda s: RISK_ORDER[s.risk_level])
    return strategies


class RecoveryAdvisor:
    """Fetches recent hourly candles and runs ``analyze_position_recovery``."""

    def __init__(self, provider: CandleProvider, window: Optional[Tuple[str, int]] = None):
        self.provider = provider
        self.window = window or RECOVERY_WINDOW

    def analyze(self, position: PositionSnapshot) -> List[RecoveryStrategy]:
        if position_pnl_percent(position) >= 0:
            return []

        fallback_atr = position.current_price * ATR_FALLBACK_PCT
        try:
            candles = prepare_candles(self.provider.get_candles(position.symbol, *self.window))
        except MARKET_DATA_ERRORS as e:
            logger.warning(f"Recovery data for {position.symbol} unavailable ({e}), using 0.5% ATR")
            return analyze_position_recovery(position, fallback_atr)

        atr = average_true_range(candles) or fallback_atr
        levels = find_support_resistance(candles['close'].to_numpy(dtype=float), position.current_price)
        return analyze_position_recovery(position, atr, levels)
