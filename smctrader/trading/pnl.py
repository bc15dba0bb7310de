# -*- coding: utf-8 -*-
"""
Profit and loss helpers for generated trades.
"""

from typing import Tuple

from smctrader.models import Direction, TradeCandidate, TradeStatus


def calculate_pnl(entry_price: float, current_price: float, investment: float,
                  leverage: float, direction: Direction) -> Tuple[float, float]:
    """
    Unrealized PnL of a leveraged position.

    Parameters
    ----------
    entry_price : float
        Entry price.
    current_price : float
        Mark price.
    investment : float
        Margin committed (USDT).
    leverage : float
        Position leverage.
    direction : Direction
        Trade side.

    Returns
    -------
    tuple
        (pnl_usd, pnl_percent). The percent is return on margin, so it
        includes leverage. Both are 0.0 for non-positive prices.
    """
    if entry_price <= 0 or current_price <= 0:
        return 0.0, 0.0

    price_change = (current_price - entry_price) / entry_price * direction.sign
    pnl_usd = price_change * investment * leverage
    pnl_percent = price_change * 100.0 * leverage
    return pnl_usd, pnl_percent


def calculate_risk_reward_ratio(entry_price: float, target_price: float, stop_loss: float) -> float:
    """Reward distance over risk distance; 0.0 when there is no risk."""
    reward = abs(target_price - entry_price)
    risk = abs(entry_price - stop_loss)
    return reward / risk if risk > 0 else 0.0


def evaluate_trade_status(trade: TradeCandidate, current_price: float) -> TradeStatus:
    """TPHit once price reaches TP3, SLHit once it reaches the stop, else Open."""
    if trade.direction is Direction.LONG:
        if current_price >= trade.tp3:
            return TradeStatus.TP_HIT
        if current_price <= trade.stop_loss:
            return TradeStatus.SL_HIT
    else:
        if current_price <= trade.tp3:
            return TradeStatus.TP_HIT
        if current_price >= trade.stop_loss:
            return TradeStatus.SL_HIT
    return TradeStatus.OPEN
