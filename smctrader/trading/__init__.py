# -*- coding: utf-8 -*-
"""
Trade generation and position tools.

Turns the signals of the best candidate symbol into a TradeCandidate with
structure-based targets and stop, per trading modality. For positions the
user enters, recommends targets and stop, predicts the trend and proposes
recovery strategies when the position is losing.
"""

from smctrader.trading.config import ModalityConfig, MODALITY_CONFIG, CANDIDATE_SYMBOLS
from smctrader.trading.trade_generator import (
    TradeGenerator,
    TradeLevels,
    build_trade_levels,
    enforce_trade_constraints,
    reduce_leverage_for_fakeout,
    structural_targets,
)
from smctrader.trading.pnl import calculate_pnl, calculate_risk_reward_ratio, evaluate_trade_status
from smctrader.trading.prediction import TrendPredictor, predict_trend
from smctrader.trading.recommendations import (
    PositionPlanner,
    calculate_stop_loss,
    calculate_take_profit_levels,
)
from smctrader.trading.recovery import RecoveryAdvisor, analyze_position_recovery

__all__ = [
    'ModalityConfig',
    'MODALITY_CONFIG',
    'CANDIDATE_SYMBOLS',
    'TradeGenerator',
    'TradeLevels',
    'build_trade_levels',
    'enforce_trade_constraints',
    'reduce_leverage_for_fakeout',
    'structural_targets',
    'calculate_pnl',
    'calculate_risk_reward_ratio',
    'evaluate_trade_status',
    'TrendPredictor',
    'predict_trend',
    'PositionPlanner',
    'calculate_stop_loss',
    'calculate_take_profit_levels',
    'RecoveryAdvisor',
    'analyze_position_recovery',
]
