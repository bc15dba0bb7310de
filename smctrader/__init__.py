# -*- coding: utf-8 -*-
"""
smctrader: Smart Money Concepts market analysis.

Generates trades per trading modality and assesses open positions for
reversal from OHLCV candle windows. For user-entered positions it
recommends targets and stop, predicts the trend and proposes recovery
strategies.
"""

from smctrader.config import Config
from smctrader.engine import AnalysisEngine
from smctrader.exceptions import SmcTraderError, CandleValidationError, NoValidCandidateError
from smctrader.models import (
    Direction,
    Modality,
    OpenPosition,
    PositionPlan,
    PositionSnapshot,
    ReversalAction,
    ReversalSignal,
    RecoveryStrategy,
    ScoringPolicy,
    TradeCandidate,
    TrendPrediction,
)

__version__ = '0.1.0'

__all__ = [
    'Config',
    'AnalysisEngine',
    'SmcTraderError',
    'CandleValidationError',
    'NoValidCandidateError',
    'Direction',
    'Modality',
    'OpenPosition',
    'PositionPlan',
    'PositionSnapshot',
    'ReversalAction',
    'ReversalSignal',
    'RecoveryStrategy',
    'ScoringPolicy',
    'TradeCandidate',
    'TrendPrediction',
]
