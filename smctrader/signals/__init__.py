# -*- coding: utf-8 -*-
"""
Market analysis signals.

Pure functions over a prepared candle window: classic indicators, market
structure (swings, BOS, CHOCH), zones (order blocks, fair value gaps,
liquidity), manipulation, Wyckoff cycle, sentiment and reversal detection.
"""

from smctrader.signals.candles import prepare_candles, candles_from_klines
from smctrader.signals.indicators import (
    rsi_series,
    calculate_rsi,
    ema_series,
    calculate_ema,
    true_range,
    average_true_range,
    calculate_momentum,
    calculate_volatility,
    classify_trend,
    score_signal_strength,
    compute_technical_indicators,
    find_support_resistance,
)
from smctrader.signals.structure import detect_swing_points, detect_bos, detect_choch
from smctrader.signals.zones import (
    detect_order_blocks,
    detect_fvgs,
    detect_liquidity_zones,
    find_nearest_unmitigated_ob,
    find_nearest_open_fvg,
    find_swept_liquidity_zone,
)
from smctrader.signals.manipulation import detect_manipulation
from smctrader.signals.cycle import estimate_wyckoff_phase, classify_institutional_cycle
from smctrader.signals.sentiment import analyze_sentiment
from smctrader.signals.reversal import ReversalDetector, detect_reversal

__all__ = [
    'prepare_candles',
    'candles_from_klines',
    'rsi_series',
    'calculate_rsi',
    'ema_series',
    'calculate_ema',
    'true_range',
    'average_true_range',
    'calculate_momentum',
    'calculate_volatility',
    'classify_trend',
    'score_signal_strength',
    'compute_technical_indicators',
    'find_support_resistance',
    'detect_swing_points',
    'detect_bos',
    'detect_choch',
    'detect_order_blocks',
    'detect_fvgs',
    'detect_liquidity_zones',
    'find_nearest_unmitigated_ob',
    'find_nearest_open_fvg',
    'find_swept_liquidity_zone',
    'detect_manipulation',
    'estimate_wyckoff_phase',
    'classify_institutional_cycle',
    'analyze_sentiment',
    'ReversalDetector',
    'detect_reversal',
]
