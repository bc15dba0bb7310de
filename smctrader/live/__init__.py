# -*- coding: utf-8 -*-
"""
Market data access.

``CandleProvider`` is the interface the analysis core depends on. The
Binance implementation lives in ``smctrader.live.binance_provider`` and is
only imported by callers that want it.
"""

from smctrader.live.provider import CandleProvider, MARKET_DATA_ERRORS

__all__ = [
    'CandleProvider',
    'MARKET_DATA_ERRORS',
]
