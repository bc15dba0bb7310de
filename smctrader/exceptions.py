# -*- coding: utf-8 -*-
"""
Exception types raised by smctrader.
"""


class SmcTraderError(Exception):
    """Base class for all smctrader errors."""


class CandleValidationError(SmcTraderError, ValueError):
    """Raised when a candle window is malformed (NaN prices, unordered times, ...)."""


class NoValidCandidateError(SmcTraderError, RuntimeError):
    """Raised when no candidate symbol produced usable indicators."""
