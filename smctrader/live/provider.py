# -*- coding: utf-8 -*-
"""
Candle provider interface.

The analysis core never talks to an exchange; it asks a CandleProvider for
prepared candle windows and current prices.
"""

from abc import ABC, abstractmethod

import pandas as pd
from binance.exceptions import BinanceAPIException, BinanceRequestException

from smctrader.exceptions import CandleValidationError


# Failures a caller may skip over when a fetch or its validation fails.
# Network failures (ConnectionError, requests errors) are OSErrors.
MARKET_DATA_ERRORS = (
    BinanceAPIException,
    BinanceRequestException,
    CandleValidationError,
    ValueError,
    OSError,
)


class CandleProvider(ABC):
    """Source of candle windows and last-trade prices."""

    @abstractmethod
    def get_candles(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        """
        Fetch the most recent candles for a symbol.

        Parameters
        ----------
        symbol : str
            Trading pair (e.g., 'BTCUSDT').
        interval : str
            Candle interval (e.g., '5m', '1h', '1d').
        limit : int
            Number of candles.

        Returns
        -------
        pd.DataFrame
            Prepared candle window (see ``prepare_candles``), oldest first.
        """
        pass

    @abstractmethod
    def get_current_price(self, symbol: str) -> float:
        """Last traded price of ``symbol``."""
        pass
