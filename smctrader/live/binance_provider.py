# -*- coding: utf-8 -*-
"""
Binance market data provider.

Read-only wrapper around python-binance's public endpoints (klines and
ticker price). Credentials are optional; public market data does not need
them.
"""

import logging
from typing import Optional

import pandas as pd
from binance.client import Client
from binance.exceptions import BinanceAPIException

from smctrader.config import Config
from smctrader.live.provider import CandleProvider
from smctrader.signals.candles import candles_from_klines


logger = logging.getLogger(__name__)


class BinanceCandleProvider(CandleProvider):
    """CandleProvider backed by ``binance.client.Client``."""

    def __init__(self, client: Optional[Client] = None, config: Optional[Config] = None):
        """
        Parameters
        ----------
        client : Client, optional
            Pre-built python-binance client. Built from ``config`` when omitted.
        config : Config, optional
            Supplies API credentials and the testnet flag.
        """
        if client is None:
            config = config or Config()
            client = Client(
                api_key=config.api_key.strip() or None,
                api_secret=config.api_secret.strip() or None,
                testnet=config.testnet,
            )
            endpoint = "TESTNET" if config.testnet else "REALNET"
            logger.info(f"Binance market data client ready ({endpoint})")
        self.client = client

    def get_candles(self, symbol: str, interval: str, limit: int) -> pd.DataFrame:
        try:
            klines = self.client.get_klines(symbol=symbol, interval=interval, limit=limit)
        except BinanceAPIException as e:
            logger.error(f"Error fetching {symbol} {interval} klines: {e}")
            raise

        candles = candles_from_klines(klines)
        logger.debug(f"Loaded {len(candles)} {interval} candles for {symbol}")
        return candles

    def get_current_price(self, symbol: str) -> float:
        try:
            ticker = self.client.get_symbol_ticker(symbol=symbol)
        except BinanceAPIException as e:
            logger.error(f"Error fetching {symbol} price: {e}")
            raise
        return float(ticker['price'])
