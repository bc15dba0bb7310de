"""
Tests for the Binance-backed candle provider (client mocked).
"""

from unittest.mock import MagicMock, Mock

import pytest
from binance.exceptions import BinanceAPIException

from smctrader.live.binance_provider import BinanceCandleProvider


KLINES = [
    [1704067200000, '100.0', '101.0', '99.0', '100.5', '10.0', 1704070799999,
     '1000.0', 5, '5.0', '500.0', '0'],
    [1704070800000, '100.5', '102.0', '100.0', '101.5', '12.0', 1704074399999,
     '1200.0', 6, '6.0', '600.0', '0'],
]


def _api_error():
    return BinanceAPIException(response=Mock(), status_code=400,
                               text='{"code":-1121,"msg":"Invalid symbol."}')


def test_get_candles():
    client = MagicMock()
    client.get_klines.return_value = KLINES
    candles = BinanceCandleProvider(client=client).get_candles('BTCUSDT', '1h', 2)

    client.get_klines.assert_called_once_with(symbol='BTCUSDT', interval='1h', limit=2)
    assert len(candles) == 2
    assert candles['volume'].tolist() == [10.0, 12.0]


def test_get_current_price():
    client = MagicMock()
    client.get_symbol_ticker.return_value = {'symbol': 'BTCUSDT', 'price': '43250.10'}
    assert BinanceCandleProvider(client=client).get_current_price('BTCUSDT') == 43250.10


def test_api_errors_propagate():
    client = MagicMock()
    client.get_klines.side_effect = _api_error()
    client.get_symbol_ticker.side_effect = _api_error()
    provider = BinanceCandleProvider(client=client)

    with pytest.raises(BinanceAPIException):
        provider.get_candles('NOPE', '1h', 10)
    with pytest.raises(BinanceAPIException):
        provider.get_current_price('NOPE')
