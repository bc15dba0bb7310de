"""
Shared fixtures: candle builders and deterministic collaborators.
"""

from datetime import datetime, timezone

import numpy as np
import pandas as pd
import pytest

from smctrader.live.provider import CandleProvider
from smctrader.runtime import FixedClock, RandomSource
from smctrader.signals.candles import prepare_candles


def make_candles(rows, volume=100.0):
    """Build a prepared candle frame from (open, high, low, close[, volume]) tuples."""
    records = []
    start = pd.Timestamp('2024-01-01', tz='UTC')
    for i, row in enumerate(rows):
        o, h, l, c = row[:4]
        v = row[4] if len(row) > 4 else volume
        records.append({
            'open_time': start + pd.Timedelta(hours=i),
            'open': o,
            'high': h,
            'low': l,
            'close': c,
            'volume': v,
            'close_time': start + pd.Timedelta(hours=i, minutes=59),
        })
    return prepare_candles(pd.DataFrame(records))


def candles_from_closes(closes, spread=0.5, volume=100.0):
    """Candles opening at the previous close with a fixed wick around the body."""
    rows = []
    prev = closes[0]
    for close in closes:
        o = prev
        rows.append((o, max(o, close) + spread, min(o, close) - spread, close, volume))
        prev = close
    return make_candles(rows)


def trending_candles(n=60, start=100.0, step=0.5, volume=100.0):
    return candles_from_closes([start + step * i for i in range(n)], volume=volume)


def random_walk_candles(n=200, seed=7):
    rng = np.random.default_rng(seed)
    closes = 100.0 + np.cumsum(rng.normal(0, 1, n))
    closes = closes - closes.min() + 50.0
    return candles_from_closes(list(closes), spread=0.3)


class FixedRandomSource(RandomSource):
    """Always returns the same value, clamped into the requested range."""

    def __init__(self, value):
        self.value = value
        self.calls = []

    def next_in_range(self, minimum, maximum):
        self.calls.append((minimum, maximum))
        return max(minimum, min(maximum, self.value))


class FakeProvider(CandleProvider):
    """In-memory provider; entries of ``candles`` and ``prices`` may be exceptions to raise."""

    def __init__(self, candles=None, prices=None):
        self.candles = candles or {}
        self.prices = prices or {}
        self.requests = []

    def get_candles(self, symbol, interval, limit):
        self.requests.append((symbol, interval, limit))
        data = self.candles.get(symbol)
        if data is None:
            raise ConnectionError(f"no data for {symbol}")
        if isinstance(data, Exception):
            raise data
        return data

    def get_current_price(self, symbol):
        price = self.prices.get(symbol)
        if price is None:
            raise ConnectionError(f"no price for {symbol}")
        if isinstance(price, Exception):
            raise price
        return price


@pytest.fixture
def fixed_clock():
    return FixedClock(datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc))


@pytest.fixture
def stop_hunt_candles():
    """Swing low at 99 (index 3) hunted by the last candle's wick to 98.6."""
    return make_candles([
        (101.0, 102.0, 100.5, 101.5),
        (101.5, 102.0, 100.0, 100.5),
        (100.5, 101.0, 99.5, 100.0),
        (100.0, 100.5, 99.0, 99.8),
        (99.8, 100.8, 99.6, 100.5),
        (100.5, 101.2, 99.8, 101.0),
        (101.0, 101.5, 100.0, 101.2),
        (101.2, 101.6, 100.4, 101.0),
        (101.0, 101.4, 100.2, 100.8),
        (100.8, 101.0, 98.6, 99.5),
    ])


@pytest.fixture
def bos_candles():
    """Bullish BOS at index 3 through the swing high at 11 (lookback 1)."""
    return make_candles([
        (9.8, 10.0, 9.0, 9.5),
        (9.6, 11.0, 9.5, 10.5),
        (10.4, 10.5, 9.8, 10.0),
        (10.1, 11.2, 10.0, 11.1),
    ])


@pytest.fixture
def choch_candles():
    """Higher low at 9.5 broken by the close at 9.3 (lookback 1)."""
    return make_candles([
        (10.3, 10.5, 10.0, 10.2),
        (10.1, 10.2, 9.0, 9.5),
        (9.9, 10.8, 9.8, 10.5),
        (10.3, 10.4, 9.5, 9.9),
        (9.9, 10.6, 9.7, 10.0),
        (9.8, 9.9, 9.2, 9.3),
    ])


@pytest.fixture
def breaker_candles():
    """
    Uptrend whose bullish order block turns into a breaker (lookback 3).

    Swing lows 100 (index 3) and 101.5 (index 11) form a higher low. The
    bullish BOS at index 15 leaves its order block on candle 11 (101.5 to
    102.3). Candle 18 trades back through it and closes at 101.2, a bearish
    CHOCH through 101.5; the window ends at 100.9, below the block.
    """
    return make_candles([
        (103.0, 103.5, 102.0, 102.5),
        (102.5, 102.8, 101.5, 101.8),
        (101.8, 102.0, 100.8, 101.0),
        (101.0, 101.3, 100.0, 100.8),
        (100.8, 102.0, 100.6, 101.8),
        (101.8, 103.0, 101.5, 102.8),
        (102.8, 103.8, 102.5, 103.5),
        (103.5, 104.5, 103.2, 104.0),
        (104.0, 104.2, 103.0, 103.2),
        (103.2, 103.4, 102.2, 102.4),
        (102.4, 102.6, 101.8, 102.0),
        (102.0, 102.3, 101.5, 101.7),
        (101.7, 103.0, 101.6, 102.9),
        (102.9, 104.0, 102.7, 103.8),
        (103.8, 104.4, 103.5, 104.2),
        (104.2, 106.0, 104.0, 105.8),
        (105.8, 106.2, 104.5, 104.8),
        (104.8, 105.0, 102.5, 102.8),
        (102.8, 103.0, 101.0, 101.2),
        (101.2, 101.4, 100.6, 100.9),
    ])
