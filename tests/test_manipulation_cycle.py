"""
Tests for stop-hunt / fakeout detection and cycle labelling.
"""

import pandas as pd
import pytest

from smctrader.models import (
    InstitutionalCycle,
    ManipulationKind,
    ManipulationSignal,
    WyckoffPhase,
)
from smctrader.signals.cycle import classify_institutional_cycle, estimate_wyckoff_phase
from smctrader.signals.manipulation import detect_manipulation, no_manipulation
from smctrader.signals.structure import STRUCTURE_COLUMNS, detect_swing_points

from conftest import make_candles, trending_candles


def _bos(direction, price):
    return pd.DataFrame([{'index': 3, 'price': price, 'direction': direction,
                          'displacement_pct': 1.0}], columns=STRUCTURE_COLUMNS)


class TestManipulation:

    def test_stop_hunt_below_swing_low(self, stop_hunt_candles):
        swings = detect_swing_points(stop_hunt_candles)
        signal = detect_manipulation(stop_hunt_candles, swings, 99.5)

        assert signal.detected
        assert signal.kind is ManipulationKind.STOP_HUNT
        assert signal.price == pytest.approx(98.6)
        assert 'swing low' in signal.description
        assert not signal.is_fakeout

    def test_shallow_wick_is_a_fakeout(self, stop_hunt_candles):
        rows = stop_hunt_candles[['open', 'high', 'low', 'close']].values.tolist()
        rows[-1] = [99.4, 99.6, 98.95, 99.1]
        candles = make_candles(rows)
        signal = detect_manipulation(candles, detect_swing_points(candles), 99.1)

        assert signal.kind is ManipulationKind.FAKEOUT
        assert signal.price == pytest.approx(98.95)
        assert signal.is_fakeout
        assert 'Avoid Short entries' in signal.description

    def test_clean_trend(self):
        candles = trending_candles(n=40)
        signal = detect_manipulation(candles, detect_swing_points(candles), 119.5)

        assert not signal.detected
        assert signal.kind is ManipulationKind.NONE
        assert signal.price == 119.5

    def test_insufficient_data(self):
        candles = trending_candles(n=4)
        signal = detect_manipulation(candles, detect_swing_points(candles), 101.5)
        assert signal.description == 'Insufficient data'
        assert not signal.detected


class TestWyckoffPhase:

    def _flat(self, first_volume, second_volume, first_close=100.0, second_close=100.0):
        rows = [(first_close, first_close + 0.5, first_close - 0.5, first_close, first_volume)] * 10
        rows += [(second_close, second_close + 0.5, second_close - 0.5, second_close, second_volume)] * 10
        return make_candles(rows)

    def test_accumulation(self):
        assert estimate_wyckoff_phase(self._flat(100.0, 150.0)) is WyckoffPhase.ACCUMULATION

    def test_distribution(self):
        assert estimate_wyckoff_phase(self._flat(100.0, 80.0)) is WyckoffPhase.DISTRIBUTION

    def test_markup_and_markdown(self):
        up = make_candles([(100.0 + i, 101.0 + i, 99.5 + i, 100.5 + i, 100.0 + 10 * i)
                           for i in range(20)])
        down = make_candles([(120.0 - i, 120.5 - i, 119.0 - i, 119.5 - i, 100.0 + 10 * i)
                             for i in range(20)])
        assert estimate_wyckoff_phase(up) is WyckoffPhase.MARKUP
        assert estimate_wyckoff_phase(down) is WyckoffPhase.MARKDOWN

    def test_range_with_steady_volume_is_unknown(self):
        assert estimate_wyckoff_phase(self._flat(100.0, 100.0)) is WyckoffPhase.UNKNOWN

    def test_short_window(self):
        assert estimate_wyckoff_phase(trending_candles(n=19)) is WyckoffPhase.UNKNOWN


class TestInstitutionalCycle:

    def test_manipulation_wins(self, bos_candles):
        hunted = ManipulationSignal(detected=True, kind=ManipulationKind.STOP_HUNT,
                                    price=9.0, description='hunt')
        cycle = classify_institutional_cycle(bos_candles, _bos('bullish', 9.0), hunted)
        assert cycle is InstitutionalCycle.MANIPULATION

    def test_no_bos_is_accumulation(self, bos_candles):
        empty = pd.DataFrame(columns=STRUCTURE_COLUMNS)
        cycle = classify_institutional_cycle(bos_candles, empty, no_manipulation(11.1))
        assert cycle is InstitutionalCycle.ACCUMULATION

    def test_price_beyond_bos_is_distribution(self, bos_candles):
        # average of the last closes is 10.275
        quiet = no_manipulation(11.1)
        assert classify_institutional_cycle(bos_candles, _bos('bullish', 9.0), quiet) \
            is InstitutionalCycle.DISTRIBUTION
        assert classify_institutional_cycle(bos_candles, _bos('bullish', 11.0), quiet) \
            is InstitutionalCycle.ACCUMULATION
        assert classify_institutional_cycle(bos_candles, _bos('bearish', 11.0), quiet) \
            is InstitutionalCycle.DISTRIBUTION
