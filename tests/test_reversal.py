"""
Tests for reversal signals, scoring, actions and the detector entry points.
"""

from unittest.mock import Mock

import pandas as pd
import pytest
from binance.exceptions import BinanceAPIException

from smctrader.models import (
    Bias,
    Direction,
    Modality,
    OpenPosition,
    ReversalAction,
    ScoringPolicy,
)
from smctrader.signals import reversal
from smctrader.signals.reversal import (
    FETCH_FAILED_REASON,
    INSUFFICIENT_DATA_REASON,
    NO_SIGNALS_REASON,
    ReversalDetector,
    ReversalEvidence,
    decide_action,
    detect_breaker_block,
    detect_candlestick_pattern,
    detect_ema_cross,
    detect_reversal,
    detect_rsi_divergence,
    detect_sr_violation,
    detect_sweep_without_bos,
    score_evidence,
    suggest_stop_loss,
    volatility_spike_ratio,
)
from smctrader.signals.structure import STRUCTURE_COLUMNS, detect_bos, detect_choch, detect_swing_points
from smctrader.signals.zones import OB_COLUMNS, detect_order_blocks

from conftest import FakeProvider, candles_from_closes, make_candles, trending_candles


FILLER = (100.0, 100.5, 99.5, 100.0)


def _position(direction=Direction.LONG, entry=110.0, stop=105.0, price=119.5,
              tp1=None, tp1_executed=False, modality=Modality.DAY_TRADING):
    return OpenPosition(symbol='BTCUSDT', direction=direction, entry_price=entry,
                        effective_stop_loss=stop, current_price=price, modality=modality,
                        tp1_executed=tp1_executed, tp1=tp1)


def _evidence(*names):
    return ReversalEvidence(**{name: name for name in names})


def _block(direction, low, high, mitigated=True):
    return pd.DataFrame([{
        'index': 2, 'high': high, 'low': low, 'open': high, 'close': low,
        'direction': direction, 'mitigated': mitigated, 'midpoint': (high + low) / 2.0,
    }], columns=OB_COLUMNS)


class TestCandlestickPatterns:

    @pytest.mark.parametrize('last, name, bias', [
        ((100.0, 101.0, 99.0, 100.05), 'doji', None),
        ((100.0, 100.6, 98.0, 100.5), 'hammer', Bias.BULLISH),
        ((100.5, 102.5, 99.95, 100.0), 'shooting star', Bias.BEARISH),
    ])
    def test_single_candle_patterns(self, last, name, bias):
        pattern = detect_candlestick_pattern(make_candles([FILLER, FILLER, last]))
        assert pattern[0] == name
        assert pattern[1] is bias

    def test_bearish_engulfing(self):
        candles = make_candles([FILLER, (100.0, 101.2, 99.8, 101.0), (101.2, 101.4, 99.4, 99.5)])
        assert detect_candlestick_pattern(candles) == ('bearish engulfing', Bias.BEARISH, 80)

    def test_morning_star(self):
        candles = make_candles([
            (105.0, 105.5, 101.5, 102.0),
            (102.0, 102.5, 101.5, 102.2),
            (102.2, 104.6, 102.0, 104.5),
        ])
        assert detect_candlestick_pattern(candles) == ('morning star', Bias.BULLISH, 85)

    def test_needs_three_candles(self):
        assert detect_candlestick_pattern(make_candles([FILLER, FILLER])) is None


class TestClassicSignals:

    def test_ema_cross(self):
        assert detect_ema_cross(candles_from_closes([100.0] * 39 + [101.0])) is Bias.BULLISH
        assert detect_ema_cross(candles_from_closes([100.0] * 39 + [99.0])) is Bias.BEARISH
        assert detect_ema_cross(candles_from_closes([100.0] * 28 + [101.0])) is None

    def test_bearish_rsi_divergence(self):
        closes = [100.0 + i for i in range(30)]
        for step in range(10):
            closes.append(closes[-1] + (-0.5 if step % 2 == 0 else 0.6))
        assert detect_rsi_divergence(candles_from_closes(closes)) is Bias.BEARISH

    def test_divergence_needs_thirty_candles(self):
        assert detect_rsi_divergence(trending_candles(n=29)) is None

    def test_volatility_spike(self):
        candles = make_candles([FILLER] * 15 + [(100.0, 102.0, 98.0, 100.0)] * 15)
        assert volatility_spike_ratio(candles) == pytest.approx(4.0)
        assert volatility_spike_ratio(candles.tail(20)) == 0.0

    def test_support_break(self):
        candles = candles_from_closes([100.0, 100.1, 99.9, 100.05, 98.0])
        name, level = detect_sr_violation(candles, 101.0, Direction.LONG)
        assert name == 'support break'
        assert level == pytest.approx(100.0125)
        assert detect_sr_violation(candles, 101.0, Direction.SHORT) is None


class TestStructuralSignals:

    def test_breaker_block(self):
        candles = candles_from_closes([10.0, 9.9, 9.6])
        assert detect_breaker_block(candles, _block('bullish', 9.8, 10.5), Direction.LONG) == 9.8
        # unmitigated blocks are not breakers
        assert detect_breaker_block(candles, _block('bullish', 9.8, 10.5, mitigated=False),
                                    Direction.LONG) is None

    def test_short_breaker_block(self):
        candles = candles_from_closes([10.0, 10.2, 10.5])
        assert detect_breaker_block(candles, _block('bearish', 9.5, 10.0), Direction.SHORT) == 10.0

    def test_sweep_without_bos(self, stop_hunt_candles):
        swings = detect_swing_points(stop_hunt_candles)
        bos = detect_bos(stop_hunt_candles, swings)

        wick, description = detect_sweep_without_bos(stop_hunt_candles, swings, bos, Direction.SHORT)
        assert wick == pytest.approx(98.6)
        assert 'bullish manipulation' in description
        assert detect_sweep_without_bos(stop_hunt_candles, swings, bos, Direction.LONG) is None


class TestScoring:

    @pytest.mark.parametrize('count, confidence', [(0, 0), (1, 40), (2, 60), (3, 80), (4, 95), (5, 95)])
    def test_signal_count_confidence(self, count, confidence):
        names = ('rsi_divergence', 'ema_cross', 'candle_pattern', 'choch', 'opposing_fvg')[:count]
        score, detected = score_evidence(_evidence(*names), ScoringPolicy.SIGNAL_COUNT)
        assert score == confidence
        assert detected is (count >= 2)

    def test_fixed_weight(self):
        score, detected = score_evidence(_evidence('rsi_divergence', 'ema_cross'),
                                         ScoringPolicy.FIXED_WEIGHT)
        assert (score, detected) == (55, True)

        score, detected = score_evidence(_evidence('candle_pattern', 'volatility_spike'),
                                         ScoringPolicy.FIXED_WEIGHT)
        assert (score, detected) == (30, False)

    def test_fixed_weight_structural_flip(self):
        score, detected = score_evidence(_evidence('choch', 'breaker_block'),
                                         ScoringPolicy.FIXED_WEIGHT)
        assert (score, detected) == (50, True)

    @pytest.mark.parametrize('name', ['choch', 'liquidity_sweep'])
    def test_fixed_weight_structure_floor(self, name):
        # a tightening structure signal also reports a reversal
        assert score_evidence(_evidence(name), ScoringPolicy.FIXED_WEIGHT) == (50, True)

        score, _ = score_evidence(_evidence(name, 'rsi_divergence', 'ema_cross', 'sr_violation'),
                                  ScoringPolicy.FIXED_WEIGHT)
        assert score == 70

    def test_signal_count_has_no_floor(self):
        assert score_evidence(_evidence('choch'), ScoringPolicy.SIGNAL_COUNT) == (40, False)

    def test_descriptions_put_structure_first(self):
        evidence = _evidence('ema_cross', 'choch')
        assert evidence.descriptions() == ['choch', 'ema_cross']


class TestDecideAction:

    def test_choch_and_breaker_reverse_after_tp1(self):
        evidence = _evidence('choch', 'breaker_block')
        assert decide_action(evidence, 60, ScoringPolicy.SIGNAL_COUNT,
                             _position(tp1_executed=True)) is ReversalAction.REVERSE
        assert decide_action(evidence, 60, ScoringPolicy.SIGNAL_COUNT,
                             _position(tp1=119.0)) is ReversalAction.REVERSE

    def test_reverse_downgraded_before_tp1(self):
        evidence = _evidence('choch', 'breaker_block')
        assert decide_action(evidence, 60, ScoringPolicy.SIGNAL_COUNT,
                             _position(tp1=125.0)) is ReversalAction.CLOSE

    def test_structure_tightens(self):
        position = _position()
        assert decide_action(_evidence('choch'), 40, ScoringPolicy.SIGNAL_COUNT,
                             position) is ReversalAction.TIGHTEN_SL
        assert decide_action(_evidence('liquidity_sweep'), 0, ScoringPolicy.FIXED_WEIGHT,
                             position) is ReversalAction.TIGHTEN_SL

    def test_signal_count_thresholds(self):
        position = _position()
        policy = ScoringPolicy.SIGNAL_COUNT
        assert decide_action(_evidence('rsi_divergence', 'ema_cross', 'sr_violation'), 80,
                             policy, position) is ReversalAction.CLOSE
        assert decide_action(_evidence('rsi_divergence', 'ema_cross'), 60,
                             policy, position) is ReversalAction.TIGHTEN_SL
        assert decide_action(_evidence('rsi_divergence'), 40,
                             policy, position) is ReversalAction.NONE

    def test_fixed_weight_thresholds(self):
        position = _position()
        policy = ScoringPolicy.FIXED_WEIGHT
        assert decide_action(_evidence(), 90, policy, position) is ReversalAction.CLOSE
        assert decide_action(_evidence(), 75, policy, position) is ReversalAction.TIGHTEN_SL
        assert decide_action(_evidence(), 45, policy, position) is ReversalAction.NONE


class TestSuggestStopLoss:

    @pytest.mark.parametrize('stop, expected', [(95.0, 99.0), (99.5, 99.5), (100.0, None)])
    def test_long(self, stop, expected):
        position = _position(entry=98.0, stop=stop, price=100.0)
        assert suggest_stop_loss(position, 2.0) == expected

    @pytest.mark.parametrize('stop, expected', [(105.0, 101.0), (100.5, 100.5), (100.0, None)])
    def test_short(self, stop, expected):
        position = _position(direction=Direction.SHORT, entry=102.0, stop=stop, price=100.0)
        assert suggest_stop_loss(position, 2.0) == expected


class TestDetectReversal:

    def test_insufficient_data(self):
        signal = detect_reversal(_position(), trending_candles(n=19))
        assert signal.confidence == 0
        assert signal.reason == INSUFFICIENT_DATA_REASON
        assert not signal.detected_reversal

    def test_quiet_trend(self):
        signal = detect_reversal(_position(), trending_candles(n=40))
        assert signal.confidence == 0
        assert signal.reason == NO_SIGNALS_REASON
        assert signal.recommended_action is ReversalAction.NONE
        assert signal.signals == []

    @pytest.fixture
    def structural_flip(self, monkeypatch):
        choch = pd.DataFrame([{'index': 38, 'price': 118.0, 'direction': 'bearish',
                               'displacement_pct': 0.5}], columns=STRUCTURE_COLUMNS)
        monkeypatch.setattr(reversal, 'detect_choch', lambda candles, swings: choch)
        monkeypatch.setattr(reversal, 'detect_breaker_block',
                            lambda candles, order_blocks, direction: 117.0)

    def test_choch_with_breaker_reverses(self, structural_flip):
        signal = detect_reversal(_position(tp1_executed=True), trending_candles(n=40),
                                 timeframe='15m')

        assert signal.detected_reversal
        assert signal.confidence == 60
        assert signal.recommended_action is ReversalAction.REVERSE
        assert signal.suggested_new_sl is None
        assert signal.reason == 'CHOCH on 15m at 118.0000 + Breaker Block at 117.0000'

    def test_choch_with_breaker_closes_before_tp1(self, structural_flip):
        signal = detect_reversal(_position(), trending_candles(n=40))

        assert signal.recommended_action is ReversalAction.CLOSE
        # half an ATR (1.5) below the current price
        assert signal.suggested_new_sl == pytest.approx(118.75)

    @pytest.fixture
    def choch_only(self, monkeypatch):
        choch = pd.DataFrame([{'index': 38, 'price': 118.0, 'direction': 'bearish',
                               'displacement_pct': 0.5}], columns=STRUCTURE_COLUMNS)
        monkeypatch.setattr(reversal, 'detect_choch', lambda candles, swings: choch)

    def test_fixed_weight_choch_tightens_and_reports(self, choch_only):
        signal = detect_reversal(_position(), trending_candles(n=40), ScoringPolicy.FIXED_WEIGHT)

        assert signal.recommended_action is ReversalAction.TIGHTEN_SL
        assert signal.detected_reversal
        assert signal.confidence == 50
        assert signal.suggested_new_sl == pytest.approx(118.75)


class TestBreakerScenario:
    """Bearish CHOCH after a mitigated bullish order block, on real candles."""

    def _long(self, **kwargs):
        return _position(entry=102.0, stop=99.0, price=100.9, **kwargs)

    def test_structure_of_the_window(self, breaker_candles):
        swings = detect_swing_points(breaker_candles)
        assert list(zip(swings['index'], swings['kind'])) == [
            (3, 'low'), (7, 'high'), (11, 'low'), (16, 'high'),
        ]

        bos = detect_bos(breaker_candles, swings)
        blocks = detect_order_blocks(breaker_candles, bos)
        bullish = blocks[blocks['direction'] == 'bullish'].iloc[0]
        assert bullish['index'] == 11
        assert bullish['low'] == pytest.approx(101.5)
        assert bool(bullish['mitigated'])

        choch = detect_choch(breaker_candles, swings)
        assert choch['direction'].tolist() == ['bearish']
        assert choch['index'].iloc[0] == 18
        assert choch['price'].iloc[0] == pytest.approx(101.5)

    def test_reverses_after_tp1(self, breaker_candles):
        signal = detect_reversal(self._long(tp1_executed=True), breaker_candles)

        assert signal.detected_reversal
        assert signal.recommended_action is ReversalAction.REVERSE
        assert signal.suggested_new_sl is None
        assert signal.signals[:2] == ['CHOCH at 101.5000', 'Breaker Block at 101.5000']

    def test_closes_before_tp1(self, breaker_candles):
        signal = detect_reversal(self._long(tp1=104.0), breaker_candles, timeframe='15m')

        assert signal.detected_reversal
        assert signal.recommended_action is ReversalAction.CLOSE
        assert 'CHOCH on 15m at 101.5000' in signal.reason
        assert 99.0 <= signal.suggested_new_sl < 100.9

    def test_fixed_weight_agrees(self, breaker_candles):
        signal = detect_reversal(self._long(tp1_executed=True), breaker_candles,
                                 ScoringPolicy.FIXED_WEIGHT)

        assert signal.detected_reversal
        assert signal.confidence >= 50
        assert signal.recommended_action is ReversalAction.REVERSE

    def test_short_is_untouched_by_the_breaker(self, breaker_candles):
        short = _position(direction=Direction.SHORT, entry=100.0, stop=107.0, price=100.9)
        signal = detect_reversal(short, breaker_candles)

        assert not any(s.startswith('Breaker Block') for s in signal.signals)
        assert signal.recommended_action is not ReversalAction.REVERSE



class TestReversalDetector:

    def test_fetch_failure(self):
        provider = FakeProvider()
        signal = ReversalDetector(provider).check(_position())

        assert signal.reason == FETCH_FAILED_REASON
        assert signal.confidence == 0
        assert provider.requests == [('BTCUSDT', '15m', 60)]

    def test_uses_modality_timeframe(self):
        provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=52)})
        signal = ReversalDetector(provider).check(_position(modality=Modality.TREND_FOLLOWING),
                                                  ScoringPolicy.FIXED_WEIGHT)

        assert provider.requests == [('BTCUSDT', '1d', 52)]
        assert signal.reason == NO_SIGNALS_REASON

    def test_exchange_error_is_skipped(self):
        error = BinanceAPIException(response=Mock(), status_code=400,
                                    text='{"code":-1121,"msg":"Invalid symbol."}')
        provider = FakeProvider(candles={'BTCUSDT': error})
        signal = ReversalDetector(provider).check(_position())
        assert signal.reason == FETCH_FAILED_REASON

    def test_programming_errors_propagate(self):
        provider = FakeProvider(candles={'BTCUSDT': TypeError('bad argument')})
        with pytest.raises(TypeError):
            ReversalDetector(provider).check(_position())
