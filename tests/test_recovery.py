"""
Tests for losing-position recovery strategies.
"""

import pytest

from smctrader.models import Direction, PositionSnapshot, RecoveryStrategyType, RiskLevel
from smctrader.trading.recovery import RecoveryAdvisor, analyze_position_recovery

from conftest import FakeProvider, trending_candles


def _position(current, direction=Direction.LONG, entry=100.0, leverage=5, investment=1000.0):
    return PositionSnapshot(symbol='BTCUSDT', direction=direction, entry_price=entry,
                            current_price=current, leverage=leverage,
                            investment_amount=investment, stop_loss=entry * 0.9)


def _by_type(strategies):
    return {s.strategy_type: s for s in strategies}


class TestAnalyzePositionRecovery:

    @pytest.fixture
    def strategies(self):
        # -5% move at 5x: 25% down on margin
        return analyze_position_recovery(_position(95.0), 1.0,
                                         {'support': [93.0, 90.0], 'resistance': []})

    def test_ordered_by_risk(self, strategies):
        assert [s.strategy_type for s in strategies] == [
            RecoveryStrategyType.TP_SL_ADJUSTMENT,
            RecoveryStrategyType.PARTIAL_CLOSE,
            RecoveryStrategyType.HEDGE,
            RecoveryStrategyType.DCA,
        ]
        assert [s.risk_level for s in strategies] == [
            RiskLevel.LOW, RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH,
        ]

    def test_tp_sl_adjustment(self, strategies):
        adjustment = _by_type(strategies)[RecoveryStrategyType.TP_SL_ADJUSTMENT]
        assert adjustment.params['new_tp'] == 97.5
        assert adjustment.params['new_sl'] == 93.8
        assert adjustment.params['tp_distance_pct'] == 2.63
        assert adjustment.params['sl_distance_pct'] == 1.26
        assert adjustment.estimated_recovery_pct == 7

    def test_partial_close(self, strategies):
        partial = _by_type(strategies)[RecoveryStrategyType.PARTIAL_CLOSE]
        assert partial.params == {'close_pct': 30, 'capital_recovered': 300.0,
                                  'remaining_exposure': 3500.0}
        assert partial.estimated_recovery_pct == 24

    def test_hedge(self, strategies):
        hedge = _by_type(strategies)[RecoveryStrategyType.HEDGE]
        assert hedge.params['hedge_size_pct'] == 38
        assert hedge.params['hedge_direction'] is Direction.SHORT
        assert hedge.params['suggested_leverage'] == 5
        assert hedge.params['estimated_hedge_cost'] == 375.0
        assert hedge.estimated_recovery_pct == 26

    def test_dca_at_nearest_support(self, strategies):
        dca = _by_type(strategies)[RecoveryStrategyType.DCA]
        assert dca.params['additional_entry_price'] == 93.0
        assert dca.params['new_average_entry'] == 96.5
        assert dca.estimated_recovery_pct == 70

    def test_profitable_position_needs_nothing(self):
        assert analyze_position_recovery(_position(105.0), 1.0) == []

    def test_small_loss_skips_hedge(self):
        strategies = _by_type(analyze_position_recovery(_position(99.6), 1.0))
        assert RecoveryStrategyType.HEDGE not in strategies
        # no support: 1.5 ATR below the current price
        assert strategies[RecoveryStrategyType.DCA].params['additional_entry_price'] == 98.1

    def test_deep_loss_skips_dca(self):
        strategies = _by_type(analyze_position_recovery(_position(80.0), 1.0))
        assert RecoveryStrategyType.DCA not in strategies
        assert strategies[RecoveryStrategyType.PARTIAL_CLOSE].params['close_pct'] == 50
        assert strategies[RecoveryStrategyType.HEDGE].params['hedge_size_pct'] == 80

    def test_short_averages_at_resistance(self):
        position = _position(105.0, direction=Direction.SHORT, leverage=2)
        strategies = _by_type(analyze_position_recovery(
            position, 1.0, {'support': [100.0], 'resistance': [107.0]}))

        dca = strategies[RecoveryStrategyType.DCA]
        assert dca.params['additional_entry_price'] == 107.0
        assert dca.params['new_average_entry'] == 103.5
        assert strategies[RecoveryStrategyType.HEDGE].params['hedge_direction'] is Direction.LONG
        assert strategies[RecoveryStrategyType.TP_SL_ADJUSTMENT].params['new_tp'] == 102.5

    def test_rejects_non_positive_atr(self):
        with pytest.raises(ValueError):
            analyze_position_recovery(_position(95.0), 0.0)


class TestRecoveryAdvisor:

    def test_uses_hourly_atr(self):
        provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=50)})
        strategies = RecoveryAdvisor(provider).analyze(_position(95.0))

        assert provider.requests == [('BTCUSDT', '1h', 50)]
        adjustment = _by_type(strategies)[RecoveryStrategyType.TP_SL_ADJUSTMENT]
        assert adjustment.params['atr_used'] == 1.5

    def test_fetch_error_falls_back_to_price_atr(self):
        strategies = _by_type(RecoveryAdvisor(FakeProvider()).analyze(_position(95.0)))

        assert strategies[RecoveryStrategyType.TP_SL_ADJUSTMENT].params['atr_used'] == 0.475
        assert strategies[RecoveryStrategyType.DCA].params['additional_entry_price'] == 94.2875

    def test_profitable_position_is_not_fetched(self):
        provider = FakeProvider()
        assert RecoveryAdvisor(provider).analyze(_position(101.0)) == []
        assert provider.requests == []
