"""
Tests for the analysis engine wiring.
"""

import pytest

from smctrader.config import Config
from smctrader.engine import AnalysisEngine
from smctrader.exceptions import NoValidCandidateError
from smctrader.models import (
    Direction, Modality, OpenPosition, PositionSnapshot, RecoveryStrategyType, ScoringPolicy,
    TrendDirection,
)
from smctrader.signals.reversal import NO_SIGNALS_REASON

from conftest import FakeProvider, FixedRandomSource, trending_candles


@pytest.fixture
def config(monkeypatch):
    for name in ('SMC_SCORING_POLICY', 'SMC_INVESTMENT_AMOUNT', 'SMC_RANDOM_SEED'):
        monkeypatch.delenv(name, raising=False)
    return Config(investment_amount=500.0)


def test_daily_trades_cover_every_modality(config, fixed_clock):
    provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=100)})
    engine = AnalysisEngine(provider, config=config, random_source=FixedRandomSource(4),
                            clock=fixed_clock)
    trades = engine.generate_daily_trades()

    assert set(trades) == set(Modality)
    for modality, trade in trades.items():
        assert trade.modality is modality
        assert trade.symbol == 'BTCUSDT'
        assert trade.investment_amount == 500.0
    # leverage clamped into each band
    assert trades[Modality.TREND_FOLLOWING].leverage == 3
    assert trades[Modality.SCALPING].leverage == 5


def test_daily_trades_fail_when_nothing_loads(config, fixed_clock):
    engine = AnalysisEngine(FakeProvider(), config=config, clock=fixed_clock)
    with pytest.raises(NoValidCandidateError):
        engine.generate_daily_trades()


def test_seeded_leverage_is_reproducible(monkeypatch, fixed_clock):
    monkeypatch.delenv('SMC_SCORING_POLICY', raising=False)
    provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=100)})
    first = AnalysisEngine(provider, config=Config(random_seed=11), clock=fixed_clock)
    second = AnalysisEngine(provider, config=Config(random_seed=11), clock=fixed_clock)

    assert first.generate_trade(Modality.SCALPING).leverage == \
        second.generate_trade(Modality.SCALPING).leverage


def test_check_reversal_uses_configured_policy(config):
    provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=60)})
    engine = AnalysisEngine(provider, config=config)
    position = OpenPosition(symbol='BTCUSDT', direction=Direction.LONG, entry_price=110.0,
                            effective_stop_loss=105.0, current_price=129.5,
                            modality=Modality.SWING_TRADING)

    assert engine.scoring_policy is ScoringPolicy.SIGNAL_COUNT
    signal = engine.check_reversal(position)
    assert signal.reason == NO_SIGNALS_REASON
    assert provider.requests == [('BTCUSDT', '4h', 60)]


def test_predict_trend_uses_engine_clock(config, fixed_clock):
    provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=100)})
    engine = AnalysisEngine(provider, config=config, clock=fixed_clock)
    predictions = engine.predict_trend('BTCUSDT')

    assert predictions['short_term'].direction is TrendDirection.UP
    assert predictions['medium_term'].timestamp == fixed_clock.now()


def test_plan_position_defaults_to_configured_stake(config):
    provider = FakeProvider(candles={'BTCUSDT': trending_candles(n=10)})
    engine = AnalysisEngine(provider, config=config)
    plan = engine.plan_position('BTCUSDT', Direction.LONG, 100.0, 10)

    assert plan.investment_amount == 500.0
    assert plan.take_profit_levels[0].profit_usd == pytest.approx(75.0)
    assert provider.requests == [('BTCUSDT', '1h', 100)]


def test_recovery_strategies(config):
    engine = AnalysisEngine(FakeProvider(candles={'BTCUSDT': trending_candles(n=50)}),
                            config=config)
    position = PositionSnapshot(symbol='BTCUSDT', direction=Direction.LONG, entry_price=100.0,
                                current_price=95.0, leverage=5, investment_amount=1000.0,
                                stop_loss=90.0)

    strategies = engine.recovery_strategies(position)
    assert strategies[0].strategy_type is RecoveryStrategyType.TP_SL_ADJUSTMENT
    assert strategies[-1].strategy_type is RecoveryStrategyType.DCA
