# -*- coding: utf-8 -*-
"""
Command-line entry point.

Generates the daily trade set (one trade per modality), checks an open
position for reversal signals, predicts the trend of a symbol, recommends
targets and stop for a position, or lists recovery strategies for a losing
one, using Binance public market data.
"""

import sys
import json
import argparse

from smctrader.config import Config
from smctrader.engine import AnalysisEngine
from smctrader.exceptions import NoValidCandidateError
from smctrader.live.binance_provider import BinanceCandleProvider
from smctrader.models import Direction, Modality, OpenPosition, PositionSnapshot


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Smart Money Concepts market analysis')
    parser.add_argument('--testnet', action='store_true', default=None,
                        help='Use Binance Testnet (default: from BINANCE_TESTNET env var)')
    parser.add_argument('--log-level', type=str, default=None,
                        help='Logging level (default: from SMC_LOG_LEVEL env var or INFO)')
    parser.add_argument('--policy', choices=['signal_count', 'fixed_weight'], default=None,
                        help='Reversal scoring policy (default: from SMC_SCORING_POLICY env var)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    trades = subparsers.add_parser('trades', help='Generate trades')
    trades.add_argument('--modality', choices=[m.value for m in Modality], default=None,
                        help='Single modality (default: all four)')
    trades.add_argument('--investment', type=float, default=None,
                        help='Investment per trade in USDT (default: from SMC_INVESTMENT_AMOUNT or 1000)')

    reversal = subparsers.add_parser('reversal', help='Check an open position for reversal')
    reversal.add_argument('--symbol', type=str, required=True, help='Trading pair, e.g. BTCUSDT')
    reversal.add_argument('--direction', choices=[d.value for d in Direction], required=True)
    reversal.add_argument('--entry', type=float, required=True, help='Entry price')
    reversal.add_argument('--stop-loss', type=float, required=True, help='Current effective stop-loss')
    reversal.add_argument('--modality', choices=[m.value for m in Modality], required=True)
    reversal.add_argument('--tp1', type=float, default=None, help='TP1 price')
    reversal.add_argument('--tp1-executed', action='store_true', help='TP1 already taken')

    predict = subparsers.add_parser('predict', help='Short and medium term trend prediction')
    predict.add_argument('--symbol', type=str, required=True, help='Trading pair, e.g. BTCUSDT')

    plan = subparsers.add_parser('plan', help='Take-profit and stop-loss for a position')
    plan.add_argument('--symbol', type=str, required=True, help='Trading pair, e.g. BTCUSDT')
    plan.add_argument('--direction', choices=[d.value for d in Direction], required=True)
    plan.add_argument('--entry', type=float, required=True, help='Entry price')
    plan.add_argument('--leverage', type=int, required=True, help='Position leverage')
    plan.add_argument('--investment', type=float, default=None,
                      help='Margin in USDT (default: from SMC_INVESTMENT_AMOUNT or 1000)')

    recover = subparsers.add_parser('recover', help='Recovery strategies for a losing position')
    recover.add_argument('--symbol', type=str, required=True, help='Trading pair, e.g. BTCUSDT')
    recover.add_argument('--direction', choices=[d.value for d in Direction], required=True)
    recover.add_argument('--entry', type=float, required=True, help='Entry price')
    recover.add_argument('--leverage', type=int, required=True, help='Position leverage')
    recover.add_argument('--investment', type=float, required=True, help='Margin in USDT')
    recover.add_argument('--stop-loss', type=float, required=True, help='Current stop-loss')

    return parser


def run_trades(engine, args):
    try:
        if args.modality:
            trades = [engine.generate_trade(Modality(args.modality), args.investment)]
        else:
            trades = list(engine.generate_daily_trades(args.investment).values())
    except NoValidCandidateError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(json.dumps([trade.to_dict() for trade in trades], indent=2))


def run_reversal(engine, provider, args):
    position = OpenPosition(
        symbol=args.symbol,
        direction=Direction(args.direction),
        entry_price=args.entry,
        effective_stop_loss=args.stop_loss,
        current_price=provider.get_current_price(args.symbol),
        modality=Modality(args.modality),
        tp1_executed=args.tp1_executed,
        tp1=args.tp1,
    )
    signal = engine.check_reversal(position)

    print("=" * 80)
    print(f"REVERSAL CHECK: {position.symbol} {position.direction.value} ({position.modality.value})")
    print("=" * 80)
    print(f"Reversal detected: {signal.detected_reversal}")
    print(f"Confidence: {signal.confidence}%")
    print(f"Action: {signal.recommended_action.value}")
    if signal.suggested_new_sl is not None:
        print(f"Suggested SL: {signal.suggested_new_sl:.4f}")
    print(f"Reason: {signal.reason}")
    print("=" * 80)


def run_predict(engine, args):
    predictions = engine.predict_trend(args.symbol)

    print("=" * 80)
    print(f"TREND PREDICTION: {args.symbol}")
    print("=" * 80)
    for prediction in predictions.values():
        print(f"{prediction.time_horizon} ({prediction.time_label}): "
              f"{prediction.direction.value}, {prediction.confidence}% confidence")
    print("=" * 80)


def run_plan(engine, args):
    plan = engine.plan_position(args.symbol, Direction(args.direction), args.entry,
                                args.leverage, args.investment)

    print("=" * 80)
    print(f"POSITION PLAN: {plan.symbol} {plan.direction.value} @ {plan.entry_price:.4f} "
          f"x{plan.leverage} (${plan.investment_amount:.2f})")
    print("=" * 80)
    for tp in plan.take_profit_levels:
        print(f"TP{tp.level}: {tp.price:.4f}  +${tp.profit_usd:.2f} ({tp.profit_percent:.2f}%)")
        print(f"     {tp.reasoning}")
    stop = plan.stop_loss
    print(f"SL:  {stop.price:.4f}  -${stop.loss_usd:.2f} ({stop.loss_percent:.2f}%)")
    print(f"     {stop.reasoning}")
    print(stop.partial_taking_strategy)
    print("=" * 80)


def run_recover(engine, provider, args):
    position = PositionSnapshot(
        symbol=args.symbol,
        direction=Direction(args.direction),
        entry_price=args.entry,
        current_price=provider.get_current_price(args.symbol),
        leverage=args.leverage,
        investment_amount=args.investment,
        stop_loss=args.stop_loss,
    )
    strategies = engine.recovery_strategies(position)

    print("=" * 80)
    print(f"RECOVERY: {position.symbol} {position.direction.value} @ {position.entry_price:.4f} "
          f"(now {position.current_price:.4f})")
    print("=" * 80)
    if not strategies:
        print("Position is not losing; no recovery needed.")
    for strategy in strategies:
        print(f"[{strategy.risk_level.value.upper()}] {strategy.title} "
              f"(~{strategy.estimated_recovery_pct}% recovery)")
        for step in strategy.steps:
            print(f"  - {step}")
    print("=" * 80)


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    config = Config()
    if args.testnet is not None:
        config.testnet = args.testnet
    if args.log_level:
        config.log_level = args.log_level
    if args.policy:
        config.scoring_policy = args.policy

    provider = BinanceCandleProvider(config=config)
    engine = AnalysisEngine(provider, config=config, setup_logging=True)

    if args.command == 'trades':
        run_trades(engine, args)
    elif args.command == 'reversal':
        run_reversal(engine, provider, args)
    elif args.command == 'predict':
        run_predict(engine, args)
    elif args.command == 'plan':
        run_plan(engine, args)
    else:
        run_recover(engine, provider, args)


if __name__ == "__main__":
    main()
