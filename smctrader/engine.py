# -*- coding: utf-8 -*-
"""
Analysis engine.

Wires the trade generator, reversal detector and the position tools (trend
prediction, TP/SL planning, recovery) to a candle provider, random source
and clock taken from a Config.
"""

import logging
from typing import Dict, List, Optional

from smctrader.config import Config
from smctrader.exceptions import NoValidCandidateError
from smctrader.live.provider import CandleProvider
from smctrader.models import (
    Direction, Modality, OpenPosition, PositionPlan, PositionSnapshot, RecoveryStrategy,
    ReversalSignal, ScoringPolicy, TradeCandidate, TrendPrediction,
)
from smctrader.runtime import Clock, RandomSource, SystemClock, SystemRandomSource
from smctrader.signals.reversal import ReversalDetector
from smctrader.trading.prediction import TrendPredictor
from smctrader.trading.recommendations import PositionPlanner
from smctrader.trading.recovery import RecoveryAdvisor
from smctrader.trading.trade_generator import TradeGenerator


logger = logging.getLogger('smctrader')


class AnalysisEngine:
    """Entry point for trade generation, reversal checks and the position tools."""

    def __init__(self, provider: CandleProvider, config: Optional[Config] = None,
                 random_source: Optional[RandomSource] = None,
                 clock: Optional[Clock] = None,
                 setup_logging: bool = False):
        """
        Parameters
        ----------
        provider : CandleProvider
            Market data source.
        config : Config, optional
            Defaults to ``Config()`` (environment and .env overrides applied).
        random_source : RandomSource, optional
            Defaults to a SystemRandomSource seeded with ``config.random_seed``.
        clock : Clock, optional
            Defaults to SystemClock.
        setup_logging : bool, default False
            Install console (and optional file) handlers on the package logger.
        """
        self.config = config or Config()
        if setup_logging:
            self._setup_logging()

        self.provider = provider
        self.clock = clock or SystemClock()
        self.scoring_policy = ScoringPolicy(self.config.scoring_policy)
        self.generator = TradeGenerator(
            provider=provider,
            random_source=random_source or SystemRandomSource(self.config.random_seed),
            clock=self.clock,
            default_investment=self.config.investment_amount,
        )
        self.reversal_detector = ReversalDetector(provider)
        self.trend_predictor = TrendPredictor(provider, clock=self.clock)
        self.position_planner = PositionPlanner(provider)
        self.recovery_advisor = RecoveryAdvisor(provider)

    def _setup_logging(self):
        """Setup logging configuration."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logger.setLevel(log_level)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        handlers = [logging.StreamHandler()]
        if self.config.log_file:
            handlers.append(logging.FileHandler(self.config.log_file))

        for handler in handlers:
            handler.setLevel(log_level)
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    def generate_trade(self, modality: Modality,
                       investment_amount: Optional[float] = None) -> TradeCandidate:
        return self.generator.generate(modality, investment_amount)

    def generate_daily_trades(self, investment_amount: Optional[float] = None) -> Dict[Modality, TradeCandidate]:
        """
        One trade per modality.

        Modalities without a valid candidate are logged and left out.

        Raises
        ------
        NoValidCandidateError
            If every modality failed.
        """
        trades = {}
        for modality in Modality:
            try:
                trades[modality] = self.generate_trade(modality, investment_amount)
            except NoValidCandidateError as e:
                logger.warning(f"Skipping {modality.value}: {e}")

        if not trades:
            raise NoValidCandidateError("No modality produced a trade")

        logger.info(f"Generated {len(trades)}/{len(Modality)} daily trades")
        return trades

    def check_reversal(self, position: OpenPosition,
                       policy: Optional[ScoringPolicy] = None) -> ReversalSignal:
        return self.reversal_detector.check(position, policy or self.scoring_policy)

    def predict_trend(self, symbol: str) -> Dict[str, TrendPrediction]:
        return self.trend_predictor.predict(symbol)

    def plan_position(self, symbol: str, direction: Direction, entry: float, leverage: int,
                      investment_amount: Optional[float] = None) -> PositionPlan:
        """Take-profit levels and stop-loss for a position about to be opened."""
        if investment_amount is None or investment_amount <= 0:
            investment_amount = self.config.investment_amount
        return self.position_planner.plan(symbol, direction, entry, investment_amount, leverage)

    def recovery_strategies(self, position: PositionSnapshot) -> List[RecoveryStrategy]:
        return self.recovery_advisor.analyze(position)
