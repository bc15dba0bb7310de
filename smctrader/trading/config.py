# -*- coding: utf-8 -*-
"""
Trading modality configuration.

Defines the timeframe, leverage band and target percentages for each
modality, plus the candidate symbols scanned when generating a trade.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from smctrader.models import Modality
from smctrader.signals.reversal import REVERSAL_TIMEFRAMES


@dataclass(frozen=True)
class ModalityConfig:
    """Configuration for one trading modality."""

    # Candle window
    interval: str = "1h"  # Binance kline interval
    limit: int = 100  # Candles fetched per candidate

    # Leverage band (inclusive)
    leverage_min: int = 1
    leverage_max: int = 3

    # Fallback targets as a fraction of entry (0.01 = 1%)
    tp_pct: Tuple[float, float, float] = (0.01, 0.02, 0.03)
    sl_pct: float = 0.01

    # Reversal monitoring window
    reversal_interval: str = "1h"
    reversal_limit: int = 60

    candidates: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            'interval': self.interval,
            'limit': self.limit,
            'leverage_min': self.leverage_min,
            'leverage_max': self.leverage_max,
            'tp_pct': list(self.tp_pct),
            'sl_pct': self.sl_pct,
            'reversal_interval': self.reversal_interval,
            'reversal_limit': self.reversal_limit,
            'candidates': list(self.candidates),
        }


CANDIDATE_SYMBOLS: Dict[Modality, List[str]] = {
    Modality.SCALPING: ['BTCUSDT', 'ETHUSDT', 'BNBUSDT', 'SOLUSDT', 'XRPUSDT'],
    Modality.DAY_TRADING: ['BTCUSDT', 'ETHUSDT', 'AVAXUSDT', 'DOGEUSDT', 'LINKUSDT'],
    Modality.SWING_TRADING: ['BTCUSDT', 'ETHUSDT', 'SOLUSDT', 'ADAUSDT', 'DOTUSDT'],
    Modality.TREND_FOLLOWING: ['BTCUSDT', 'ETHUSDT', 'BNBUSDT', 'SOLUSDT', 'MATICUSDT'],
}


def _modality(modality: Modality, interval: str, limit: int, leverage: Tuple[int, int],
              tp_pct: Tuple[float, float, float], sl_pct: float) -> ModalityConfig:
    reversal_interval, reversal_limit = REVERSAL_TIMEFRAMES[modality]
    return ModalityConfig(
        interval=interval,
        limit=limit,
        leverage_min=leverage[0],
        leverage_max=leverage[1],
        tp_pct=tp_pct,
        sl_pct=sl_pct,
        reversal_interval=reversal_interval,
        reversal_limit=reversal_limit,
        candidates=CANDIDATE_SYMBOLS[modality],
    )


MODALITY_CONFIG: Dict[Modality, ModalityConfig] = {
    Modality.SCALPING: _modality(Modality.SCALPING, '5m', 100, (5, 20), (0.003, 0.006, 0.01), 0.005),
    Modality.DAY_TRADING: _modality(Modality.DAY_TRADING, '1h', 100, (3, 10), (0.008, 0.015, 0.025), 0.012),
    Modality.SWING_TRADING: _modality(Modality.SWING_TRADING, '4h', 100, (2, 5), (0.02, 0.04, 0.07), 0.025),
    Modality.TREND_FOLLOWING: _modality(Modality.TREND_FOLLOWING, '1d', 60, (1, 3), (0.04, 0.08, 0.14), 0.05),
}
