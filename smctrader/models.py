# -*- coding: utf-8 -*-
"""
Shared enumerations and output records.

Collections produced by the detectors (swings, BOS, order blocks, ...) are
DataFrames; the records handed to callers are the dataclasses below.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Bias(str, Enum):
    """Market-structure direction of a signal or zone."""
    BULLISH = 'bullish'
    BEARISH = 'bearish'

    @property
    def opposite(self) -> 'Bias':
        return Bias.BEARISH if self is Bias.BULLISH else Bias.BULLISH


class Direction(str, Enum):
    """Side of a trade or open position."""
    LONG = 'Long'
    SHORT = 'Short'

    @property
    def bias(self) -> Bias:
        """Structure direction that favours this side."""
        return Bias.BULLISH if self is Direction.LONG else Bias.BEARISH

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1

    @property
    def opposite(self) -> 'Direction':
        return Direction.SHORT if self is Direction.LONG else Direction.LONG


class Trend(str, Enum):
    BULLISH = 'bullish'
    BEARISH = 'bearish'
    NEUTRAL = 'neutral'


class Modality(str, Enum):
    """Trading style; selects timeframe, leverage band and targets."""
    SCALPING = 'Scalping'
    DAY_TRADING = 'DayTrading'
    SWING_TRADING = 'SwingTrading'
    TREND_FOLLOWING = 'TrendFollowing'


class ManipulationKind(str, Enum):
    STOP_HUNT = 'stop_hunt'
    FAKEOUT = 'fakeout'
    NONE = 'none'


class WyckoffPhase(str, Enum):
    ACCUMULATION = 'accumulation'
    DISTRIBUTION = 'distribution'
    MARKUP = 'markup'
    MARKDOWN = 'markdown'
    UNKNOWN = 'unknown'


class InstitutionalCycle(str, Enum):
    ACCUMULATION = 'accumulation'
    MANIPULATION = 'manipulation'
    DISTRIBUTION = 'distribution'
    UNKNOWN = 'unknown'


class ReversalAction(str, Enum):
    NONE = 'none'
    TIGHTEN_SL = 'tighten_sl'
    CLOSE = 'close'
    REVERSE = 'reverse'


class ScoringPolicy(str, Enum):
    """How reversal evidence is turned into a confidence score."""
    SIGNAL_COUNT = 'signal_count'
    FIXED_WEIGHT = 'fixed_weight'


class TradeStatus(str, Enum):
    OPEN = 'Open'
    TP_HIT = 'TPHit'
    SL_HIT = 'SLHit'


class TrendDirection(str, Enum):
    UP = 'up'
    DOWN = 'down'
    SIDEWAYS = 'sideways'


class RiskLevel(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class RecoveryStrategyType(str, Enum):
    HEDGE = 'hedge'
    DCA = 'dca'
    PARTIAL_CLOSE = 'partial_close'
    TP_SL_ADJUSTMENT = 'tp_sl_adjustment'


@dataclass(frozen=True)
class ManipulationSignal:
    detected: bool
    kind: ManipulationKind
    price: float
    description: str

    @property
    def is_fakeout(self) -> bool:
        return self.detected and self.kind is ManipulationKind.FAKEOUT


@dataclass(frozen=True)
class TechnicalIndicators:
    rsi: float
    atr: float
    momentum: float
    trend: Trend
    ema9: float
    ema21: float
    current_price: float
    signal_strength: float
    volatility: float = 0.0


@dataclass(frozen=True)
class SentimentFactor:
    indicator: str
    value: str
    impact: str  # 'positive', 'negative' or 'neutral'


@dataclass
class SentimentAnalysis:
    score: Trend
    strength: int
    factors: List[SentimentFactor]
    timestamp: datetime


@dataclass
class TradeCandidate:
    """A proposed trade for one modality."""
    id: str
    symbol: str
    direction: Direction
    entry_price: float
    leverage: int
    investment_amount: float
    tp1: float
    tp2: float
    tp3: float
    stop_loss: float
    reasoning: str
    modality: Modality
    timestamp: datetime
    utc_date: str

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict for persistence layers (enums as values, time as ISO)."""
        data = asdict(self)
        data['direction'] = self.direction.value
        data['modality'] = self.modality.value
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass
class OpenPosition:
    """Position state handed to the reversal detector."""
    symbol: str
    direction: Direction
    entry_price: float
    effective_stop_loss: float
    current_price: float
    modality: Modality
    tp1_executed: bool = False
    tp1: Optional[float] = None

    def reached_tp1(self) -> bool:
        if self.tp1_executed:
            return True
        if self.tp1 is None:
            return False
        if self.direction is Direction.LONG:
            return self.current_price >= self.tp1
        return self.current_price <= self.tp1


@dataclass
class ReversalSignal:
    detected_reversal: bool
    confidence: int
    reason: str
    recommended_action: ReversalAction = ReversalAction.NONE
    suggested_new_sl: Optional[float] = None
    signals: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TrendPrediction:
    direction: TrendDirection
    confidence: int
    time_horizon: str  # 'short-term' or 'medium-term'
    time_label: str
    timestamp: datetime


@dataclass(frozen=True)
class TakeProfitLevel:
    """One take-profit target of a user-entered position."""
    level: int
    price: float
    profit_usd: float
    profit_percent: float  # return on margin, leverage included
    reasoning: str


@dataclass(frozen=True)
class StopLossRecommendation:
    price: float
    loss_usd: float
    loss_percent: float
    capital_risk_percent: float
    reasoning: str
    partial_taking_strategy: str


@dataclass
class PositionPlan:
    """Targets and stop recommended for a position the user is about to open."""
    symbol: str
    direction: Direction
    entry_price: float
    leverage: int
    investment_amount: float
    take_profit_levels: List[TakeProfitLevel]
    stop_loss: StopLossRecommendation


@dataclass(frozen=True)
class PositionSnapshot:
    """Leveraged position state used by the recovery planner."""
    symbol: str
    direction: Direction
    entry_price: float
    current_price: float
    leverage: float
    investment_amount: float
    stop_loss: float
    take_profit: Optional[float] = None
    total_exposure: Optional[float] = None


@dataclass
class RecoveryStrategy:
    strategy_type: RecoveryStrategyType
    title: str
    description: str
    risk_level: RiskLevel
    estimated_recovery_pct: int
    steps: List[str]
    params: Dict[str, Any]
