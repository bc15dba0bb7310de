# -*- coding: utf-8 -*-
"""
Trade parameter generator.

Scans the candidate symbols of a modality, keeps the one with the strongest
technical setup and derives entry, three take-profit levels and a stop-loss
from its market structure (fair value gaps, swings, order blocks, swept
liquidity), falling back to ATR-based levels where structure is missing.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd

from smctrader.exceptions import NoValidCandidateError
from smctrader.live.provider import CandleProvider, MARKET_DATA_ERRORS
from smctrader.models import (
    Direction, ManipulationSignal, Modality, TechnicalIndicators, TradeCandidate, Trend,
)
from smctrader.runtime import Clock, RandomSource, SystemClock, SystemRandomSource
from smctrader.signals.candles import prepare_candles
from smctrader.signals.indicators import compute_technical_indicators
from smctrader.signals.manipulation import detect_manipulation
from smctrader.signals.structure import detect_bos, detect_swing_points, swings_of_kind
from smctrader.signals.zones import (
    SL_ATR_FALLBACK, detect_fvgs, detect_order_blocks, find_nearest_open_fvg,
    find_nearest_unmitigated_ob, find_swept_liquidity_zone,
)
from smctrader.trading.config import MODALITY_CONFIG, ModalityConfig


logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Constants
# ============================================================================

MIN_CANDLES = 20
DEFAULT_INVESTMENT = 1000.0
ATR_FALLBACK_PCT = 0.005  # ATR substitute as a fraction of entry when ATR is 0

FAKEOUT_LEVERAGE_FACTOR = 0.6  # Leverage cut by 40% under an active fakeout

# Structural target search radius, in ATR
TP1_FVG_MAX_ATR = 3.0
TP2_SWING_MAX_ATR = 6.0
TP3_OB_MAX_ATR = 12.0
TP2_SWING_CLEARANCE = 0.001  # Swing must clear TP1 by 0.1%

# ATR added to the percentage fallbacks
TP_FALLBACK_ATR = (0.5, 1.0, 1.5)

MIN_RISK_REWARD = 2.0
RR_BUFFER = 1.001  # Keeps TP1 strictly past 2R after float rounding
ORDERING_STEP_ATR = 1.0
TP_CAP_ATR = (3.0, 5.0, 8.0)

MODALITY_SUMMARY = {
    Modality.SCALPING: 'Short-term scalp opportunity detected on 5-minute chart.',
    Modality.DAY_TRADING: 'Intraday setup identified on 1-hour timeframe.',
    Modality.SWING_TRADING: 'Multi-day swing setup confirmed on 4-hour chart.',
    Modality.TREND_FOLLOWING: 'Strong trend continuation signal on daily chart.',
}


def reduce_leverage_for_fakeout(leverage: int) -> int:
    """Leverage after the fakeout cut (floor, at least 1x)."""
    return max(1, int(leverage * FAKEOUT_LEVERAGE_FACTOR))


@dataclass
class TradeLevels:
    """Targets and stop for one trade, with where each came from."""
    tp1: float
    tp2: float
    tp3: float
    stop_loss: float
    tp1_source: str = 'ATR fallback'
    tp2_source: str = 'ATR fallback'
    tp3_source: str = 'ATR fallback'
    sl_source: str = 'ATR fallback'


# ============================================================================
# Level construction
# ============================================================================

def structural_targets(candles: pd.DataFrame, swings: pd.DataFrame, order_blocks: pd.DataFrame,
                       fvgs: pd.DataFrame, direction: Direction, entry: float, atr: float,
                       config: ModalityConfig) -> TradeLevels:
    """
    Raw TP1-TP3 and SL before risk, ordering and cap enforcement.

    TP1 is the nearest open gap of the trade bias within 3 ATR, TP2 the
    nearest swing clearing TP1 by 0.1% within 6 ATR, TP3 the nearest
    unmitigated opposing order block beyond TP2 within 12 ATR, else the
    nearest opposing open gap beyond TP2. The stop sits behind swept
    liquidity when that lands on the protective side. Each missing level
    keeps its percentage-plus-ATR fallback.
    """
    sign = direction.sign
    long_side = direction is Direction.LONG
    pct1, pct2, pct3 = config.tp_pct
    atr1, atr2, atr3 = TP_FALLBACK_ATR

    levels = TradeLevels(
        tp1=entry + sign * (entry * pct1 + atr * atr1),
        tp2=entry + sign * (entry * pct2 + atr * atr2),
        tp3=entry + sign * (entry * pct3 + atr * atr3),
        stop_loss=entry - sign * atr * SL_ATR_FALLBACK,
    )

    # TP1: open gap in the trade direction
    gap = find_nearest_open_fvg(fvgs, entry, direction.bias)
    if gap is not None and abs(gap['midpoint'] - entry) <= TP1_FVG_MAX_ATR * atr:
        levels.tp1 = float(gap['midpoint'])
        levels.tp1_source = 'FVG midpoint'

    # TP2: next swing beyond TP1
    kind = 'high' if long_side else 'low'
    swing_prices = swings_of_kind(swings, kind)['price'].astype(float) if len(swings) else pd.Series(dtype=float)
    if long_side:
        beyond = swing_prices[(swing_prices > levels.tp1 * (1 + TP2_SWING_CLEARANCE))
                              & (swing_prices - entry <= TP2_SWING_MAX_ATR * atr)]
        swing_target = beyond.min() if len(beyond) else None
    else:
        beyond = swing_prices[(swing_prices < levels.tp1 * (1 - TP2_SWING_CLEARANCE))
                              & (entry - swing_prices <= TP2_SWING_MAX_ATR * atr)]
        swing_target = beyond.max() if len(beyond) else None
    if swing_target is not None:
        levels.tp2 = float(swing_target)
        levels.tp2_source = f"swing {kind}"

    # TP3: opposing order block, then opposing gap, beyond TP2
    side = 'above' if long_side else 'below'
    opposing = direction.bias.opposite
    block = find_nearest_unmitigated_ob(order_blocks, levels.tp2, opposing, side=side)
    if block is not None and abs(block['midpoint'] - entry) <= TP3_OB_MAX_ATR * atr:
        levels.tp3 = float(block['midpoint'])
        levels.tp3_source = f"{opposing.value} order block"
    else:
        opposing_gap = find_nearest_open_fvg(fvgs, levels.tp2, opposing, side=side)
        if opposing_gap is not None:
            levels.tp3 = float(opposing_gap['midpoint'])
            levels.tp3_source = f"{opposing.value} FVG"

    # SL behind swept liquidity, forced to the protective side
    stop, label = find_swept_liquidity_zone(candles, swings, direction, entry, atr)
    if sign * (entry - stop) > 0:
        levels.stop_loss = float(stop)
        levels.sl_source = label
    else:
        logger.debug(f"Liquidity stop {stop:.4f} on the wrong side of entry {entry:.4f}, using ATR stop")

    return levels


def enforce_trade_constraints(levels: TradeLevels, direction: Direction, entry: float,
                              atr: float) -> TradeLevels:
    """
    Apply the post-processing rules in order.

    1. Widen TP1 to at least 2R on the trade side.
    2. Keep TP1 < TP2 < TP3 strictly ordered (Long; mirrored for Short) by
       pushing TP2/TP3 one ATR beyond their predecessor.
    3. Cap the TP distances at 3/5/8 ATR, scaled by
       ``max(1, required TP1 distance / 3 ATR)`` so the cap never undoes
       steps 1 and 2.
    """
    sign = direction.sign
    risk = abs(entry - levels.stop_loss)
    required = risk * MIN_RISK_REWARD * RR_BUFFER

    if sign * (levels.tp1 - entry) < risk * MIN_RISK_REWARD:
        levels.tp1 = entry + sign * required
        levels.tp1_source = f"{levels.tp1_source}, widened to 2R"

    if sign * (levels.tp2 - levels.tp1) <= 0:
        levels.tp2 = levels.tp1 + sign * atr * ORDERING_STEP_ATR
    if sign * (levels.tp3 - levels.tp2) <= 0:
        levels.tp3 = levels.tp2 + sign * atr * ORDERING_STEP_ATR

    factor = max(1.0, required / (TP_CAP_ATR[0] * atr))
    capped = []
    for target, cap_atr in zip((levels.tp1, levels.tp2, levels.tp3), TP_CAP_ATR):
        distance = min(abs(target - entry), cap_atr * atr * factor)
        capped.append(entry + sign * distance)
    levels.tp1, levels.tp2, levels.tp3 = capped

    return levels


def build_trade_levels(candles: pd.DataFrame, direction: Direction, entry: float,
                       atr: float, config: ModalityConfig,
                       swings: Optional[pd.DataFrame] = None) -> TradeLevels:
    """
    Entry-relative targets and stop for ``direction``.

    Parameters
    ----------
    candles : pd.DataFrame
        Prepared candle window of the selected symbol.
    direction : Direction
        Trade side.
    entry : float
        Entry price.
    atr : float
        ATR of the window; must be positive.
    config : ModalityConfig
        Supplies the percentage fallbacks.
    swings : pd.DataFrame, optional
        Precomputed swing points.

    Returns
    -------
    TradeLevels
        Satisfies the 2R, ordering and cap constraints.
    """
    if atr <= 0:
        raise ValueError(f"atr must be > 0, got {atr}")

    if swings is None:
        swings = detect_swing_points(candles)
    bos = detect_bos(candles, swings)
    order_blocks = detect_order_blocks(candles, bos)
    fvgs = detect_fvgs(candles)

    levels = structural_targets(candles, swings, order_blocks, fvgs, direction, entry, atr, config)
    return enforce_trade_constraints(levels, direction, entry, atr)


def build_reasoning(symbol: str, direction: Direction, indicators: TechnicalIndicators,
                    modality: Modality, levels: TradeLevels, entry: float,
                    config: ModalityConfig, manipulation: ManipulationSignal,
                    leverage: int) -> str:
    """Human-readable rationale for a generated trade."""
    ema_relation = ('EMA9 above EMA21 confirms upward momentum' if indicators.ema9 > indicators.ema21
                    else 'EMA9 below EMA21 signals downward pressure')
    percent_stop = entry - direction.sign * entry * config.sl_pct

    text = (f"{MODALITY_SUMMARY[modality]} Selected {symbol} {direction.value} based on "
            f"{indicators.trend.value} market structure with RSI at {indicators.rsi:.0f}. "
            f"{ema_relation} with {abs(indicators.momentum):.2f}% momentum. "
            f"TP1 from {levels.tp1_source}, TP2 from {levels.tp2_source}, "
            f"TP3 from {levels.tp3_source}. SL at {levels.sl_source} "
            f"({config.sl_pct * 100:.1f}% stop would sit at {percent_stop:.4f}).")

    if manipulation.is_fakeout:
        text = f"CAUTION: {manipulation.description} Leverage reduced to {leverage}x. {text}"
    return text


# ============================================================================
# Generator
# ============================================================================

class TradeGenerator:
    """Generates one TradeCandidate per call for a given modality."""

    def __init__(self, provider: CandleProvider,
                 random_source: Optional[RandomSource] = None,
                 clock: Optional[Clock] = None,
                 modalities: Optional[Dict[Modality, ModalityConfig]] = None,
                 default_investment: float = DEFAULT_INVESTMENT):
        """
        Parameters
        ----------
        provider : CandleProvider
            Source of candles and current prices.
        random_source : RandomSource, optional
            Leverage draws; defaults to an unseeded SystemRandomSource.
        clock : Clock, optional
            Timestamps and trade ids; defaults to SystemClock.
        modalities : dict, optional
            Modality configuration table; defaults to MODALITY_CONFIG.
        default_investment : float, default 1000
            Stake used when none (or a non-positive one) is given.
        """
        self.provider = provider
        self.random_source = random_source or SystemRandomSource()
        self.clock = clock or SystemClock()
        self.modalities = modalities or MODALITY_CONFIG
        self.default_investment = default_investment

    def _load_candidates(self, modality: Modality,
                         config: ModalityConfig) -> List[Tuple[str, pd.DataFrame, TechnicalIndicators]]:
        results = []
        for symbol in config.candidates:
            try:
                candles = prepare_candles(self.provider.get_candles(symbol, config.interval, config.limit))
            except MARKET_DATA_ERRORS as e:
                logger.warning(f"{modality.value}: skipping {symbol}: {e}")
                continue

            if len(candles) < MIN_CANDLES:
                logger.warning(f"{modality.value}: skipping {symbol}: only {len(candles)} candles")
                continue

            results.append((symbol, candles, compute_technical_indicators(candles)))
        return results

    def _entry_price(self, symbol: str, fallback: float) -> float:
        try:
            price = float(self.provider.get_current_price(symbol))
        except MARKET_DATA_ERRORS as e:
            logger.warning(f"Price lookup for {symbol} failed ({e}), using last close")
            return fallback
        return price if price > 0 else fallback

    def generate(self, modality: Modality, investment_amount: Optional[float] = None) -> TradeCandidate:
        """
        Generate a trade for ``modality``.

        Raises
        ------
        NoValidCandidateError
            If no candidate symbol produced a usable candle window.
        """
        modality = Modality(modality)
        config = self.modalities[modality]

        results = self._load_candidates(modality, config)
        if not results:
            raise NoValidCandidateError(f"No valid candidates found for {modality.value}")

        # max() keeps the first of equal strengths
        symbol, candles, indicators = max(results, key=lambda r: r[2].signal_strength)
        entry = self._entry_price(symbol, indicators.current_price)

        direction = Direction.SHORT if indicators.trend is Trend.BEARISH else Direction.LONG
        leverage = self.random_source.next_in_range(config.leverage_min, config.leverage_max)

        atr = indicators.atr if indicators.atr > 0 else entry * ATR_FALLBACK_PCT
        swings = detect_swing_points(candles)
        manipulation = detect_manipulation(candles, swings, entry)
        if manipulation.is_fakeout:
            leverage = reduce_leverage_for_fakeout(leverage)
            logger.warning(f"{symbol}: {manipulation.description}")

        levels = build_trade_levels(candles, direction, entry, atr, config, swings=swings)
        reasoning = build_reasoning(symbol, direction, indicators, modality, levels, entry,
                                    config, manipulation, leverage)

        if investment_amount is None or investment_amount <= 0:
            investment_amount = self.default_investment

        now = self.clock.now()
        trade = TradeCandidate(
            id=f"{modality.value}-{int(now.timestamp() * 1000)}",
            symbol=symbol,
            direction=direction,
            entry_price=entry,
            leverage=leverage,
            investment_amount=float(investment_amount),
            tp1=levels.tp1,
            tp2=levels.tp2,
            tp3=levels.tp3,
            stop_loss=levels.stop_loss,
            reasoning=reasoning,
            modality=modality,
            timestamp=now,
            utc_date=now.strftime('%Y-%m-%d'),
        )

        logger.info(f"{modality.value}: {symbol} {direction.value} @ {entry:.4f} x{leverage} "
                    f"TP {levels.tp1:.4f}/{levels.tp2:.4f}/{levels.tp3:.4f} SL {levels.stop_loss:.4f}")
        return trade
