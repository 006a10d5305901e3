"""
Adaptive exit target calculation for the multi-pair decision engine.

Starts from a pair's baseline target and adds four continuous terms
(volatility, spread, futures signal, temporal bias). The sum is always
clamped to the pair's [conservative, aggressive] bounds.

Also derives the categorical market assessment used for confidence
shaping, expected hold time, expected return after fees, and the
volatility-class stop loss.

Usage:
    calc = AdaptiveTargetCalculator()
    assessment = calc.assess_market_conditions(profile, opportunity.market)
    target = calc.calculate_adaptive_target(profile, assessment, opportunity.signal)
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from config.loader import get_config
from core.exchange_minimums import MarketDataUnavailableError
from shared.constants import (
    DEFAULT_AGGRESSIVE_CONFIDENCE_PENALTY,
    DEFAULT_AGGRESSIVE_CONFIDENCE_RATIO,
    DEFAULT_AGGRESSIVE_SUCCESS_DISCOUNT,
    DEFAULT_AGGRESSIVE_SUCCESS_RATIO,
    DEFAULT_CONDITION_CONFIDENCE_SHIFT,
    DEFAULT_CONFIDENCE_CEILING,
    DEFAULT_CONFIDENCE_FLOOR,
    DEFAULT_CONSERVATIVE_SUCCESS_BOOST,
    DEFAULT_CONSERVATIVE_SUCCESS_RATIO,
    DEFAULT_FAVORABLE_SCORE,
    DEFAULT_FUTURES_RANGE_WEIGHT,
    DEFAULT_HEALTH_SCORES,
    DEFAULT_HIGH_VOLATILITY_RATIO,
    DEFAULT_HIGH_VOLUME_RATIO,
    DEFAULT_LOW_VOLATILITY_RATIO,
    DEFAULT_PREDICTABILITY_BONUS,
    DEFAULT_ROUND_TRIP_FEE,
    DEFAULT_SIGNAL_CONFIDENCE,
    DEFAULT_SPREAD_ADJUSTMENT_MAX,
    DEFAULT_SPREAD_ADJUSTMENT_MIN,
    DEFAULT_SPREAD_PER_DOUBLING,
    DEFAULT_STOP_LOSS_PERCENTS,
    DEFAULT_TEMPORAL_RANGE_WEIGHT,
    DEFAULT_TIGHT_SPREAD_RATIO,
    DEFAULT_UNFAVORABLE_SCORE,
    DEFAULT_VOLATILITY_MODIFIER_BOUND,
    DEFAULT_VOLUME_THRESHOLD,
    DEFAULT_WIDE_SPREAD_RATIO,
)
from shared.types import (
    AdaptiveTarget,
    MarketAssessment,
    MarketCondition,
    MarketSnapshot,
    OpportunitySignal,
    PairProfile,
    StopLoss,
    TradeDirection,
)

_ZERO = Decimal("0")
_ONE = Decimal("1")
_LN2 = Decimal(2).ln()


def _dec(cfg: dict, key: str, default: Decimal) -> Decimal:
    return Decimal(str(cfg.get(key, default)))


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


class AdaptiveTargetCalculator:
    """Pure per-pair target, hold time, return and confidence computation."""

    def __init__(self) -> None:
        engine_cfg = get_config().get_engine_config()
        market_cfg = engine_cfg.get("market_assessment", {})
        target_cfg = engine_cfg.get("adaptive_target", {})

        # Market assessment thresholds
        self._high_vol_ratio = _dec(market_cfg, "high_volatility_ratio", DEFAULT_HIGH_VOLATILITY_RATIO)
        self._low_vol_ratio = _dec(market_cfg, "low_volatility_ratio", DEFAULT_LOW_VOLATILITY_RATIO)
        self._wide_spread_ratio = _dec(market_cfg, "wide_spread_ratio", DEFAULT_WIDE_SPREAD_RATIO)
        self._tight_spread_ratio = _dec(market_cfg, "tight_spread_ratio", DEFAULT_TIGHT_SPREAD_RATIO)
        self._volume_threshold = _dec(
            market_cfg, "volume_threshold", engine_cfg.get("volume_threshold", DEFAULT_VOLUME_THRESHOLD)
        )
        self._high_volume_ratio = _dec(market_cfg, "high_volume_ratio", DEFAULT_HIGH_VOLUME_RATIO)
        self._favorable_score = _dec(market_cfg, "favorable_score", DEFAULT_FAVORABLE_SCORE)
        self._unfavorable_score = _dec(market_cfg, "unfavorable_score", DEFAULT_UNFAVORABLE_SCORE)
        raw_scores = market_cfg.get("health_scores", DEFAULT_HEALTH_SCORES)
        self._health_scores = {
            factor: {label: Decimal(str(score)) for label, score in labels.items()}
            for factor, labels in raw_scores.items()
        }

        # Continuous adjustment weights
        self._vol_bound = _dec(target_cfg, "volatility_modifier_bound", DEFAULT_VOLATILITY_MODIFIER_BOUND)
        self._spread_per_doubling = _dec(target_cfg, "spread_per_doubling", DEFAULT_SPREAD_PER_DOUBLING)
        self._spread_min = _dec(target_cfg, "spread_adjustment_min", DEFAULT_SPREAD_ADJUSTMENT_MIN)
        self._spread_max = _dec(target_cfg, "spread_adjustment_max", DEFAULT_SPREAD_ADJUSTMENT_MAX)
        self._futures_weight = _dec(target_cfg, "futures_range_weight", DEFAULT_FUTURES_RANGE_WEIGHT)
        self._temporal_weight = _dec(target_cfg, "temporal_range_weight", DEFAULT_TEMPORAL_RANGE_WEIGHT)

        # Return / confidence shaping
        self._round_trip_fee = _dec(engine_cfg, "round_trip_fee", DEFAULT_ROUND_TRIP_FEE)
        self._default_confidence = _dec(target_cfg, "default_signal_confidence", DEFAULT_SIGNAL_CONFIDENCE)
        self._condition_shift = _dec(target_cfg, "condition_confidence_shift", DEFAULT_CONDITION_CONFIDENCE_SHIFT)
        self._aggr_conf_ratio = _dec(target_cfg, "aggressive_confidence_ratio", DEFAULT_AGGRESSIVE_CONFIDENCE_RATIO)
        self._aggr_conf_penalty = _dec(
            target_cfg, "aggressive_confidence_penalty", DEFAULT_AGGRESSIVE_CONFIDENCE_PENALTY
        )
        self._predictability_bonus = _dec(target_cfg, "predictability_bonus", DEFAULT_PREDICTABILITY_BONUS)
        self._aggr_success_ratio = _dec(target_cfg, "aggressive_success_ratio", DEFAULT_AGGRESSIVE_SUCCESS_RATIO)
        self._aggr_success_discount = _dec(
            target_cfg, "aggressive_success_discount", DEFAULT_AGGRESSIVE_SUCCESS_DISCOUNT
        )
        self._cons_success_ratio = _dec(
            target_cfg, "conservative_success_ratio", DEFAULT_CONSERVATIVE_SUCCESS_RATIO
        )
        self._cons_success_boost = _dec(
            target_cfg, "conservative_success_boost", DEFAULT_CONSERVATIVE_SUCCESS_BOOST
        )

        raw_stops = engine_cfg.get("stop_loss_percents", DEFAULT_STOP_LOSS_PERCENTS)
        self._stop_loss_percents = {k: Decimal(str(v)) for k, v in raw_stops.items()}

    # ------------------------------------------------------------------
    # Market assessment
    # ------------------------------------------------------------------

    def assess_market_conditions(
        self, profile: PairProfile, market: MarketSnapshot
    ) -> MarketAssessment:
        """Categorize volatility/spread/volume against the pair baseline."""
        if market.volatility is None:
            raise MarketDataUnavailableError(
                f"Market snapshot for {profile.pair} has no volatility measurement"
            )
        current_vol = market.volatility
        current_spread = market.spread if market.spread else profile.spread_baseline
        current_volume = market.volume
        average_volume = market.average_volume if market.average_volume else _ONE

        volatility = "normal"
        if current_vol > profile.expected_volatility * self._high_vol_ratio:
            volatility = "high"
        elif current_vol < profile.expected_volatility * self._low_vol_ratio:
            volatility = "low"

        spread = "normal"
        if current_spread > profile.spread_baseline * self._wide_spread_ratio:
            spread = "wide"
        elif current_spread < profile.spread_baseline * self._tight_spread_ratio:
            spread = "tight"

        volume = "normal"
        if current_volume < average_volume * self._volume_threshold:
            volume = "low"
        elif current_volume > average_volume * self._high_volume_ratio:
            volume = "high"

        futures = market.futures_signal
        return MarketAssessment(
            volatility=volatility,
            spread=spread,
            volume=volume,
            futures_direction=futures.direction if futures else None,
            futures_strength=futures.strength if futures else _ZERO,
            overall=self.overall_condition(volatility, spread, volume),
            current_volatility=current_vol,
            current_spread=current_spread,
            current_volume=current_volume,
        )

    def overall_condition(self, volatility: str, spread: str, volume: str) -> MarketCondition:
        """Average of per-factor health scores."""
        score = (
            self._health_scores["volatility"][volatility]
            + self._health_scores["spread"][spread]
            + self._health_scores["volume"][volume]
        ) / 3
        if score > self._favorable_score:
            return MarketCondition.FAVORABLE
        if score < self._unfavorable_score:
            return MarketCondition.UNFAVORABLE
        return MarketCondition.NORMAL

    # ------------------------------------------------------------------
    # Adaptive target
    # ------------------------------------------------------------------

    def calculate_adaptive_target(
        self,
        profile: PairProfile,
        assessment: MarketAssessment,
        signal: OpportunitySignal | None = None,
    ) -> AdaptiveTarget:
        signal = signal or OpportunitySignal()
        target_range = profile.target_range
        factors: list[str] = []

        # 1. Volatility
        vol_ratio = assessment.current_volatility / profile.expected_volatility
        vol_modifier = _clamp(vol_ratio - _ONE, -self._vol_bound, self._vol_bound)
        volatility_adj = target_range * vol_modifier
        if volatility_adj:
            factors.append(f"{volatility_adj * 100:+.3f}% for {vol_ratio:.2f}x volatility")

        # 2. Spread
        spread_ratio = assessment.current_spread / profile.spread_baseline
        spread_adj = _ZERO
        if spread_ratio != _ONE:
            log2_ratio = spread_ratio.ln() / _LN2
            spread_adj = _clamp(log2_ratio * self._spread_per_doubling, self._spread_min, self._spread_max)
            factors.append(f"{spread_adj * 100:+.3f}% for {spread_ratio:.2f}x spread")

        # 3. Futures signal (additive only)
        futures_adj = _ZERO
        futures = signal.futures_signal
        if futures is not None and futures.strength > 0:
            futures_adj = target_range * self._futures_weight * futures.strength
            factors.append(f"+{futures_adj * 100:.4f}% for futures signal")

        # 4. Temporal bias (additive only)
        temporal_adj = _ZERO
        if signal.temporal_bias:
            temporal_adj = target_range * self._temporal_weight * abs(signal.temporal_bias)
            factors.append(f"+{temporal_adj * 100:.4f}% for temporal bias")

        raw = profile.baseline_target + volatility_adj + spread_adj + futures_adj + temporal_adj
        target = _clamp(raw, profile.conservative_target, profile.aggressive_target)

        return AdaptiveTarget(
            target=target,
            base_target=profile.baseline_target,
            volatility_adjustment=volatility_adj,
            spread_adjustment=spread_adj,
            futures_adjustment=futures_adj,
            temporal_adjustment=temporal_adj,
            expected_hold_minutes=self.estimate_hold_time(profile, target),
            expected_return=self.expected_return(profile, target),
            confidence=self.target_confidence(profile, target, assessment, signal),
            factors=tuple(factors),
        )

    def estimate_hold_time(self, profile: PairProfile, target: Decimal) -> int:
        """Higher targets take longer: scales with sqrt(target / baseline)."""
        multiplier = (target / profile.baseline_target).sqrt()
        minutes = profile.avg_hold_time_minutes * multiplier
        return int(minutes.to_integral_value(rounding=ROUND_HALF_UP))

    def expected_return(self, profile: PairProfile, target: Decimal) -> Decimal:
        success_rate = profile.min_success_rate
        aggressiveness = target / profile.baseline_target
        if aggressiveness > self._aggr_success_ratio:
            success_rate *= self._aggr_success_discount
        elif aggressiveness < self._cons_success_ratio:
            success_rate *= self._cons_success_boost
        return max(_ZERO, target - self._round_trip_fee) * success_rate

    def target_confidence(
        self,
        profile: PairProfile,
        target: Decimal,
        assessment: MarketAssessment,
        signal: OpportunitySignal,
    ) -> Decimal:
        confidence = signal.confidence if signal.confidence is not None else self._default_confidence

        if assessment.overall == MarketCondition.FAVORABLE:
            confidence += self._condition_shift
        elif assessment.overall == MarketCondition.UNFAVORABLE:
            confidence -= self._condition_shift

        if target / profile.baseline_target > self._aggr_conf_ratio:
            confidence -= self._aggr_conf_penalty

        if profile.is_high_predictability:
            confidence += self._predictability_bonus

        return _clamp(confidence, DEFAULT_CONFIDENCE_FLOOR, DEFAULT_CONFIDENCE_CEILING)

    # ------------------------------------------------------------------
    # Stop loss
    # ------------------------------------------------------------------

    def calculate_stop_loss(
        self, profile: PairProfile, price: Decimal, direction: TradeDirection
    ) -> StopLoss:
        percent = self._stop_loss_percents.get(
            profile.volatility_class.value, DEFAULT_STOP_LOSS_PERCENTS["moderate"]
        )
        if direction == TradeDirection.LONG:
            stop_price = price * (_ONE - percent)
        else:
            stop_price = price * (_ONE + percent)
        return StopLoss(price=stop_price, percent=percent)
