"""
Weighted signal fusion for the multi-pair decision engine.

Turns intra-hour micro bias, broader temporal bias and the futures lead
signal into four continuous adjustments to a base trade plan:

    confidence  weighted average of aligned, confidence-scaled strengths
    price       logistic response to micro-bias magnitude, adverse moves discounted
    timing      urgency in [0, 1] around a neutral 0.5, damped by volatility
    position    convex multiplier between base and max above a confidence floor

Every method is a pure function of its arguments and the config captured
at construction, so identical inputs always yield identical outputs.

Usage:
    fusion = SignalFusionEngine()
    plan = fusion.apply(trade_plan, micro_timing)
"""

from __future__ import annotations

from decimal import Decimal

from config.loader import get_config
from shared.constants import MAX_EXECUTION_DELAY_MS
from shared.types import (
    ExecutionPlan,
    FuturesSignal,
    IntraHourBias,
    MicroTimingData,
    OrderType,
    TemporalBias,
    TradeDirection,
    TradePlan,
    WeightedAdjustments,
)

_ZERO = Decimal("0")
_ONE = Decimal("1")


def _d(value: object, default: str) -> Decimal:
    return Decimal(str(value if value is not None else default))


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def alignment_factor(bias: Decimal, direction: TradeDirection) -> Decimal:
    """
    +1 when the bias favors the trade, -1 otherwise.

    Buying is favored by a falling bias, selling by a rising one.
    """
    if direction == TradeDirection.LONG:
        return _ONE if bias < 0 else -_ONE
    return _ONE if bias > 0 else -_ONE


def futures_alignment(signal: FuturesSignal, direction: TradeDirection) -> Decimal:
    """Futures leading in the trade's direction is aligned."""
    return _ONE if signal.direction == direction else -_ONE


class SignalFusionEngine:
    """Stateless continuous weighting of micro-timing, temporal and futures signals."""

    def __init__(self) -> None:
        cfg = get_config().get_fusion_config()

        conf = cfg.get("confidence", {})
        weights = conf.get("weights", {})
        self._conf_max_adjustment = _d(conf.get("max_adjustment"), "0.15")
        self._micro_scale = _d(conf.get("micro_scale"), "0.01")
        self._temporal_scale = _d(conf.get("temporal_scale"), "0.02")
        self._futures_scale = _d(conf.get("futures_scale"), "1.0")
        self._w_micro = _d(weights.get("micro"), "0.2")
        self._w_temporal = _d(weights.get("temporal"), "0.3")
        self._w_futures = _d(weights.get("futures"), "0.5")

        price = cfg.get("price", {})
        self._price_max_adjustment = _d(price.get("max_adjustment"), "0.0005")
        self._sigmoid_steepness = _d(price.get("sigmoid_steepness"), "500")
        self._sigmoid_center = _d(price.get("sigmoid_center"), "0.002")
        self._adverse_ratio = _d(price.get("adverse_ratio"), "0.5")
        self._price_micro_weight = _d(price.get("micro_weight"), "0.1")
        self._temporal_agree = _d(price.get("temporal_agree_factor"), "1.2")
        self._temporal_disagree = _d(price.get("temporal_disagree_factor"), "0.8")

        timing = cfg.get("timing", {})
        self._base_urgency = _d(timing.get("base_urgency"), "0.5")
        self._volatility_impact = _d(timing.get("volatility_impact"), "1.0")
        self._max_urgency_change = _d(timing.get("max_urgency_change"), "0.5")
        self._temporal_nudge = _d(timing.get("temporal_nudge"), "0.1")

        position = cfg.get("position", {})
        self._min_trade_confidence = _d(position.get("min_confidence"), "0.65")
        self._base_multiplier = _d(position.get("base_multiplier"), "1.0")
        self._max_multiplier = _d(position.get("max_multiplier"), "1.5")
        self._scaling_power = _d(position.get("scaling_power"), "2.0")

        order_types = cfg.get("order_types", {})
        self._aggressive_conf = _d(order_types.get("aggressive", {}).get("confidence"), "0.85")
        self._aggressive_urgency = _d(order_types.get("aggressive", {}).get("urgency"), "0.8")
        self._standard_conf = _d(order_types.get("standard", {}).get("confidence"), "0.75")
        self._standard_urgency = _d(order_types.get("standard", {}).get("urgency"), "0.6")
        self._passive_conf = _d(order_types.get("passive", {}).get("confidence"), "0.70")

    # ------------------------------------------------------------------
    # Combined application
    # ------------------------------------------------------------------

    def apply(self, plan: TradePlan, data: MicroTimingData) -> ExecutionPlan:
        """Apply all four weighted adjustments to a base plan."""
        confidence_adj = self.confidence_adjustment(plan, data.intra_hour, data.temporal, data.futures)
        price_adj = self.price_adjustment(plan, data.intra_hour, data.temporal)
        urgency = self.timing_urgency(plan, data.intra_hour, data.temporal)
        final_confidence = _clamp(plan.confidence + confidence_adj, _ZERO, _ONE)
        multiplier = self.position_multiplier(plan.confidence + confidence_adj)

        adjustments = WeightedAdjustments(
            confidence_adjustment=confidence_adj,
            price_adjustment=price_adj,
            timing_urgency=urgency,
            position_multiplier=multiplier,
        )
        return ExecutionPlan(
            confidence=final_confidence,
            entry_price=plan.base_price * (_ONE + price_adj),
            adjusted_size=plan.size * multiplier,
            execution_delay_ms=self.urgency_to_delay(urgency),
            order_type=self.confidence_to_order_type(final_confidence, urgency),
            adjustments=adjustments,
            reasoning=self.explain(data.intra_hour, confidence_adj, price_adj, urgency),
        )

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def confidence_adjustment(
        self,
        plan: TradePlan,
        intra_hour: IntraHourBias,
        temporal: TemporalBias,
        futures: FuturesSignal,
    ) -> Decimal:
        """Weighted average of the three signal components, scaled to +/- max_adjustment."""
        micro_strength = min(abs(intra_hour.combined_bias) / self._micro_scale, _ONE)
        micro = (
            micro_strength
            * alignment_factor(intra_hour.combined_bias, plan.direction)
            * intra_hour.confidence
        )

        temporal_strength = min(abs(temporal.combined_bias) / self._temporal_scale, _ONE)
        temporal_component = (
            temporal_strength
            * alignment_factor(temporal.combined_bias, plan.direction)
            * temporal.confidence
        )

        futures_strength = min(abs(futures.strength) / self._futures_scale, _ONE)
        futures_component = (
            futures_strength * futures_alignment(futures, plan.direction) * futures.confidence
        )

        total_weight = self._w_micro + self._w_temporal + self._w_futures
        weighted = (
            micro * self._w_micro
            + temporal_component * self._w_temporal
            + futures_component * self._w_futures
        ) / total_weight
        return weighted * self._conf_max_adjustment

    # ------------------------------------------------------------------
    # Price
    # ------------------------------------------------------------------

    def _sigmoid(self, strength: Decimal) -> Decimal:
        exponent = -self._sigmoid_steepness * (strength - self._sigmoid_center)
        return _ONE / (_ONE + exponent.exp())

    def price_adjustment(
        self, plan: TradePlan, intra_hour: IntraHourBias, temporal: TemporalBias
    ) -> Decimal:
        """
        Fractional entry-price offset.

        Aligned micro bias improves the entry (bid lower / offer higher).
        Opposing bias concedes price toward the market, discounted by
        ``adverse_ratio`` so the engine does not chase.
        """
        bias = intra_hour.combined_bias
        magnitude = self._sigmoid(abs(bias)) * self._price_max_adjustment
        improve = -_ONE if plan.direction == TradeDirection.LONG else _ONE

        if alignment_factor(bias, plan.direction) > 0:
            adjustment = improve * magnitude
        else:
            adjustment = -improve * magnitude * self._adverse_ratio

        if temporal.combined_bias != 0 and (temporal.combined_bias > 0) == (bias > 0):
            adjustment *= self._temporal_agree
        else:
            adjustment *= self._temporal_disagree

        adjustment *= self._price_micro_weight
        return _clamp(adjustment, -self._price_max_adjustment, self._price_max_adjustment)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def timing_urgency(
        self, plan: TradePlan, intra_hour: IntraHourBias, temporal: TemporalBias
    ) -> Decimal:
        """Urgency in [0, 1]; 0 = wait, 1 = execute now."""
        bias = intra_hour.combined_bias
        strength = min(abs(bias) / self._micro_scale, _ONE)
        relative_vol = intra_hour.volatility_context.relative_volatility
        damping = _ONE / (_ONE + relative_vol * self._volatility_impact)

        urgency = self._base_urgency + (
            strength * damping * alignment_factor(bias, plan.direction) * self._max_urgency_change
        )
        if temporal.combined_bias != 0:
            urgency += self._temporal_nudge * alignment_factor(
                temporal.combined_bias, plan.direction
            )
        return _clamp(urgency, _ZERO, _ONE)

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    def position_multiplier(self, confidence: Decimal) -> Decimal:
        """Zero below the trading floor, convex interpolation base -> max above it."""
        if confidence < self._min_trade_confidence:
            return _ZERO
        span = _ONE - self._min_trade_confidence
        normalized = _clamp((confidence - self._min_trade_confidence) / span, _ZERO, _ONE)
        scaled = normalized**self._scaling_power
        multiplier = self._base_multiplier + scaled * (self._max_multiplier - self._base_multiplier)
        return min(multiplier, self._max_multiplier)

    # ------------------------------------------------------------------
    # Execution hints
    # ------------------------------------------------------------------

    @staticmethod
    def urgency_to_delay(urgency: Decimal) -> int:
        """Quadratic decay from 2 minutes at urgency 0 to immediate at 1."""
        delay = Decimal(MAX_EXECUTION_DELAY_MS) * (_ONE - urgency) ** 2
        return int(_clamp(delay, _ZERO, Decimal(MAX_EXECUTION_DELAY_MS)).to_integral_value())

    def confidence_to_order_type(self, confidence: Decimal, urgency: Decimal) -> OrderType:
        if confidence > self._aggressive_conf and urgency > self._aggressive_urgency:
            return OrderType.AGGRESSIVE_LIMIT
        if confidence > self._standard_conf and urgency > self._standard_urgency:
            return OrderType.STANDARD_LIMIT
        if confidence > self._passive_conf:
            return OrderType.PASSIVE_LIMIT
        return OrderType.POST_ONLY

    @staticmethod
    def explain(
        intra_hour: IntraHourBias,
        confidence_adj: Decimal,
        price_adj: Decimal,
        urgency: Decimal,
    ) -> str:
        parts = []
        if abs(confidence_adj) > Decimal("0.01"):
            verb = "boosted" if confidence_adj > 0 else "reduced"
            parts.append(f"Confidence {verb} {abs(confidence_adj) * 100:.1f}% by signal fusion")
        if abs(price_adj) > Decimal("0.0001"):
            purpose = "better entry" if price_adj < 0 else "faster fill"
            parts.append(f"Price adjusted {price_adj * 100:.3f}% for {purpose}")
        if urgency > Decimal("0.7"):
            parts.append("High urgency - execute quickly")
        elif urgency < Decimal("0.3"):
            parts.append("Low urgency - wait for better timing")
        parts.append(f"Micro bias {intra_hour.combined_bias * 100:.3f}%")
        return " | ".join(parts)
