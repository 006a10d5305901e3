"""
Position sizing in budget and capital modes.

Two modes:
    budget   size = total_budget x allocation, clamped to
             [min_trade_size, max_trade_size, available], raised to min_cost
    capital  size = available_capital x min(allocation, max_position_size_percent)

allocation = max_position_size_percent x class multiplier x target confidence.

After sizing, ``adjust_for_min_volume`` raises the notional so the base
volume meets the exchange minimum. In budget mode the raised size must
still fit the available budget, otherwise the adjustment is infeasible
and the opportunity is rejected. Trading below the exchange minimum is
never a valid outcome.
"""

from __future__ import annotations

from decimal import Decimal

from config.loader import get_config
from core.exchange_minimums import DecisionDataError
from shared.constants import (
    DEFAULT_ALLOCATION_MULTIPLIERS,
    DEFAULT_MAX_POSITION_SIZE_PERCENT,
    DEFAULT_MAX_TRADE_SIZE,
    DEFAULT_MIN_TRADE_SIZE,
)
from shared.types import (
    AdaptiveTarget,
    ExchangeMinimum,
    PairProfile,
    PositionSize,
    VolumeAdjustment,
)

_ZERO = Decimal("0")


class PositionSizer:
    """Pure sizing functions parameterized by engine.json."""

    def __init__(self) -> None:
        cfg = get_config().get_engine_config()
        self._min_trade_size = Decimal(str(cfg.get("min_trade_size", DEFAULT_MIN_TRADE_SIZE)))
        self._max_trade_size = Decimal(str(cfg.get("max_trade_size", DEFAULT_MAX_TRADE_SIZE)))
        self._max_position_pct = Decimal(
            str(cfg.get("max_position_size_percent", DEFAULT_MAX_POSITION_SIZE_PERCENT))
        )
        raw = cfg.get("allocation_multipliers", DEFAULT_ALLOCATION_MULTIPLIERS)
        self._class_multipliers = {k: Decimal(str(v)) for k, v in raw.items()}

    def allocation(self, profile: PairProfile, target: AdaptiveTarget) -> Decimal:
        multiplier = self._class_multipliers.get(profile.volatility_class.value, Decimal("1"))
        return self._max_position_pct * multiplier * target.confidence

    # ------------------------------------------------------------------
    # Budget mode
    # ------------------------------------------------------------------

    def size_from_budget(
        self,
        profile: PairProfile,
        target: AdaptiveTarget,
        total_budget: Decimal,
        available_budget: Decimal,
        minimum: ExchangeMinimum,
    ) -> PositionSize:
        allocation = self.allocation(profile, target)
        size = total_budget * allocation
        size = max(self._min_trade_size, size)
        size = min(self._max_trade_size, size)
        size = min(available_budget, size)

        min_cost_applied = False
        if size < minimum.min_cost:
            size = minimum.min_cost
            min_cost_applied = True

        reasoning = (
            f"{allocation * 100:.1f}% allocation of ${total_budget:.2f} budget "
            f"(confidence {target.confidence * 100:.0f}%)"
        )
        if min_cost_applied:
            reasoning += f", raised to exchange min cost ${minimum.min_cost}"
        return PositionSize(
            size=size,
            allocation=allocation,
            reasoning=reasoning,
            min_cost_applied=min_cost_applied,
        )

    # ------------------------------------------------------------------
    # Capital mode
    # ------------------------------------------------------------------

    def size_from_capital(
        self,
        profile: PairProfile,
        target: AdaptiveTarget,
        available_capital: Decimal | None,
    ) -> PositionSize:
        if available_capital is None:
            raise DecisionDataError(
                f"Capital-mode opportunity for {profile.pair} carries no available_capital"
            )
        allocation = min(self.allocation(profile, target), self._max_position_pct)
        size = available_capital * allocation
        return PositionSize(
            size=size,
            allocation=allocation,
            reasoning=(
                f"{allocation * 100:.1f}% allocation for {profile.pair} "
                f"(confidence {target.confidence * 100:.0f}%)"
            ),
        )

    # ------------------------------------------------------------------
    # Exchange minimum volume
    # ------------------------------------------------------------------

    @staticmethod
    def adjust_for_min_volume(
        size: Decimal,
        price: Decimal,
        minimum: ExchangeMinimum,
        budget_mode: bool,
        available_budget: Decimal = _ZERO,
    ) -> VolumeAdjustment:
        volume = size / price
        if volume >= minimum.min_volume:
            return VolumeAdjustment(
                size=size,
                volume=volume,
                min_volume=minimum.min_volume,
                adjusted=False,
                feasible=True,
            )

        required = minimum.min_volume * price
        if budget_mode and required > available_budget:
            return VolumeAdjustment(
                size=size,
                volume=volume,
                min_volume=minimum.min_volume,
                adjusted=False,
                feasible=False,
                reason=(
                    f"Minimum volume {minimum.min_volume} needs ${required:.2f}, "
                    f"only ${available_budget:.2f} available"
                ),
            )
        return VolumeAdjustment(
            size=required,
            volume=minimum.min_volume,
            min_volume=minimum.min_volume,
            adjusted=True,
            feasible=True,
            reason=f"Raised from ${size:.2f} to ${required:.2f} to meet minimum volume",
        )
