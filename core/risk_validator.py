"""
Pre-execution risk checks.

Checks a proposed sizing against every numeric limit and reports all
failing conditions together. Never adjusts the proposal.
"""

from __future__ import annotations

from decimal import Decimal

from config.loader import get_config
from shared.constants import (
    DEFAULT_MAX_TOTAL_EXPOSURE_PERCENT,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_MIN_TRADE_SIZE,
)
from shared.types import AdaptiveTarget, ExchangeMinimum, PairProfile, RiskValidation


class RiskValidator:
    def __init__(self) -> None:
        cfg = get_config().get_engine_config()
        self._min_confidence = Decimal(str(cfg.get("min_confidence", DEFAULT_MIN_CONFIDENCE)))
        self._min_trade_size = Decimal(str(cfg.get("min_trade_size", DEFAULT_MIN_TRADE_SIZE)))
        self._max_exposure_pct = Decimal(
            str(cfg.get("max_total_exposure_percent", DEFAULT_MAX_TOTAL_EXPOSURE_PERCENT))
        )
        cap = cfg.get("max_concurrent_positions")
        self._max_concurrent: int | None = int(cap) if cap is not None else None

    def validate(
        self,
        profile: PairProfile,
        target: AdaptiveTarget,
        size: Decimal,
        minimum: ExchangeMinimum,
        budget_mode: bool,
        used_budget: Decimal = Decimal("0"),
        total_budget: Decimal = Decimal("0"),
        open_positions: int = 0,
    ) -> RiskValidation:
        reasons: list[str] = []

        if target.target > profile.aggressive_target:
            reasons.append(
                f"Target {target.target * 100:.2f}% exceeds aggressive limit "
                f"{profile.aggressive_target * 100:.2f}%"
            )
        if target.confidence < self._min_confidence:
            reasons.append(
                f"Confidence {target.confidence * 100:.0f}% below minimum "
                f"{self._min_confidence * 100:.0f}%"
            )
        if size < self._min_trade_size:
            reasons.append(f"Position size ${size:.2f} below minimum ${self._min_trade_size}")
        if size < minimum.min_cost:
            reasons.append(
                f"Position size ${size:.2f} below exchange minimum cost ${minimum.min_cost}"
            )

        if budget_mode:
            limit = total_budget * self._max_exposure_pct
            exposure = used_budget + size
            if exposure > limit:
                reasons.append(f"Total exposure ${exposure:.2f} exceeds limit ${limit:.2f}")
        elif self._max_concurrent is not None and open_positions >= self._max_concurrent:
            reasons.append(f"Maximum concurrent positions ({self._max_concurrent}) reached")

        return RiskValidation(approved=not reasons, rejection_reasons=tuple(reasons))
