"""
Pair profile registry.

Builds immutable PairProfile records from pairs.json. Any inconsistent
profile is a configuration error raised at construction time; nothing is
silently corrected or defaulted.

Usage:
    registry = PairProfileRegistry()
    profile = registry.get("XRP/USD")   # None if the pair is not supported
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from config.loader import get_config
from shared.types import PairCharacteristics, PairProfile, VolatilityClass


class PairConfigurationError(ValueError):
    """Raised when a pair profile is missing fields or violates its bounds."""


def build_pair_profile(pair: str, entry: dict[str, Any]) -> PairProfile:
    """Convert one pairs.json entry into a validated PairProfile."""
    try:
        profile = PairProfile(
            pair=pair,
            baseline_target=Decimal(str(entry["baseline_target"])),
            conservative_target=Decimal(str(entry["conservative_target"])),
            aggressive_target=Decimal(str(entry["aggressive_target"])),
            volatility_class=VolatilityClass(entry["volatility_class"]),
            spread_baseline=Decimal(str(entry["spread_baseline"])),
            min_success_rate=Decimal(str(entry["min_success_rate"])),
            avg_hold_time_minutes=Decimal(str(entry["avg_hold_time_minutes"])),
            expected_volatility=Decimal(str(entry["expected_volatility"])),
            characteristics=PairCharacteristics(**entry.get("characteristics", {})),
        )
    except KeyError as exc:
        raise PairConfigurationError(f"{pair}: missing field {exc.args[0]}") from exc
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise PairConfigurationError(f"{pair}: invalid value ({exc})") from exc

    if profile.conservative_target > profile.aggressive_target:
        raise PairConfigurationError(
            f"{pair}: conservative target {profile.conservative_target} "
            f"exceeds aggressive target {profile.aggressive_target}"
        )
    if not (profile.conservative_target <= profile.baseline_target <= profile.aggressive_target):
        raise PairConfigurationError(
            f"{pair}: baseline target {profile.baseline_target} outside "
            f"[{profile.conservative_target}, {profile.aggressive_target}]"
        )
    if profile.expected_volatility <= 0 or profile.spread_baseline <= 0:
        raise PairConfigurationError(
            f"{pair}: expected_volatility and spread_baseline must be positive"
        )
    return profile


class PairProfileRegistry:
    """Read-only lookup of PairProfile by pair symbol."""

    def __init__(self, profiles: dict[str, PairProfile] | None = None) -> None:
        if profiles is None:
            raw = get_config().get_pairs_config().get("pairs", {})
            if not raw:
                raise PairConfigurationError("No pair profiles configured")
            profiles = {pair: build_pair_profile(pair, entry) for pair, entry in raw.items()}
        self._profiles = dict(profiles)

    def get(self, pair: str) -> PairProfile | None:
        return self._profiles.get(pair)

    def __contains__(self, pair: object) -> bool:
        return pair in self._profiles

    @property
    def pairs(self) -> list[str]:
        return list(self._profiles)
