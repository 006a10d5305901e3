"""
Configuration schema validation for the multi-pair decision engine.

Validates that all required config files exist, contain required keys,
and hold mutually consistent values (pair target bounds, fusion weight
totals). Run at startup to fail fast on misconfiguration.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from config.loader import get_config

_VOLATILITY_CLASSES = ("ultra_low", "low", "moderate", "high")
_PACING_STRATEGIES = ("progressive", "linear", "adaptive")


class ConfigValidationError(ValueError):
    """Raised when a required config key is missing or invalid."""

    pass


def _check_keys(config: dict[str, Any], required_keys: list[str]) -> list[str]:
    """Check that all required keys exist in a config dict. Returns list of missing keys."""
    missing = []
    for key in required_keys:
        parts = key.split(".")
        current = config
        for part in parts:
            if not isinstance(current, dict) or part not in current:
                missing.append(f"missing: {key}")
                break
            current = current[part]
    return missing


def _dec(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def validate_engine_config(config: dict[str, Any]) -> list[str]:
    """Validate engine.json has required fields."""
    errors = _check_keys(
        config,
        [
            "use_budget_mode",
            "session_budget_percent",
            "min_trade_size",
            "max_trade_size",
            "price_layer_threshold",
            "max_position_size_percent",
            "max_total_exposure_percent",
            "min_confidence",
        ],
    )
    if errors:
        return errors
    min_size = _dec(config["min_trade_size"])
    max_size = _dec(config["max_trade_size"])
    if min_size is None or max_size is None or min_size > max_size:
        errors.append("min_trade_size must be a number not greater than max_trade_size")
    pct = _dec(config["session_budget_percent"])
    if pct is None or not (Decimal("0") < pct <= Decimal("1")):
        errors.append("session_budget_percent must be in (0, 1]")
    return errors


def validate_pair_entry(pair: str, entry: dict[str, Any]) -> list[str]:
    """Validate a single pair profile, including conservative <= baseline <= aggressive."""
    errors = [
        f"{pair}: {e}"
        for e in _check_keys(
            entry,
            [
                "baseline_target",
                "conservative_target",
                "aggressive_target",
                "volatility_class",
                "spread_baseline",
                "min_success_rate",
                "avg_hold_time_minutes",
                "expected_volatility",
            ],
        )
    ]
    if errors:
        return errors

    baseline = _dec(entry["baseline_target"])
    conservative = _dec(entry["conservative_target"])
    aggressive = _dec(entry["aggressive_target"])
    if baseline is None or conservative is None or aggressive is None:
        return [f"{pair}: targets must be numeric"]
    if conservative > aggressive:
        errors.append(
            f"{pair}: conservative_target {conservative} exceeds aggressive_target {aggressive}"
        )
    elif not (conservative <= baseline <= aggressive):
        errors.append(f"{pair}: baseline_target {baseline} outside [{conservative}, {aggressive}]")

    if entry["volatility_class"] not in _VOLATILITY_CLASSES:
        errors.append(f"{pair}: unknown volatility_class {entry['volatility_class']!r}")

    for key in ("spread_baseline", "expected_volatility", "baseline_target"):
        value = _dec(entry[key])
        if value is None or value <= 0:
            errors.append(f"{pair}: {key} must be positive")
    return errors


def validate_pairs_config(config: dict[str, Any]) -> list[str]:
    """Validate pairs.json: non-empty and every profile consistent."""
    pairs = config.get("pairs")
    if not isinstance(pairs, dict) or not pairs:
        return ["pairs: must be a non-empty object"]
    errors: list[str] = []
    for pair, entry in pairs.items():
        errors.extend(validate_pair_entry(pair, entry))
    return errors


def validate_pacing_config(config: dict[str, Any]) -> list[str]:
    """Validate pacing.json has required fields and a known strategy."""
    errors = _check_keys(
        config,
        [
            "enabled",
            "strategy",
            "initial_budget_percent",
            "ramp_up_duration_seconds",
            "budget_release_interval_seconds",
            "min_time_between_trades_seconds",
            "min_time_between_pair_trades_seconds",
        ],
    )
    if errors:
        return errors
    if config["strategy"] not in _PACING_STRATEGIES:
        errors.append(f"strategy: must be one of {', '.join(_PACING_STRATEGIES)}")
    if int(config["budget_release_interval_seconds"]) <= 0:
        errors.append("budget_release_interval_seconds: must be positive")
    if Decimal(str(config["ramp_up_duration_seconds"])) <= 0:
        errors.append("ramp_up_duration_seconds: must be positive")
    return errors


def validate_fusion_config(config: dict[str, Any]) -> list[str]:
    """Validate fusion.json: parameter groups, weight total, convex scaling power."""
    errors = _check_keys(
        config,
        [
            "confidence.max_adjustment",
            "confidence.weights.micro",
            "confidence.weights.temporal",
            "confidence.weights.futures",
            "price.max_adjustment",
            "price.sigmoid_steepness",
            "price.adverse_ratio",
            "timing.base_urgency",
            "position.min_confidence",
            "position.scaling_power",
        ],
    )
    if errors:
        return errors

    weights = config["confidence"]["weights"]
    total = sum((_dec(w) or Decimal("0")) for w in weights.values())
    expected = _dec(config["confidence"].get("weights_total", "1.0"))
    if total != expected:
        errors.append(f"confidence.weights: sum {total} does not equal weights_total {expected}")

    adverse = _dec(config["price"]["adverse_ratio"])
    if adverse is None or not (Decimal("0") <= adverse < Decimal("1")):
        errors.append("price.adverse_ratio: must be in [0, 1)")

    power = _dec(config["position"]["scaling_power"])
    if power is None or power < 1:
        errors.append("position.scaling_power: must be >= 1")

    min_conf = _dec(config["position"]["min_confidence"])
    if min_conf is None or not (Decimal("0") <= min_conf < Decimal("1")):
        errors.append("position.min_confidence: must be in [0, 1)")
    return errors


def validate_all_configs() -> None:
    """
    Validate all config files. Raises ConfigValidationError with details
    if any required key is missing or any value is inconsistent.
    """
    loader = get_config()
    all_errors: dict[str, list[str]] = {}

    validators = {
        "engine.json": (loader.get_engine_config, validate_engine_config),
        "pairs.json": (loader.get_pairs_config, validate_pairs_config),
        "pacing.json": (loader.get_pacing_config, validate_pacing_config),
        "fusion.json": (loader.get_fusion_config, validate_fusion_config),
    }

    for config_name, (loader_fn, validator_fn) in validators.items():
        config = loader_fn()
        if not config:
            all_errors[config_name] = ["Config file is empty or not found"]
            continue
        errors = validator_fn(config)
        if errors:
            all_errors[config_name] = errors

    if all_errors:
        lines = ["Configuration validation failed:"]
        for config_name, errors in all_errors.items():
            lines.append(f"\n  {config_name}:")
            for error in errors:
                lines.append(f"    - {error}")
        raise ConfigValidationError("\n".join(lines))
