"""
Shared constants for the multi-pair decision engine.

Numeric defaults used when a config key is absent. Every tunable the
engine reads lives here under a name so nothing is inlined as a literal.
"""

from decimal import Decimal

# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60_000

# ---------------------------------------------------------------------------
# Budget / sizing defaults
# ---------------------------------------------------------------------------

DEFAULT_SESSION_BUDGET_PERCENT = Decimal("0.20")
DEFAULT_MIN_TRADE_SIZE = Decimal("10")
DEFAULT_MAX_TRADE_SIZE = Decimal("100")
DEFAULT_MAX_POSITION_SIZE_PERCENT = Decimal("0.15")
DEFAULT_MAX_TOTAL_EXPOSURE_PERCENT = Decimal("1.0")
DEFAULT_PRICE_LAYER_THRESHOLD = Decimal("0.001")  # 0.1%

# Allocation multipliers per volatility class
DEFAULT_ALLOCATION_MULTIPLIERS = {
    "ultra_low": Decimal("1.2"),
    "low": Decimal("1.0"),
    "moderate": Decimal("1.0"),
    "high": Decimal("0.8"),
}

# Stop-loss percentages per volatility class
DEFAULT_STOP_LOSS_PERCENTS = {
    "ultra_low": Decimal("0.007"),
    "low": Decimal("0.01"),
    "moderate": Decimal("0.01"),
    "high": Decimal("0.015"),
}

# ---------------------------------------------------------------------------
# Risk validation defaults
# ---------------------------------------------------------------------------

DEFAULT_MIN_CONFIDENCE = Decimal("0.3")

# ---------------------------------------------------------------------------
# Adaptive target defaults
# ---------------------------------------------------------------------------

DEFAULT_VOLATILITY_MODIFIER_BOUND = Decimal("0.5")
DEFAULT_SPREAD_PER_DOUBLING = Decimal("0.001")
DEFAULT_SPREAD_ADJUSTMENT_MIN = Decimal("-0.001")
DEFAULT_SPREAD_ADJUSTMENT_MAX = Decimal("0.003")
DEFAULT_FUTURES_RANGE_WEIGHT = Decimal("0.02")
DEFAULT_TEMPORAL_RANGE_WEIGHT = Decimal("0.01")
DEFAULT_ROUND_TRIP_FEE = Decimal("0.005")
DEFAULT_SIGNAL_CONFIDENCE = Decimal("0.7")
DEFAULT_CONDITION_CONFIDENCE_SHIFT = Decimal("0.2")
DEFAULT_AGGRESSIVE_CONFIDENCE_PENALTY = Decimal("0.15")
DEFAULT_PREDICTABILITY_BONUS = Decimal("0.1")
DEFAULT_CONFIDENCE_FLOOR = Decimal("0.1")
DEFAULT_CONFIDENCE_CEILING = Decimal("1.0")

# Target / baseline ratios
DEFAULT_AGGRESSIVE_SUCCESS_RATIO = Decimal("1.5")
DEFAULT_CONSERVATIVE_SUCCESS_RATIO = Decimal("1.1")
DEFAULT_AGGRESSIVE_CONFIDENCE_RATIO = Decimal("1.3")
DEFAULT_AGGRESSIVE_SUCCESS_DISCOUNT = Decimal("0.7")
DEFAULT_CONSERVATIVE_SUCCESS_BOOST = Decimal("1.1")

# ---------------------------------------------------------------------------
# Market assessment defaults
# ---------------------------------------------------------------------------

DEFAULT_HIGH_VOLATILITY_RATIO = Decimal("1.5")
DEFAULT_LOW_VOLATILITY_RATIO = Decimal("0.7")
DEFAULT_WIDE_SPREAD_RATIO = Decimal("2")
DEFAULT_TIGHT_SPREAD_RATIO = Decimal("0.5")
DEFAULT_VOLUME_THRESHOLD = Decimal("0.7")
DEFAULT_HIGH_VOLUME_RATIO = Decimal("1.3")

# Per-factor health scores averaged into the overall condition
DEFAULT_HEALTH_SCORES = {
    "volatility": {"normal": Decimal("1.0"), "high": Decimal("0.8"), "low": Decimal("0.6")},
    "spread": {"normal": Decimal("1.0"), "tight": Decimal("1.1"), "wide": Decimal("0.7")},
    "volume": {"normal": Decimal("1.0"), "high": Decimal("1.1"), "low": Decimal("0.8")},
}
DEFAULT_FAVORABLE_SCORE = Decimal("1.05")
DEFAULT_UNFAVORABLE_SCORE = Decimal("0.8")

# ---------------------------------------------------------------------------
# Pacing defaults
# ---------------------------------------------------------------------------

DEFAULT_PACING_STRATEGY = "progressive"
DEFAULT_INITIAL_BUDGET_PERCENT = Decimal("0.25")
DEFAULT_RAMP_UP_SECONDS = 1800
DEFAULT_RELEASE_INTERVAL_SECONDS = 300
DEFAULT_MIN_TIME_BETWEEN_TRADES_SECONDS = Decimal("5")
DEFAULT_MIN_TIME_BETWEEN_PAIR_TRADES_SECONDS = Decimal("30")
DEFAULT_SUCCESS_WINDOW = 20
DEFAULT_NEUTRAL_SUCCESS_RATE = Decimal("0.5")

# ---------------------------------------------------------------------------
# Exchange minimums
# ---------------------------------------------------------------------------

DEFAULT_MINIMUM_MAX_STALENESS_SECONDS = 7200
DEFAULT_MINIMUM_REFRESH_INTERVAL_SECONDS = 3600
DEFAULT_PRICE_PRECISION = 2
DEFAULT_VOLUME_PRECISION = 8

# ---------------------------------------------------------------------------
# History / stats
# ---------------------------------------------------------------------------

DEFAULT_DECISION_HISTORY_SIZE = 1000
DEFAULT_STATS_WINDOW = 100

# ---------------------------------------------------------------------------
# Execution hints
# ---------------------------------------------------------------------------

MAX_EXECUTION_DELAY_MS = 120_000
