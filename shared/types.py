"""
Shared data types for the multi-pair decision engine.

Centralized dataclasses and enums used across all modules. Money and
ratio values are ``Decimal``; timestamps are integer epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TradeDirection(Enum):
    LONG = "long"  # buy
    SHORT = "short"  # sell


class VolatilityClass(Enum):
    ULTRA_LOW = "ultra_low"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class DecisionAction(Enum):
    EXECUTE = "EXECUTE"
    REJECT = "REJECT"


class PacingStrategy(Enum):
    PROGRESSIVE = "progressive"
    LINEAR = "linear"
    ADAPTIVE = "adaptive"


class MarketCondition(Enum):
    FAVORABLE = "favorable"
    NORMAL = "normal"
    UNFAVORABLE = "unfavorable"


class OrderType(Enum):
    AGGRESSIVE_LIMIT = "AGGRESSIVE_LIMIT"  # cross the spread
    STANDARD_LIMIT = "STANDARD_LIMIT"  # best bid/ask
    PASSIVE_LIMIT = "PASSIVE_LIMIT"  # join the book
    POST_ONLY = "POST_ONLY"  # maker only


class RejectionCategory(Enum):
    UNSUPPORTED_PAIR = "UNSUPPORTED_PAIR"
    LAYERING_CONFLICT = "LAYERING_CONFLICT"
    PACING = "PACING"
    INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"
    MINIMUM_VOLUME = "MINIMUM_VOLUME"
    RISK_VALIDATION = "RISK_VALIDATION"


# ---------------------------------------------------------------------------
# Static pair / exchange data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PairCharacteristics:
    stability: str = "moderate"
    liquidity: str = "moderate"
    predictability: str = "moderate"


@dataclass(frozen=True)
class PairProfile:
    pair: str
    baseline_target: Decimal
    conservative_target: Decimal
    aggressive_target: Decimal
    volatility_class: VolatilityClass
    spread_baseline: Decimal
    min_success_rate: Decimal
    avg_hold_time_minutes: Decimal
    expected_volatility: Decimal
    characteristics: PairCharacteristics = field(default_factory=PairCharacteristics)

    @property
    def target_range(self) -> Decimal:
        return self.aggressive_target - self.conservative_target

    @property
    def is_high_predictability(self) -> bool:
        return self.characteristics.predictability == "high"


@dataclass(frozen=True)
class ExchangeMinimum:
    min_volume: Decimal  # base currency units
    min_cost: Decimal  # quote currency units
    price_precision: int
    volume_precision: int
    updated_at_ms: int


# ---------------------------------------------------------------------------
# Signal / opportunity inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FuturesSignal:
    direction: TradeDirection  # LONG = futures leading spot upward
    strength: Decimal  # 0.0-1.0
    confidence: Decimal  # 0.0-1.0


@dataclass(frozen=True)
class MarketSnapshot:
    volatility: Decimal | None
    spread: Decimal | None = None
    volume: Decimal = Decimal("0")
    average_volume: Decimal | None = None
    futures_signal: FuturesSignal | None = None


@dataclass(frozen=True)
class VolatilityContext:
    relative_volatility: Decimal = Decimal("1")


@dataclass(frozen=True)
class IntraHourBias:
    combined_bias: Decimal  # fractional drift expected within the hour
    confidence: Decimal = Decimal("0.5")
    volatility_context: VolatilityContext = field(default_factory=VolatilityContext)


@dataclass(frozen=True)
class TemporalBias:
    combined_bias: Decimal
    confidence: Decimal = Decimal("0.5")


@dataclass(frozen=True)
class MicroTimingData:
    intra_hour: IntraHourBias
    temporal: TemporalBias
    futures: FuturesSignal


@dataclass(frozen=True)
class OpportunitySignal:
    futures_signal: FuturesSignal | None = None
    temporal_bias: Decimal = Decimal("0")  # -1.0 to 1.0
    strength: Decimal = Decimal("0")
    confidence: Decimal | None = None


@dataclass(frozen=True)
class Opportunity:
    pair: str
    current_price: Decimal
    direction: TradeDirection
    market: MarketSnapshot
    signal: OpportunitySignal = field(default_factory=OpportunitySignal)
    available_capital: Decimal | None = None  # capital mode only
    usd_balance: Decimal | None = None  # refreshes the session budget when set
    micro_timing: MicroTimingData | None = None


@dataclass(frozen=True)
class TradePlan:
    pair: str
    direction: TradeDirection
    base_price: Decimal
    size: Decimal
    confidence: Decimal


# ---------------------------------------------------------------------------
# Intermediate results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketAssessment:
    volatility: str  # low / normal / high
    spread: str  # tight / normal / wide
    volume: str  # low / normal / high
    futures_direction: TradeDirection | None
    futures_strength: Decimal
    overall: MarketCondition
    current_volatility: Decimal
    current_spread: Decimal
    current_volume: Decimal


@dataclass(frozen=True)
class AdaptiveTarget:
    target: Decimal
    base_target: Decimal
    volatility_adjustment: Decimal
    spread_adjustment: Decimal
    futures_adjustment: Decimal
    temporal_adjustment: Decimal
    expected_hold_minutes: int
    expected_return: Decimal
    confidence: Decimal
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class PositionSize:
    size: Decimal
    allocation: Decimal
    reasoning: str
    min_cost_applied: bool = False


@dataclass(frozen=True)
class VolumeAdjustment:
    size: Decimal
    volume: Decimal
    min_volume: Decimal
    adjusted: bool
    feasible: bool
    reason: str = ""


@dataclass(frozen=True)
class StopLoss:
    price: Decimal
    percent: Decimal


@dataclass(frozen=True)
class RiskValidation:
    approved: bool
    rejection_reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class LayeringCheck:
    has_conflict: bool
    reason: str = ""


@dataclass(frozen=True)
class PacingCheck:
    allowed: bool
    reason: str = ""
    wait_ms: int = 0


@dataclass(frozen=True)
class WeightedAdjustments:
    confidence_adjustment: Decimal
    price_adjustment: Decimal
    timing_urgency: Decimal
    position_multiplier: Decimal


@dataclass(frozen=True)
class ExecutionPlan:
    confidence: Decimal
    entry_price: Decimal
    adjusted_size: Decimal
    execution_delay_ms: int
    order_type: OrderType
    adjustments: WeightedAdjustments
    reasoning: str


# ---------------------------------------------------------------------------
# Ledger state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BudgetSnapshot:
    total_budget: Decimal
    used_budget: Decimal
    available_budget: Decimal
    last_update_ms: int


@dataclass(frozen=True)
class Position:
    trade_id: str
    pair: str
    direction: TradeDirection
    entry_price: Decimal
    position_size: Decimal  # quote currency notional
    exit_target: Decimal
    stop_loss_price: Decimal
    entry_time_ms: int
    expected_exit_time_ms: int


@dataclass
class ReleaseEntry:
    time_ms: int
    amount: Decimal
    released: bool = False


@dataclass
class PacingState:
    session_start_ms: int | None = None
    current_interval_start_ms: int | None = None
    released_budget: Decimal = Decimal("0")
    last_trade_time_ms: int | None = None
    last_trade_time_by_pair: dict[str, int] = field(default_factory=dict)
    trades_in_interval: int = 0
    total_trades_executed: int = 0
    release_schedule: list[ReleaseEntry] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Decision output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecisionTrace:
    market_assessment: MarketAssessment | None = None
    adaptive_target: AdaptiveTarget | None = None
    position_size: PositionSize | None = None
    volume_adjustment: VolumeAdjustment | None = None
    validation: RiskValidation | None = None
    budget: BudgetSnapshot | None = None
    pacing: PacingCheck | None = None
    layering: LayeringCheck | None = None
    execution_plan: ExecutionPlan | None = None
    signal_strength: Decimal | None = None


@dataclass(frozen=True)
class Decision:
    timestamp_ms: int
    pair: str
    action: DecisionAction
    direction: TradeDirection
    entry_price: Decimal
    confidence: Decimal = Decimal("0")
    reason: str = ""
    trade_id: str | None = None
    exit_target: Decimal | None = None
    position_size: Decimal = Decimal("0")
    position_volume: Decimal = Decimal("0")
    stop_loss: StopLoss | None = None
    time_horizon_minutes: int = 0
    expected_return: Decimal = Decimal("0")
    risk_reward: Decimal = Decimal("0")
    trace: DecisionTrace = field(default_factory=DecisionTrace)

    @property
    def is_execute(self) -> bool:
        return self.action == DecisionAction.EXECUTE

    @property
    def rejection_category(self) -> str:
        return self.reason.split(":")[0] if self.reason else "UNKNOWN"

    def summary(self) -> dict[str, Any]:
        """Flat view for logs and dashboards."""
        return {
            "timestamp_ms": self.timestamp_ms,
            "pair": self.pair,
            "action": self.action.value,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "exit_target": self.exit_target,
            "position_size": self.position_size,
            "confidence": self.confidence,
            "reason": self.reason,
            "trade_id": self.trade_id,
        }
