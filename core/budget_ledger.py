"""
Budget ledger and layering guard.

BudgetLedger owns the session budget and every open position, indexed by
trade id and by pair. After each mutation ``used_budget`` is recomputed
from the full position set and compared against an incrementally tracked
expectation; a mismatch means the single-writer discipline was broken and
raises LedgerInvariantError.

LayeringGuard reads the per-pair index to reject same-direction entries
within ``price_layer_threshold`` of an existing position.

Only the DecisionEngine mutates the ledger, always under its lock.
"""

from __future__ import annotations

from decimal import Decimal

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import (
    DEFAULT_PRICE_LAYER_THRESHOLD,
    DEFAULT_SESSION_BUDGET_PERCENT,
    MS_PER_MINUTE,
)
from shared.types import (
    BudgetSnapshot,
    Decision,
    LayeringCheck,
    Position,
    TradeDirection,
)

_ZERO = Decimal("0")


class LedgerInvariantError(AssertionError):
    """Raised when recomputed used budget disagrees with the tracked total."""


class BudgetLedger:
    """Session budget plus open positions, indexed by trade id and by pair."""

    def __init__(self) -> None:
        cfg = get_config().get_engine_config()
        self._session_budget_percent = Decimal(
            str(cfg.get("session_budget_percent", DEFAULT_SESSION_BUDGET_PERCENT))
        )

        self._total_budget = _ZERO
        self._used_budget = _ZERO
        self._available_budget = _ZERO
        self._last_update_ms = 0
        self._expected_used = _ZERO

        self._positions: dict[str, Position] = {}
        self._pair_index: dict[str, set[str]] = {}

        self._logger = setup_module_logger("ledger", "ledger.log", module_folder="Ledger_Logs")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def total_budget(self) -> Decimal:
        return self._total_budget

    @property
    def used_budget(self) -> Decimal:
        return self._used_budget

    @property
    def available_budget(self) -> Decimal:
        return self._available_budget

    @property
    def open_position_count(self) -> int:
        return len(self._positions)

    def snapshot(self) -> BudgetSnapshot:
        return BudgetSnapshot(
            total_budget=self._total_budget,
            used_budget=self._used_budget,
            available_budget=self._available_budget,
            last_update_ms=self._last_update_ms,
        )

    def positions(self) -> list[Position]:
        return list(self._positions.values())

    def positions_for_pair(self, pair: str) -> list[Position]:
        return [self._positions[tid] for tid in self._pair_index.get(pair, ())]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_total(self, usd_balance: Decimal, now_ms: int) -> Decimal:
        """Set total budget from the account balance; returns the new total."""
        self._total_budget = usd_balance * self._session_budget_percent
        self._last_update_ms = now_ms
        self._recompute()
        self._logger.info(
            "Budget updated: $%.2f (%s%% of $%.2f)",
            self._total_budget,
            self._session_budget_percent * 100,
            usd_balance,
        )
        return self._total_budget

    def record_position(self, decision: Decision) -> Position:
        """Open a position for an EXECUTE decision."""
        trade_id = f"{decision.pair}-{decision.timestamp_ms}"
        suffix = 1
        while trade_id in self._positions:
            trade_id = f"{decision.pair}-{decision.timestamp_ms}-{suffix}"
            suffix += 1

        position = Position(
            trade_id=trade_id,
            pair=decision.pair,
            direction=decision.direction,
            entry_price=decision.entry_price,
            position_size=decision.position_size,
            exit_target=decision.exit_target if decision.exit_target is not None else _ZERO,
            stop_loss_price=decision.stop_loss.price if decision.stop_loss else _ZERO,
            entry_time_ms=decision.timestamp_ms,
            expected_exit_time_ms=decision.timestamp_ms
            + decision.time_horizon_minutes * MS_PER_MINUTE,
        )
        self._positions[trade_id] = position
        self._pair_index.setdefault(decision.pair, set()).add(trade_id)
        self._expected_used += position.position_size
        self._recompute()

        self._logger.info(
            "Position recorded: %s %s %s size=$%.2f used=$%.2f available=$%.2f",
            trade_id,
            position.direction.value,
            position.pair,
            position.position_size,
            self._used_budget,
            self._available_budget,
            extra={"trade_id": trade_id, "pair": position.pair},
        )
        return position

    def remove_position(self, trade_id: str) -> Position | None:
        """Close a position. Unknown ids are ignored (settlement may report twice)."""
        position = self._positions.pop(trade_id, None)
        if position is None:
            self._logger.warning("remove_position: unknown trade id %s", trade_id)
            return None

        pair_set = self._pair_index.get(position.pair)
        if pair_set is not None:
            pair_set.discard(trade_id)
            if not pair_set:
                del self._pair_index[position.pair]

        self._expected_used -= position.position_size
        self._recompute()
        self._logger.info(
            "Position removed: %s released=$%.2f used=$%.2f available=$%.2f",
            trade_id,
            position.position_size,
            self._used_budget,
            self._available_budget,
            extra={"trade_id": trade_id, "pair": position.pair},
        )
        return position

    def _recompute(self) -> None:
        used = sum((p.position_size for p in self._positions.values()), _ZERO)
        if used != self._expected_used:
            self._logger.critical(
                "Ledger drift: recomputed used=%s tracked=%s", used, self._expected_used
            )
            raise LedgerInvariantError(
                f"used_budget {used} != tracked {self._expected_used}"
            )
        self._used_budget = used
        self._available_budget = max(_ZERO, self._total_budget - used)


class LayeringGuard:
    """Rejects near-duplicate same-direction exposure on one pair."""

    def __init__(self, ledger: BudgetLedger, threshold: Decimal | None = None) -> None:
        if threshold is None:
            cfg = get_config().get_engine_config()
            threshold = Decimal(
                str(cfg.get("price_layer_threshold", DEFAULT_PRICE_LAYER_THRESHOLD))
            )
        self._ledger = ledger
        self._threshold = threshold

    def check(self, pair: str, price: Decimal, direction: TradeDirection) -> LayeringCheck:
        for position in self._ledger.positions_for_pair(pair):
            if position.direction != direction:
                continue
            diff = abs(price - position.entry_price) / position.entry_price
            if diff < self._threshold:
                return LayeringCheck(
                    has_conflict=True,
                    reason=(
                        f"Existing {direction.value} position {position.trade_id} at "
                        f"${position.entry_price} ({diff * 100:.3f}% difference)"
                    ),
                )
        return LayeringCheck(has_conflict=False)
