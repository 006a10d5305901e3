"""
Trade pacing for the multi-pair decision engine.

Bounds how fast budget is deployed over a session and how often trades
fire. Budget release strategies:

    progressive  initial fraction now, the remainder in increasing chunks
                 at fixed intervals over the ramp-up window (each fires once)
    linear       released = total x elapsed / ramp_up, never decreasing
    adaptive     initial floor + bonus proportional to the recent
                 execution rate over the last ``success_window`` decisions

Rate limits (checked before any sizing work): a global minimum gap
between trades, a per-pair minimum gap, and an optional cap on trades
per release interval.

All methods take the current time as integer epoch milliseconds.
"""

from __future__ import annotations

import math
from collections import deque
from decimal import ROUND_DOWN, Decimal

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import (
    DEFAULT_INITIAL_BUDGET_PERCENT,
    DEFAULT_MIN_TIME_BETWEEN_PAIR_TRADES_SECONDS,
    DEFAULT_MIN_TIME_BETWEEN_TRADES_SECONDS,
    DEFAULT_NEUTRAL_SUCCESS_RATE,
    DEFAULT_PACING_STRATEGY,
    DEFAULT_RAMP_UP_SECONDS,
    DEFAULT_RELEASE_INTERVAL_SECONDS,
    DEFAULT_SUCCESS_WINDOW,
    MS_PER_SECOND,
)
from shared.types import PacingCheck, PacingState, PacingStrategy, ReleaseEntry

_ZERO = Decimal("0")
_ONE = Decimal("1")
_CENT = Decimal("0.01")


def _seconds_to_ms(value: object) -> int:
    return int(Decimal(str(value)) * MS_PER_SECOND)


class PacingController:
    """Session budget release schedule plus trade-frequency limits."""

    def __init__(self) -> None:
        cfg = get_config().get_pacing_config()

        self._enabled: bool = bool(cfg.get("enabled", True))
        self._strategy = PacingStrategy(cfg.get("strategy", DEFAULT_PACING_STRATEGY))
        self._initial_pct = Decimal(
            str(cfg.get("initial_budget_percent", DEFAULT_INITIAL_BUDGET_PERCENT))
        )
        self._ramp_up_ms = _seconds_to_ms(
            cfg.get("ramp_up_duration_seconds", DEFAULT_RAMP_UP_SECONDS)
        )
        self._interval_ms = _seconds_to_ms(
            cfg.get("budget_release_interval_seconds", DEFAULT_RELEASE_INTERVAL_SECONDS)
        )
        self._min_between_ms = _seconds_to_ms(
            cfg.get("min_time_between_trades_seconds", DEFAULT_MIN_TIME_BETWEEN_TRADES_SECONDS)
        )
        self._min_between_pair_ms = _seconds_to_ms(
            cfg.get(
                "min_time_between_pair_trades_seconds",
                DEFAULT_MIN_TIME_BETWEEN_PAIR_TRADES_SECONDS,
            )
        )
        cap = cfg.get("max_trades_per_interval")
        self._max_trades_per_interval: int | None = int(cap) if cap is not None else None

        self._state = PacingState()
        self._outcomes: deque[bool] = deque(
            maxlen=int(cfg.get("success_window", DEFAULT_SUCCESS_WINDOW))
        )

        self._logger = setup_module_logger("pacing", "pacing.log", module_folder="Pacing_Logs")
        self._logger.info(
            "PacingController initialized: enabled=%s strategy=%s initial=%s ramp=%dms "
            "interval=%dms gap=%dms pair_gap=%dms",
            self._enabled,
            self._strategy.value,
            self._initial_pct,
            self._ramp_up_ms,
            self._interval_ms,
            self._min_between_ms,
            self._min_between_pair_ms,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def started(self) -> bool:
        return self._state.session_start_ms is not None

    @property
    def strategy(self) -> PacingStrategy:
        return self._strategy

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def state(self) -> PacingState:
        return self._state

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def start_session(self, total_budget: Decimal, now_ms: int) -> None:
        """Begin a session: initial release and, for progressive, the release schedule."""
        previous = self._state
        self._state = PacingState(
            session_start_ms=now_ms,
            current_interval_start_ms=now_ms,
            last_trade_time_ms=previous.last_trade_time_ms,
            last_trade_time_by_pair=dict(previous.last_trade_time_by_pair),
            total_trades_executed=previous.total_trades_executed,
        )
        state = self._state
        initial = total_budget * self._initial_pct

        if self._strategy == PacingStrategy.PROGRESSIVE:
            state.released_budget = initial
            intervals = max(1, math.ceil(self._ramp_up_ms / self._interval_ms))
            remainder = total_budget - initial
            # Chunk i weighs (i + 1) / (n(n+1)/2) in whole cents; the last absorbs the rest.
            denominator = Decimal(intervals * (intervals + 1) // 2)
            scheduled = _ZERO
            for i in range(intervals):
                if i == intervals - 1:
                    amount = remainder - scheduled
                else:
                    amount = (remainder * Decimal(i + 1) / denominator).quantize(
                        _CENT, rounding=ROUND_DOWN
                    )
                scheduled += amount
                state.release_schedule.append(
                    ReleaseEntry(time_ms=now_ms + (i + 1) * self._interval_ms, amount=amount)
                )
        else:
            state.released_budget = initial

        self._logger.info(
            "Pacing session started: strategy=%s initial_release=$%.2f total=$%.2f "
            "scheduled_releases=%d",
            self._strategy.value,
            state.released_budget,
            total_budget,
            len(state.release_schedule),
        )

    def rescale_session(self, total_budget: Decimal, now_ms: int) -> None:
        """
        Re-fit a started session to a new session total.

        Due releases fire first at their old amounts. Pending progressive
        chunks are then redistributed with their original weights so that
        released + pending equals the new total; with nothing pending the
        released amount is raised to the new total. Released budget never
        decreases. Linear and adaptive derive from the total on every call.
        """
        if not self.started or self._strategy != PacingStrategy.PROGRESSIVE:
            return
        self.process_releases(now_ms)
        state = self._state
        pending = [
            (i, entry) for i, entry in enumerate(state.release_schedule) if not entry.released
        ]
        if not pending:
            state.released_budget = max(state.released_budget, total_budget)
            return

        remainder = max(_ZERO, total_budget - state.released_budget)
        denominator = Decimal(sum(i + 1 for i, _ in pending))
        scheduled = _ZERO
        for n, (i, entry) in enumerate(pending):
            if n == len(pending) - 1:
                entry.amount = remainder - scheduled
            else:
                entry.amount = (remainder * Decimal(i + 1) / denominator).quantize(
                    _CENT, rounding=ROUND_DOWN
                )
            scheduled += entry.amount

        self._logger.info(
            "Pacing session rescaled: total=$%.2f released=$%.2f pending=$%.2f over %d releases",
            total_budget,
            state.released_budget,
            remainder,
            len(pending),
        )

    # ------------------------------------------------------------------
    # Gate checks
    # ------------------------------------------------------------------

    def check(self, pair: str, now_ms: int) -> PacingCheck:
        """
        Rate-limit gate; global gap first, then per-pair gap, then interval cap.

        The gaps apply from the first recorded trade whether or not a
        budget session has started; the interval cap needs a session.
        """
        if not self._enabled:
            return PacingCheck(allowed=True)
        state = self._state

        if state.last_trade_time_ms is not None:
            elapsed = now_ms - state.last_trade_time_ms
            if elapsed < self._min_between_ms:
                wait = self._min_between_ms - elapsed
                return PacingCheck(
                    allowed=False, reason=f"Wait {wait}ms between trades", wait_ms=wait
                )

        last_pair = state.last_trade_time_by_pair.get(pair)
        if last_pair is not None:
            elapsed = now_ms - last_pair
            if elapsed < self._min_between_pair_ms:
                wait = self._min_between_pair_ms - elapsed
                return PacingCheck(
                    allowed=False,
                    reason=f"Wait {wait}ms before trading {pair} again",
                    wait_ms=wait,
                )

        # The interval cap is measured from the session start.
        if not self.started:
            return PacingCheck(allowed=True)

        if now_ms - state.current_interval_start_ms >= self._interval_ms:
            state.current_interval_start_ms = now_ms
            state.trades_in_interval = 0

        if (
            self._max_trades_per_interval is not None
            and state.trades_in_interval >= self._max_trades_per_interval
        ):
            wait = state.current_interval_start_ms + self._interval_ms - now_ms
            return PacingCheck(
                allowed=False,
                reason=(
                    f"Interval limit of {self._max_trades_per_interval} trades reached, "
                    f"wait {wait}ms"
                ),
                wait_ms=wait,
            )

        return PacingCheck(allowed=True)

    # ------------------------------------------------------------------
    # Budget release
    # ------------------------------------------------------------------

    def process_releases(self, now_ms: int) -> Decimal:
        """Fire due progressive releases; returns the amount released by this call."""
        if not self.started:
            return _ZERO
        released_now = _ZERO
        for entry in self._state.release_schedule:
            if not entry.released and now_ms >= entry.time_ms:
                entry.released = True
                self._state.released_budget += entry.amount
                released_now += entry.amount
                self._logger.info(
                    "Released additional budget: $%.2f (total released $%.2f)",
                    entry.amount,
                    self._state.released_budget,
                )
        return released_now

    def effective_budget(self, total_budget: Decimal, now_ms: int) -> Decimal:
        """Portion of the session budget currently released for trading."""
        if not self._enabled or not self.started:
            return total_budget
        state = self._state

        if self._strategy == PacingStrategy.PROGRESSIVE:
            self.process_releases(now_ms)
        elif self._strategy == PacingStrategy.LINEAR:
            elapsed = now_ms - state.session_start_ms
            if self._ramp_up_ms <= 0:
                progress = _ONE
            else:
                progress = min(_ONE, Decimal(elapsed) / Decimal(self._ramp_up_ms))
            state.released_budget = max(state.released_budget, total_budget * progress)
        else:
            bonus = total_budget * (_ONE - self._initial_pct) * self.recent_success_rate()
            state.released_budget = min(total_budget, total_budget * self._initial_pct + bonus)

        return min(total_budget, state.released_budget)

    def recent_success_rate(self) -> Decimal:
        if not self._outcomes:
            return DEFAULT_NEUTRAL_SUCCESS_RATE
        executed = sum(1 for outcome in self._outcomes if outcome)
        return Decimal(executed) / Decimal(len(self._outcomes))

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record_trade(self, pair: str, now_ms: int) -> None:
        state = self._state
        state.last_trade_time_ms = now_ms
        state.last_trade_time_by_pair[pair] = now_ms
        state.trades_in_interval += 1
        state.total_trades_executed += 1

    def record_outcome(self, executed: bool) -> None:
        self._outcomes.append(executed)

    def next_release_ms(self) -> int | None:
        """Time of the next pending progressive release, if any."""
        pending = [e.time_ms for e in self._state.release_schedule if not e.released]
        return min(pending) if pending else None

    def status(self) -> dict:
        state = self._state
        return {
            "enabled": self._enabled,
            "strategy": self._strategy.value,
            "session_start_ms": state.session_start_ms,
            "released_budget": state.released_budget,
            "trades_in_interval": state.trades_in_interval,
            "total_trades_executed": state.total_trades_executed,
            "pending_releases": sum(1 for e in state.release_schedule if not e.released),
        }
