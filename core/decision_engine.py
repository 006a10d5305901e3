"""
Multi-pair decision engine.

Turns a stream of per-pair opportunities into EXECUTE / REJECT decisions.
Each opportunity runs through a strictly ordered pipeline that stops at
the first rejection:

    PAIR_SUPPORTED -> LAYERING -> PACING -> BUDGET_AVAILABLE
        -> assess market -> adaptive target -> size -> min-volume
        -> RISK_VALID -> EXECUTE | REJECT

The whole pipeline, including recording the position and updating pacing
on EXECUTE, runs under one asyncio.Lock so two opportunities can never
both pass the budget check against the same available budget.

Missing or stale input data (exchange minimums, volatility) raises a
DecisionDataError instead of producing a decision; no position is
recorded and no trade is counted when that happens.

Usage:
    engine = DecisionEngine()
    await engine.refresh_exchange_minimums(provider)
    await engine.update_session_budget(Decimal("1000"))
    decision = await engine.generate_trading_decision(opportunity)
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter, deque
from dataclasses import asdict, replace
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING, Any, Callable

from bot_logging.logger_manager import (
    log_data_entry,
    log_data_output,
    log_data_processing,
    setup_module_logger,
)
from config.loader import get_config
from core.adaptive_target import AdaptiveTargetCalculator
from core.budget_ledger import BudgetLedger, LayeringGuard
from core.exchange_minimums import DecisionDataError, ExchangeMinimumCache
from core.pacing import PacingController
from core.pair_profiles import PairProfileRegistry
from core.position_sizer import PositionSizer
from core.risk_validator import RiskValidator
from core.signal_fusion import SignalFusionEngine
from shared.constants import (
    DEFAULT_DECISION_HISTORY_SIZE,
    DEFAULT_MIN_TRADE_SIZE,
    DEFAULT_MINIMUM_REFRESH_INTERVAL_SECONDS,
    DEFAULT_STATS_WINDOW,
    MS_PER_SECOND,
)
from shared.types import (
    Decision,
    DecisionAction,
    DecisionTrace,
    Opportunity,
    Position,
    RejectionCategory,
    TradePlan,
)

if TYPE_CHECKING:
    from data.kraken_minimums import KrakenMinimumProvider

_ZERO = Decimal("0")


def _system_clock_ms() -> int:
    return int(time.time() * MS_PER_SECOND)


class DecisionEngine:
    """
    Orchestrates gating, target, sizing and validation for every opportunity.

    Owns the BudgetLedger and PacingController; nothing else mutates them.
    """

    def __init__(
        self,
        registry: PairProfileRegistry | None = None,
        minimums: ExchangeMinimumCache | None = None,
        clock: Callable[[], int] | None = None,
        decision_queue: asyncio.Queue[Decision] | None = None,
    ) -> None:
        cfg = get_config().get_engine_config()

        self._budget_mode: bool = bool(cfg.get("use_budget_mode", True))
        self._min_trade_size = Decimal(str(cfg.get("min_trade_size", DEFAULT_MIN_TRADE_SIZE)))
        self._stats_window: int = int(cfg.get("stats_window", DEFAULT_STATS_WINDOW))
        self._refresh_interval_s: int = int(
            cfg.get("minimum_refresh_interval_seconds", DEFAULT_MINIMUM_REFRESH_INTERVAL_SECONDS)
        )

        self._clock = clock or _system_clock_ms
        self._registry = registry or PairProfileRegistry()
        self._minimums = minimums or ExchangeMinimumCache()
        self._ledger = BudgetLedger()
        self._layering = LayeringGuard(self._ledger)
        self._pacing = PacingController()
        self._targets = AdaptiveTargetCalculator()
        self._sizer = PositionSizer()
        self._validator = RiskValidator()
        self._fusion = SignalFusionEngine()

        self._lock = asyncio.Lock()
        self._history: deque[Decision] = deque(
            maxlen=int(cfg.get("decision_history_size", DEFAULT_DECISION_HISTORY_SIZE))
        )
        self._decision_queue = decision_queue
        self._running = False

        self._logger = setup_module_logger(
            "decision_engine", "decision_engine.log", module_folder="Decision_Engine_Logs"
        )
        self._logger.info(
            "DecisionEngine initialized: mode=%s pairs=%s pacing=%s",
            "budget" if self._budget_mode else "capital",
            ",".join(self._registry.pairs),
            self._pacing.strategy.value if self._pacing.enabled else "disabled",
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def ledger(self) -> BudgetLedger:
        return self._ledger

    @property
    def pacing(self) -> PacingController:
        return self._pacing

    @property
    def minimums(self) -> ExchangeMinimumCache:
        return self._minimums

    @property
    def history(self) -> list[Decision]:
        return list(self._history)

    # ------------------------------------------------------------------
    # Primary entry point
    # ------------------------------------------------------------------

    async def generate_trading_decision(self, opportunity: Opportunity) -> Decision:
        """
        Evaluate one opportunity.

        Returns a Decision for every business outcome. Raises
        ``DecisionDataError`` when a required input is missing or stale.
        """
        async with self._lock:
            now_ms = self._clock()
            trace_id = f"{opportunity.pair}-{now_ms}"
            log_data_entry(trace_id, "decision_engine", "opportunity", opportunity)

            try:
                decision = self._evaluate(opportunity, now_ms, trace_id)
            except DecisionDataError as exc:
                self._logger.error(
                    "Decision aborted for %s: %s",
                    opportunity.pair,
                    exc,
                    extra={"trace_id": trace_id, "pair": opportunity.pair, "error": str(exc)},
                )
                raise

            self._history.append(decision)
            self._pacing.record_outcome(decision.is_execute)
            log_data_output(trace_id, "decision_engine", "decision", decision)
            return decision

    def _evaluate(self, opp: Opportunity, now_ms: int, trace_id: str) -> Decision:
        if opp.usd_balance is not None and self._budget_mode:
            self._apply_balance(opp.usd_balance, now_ms)

        # 1. Pair supported
        profile = self._registry.get(opp.pair)
        if profile is None:
            return self._reject(opp, now_ms, RejectionCategory.UNSUPPORTED_PAIR.value)

        # 2. Layering
        layering = self._layering.check(opp.pair, opp.current_price, opp.direction)
        if layering.has_conflict:
            return self._reject(
                opp,
                now_ms,
                f"{RejectionCategory.LAYERING_CONFLICT.value}: {layering.reason}",
                DecisionTrace(layering=layering),
            )

        # 3. Pacing
        pacing = self._pacing.check(opp.pair, now_ms)
        if not pacing.allowed:
            return self._reject(
                opp,
                now_ms,
                f"{RejectionCategory.PACING.value}: {pacing.reason}",
                DecisionTrace(layering=layering, pacing=pacing),
            )

        # 4. Budget available
        available = self._effective_available(now_ms)
        if self._budget_mode and available < self._min_trade_size:
            return self._reject(
                opp,
                now_ms,
                f"{RejectionCategory.INSUFFICIENT_BUDGET.value}: ${available:.2f} available",
                DecisionTrace(layering=layering, pacing=pacing, budget=self._ledger.snapshot()),
            )

        # 5-6. Market assessment and adaptive target
        assessment = self._targets.assess_market_conditions(profile, opp.market)
        target = self._targets.calculate_adaptive_target(profile, assessment, opp.signal)
        log_data_processing(
            trace_id, "adaptive_target", "adaptive_target", assessment, target
        )

        # 7. Size
        minimum = self._minimums.get(opp.pair, now_ms)
        if self._budget_mode:
            sizing = self._sizer.size_from_budget(
                profile, target, self._ledger.total_budget, available, minimum
            )
        else:
            sizing = self._sizer.size_from_capital(profile, target, opp.available_capital)

        # 8. Exchange minimum volume
        volume = self._sizer.adjust_for_min_volume(
            sizing.size, opp.current_price, minimum, self._budget_mode, available
        )
        trace = DecisionTrace(
            market_assessment=assessment,
            adaptive_target=target,
            position_size=sizing,
            volume_adjustment=volume,
            budget=self._ledger.snapshot(),
            pacing=pacing,
            layering=layering,
            signal_strength=opp.signal.strength,
        )
        if not volume.feasible:
            return self._reject(
                opp,
                now_ms,
                f"{RejectionCategory.MINIMUM_VOLUME.value}: {volume.reason}",
                trace,
                confidence=target.confidence,
            )

        # 9. Risk validation on the final size
        validation = self._validator.validate(
            profile,
            target,
            volume.size,
            minimum,
            self._budget_mode,
            used_budget=self._ledger.used_budget,
            total_budget=self._ledger.total_budget,
            open_positions=self._ledger.open_position_count,
        )
        trace = replace(trace, validation=validation)
        if not validation.approved:
            return self._reject(
                opp,
                now_ms,
                f"{RejectionCategory.RISK_VALIDATION.value}: "
                + "; ".join(validation.rejection_reasons),
                trace,
                confidence=target.confidence,
            )

        # 10. Execute
        if opp.micro_timing is not None:
            plan = TradePlan(
                pair=opp.pair,
                direction=opp.direction,
                base_price=opp.current_price,
                size=volume.size,
                confidence=target.confidence,
            )
            trace = replace(trace, execution_plan=self._fusion.apply(plan, opp.micro_timing))

        stop_loss = self._targets.calculate_stop_loss(profile, opp.current_price, opp.direction)
        stop_loss = replace(
            stop_loss, price=stop_loss.price.quantize(Decimal(1).scaleb(-minimum.price_precision))
        )
        # Volume floored to the pair lot decimals.
        lot = Decimal(1).scaleb(-minimum.volume_precision)
        decision = Decision(
            timestamp_ms=now_ms,
            pair=opp.pair,
            action=DecisionAction.EXECUTE,
            direction=opp.direction,
            entry_price=opp.current_price,
            confidence=target.confidence,
            reason="; ".join(target.factors) or "Baseline conditions",
            exit_target=target.target,
            position_size=volume.size,
            position_volume=(volume.size / opp.current_price).quantize(lot, rounding=ROUND_DOWN),
            stop_loss=stop_loss,
            time_horizon_minutes=target.expected_hold_minutes,
            expected_return=target.expected_return,
            risk_reward=target.expected_return / stop_loss.percent,
            trace=trace,
        )

        position = self._ledger.record_position(decision)
        self._pacing.record_trade(opp.pair, now_ms)
        decision = replace(
            decision,
            trade_id=position.trade_id,
            trace=replace(decision.trace, budget=self._ledger.snapshot()),
        )

        self._logger.info(
            "EXECUTE %s %s @ %s size=$%.2f target=%.3f%% confidence=%.2f",
            opp.pair,
            opp.direction.value,
            opp.current_price,
            decision.position_size,
            target.target * 100,
            target.confidence,
            extra={
                "trace_id": trace_id,
                "pair": opp.pair,
                "trade_id": position.trade_id,
                "action": DecisionAction.EXECUTE.value,
                "position_size": decision.position_size,
                "confidence": target.confidence,
            },
        )
        return decision

    def _reject(
        self,
        opp: Opportunity,
        now_ms: int,
        reason: str,
        trace: DecisionTrace | None = None,
        confidence: Decimal = _ZERO,
    ) -> Decision:
        decision = Decision(
            timestamp_ms=now_ms,
            pair=opp.pair,
            action=DecisionAction.REJECT,
            direction=opp.direction,
            entry_price=opp.current_price,
            confidence=confidence,
            reason=reason,
            trace=trace or DecisionTrace(),
        )
        pacing = decision.trace.pacing
        self._logger.info(
            "REJECT %s: %s",
            opp.pair,
            reason,
            extra={
                "pair": opp.pair,
                "action": DecisionAction.REJECT.value,
                "reason": reason,
                "wait_ms": pacing.wait_ms if pacing else 0,
            },
        )
        return decision

    def _effective_available(self, now_ms: int) -> Decimal:
        """Ledger availability capped by the budget pacing has released so far."""
        available = self._ledger.available_budget
        if self._budget_mode and self._pacing.enabled and self._pacing.started:
            released = self._pacing.effective_budget(self._ledger.total_budget, now_ms)
            available = min(available, released - self._ledger.used_budget)
        return max(_ZERO, available)

    def _apply_balance(self, usd_balance: Decimal, now_ms: int) -> None:
        previous = self._ledger.total_budget
        total = self._ledger.update_total(usd_balance, now_ms)
        if not self._pacing.enabled:
            return
        if self._pacing.started:
            if total != previous:
                self._pacing.rescale_session(total, now_ms)
        elif total > _ZERO:
            self._pacing.start_session(total, now_ms)

    # ------------------------------------------------------------------
    # Collaborator hooks
    # ------------------------------------------------------------------

    async def update_session_budget(self, usd_balance: Decimal) -> Decimal:
        """Recompute total budget from the balance; pacing starts on the first positive total."""
        async with self._lock:
            self._apply_balance(usd_balance, self._clock())
            return self._ledger.total_budget

    async def remove_position(self, trade_id: str) -> Position | None:
        """Settlement hook: release a closed position's budget."""
        async with self._lock:
            return self._ledger.remove_position(trade_id)

    async def refresh_exchange_minimums(
        self,
        provider: KrakenMinimumProvider,
        pairs: list[str] | None = None,
    ) -> None:
        """Fetch minimums outside the lock, then swap them into the cache under it."""
        minimums = await provider.load_minimums(pairs or self._registry.pairs, self._clock())
        async with self._lock:
            self._minimums.update(minimums)

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        snapshot = self._ledger.snapshot()
        utilization = (
            snapshot.used_budget / snapshot.total_budget * 100
            if snapshot.total_budget > 0
            else _ZERO
        )
        return {
            "budget": {
                "total": snapshot.total_budget,
                "used": snapshot.used_budget,
                "available": snapshot.available_budget,
                "utilization_percent": utilization,
            },
            "positions": [asdict(p) for p in self._ledger.positions()],
            "active_positions": self._ledger.open_position_count,
            "pacing": self._pacing.status(),
            "last_update_ms": snapshot.last_update_ms,
        }

    def get_performance_stats(self) -> dict[str, Any]:
        recent = list(self._history)[-self._stats_window :]
        executed = [d for d in recent if d.is_execute]
        rejected = [d for d in recent if not d.is_execute]

        targets_by_pair: dict[str, list[Decimal]] = {}
        for d in executed:
            if d.exit_target is not None:
                targets_by_pair.setdefault(d.pair, []).append(d.exit_target)

        count = len(executed)
        return {
            "total_decisions": len(recent),
            "execution_rate": Decimal(count) / Decimal(len(recent)) if recent else _ZERO,
            "avg_confidence": sum((d.confidence for d in executed), _ZERO) / count
            if count
            else _ZERO,
            "avg_position_size": sum((d.position_size for d in executed), _ZERO) / count
            if count
            else _ZERO,
            "pair_distribution": dict(Counter(d.pair for d in executed)),
            "avg_target_by_pair": {
                pair: sum(values, _ZERO) / len(values) for pair, values in targets_by_pair.items()
            },
            "rejection_reasons": dict(Counter(d.rejection_category for d in rejected)),
            "current_status": self.get_status() if self._budget_mode else None,
        }

    # ------------------------------------------------------------------
    # Long-running tasks
    # ------------------------------------------------------------------

    async def run(self, opportunity_queue: asyncio.Queue[Opportunity]) -> None:
        """Consume opportunities until stopped or cancelled."""
        app_cfg = get_config().get_app_config().get("session", {})
        idle_timeout = app_cfg.get("consumer_idle_timeout_seconds", 60)
        self._running = True
        self._logger.info("Decision engine started")

        try:
            while self._running:
                try:
                    opportunity = await asyncio.wait_for(
                        opportunity_queue.get(), timeout=idle_timeout
                    )
                    decision = await self.generate_trading_decision(opportunity)
                    if self._decision_queue is not None:
                        await self._decision_queue.put(decision)

                except asyncio.TimeoutError:
                    self._logger.debug("No opportunities for %ss", idle_timeout)
                except DecisionDataError:
                    # Already logged with context; the opportunity is dropped.
                    continue
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self._logger.error("Decision loop error: %s", exc, exc_info=True)

        except asyncio.CancelledError:
            self._logger.info("Decision engine cancelled")
        finally:
            self._running = False

    async def run_pacing_timer(self) -> None:
        """Fire scheduled budget releases as they come due."""
        self._running = True
        interval_s = self._pacing.interval_ms / MS_PER_SECOND
        try:
            while self._running:
                next_ms = self._pacing.next_release_ms()
                if next_ms is None:
                    delay = interval_s
                else:
                    delay = max(0.0, (next_ms - self._clock()) / MS_PER_SECOND)
                await asyncio.sleep(delay)
                async with self._lock:
                    self._pacing.process_releases(self._clock())
        except asyncio.CancelledError:
            self._logger.info("Pacing timer cancelled")

    async def run_minimum_refresh(self, provider: KrakenMinimumProvider) -> None:
        """Refresh exchange minimums every ``minimum_refresh_interval_seconds``."""
        self._running = True
        try:
            while self._running:
                await asyncio.sleep(self._refresh_interval_s)
                try:
                    await self.refresh_exchange_minimums(provider)
                except DecisionDataError as exc:
                    self._logger.error("Exchange minimum refresh failed: %s", exc)
        except asyncio.CancelledError:
            self._logger.info("Minimum refresh cancelled")

    def stop(self) -> None:
        """Signal all engine loops to exit."""
        self._running = False
        self._logger.info("Decision engine stop requested")
