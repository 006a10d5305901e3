"""
Multi-Pair Decision Engine: Main Entrypoint.

Single-process asyncio runner that orchestrates the engine's long-lived tasks:
    1. DecisionEngine.run         consumes opportunities, emits decisions
    2. run_pacing_timer           fires scheduled budget releases
    3. run_minimum_refresh        refreshes Kraken exchange minimums
    4. decision sink              logs decisions for downstream execution

Opportunities arrive on an in-memory asyncio.Queue from the signal
collaborators; decisions leave on a second queue. Exchange minimums are
loaded once before any task starts; failure to load them aborts start-up.

Usage:
    SESSION_USD_BALANCE=1000 python main.py
"""

from __future__ import annotations

import asyncio
import signal
import sys
from decimal import Decimal

from dotenv import load_dotenv

from bot_logging.logger_manager import create_module_log_directories, setup_module_logger
from config.loader import get_config, get_env_var
from config.validate import ConfigValidationError, validate_all_configs
from shared.serialization_utils import to_json
from shared.types import Decision, Opportunity

# ---------------------------------------------------------------------------
# Module logger
# ---------------------------------------------------------------------------
_logger = setup_module_logger("main", "main.log", module_folder="Main_Logs")


# ---------------------------------------------------------------------------
# Startup banner
# ---------------------------------------------------------------------------


def _log_banner(
    mode: str,
    pairs: list[str],
    usd_balance: Decimal,
    session_pct: str,
    pacing_strategy: str,
    kraken_url: str,
) -> None:
    """Log a concise startup summary."""
    _logger.info("=" * 60)
    _logger.info("Multi-Pair Decision Engine starting")
    _logger.info("=" * 60)
    _logger.info("  mode            : %s", mode)
    _logger.info("  pairs           : %s", ", ".join(pairs))
    _logger.info("  usd_balance     : $%s", usd_balance)
    _logger.info("  session_budget  : %s of balance", session_pct)
    _logger.info("  pacing          : %s", pacing_strategy)
    _logger.info("  kraken          : %s", kraken_url)
    _logger.info("=" * 60)


# ---------------------------------------------------------------------------
# Task done callback: detect unhandled exceptions
# ---------------------------------------------------------------------------


def _task_done_callback(
    task: asyncio.Task[None],
    shutdown_event: asyncio.Event,
) -> None:
    """Called when any engine task finishes (normally or with error)."""
    try:
        exc = task.exception()
    except asyncio.CancelledError:
        _logger.info("Task %s cancelled", task.get_name())
        return

    if exc is not None:
        _logger.critical(
            "Task %s failed with unhandled exception: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )
        shutdown_event.set()


async def _drain_decisions(decision_queue: asyncio.Queue[Decision]) -> None:
    """Log each decision; the execution collaborator attaches here."""
    while True:
        decision = await decision_queue.get()
        _logger.info("Decision: %s", to_json(decision.summary()))


# ---------------------------------------------------------------------------
# Main async entry
# ---------------------------------------------------------------------------


async def _run() -> None:
    """Wire all components and launch the concurrent tasks."""
    # ------------------------------------------------------------------
    # 1. Load environment and validate configuration
    # ------------------------------------------------------------------
    load_dotenv()
    create_module_log_directories()

    try:
        validate_all_configs()
    except ConfigValidationError as exc:
        _logger.critical("Config validation failed:\n%s", exc)
        sys.exit(1)

    cfg = get_config()
    engine_cfg = cfg.get_engine_config()
    pacing_cfg = cfg.get_pacing_config()
    session_cfg = cfg.get_app_config().get("session", {})

    usd_balance: Decimal = get_env_var("SESSION_USD_BALANCE", Decimal("0"), Decimal)

    # ------------------------------------------------------------------
    # 2. Initialize components (dependency order)
    # ------------------------------------------------------------------
    from core.decision_engine import DecisionEngine
    from core.exchange_minimums import DecisionDataError
    from core.pair_profiles import PairConfigurationError, PairProfileRegistry
    from data.kraken_minimums import KrakenMinimumProvider

    try:
        registry = PairProfileRegistry()
    except PairConfigurationError as exc:
        _logger.critical("Pair configuration invalid: %s", exc)
        sys.exit(1)

    provider = KrakenMinimumProvider()
    opportunity_queue: asyncio.Queue[Opportunity] = asyncio.Queue(
        maxsize=session_cfg.get("opportunity_queue_size", 256)
    )
    decision_queue: asyncio.Queue[Decision] = asyncio.Queue()
    engine = DecisionEngine(registry=registry, decision_queue=decision_queue)

    _log_banner(
        "budget" if engine_cfg.get("use_budget_mode", True) else "capital",
        registry.pairs,
        usd_balance,
        str(engine_cfg.get("session_budget_percent", "0.20")),
        pacing_cfg.get("strategy", "progressive") if pacing_cfg.get("enabled", True) else "off",
        cfg.get_exchange_config()["kraken"]["base_url"],
    )

    try:
        await engine.refresh_exchange_minimums(provider)
    except DecisionDataError as exc:
        _logger.critical("Cannot load exchange minimums: %s", exc)
        await provider.close()
        sys.exit(1)

    if usd_balance > 0:
        total = await engine.update_session_budget(usd_balance)
        _logger.info("Session budget: $%.2f", total)
    else:
        _logger.warning("SESSION_USD_BALANCE not set; waiting for balance on opportunities")

    # ------------------------------------------------------------------
    # 3. Signal handling for graceful shutdown
    # ------------------------------------------------------------------
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # ------------------------------------------------------------------
    # 4. Launch concurrent tasks
    # ------------------------------------------------------------------
    tasks = [
        asyncio.create_task(engine.run(opportunity_queue), name="decision_engine"),
        asyncio.create_task(engine.run_pacing_timer(), name="pacing_timer"),
        asyncio.create_task(engine.run_minimum_refresh(provider), name="minimum_refresh"),
        asyncio.create_task(_drain_decisions(decision_queue), name="decision_sink"),
    ]

    for t in tasks:
        t.add_done_callback(lambda done_task: _task_done_callback(done_task, shutdown_event))

    _logger.info("All tasks launched: %s", ", ".join(t.get_name() for t in tasks))

    # ------------------------------------------------------------------
    # 5. Wait for shutdown signal, then cancel tasks
    # ------------------------------------------------------------------
    try:
        await shutdown_event.wait()
    finally:
        _logger.info("Shutting down, cancelling tasks")
        engine.stop()

        for t in tasks:
            if not t.done():
                t.cancel()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for t, result in zip(tasks, results, strict=False):
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _logger.error("Task %s exited with error: %s", t.get_name(), result)

        _logger.info("Final stats: %s", engine.get_performance_stats())
        await provider.close()
        _logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        _logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
