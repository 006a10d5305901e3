"""
Exchange minimum cache and decision data errors.

Holds the per-pair minimum order volume/cost supplied by an external
provider. The decision pipeline only ever reads from this cache; it never
refreshes it mid-decision. A missing or stale entry is a hard failure:
sizing without an exchange minimum is not allowed.

Usage:
    cache = ExchangeMinimumCache()
    cache.update(await provider.load_minimums(pairs), now_ms)
    minimum = cache.get("XRP/USD", now_ms)   # raises if absent or stale
"""

from __future__ import annotations

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import DEFAULT_MINIMUM_MAX_STALENESS_SECONDS, MS_PER_SECOND
from shared.types import ExchangeMinimum


class DecisionDataError(Exception):
    """Raised when an input required for a decision is unavailable."""


class ExchangeMinimumUnavailableError(DecisionDataError):
    """Raised when no exchange minimum is known for a pair."""


class StaleExchangeDataError(DecisionDataError):
    """Raised when the cached exchange minimum is older than the staleness bound."""


class MarketDataUnavailableError(DecisionDataError):
    """Raised when the market snapshot lacks a required measurement."""


class ExchangeMinimumCache:
    """Per-pair ExchangeMinimum store with a freshness bound."""

    def __init__(self, max_staleness_seconds: int | None = None) -> None:
        if max_staleness_seconds is None:
            cfg = get_config().get_engine_config()
            max_staleness_seconds = int(
                cfg.get("minimum_max_staleness_seconds", DEFAULT_MINIMUM_MAX_STALENESS_SECONDS)
            )
        self._max_staleness_ms = max_staleness_seconds * MS_PER_SECOND
        self._minimums: dict[str, ExchangeMinimum] = {}

        self._logger = setup_module_logger(
            "exchange_minimums",
            "exchange_minimums.log",
            module_folder="Exchange_Minimum_Logs",
        )

    def update(self, minimums: dict[str, ExchangeMinimum]) -> None:
        """Replace entries for the given pairs; other pairs keep their entry."""
        for pair, minimum in minimums.items():
            self._minimums[pair] = minimum
            self._logger.info(
                "Minimum updated: %s min_volume=%s min_cost=%s",
                pair,
                minimum.min_volume,
                minimum.min_cost,
            )

    def get(self, pair: str, now_ms: int) -> ExchangeMinimum:
        minimum = self._minimums.get(pair)
        if minimum is None:
            raise ExchangeMinimumUnavailableError(
                f"No exchange minimum loaded for {pair}; refusing to size position"
            )
        age_ms = now_ms - minimum.updated_at_ms
        if age_ms > self._max_staleness_ms:
            raise StaleExchangeDataError(
                f"Exchange minimum for {pair} is {age_ms}ms old "
                f"(limit {self._max_staleness_ms}ms)"
            )
        return minimum

    def has(self, pair: str) -> bool:
        return pair in self._minimums

    @property
    def pairs(self) -> list[str]:
        return list(self._minimums)
