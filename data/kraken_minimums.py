"""
Kraken exchange-minimum provider.

Fetches ``ordermin`` / ``costmin`` / precision for the tracked pairs from
Kraken's public AssetPairs endpoint. Any pair the exchange does not
return, or returns with missing or non-positive minimums, raises
ExchangeMinimumUnavailableError; no default values are ever substituted.

Usage:
    provider = KrakenMinimumProvider()
    minimums = await provider.load_minimums(["XRP/USD", "BTC/USD"])
    await provider.close()
"""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation
from typing import Any, cast

import aiohttp

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from core.exchange_minimums import ExchangeMinimumUnavailableError
from shared.constants import DEFAULT_PRICE_PRECISION, DEFAULT_VOLUME_PRECISION
from shared.types import ExchangeMinimum


class KrakenMinimumProvider:
    """Async AssetPairs client producing ExchangeMinimum records."""

    def __init__(self) -> None:
        cfg = get_config().get_exchange_config().get("kraken", {})
        self._base_url: str = cfg.get("base_url", "https://api.kraken.com/0/public").rstrip("/")
        self._timeout: float = cfg.get("timeout_seconds", 10)
        self._aliases: dict[str, str] = cfg.get("asset_aliases", {"BTC": "XBT"})

        # Lazy-init aiohttp session
        self._session: aiohttp.ClientSession | None = None

        self._logger = setup_module_logger(
            "kraken_minimums", "kraken_minimums.log", module_folder="Exchange_Minimum_Logs"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def exchange_symbol(self, pair: str) -> str:
        """'BTC/USD' -> 'XBT/USD' using the configured asset aliases."""
        base, _, quote = pair.partition("/")
        return f"{self._aliases.get(base, base)}/{self._aliases.get(quote, quote)}"

    async def load_minimums(
        self, pairs: list[str], now_ms: int | None = None
    ) -> dict[str, ExchangeMinimum]:
        """
        Load minimums for every requested pair.

        Raises ``ExchangeMinimumUnavailableError`` if the request fails or
        any pair is missing from the response.
        """
        if not pairs:
            return {}
        if now_ms is None:
            now_ms = int(time.time() * 1000)

        query = ",".join(self.exchange_symbol(p).replace("/", "") for p in pairs)
        try:
            payload = await self._get("AssetPairs", params={"pair": query})
        except (aiohttp.ClientError, TimeoutError) as exc:
            self._logger.error("AssetPairs request failed: %s", exc)
            raise ExchangeMinimumUnavailableError(
                f"Unable to load exchange minimums from Kraken: {exc}"
            ) from exc

        errors = payload.get("error") or []
        if errors:
            raise ExchangeMinimumUnavailableError(f"Kraken AssetPairs error: {errors}")

        by_symbol: dict[str, dict[str, Any]] = {}
        for info in (payload.get("result") or {}).values():
            if info.get("wsname"):
                by_symbol[info["wsname"]] = info
            if info.get("altname"):
                by_symbol[info["altname"]] = info

        minimums: dict[str, ExchangeMinimum] = {}
        for pair in pairs:
            symbol = self.exchange_symbol(pair)
            info = by_symbol.get(symbol) or by_symbol.get(symbol.replace("/", ""))
            if info is None:
                raise ExchangeMinimumUnavailableError(f"Kraken returned no asset pair for {pair}")
            minimums[pair] = self._parse(pair, info, now_ms)
            self._logger.info(
                "Loaded minimums for %s: min_volume=%s min_cost=%s",
                pair,
                minimums[pair].min_volume,
                minimums[pair].min_cost,
            )
        return minimums

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(pair: str, info: dict[str, Any], now_ms: int) -> ExchangeMinimum:
        try:
            min_volume = Decimal(str(info["ordermin"]))
            min_cost = Decimal(str(info["costmin"]))
        except (KeyError, InvalidOperation) as exc:
            raise ExchangeMinimumUnavailableError(
                f"Missing minimum volume or cost for {pair}: "
                f"ordermin={info.get('ordermin')} costmin={info.get('costmin')}"
            ) from exc
        if min_volume <= 0 or min_cost <= 0:
            raise ExchangeMinimumUnavailableError(
                f"Invalid minimums for {pair}: min_volume={min_volume} min_cost={min_cost}"
            )
        return ExchangeMinimum(
            min_volume=min_volume,
            min_cost=min_cost,
            price_precision=int(info.get("pair_decimals", DEFAULT_PRICE_PRECISION)),
            volume_precision=int(info.get("lot_decimals", DEFAULT_VOLUME_PRECISION)),
            updated_at_ms=now_ms,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _get(self, endpoint: str, params: dict[str, str]) -> dict[str, Any]:
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        url = f"{self._base_url}/{endpoint}"
        async with session.get(url, params=params, timeout=timeout) as resp:
            resp.raise_for_status()
            return cast(dict[str, Any], await resp.json())
