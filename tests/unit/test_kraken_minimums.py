"""
Unit tests for data/kraken_minimums.py.

All tests mock the AssetPairs endpoint via aioresponses. They verify
symbol aliasing, parsing of ordermin/costmin/precision, and that every
failure mode raises ExchangeMinimumUnavailableError instead of
substituting defaults.
"""

from __future__ import annotations

import re
from decimal import Decimal

import pytest
from aioresponses import aioresponses
from conftest import T0

# aioresponses needs regex patterns to match URLs with query params
RE_ASSET_PAIRS = re.compile(r"https://api\.kraken\.com/0/public/AssetPairs")

XRP_INFO = {
    "altname": "XRPUSD",
    "wsname": "XRP/USD",
    "ordermin": "10",
    "costmin": "0.5",
    "pair_decimals": 5,
    "lot_decimals": 8,
}
BTC_INFO = {
    "altname": "XBTUSD",
    "wsname": "XBT/USD",
    "ordermin": "0.0001",
    "costmin": "0.5",
    "pair_decimals": 1,
    "lot_decimals": 8,
}


def _response(**result):
    return {"error": [], "result": result}


@pytest.fixture
async def provider(mock_config_loader):
    from data.kraken_minimums import KrakenMinimumProvider

    client = KrakenMinimumProvider()
    yield client
    await client.close()


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------


class TestExchangeSymbol:

    def test_btc_aliased_to_xbt(self, mock_config_loader):
        from data.kraken_minimums import KrakenMinimumProvider

        assert KrakenMinimumProvider().exchange_symbol("BTC/USD") == "XBT/USD"

    def test_unaliased_pair_unchanged(self, mock_config_loader):
        from data.kraken_minimums import KrakenMinimumProvider

        assert KrakenMinimumProvider().exchange_symbol("XRP/USD") == "XRP/USD"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadMinimums:

    @pytest.mark.asyncio
    async def test_parses_requested_pairs(self, provider):
        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, payload=_response(XXRPZUSD=XRP_INFO, XXBTZUSD=BTC_INFO))
            minimums = await provider.load_minimums(["XRP/USD", "BTC/USD"], now_ms=T0)

        assert set(minimums) == {"XRP/USD", "BTC/USD"}
        xrp = minimums["XRP/USD"]
        assert xrp.min_volume == Decimal("10")
        assert xrp.min_cost == Decimal("0.5")
        assert xrp.price_precision == 5
        assert xrp.updated_at_ms == T0
        assert minimums["BTC/USD"].min_volume == Decimal("0.0001")

    @pytest.mark.asyncio
    async def test_matches_on_altname(self, provider):
        info = {**XRP_INFO, "wsname": ""}
        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, payload=_response(XXRPZUSD=info))
            minimums = await provider.load_minimums(["XRP/USD"], now_ms=T0)
        assert minimums["XRP/USD"].min_cost == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_empty_pairs_skips_request(self, provider):
        with aioresponses():
            assert await provider.load_minimums([]) == {}

    @pytest.mark.asyncio
    async def test_missing_pair_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, payload=_response(XXRPZUSD=XRP_INFO))
            with pytest.raises(ExchangeMinimumUnavailableError, match="BTC/USD"):
                await provider.load_minimums(["XRP/USD", "BTC/USD"], now_ms=T0)

    @pytest.mark.asyncio
    async def test_api_error_list_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        with aioresponses() as mocked:
            mocked.get(
                RE_ASSET_PAIRS, payload={"error": ["EQuery:Unknown asset pair"], "result": {}}
            )
            with pytest.raises(ExchangeMinimumUnavailableError, match="Unknown asset pair"):
                await provider.load_minimums(["XRP/USD"], now_ms=T0)

    @pytest.mark.asyncio
    async def test_http_error_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, status=500)
            with pytest.raises(ExchangeMinimumUnavailableError, match="Unable to load"):
                await provider.load_minimums(["XRP/USD"], now_ms=T0)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, exception=TimeoutError("timeout"))
            with pytest.raises(ExchangeMinimumUnavailableError):
                await provider.load_minimums(["XRP/USD"], now_ms=T0)

    @pytest.mark.asyncio
    async def test_missing_costmin_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        info = {k: v for k, v in XRP_INFO.items() if k != "costmin"}
        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, payload=_response(XXRPZUSD=info))
            with pytest.raises(ExchangeMinimumUnavailableError, match="Missing minimum"):
                await provider.load_minimums(["XRP/USD"], now_ms=T0)

    @pytest.mark.asyncio
    async def test_zero_ordermin_raises(self, provider):
        from core.exchange_minimums import ExchangeMinimumUnavailableError

        with aioresponses() as mocked:
            mocked.get(RE_ASSET_PAIRS, payload=_response(XXRPZUSD={**XRP_INFO, "ordermin": "0"}))
            with pytest.raises(ExchangeMinimumUnavailableError, match="Invalid minimums"):
                await provider.load_minimums(["XRP/USD"], now_ms=T0)
