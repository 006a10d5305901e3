"""
Shared pytest configuration and fixtures for decision engine tests.

Provides Decimal helpers, standard config dicts, a patched ConfigLoader
singleton, a fixed millisecond clock, and builders for profiles,
minimums and opportunities.
"""

from __future__ import annotations

import copy
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from config.loader import ConfigLoader
from shared.types import (
    ExchangeMinimum,
    MarketSnapshot,
    Opportunity,
    OpportunitySignal,
    PairCharacteristics,
    PairProfile,
    TradeDirection,
    VolatilityClass,
)

# ---------------------------------------------------------------------------
# Decimal helper
# ---------------------------------------------------------------------------


def _d(v) -> Decimal:
    """Shorthand Decimal factory."""
    return Decimal(str(v))


# ---------------------------------------------------------------------------
# Standard mock configs (can be overridden per test)
# ---------------------------------------------------------------------------

STANDARD_ENGINE_CONFIG = {
    "use_budget_mode": True,
    "session_budget_percent": "0.20",
    "min_trade_size": "10",
    "max_trade_size": "100",
    "price_layer_threshold": "0.001",
    "max_position_size_percent": "0.15",
    "max_total_exposure_percent": "1.0",
    "max_concurrent_positions": None,
    "min_confidence": "0.3",
    "round_trip_fee": "0.005",
    "decision_history_size": 1000,
    "stats_window": 100,
    "minimum_max_staleness_seconds": 7200,
    "minimum_refresh_interval_seconds": 3600,
}

STANDARD_PAIRS_CONFIG = {
    "pairs": {
        "XRP/USD": {
            "baseline_target": "0.006",
            "conservative_target": "0.005",
            "aggressive_target": "0.008",
            "volatility_class": "low",
            "spread_baseline": "0.0321",
            "min_success_rate": "0.35",
            "avg_hold_time_minutes": 155,
            "expected_volatility": "0.037",
            "characteristics": {
                "stability": "moderate",
                "liquidity": "high",
                "predictability": "moderate",
            },
        },
        "BTC/USD": {
            "baseline_target": "0.0035",
            "conservative_target": "0.003",
            "aggressive_target": "0.005",
            "volatility_class": "ultra_low",
            "spread_baseline": "0.0145",
            "min_success_rate": "0.45",
            "avg_hold_time_minutes": 120,
            "expected_volatility": "0.017",
            "characteristics": {
                "stability": "high",
                "liquidity": "ultra_high",
                "predictability": "high",
            },
        },
    }
}

STANDARD_PACING_CONFIG = {
    "enabled": True,
    "strategy": "progressive",
    "initial_budget_percent": "0.25",
    "ramp_up_duration_seconds": 1800,
    "budget_release_interval_seconds": 300,
    "min_time_between_trades_seconds": "5",
    "min_time_between_pair_trades_seconds": "30",
    "max_trades_per_interval": None,
    "success_window": 20,
}

STANDARD_FUSION_CONFIG = {
    "confidence": {
        "max_adjustment": "0.15",
        "micro_scale": "0.01",
        "temporal_scale": "0.02",
        "futures_scale": "1.0",
        "weights": {"micro": "0.2", "temporal": "0.3", "futures": "0.5"},
        "weights_total": "1.0",
    },
    "price": {
        "max_adjustment": "0.0005",
        "sigmoid_steepness": "500",
        "sigmoid_center": "0.002",
        "adverse_ratio": "0.5",
        "micro_weight": "0.1",
        "temporal_agree_factor": "1.2",
        "temporal_disagree_factor": "0.8",
    },
    "timing": {
        "base_urgency": "0.5",
        "volatility_impact": "1.0",
        "max_urgency_change": "0.5",
        "temporal_nudge": "0.1",
    },
    "position": {
        "min_confidence": "0.65",
        "base_multiplier": "1.0",
        "max_multiplier": "1.5",
        "scaling_power": "2.0",
    },
    "order_types": {
        "aggressive": {"confidence": "0.85", "urgency": "0.8"},
        "standard": {"confidence": "0.75", "urgency": "0.6"},
        "passive": {"confidence": "0.70"},
    },
}

STANDARD_EXCHANGE_CONFIG = {
    "kraken": {
        "base_url": "https://api.kraken.com/0/public",
        "timeout_seconds": 10,
        "asset_aliases": {"BTC": "XBT", "DOGE": "XDG"},
    }
}

STANDARD_APP_CONFIG = {
    "logging": {"log_dir": "logs", "deep_dive": False},
    "session": {"opportunity_queue_size": 16, "consumer_idle_timeout_seconds": 1},
}

T0 = 1_700_000_000_000  # fixed epoch ms


# ---------------------------------------------------------------------------
# Logging: keep test log files out of the repo
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True, scope="session")
def _isolated_log_dir(tmp_path_factory):
    import bot_logging.logger_manager as lm

    original = lm._LOG_DIR
    lm._LOG_DIR = str(tmp_path_factory.mktemp("logs"))
    yield
    lm._LOG_DIR = original


# ---------------------------------------------------------------------------
# Config loader fixture (patched singleton)
# ---------------------------------------------------------------------------


def make_loader(
    engine: dict | None = None,
    pairs: dict | None = None,
    pacing: dict | None = None,
    fusion: dict | None = None,
) -> MagicMock:
    loader = MagicMock()
    loader.get_engine_config.return_value = copy.deepcopy(engine or STANDARD_ENGINE_CONFIG)
    loader.get_pairs_config.return_value = copy.deepcopy(pairs or STANDARD_PAIRS_CONFIG)
    loader.get_pacing_config.return_value = copy.deepcopy(pacing or STANDARD_PACING_CONFIG)
    loader.get_fusion_config.return_value = copy.deepcopy(fusion or STANDARD_FUSION_CONFIG)
    loader.get_exchange_config.return_value = copy.deepcopy(STANDARD_EXCHANGE_CONFIG)
    loader.get_app_config.return_value = copy.deepcopy(STANDARD_APP_CONFIG)
    return loader


@pytest.fixture
def mock_config_loader():
    """
    Install a mock ConfigLoader singleton returning the standard configs.

    Usage in tests:
        def test_something(mock_config_loader):
            mock_config_loader.get_pacing_config.return_value = {...}
    """
    loader = make_loader()
    previous = ConfigLoader._instance
    ConfigLoader._instance = loader
    yield loader
    ConfigLoader._instance = previous


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced integer-millisecond clock."""

    def __init__(self, start_ms: int = T0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_profile(**overrides) -> PairProfile:
    fields = {
        "pair": "XRP/USD",
        "baseline_target": _d("0.006"),
        "conservative_target": _d("0.005"),
        "aggressive_target": _d("0.008"),
        "volatility_class": VolatilityClass.LOW,
        "spread_baseline": _d("0.0321"),
        "min_success_rate": _d("0.35"),
        "avg_hold_time_minutes": _d("155"),
        "expected_volatility": _d("0.037"),
        "characteristics": PairCharacteristics(),
    }
    fields.update(overrides)
    return PairProfile(**fields)


def make_minimum(
    min_volume="10",
    min_cost="0.5",
    updated_at_ms: int = T0,
    price_precision: int = 5,
    volume_precision: int = 8,
) -> ExchangeMinimum:
    return ExchangeMinimum(
        min_volume=_d(min_volume),
        min_cost=_d(min_cost),
        price_precision=price_precision,
        volume_precision=volume_precision,
        updated_at_ms=updated_at_ms,
    )


def make_opportunity(
    pair: str = "XRP/USD",
    price="0.5",
    direction: TradeDirection = TradeDirection.LONG,
    volatility="0.037",
    spread="0.0321",
    confidence="0.8",
    usd_balance=None,
    **overrides,
) -> Opportunity:
    fields = {
        "pair": pair,
        "current_price": _d(price),
        "direction": direction,
        "market": MarketSnapshot(
            volatility=_d(volatility) if volatility is not None else None,
            spread=_d(spread) if spread is not None else None,
        ),
        "signal": OpportunitySignal(confidence=_d(confidence) if confidence is not None else None),
        "usd_balance": _d(usd_balance) if usd_balance is not None else None,
    }
    fields.update(overrides)
    return Opportunity(**fields)
