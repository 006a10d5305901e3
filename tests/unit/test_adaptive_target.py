"""
Unit tests for core/adaptive_target.py.

Tests verify the clamp property, each continuous adjustment term,
market assessment categories and overall condition, hold time,
expected return, confidence shaping and stop loss.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import _d, make_profile

from shared.types import (
    FuturesSignal,
    MarketCondition,
    MarketSnapshot,
    OpportunitySignal,
    PairCharacteristics,
    TradeDirection,
    VolatilityClass,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def calc(mock_config_loader):
    from core.adaptive_target import AdaptiveTargetCalculator

    return AdaptiveTargetCalculator()


@pytest.fixture
def xrp():
    return make_profile()


def _snapshot(volatility="0.037", spread="0.0321", volume="0", average_volume=None):
    return MarketSnapshot(
        volatility=_d(volatility) if volatility is not None else None,
        spread=_d(spread) if spread is not None else None,
        volume=_d(volume),
        average_volume=_d(average_volume) if average_volume is not None else None,
    )


def _target(calc, profile, signal=None, **snapshot):
    assessment = calc.assess_market_conditions(profile, _snapshot(**snapshot))
    return calc.calculate_adaptive_target(profile, assessment, signal)


# ---------------------------------------------------------------------------
# Continuous adjustment terms
# ---------------------------------------------------------------------------


class TestAdaptiveTarget:

    def test_baseline_conditions_return_baseline_exactly(self, calc, xrp):
        result = _target(calc, xrp)
        assert result.target == Decimal("0.006")
        assert result.volatility_adjustment == 0
        assert result.spread_adjustment == 0
        assert result.futures_adjustment == 0
        assert result.temporal_adjustment == 0
        assert result.factors == ()

    def test_double_volatility_adds_half_range(self, calc, xrp):
        result = _target(calc, xrp, volatility="0.074")
        assert result.volatility_adjustment == Decimal("0.0015")
        assert result.target == Decimal("0.0075")

    def test_volatility_modifier_bounded(self, calc, xrp):
        high = _target(calc, xrp, volatility="0.37")
        low = _target(calc, xrp, volatility="0.0037")
        assert high.volatility_adjustment == Decimal("0.0015")
        assert low.volatility_adjustment == Decimal("-0.0015")

    def test_spread_doubling_adds_one_tenth_percent(self, calc, xrp):
        result = _target(calc, xrp, spread="0.0642")
        assert abs(result.spread_adjustment - Decimal("0.001")) < Decimal("1e-20")

    def test_spread_adjustment_capped(self, calc, xrp):
        wide = _target(calc, xrp, spread="0.5136")  # 16x
        tight = _target(calc, xrp, spread="0.002006")  # 1/16x
        assert wide.spread_adjustment == Decimal("0.003")
        assert tight.spread_adjustment == Decimal("-0.001")

    def test_missing_spread_treated_as_baseline(self, calc, xrp):
        result = _target(calc, xrp, spread=None)
        assert result.spread_adjustment == 0

    def test_futures_signal_is_additive(self, calc, xrp):
        signal = OpportunitySignal(
            futures_signal=FuturesSignal(TradeDirection.SHORT, _d("0.5"), _d("0.9"))
        )
        result = _target(calc, xrp, signal=signal)
        # range 0.003 * 0.02 * 0.5
        assert result.futures_adjustment == Decimal("0.00003")
        assert result.target == Decimal("0.00603")

    def test_temporal_bias_uses_magnitude(self, calc, xrp):
        result = _target(calc, xrp, signal=OpportunitySignal(temporal_bias=_d("-0.5")))
        assert result.temporal_adjustment == Decimal("0.000015")
        assert result.target > xrp.baseline_target

    @pytest.mark.parametrize(
        ("volatility", "spread", "strength", "bias"),
        [
            ("10", "10", "1", "1"),
            ("0.000001", "0.000001", "0", "0"),
            ("0.5", "0.0001", "1", "-1"),
            ("0.001", "3", "0.3", "0.2"),
        ],
    )
    def test_target_always_within_pair_bounds(self, calc, xrp, volatility, spread, strength, bias):
        signal = OpportunitySignal(
            futures_signal=FuturesSignal(TradeDirection.LONG, _d(strength), _d("1")),
            temporal_bias=_d(bias),
        )
        result = _target(calc, xrp, signal=signal, volatility=volatility, spread=spread)
        assert xrp.conservative_target <= result.target <= xrp.aggressive_target

    def test_extremes_hit_bounds(self, calc, xrp):
        assert _target(calc, xrp, volatility="1", spread="1").target == xrp.aggressive_target
        assert (
            _target(calc, xrp, volatility="0.0001", spread="0.0001").target
            == xrp.conservative_target
        )


# ---------------------------------------------------------------------------
# Market assessment
# ---------------------------------------------------------------------------


class TestMarketAssessment:

    def test_missing_volatility_raises(self, calc, xrp):
        from core.exchange_minimums import MarketDataUnavailableError

        with pytest.raises(MarketDataUnavailableError):
            calc.assess_market_conditions(xrp, _snapshot(volatility=None))

    def test_categories(self, calc, xrp):
        a = calc.assess_market_conditions(
            xrp, _snapshot(volatility="0.06", spread="0.07", volume="50", average_volume="100")
        )
        assert (a.volatility, a.spread, a.volume) == ("high", "wide", "low")

    def test_missing_average_volume_defaults_to_one(self, calc, xrp):
        a = calc.assess_market_conditions(xrp, _snapshot(volume="2"))
        assert a.volume == "high"

    def test_favorable_condition(self, calc, xrp):
        a = calc.assess_market_conditions(
            xrp, _snapshot(spread="0.01", volume="200", average_volume="100")
        )
        assert a.overall == MarketCondition.FAVORABLE

    def test_unfavorable_condition(self, calc, xrp):
        a = calc.assess_market_conditions(
            xrp, _snapshot(volatility="0.01", spread="0.1", volume="10", average_volume="100")
        )
        assert a.overall == MarketCondition.UNFAVORABLE

    def test_baseline_is_normal(self, calc, xrp):
        a = calc.assess_market_conditions(xrp, _snapshot())
        assert a.overall == MarketCondition.NORMAL

    def test_futures_signal_recorded(self, calc, xrp):
        snapshot = MarketSnapshot(
            volatility=_d("0.037"),
            futures_signal=FuturesSignal(TradeDirection.LONG, _d("0.8"), _d("0.9")),
        )
        a = calc.assess_market_conditions(xrp, snapshot)
        assert a.futures_direction == TradeDirection.LONG
        assert a.futures_strength == Decimal("0.8")


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------


class TestDerivedMetrics:

    def test_hold_time_at_baseline(self, calc, xrp):
        assert _target(calc, xrp).expected_hold_minutes == 155

    def test_hold_time_grows_with_target(self, calc, xrp):
        # 155 * sqrt(1.25) = 173.3
        assert _target(calc, xrp, volatility="0.074").expected_hold_minutes == 173

    def test_expected_return_conservative_boost(self, calc, xrp):
        # (0.006 - 0.005) * 0.35 * 1.1
        assert calc.expected_return(xrp, _d("0.006")) == Decimal("0.000385")

    def test_expected_return_aggressive_discount(self, calc):
        profile = make_profile(
            baseline_target=_d("0.004"), conservative_target=_d("0.003"), aggressive_target=_d("0.01")
        )
        # ratio 2.0 > 1.5: (0.008 - 0.005) * 0.35 * 0.7
        assert calc.expected_return(profile, _d("0.008")) == Decimal("0.000735")

    def test_expected_return_never_negative(self, calc, xrp):
        assert calc.expected_return(xrp, _d("0.004")) == 0

    def test_confidence_defaults_when_signal_has_none(self, calc, xrp):
        result = _target(calc, xrp, signal=OpportunitySignal())
        assert result.confidence == Decimal("0.7")

    def test_confidence_uses_signal(self, calc, xrp):
        result = _target(calc, xrp, signal=OpportunitySignal(confidence=_d("0.8")))
        assert result.confidence == Decimal("0.8")

    def test_aggressive_target_penalized(self, calc, xrp):
        result = _target(
            calc,
            xrp,
            signal=OpportunitySignal(confidence=_d("0.8")),
            volatility="0.2",
            spread="0.0642",
        )
        assert result.target == xrp.aggressive_target
        assert result.confidence == Decimal("0.65")

    def test_high_predictability_bonus(self, calc):
        profile = make_profile(characteristics=PairCharacteristics(predictability="high"))
        result = _target(calc, profile, signal=OpportunitySignal(confidence=_d("0.8")))
        assert result.confidence == Decimal("0.9")

    def test_confidence_clamped(self, calc, xrp):
        low = _target(calc, xrp, signal=OpportunitySignal(confidence=_d("-1")))
        high = _target(calc, xrp, signal=OpportunitySignal(confidence=_d("5")))
        assert low.confidence == Decimal("0.1")
        assert high.confidence == Decimal("1.0")


# ---------------------------------------------------------------------------
# Stop loss
# ---------------------------------------------------------------------------


class TestStopLoss:

    def test_long_stop_below_entry(self, calc, xrp):
        stop = calc.calculate_stop_loss(xrp, _d("0.5"), TradeDirection.LONG)
        assert stop.percent == Decimal("0.01")
        assert stop.price == Decimal("0.495")

    def test_short_high_volatility(self, calc):
        profile = make_profile(volatility_class=VolatilityClass.HIGH)
        stop = calc.calculate_stop_loss(profile, _d("10"), TradeDirection.SHORT)
        assert stop.percent == Decimal("0.015")
        assert stop.price == Decimal("10.15")

    def test_ultra_low(self, calc):
        profile = make_profile(volatility_class=VolatilityClass.ULTRA_LOW)
        stop = calc.calculate_stop_loss(profile, _d("100"), TradeDirection.LONG)
        assert stop.price == Decimal("99.3")
