"""
Unit tests for core/pacing.py.

Tests verify global and per-pair rate limits with exact wait times,
the interval trade cap, and the progressive / linear / adaptive budget
release strategies.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import STANDARD_PACING_CONFIG, T0, _d

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_pacing(mock_config_loader, **overrides):
    mock_config_loader.get_pacing_config.return_value = {**STANDARD_PACING_CONFIG, **overrides}
    from core.pacing import PacingController

    return PacingController()


@pytest.fixture
def pacing(mock_config_loader):
    controller = _make_pacing(mock_config_loader)
    controller.start_session(_d("200"), T0)
    return controller


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------


class TestRateLimits:

    def test_not_started_allows(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader)
        assert controller.check("XRP/USD", T0).allowed is True

    def test_gaps_enforced_without_session(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader)
        controller.record_trade("XRP/USD", T0)

        global_gap = controller.check("BTC/USD", T0 + 2000)
        assert global_gap.allowed is False
        assert global_gap.wait_ms == 3000

        pair_gap = controller.check("XRP/USD", T0 + 10_000)
        assert pair_gap.allowed is False
        assert pair_gap.wait_ms == 20_000
        assert controller.started is False

    def test_interval_cap_needs_session(self, mock_config_loader):
        controller = _make_pacing(
            mock_config_loader,
            min_time_between_trades_seconds="0",
            min_time_between_pair_trades_seconds="0",
            max_trades_per_interval=1,
        )
        controller.record_trade("XRP/USD", T0)
        assert controller.check("BTC/USD", T0 + 1).allowed is True

    def test_session_start_keeps_trade_history(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader)
        controller.record_trade("XRP/USD", T0)
        controller.start_session(_d("200"), T0 + 1000)
        assert controller.check("XRP/USD", T0 + 10_000).wait_ms == 20_000

    def test_first_trade_allowed(self, pacing):
        assert pacing.check("XRP/USD", T0).allowed is True

    def test_global_gap_enforced(self, pacing):
        pacing.record_trade("XRP/USD", T0)
        check = pacing.check("BTC/USD", T0 + 2000)
        assert check.allowed is False
        assert check.wait_ms == 3000
        assert check.reason == "Wait 3000ms between trades"

    def test_pair_gap_exact_remaining_wait(self, mock_config_loader):
        controller = _make_pacing(
            mock_config_loader,
            min_time_between_trades_seconds="1",
            min_time_between_pair_trades_seconds="5",
        )
        controller.start_session(_d("200"), T0)
        controller.record_trade("XRP/USD", T0)

        check = controller.check("XRP/USD", T0 + 1200)
        assert check.allowed is False
        assert check.wait_ms == 3800
        assert check.reason == "Wait 3800ms before trading XRP/USD again"

    def test_other_pair_unaffected_by_pair_gap(self, pacing):
        pacing.record_trade("XRP/USD", T0)
        assert pacing.check("BTC/USD", T0 + 5000).allowed is True
        assert pacing.check("XRP/USD", T0 + 5000).allowed is False

    def test_gap_elapsed_allows(self, pacing):
        pacing.record_trade("XRP/USD", T0)
        assert pacing.check("XRP/USD", T0 + 30_000).allowed is True

    def test_interval_cap(self, mock_config_loader):
        controller = _make_pacing(
            mock_config_loader,
            min_time_between_trades_seconds="0",
            min_time_between_pair_trades_seconds="0",
            max_trades_per_interval=2,
        )
        controller.start_session(_d("200"), T0)
        controller.record_trade("XRP/USD", T0)
        controller.record_trade("BTC/USD", T0 + 10)

        capped = controller.check("ETH/USD", T0 + 100_000)
        assert capped.allowed is False
        assert capped.wait_ms == 200_000

        assert controller.check("ETH/USD", T0 + 300_000).allowed is True
        assert controller.state.trades_in_interval == 0

    def test_disabled_always_allows(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader, enabled=False)
        controller.start_session(_d("200"), T0)
        controller.record_trade("XRP/USD", T0)
        assert controller.check("XRP/USD", T0 + 1).allowed is True
        assert controller.effective_budget(_d("200"), T0) == Decimal("200")


# ---------------------------------------------------------------------------
# Progressive release
# ---------------------------------------------------------------------------


class TestProgressiveRelease:

    def test_initial_release(self, pacing):
        assert pacing.effective_budget(_d("200"), T0) == Decimal("50")

    def test_schedule_increasing_and_sums_to_remainder(self, pacing):
        amounts = [e.amount for e in pacing.state.release_schedule]
        assert len(amounts) == 6
        assert amounts == sorted(amounts)
        assert sum(amounts, Decimal("0")) == Decimal("150")

    def test_each_release_fires_once(self, pacing):
        first = pacing.process_releases(T0 + 300_000)
        again = pacing.process_releases(T0 + 300_000)
        assert first > 0
        assert again == 0

    def test_full_budget_after_ramp(self, pacing):
        assert pacing.effective_budget(_d("200"), T0 + 1_800_000) == Decimal("200")
        assert pacing.next_release_ms() is None

    def test_released_never_decreases(self, pacing):
        previous = Decimal("0")
        for minute in range(0, 40):
            current = pacing.effective_budget(_d("200"), T0 + minute * 60_000)
            assert current >= previous
            previous = current


# ---------------------------------------------------------------------------
# Linear and adaptive release
# ---------------------------------------------------------------------------


class TestLinearRelease:

    def test_proportional_to_elapsed(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader, strategy="linear")
        controller.start_session(_d("200"), T0)
        assert controller.effective_budget(_d("200"), T0) == Decimal("50")
        assert controller.effective_budget(_d("200"), T0 + 900_000) == Decimal("100")
        assert controller.effective_budget(_d("200"), T0 + 3_600_000) == Decimal("200")


class TestAdaptiveRelease:

    def test_neutral_without_history(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader, strategy="adaptive")
        controller.start_session(_d("200"), T0)
        # 50 + 150 * 0.5
        assert controller.effective_budget(_d("200"), T0) == Decimal("125")

    def test_tracks_recent_execution_rate(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader, strategy="adaptive")
        controller.start_session(_d("200"), T0)
        for _ in range(4):
            controller.record_outcome(True)
        assert controller.effective_budget(_d("200"), T0) == Decimal("200")
        for _ in range(20):
            controller.record_outcome(False)
        assert controller.effective_budget(_d("200"), T0) == Decimal("50")


# ---------------------------------------------------------------------------
# Session total changes
# ---------------------------------------------------------------------------


class TestSessionRescale:

    def test_pending_releases_refit_to_larger_total(self, pacing):
        pacing.process_releases(T0 + 300_000)
        released = pacing.state.released_budget
        pacing.rescale_session(_d("400"), T0 + 300_000)

        pending = [e.amount for e in pacing.state.release_schedule if not e.released]
        assert len(pending) == 5
        assert pending == sorted(pending)
        assert pacing.state.released_budget == released
        assert released + sum(pending, Decimal("0")) == Decimal("400")
        assert pacing.effective_budget(_d("400"), T0 + 1_800_000) == Decimal("400")

    def test_total_after_ramp_released_at_once(self, pacing):
        assert pacing.effective_budget(_d("200"), T0 + 1_800_000) == Decimal("200")
        pacing.rescale_session(_d("300"), T0 + 1_900_000)
        assert pacing.effective_budget(_d("300"), T0 + 1_900_000) == Decimal("300")

    def test_smaller_total_never_lowers_released(self, pacing):
        pacing.rescale_session(_d("100"), T0)
        assert pacing.state.released_budget == Decimal("50")
        pending = [e.amount for e in pacing.state.release_schedule if not e.released]
        assert sum(pending, Decimal("0")) == Decimal("50")
        assert pacing.effective_budget(_d("100"), T0 + 1_800_000) == Decimal("100")

    def test_ignored_before_session(self, mock_config_loader):
        controller = _make_pacing(mock_config_loader)
        controller.rescale_session(_d("400"), T0)
        assert controller.started is False
        assert controller.state.release_schedule == []
