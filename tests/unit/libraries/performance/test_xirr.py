"""Tests for the XIRR solver."""

from datetime import date
from decimal import Decimal

import pytest

from qjournal.libraries.performance.models import CashFlowEvent, XirrStatus
from qjournal.libraries.performance.xirr import build_cash_flows, solve_xirr, xirr_cache_key


class TestSolveXirr:
    """Test solve_xirr()."""

    def test_single_period_ten_percent(self):
        """Test one year from 1000 to 1100 is 10%."""
        result = solve_xirr(date(2023, 1, 1), Decimal("1000"), date(2024, 1, 1), Decimal("1100"))

        assert result.is_determined
        assert result.method == "newton"
        assert result.rate == pytest.approx(0.1, abs=1e-6)
        assert result.rate_pct == Decimal("10.00")

    def test_recovers_known_rate_with_deposit(self):
        """Test the solver recovers the rate used to build the flows."""
        # Arrange
        rate = 0.15
        start, deposit_day, end = date(2024, 1, 1), date(2024, 4, 1), date(2025, 1, 1)
        end_value = 10000 * (1 + rate) ** ((end - start).days / 365) + 5000 * (1 + rate) ** (
            (end - deposit_day).days / 365
        )

        # Act
        result = solve_xirr(
            start,
            Decimal("10000"),
            end,
            Decimal(str(end_value)),
            [CashFlowEvent(date=deposit_day, amount=Decimal("5000"))],
        )

        # Assert
        assert result.status == XirrStatus.CONVERGED
        assert result.rate == pytest.approx(rate, abs=1e-6)

    def test_negative_rate(self):
        """Test a loss gives a negative rate."""
        result = solve_xirr(date(2023, 1, 1), Decimal("1000"), date(2024, 1, 1), Decimal("900"))

        assert result.rate == pytest.approx(-0.1, abs=1e-6)

    def test_bisection_fallback(self):
        """Test a guess that throws Newton out of the bracket falls back to bisection."""
        result = solve_xirr(date(2023, 1, 1), Decimal("1000"), date(2024, 1, 1), Decimal("1100"), guess=50.0)

        assert result.is_determined
        assert result.method == "bisection"
        assert result.rate == pytest.approx(0.1, abs=1e-6)

    @pytest.mark.parametrize(
        "start_capital,end_date,end_capital",
        [
            (Decimal("1000"), date(2023, 1, 1), Decimal("1100")),
            (Decimal("1000"), date(2022, 6, 1), Decimal("1100")),
            (Decimal("0"), date(2024, 1, 1), Decimal("1100")),
            (Decimal("1000"), date(2024, 1, 1), Decimal("0")),
        ],
    )
    def test_undetermined_inputs(self, start_capital, end_date, end_capital):
        """Test degenerate histories report undetermined with rate 0."""
        result = solve_xirr(date(2023, 1, 1), start_capital, end_date, end_capital)

        assert result.status == XirrStatus.UNDETERMINED
        assert not result.is_determined
        assert result.rate == 0.0

    def test_no_root_in_bracket_is_undetermined(self):
        """Test a history whose rate lies outside the bracket."""
        result = solve_xirr(
            date(2023, 1, 1), Decimal("1"), date(2024, 1, 1), Decimal("1000000"), bracket=(-0.5, 1.0)
        )

        assert result.status == XirrStatus.UNDETERMINED


class TestCashFlows:
    """Test flow construction and cache keys."""

    def test_build_cash_flows_sign_convention(self):
        """Test investor signs and date ordering."""
        flows = build_cash_flows(
            date(2024, 1, 1),
            Decimal("1000"),
            date(2024, 12, 31),
            Decimal("1500"),
            [
                CashFlowEvent(date=date(2024, 6, 1), amount=Decimal("-200")),
                CashFlowEvent(date=date(2024, 3, 1), amount=Decimal("300")),
            ],
        )

        assert flows == [
            (date(2024, 1, 1), -1000.0),
            (date(2024, 3, 1), -300.0),
            (date(2024, 6, 1), 200.0),
            (date(2024, 12, 31), 1500.0),
        ]

    def test_cache_key_ignores_flow_order_and_scale(self):
        """Test equal histories share a fingerprint."""
        a = CashFlowEvent(date=date(2024, 3, 1), amount=Decimal("300"))
        b = CashFlowEvent(date=date(2024, 6, 1), amount=Decimal("-200.00"))

        key1 = xirr_cache_key(date(2024, 1, 1), Decimal("1000"), date(2024, 12, 31), Decimal("1500"), [a, b])
        key2 = xirr_cache_key(date(2024, 1, 1), Decimal("1000.00"), date(2024, 12, 31), Decimal("1500"), [b, a])

        assert key1 == key2
        assert key1.startswith("1704067200000-1000-")
        assert key1.endswith("1709251200000:300,1717200000000:-200")

    def test_cache_key_distinguishes_inputs(self):
        """Test different capital gives a different key."""
        key1 = xirr_cache_key(date(2024, 1, 1), Decimal("1000"), date(2024, 12, 31), Decimal("1500"))
        key2 = xirr_cache_key(date(2024, 1, 1), Decimal("1000"), date(2024, 12, 31), Decimal("1501"))

        assert key1 != key2
