"""Unit tests for accrual and cash basis views."""

from datetime import date
from decimal import Decimal

import pytest

from qjournal.services.journal.accounting import (
    apply_accounting_method,
    collapse_to_source,
    expand_cash_basis,
    expand_exits,
)
from qjournal.services.journal.normalizer import normalize_trade
from qjournal.services.journal.sizing import PortfolioSizeResolver


@pytest.fixture
def two_exit_trade(make_trade):
    """Normalized trade closed in two exits: 4 @ 110 then 6 @ 120."""
    trade = make_trade(
        "t1", exits=[("110", "4", date(2024, 1, 20)), ("120", "6", date(2024, 2, 5))]
    )
    return normalize_trade(trade, PortfolioSizeResolver(Decimal("100000")), date(2024, 3, 1))


class TestExpandExits:
    """Test per-exit record expansion."""

    def test_one_record_per_exit(self, two_exit_trade):
        """Test ids, dates and attributed P&L of expanded rows."""
        rows = expand_exits(two_exit_trade)

        assert [r.trade_id for r in rows] == ["t1_exit_0", "t1_exit_1"]
        assert [r.source_trade_id for r in rows] == ["t1", "t1"]
        assert [r.accounting_date(True) for r in rows] == [date(2024, 1, 20), date(2024, 2, 5)]
        assert [r.cash_basis_exit.pnl for r in rows] == [Decimal("40"), Decimal("120")]
        assert [r.cash_pf_impact for r in rows] == [Decimal("0.04"), Decimal("0.12")]

    def test_exit_pnl_sums_to_realized(self, two_exit_trade):
        """Test cash basis recognizes the same total as accrual."""
        rows = expand_exits(two_exit_trade)

        assert sum(r.accounting_pnl(True) for r in rows) == two_exit_trade.realized_pnl

    def test_open_trade_not_expanded(self, make_trade):
        """Test open trades stay a single row."""
        trade = make_trade("open")

        assert expand_exits(trade) == [trade]

    def test_expanded_row_not_expanded_again(self, two_exit_trade):
        """Test expansion is idempotent."""
        rows = expand_cash_basis([two_exit_trade])

        assert expand_cash_basis(rows) == rows


class TestAccountingMethod:
    """Test apply_accounting_method() and collapse_to_source()."""

    def test_accrual_is_identity(self, two_exit_trade):
        """Test accrual basis keeps one row per trade."""
        assert apply_accounting_method([two_exit_trade], cash_basis=False) == [two_exit_trade]

    def test_cash_basis_expands(self, two_exit_trade):
        """Test cash basis yields per-exit rows."""
        assert len(apply_accounting_method([two_exit_trade], cash_basis=True)) == 2

    def test_collapse_merges_rows_of_one_source(self, two_exit_trade, make_trade):
        """Test cash-basis rows collapse back to one entry per journal record."""
        rows = expand_cash_basis([two_exit_trade, make_trade("open")])

        collapsed = collapse_to_source(rows, cash_basis=True)

        assert [(t.origin_id, pnl) for t, pnl in collapsed] == [("t1", Decimal("160")), ("open", Decimal("0"))]
