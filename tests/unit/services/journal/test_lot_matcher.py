"""Unit tests for FIFO lot matching."""

from datetime import date
from decimal import Decimal

import pytest

from qjournal.services.journal.lot_matcher import FifoLotMatcher
from qjournal.services.journal.models import Direction, EntryLot, ExitLot, Trade


def _pyramid_trade(direction: str = "buy") -> Trade:
    return Trade(
        trade_id="t1",
        direction=direction,
        date=date(2024, 1, 1),
        entries=[
            EntryLot(price=Decimal("100"), quantity=Decimal("10"), date=date(2024, 1, 1)),
            EntryLot(price=Decimal("110"), quantity=Decimal("10"), date=date(2024, 1, 5)),
        ],
        exits=[ExitLot(price=Decimal("120"), quantity=Decimal("15"), date=date(2024, 1, 10))],
    )


class TestFifoLotMatcher:
    """Test FIFO matching of exits against entries."""

    def test_exit_consumes_oldest_entry_first(self):
        """Test an exit spanning two lots splits the second one."""
        # Arrange & Act
        matcher = FifoLotMatcher.from_trade(_pyramid_trade())

        # Assert
        matches = matcher.matches
        assert [(m.entry_index, m.quantity) for m in matches] == [(0, Decimal("10")), (1, Decimal("5"))]
        assert matcher.realized_pnl() == Decimal("250")
        assert matcher.open_quantity == Decimal("5")
        assert matcher.open_lots[0].entry_index == 1
        assert matcher.open_lots[0].price == Decimal("110")

    def test_sell_direction_profits_on_lower_exit(self):
        """Test short P&L is entry minus exit."""
        trade = Trade(
            trade_id="s1",
            direction=Direction.SELL,
            entries=[EntryLot(price=Decimal("100"), quantity=Decimal("10"))],
            exits=[ExitLot(price=Decimal("90"), quantity=Decimal("10"))],
        )

        matcher = FifoLotMatcher.from_trade(trade)

        assert matcher.realized_pnl() == Decimal("100")
        assert matcher.open_quantity == Decimal("0")

    def test_exits_applied_in_date_order(self):
        """Test a later-declared but earlier-dated exit matches first."""
        # Arrange
        trade = Trade(
            trade_id="t1",
            entries=[
                EntryLot(price=Decimal("100"), quantity=Decimal("5"), date=date(2024, 1, 1)),
                EntryLot(price=Decimal("200"), quantity=Decimal("5"), date=date(2024, 1, 2)),
            ],
            exits=[
                ExitLot(price=Decimal("300"), quantity=Decimal("5"), date=date(2024, 2, 1)),
                ExitLot(price=Decimal("150"), quantity=Decimal("5"), date=date(2024, 1, 15)),
            ],
        )

        # Act
        by_exit = FifoLotMatcher.from_trade(trade).realized_pnl_by_exit()

        # Assert - exit 1 is older and takes the 100 lot
        assert by_exit == {1: Decimal("250"), 0: Decimal("500")}

    def test_match_exit_rejects_oversell(self):
        """Test exiting more than is open raises."""
        matcher = FifoLotMatcher()
        matcher.add_entry(0, EntryLot(price=Decimal("10"), quantity=Decimal("2")))

        with pytest.raises(ValueError, match="Insufficient open quantity"):
            matcher.match_exit(0, ExitLot(price=Decimal("12"), quantity=Decimal("3")))

    def test_realized_pnl_by_exit_sums_to_total(self):
        """Test per-exit attribution adds up to realized P&L."""
        matcher = FifoLotMatcher.from_trade(_pyramid_trade())

        assert sum(matcher.realized_pnl_by_exit().values()) == matcher.realized_pnl()
