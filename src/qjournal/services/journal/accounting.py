"""Accrual and cash basis accounting views.

Accrual basis recognizes a trade's whole realized P&L on its entry date.
Cash basis recognizes P&L when each exit happens: every closed or partial
trade is expanded into one synthetic record per exit, carrying the P&L that
FIFO matching attributes to that exit. Per-exit P&L of a trade always sums to
its accrual realized P&L.
"""

from decimal import Decimal
from typing import Iterable

from qjournal.services.journal.lot_matcher import FifoLotMatcher
from qjournal.services.journal.models import CashBasisExit, PositionStatus, Trade

_HUNDRED = Decimal("100")


def exit_record_id(trade_id: str, index: int) -> str:
    return f"{trade_id}_exit_{index}"


def expand_exits(trade: Trade) -> list[Trade]:
    """
    Expand one trade into per-exit cash-basis records.

    Open trades, trades without exits and records that are already expanded
    are returned as a single-element list.
    """
    if trade.cash_basis_exit is not None:
        return [trade]
    if trade.effective_status == PositionStatus.OPEN or not trade.exits:
        return [trade]

    pnl_by_exit = FifoLotMatcher.from_trade(trade).realized_pnl_by_exit()
    capital = trade.portfolio_size

    records: list[Trade] = []
    for index, lot in enumerate(trade.exits):
        pnl = pnl_by_exit.get(index, Decimal("0"))
        impact = pnl / capital * _HUNDRED if capital else Decimal("0")
        records.append(
            trade.model_copy(
                update={
                    "trade_id": exit_record_id(trade.trade_id, index),
                    "source_trade_id": trade.trade_id,
                    "cash_basis_exit": CashBasisExit(
                        index=index,
                        date=lot.date,
                        quantity=lot.quantity,
                        price=lot.price,
                        pnl=pnl,
                    ),
                    "cash_pf_impact": impact,
                }
            )
        )
    return records


def expand_cash_basis(trades: Iterable[Trade]) -> list[Trade]:
    """Expand every closed or partial trade into its per-exit records."""
    expanded: list[Trade] = []
    for trade in trades:
        expanded.extend(expand_exits(trade))
    return expanded


def apply_accounting_method(trades: Iterable[Trade], cash_basis: bool) -> list[Trade]:
    """Accrual basis is the identity; cash basis expands exits."""
    if cash_basis:
        return expand_cash_basis(trades)
    return list(trades)


def collapse_to_source(trades: Iterable[Trade], cash_basis: bool = False) -> list[tuple[Trade, Decimal]]:
    """
    One (trade, recognized P&L) pair per journal record.

    Cash-basis rows sharing a source trade are merged by summing their
    attributed P&L; the first row seen represents the source.
    """
    merged: dict[str, tuple[Trade, Decimal]] = {}
    for trade in trades:
        key = trade.origin_id
        pnl = trade.accounting_pnl(cash_basis)
        if key in merged:
            first, total = merged[key]
            merged[key] = (first, total + pnl)
        else:
            merged[key] = (trade, pnl)
    return list(merged.values())
