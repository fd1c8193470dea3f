"""Record normalizer.

Turns a raw journal record into a normalized one: FIFO-matched realized P&L,
open quantity, averages, holding period, stock move, reward:risk and the
portfolio-relative ratios. Inputs are never mutated; every call returns a new
Trade built with model_copy().
"""

from datetime import date as Date
from decimal import Decimal
from typing import Iterable

from qjournal.services.journal.lot_matcher import FifoLotMatcher, LotMatch, QueuedLot
from qjournal.services.journal.models import Direction, PositionStatus, Trade
from qjournal.services.journal.sizing import PortfolioSizeResolver
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


def _q(value: Decimal) -> Decimal:
    return value.quantize(_CENT)


def _weighted_average(pairs: Iterable[tuple[Decimal, Decimal]]) -> Decimal:
    """Quantity-weighted average of (value, quantity) pairs; 0 when empty."""
    total_qty = _ZERO
    total_value = _ZERO
    for value, qty in pairs:
        total_qty += qty
        total_value += value * qty
    if total_qty == 0:
        return _ZERO
    return total_value / total_qty


def _leg_days(start: Date | None, end: Date | None) -> int:
    """Whole days held by one leg, at least 1; 0 when a date is missing."""
    if start is None or end is None:
        return 0
    return max(1, (end - start).days)


def _signed_move(direction: Direction, entry: Decimal, reference: Decimal) -> Decimal:
    return reference - entry if direction == Direction.BUY else entry - reference


def calculate_holding_days(
    status: PositionStatus,
    matches: list[LotMatch],
    open_lots: list[QueuedLot],
    reference_date: Date,
) -> Decimal:
    """
    Quantity-weighted holding period.

    OPEN and PARTIAL positions average over the legs still open as of
    `reference_date`; CLOSED positions average over the matched exit legs.
    """
    if status == PositionStatus.CLOSED:
        pairs = [(Decimal(_leg_days(m.entry_date, m.exit_date)), m.quantity) for m in matches]
    else:
        pairs = [(Decimal(_leg_days(lot.date, reference_date)), lot.quantity) for lot in open_lots]
    return _q(_weighted_average(pairs))


def calculate_stock_move(
    status: PositionStatus,
    direction: Direction,
    avg_entry: Decimal,
    avg_exit: Decimal,
    cmp: Decimal | None,
    open_qty: Decimal,
    exited_qty: Decimal,
) -> Decimal:
    """Percentage move of the position; PARTIAL weights exited and open legs by quantity."""
    if avg_entry <= 0:
        return _ZERO
    total_qty = open_qty + exited_qty
    if total_qty == 0:
        return _ZERO

    if status == PositionStatus.CLOSED:
        if avg_exit <= 0:
            return _ZERO
        return _q(_signed_move(direction, avg_entry, avg_exit) / avg_entry * _HUNDRED)

    if status == PositionStatus.OPEN:
        if cmp is None:
            return _ZERO
        return _q(_signed_move(direction, avg_entry, cmp) / avg_entry * _HUNDRED)

    total_move = _ZERO
    if exited_qty > 0 and avg_exit > 0:
        total_move += _signed_move(direction, avg_entry, avg_exit) / avg_entry * _HUNDRED * exited_qty
    if open_qty > 0 and cmp is not None:
        total_move += _signed_move(direction, avg_entry, cmp) / avg_entry * _HUNDRED * open_qty
    return _q(total_move / total_qty)


def calculate_reward_risk(
    trade: Trade,
    status: PositionStatus,
    avg_exit: Decimal,
    open_qty: Decimal,
    exited_qty: Decimal,
) -> Decimal:
    """
    Quantity-weighted reward:risk over all entry lots.

    The initial entry is measured against the stop loss; pyramid entries
    against the trailing stop when one is set, else the stop loss. Lots
    without a stop or with zero risk contribute 0.
    """
    total_qty = trade.total_entry_qty
    if total_qty == 0:
        return _ZERO

    weighted = _ZERO
    for i, lot in enumerate(trade.entries):
        stop = trade.stop_loss if i == 0 else (trade.trailing_stop or trade.stop_loss)
        if stop is None:
            continue
        risk = abs(lot.price - stop)
        if risk == 0:
            continue

        realized = _signed_move(trade.direction, lot.price, avg_exit) if avg_exit > 0 else _ZERO
        potential = _signed_move(trade.direction, lot.price, trade.cmp) if trade.cmp is not None else _ZERO
        if status == PositionStatus.CLOSED:
            reward = realized
        elif status == PositionStatus.OPEN:
            reward = potential
        else:
            reward = (realized * exited_qty + potential * open_qty) / total_qty

        weighted += reward / risk * lot.quantity

    return _q(weighted / total_qty)


def normalize_trade(
    trade: Trade,
    resolver: PortfolioSizeResolver,
    reference_date: Date | None = None,
) -> Trade:
    """
    Normalize one trade.

    Args:
        trade: Raw (or previously normalized) journal record
        resolver: Capital base source for allocation and portfolio impact
        reference_date: "Now" for open legs; defaults to today

    Returns:
        New Trade with every derived field populated
    """
    if reference_date is None:
        reference_date = Date.today()

    matcher = FifoLotMatcher.from_trade(trade)
    matches = matcher.matches
    open_lots = matcher.open_lots
    status = trade.effective_status
    direction = trade.direction

    total_entry_qty = trade.total_entry_qty
    exited_qty = trade.total_exit_qty
    open_qty = total_entry_qty - exited_qty

    avg_entry = _weighted_average((lot.price, lot.quantity) for lot in trade.entries)
    avg_exit = _weighted_average((lot.price, lot.quantity) for lot in trade.exits)
    avg_open_entry = _weighted_average((lot.price, lot.quantity) for lot in open_lots)
    position_size = avg_entry * total_entry_qty

    realized_pnl = matcher.realized_pnl()
    unrealized_pnl = _ZERO
    if trade.cmp is not None and open_qty > 0:
        unrealized_pnl = _signed_move(direction, avg_open_entry, trade.cmp) * open_qty

    initial_price = trade.entries[0].price
    sl_pct = _ZERO
    if trade.stop_loss is not None:
        sl_pct = _q(abs(trade.stop_loss - initial_price) / initial_price * _HUNDRED)

    capital = resolver.resolve(trade.date)
    allocation_pct = _ZERO
    pf_impact = _ZERO
    if capital is not None:
        allocation_pct = _q(position_size / capital * _HUNDRED)
        # Full precision: summed into cumulative_pf_impact downstream
        pf_impact = realized_pnl / capital * _HUNDRED

    return trade.model_copy(
        update={
            "name": trade.name.strip().upper(),
            "status": status,
            "open_qty": open_qty,
            "exited_qty": exited_qty,
            "avg_entry": _q(avg_entry),
            "avg_exit": _q(avg_exit),
            "position_size": _q(position_size),
            "allocation_pct": allocation_pct,
            "sl_pct": sl_pct,
            "realized_pnl": realized_pnl,
            "unrealized_pnl": _q(unrealized_pnl),
            "holding_days": calculate_holding_days(status, matches, open_lots, reference_date),
            "stock_move_pct": calculate_stock_move(
                status, direction, avg_entry, avg_exit, trade.cmp, open_qty, exited_qty
            ),
            "reward_risk": calculate_reward_risk(trade, status, avg_exit, open_qty, exited_qty),
            "pf_impact": pf_impact,
            "cash_pf_impact": pf_impact,
            "portfolio_size": capital,
            "normalized": True,
        }
    )


def chronological_key(trade: Trade) -> tuple[bool, Date]:
    """Sort key by entry date; undated trades last."""
    return (trade.date is None, trade.date or Date.max)


def normalize_trades(
    trades: Iterable[Trade],
    resolver: PortfolioSizeResolver,
    reference_date: Date | None = None,
) -> list[Trade]:
    """
    Normalize a batch in chronological order.

    A trade that fails to normalize is logged and passed through unchanged.
    """
    if reference_date is None:
        reference_date = Date.today()

    results: list[Trade] = []
    for trade in sorted(trades, key=chronological_key):
        try:
            results.append(normalize_trade(trade, resolver, reference_date))
        except Exception as e:
            logger.warning("normalizer.trade_failed", trade_id=trade.trade_id, error=str(e))
            results.append(trade)
    return results
