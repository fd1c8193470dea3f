"""FIFO lot matcher for journal trades.

Entry lots are queued oldest first and every exit consumes the oldest
unconsumed entry quantity. Both buy and sell trades match FIFO: a journal
record describes one position, so there is no long/short netting.
"""

from collections import deque
from dataclasses import dataclass
from datetime import date as Date
from decimal import Decimal

from qjournal.services.journal.models import Direction, EntryLot, ExitLot, Trade


@dataclass(frozen=True)
class QueuedLot:
    """Unconsumed part of an entry lot."""

    entry_index: int
    price: Decimal
    quantity: Decimal
    date: Date | None


@dataclass(frozen=True)
class LotMatch:
    """Quantity of one entry lot closed by one exit."""

    exit_index: int
    entry_index: int
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    entry_date: Date | None
    exit_date: Date | None

    def pnl(self, direction: Direction) -> Decimal:
        if direction == Direction.BUY:
            return self.quantity * (self.exit_price - self.entry_price)
        return self.quantity * (self.entry_price - self.exit_price)


def _chronological(lots: list[EntryLot] | list[ExitLot]) -> list[int]:
    """Indices of lots in date order; undated lots keep declared order after dated ones."""
    dated = sorted((i for i, lot in enumerate(lots) if lot.date is not None), key=lambda i: (lots[i].date, i))
    undated = [i for i, lot in enumerate(lots) if lot.date is None]
    return dated + undated


class FifoLotMatcher:
    """
    Matches a trade's exits against its entries, oldest entry first.

    Example:
        >>> matcher = FifoLotMatcher.from_trade(trade)
        >>> matcher.matches        # [(exit 0 <- entry 0, 10), ...]
        >>> matcher.open_lots      # what is still held
    """

    def __init__(self, direction: Direction = Direction.BUY) -> None:
        """Initialize matcher."""
        self.direction = direction
        self._queue: deque[QueuedLot] = deque()
        self._matches: list[LotMatch] = []

    @classmethod
    def from_trade(cls, trade: Trade) -> "FifoLotMatcher":
        """Queue all entries of a trade and apply its exits in date order."""
        matcher = cls(trade.direction)
        for i in _chronological(trade.entries):
            lot = trade.entries[i]
            matcher.add_entry(i, lot)
        for i in _chronological(trade.exits):
            matcher.match_exit(i, trade.exits[i])
        return matcher

    def add_entry(self, entry_index: int, lot: EntryLot) -> None:
        """Append an entry lot to the back of the queue."""
        self._queue.append(QueuedLot(entry_index, lot.price, lot.quantity, lot.date))

    def match_exit(self, exit_index: int, lot: ExitLot) -> list[LotMatch]:
        """
        Consume entry quantity for one exit, oldest first.

        Splits a partially consumed entry lot and puts the remainder back at
        the front of the queue.

        Args:
            exit_index: Declared index of the exit on the trade
            lot: Exit lot

        Returns:
            Matches created by this exit in match order

        Raises:
            ValueError: If the exit exceeds the open quantity
        """
        available = self.open_quantity
        if lot.quantity > available:
            raise ValueError(f"Insufficient open quantity: need {lot.quantity}, have {available}")

        created: list[LotMatch] = []
        remaining = lot.quantity

        while remaining > 0 and self._queue:
            queued = self._queue.popleft()
            qty = min(queued.quantity, remaining)
            created.append(
                LotMatch(
                    exit_index=exit_index,
                    entry_index=queued.entry_index,
                    quantity=qty,
                    entry_price=queued.price,
                    exit_price=lot.price,
                    entry_date=queued.date,
                    exit_date=lot.date,
                )
            )
            if queued.quantity > qty:
                self._queue.appendleft(
                    QueuedLot(queued.entry_index, queued.price, queued.quantity - qty, queued.date)
                )
            remaining -= qty

        self._matches.extend(created)
        return created

    @property
    def matches(self) -> list[LotMatch]:
        return list(self._matches)

    @property
    def open_lots(self) -> list[QueuedLot]:
        return list(self._queue)

    @property
    def open_quantity(self) -> Decimal:
        return sum((lot.quantity for lot in self._queue), start=Decimal("0"))

    def realized_pnl(self) -> Decimal:
        """Total realized P&L over all matches."""
        return sum((m.pnl(self.direction) for m in self._matches), start=Decimal("0"))

    def realized_pnl_by_exit(self) -> dict[int, Decimal]:
        """Realized P&L attributed to each exit index."""
        totals: dict[int, Decimal] = {}
        for m in self._matches:
            totals[m.exit_index] = totals.get(m.exit_index, Decimal("0")) + m.pnl(self.direction)
        return totals
