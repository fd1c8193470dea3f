"""Trade journal service: records, normalization and portfolio sizing.

Key components:
- Models: Trade, EntryLot, ExitLot, CapitalChange, Direction, PositionStatus
- FifoLotMatcher: FIFO matching of exits against entry lots
- PortfolioSizeResolver: Capital base per date/month
- normalize_trade / normalize_trades: Derived field computation
- Accounting: Accrual and cash basis views of a trade collection
- load_journal: YAML journal file loader

Example:
    >>> from qjournal.services.journal import PortfolioSizeResolver, normalize_trades
    >>> resolver = PortfolioSizeResolver(Decimal("100000"))
    >>> normalized = normalize_trades(trades, resolver)
"""

from qjournal.services.journal.accounting import apply_accounting_method, collapse_to_source, expand_cash_basis
from qjournal.services.journal.loader import JournalFile, load_journal
from qjournal.services.journal.lot_matcher import FifoLotMatcher, LotMatch
from qjournal.services.journal.models import (
    CapitalChange,
    CashBasisExit,
    Direction,
    EntryLot,
    ExitLot,
    PortfolioSizeLookup,
    PositionStatus,
    Trade,
)
from qjournal.services.journal.normalizer import normalize_trade, normalize_trades
from qjournal.services.journal.sizing import PortfolioSizeResolver, month_key, normalize_month, parse_month_key

__all__ = [
    "CapitalChange",
    "CashBasisExit",
    "Direction",
    "EntryLot",
    "ExitLot",
    "FifoLotMatcher",
    "JournalFile",
    "LotMatch",
    "PortfolioSizeLookup",
    "PortfolioSizeResolver",
    "PositionStatus",
    "Trade",
    "apply_accounting_method",
    "collapse_to_source",
    "expand_cash_basis",
    "load_journal",
    "month_key",
    "normalize_month",
    "normalize_trade",
    "normalize_trades",
    "parse_month_key",
]
