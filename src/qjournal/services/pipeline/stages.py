"""Pipeline stage functions.

Each stage is a pure function of the previous stage's output (normalization
is a coroutine because it goes through an executor). TradePipeline chains
them in STAGES order.
"""

from datetime import date as Date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from qjournal.services.journal.accounting import apply_accounting_method
from qjournal.services.journal.models import PositionStatus, Trade
from qjournal.services.journal.sizing import PortfolioSizeResolver
from qjournal.services.pipeline.executor import TradeBatchExecutor
from qjournal.services.pipeline.models import (
    DateRangeFilter,
    NormalizationRequest,
    PipelineError,
    SortDescriptor,
)

PORTFOLIO_SIZING = "portfolio-sizing"
TRADE_NORMALIZATION = "trade-normalization"
ACCOUNTING_EXPANSION = "accounting-expansion"
FILTERING = "filtering"
SORTING = "sorting"
CUMULATIVE_PERFORMANCE = "cumulative-performance"

STAGES: tuple[tuple[str, str], ...] = (
    (PORTFOLIO_SIZING, "Portfolio sizing"),
    (TRADE_NORMALIZATION, "Trade normalization"),
    (ACCOUNTING_EXPANSION, "Accounting expansion"),
    (FILTERING, "Filtering"),
    (SORTING, "Sorting"),
    (CUMULATIVE_PERFORMANCE, "Cumulative performance"),
)

_UNSORTABLE = frozenset({"entries", "exits", "cash_basis_exit"})
SORTABLE_COLUMNS = frozenset(name for name in Trade.model_fields if name not in _UNSORTABLE)


def compute_portfolio_sizes(trades: Iterable[Trade], resolver: PortfolioSizeResolver) -> dict[str, Decimal | None]:
    """Capital base for every month that has a dated trade."""
    return resolver.sizes_for(trade.date for trade in trades)


async def normalize_batch(
    trades: list[Trade],
    portfolio_sizes: dict[str, Decimal | None],
    executor: TradeBatchExecutor,
    default_portfolio_size: Decimal,
    reference_date: Date | None = None,
) -> list[Trade]:
    """
    Normalize through an executor.

    Raises:
        PipelineError: If the executor answers with an error
    """
    request = NormalizationRequest(
        trades=trades,
        portfolio_sizes=portfolio_sizes,
        default_portfolio_size=default_portfolio_size,
        reference_date=reference_date,
    )
    response = await executor.normalize(request)
    if response.error is not None:
        raise PipelineError(response.error)
    return response.trades


def expand_for_accounting(trades: list[Trade], cash_basis: bool) -> list[Trade]:
    return apply_accounting_method(trades, cash_basis)


def _matches_search(trade: Trade, needle: str) -> bool:
    fields = (trade.name, trade.setup, trade.trade_no, trade.notes)
    return any(needle in text.casefold() for text in fields if text)


def filter_trades(
    trades: Iterable[Trade],
    cash_basis: bool = False,
    date_range: DateRangeFilter | None = None,
    search: str | None = None,
    status: PositionStatus | str | None = None,
) -> list[Trade]:
    """
    Apply the view filters in order: date range, search, status.

    The date range tests the accounting date (the exit date of cash-basis
    rows) and drops undated rows. A status of None or "all" keeps every row.
    """
    result = list(trades)

    if date_range is not None and date_range.is_bounded:
        result = [t for t in result if date_range.contains(t.accounting_date(cash_basis))]

    needle = (search or "").strip().casefold()
    if needle:
        result = [t for t in result if _matches_search(t, needle)]

    if status is not None and status != "all":
        wanted = PositionStatus(status)
        result = [t for t in result if t.effective_status == wanted]

    return result


def _trade_number(trade: Trade) -> Decimal:
    try:
        number = Decimal(trade.trade_no.strip())
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def chronological_sort_key(trade: Trade) -> tuple[Decimal, bool, Date]:
    """Trade number (non-numeric counts as 0), then entry date; undated last."""
    return (_trade_number(trade), trade.date is None, trade.date or Date.max)


def _sortable(value: Any) -> Any:
    if isinstance(value, str):
        return value.casefold()
    return value


def sort_trades(trades: Iterable[Trade], sort: SortDescriptor | None = None) -> list[Trade]:
    """
    Sort by a column, or chronologically when no descriptor is given.

    Rows whose column is None always go last, in either direction.

    Raises:
        ValueError: If the column is not a sortable Trade field
    """
    rows = list(trades)
    if sort is None:
        return sorted(rows, key=chronological_sort_key)
    if sort.column not in SORTABLE_COLUMNS:
        raise ValueError(f"Unknown sort column: {sort.column}")

    present = [t for t in rows if getattr(t, sort.column) is not None]
    missing = [t for t in rows if getattr(t, sort.column) is None]
    present.sort(key=lambda t: _sortable(getattr(t, sort.column)), reverse=sort.direction == "descending")
    return present + missing


def apply_cumulative_impact(trades: list[Trade], cash_basis: bool = False) -> list[Trade]:
    """
    Set the running portfolio impact on every row.

    The sum runs in chronological order; open positions add nothing but still
    receive the running value. Output keeps the input order.
    """
    order = sorted(range(len(trades)), key=lambda i: chronological_sort_key(trades[i]))

    running = Decimal("0")
    cumulative: dict[int, Decimal] = {}
    for index in order:
        trade = trades[index]
        if trade.effective_status != PositionStatus.OPEN:
            running += trade.accounting_pf_impact(cash_basis)
        cumulative[index] = running

    return [trade.model_copy(update={"cumulative_pf_impact": cumulative[i]}) for i, trade in enumerate(trades)]
