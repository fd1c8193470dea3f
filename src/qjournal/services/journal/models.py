"""Data models for the trade journal.

Defines the core entities of a journal:
- EntryLot / ExitLot: Individual fills building or reducing a position
- Trade: One journal record with raw inputs and normalized derived fields
- CashBasisExit: Marker carried by synthetic per-exit records
- CapitalChange: Deposit or withdrawal against the portfolio
"""

from datetime import date as Date
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_ENTRY_LOTS = 3
MAX_EXIT_LOTS = 3

PortfolioSizeLookup = Callable[[str, int], Decimal | float | None]

_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d-%m-%Y", "%d/%m/%Y", "%d %b %Y", "%d-%b-%Y")


def parse_date(value: Any) -> Date | None:
    """
    Parse a journal date leniently.

    Accepts date/datetime objects, ISO strings (with or without time) and a
    few day-first formats. Anything unparseable becomes None instead of
    raising, so one bad cell never rejects a whole record.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, Date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


class Direction(str, Enum):
    """Side of the trade."""

    BUY = "buy"
    SELL = "sell"


class PositionStatus(str, Enum):
    """Lifecycle state of a position."""

    OPEN = "open"
    PARTIAL = "partial"
    CLOSED = "closed"


class _Lot(BaseModel):
    price: Decimal
    quantity: Decimal
    date: Date | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        """Validate price is positive."""
        if v <= 0:
            raise ValueError(f"Lot price must be positive, got {v}")
        return v

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: Decimal) -> Decimal:
        """Validate quantity is positive."""
        if v <= 0:
            raise ValueError(f"Lot quantity must be positive, got {v}")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def parse_lot_date(cls, v: Any) -> Date | None:
        return parse_date(v)


class EntryLot(_Lot):
    """
    One fill that opens or adds to a position.

    The first declared lot is the initial entry; later lots are pyramids.

    Example:
        >>> lot = EntryLot(price=Decimal("100"), quantity=Decimal("10"), date="2024-01-02")
    """

    label: str = ""


class ExitLot(_Lot):
    """One fill that reduces a position."""


class CashBasisExit(BaseModel):
    """Exit carried by a synthetic cash-basis record.

    Attributes:
        index: Position of the exit in the parent's date-ordered exits
        date: Exit date (accounting date under cash basis)
        quantity: Exited quantity
        price: Exit price
        pnl: Realized P&L attributed to this exit by FIFO matching
    """

    index: int
    date: Date | None
    quantity: Decimal
    price: Decimal
    pnl: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


class CapitalChange(BaseModel):
    """Deposit (positive amount) or withdrawal (negative amount)."""

    date: Date
    amount: Decimal
    description: str = ""

    model_config = ConfigDict(frozen=True)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Validate amount is finite."""
        if not v.is_finite():
            raise ValueError(f"Capital change amount must be finite, got {v}")
        return v


class Trade(BaseModel):
    """
    One trade journal record.

    Raw fields are supplied by the user. Derived fields keep their zero
    defaults until the record passes through the normalizer, which returns a
    new instance with `normalized=True`.

    Invariant: total exited quantity never exceeds total entry quantity.

    Example:
        >>> trade = Trade(
        ...     trade_id="t1",
        ...     trade_no="1",
        ...     name="ACME",
        ...     date="2024-01-02",
        ...     entries=[EntryLot(price=Decimal("100"), quantity=Decimal("10"))],
        ...     exits=[ExitLot(price=Decimal("110"), quantity=Decimal("10"), date="2024-01-12")],
        ...     stop_loss=Decimal("95"),
        ... )
    """

    # Identity
    trade_id: str
    trade_no: str = ""
    name: str = ""
    setup: str = ""
    notes: str = ""

    # Raw inputs
    direction: Direction = Direction.BUY
    date: Date | None = None
    entries: list[EntryLot] = Field(min_length=1, max_length=MAX_ENTRY_LOTS)
    exits: list[ExitLot] = Field(default_factory=list, max_length=MAX_EXIT_LOTS)
    stop_loss: Decimal | None = None
    trailing_stop: Decimal | None = None
    cmp: Decimal | None = None
    status: PositionStatus | None = None
    plan_followed: bool | None = None

    # Derived by the normalizer
    open_qty: Decimal = Decimal("0")
    exited_qty: Decimal = Decimal("0")
    avg_entry: Decimal = Decimal("0")
    avg_exit: Decimal = Decimal("0")
    position_size: Decimal = Decimal("0")
    allocation_pct: Decimal = Decimal("0")
    sl_pct: Decimal = Decimal("0")
    realized_pnl: Decimal = Decimal("0")
    unrealized_pnl: Decimal = Decimal("0")
    holding_days: Decimal = Decimal("0")
    stock_move_pct: Decimal = Decimal("0")
    reward_risk: Decimal = Decimal("0")
    pf_impact: Decimal = Decimal("0")
    cash_pf_impact: Decimal = Decimal("0")
    portfolio_size: Decimal | None = None
    cumulative_pf_impact: Decimal = Decimal("0")
    normalized: bool = False

    # Set on synthetic cash-basis records
    cash_basis_exit: CashBasisExit | None = None
    source_trade_id: str | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("date", mode="before")
    @classmethod
    def parse_trade_date(cls, v: Any) -> Date | None:
        return parse_date(v)

    @field_validator("trade_no", mode="before")
    @classmethod
    def coerce_trade_no(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("stop_loss", "trailing_stop", "cmp", mode="before")
    @classmethod
    def zero_price_is_missing(cls, v: Any) -> Any:
        """Journals use 0 or blank for an unset price."""
        if v is None or v == "":
            return None
        if isinstance(v, (int, float, Decimal)) and v <= 0:
            return None
        return v

    @model_validator(mode="after")
    def validate_quantities(self) -> "Trade":
        """Validate exits never exceed entries."""
        total_entry = sum((lot.quantity for lot in self.entries), Decimal("0"))
        total_exit = sum((lot.quantity for lot in self.exits), Decimal("0"))
        if total_exit > total_entry:
            raise ValueError(f"Trade {self.trade_id}: exited quantity {total_exit} exceeds entry quantity {total_entry}")
        return self

    @property
    def total_entry_qty(self) -> Decimal:
        return sum((lot.quantity for lot in self.entries), Decimal("0"))

    @property
    def total_exit_qty(self) -> Decimal:
        return sum((lot.quantity for lot in self.exits), Decimal("0"))

    @property
    def effective_status(self) -> PositionStatus:
        """Declared status, or inferred from quantities when missing."""
        if self.status is not None:
            return self.status
        if not self.exits:
            return PositionStatus.OPEN
        if self.total_exit_qty >= self.total_entry_qty:
            return PositionStatus.CLOSED
        return PositionStatus.PARTIAL

    @property
    def origin_id(self) -> str:
        """Id of the journal record this row came from."""
        return self.source_trade_id or self.trade_id

    def accounting_date(self, cash_basis: bool = False) -> Date | None:
        """Date the record counts on: exit date for cash-basis rows, entry date otherwise."""
        if cash_basis and self.cash_basis_exit is not None:
            return self.cash_basis_exit.date
        return self.date

    def accounting_pnl(self, cash_basis: bool = False) -> Decimal:
        """Realized P&L recognized by this row under the chosen basis."""
        if cash_basis and self.cash_basis_exit is not None:
            return self.cash_basis_exit.pnl
        return self.realized_pnl

    def accounting_pf_impact(self, cash_basis: bool = False) -> Decimal:
        """Portfolio impact percentage recognized by this row under the chosen basis."""
        return self.cash_pf_impact if cash_basis else self.pf_impact
