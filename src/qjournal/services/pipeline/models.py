"""Data models for the trade processing pipeline.

Defines:
- StageStatus / ProcessingStage: Per-stage progress records
- PipelineRequest / PipelineResult: Input and output of one pipeline run
- SortDescriptor / DateRangeFilter: View parameters
- NormalizationRequest / NormalizationResponse: Executor protocol messages
- PipelineError / PipelineStageError / PipelineSupersededError: Pipeline exception hierarchy
"""

from datetime import date as Date
from decimal import Decimal
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from qjournal.services.journal.models import CapitalChange, PositionStatus, Trade
from qjournal.services.journal.sizing import PortfolioSizeResolver


class PipelineError(Exception):
    """Base class for pipeline errors."""


class PipelineStageError(PipelineError):
    """A stage raised; carries the stage key and the original exception."""

    def __init__(self, stage_key: str, cause: BaseException) -> None:
        self.stage_key = stage_key
        self.cause = cause
        super().__init__(f"Stage '{stage_key}' failed: {cause}")


class PipelineSupersededError(PipelineError):
    """A newer run started before this one finished."""

    def __init__(self, run_id: int) -> None:
        self.run_id = run_id
        super().__init__(f"Run {run_id} was superseded")


class StageStatus(str, Enum):
    """Lifecycle of a stage within one run."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


_ALLOWED_TRANSITIONS = {
    StageStatus.PENDING: {StageStatus.PROCESSING},
    StageStatus.PROCESSING: {StageStatus.COMPLETED, StageStatus.ERROR},
    StageStatus.COMPLETED: set(),
    StageStatus.ERROR: set(),
}


class ProcessingStage(BaseModel):
    """
    Progress record of one pipeline stage.

    Status only moves forward: pending -> processing -> completed | error.

    Attributes:
        key: Stable stage identifier (e.g. "trade-normalization")
        name: Human readable name
        status: Current status
        result: Stage output once completed (kept for inspection after a later failure)
        error: Error message when status is error
        duration_ms: Wall time spent in the stage
    """

    key: str
    name: str
    status: StageStatus = StageStatus.PENDING
    result: Any = None
    error: str | None = None
    duration_ms: float | None = None

    def _advance(self, status: StageStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise PipelineError(f"Stage '{self.key}' cannot move from {self.status.value} to {status.value}")
        self.status = status

    def start(self) -> None:
        self._advance(StageStatus.PROCESSING)

    def complete(self, result: Any, duration_ms: float) -> None:
        self._advance(StageStatus.COMPLETED)
        self.result = result
        self.duration_ms = duration_ms

    def fail(self, error: str, duration_ms: float) -> None:
        self._advance(StageStatus.ERROR)
        self.error = error
        self.duration_ms = duration_ms


class SortDescriptor(BaseModel):
    """Column and direction for the sorting stage."""

    column: str
    direction: Literal["ascending", "descending"] = "ascending"

    model_config = ConfigDict(frozen=True)

    @classmethod
    def parse(cls, text: str) -> "SortDescriptor":
        """Parse "column" or "column:asc|desc"."""
        column, _, direction = text.partition(":")
        direction = direction.strip().lower()
        if direction in ("", "asc", "ascending"):
            return cls(column=column.strip(), direction="ascending")
        if direction in ("desc", "descending"):
            return cls(column=column.strip(), direction="descending")
        raise ValueError(f"Invalid sort direction: {direction}")


class DateRangeFilter(BaseModel):
    """Inclusive date range; an open end is unbounded."""

    start: Date | None = None
    end: Date | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None

    def contains(self, day: Date | None) -> bool:
        if day is None:
            return False
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True


class PipelineRequest(BaseModel):
    """
    Input of one pipeline run.

    Attributes:
        trades: Raw journal records
        resolver: Capital base source; built from default_portfolio_size and
            capital_changes when omitted
        default_portfolio_size: Capital base used when no resolver is given
        capital_changes: Deposits and withdrawals
        cash_basis: Recognize P&L per exit (True) or per trade (False)
        date_range: Global filter on the accounting date
        search: Case-insensitive text over name, setup, trade number and notes
        status: Position status filter; None or "all" disables it
        sort: Sort order; chronological when None
        reference_date: "Today" for open legs
    """

    trades: list[Trade] = Field(default_factory=list)
    resolver: PortfolioSizeResolver | None = None
    default_portfolio_size: Decimal = Decimal("100000")
    capital_changes: list[CapitalChange] = Field(default_factory=list)
    cash_basis: bool = False
    date_range: DateRangeFilter | None = None
    search: str | None = None
    status: PositionStatus | Literal["all"] | None = None
    sort: SortDescriptor | None = None
    reference_date: Date | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def build_resolver(self) -> PortfolioSizeResolver:
        if self.resolver is not None:
            return self.resolver
        return PortfolioSizeResolver(self.default_portfolio_size, capital_changes=self.capital_changes)


class PipelineResult(BaseModel):
    """
    Outcome of one pipeline run.

    `trades` is None when a stage failed or the run was superseded by a newer
    one; completed stage results remain available in `stages`.
    """

    run_id: int
    trades: list[Trade] | None = None
    stages: list[ProcessingStage] = Field(default_factory=list)
    progress: float = 0.0
    error: str | None = None
    superseded: bool = False
    portfolio_sizes: dict[str, Decimal | None] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.trades is not None and self.error is None

    def stage(self, key: str) -> ProcessingStage | None:
        return next((s for s in self.stages if s.key == key), None)


def _request_id() -> str:
    return uuid4().hex


class NormalizationRequest(BaseModel):
    """Batch handed to an executor; `id` correlates the response."""

    id: str = Field(default_factory=_request_id)
    trades: list[Trade]
    portfolio_sizes: dict[str, Decimal | None] = Field(default_factory=dict)
    default_portfolio_size: Decimal = Decimal("100000")
    reference_date: Date | None = None


class NormalizationResponse(BaseModel):
    """Executor answer; `error` is set when the batch failed."""

    id: str
    trades: list[Trade] = Field(default_factory=list)
    error: str | None = None
