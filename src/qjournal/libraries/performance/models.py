"""Performance analytics data models.

Pydantic models for solver results and aggregated analytics. Every summary
model defaults to a fully populated zero-valued shape, so an empty journal
yields a complete result rather than an error.
"""

from datetime import date as Date
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_ZERO = Decimal("0")


class XirrStatus(str, Enum):
    """Outcome of the XIRR root search."""

    CONVERGED = "converged"
    UNDETERMINED = "undetermined"


class XirrResult(BaseModel):
    """
    Money-weighted annual return.

    An undetermined result carries rate 0 but is distinguishable from a
    genuine 0% return through `status` / `is_determined`.

    Attributes:
        rate: Annual rate as a fraction (0.12 for 12%)
        status: Whether the solver found a root
        iterations: Iterations spent by the method that produced the result
        method: Root-finding method that produced the result
    """

    rate: float = 0.0
    status: XirrStatus = XirrStatus.UNDETERMINED
    iterations: int = 0
    method: Literal["newton", "bisection", "none"] = "none"

    model_config = ConfigDict(frozen=True)

    @classmethod
    def undetermined(cls, iterations: int = 0, method: Literal["newton", "bisection", "none"] = "none") -> "XirrResult":
        return cls(rate=0.0, status=XirrStatus.UNDETERMINED, iterations=iterations, method=method)

    @property
    def is_determined(self) -> bool:
        return self.status == XirrStatus.CONVERGED

    @property
    def rate_pct(self) -> Decimal:
        """Rate as a percentage rounded to cents."""
        return Decimal(str(self.rate * 100)).quantize(Decimal("0.01"))


class CashFlowEvent(BaseModel):
    """Dated external cash flow (deposit > 0, withdrawal < 0)."""

    date: Date
    amount: Decimal

    model_config = ConfigDict(frozen=True)


class PerformanceSummary(BaseModel):
    """Trade-level performance statistics.

    Money averages (avg_gain, avg_loss, expectancy) are in currency units;
    moves, rates and sizes are percentages.
    """

    total_trades: int = 0
    win_rate: Decimal = _ZERO
    avg_gain: Decimal = _ZERO
    avg_loss: Decimal = _ZERO
    avg_pos_move: Decimal = _ZERO
    avg_neg_move: Decimal = _ZERO
    avg_position_size: Decimal = _ZERO
    avg_holding_days: Decimal = _ZERO
    avg_r: Decimal = _ZERO
    plan_followed: Decimal = _ZERO
    open_positions: int = 0
    expectancy: Decimal = _ZERO
    profit_factor: Decimal = _ZERO
    max_win_streak: int = 0
    max_loss_streak: int = 0
    total_realized_pnl: Decimal = _ZERO
    realized_pf_impact: Decimal = _ZERO
    unrealized_pf_impact: Decimal = _ZERO
    open_heat: Decimal = _ZERO


class RiskSummary(BaseModel):
    """Portfolio-level risk statistics over the daily capital curve."""

    max_drawdown_pct: Decimal = _ZERO
    volatility_pct: Decimal = _ZERO
    annualized_volatility_pct: Decimal = _ZERO
    annualized_return_pct: Decimal = _ZERO
    total_return_pct: Decimal = _ZERO
    sharpe_ratio: Decimal = _ZERO
    sortino_ratio: Decimal = _ZERO
    calmar_ratio: Decimal = _ZERO
    value_at_risk_pct: Decimal = _ZERO
    conditional_value_at_risk_pct: Decimal = _ZERO
    ulcer_index: Decimal = _ZERO
    pain_index: Decimal = _ZERO
    recovery_factor: Decimal = _ZERO
    money_weighted_return: XirrResult = Field(default_factory=XirrResult.undetermined)


class SetupPerformance(BaseModel):
    """Performance of all trades sharing one setup name."""

    setup: str
    total_trades: int = 0
    win_rate: Decimal = _ZERO
    total_pnl: Decimal = _ZERO
    total_pf_impact: Decimal = _ZERO
    avg_pf_impact: Decimal = _ZERO


class DistributionBucket(BaseModel):
    """One fixed range of a distribution with its count and share."""

    label: str
    lower: Decimal | None = None
    upper: Decimal | None = None
    count: int = 0
    percentage: Decimal = _ZERO


class TradeDistribution(BaseModel):
    """Bucketed distributions of trade outcomes."""

    pnl_pct: list[DistributionBucket] = Field(default_factory=list)
    holding_days: list[DistributionBucket] = Field(default_factory=list)
    position_size: list[DistributionBucket] = Field(default_factory=list)
    setup: list[DistributionBucket] = Field(default_factory=list)


class PeriodComparison(BaseModel):
    """Portfolio vs index return for one period (percent)."""

    period: str
    portfolio_return: Decimal
    index_return: Decimal
    outperformance: Decimal


class BenchmarkComparison(BaseModel):
    """Portfolio performance relative to an index series."""

    periods: list[PeriodComparison] = Field(default_factory=list)
    outperforming_periods: int = 0
    underperforming_periods: int = 0
    avg_outperformance: Decimal = _ZERO
    tracking_error: Decimal = _ZERO
    information_ratio: Decimal = _ZERO
    beta: Decimal = _ZERO
    alpha: Decimal = _ZERO


class MonthlyPerformance(BaseModel):
    """Trade statistics for one calendar month."""

    month: str  # "Jan"
    year: int
    trades: int = 0
    win_rate: Decimal = _ZERO
    avg_gain: Decimal = _ZERO  # Average stock move of winners
    avg_loss: Decimal = _ZERO  # Average stock move of losers
    avg_rr: Decimal = _ZERO
    avg_holding_days: Decimal = _ZERO
    pnl: Decimal = _ZERO
    starting_capital: Decimal = _ZERO
    pnl_pct: Decimal = _ZERO


class TopPerformers(BaseModel):
    """Best and worst trade by one metric."""

    metric: str
    highest_trade_id: str | None = None
    highest_name: str | None = None
    highest_value: Decimal = _ZERO
    lowest_trade_id: str | None = None
    lowest_name: str | None = None
    lowest_value: Decimal = _ZERO
    has_multiple_trades: bool = False


class AnalyticsReport(BaseModel):
    """Complete analytics bundle for one journal view."""

    cash_basis: bool = False
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    risk: RiskSummary = Field(default_factory=RiskSummary)
    capital_curve: list[tuple[Date, Decimal]] = Field(default_factory=list)
    setups: list[SetupPerformance] = Field(default_factory=list)
    distribution: TradeDistribution = Field(default_factory=TradeDistribution)
    monthly: list[MonthlyPerformance] = Field(default_factory=list)
    top_performers: list[TopPerformers] = Field(default_factory=list)
    benchmark: BenchmarkComparison | None = None
