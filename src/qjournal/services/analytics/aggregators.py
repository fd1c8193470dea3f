"""Metrics aggregators.

Fold a processed trade list (accrual rows or cash-basis exit rows) into
the summary models of qjournal.libraries.performance. Every aggregator is
guarded: a failure is logged as `aggregator.failed` and the zero-valued shape
of its result is returned, so one bad statistic never blanks a whole report.

Cash-basis rows are grouped back to their journal record wherever a
statistic is per trade (counts, win rate, averages, streaks); P&L curves use
each row at its own accounting date.
"""

import functools
from collections import defaultdict
from datetime import date as Date
from decimal import Decimal
from typing import Callable, Iterable, Sequence, TypeVar

from qjournal.libraries.performance.cache import CachedXirrSolver
from qjournal.libraries.performance.calculators import CapitalCurveCalculator
from qjournal.libraries.performance.metrics import (
    calculate_annualized_return,
    calculate_calmar_ratio,
    calculate_conditional_value_at_risk,
    calculate_covariance,
    calculate_expectancy,
    calculate_max_drawdown,
    calculate_pain_index,
    calculate_profit_factor,
    calculate_recovery_factor,
    calculate_sharpe_ratio,
    calculate_sortino_ratio,
    calculate_standard_deviation,
    calculate_streaks,
    calculate_total_return,
    calculate_ulcer_index,
    calculate_value_at_risk,
    calculate_volatility,
    calculate_win_rate,
)
from qjournal.libraries.performance.models import (
    AnalyticsReport,
    BenchmarkComparison,
    DistributionBucket,
    MonthlyPerformance,
    PerformanceSummary,
    PeriodComparison,
    RiskSummary,
    SetupPerformance,
    TopPerformers,
    TradeDistribution,
)
from qjournal.services.journal.accounting import collapse_to_source
from qjournal.services.journal.models import CapitalChange, Direction, PositionStatus, Trade
from qjournal.services.journal.sizing import MONTHS, PortfolioSizeResolver
from qjournal.system.config import AnalyticsConfig, get_system_config
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

T = TypeVar("T")

_ZERO = Decimal("0")
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
UNKNOWN_SETUP = "Unknown"

# (label, lower, upper): a value v falls in (lower, upper]; the first range also takes v == lower
BucketRange = tuple[str, Decimal | None, Decimal | None]

PNL_RANGES: tuple[BucketRange, ...] = (
    ("< -10%", None, Decimal("-10")),
    ("-10% to -5%", Decimal("-10"), Decimal("-5")),
    ("-5% to -2%", Decimal("-5"), Decimal("-2")),
    ("-2% to 0%", Decimal("-2"), _ZERO),
    ("0% to 2%", _ZERO, Decimal("2")),
    ("2% to 5%", Decimal("2"), Decimal("5")),
    ("5% to 10%", Decimal("5"), Decimal("10")),
    ("> 10%", Decimal("10"), None),
)

HOLDING_DAY_RANGES: tuple[BucketRange, ...] = (
    ("≤ 1 day", _ZERO, Decimal("1")),
    ("2-7 days", Decimal("1"), Decimal("7")),
    ("1-4 weeks", Decimal("7"), Decimal("30")),
    ("1-3 months", Decimal("30"), Decimal("90")),
    ("> 3 months", Decimal("90"), None),
)

POSITION_SIZE_RANGES: tuple[BucketRange, ...] = (
    ("< 2%", _ZERO, Decimal("2")),
    ("2-5%", Decimal("2"), Decimal("5")),
    ("5-10%", Decimal("5"), Decimal("10")),
    ("10-15%", Decimal("10"), Decimal("15")),
    ("> 15%", Decimal("15"), None),
)

TOP_PERFORMER_METRICS = ("stock_move", "pf_impact", "reward_risk", "pnl")


def _guarded(default: Callable[[], T]) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Return `default()` instead of raising, logging the failure."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error("aggregator.failed", aggregator=func.__name__, error=str(e))
                return default()

        return wrapper

    return decorator


def _avg(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return _ZERO
    return (sum(values, _ZERO) / Decimal(len(values))).quantize(_CENT)


def _pct(part: int, whole: int) -> Decimal:
    if whole == 0:
        return _ZERO
    return (Decimal(part) / Decimal(whole) * _HUNDRED).quantize(_CENT)


def _is_open(trade: Trade) -> bool:
    return trade.effective_status == PositionStatus.OPEN


def _source_rows(trades: Iterable[Trade], cash_basis: bool) -> list[tuple[Trade, Decimal, Decimal]]:
    """(trade, recognized P&L, recognized portfolio impact) per journal record, oldest first."""
    rows = list(trades)
    impact: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    for row in rows:
        impact[row.origin_id] += row.accounting_pf_impact(cash_basis)

    collapsed = collapse_to_source(rows, cash_basis)
    collapsed.sort(key=lambda pair: (pair[0].date is None, pair[0].date or Date.max))
    return [(trade, pnl, impact[trade.origin_id]) for trade, pnl in collapsed]


def calculate_open_heat(trade: Trade) -> Decimal:
    """
    Capital at risk to the stop on the open part of a position, as % of its capital base.

    The higher of stop loss and trailing stop is used when both are set. A
    stop on the wrong side of the entry means no risk.
    """
    if trade.effective_status not in (PositionStatus.OPEN, PositionStatus.PARTIAL):
        return _ZERO
    capital = trade.portfolio_size
    entry = trade.avg_entry
    if not capital or entry <= 0 or trade.open_qty <= 0:
        return _ZERO

    stops = [s for s in (trade.stop_loss, trade.trailing_stop) if s is not None]
    if not stops:
        return _ZERO
    stop = max(stops)

    if trade.direction == Direction.BUY:
        if stop >= entry:
            return _ZERO
        risk = (entry - stop) * trade.open_qty
    else:
        if stop <= entry:
            return _ZERO
        risk = (stop - entry) * trade.open_qty
    return risk / capital * _HUNDRED


@_guarded(PerformanceSummary)
def build_performance_summary(trades: Sequence[Trade], cash_basis: bool = False) -> PerformanceSummary:
    """
    Trade-level statistics.

    Win rate, expectancy, profit factor and streaks count realized trades
    only (open positions have no realized outcome); sizes, holding periods
    and R average over every trade.
    """
    rows = _source_rows(trades, cash_basis)
    if not rows:
        return PerformanceSummary()

    realized = [(trade, pnl) for trade, pnl, _ in rows if not _is_open(trade)]
    pnls = [pnl for _, pnl in realized]
    winners = [(trade, pnl) for trade, pnl in realized if pnl > 0]
    losers = [(trade, pnl) for trade, pnl in realized if pnl < 0]
    max_win_streak, max_loss_streak = calculate_streaks(pnls)

    all_trades = [trade for trade, _, _ in rows]
    plan_known = [t.plan_followed for t in all_trades if t.plan_followed is not None]

    unrealized_impact = _ZERO
    for trade in all_trades:
        if trade.portfolio_size:
            unrealized_impact += trade.unrealized_pnl / trade.portfolio_size * _HUNDRED

    return PerformanceSummary(
        total_trades=len(rows),
        win_rate=calculate_win_rate(pnls),
        avg_gain=_avg([pnl for _, pnl in winners]),
        avg_loss=_avg([pnl for _, pnl in losers]),
        avg_pos_move=_avg([t.stock_move_pct for t, _ in winners]),
        avg_neg_move=_avg([t.stock_move_pct for t, _ in losers]),
        avg_position_size=_avg([t.allocation_pct for t in all_trades]),
        avg_holding_days=_avg([t.holding_days for t in all_trades]),
        avg_r=_avg([t.reward_risk for t in all_trades]),
        plan_followed=_pct(sum(1 for followed in plan_known if followed), len(plan_known)),
        open_positions=sum(
            1 for t in all_trades if t.effective_status in (PositionStatus.OPEN, PositionStatus.PARTIAL)
        ),
        expectancy=calculate_expectancy(pnls),
        profit_factor=calculate_profit_factor(pnls),
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        total_realized_pnl=sum(pnls, _ZERO).quantize(_CENT),
        realized_pf_impact=sum((impact for _, _, impact in rows), _ZERO).quantize(_CENT),
        unrealized_pf_impact=unrealized_impact.quantize(_CENT),
        open_heat=sum((calculate_open_heat(t) for t in all_trades), _ZERO).quantize(_CENT),
    )


def _curve_calculator(
    trades: Iterable[Trade],
    capital_changes: Iterable[CapitalChange],
    starting_capital: Decimal,
    cash_basis: bool,
) -> CapitalCurveCalculator:
    calculator = CapitalCurveCalculator(starting_capital)
    for trade in trades:
        if _is_open(trade):
            continue
        day = trade.accounting_date(cash_basis)
        pnl = trade.accounting_pnl(cash_basis)
        if day is not None and pnl != 0:
            calculator.add_pnl(day, pnl)
    for change in capital_changes:
        calculator.add_capital_change(change.date, change.amount)
    return calculator


@_guarded(list)
def build_capital_curve(
    trades: Sequence[Trade],
    capital_changes: Sequence[CapitalChange] = (),
    starting_capital: Decimal = Decimal("100000"),
    cash_basis: bool = False,
) -> list[tuple[Date, Decimal]]:
    """End-of-day capital on every day with realized P&L or a capital change."""
    return _curve_calculator(trades, capital_changes, starting_capital, cash_basis).curve()


@_guarded(RiskSummary)
def build_risk_summary(
    trades: Sequence[Trade],
    capital_changes: Sequence[CapitalChange] = (),
    starting_capital: Decimal = Decimal("100000"),
    cash_basis: bool = False,
    risk_free_rate: float = 0.05,
    periods_per_year: int = 252,
    xirr_solver: CachedXirrSolver | None = None,
    confidence: float = 0.95,
) -> RiskSummary:
    """
    Portfolio risk statistics over the capital curve.

    Returns are flow-neutral (deposits and withdrawals are not performance)
    and drawdowns are measured on the time-weighted growth index. The
    money-weighted return is solved only when `xirr_solver` is given.

    Args:
        trades: Processed trade rows
        capital_changes: Deposits and withdrawals
        starting_capital: Capital before the first event
        cash_basis: Recognize P&L on exit dates
        risk_free_rate: Annual risk-free rate as a fraction
        periods_per_year: Periods used to annualize and to split the risk-free rate
        xirr_solver: Cached solver for the money-weighted return
        confidence: VaR / CVaR confidence level
    """
    calculator = _curve_calculator(trades, capital_changes, starting_capital, cash_basis)
    curve = calculator.curve()
    if not curve:
        return RiskSummary()

    returns = calculator.period_returns()
    index = calculator.growth_index()
    rf_per_period = Decimal(str(risk_free_rate)) / Decimal(periods_per_year)

    max_drawdown = calculate_max_drawdown(index)
    annualized_return = calculate_annualized_return(returns, periods_per_year)
    total_return = calculate_total_return(index[0], index[-1])

    summary = RiskSummary(
        max_drawdown_pct=max_drawdown,
        volatility_pct=calculate_volatility(returns),
        annualized_volatility_pct=calculate_volatility(returns, periods_per_year),
        annualized_return_pct=annualized_return,
        total_return_pct=total_return,
        sharpe_ratio=calculate_sharpe_ratio(returns, rf_per_period),
        sortino_ratio=calculate_sortino_ratio(returns, _ZERO, rf_per_period),
        calmar_ratio=calculate_calmar_ratio(annualized_return, max_drawdown),
        value_at_risk_pct=calculate_value_at_risk(returns, confidence),
        conditional_value_at_risk_pct=calculate_conditional_value_at_risk(returns, confidence),
        ulcer_index=calculate_ulcer_index(index),
        pain_index=calculate_pain_index(index),
        recovery_factor=calculate_recovery_factor(total_return, max_drawdown),
    )

    if xirr_solver is not None:
        entry_dates = [t.date for t in trades if t.date is not None]
        start = min(entry_dates + [curve[0][0]])
        end = curve[-1][0]
        mwr = xirr_solver.solve(start, starting_capital, end, calculator.ending_capital, list(capital_changes))
        summary = summary.model_copy(update={"money_weighted_return": mwr})
    return summary


@_guarded(list)
def build_setup_performance(trades: Sequence[Trade], cash_basis: bool = False) -> list[SetupPerformance]:
    """Per-setup statistics, best total P&L first."""
    groups: dict[str, list[tuple[Trade, Decimal, Decimal]]] = defaultdict(list)
    for trade, pnl, impact in _source_rows(trades, cash_basis):
        groups[trade.setup.strip() or UNKNOWN_SETUP].append((trade, pnl, impact))

    results = []
    for setup, rows in groups.items():
        realized = [pnl for trade, pnl, _ in rows if not _is_open(trade)]
        total_impact = sum((impact for _, _, impact in rows), _ZERO)
        results.append(
            SetupPerformance(
                setup=setup,
                total_trades=len(rows),
                win_rate=calculate_win_rate(realized),
                total_pnl=sum((pnl for _, pnl, _ in rows), _ZERO).quantize(_CENT),
                total_pf_impact=total_impact.quantize(_CENT),
                avg_pf_impact=(total_impact / Decimal(len(rows))).quantize(_CENT),
            )
        )
    results.sort(key=lambda s: s.total_pnl, reverse=True)
    return results


def _in_range(value: Decimal, lower: Decimal | None, upper: Decimal | None, include_lower: bool) -> bool:
    if lower is not None and not (value > lower or (include_lower and value == lower)):
        return False
    return upper is None or value <= upper


def _bucketize(values: Sequence[Decimal], ranges: Sequence[BucketRange]) -> list[DistributionBucket]:
    buckets = []
    for i, (label, lower, upper) in enumerate(ranges):
        count = sum(1 for v in values if _in_range(v, lower, upper, include_lower=i == 0))
        buckets.append(
            DistributionBucket(label=label, lower=lower, upper=upper, count=count, percentage=_pct(count, len(values)))
        )
    return buckets


def _empty_distribution() -> TradeDistribution:
    return TradeDistribution(
        pnl_pct=_bucketize([], PNL_RANGES),
        holding_days=_bucketize([], HOLDING_DAY_RANGES),
        position_size=_bucketize([], POSITION_SIZE_RANGES),
    )


@_guarded(_empty_distribution)
def build_trade_distribution(trades: Sequence[Trade], cash_basis: bool = False) -> TradeDistribution:
    """Fixed-range distributions of stock move, holding period and position size, plus setup counts."""
    sources = [trade for trade, _, _ in _source_rows(trades, cash_basis)]

    setup_counts: dict[str, int] = defaultdict(int)
    for trade in sources:
        setup_counts[trade.setup.strip() or UNKNOWN_SETUP] += 1
    setups = [
        DistributionBucket(label=setup, count=count, percentage=_pct(count, len(sources)))
        for setup, count in sorted(setup_counts.items(), key=lambda item: (-item[1], item[0]))
    ]

    return TradeDistribution(
        pnl_pct=_bucketize([t.stock_move_pct for t in sources], PNL_RANGES),
        holding_days=_bucketize([t.holding_days for t in sources], HOLDING_DAY_RANGES),
        position_size=_bucketize([t.allocation_pct for t in sources], POSITION_SIZE_RANGES),
        setup=setups,
    )


@_guarded(BenchmarkComparison)
def build_benchmark_comparison(
    portfolio_returns: Sequence[Decimal],
    index_returns: Sequence[Decimal],
    labels: Sequence[str] | None = None,
) -> BenchmarkComparison:
    """
    Compare per-period portfolio returns with an index (both in percent).

    Series are paired up to the shorter length. Tracking error is the
    population deviation of the outperformance; beta is cov(portfolio,
    index) / var(index).
    """
    n = min(len(portfolio_returns), len(index_returns))
    if n == 0:
        return BenchmarkComparison()

    portfolio = list(portfolio_returns[:n])
    index = list(index_returns[:n])
    diffs = [p - i for p, i in zip(portfolio, index)]

    periods = [
        PeriodComparison(
            period=labels[k] if labels is not None and k < len(labels) else str(k + 1),
            portfolio_return=portfolio[k],
            index_return=index[k],
            outperformance=diffs[k],
        )
        for k in range(n)
    ]

    avg_outperformance = sum(diffs, _ZERO) / Decimal(n)
    tracking_error = calculate_standard_deviation(diffs)
    information_ratio = avg_outperformance / tracking_error if tracking_error != 0 else _ZERO

    index_variance = calculate_covariance(index, index)
    beta = calculate_covariance(portfolio, index) / index_variance if index_variance != 0 else _ZERO
    alpha = sum(portfolio, _ZERO) / Decimal(n) - beta * sum(index, _ZERO) / Decimal(n)

    return BenchmarkComparison(
        periods=periods,
        outperforming_periods=sum(1 for d in diffs if d > 0),
        underperforming_periods=sum(1 for d in diffs if d < 0),
        avg_outperformance=avg_outperformance.quantize(_CENT),
        tracking_error=tracking_error.quantize(_CENT),
        information_ratio=information_ratio.quantize(_CENT),
        beta=beta.quantize(Decimal("0.0001")),
        alpha=alpha.quantize(_CENT),
    )


@_guarded(list)
def build_monthly_performance(
    trades: Sequence[Trade],
    cash_basis: bool = False,
    resolver: PortfolioSizeResolver | None = None,
) -> list[MonthlyPerformance]:
    """
    Statistics per calendar month of the accounting date, oldest month first.

    Rows of one journal record falling in the same month count once.
    Starting capital comes from `resolver` as of the first of the month.
    """
    by_month: dict[tuple[int, int], list[Trade]] = defaultdict(list)
    for trade in trades:
        day = trade.accounting_date(cash_basis)
        if day is not None:
            by_month[(day.year, day.month)].append(trade)

    results = []
    for (year, month), rows in sorted(by_month.items()):
        collapsed = collapse_to_source(rows, cash_basis)
        winners = [t for t, pnl in collapsed if pnl > 0]
        losers = [t for t, pnl in collapsed if pnl < 0]
        pnl = sum((p for _, p in collapsed), _ZERO)

        capital = resolver.resolve(Date(year, month, 1)) if resolver is not None else None
        starting_capital = capital or _ZERO
        pnl_pct = (pnl / starting_capital * _HUNDRED).quantize(_CENT) if starting_capital else _ZERO

        results.append(
            MonthlyPerformance(
                month=MONTHS[month - 1],
                year=year,
                trades=len(collapsed),
                win_rate=_pct(len(winners), len(collapsed)),
                avg_gain=_avg([t.stock_move_pct for t in winners]),
                avg_loss=_avg([t.stock_move_pct for t in losers]),
                avg_rr=_avg([t.reward_risk for t, _ in collapsed]),
                avg_holding_days=_avg([t.holding_days for t, _ in collapsed]),
                pnl=pnl.quantize(_CENT),
                starting_capital=starting_capital,
                pnl_pct=pnl_pct,
            )
        )
    return results


def build_top_performers(trades: Sequence[Trade], metric: str = "stock_move", cash_basis: bool = False) -> TopPerformers:
    """
    Best and worst journal record by `metric`.

    Args:
        metric: One of "stock_move", "pf_impact", "reward_risk", "pnl"

    Raises:
        ValueError: If the metric is unknown
    """
    if metric not in TOP_PERFORMER_METRICS:
        raise ValueError(f"Unknown top performer metric: {metric}")
    try:
        return _top_performers(trades, metric, cash_basis)
    except Exception as e:
        logger.error("aggregator.failed", aggregator="build_top_performers", metric=metric, error=str(e))
        return TopPerformers(metric=metric)


def _metric_value(metric: str, trade: Trade, pnl: Decimal, impact: Decimal) -> Decimal:
    if metric == "stock_move":
        return trade.stock_move_pct
    if metric == "pf_impact":
        return impact
    if metric == "reward_risk":
        return trade.reward_risk
    return pnl


def _top_performers(trades: Sequence[Trade], metric: str, cash_basis: bool) -> TopPerformers:
    ranked = [
        (trade, _metric_value(metric, trade, pnl, impact)) for trade, pnl, impact in _source_rows(trades, cash_basis)
    ]
    if not ranked:
        return TopPerformers(metric=metric)

    ranked.sort(key=lambda pair: pair[1], reverse=True)
    highest, highest_value = ranked[0]
    lowest, lowest_value = ranked[-1]
    return TopPerformers(
        metric=metric,
        highest_trade_id=highest.origin_id,
        highest_name=highest.name,
        highest_value=highest_value.quantize(_CENT),
        lowest_trade_id=lowest.origin_id,
        lowest_name=lowest.name,
        lowest_value=lowest_value.quantize(_CENT),
        has_multiple_trades=len(ranked) > 1,
    )


def build_analytics_report(
    trades: Sequence[Trade],
    capital_changes: Sequence[CapitalChange] = (),
    cash_basis: bool = False,
    starting_capital: Decimal | None = None,
    resolver: PortfolioSizeResolver | None = None,
    xirr_solver: CachedXirrSolver | None = None,
    config: AnalyticsConfig | None = None,
    portfolio_returns: Sequence[Decimal] | None = None,
    index_returns: Sequence[Decimal] | None = None,
) -> AnalyticsReport:
    """
    Every aggregate for one journal view.

    Args:
        trades: Pipeline output rows
        capital_changes: Deposits and withdrawals
        cash_basis: Whether `trades` are cash-basis rows
        starting_capital: Capital before the first event; config default when omitted
        resolver: Monthly capital source for the monthly breakdown
        xirr_solver: Cached solver for the money-weighted return
        config: Analytics settings; system configuration when omitted
        portfolio_returns: Per-period portfolio returns for the benchmark comparison
        index_returns: Matching index returns; the comparison is skipped without both
    """
    config = config if config is not None else get_system_config().analytics
    if starting_capital is None:
        starting_capital = Decimal(str(config.default_portfolio_size))
    if resolver is None:
        resolver = PortfolioSizeResolver(starting_capital, capital_changes=capital_changes)

    benchmark = None
    if portfolio_returns is not None and index_returns is not None:
        benchmark = build_benchmark_comparison(portfolio_returns, index_returns)

    report = AnalyticsReport(
        cash_basis=cash_basis,
        performance=build_performance_summary(trades, cash_basis),
        risk=build_risk_summary(
            trades,
            capital_changes,
            starting_capital,
            cash_basis,
            risk_free_rate=config.risk_free_rate,
            periods_per_year=config.periods_per_year,
            xirr_solver=xirr_solver,
        ),
        capital_curve=build_capital_curve(trades, capital_changes, starting_capital, cash_basis),
        setups=build_setup_performance(trades, cash_basis),
        distribution=build_trade_distribution(trades, cash_basis),
        monthly=build_monthly_performance(trades, cash_basis, resolver),
        top_performers=[build_top_performers(trades, metric, cash_basis) for metric in TOP_PERFORMER_METRICS],
        benchmark=benchmark,
    )
    logger.debug("aggregator.report_built", trade_count=len(trades), cash_basis=cash_basis)
    return report
