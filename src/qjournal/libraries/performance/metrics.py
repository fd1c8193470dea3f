"""Performance metrics calculation functions.

Pure functions for risk and performance statistics over capital curves,
return series and realized P&L sequences. All functions are stateless.

Conventions:
- Decimal in, Decimal out; arithmetic that needs sqrt/pow runs on float
- Deviations and covariances are exact Decimal arithmetic, so a constant series gives exactly 0
- Percentages and ratios are quantized to cents
- Empty or degenerate input returns Decimal("0"); results are never NaN or infinite
- Standard deviations are population deviations (divide by N)

Usage:
    >>> from qjournal.libraries.performance import metrics
    >>> metrics.calculate_max_drawdown([Decimal("100"), Decimal("120"), Decimal("90")])
    Decimal('25.00')
"""

import math
import statistics
from decimal import Decimal
from typing import Sequence

from qjournal.libraries.performance.calculators import StreakCalculator

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


def _to_decimal(value: float, quantize: bool = True) -> Decimal:
    """Float to Decimal; non-finite values become 0."""
    if not math.isfinite(value):
        return _ZERO
    result = Decimal(str(value))
    return result.quantize(_CENT) if quantize else result


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _pstdev(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return _ZERO
    return statistics.pstdev(values)


def calculate_total_return(initial_value: Decimal, final_value: Decimal) -> Decimal:
    """
    Calculate total return percentage.

    Example:
        >>> calculate_total_return(Decimal("100000"), Decimal("125000"))
        Decimal('25.00')
    """
    if initial_value <= _ZERO:
        return _ZERO
    return (((final_value / initial_value) - Decimal("1")) * Decimal("100")).quantize(_CENT)


def calculate_period_returns(values: Sequence[Decimal]) -> list[Decimal]:
    """
    Simple returns between consecutive points.

    Pairs whose previous value is not positive are skipped.

    Example:
        >>> calculate_period_returns([Decimal("100"), Decimal("110"), Decimal("99")])
        [Decimal('0.1'), Decimal('-0.1')]
    """
    returns: list[Decimal] = []
    for previous, current in zip(values, values[1:]):
        if previous > _ZERO:
            returns.append((current - previous) / previous)
    return returns


def calculate_standard_deviation(values: Sequence[Decimal]) -> Decimal:
    """Population standard deviation (unrounded)."""
    if not values:
        return _ZERO
    return _pstdev(values)


def calculate_volatility(returns: Sequence[Decimal], periods_per_year: int | None = None) -> Decimal:
    """
    Volatility of a return series as a percentage.

    Args:
        returns: Period returns as fractions
        periods_per_year: Annualize by sqrt(periods_per_year) when given

    Returns:
        Population standard deviation × 100, optionally annualized

    Example:
        >>> calculate_volatility([Decimal("0.01"), Decimal("-0.01")])
        Decimal('1.00')
    """
    if not returns:
        return _ZERO
    std_dev = float(_pstdev(returns))
    if periods_per_year:
        std_dev *= math.sqrt(periods_per_year)
    return _to_decimal(std_dev * 100)


def calculate_annualized_return(returns: Sequence[Decimal], periods_per_year: int = 252) -> Decimal:
    """Mean period return scaled to a year, as a percentage."""
    if not returns:
        return _ZERO
    return _to_decimal(_mean([float(r) for r in returns]) * periods_per_year * 100)


def calculate_drawdown_series(values: Sequence[Decimal]) -> list[Decimal]:
    """
    Drawdown from the running peak at every point, as a fraction.

    Example:
        >>> calculate_drawdown_series([Decimal("100"), Decimal("80"), Decimal("100")])
        [Decimal('0'), Decimal('0.2'), Decimal('0')]
    """
    series: list[Decimal] = []
    if not values:
        return series

    peak = values[0]
    for value in values:
        if value > peak:
            peak = value
        if peak > _ZERO and value < peak:
            series.append((peak - value) / peak)
        else:
            series.append(_ZERO)
    return series


def calculate_max_drawdown(values: Sequence[Decimal]) -> Decimal:
    """
    Maximum running-peak drawdown as a positive percentage.

    A non-decreasing series has drawdown 0.

    Example:
        >>> calculate_max_drawdown([Decimal("100"), Decimal("105"), Decimal("95")])
        Decimal('9.52')
    """
    series = calculate_drawdown_series(values)
    if not series:
        return _ZERO
    return (max(series) * Decimal("100")).quantize(_CENT)


def calculate_sharpe_ratio(returns: Sequence[Decimal], risk_free_per_period: Decimal = _ZERO) -> Decimal:
    """
    Sharpe ratio: mean excess return over its population standard deviation.

    Args:
        returns: Period returns as fractions
        risk_free_per_period: Risk-free rate for one period (annual rate / periods per year)

    Returns:
        Ratio, or 0 when the deviation is 0
    """
    if not returns:
        return _ZERO
    excess = [r - risk_free_per_period for r in returns]
    std_dev = _pstdev(excess)
    if std_dev == 0:
        return _ZERO
    mean_excess = sum(excess, _ZERO) / Decimal(len(excess))
    return (mean_excess / std_dev).quantize(_CENT)


def calculate_downside_deviation(returns: Sequence[Decimal], target: Decimal = _ZERO) -> Decimal:
    """
    Deviation of the returns that fall below `target` (unrounded).

    Only the below-target returns are averaged.
    """
    t = float(target)
    downside = [float(r) - t for r in returns if float(r) < t]
    if not downside:
        return _ZERO
    return _to_decimal(math.sqrt(sum(d * d for d in downside) / len(downside)), quantize=False)


def calculate_sortino_ratio(
    returns: Sequence[Decimal],
    target: Decimal = _ZERO,
    risk_free_per_period: Decimal = _ZERO,
) -> Decimal:
    """
    Sortino ratio: mean excess return over downside deviation.

    Returns:
        Ratio, or 0 when there is no downside
    """
    if not returns:
        return _ZERO
    downside = float(calculate_downside_deviation(returns, target))
    if downside == 0:
        return _ZERO
    rf = float(risk_free_per_period)
    mean_excess = _mean([float(r) - rf for r in returns])
    return _to_decimal(mean_excess / downside)


def calculate_calmar_ratio(annualized_return_pct: Decimal, max_drawdown_pct: Decimal) -> Decimal:
    """
    Calmar ratio (annualized return / max drawdown), 0 without drawdown.

    Example:
        >>> calculate_calmar_ratio(Decimal("20.0"), Decimal("10.0"))
        Decimal('2.00')
    """
    if max_drawdown_pct <= _ZERO:
        return _ZERO
    return (annualized_return_pct / max_drawdown_pct).quantize(_CENT)


def _tail_index(count: int, confidence: float) -> int:
    return min(count - 1, int(math.floor(count * (1 - confidence))))


def calculate_value_at_risk(returns: Sequence[Decimal], confidence: float = 0.95) -> Decimal:
    """
    Historical Value-at-Risk as a positive loss percentage.

    Takes the (1 - confidence) percentile of the sorted returns. A percentile
    that is a gain means no loss at that level and reports 0.

    Example:
        >>> returns = [Decimal(x) / 100 for x in range(-10, 10)]
        >>> calculate_value_at_risk(returns)
        Decimal('9.00')
    """
    if not returns:
        return _ZERO
    ordered = sorted(float(r) for r in returns)
    cutoff = ordered[_tail_index(len(ordered), confidence)]
    return _to_decimal(max(0.0, -cutoff) * 100)


def calculate_conditional_value_at_risk(returns: Sequence[Decimal], confidence: float = 0.95) -> Decimal:
    """
    Conditional VaR (expected shortfall) as a positive loss percentage.

    Mean of the returns at or below the VaR percentile.
    """
    if not returns:
        return _ZERO
    ordered = sorted(float(r) for r in returns)
    tail = ordered[: _tail_index(len(ordered), confidence) + 1]
    return _to_decimal(max(0.0, -_mean(tail)) * 100)


def calculate_ulcer_index(values: Sequence[Decimal]) -> Decimal:
    """Root mean square of percentage drawdowns."""
    series = calculate_drawdown_series(values)
    if not series:
        return _ZERO
    squared = [(float(d) * 100) ** 2 for d in series]
    return _to_decimal(math.sqrt(_mean(squared)))


def calculate_pain_index(values: Sequence[Decimal]) -> Decimal:
    """Mean percentage drawdown."""
    series = calculate_drawdown_series(values)
    if not series:
        return _ZERO
    return _to_decimal(_mean([float(d) * 100 for d in series]))


def calculate_recovery_factor(total_return_pct: Decimal, max_drawdown_pct: Decimal) -> Decimal:
    """Total return over max drawdown, 0 without drawdown."""
    if max_drawdown_pct <= _ZERO:
        return _ZERO
    return (total_return_pct / max_drawdown_pct).quantize(_CENT)


def calculate_win_rate(pnls: Sequence[Decimal]) -> Decimal:
    """
    Percentage of strictly positive P&L values.

    Example:
        >>> calculate_win_rate([Decimal("100"), Decimal("-50"), Decimal("200")])
        Decimal('66.67')
    """
    if not pnls:
        return _ZERO
    wins = sum(1 for p in pnls if p > _ZERO)
    return (Decimal(wins) / Decimal(len(pnls)) * Decimal("100")).quantize(_CENT)


def calculate_expectancy(pnls: Sequence[Decimal]) -> Decimal:
    """
    Expected P&L per trade: win% × avg win − loss% × avg loss.

    Example:
        >>> calculate_expectancy([Decimal("100"), Decimal("-50")])
        Decimal('25.00')
    """
    if not pnls:
        return _ZERO

    wins = [p for p in pnls if p > _ZERO]
    losses = [p for p in pnls if p < _ZERO]
    count = Decimal(len(pnls))

    avg_win = sum(wins, _ZERO) / Decimal(len(wins)) if wins else _ZERO
    avg_loss = abs(sum(losses, _ZERO)) / Decimal(len(losses)) if losses else _ZERO

    expectancy = (Decimal(len(wins)) / count) * avg_win - (Decimal(len(losses)) / count) * avg_loss
    return expectancy.quantize(_CENT)


def calculate_profit_factor(pnls: Sequence[Decimal]) -> Decimal:
    """
    Gross profit over gross loss.

    Returns 0 when there are no losses (an unbounded factor is not reported).

    Example:
        >>> calculate_profit_factor([Decimal("100"), Decimal("-50")])
        Decimal('2.00')
    """
    gross_profit = sum((p for p in pnls if p > _ZERO), _ZERO)
    gross_loss = abs(sum((p for p in pnls if p < _ZERO), _ZERO))
    if gross_loss == _ZERO:
        return _ZERO
    return (gross_profit / gross_loss).quantize(_CENT)


def calculate_streaks(pnls: Sequence[Decimal]) -> tuple[int, int]:
    """
    Longest winning and losing runs in a chronological P&L sequence.

    A sign change resets the opposite run; a zero P&L neither extends nor
    breaks a run.

    Returns:
        (max_win_streak, max_loss_streak)

    Example:
        >>> calculate_streaks([Decimal("1"), Decimal("0"), Decimal("2"), Decimal("-1")])
        (2, 1)
    """
    calculator = StreakCalculator()
    for pnl in pnls:
        calculator.update(pnl)
    return calculator.max_win_streak, calculator.max_loss_streak


def calculate_covariance(xs: Sequence[Decimal], ys: Sequence[Decimal]) -> Decimal:
    """Population covariance over the common length of two series (unrounded)."""
    n = min(len(xs), len(ys))
    if n == 0:
        return _ZERO
    count = Decimal(n)
    mx = sum(xs[:n], _ZERO) / count
    my = sum(ys[:n], _ZERO) / count
    return sum(((a - mx) * (b - my) for a, b in zip(xs[:n], ys[:n])), _ZERO) / count
