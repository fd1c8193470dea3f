"""XIRR (money-weighted annual return) solver.

Cash flows follow the investor sign convention: the starting capital is an
outflow, deposits are outflows, withdrawals are inflows and the ending
capital is an inflow. Each flow is discounted by (1 + r) ** (days / 365)
from the earliest flow date.

Newton-Raphson runs first from `guess`; when the derivative vanishes, the
iterate leaves the bracket or the iteration budget runs out, bisection over
the bracket takes over. A search that finds no root returns an UNDETERMINED
result instead of raising.
"""

import math
from datetime import date as Date
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Protocol

from qjournal.libraries.performance.models import XirrResult, XirrStatus
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

DAYS_PER_YEAR = 365.0
DEFAULT_GUESS = 0.1
DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-7
DEFAULT_BRACKET = (-0.999, 10.0)
_MIN_DERIVATIVE = 1e-12


class DatedAmount(Protocol):
    """Anything with a date and a signed amount (CashFlowEvent, CapitalChange)."""

    @property
    def date(self) -> Date: ...

    @property
    def amount(self) -> Decimal: ...


def build_cash_flows(
    start_date: Date,
    start_capital: Decimal,
    end_date: Date,
    end_capital: Decimal,
    cash_flows: Iterable[DatedAmount] = (),
) -> list[tuple[Date, float]]:
    """Investor-signed flows sorted by date; zero amounts are dropped."""
    flows = [(start_date, -float(start_capital))]
    flows.extend((cf.date, -float(cf.amount)) for cf in cash_flows)
    flows.append((end_date, float(end_capital)))
    return sorted((f for f in flows if f[1] != 0.0), key=lambda f: f[0])


def _year_fractions(flows: list[tuple[Date, float]]) -> list[tuple[float, float]]:
    origin = flows[0][0]
    return [((day - origin).days / DAYS_PER_YEAR, amount) for day, amount in flows]


def _npv(rate: float, flows: list[tuple[float, float]]) -> float:
    base = 1.0 + rate
    try:
        return sum(amount / base**t for t, amount in flows)
    except (OverflowError, ZeroDivisionError):
        return math.nan


def _npv_derivative(rate: float, flows: list[tuple[float, float]]) -> float:
    base = 1.0 + rate
    try:
        return sum(-t * amount / base ** (t + 1) for t, amount in flows)
    except (OverflowError, ZeroDivisionError):
        return math.nan


def _newton(
    flows: list[tuple[float, float]],
    guess: float,
    max_iterations: int,
    tolerance: float,
    bracket: tuple[float, float],
) -> tuple[float | None, int]:
    rate = guess
    for iteration in range(1, max_iterations + 1):
        value = _npv(rate, flows)
        derivative = _npv_derivative(rate, flows)
        if not (math.isfinite(value) and math.isfinite(derivative)):
            return None, iteration
        if abs(value) < tolerance:
            return rate, iteration
        if abs(derivative) < _MIN_DERIVATIVE:
            return None, iteration

        next_rate = rate - value / derivative
        if not math.isfinite(next_rate) or not bracket[0] <= next_rate <= bracket[1]:
            return None, iteration
        if abs(next_rate - rate) < tolerance:
            return next_rate, iteration
        rate = next_rate
    return None, max_iterations


def _bisection(
    flows: list[tuple[float, float]],
    max_iterations: int,
    tolerance: float,
    bracket: tuple[float, float],
) -> tuple[float | None, int]:
    low, high = bracket
    f_low = _npv(low, flows)
    f_high = _npv(high, flows)
    if not (math.isfinite(f_low) and math.isfinite(f_high)) or f_low * f_high > 0:
        return None, 0

    for iteration in range(1, max_iterations + 1):
        mid = (low + high) / 2
        f_mid = _npv(mid, flows)
        if not math.isfinite(f_mid):
            return None, iteration
        if abs(f_mid) < tolerance or (high - low) / 2 < tolerance:
            return mid, iteration
        if f_low * f_mid < 0:
            high, f_high = mid, f_mid
        else:
            low, f_low = mid, f_mid
    return None, max_iterations


def solve_xirr(
    start_date: Date,
    start_capital: Decimal,
    end_date: Date,
    end_capital: Decimal,
    cash_flows: Iterable[DatedAmount] = (),
    *,
    guess: float = DEFAULT_GUESS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    bracket: tuple[float, float] = DEFAULT_BRACKET,
) -> XirrResult:
    """
    Solve for the annual rate that zeroes the NPV of a capital history.

    Args:
        start_date: Date of the starting capital
        start_capital: Capital at start (treated as an outflow)
        end_date: Valuation date
        end_capital: Capital at end (treated as an inflow)
        cash_flows: Deposits (positive) and withdrawals (negative) in between
        guess: Newton starting point
        max_iterations: Budget for each of Newton and bisection
        tolerance: Convergence tolerance on NPV and on the rate step
        bracket: Rate interval searched; bisection needs an NPV sign change across it

    Returns:
        XirrResult; UNDETERMINED with rate 0 for degenerate input or no root

    Example:
        >>> result = solve_xirr(date(2023, 1, 1), Decimal("1000"), date(2024, 1, 1), Decimal("1100"))
        >>> round(result.rate, 6)
        0.1
    """
    if end_date <= start_date:
        return XirrResult.undetermined()

    flows = build_cash_flows(start_date, start_capital, end_date, end_capital, cash_flows)
    if len(flows) < 2:
        return XirrResult.undetermined()
    if all(amount > 0 for _, amount in flows) or all(amount < 0 for _, amount in flows):
        return XirrResult.undetermined()

    timed = _year_fractions(flows)

    rate, iterations = _newton(timed, guess, max_iterations, tolerance, bracket)
    if rate is not None:
        return XirrResult(rate=rate, status=XirrStatus.CONVERGED, iterations=iterations, method="newton")

    logger.debug("xirr.fallback_bisection", newton_iterations=iterations, flows=len(flows))
    rate, iterations = _bisection(timed, max_iterations, tolerance, bracket)
    if rate is not None:
        return XirrResult(rate=rate, status=XirrStatus.CONVERGED, iterations=iterations, method="bisection")

    logger.debug("xirr.undetermined", flows=len(flows))
    return XirrResult.undetermined(iterations=iterations, method="bisection")


def _epoch_ms(day: Date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp() * 1000)


def _amount_text(amount: Decimal | float | int) -> str:
    normalized = Decimal(str(amount)).normalize()
    text = format(normalized, "f")
    return "0" if text in ("-0", "0") else text


def xirr_cache_key(
    start_date: Date,
    start_capital: Decimal,
    end_date: Date,
    end_capital: Decimal,
    cash_flows: Iterable[DatedAmount] = (),
) -> str:
    """
    Fingerprint of a solver input.

    Format: "{startEpochMs}-{startCapital}-{endEpochMs}-{endCapital}-{e1:a1,e2:a2,...}"
    with flow pairs sorted, so equal histories in any order share a key.
    """
    pairs = sorted((_epoch_ms(cf.date), Decimal(str(cf.amount)).normalize()) for cf in cash_flows)
    flow_text = ",".join(f"{epoch}:{_amount_text(amount)}" for epoch, amount in pairs)
    return (
        f"{_epoch_ms(start_date)}-{_amount_text(start_capital)}-"
        f"{_epoch_ms(end_date)}-{_amount_text(end_capital)}-{flow_text}"
    )
