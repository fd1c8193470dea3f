"""Stateful performance calculators for incremental updates.

Calculators keep state between updates so a journal can be folded into a
capital curve, a return series or streak counters one event at a time.

Usage:
    >>> from qjournal.libraries.performance.calculators import CapitalCurveCalculator
    >>> calc = CapitalCurveCalculator(Decimal("100000"))
    >>> calc.add_pnl(date(2024, 1, 5), Decimal("2500"))
    >>> calc.add_capital_change(date(2024, 1, 10), Decimal("10000"))
    >>> calc.curve()
    [(datetime.date(2024, 1, 5), Decimal('102500')), (datetime.date(2024, 1, 10), Decimal('112500'))]
"""

from datetime import date as Date
from decimal import Decimal

_ZERO = Decimal("0")
_ONE = Decimal("1")


class CapitalCurveCalculator:
    """
    Builds a daily capital curve from realized P&L and capital changes.

    Each curve point is the capital at the end of a day that had at least
    one event. Capital changes are external flows: they move the curve but
    are excluded from period returns.
    """

    def __init__(self, starting_capital: Decimal) -> None:
        """
        Initialize calculator.

        Args:
            starting_capital: Capital before the first event
        """
        self.starting_capital = starting_capital
        self._pnl_by_day: dict[Date, Decimal] = {}
        self._flows_by_day: dict[Date, Decimal] = {}

    def add_pnl(self, day: Date, amount: Decimal) -> None:
        """Record realized P&L recognized on `day`."""
        self._pnl_by_day[day] = self._pnl_by_day.get(day, _ZERO) + amount

    def add_capital_change(self, day: Date, amount: Decimal) -> None:
        """Record a deposit (positive) or withdrawal (negative) on `day`."""
        self._flows_by_day[day] = self._flows_by_day.get(day, _ZERO) + amount

    def _days(self) -> list[Date]:
        return sorted(set(self._pnl_by_day) | set(self._flows_by_day))

    def curve(self) -> list[tuple[Date, Decimal]]:
        """Chronological (day, end-of-day capital) points."""
        points: list[tuple[Date, Decimal]] = []
        value = self.starting_capital
        for day in self._days():
            value += self._pnl_by_day.get(day, _ZERO) + self._flows_by_day.get(day, _ZERO)
            points.append((day, value))
        return points

    def period_returns(self) -> list[Decimal]:
        """Flow-neutral return of every curve point against the previous one.

        The first point is measured against the starting capital.
        """
        returns = ReturnsCalculator()
        returns.update(self.starting_capital)
        for day, value in self.curve():
            returns.update(value, flow=self._flows_by_day.get(day, _ZERO))
        return returns.returns

    def growth_index(self, base: Decimal = Decimal("100")) -> list[Decimal]:
        """Time-weighted growth of `base`, starting with `base` itself."""
        index = [base]
        for r in self.period_returns():
            index.append(index[-1] * (_ONE + r))
        return index

    @property
    def total_pnl(self) -> Decimal:
        return sum(self._pnl_by_day.values(), _ZERO)

    @property
    def total_flows(self) -> Decimal:
        return sum(self._flows_by_day.values(), _ZERO)

    @property
    def ending_capital(self) -> Decimal:
        return self.starting_capital + self.total_pnl + self.total_flows

    def __len__(self) -> int:
        """Number of curve points."""
        return len(self._days())


class ReturnsCalculator:
    """
    Calculates period-over-period returns incrementally.

    A flow reported with an update is removed before computing the return,
    so deposits and withdrawals do not count as performance.
    """

    def __init__(self) -> None:
        """Initialize returns calculator."""
        self._returns: list[Decimal] = []
        self._prev_value: Decimal | None = None

    def update(self, value: Decimal, flow: Decimal = _ZERO) -> Decimal | None:
        """
        Calculate return since last update.

        Args:
            value: Current value, including any flow of this period
            flow: External flow that arrived during this period

        Returns:
            Period return as a fraction, None for the first update or when
            the previous value is not positive (that period is skipped)
        """
        if self._prev_value is None or self._prev_value <= _ZERO:
            self._prev_value = value
            return None

        period_return = (value - flow - self._prev_value) / self._prev_value
        self._returns.append(period_return)
        self._prev_value = value
        return period_return

    @property
    def returns(self) -> list[Decimal]:
        """All calculated returns."""
        return self._returns.copy()

    @property
    def cumulative_return(self) -> Decimal:
        """Compounded return from start."""
        cumulative = _ONE
        for r in self._returns:
            cumulative *= _ONE + r
        return cumulative - _ONE

    def __len__(self) -> int:
        """Number of return periods."""
        return len(self._returns)


class StreakCalculator:
    """
    Tracks winning and losing streaks over a chronological P&L sequence.

    A zero P&L neither extends nor breaks the current streak.
    """

    def __init__(self) -> None:
        self._current_win = 0
        self._current_loss = 0
        self._max_win = 0
        self._max_loss = 0

    def update(self, pnl: Decimal) -> None:
        if pnl > _ZERO:
            self._current_win += 1
            self._current_loss = 0
            self._max_win = max(self._max_win, self._current_win)
        elif pnl < _ZERO:
            self._current_loss += 1
            self._current_win = 0
            self._max_loss = max(self._max_loss, self._current_loss)

    @property
    def current_win_streak(self) -> int:
        return self._current_win

    @property
    def current_loss_streak(self) -> int:
        return self._current_loss

    @property
    def max_win_streak(self) -> int:
        return self._max_win

    @property
    def max_loss_streak(self) -> int:
        return self._max_loss
