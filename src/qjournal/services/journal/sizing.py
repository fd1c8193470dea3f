"""Portfolio sizing resolver.

Maps a date to the capital base used for allocation and portfolio impact
ratios. A monthly override wins when it is positive and finite; otherwise the
default capital plus every capital change dated on or before the date is used.
"""

from datetime import date as Date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Mapping

from qjournal.services.journal.models import CapitalChange, PortfolioSizeLookup
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_MONTH_ALIASES = {
    "sept": "Sep",
    "january": "Jan",
    "february": "Feb",
    "march": "Mar",
    "april": "Apr",
    "june": "Jun",
    "july": "Jul",
    "august": "Aug",
    "september": "Sep",
    "october": "Oct",
    "november": "Nov",
    "december": "Dec",
}


def normalize_month(month: str) -> str:
    """Normalize a month name to its three-letter form ("Sept" -> "Sep")."""
    text = month.strip()
    alias = _MONTH_ALIASES.get(text.lower())
    if alias is not None:
        return alias
    for abbrev in MONTHS:
        if text.lower() == abbrev.lower():
            return abbrev
    return text


def month_key(day: Date) -> str:
    """Key of the month containing `day`, e.g. "Jan-2024"."""
    return f"{MONTHS[day.month - 1]}-{day.year}"


def parse_month_key(key: str) -> tuple[int, int] | None:
    """(year, month number) of a key like "Jan-2024" or "Sept-2024", or None."""
    name, _, year = key.strip().partition("-")
    name = normalize_month(name)
    if name not in MONTHS or not year.isdigit():
        return None
    return int(year), MONTHS.index(name) + 1


def _valid_size(value: object) -> Decimal | None:
    """Positive finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        size = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not size.is_finite() or size <= 0:
        return None
    return size


class PortfolioSizeResolver:
    """
    Resolves the capital base for any date.

    Args:
        default_size: Starting capital base
        monthly_sizes: Explicit capital per (year, month number)
        lookup: Callable taking (month abbreviation, year); consulted after monthly_sizes
        capital_changes: Deposits and withdrawals added to the default base

    Example:
        >>> resolver = PortfolioSizeResolver(Decimal("100000"), monthly_sizes={(2024, 3): Decimal("120000")})
        >>> resolver.resolve(date(2024, 3, 15))
        Decimal('120000')
    """

    def __init__(
        self,
        default_size: Decimal | float | int = Decimal("100000"),
        monthly_sizes: Mapping[tuple[int, int], Decimal | float | int] | None = None,
        lookup: PortfolioSizeLookup | None = None,
        capital_changes: Iterable[CapitalChange] = (),
    ) -> None:
        self.default_size = Decimal(str(default_size))
        self._monthly_sizes = dict(monthly_sizes or {})
        self._lookup = lookup
        self._capital_changes = sorted(capital_changes, key=lambda c: c.date)
        self._unsized_months: set[tuple[int, int]] = set()

    @classmethod
    def from_month_keys(
        cls, sizes: Mapping[str, Decimal | None], default_size: Decimal | float | int = Decimal("100000")
    ) -> "PortfolioSizeResolver":
        """Rebuild a resolver from the output of sizes_for().

        Months mapped to None keep resolving to None.
        """
        monthly: dict[tuple[int, int], Decimal] = {}
        unsized: set[tuple[int, int]] = set()
        for key, size in sizes.items():
            month = parse_month_key(key)
            if month is None:
                continue
            if size is None:
                unsized.add(month)
            else:
                monthly[month] = size
        resolver = cls(default_size, monthly_sizes=monthly)
        resolver._unsized_months = unsized
        return resolver

    @property
    def capital_changes(self) -> list[CapitalChange]:
        return list(self._capital_changes)

    def _override(self, year: int, month: int) -> Decimal | None:
        size = _valid_size(self._monthly_sizes.get((year, month)))
        if size is not None:
            return size
        if self._lookup is None:
            return None
        try:
            return _valid_size(self._lookup(MONTHS[month - 1], year))
        except Exception as e:
            logger.warning("sizing.lookup_failed", month=MONTHS[month - 1], year=year, error=str(e))
            return None

    def _base_on(self, day: Date | None) -> Decimal:
        total = self.default_size
        if day is None:
            return total
        for change in self._capital_changes:
            if change.date > day:
                break
            total += change.amount
        return total

    def resolve(self, day: Date | None) -> Decimal | None:
        """
        Capital base for a date.

        Returns:
            Positive finite capital, or None when no valid base exists
            (callers then report ratios as 0).
        """
        if day is not None:
            if (day.year, day.month) in self._unsized_months:
                return None
            override = self._override(day.year, day.month)
            if override is not None:
                return override
        return _valid_size(self._base_on(day))

    def resolve_month(self, month: str, year: int) -> Decimal | None:
        """Capital base for a month given by name, as of the first day of the month."""
        name = normalize_month(month)
        if name not in MONTHS:
            return None
        return self.resolve(Date(year, MONTHS.index(name) + 1, 1))

    def sizes_for(self, days: Iterable[Date | None]) -> dict[str, Decimal | None]:
        """Capital base per month key for every distinct month among `days`.

        Each month resolves as of its first day, matching resolve_month().
        A month without a valid base maps to None.
        """
        sizes: dict[str, Decimal | None] = {}
        for day in days:
            if day is None:
                continue
            key = month_key(day)
            if key not in sizes:
                sizes[key] = self.resolve(day.replace(day=1))
        return sizes

    def __call__(self, month: str, year: int) -> Decimal | None:
        return self.resolve_month(month, year)
