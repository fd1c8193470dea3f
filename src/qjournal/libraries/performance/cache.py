"""Bounded result cache and the cached XIRR solver.

LRUCache keeps at most `capacity` entries and evicts the least recently used
one when a new key arrives at capacity. It is not thread-safe: one owner
(a solver instance or a pipeline) reads and writes it.
"""

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date as Date
from decimal import Decimal
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from qjournal.libraries.performance.models import XirrResult
from qjournal.libraries.performance.xirr import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    DatedAmount,
    solve_xirr,
    xirr_cache_key,
)
from qjournal.system.config import AnalyticsConfig
from qjournal.system.log_system import LoggerFactory

logger = LoggerFactory.get_logger()

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_CAPACITY = 2000


@dataclass(frozen=True)
class CacheStats:
    """Counters of a cache since creation or the last clear()."""

    hits: int
    misses: int
    evictions: int
    size: int
    capacity: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class LRUCache(Generic[K, V]):
    """
    Least Recently Used cache on an OrderedDict.

    Recency is position: the first entry is least recent, the last entry is
    most recent. get() refreshes recency; `in` does not.

    Example:
        >>> cache: LRUCache[str, int] = LRUCache(2)
        >>> cache.set("a", 1)
        >>> cache.set("b", 2)
        >>> cache.get("a")
        1
        >>> cache.set("c", 3)  # evicts "b"
        >>> "b" in cache
        False
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: K) -> V | None:
        """Value for `key` (now most recent), or None on a miss."""
        if key not in self._entries:
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return self._entries[key]

    def set(self, key: K, value: V) -> None:
        """Insert or update `key`; a new key at capacity evicts exactly one entry."""
        if key in self._entries:
            self._entries[key] = value
            self._entries.move_to_end(key)
            return

        if len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
            self._evictions += 1

        self._entries[key] = value

    def clear(self) -> None:
        """Drop every entry and reset counters."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            size=len(self._entries),
            capacity=self.capacity,
        )

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


XirrSolver = Callable[..., XirrResult]


class CachedXirrSolver:
    """
    XIRR solver memoized on the input fingerprint.

    Each instance owns its cache; call clear() when the underlying journal
    data is reloaded.

    Example:
        >>> solver = CachedXirrSolver(LRUCache(100))
        >>> first = solver.solve(start, Decimal("1000"), end, Decimal("1100"))
        >>> second = solver.solve(start, Decimal("1000"), end, Decimal("1100"))  # cache hit
    """

    def __init__(
        self,
        cache: LRUCache[str, XirrResult] | None = None,
        solver: XirrSolver = solve_xirr,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tolerance: float = DEFAULT_TOLERANCE,
    ) -> None:
        self.cache: LRUCache[str, XirrResult] = cache if cache is not None else LRUCache(DEFAULT_CAPACITY)
        self._solver = solver
        self._max_iterations = max_iterations
        self._tolerance = tolerance

    @classmethod
    def from_config(cls, config: AnalyticsConfig) -> "CachedXirrSolver":
        return cls(
            LRUCache(config.xirr_cache_size),
            max_iterations=config.xirr_max_iterations,
            tolerance=config.xirr_tolerance,
        )

    def solve(
        self,
        start_date: Date,
        start_capital: Decimal,
        end_date: Date,
        end_capital: Decimal,
        cash_flows: Iterable[DatedAmount] = (),
    ) -> XirrResult:
        """Solve, or return the cached result for an identical input."""
        flows = list(cash_flows)
        key = xirr_cache_key(start_date, start_capital, end_date, end_capital, flows)

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        result = self._solver(
            start_date,
            start_capital,
            end_date,
            end_capital,
            flows,
            max_iterations=self._max_iterations,
            tolerance=self._tolerance,
        )
        self.cache.set(key, result)
        return result

    def clear(self) -> None:
        """Invalidate all cached results."""
        size = len(self.cache)
        self.cache.clear()
        logger.debug("cache.cleared", entries=size)
