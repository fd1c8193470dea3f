"""Performance analytics library.

1. **Models** (`models.py`): Pydantic result structures
   - XirrResult: Money-weighted return with explicit undetermined state
   - PerformanceSummary / RiskSummary: Trade and portfolio statistics
   - SetupPerformance, TradeDistribution, BenchmarkComparison, MonthlyPerformance

2. **Metrics** (`metrics.py`): Pure calculation functions
   - Risk: volatility, max drawdown, VaR/CVaR, ulcer and pain index
   - Risk-adjusted: Sharpe, Sortino, Calmar, recovery factor
   - Trade stats: win rate, expectancy, profit factor, streaks

3. **Calculators** (`calculators.py`): Stateful incremental calculators
   - CapitalCurveCalculator: Daily capital curve from P&L and capital changes
   - ReturnsCalculator: Flow-neutral period returns
   - StreakCalculator: Win/loss streak tracking

4. **XIRR** (`xirr.py`) and **Cache** (`cache.py`)
   - solve_xirr: Newton-Raphson with bisection fallback
   - LRUCache / CachedXirrSolver: Bounded memoization of solver results

Usage:
    >>> from qjournal.libraries.performance.metrics import calculate_sharpe_ratio
    >>> sharpe = calculate_sharpe_ratio(returns, risk_free_per_period=Decimal("0.0002"))
"""

from qjournal.libraries.performance.cache import CachedXirrSolver, CacheStats, LRUCache
from qjournal.libraries.performance.calculators import (
    CapitalCurveCalculator,
    ReturnsCalculator,
    StreakCalculator,
)
from qjournal.libraries.performance.metrics import (
    calculate_annualized_return,
    calculate_calmar_ratio,
    calculate_conditional_value_at_risk,
    calculate_covariance,
    calculate_downside_deviation,
    calculate_drawdown_series,
    calculate_expectancy,
    calculate_max_drawdown,
    calculate_pain_index,
    calculate_period_returns,
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
    CashFlowEvent,
    DistributionBucket,
    MonthlyPerformance,
    PerformanceSummary,
    PeriodComparison,
    RiskSummary,
    SetupPerformance,
    TopPerformers,
    TradeDistribution,
    XirrResult,
    XirrStatus,
)
from qjournal.libraries.performance.xirr import solve_xirr, xirr_cache_key

__all__ = [
    # Models
    "AnalyticsReport",
    "BenchmarkComparison",
    "CashFlowEvent",
    "DistributionBucket",
    "MonthlyPerformance",
    "PerformanceSummary",
    "PeriodComparison",
    "RiskSummary",
    "SetupPerformance",
    "TopPerformers",
    "TradeDistribution",
    "XirrResult",
    "XirrStatus",
    # Metrics
    "calculate_annualized_return",
    "calculate_calmar_ratio",
    "calculate_conditional_value_at_risk",
    "calculate_covariance",
    "calculate_downside_deviation",
    "calculate_drawdown_series",
    "calculate_expectancy",
    "calculate_max_drawdown",
    "calculate_pain_index",
    "calculate_period_returns",
    "calculate_profit_factor",
    "calculate_recovery_factor",
    "calculate_sharpe_ratio",
    "calculate_sortino_ratio",
    "calculate_standard_deviation",
    "calculate_streaks",
    "calculate_total_return",
    "calculate_ulcer_index",
    "calculate_value_at_risk",
    "calculate_volatility",
    "calculate_win_rate",
    # Calculators
    "CapitalCurveCalculator",
    "ReturnsCalculator",
    "StreakCalculator",
    # Solver and cache
    "CachedXirrSolver",
    "CacheStats",
    "LRUCache",
    "solve_xirr",
    "xirr_cache_key",
]
