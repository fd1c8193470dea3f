"""Metrics aggregators over processed trade lists."""

from qjournal.services.analytics.aggregators import (
    TOP_PERFORMER_METRICS,
    build_analytics_report,
    build_benchmark_comparison,
    build_capital_curve,
    build_monthly_performance,
    build_performance_summary,
    build_risk_summary,
    build_setup_performance,
    build_top_performers,
    build_trade_distribution,
    calculate_open_heat,
)

__all__ = [
    "TOP_PERFORMER_METRICS",
    "build_analytics_report",
    "build_benchmark_comparison",
    "build_capital_curve",
    "build_monthly_performance",
    "build_performance_summary",
    "build_risk_summary",
    "build_setup_performance",
    "build_top_performers",
    "build_trade_distribution",
    "calculate_open_heat",
]
