"""CLI UI components - table formatters."""

from qjournal.cli.ui.formatters import (
    create_performance_table,
    create_risk_table,
    create_setup_table,
    create_stage_table,
    create_trade_table,
)

__all__ = [
    "create_performance_table",
    "create_risk_table",
    "create_setup_table",
    "create_stage_table",
    "create_trade_table",
]
