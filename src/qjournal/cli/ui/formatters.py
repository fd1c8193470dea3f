"""Rich table formatters for CLI output."""

from decimal import Decimal
from typing import Sequence

from rich.table import Table

from qjournal.libraries.performance.models import PerformanceSummary, RiskSummary, SetupPerformance
from qjournal.services.journal.models import Trade
from qjournal.services.pipeline.models import ProcessingStage, StageStatus

_STATUS_STYLES = {
    StageStatus.PENDING: "[dim]pending[/dim]",
    StageStatus.PROCESSING: "[yellow]processing[/yellow]",
    StageStatus.COMPLETED: "[green]✓ completed[/green]",
    StageStatus.ERROR: "[red]✗ error[/red]",
}


def _signed(value: Decimal, suffix: str = "") -> str:
    """Color a number green when positive and red when negative."""
    text = f"{value:,.2f}{suffix}"
    if value > 0:
        return f"[green]{text}[/green]"
    if value < 0:
        return f"[red]{text}[/red]"
    return text


def create_stage_table(stages: Sequence[ProcessingStage]) -> Table:
    """
    Create a Rich table of pipeline stage outcomes.

    Args:
        stages: Stage records of one run, in execution order

    Returns:
        Populated Rich Table
    """
    table = Table(title="Pipeline Stages")
    table.add_column("Stage", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Duration", style="dim", justify="right")
    table.add_column("Error", style="red")

    for stage in stages:
        duration = f"{stage.duration_ms:.1f} ms" if stage.duration_ms is not None else "-"
        table.add_row(stage.name, _STATUS_STYLES[stage.status], duration, stage.error or "")
    return table


def create_trade_table(trades: Sequence[Trade], cash_basis: bool = False) -> Table:
    """
    Create a Rich table of processed trades.

    Args:
        trades: Pipeline output rows
        cash_basis: Show exit dates and per-exit P&L for cash-basis rows
    """
    table = Table(title="Trades (cash basis)" if cash_basis else "Trades (accrual basis)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("No", justify="right")
    table.add_column("Name", style="magenta")
    table.add_column("Date", style="green")
    table.add_column("Status")
    table.add_column("Open Qty", justify="right")
    table.add_column("Avg Entry", justify="right")
    table.add_column("Realized P&L", justify="right")
    table.add_column("PF Impact", justify="right")
    table.add_column("Cum. PF Impact", justify="right", style="yellow")

    for trade in trades:
        day = trade.accounting_date(cash_basis)
        table.add_row(
            trade.trade_id,
            trade.trade_no or "-",
            trade.name,
            str(day) if day else "-",
            trade.effective_status.value,
            f"{trade.open_qty:,}",
            f"{trade.avg_entry:,.2f}",
            _signed(trade.accounting_pnl(cash_basis)),
            _signed(trade.accounting_pf_impact(cash_basis), "%"),
            f"{trade.cumulative_pf_impact:,.2f}%",
        )
    return table


def create_performance_table(summary: PerformanceSummary) -> Table:
    """Create a two-column Rich table of trade statistics."""
    table = Table(title="Performance")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white", justify="right")

    table.add_row("Total Trades", str(summary.total_trades))
    table.add_row("Open Positions", str(summary.open_positions))
    table.add_row("Win Rate", f"{summary.win_rate}%")
    table.add_row("Avg Gain", _signed(summary.avg_gain))
    table.add_row("Avg Loss", _signed(summary.avg_loss))
    table.add_row("Avg Positive Move", f"{summary.avg_pos_move}%")
    table.add_row("Avg Negative Move", f"{summary.avg_neg_move}%")
    table.add_row("Avg Position Size", f"{summary.avg_position_size}%")
    table.add_row("Avg Holding Days", str(summary.avg_holding_days))
    table.add_row("Avg R", str(summary.avg_r))
    table.add_row("Plan Followed", f"{summary.plan_followed}%")
    table.add_row("Expectancy", _signed(summary.expectancy))
    table.add_row("Profit Factor", str(summary.profit_factor))
    table.add_row("Max Win / Loss Streak", f"{summary.max_win_streak} / {summary.max_loss_streak}")
    table.add_row("Realized P&L", _signed(summary.total_realized_pnl))
    table.add_row("Realized PF Impact", _signed(summary.realized_pf_impact, "%"))
    table.add_row("Unrealized PF Impact", _signed(summary.unrealized_pf_impact, "%"))
    table.add_row("Open Heat", f"{summary.open_heat}%")
    return table


def create_risk_table(risk: RiskSummary) -> Table:
    """Create a two-column Rich table of portfolio risk statistics."""
    table = Table(title="Risk")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white", justify="right")

    table.add_row("Total Return", _signed(risk.total_return_pct, "%"))
    table.add_row("Annualized Return", _signed(risk.annualized_return_pct, "%"))
    table.add_row("Volatility", f"{risk.volatility_pct}%")
    table.add_row("Annualized Volatility", f"{risk.annualized_volatility_pct}%")
    table.add_row("Max Drawdown", f"{risk.max_drawdown_pct}%")
    table.add_row("Sharpe", str(risk.sharpe_ratio))
    table.add_row("Sortino", str(risk.sortino_ratio))
    table.add_row("Calmar", str(risk.calmar_ratio))
    table.add_row("VaR (95%)", f"{risk.value_at_risk_pct}%")
    table.add_row("CVaR (95%)", f"{risk.conditional_value_at_risk_pct}%")
    table.add_row("Ulcer Index", str(risk.ulcer_index))
    table.add_row("Pain Index", str(risk.pain_index))
    table.add_row("Recovery Factor", str(risk.recovery_factor))

    mwr = risk.money_weighted_return
    table.add_row("Money-Weighted Return", f"{mwr.rate_pct}%" if mwr.is_determined else "[dim]undetermined[/dim]")
    return table


def create_setup_table(setups: Sequence[SetupPerformance]) -> Table:
    """Create a Rich table of per-setup statistics."""
    table = Table(title="Setups")
    table.add_column("Setup", style="cyan", no_wrap=True)
    table.add_column("Trades", justify="right")
    table.add_column("Win Rate", justify="right")
    table.add_column("Total P&L", justify="right")
    table.add_column("Total PF Impact", justify="right")
    table.add_column("Avg PF Impact", justify="right")

    for setup in setups:
        table.add_row(
            setup.setup,
            str(setup.total_trades),
            f"{setup.win_rate}%",
            _signed(setup.total_pnl),
            _signed(setup.total_pf_impact, "%"),
            _signed(setup.avg_pf_impact, "%"),
        )
    return table
