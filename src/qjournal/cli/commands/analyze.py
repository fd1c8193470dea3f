"""Journal analysis command."""

import asyncio
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from qjournal.cli.ui.formatters import (
    create_performance_table,
    create_risk_table,
    create_setup_table,
    create_stage_table,
    create_trade_table,
)
from qjournal.libraries.performance.cache import CachedXirrSolver
from qjournal.services.analytics.aggregators import build_analytics_report
from qjournal.services.journal.loader import load_journal
from qjournal.services.pipeline.executor import WorkerExecutor
from qjournal.services.pipeline.models import DateRangeFilter, PipelineRequest, PipelineResult, SortDescriptor
from qjournal.services.pipeline.service import TradePipeline
from qjournal.system.config import get_system_config, reload_system_config

console = Console()


async def _run_pipeline(pipeline: TradePipeline, request: PipelineRequest) -> PipelineResult:
    try:
        return await pipeline.run(request)
    finally:
        await pipeline.close()


@click.command("analyze")
@click.option(
    "--file",
    "-f",
    "journal_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to journal file (YAML)",
)
@click.option("--cash-basis", is_flag=True, help="Recognize P&L on exit dates instead of entry dates")
@click.option("--search", "-q", help="Case-insensitive text matched against name, setup, trade number and notes")
@click.option(
    "--status",
    type=click.Choice(["all", "open", "partial", "closed"], case_sensitive=False),
    default="all",
    show_default=True,
    help="Position status filter",
)
@click.option("--from", "start_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="First date (YYYY-MM-DD)")
@click.option("--to", "end_date", type=click.DateTime(formats=["%Y-%m-%d"]), help="Last date (YYYY-MM-DD)")
@click.option("--sort", "sort_spec", help="Sort as column[:asc|desc], e.g. pf_impact:desc")
@click.option("--workers", is_flag=True, help="Normalize large journals in a background worker")
@click.option("--show-trades/--hide-trades", default=True, help="Print the processed trade table")
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set logging level",
)
def analyze_command(
    journal_file: Path,
    cash_basis: bool,
    search: Optional[str],
    status: str,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    sort_spec: Optional[str],
    workers: bool,
    show_trades: bool,
    log_level: Optional[str],
):
    """
    Process a trade journal and print its analytics.

    Runs the journal through the processing pipeline (sizing, normalization,
    accounting, filtering, sorting, cumulative impact) and prints stage
    status, trades, performance, risk and setup tables.

    \b
    Examples:
        # Accrual basis, everything
        qjournal analyze --file journal.yaml

        # Cash basis, closed trades of Q1, best impact first
        qjournal analyze -f journal.yaml --cash-basis --status closed \\
            --from 2024-01-01 --to 2024-03-31 --sort pf_impact:desc

        # Only breakout setups
        qjournal analyze -f journal.yaml -q breakout
    """
    try:
        console.rule("[bold blue]QJournal Analysis[/bold blue]")
        console.print()

        console.print("[cyan]Loading journal...[/cyan]")
        reload_system_config()
        system_config = get_system_config()

        if log_level:
            from qjournal.system import LoggerFactory

            system_config.logging.level = log_level.upper()
            LoggerFactory.configure(system_config.logging.to_logger_config())

        journal = load_journal(journal_file)
        resolver = journal.build_resolver()

        date_range = None
        if start_date or end_date:
            date_range = DateRangeFilter(
                start=start_date.date() if start_date else None,
                end=end_date.date() if end_date else None,
            )

        request = PipelineRequest(
            trades=journal.trades,
            resolver=resolver,
            capital_changes=journal.capital_changes,
            cash_basis=cash_basis,
            date_range=date_range,
            search=search,
            status=status.lower(),
            sort=SortDescriptor.parse(sort_spec) if sort_spec else None,
        )

        console.print(f"  Journal: [yellow]{journal_file}[/yellow]")
        console.print(f"  Trades: [yellow]{len(journal.trades)}[/yellow]")
        console.print(f"  Accounting: [yellow]{'cash' if cash_basis else 'accrual'} basis[/yellow]")
        console.print()

        analytics_config = system_config.analytics
        pipeline = TradePipeline(executor=WorkerExecutor() if workers else None, config=analytics_config)
        result = asyncio.run(_run_pipeline(pipeline, request))

        console.print(create_stage_table(result.stages))
        console.print()

        if not result.succeeded or result.trades is None:
            console.print(f"[bold red]✗ Analysis failed:[/bold red] {result.error}")
            sys.exit(1)

        if show_trades:
            console.print(create_trade_table(result.trades, cash_basis))
            console.print()

        report = build_analytics_report(
            result.trades,
            journal.capital_changes,
            cash_basis=cash_basis,
            starting_capital=Decimal(journal.portfolio_size),
            resolver=resolver,
            xirr_solver=CachedXirrSolver.from_config(analytics_config),
            config=analytics_config,
        )

        console.rule("[bold green]RESULTS[/bold green]")
        console.print()
        console.print(create_performance_table(report.performance))
        console.print()
        console.print(create_risk_table(report.risk))
        console.print()
        if report.setups:
            console.print(create_setup_table(report.setups))
            console.print()

        console.print("[bold green]✓ Analysis completed successfully![/bold green]")
        sys.exit(0)

    except Exception as e:
        console.print()
        console.print(f"[bold red]✗ Analysis failed:[/bold red] {e}")
        import traceback

        console.print()
        console.print("[dim]" + traceback.format_exc() + "[/dim]")
        sys.exit(1)
