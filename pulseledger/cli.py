"""Command Line Interface for Pulse-Ledger.

This module provides a Typer CLI for computing dashboard snapshots and
exporting the daily revenue series without running the API server.

Examples:
    pulseledger stats
    pulseledger stats --start 2024-03-01 --end 2024-03-15 --json
    pulseledger export-daily revenue.csv --start 2024-03-01 --end 2024-03-31
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.table import Table

from pulseledger.adapters.storage import create_store_adapter
from pulseledger.dashboard.services.stats_service import DashboardStatsService
from pulseledger.domain.ports import ConfigurationError, RecordStorePort
from pulseledger.domain.snapshot import DashboardStats
from pulseledger.infrastructure.logging_config import setup_logging
from pulseledger.infrastructure.settings import APP_VERSION, settings

app = typer.Typer(
    name="pulseledger",
    help="Pulse-Ledger: hospital revenue and operations statistics",
    add_completion=False
)
console = Console()


def _open_store() -> RecordStorePort:
    try:
        return create_store_adapter(settings.store_config)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Failed to create store adapter: {str(e)}")
        raise typer.Exit(code=1)


def _build_service(store: RecordStorePort) -> DashboardStatsService:
    try:
        return DashboardStatsService(store, settings.dashboard_config)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Invalid dashboard configuration: {str(e)}")
        raise typer.Exit(code=1)


def _print_snapshot(stats: DashboardStats) -> None:
    console.print(f"\n[bold blue]Dashboard snapshot[/bold blue] [dim]reference date {stats.reference_date}[/dim]\n")

    counts = Table(show_header=False, box=None, padding=(0, 2))
    counts.add_row("Active patients:", f"{stats.counts.patients:,}")
    counts.add_row("Active doctors:", f"{stats.counts.doctors:,}")
    counts.add_row("Beds:", f"{stats.counts.beds:,}")
    counts.add_row("Appointments:", f"{stats.counts.appointments:,}")
    console.print(counts)

    windows = Table(title="Windows")
    windows.add_column("Window")
    windows.add_column("Range")
    windows.add_column("Revenue", justify="right")
    windows.add_column("Transactions", justify="right")
    windows.add_column("Expenses", justify="right")
    windows.add_column("Refunds", justify="right")
    for label, bounds in stats.windows.items():
        span = f"{bounds.start_date} → {bounds.end_date}" if bounds else "[dim]outside range[/dim]"
        windows.add_row(
            label,
            span,
            f"{stats.revenue[label]:,}",
            f"{stats.transaction_counts[label]:,}",
            f"{stats.expenses[label]:,}",
            f"{stats.refunds[label]:,}",
        )
    console.print(windows)

    net_style = "green" if stats.net_daily_value >= 0 else "red"
    console.print(f"\nNet daily value: [{net_style}]{stats.net_daily_value:,}[/{net_style}]")
    if stats.undated_records:
        console.print(f"[yellow]⚠[/yellow] {stats.undated_records} records had no usable date")


@app.command()
def stats(
    start: Optional[str] = typer.Option(None, "--start", "-s", help="First day of the range (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Last day of the range (YYYY-MM-DD)"),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
) -> None:
    """Compute one dashboard snapshot.

    Without --start/--end the windows are Today, ThisWeek and ThisMonth.
    """
    store = _open_store()
    try:
        service = _build_service(store)
        result = asyncio.run(service.get_dashboard_stats(start_date=start, end_date=end))
    finally:
        store.close()

    if result.is_failure():
        console.print(f"[red]✗[/red] {result.error_type}: {result.error}")
        if result.error_details:
            console.print(f"[dim]{result.error_details}[/dim]")
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(result.value.model_dump_json(indent=2))
    else:
        _print_snapshot(result.value)


@app.command("export-daily")
def export_daily(
    output: Path = typer.Argument(..., help="CSV file to write"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help="First day of the range (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Last day of the range (YYYY-MM-DD)"),
) -> None:
    """Export revenue per day (this month, or the given range) to CSV."""
    store = _open_store()
    try:
        service = _build_service(store)
        result = asyncio.run(service.get_daily_revenue(start_date=start, end_date=end))
    finally:
        store.close()

    if result.is_failure():
        console.print(f"[red]✗[/red] {result.error_type}: {result.error}")
        raise typer.Exit(code=1)

    frame = pd.DataFrame(
        [(day, str(total), count) for day, (total, count) in result.value.items()],
        columns=["date", "revenue", "transactions"],
    )
    frame.to_csv(output, index=False)
    console.print(f"[green]✓[/green] Wrote {len(frame)} days to {output}")


@app.command()
def info() -> None:
    """Display configuration (credentials are never shown)."""
    console.print("[bold blue]System Information[/bold blue]\n")

    try:
        store_config = settings.store_config
        dashboard_config = settings.dashboard_config
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] {str(e)}")
        raise typer.Exit(code=1)

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", f"{settings.app_name} v{APP_VERSION}")
    info_table.add_row("Store Type:", store_config.db_type)
    if store_config.db_type == "duckdb":
        info_table.add_row("Database Path:", store_config.db_path or ":memory:")
    else:
        info_table.add_row("Database Host:", str(store_config.host))
        info_table.add_row("Database Name:", str(store_config.database))
    info_table.add_row("Tenant:", dashboard_config.tenant_id)
    info_table.add_row("Page Size:", str(dashboard_config.page_size))
    info_table.add_row("Page Timeout:", f"{dashboard_config.page_timeout_seconds}s")
    info_table.add_row("Suspicious Page Sizes:", ", ".join(map(str, dashboard_config.suspicious_page_sizes)))
    info_table.add_row("Refund Category:", dashboard_config.refund_category)
    info_table.add_row("Exclusion Rules:", str(len(dashboard_config.exclusion_rules)))
    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Pulse-Ledger: hospital revenue and operations statistics."""
    if version:
        console.print(f"Pulse-Ledger v{APP_VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    setup_logging(use_json=settings.json_logs, log_level="DEBUG" if verbose else settings.log_level)
    if verbose:
        logging.getLogger(__name__).debug("Verbose logging enabled")


if __name__ == "__main__":
    app()
