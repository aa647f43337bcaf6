"""Engine commands: run the monitor, show stats, check conditions."""

from __future__ import annotations

import asyncio

import typer
from rich.table import Table

from autopay.api.cli.context import (
    configure_logging,
    console,
    open_engine,
    settings_from_context,
)
from autopay.application.condition_parser import parse_condition
from autopay.core.domain.config_schema import AutopaySettings
from autopay.core.domain.errors import ConditionParseError


def run_engine(ctx: typer.Context) -> None:
    """Monitor all active rules until interrupted."""
    settings = settings_from_context(ctx)
    configure_logging(settings.log_level)
    console.print(
        f"[bold green]Starting autopay engine[/bold green] "
        f"(tick every {settings.tick_interval_seconds:g}s, funding wallet "
        f"'{settings.funding_wallet}')"
    )
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down autopay engine...[/yellow]")
    console.print("[green]Autopay engine stopped.[/green]")


async def _run(settings: AutopaySettings) -> None:
    engine = await open_engine(settings)
    try:
        await engine.initialize()
        stats = await engine.get_stats()
        console.print(
            f"[bold green]Monitoring {stats.active} active rule(s).[/bold green] "
            "Press Ctrl+C to stop."
        )
        while engine.is_initialized:
            await asyncio.sleep(1)
    finally:
        await engine.shutdown()


def show_stats(ctx: typer.Context) -> None:
    """Show rule and execution statistics."""
    settings = settings_from_context(ctx)

    async def _stats():
        engine = await open_engine(settings)
        return await engine.get_stats(), await engine.get_execution_stats()

    rule_stats, execution_stats = asyncio.run(_stats())
    table = Table(title="Autopay Stats")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for name, value in rule_stats.to_dict().items():
        table.add_row(f"rules.{name}", str(value))
    for name, value in execution_stats.to_dict().items():
        table.add_row(f"executions.{name}", str(value))
    console.print(table)


def check_condition(
    condition: str = typer.Argument(..., help="Condition text to validate"),
) -> None:
    """Parse a condition and show how it is interpreted."""
    try:
        predicate = parse_condition(condition)
    except ConditionParseError as exc:
        console.print(f"[bold red]Invalid condition:[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]{predicate.kind.value}[/green]: {predicate.describe()}")
