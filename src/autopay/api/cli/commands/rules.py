"""Rule management commands."""

from __future__ import annotations

import asyncio

import typer
from rich.table import Table

from autopay.api.cli.context import console, open_engine, settings_from_context
from autopay.core.domain.errors import ExecutionFailure, ValidationError

app = typer.Typer(help="Autopay rule management")


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@app.command("add")
def add_rule(
    ctx: typer.Context,
    recipient: str = typer.Argument(..., help="Recipient wallet reference"),
    amount: str = typer.Argument(..., help="Amount per payment (BTC)"),
    condition: str = typer.Argument(..., help="Condition, e.g. 'every hour'"),
) -> None:
    """Create an autopay rule."""
    settings = settings_from_context(ctx)

    async def _add() -> str:
        engine = await open_engine(settings)
        return await engine.create_rule(recipient, amount, condition)

    try:
        rule_id = asyncio.run(_add())
    except ValidationError as exc:
        console.print(f"[bold red]Invalid rule:[/bold red] {exc.message}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Rule created:[/green] {rule_id}")


@app.command("list")
def list_rules(ctx: typer.Context) -> None:
    """List autopay rules."""
    settings = settings_from_context(ctx)

    async def _list():
        engine = await open_engine(settings)
        return engine, await engine.list_rules()

    engine, rules = asyncio.run(_list())
    if not rules:
        console.print("[yellow]No autopay rules defined.[/yellow]")
        return

    table = Table(title="Autopay Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Rule", style="white")
    table.add_column("Last Triggered", style="magenta")
    for rule in rules:
        table.add_row(
            rule.rule_id,
            "active" if rule.active else "inactive",
            engine.describe(rule),
            _format_time(rule.last_triggered),
        )
    console.print(table)


def _toggle(ctx: typer.Context, rule_id: str, activate: bool) -> None:
    settings = settings_from_context(ctx)

    async def _run() -> bool:
        engine = await open_engine(settings)
        if activate:
            return await engine.activate_rule(rule_id)
        return await engine.deactivate_rule(rule_id)

    if not asyncio.run(_run()):
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(code=1)
    state = "activated" if activate else "deactivated"
    console.print(f"[green]Rule {state}:[/green] {rule_id}")


@app.command("activate")
def activate_rule(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")) -> None:
    """Activate a rule."""
    _toggle(ctx, rule_id, activate=True)


@app.command("deactivate")
def deactivate_rule(
    ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")
) -> None:
    """Deactivate a rule."""
    _toggle(ctx, rule_id, activate=False)


@app.command("remove")
def remove_rule(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")) -> None:
    """Delete a rule."""
    settings = settings_from_context(ctx)

    async def _remove() -> bool:
        engine = await open_engine(settings)
        return await engine.delete_rule(rule_id)

    if not asyncio.run(_remove()):
        console.print(f"[red]Rule not found:[/red] {rule_id}")
        raise typer.Exit(code=1)
    console.print(f"[green]Rule removed:[/green] {rule_id}")


@app.command("trigger")
def trigger_rule(ctx: typer.Context, rule_id: str = typer.Argument(..., help="Rule ID")) -> None:
    """Execute a rule immediately using the configured demo wallets."""
    settings = settings_from_context(ctx)

    async def _trigger():
        engine = await open_engine(settings)
        return await engine.manually_trigger_rule(rule_id)

    execution = asyncio.run(_trigger())
    try:
        execution.raise_for_error()
    except ExecutionFailure as exc:
        console.print(f"[red]Execution failed:[/red] {exc.message}")
        raise typer.Exit(code=1) from exc
    console.print(
        f"[green]Payment settled:[/green] transaction {execution.transaction_id} "
        f"({execution.settlement_reference})"
    )
