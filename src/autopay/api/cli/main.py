"""Autopay CLI entry point."""

from typing import Optional

import typer
from rich.console import Console

from autopay.api.cli.commands import engine, rules
from autopay.api.cli.context import configure_logging

app = typer.Typer(
    name="autopay",
    help="x402 autopay - standing payment rules",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(rules.app, name="rules", help="Rule management")
app.command("run")(engine.run_engine)
app.command("stats")(engine.show_stats)
app.command("check")(engine.check_condition)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings YAML file"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Autopay CLI."""
    configure_logging("DEBUG" if debug else "WARNING")
    ctx.obj = {"config": config, "debug": debug}


@app.command()
def version():
    """Show autopay version."""
    from autopay import __version__

    console.print(f"[bold blue]Version:[/bold blue] [cyan]{__version__}[/cyan]")


if __name__ == "__main__":
    app()
