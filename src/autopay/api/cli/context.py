"""Shared helpers for CLI commands: settings, logging and engine wiring."""

from __future__ import annotations

import logging
from typing import Any

import structlog
import typer
from rich.console import Console

from autopay.application.autopay_engine import AutopayEngine
from autopay.application.config_loader import load_settings
from autopay.application.factory import build_engine
from autopay.core.domain.config_schema import AutopaySettings
from autopay.core.domain.errors import ConfigError
from autopay.infrastructure.ledger import FileLedgerStore
from autopay.infrastructure.persistence import FileRuleStore

console = Console()


def configure_logging(level_name: str) -> None:
    """Configure stdlib logging and structlog with the same level."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def settings_from_context(ctx: typer.Context) -> AutopaySettings:
    """Load settings using the global ``--config`` option."""
    global_opts: dict[str, Any] = ctx.obj or {}
    try:
        settings = load_settings(global_opts.get("config"))
    except ConfigError as exc:
        console.print(f"[bold red]Configuration error:[/bold red] {exc.message}")
        raise typer.Exit(code=2) from exc
    if global_opts.get("debug"):
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    return settings


async def open_engine(settings: AutopaySettings) -> AutopayEngine:
    """Build an engine over the file rule store and ledger in ``settings.work_dir``."""
    rule_store = FileRuleStore(settings.work_dir)
    await rule_store.load()
    ledger_store = FileLedgerStore(settings.work_dir)
    await ledger_store.load()
    return build_engine(settings, rule_store=rule_store, ledger_store=ledger_store)
