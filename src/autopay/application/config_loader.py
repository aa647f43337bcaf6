"""
Settings loading for the autopay engine.

Reads an optional YAML file, applies ``AUTOPAY_*`` environment overrides and
validates the result against ``AutopaySettings``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from autopay.core.domain.config_schema import AutopaySettings
from autopay.core.domain.errors import ConfigError

logger = structlog.get_logger(__name__)

ENV_PREFIX = "AUTOPAY_"

_ENV_FIELDS = (
    "tick_interval_seconds",
    "settlement_delay_seconds",
    "funding_wallet",
    "price_symbol",
    "notify_timeout_seconds",
    "finalize_attempts",
    "finalize_backoff_seconds",
    "event_buffer_size",
    "work_dir",
    "log_level",
)


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", details={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Invalid YAML in {path}: {exc}", details={"path": str(path)}
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {path} must contain a mapping", details={"path": str(path)}
        )
    return data


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    loglevel = environ.get("LOGLEVEL")
    if loglevel:
        overrides["log_level"] = loglevel
    for name in _ENV_FIELDS:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value not in (None, ""):
            overrides[name] = value
    return overrides


def load_settings(
    path: str | Path | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> AutopaySettings:
    """Load and validate engine settings.

    Args:
        path: Optional YAML settings file.
        environ: Environment to read overrides from (defaults to os.environ).

    Returns:
        Validated settings.

    Raises:
        ConfigError: If the file is missing or malformed, or validation fails.
    """
    data: dict[str, Any] = {}
    source = "<defaults>"
    if path is not None:
        config_path = Path(path)
        data = _read_yaml(config_path)
        source = str(config_path)

    data.update(_env_overrides(dict(os.environ) if environ is None else environ))

    try:
        settings = AutopaySettings.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        ]
        raise ConfigError(
            f"Invalid autopay settings in {source}: {'; '.join(errors)}",
            details={"path": source, "errors": errors},
        ) from exc

    logger.debug("config.loaded", source=source, tick_interval_s=settings.tick_interval_seconds)
    return settings
