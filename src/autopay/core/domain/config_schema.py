"""
Configuration Schema Validation

Pydantic models for the autopay engine settings file. Validation errors are
wrapped into ``ConfigError`` by the config loader.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WalletSeedSchema(BaseModel):
    """Balance and address of a wallet served by the in-memory gateway."""

    model_config = ConfigDict(extra="forbid")

    balance: Decimal = Field(Decimal("0"), ge=0, description="Spendable balance")
    address: str = Field("", description="Receive/sender address")


class AutopaySettings(BaseModel):
    """Settings for the autopay engine and its demo adapters."""

    model_config = ConfigDict(extra="forbid")

    tick_interval_seconds: float = Field(
        60.0,
        gt=0,
        description="Period between two condition checks of one rule",
    )
    settlement_delay_seconds: float = Field(
        2.0,
        ge=0,
        description="Simulated network confirmation delay",
    )
    funding_wallet: str = Field(
        "default",
        min_length=1,
        description="Wallet reference payments are sent from",
    )
    price_symbol: str = Field("BTC", min_length=1)
    notify_timeout_seconds: float = Field(5.0, gt=0)
    finalize_attempts: int = Field(
        3,
        ge=1,
        description="Attempts to write the terminal ledger status",
    )
    finalize_backoff_seconds: float = Field(
        0.2,
        ge=0,
        description="Base delay between terminal ledger write attempts; doubles per retry",
    )
    event_buffer_size: int = Field(100, ge=1)
    work_dir: str = Field(".autopay")
    log_level: str = Field("INFO")

    wallets: dict[str, WalletSeedSchema] = Field(default_factory=dict)
    prices: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("price_symbol")
    @classmethod
    def normalize_symbol(cls, value: str) -> str:
        return value.upper()
