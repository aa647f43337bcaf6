"""Condition predicate domain models.

A rule's condition is stored in parsed form: one of the frozen predicate
dataclasses below. Text is only an input format, handled by
``autopay.application.condition_parser``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Union

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class PredicateKind(str, Enum):
    """Discriminator for serialized predicates."""

    PERIODIC = "periodic"
    DAILY_AT = "daily_at"
    WEEKLY_ON = "weekly_on"
    MONTHLY_ON = "monthly_on"
    PRICE_THRESHOLD = "price_threshold"
    EVENT_OCCURRED = "event_occurred"


class PriceOperator(str, Enum):
    """Comparison applied to the current price."""

    GREATER = ">"
    LESS = "<"
    EQUAL = "="


# Relative tolerance for PriceOperator.EQUAL.
PRICE_EQUAL_TOLERANCE = Decimal("0.01")


def _format_clock(hour: int, minute: int) -> str:
    return f"{hour:02d}:{minute:02d}"


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


@dataclass(frozen=True)
class Periodic:
    """Fires once per interval boundary counted from the rule's creation."""

    interval: timedelta

    kind = PredicateKind.PERIODIC

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError("Periodic interval must be positive")

    def describe(self) -> str:
        seconds = int(self.interval.total_seconds())
        for unit, size in (("week", 604800), ("day", 86400), ("hour", 3600), ("minute", 60)):
            if seconds % size == 0:
                count = seconds // size
                return f"every {unit}" if count == 1 else f"every {count} {unit}s"
        return f"every {seconds} seconds"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "interval_seconds": self.interval.total_seconds()}


@dataclass(frozen=True)
class DailyAt:
    """Fires once per day at the given UTC wall-clock time."""

    hour: int = 0
    minute: int = 0

    kind = PredicateKind.DAILY_AT

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid time of day: {self.hour}:{self.minute}")

    def describe(self) -> str:
        return f"daily at {_format_clock(self.hour, self.minute)}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "hour": self.hour, "minute": self.minute}


@dataclass(frozen=True)
class WeeklyOn:
    """Fires once per week on ``weekday`` (Monday = 0) at the given time."""

    weekday: int
    hour: int = 0
    minute: int = 0

    kind = PredicateKind.WEEKLY_ON

    def __post_init__(self) -> None:
        if not 0 <= self.weekday <= 6:
            raise ValueError(f"Invalid weekday: {self.weekday}")
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid time of day: {self.hour}:{self.minute}")

    def describe(self) -> str:
        text = f"weekly on {WEEKDAYS[self.weekday]}"
        if self.hour or self.minute:
            text += f" at {_format_clock(self.hour, self.minute)}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "weekday": self.weekday,
            "hour": self.hour,
            "minute": self.minute,
        }


@dataclass(frozen=True)
class MonthlyOn:
    """Fires once per month on ``day_of_month``, clamped to short months."""

    day_of_month: int = 1

    kind = PredicateKind.MONTHLY_ON

    def __post_init__(self) -> None:
        if not 1 <= self.day_of_month <= 31:
            raise ValueError(f"Invalid day of month: {self.day_of_month}")

    def describe(self) -> str:
        return f"monthly on the {_ordinal(self.day_of_month)}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "day_of_month": self.day_of_month}


@dataclass(frozen=True)
class PriceThreshold:
    """Compares the current price of ``symbol`` against ``value``."""

    operator: PriceOperator
    value: Decimal
    symbol: str = "BTC"

    kind = PredicateKind.PRICE_THRESHOLD

    def matches(self, price: Decimal) -> bool:
        if self.operator is PriceOperator.GREATER:
            return price > self.value
        if self.operator is PriceOperator.LESS:
            return price < self.value
        if self.value == 0:
            return price == 0
        return abs(price - self.value) / self.value < PRICE_EQUAL_TOLERANCE

    def describe(self) -> str:
        return f"{self.symbol.lower()} price {self.operator.value} {self.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "operator": self.operator.value,
            "value": str(self.value),
            "symbol": self.symbol,
        }


@dataclass(frozen=True)
class EventOccurred:
    """True when a matching event was observed since the previous check."""

    event_type: str

    kind = PredicateKind.EVENT_OCCURRED

    def describe(self) -> str:
        return f"on {self.event_type}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "event_type": self.event_type}


Predicate = Union[Periodic, DailyAt, WeeklyOn, MonthlyOn, PriceThreshold, EventOccurred]


def predicate_from_dict(data: dict[str, Any]) -> Predicate:
    """Deserialize a predicate produced by ``to_dict``."""
    kind = PredicateKind(data["kind"])
    if kind is PredicateKind.PERIODIC:
        return Periodic(interval=timedelta(seconds=float(data["interval_seconds"])))
    if kind is PredicateKind.DAILY_AT:
        return DailyAt(hour=int(data.get("hour", 0)), minute=int(data.get("minute", 0)))
    if kind is PredicateKind.WEEKLY_ON:
        return WeeklyOn(
            weekday=int(data["weekday"]),
            hour=int(data.get("hour", 0)),
            minute=int(data.get("minute", 0)),
        )
    if kind is PredicateKind.MONTHLY_ON:
        return MonthlyOn(day_of_month=int(data.get("day_of_month", 1)))
    if kind is PredicateKind.PRICE_THRESHOLD:
        return PriceThreshold(
            operator=PriceOperator(data["operator"]),
            value=Decimal(str(data["value"])),
            symbol=str(data.get("symbol", "BTC")),
        )
    return EventOccurred(event_type=str(data["event_type"]))
