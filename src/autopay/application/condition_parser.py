"""Parse condition text into typed predicates.

Parsing happens once, when a rule is created. Supported forms::

    every hour | hourly | every 15 minutes | every 2 days | every week
    daily | daily at 9am | daily at 21:30
    weekly on monday [at 8am]
    monthly | monthly on 1st | monthly on the 15th | monthly on day 31
    [btc] price > 50000 | price < 30000 | price = 45000
    transaction received | on wallet connected | when balance changed
    event <dotted.name>
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from autopay.core.domain.condition import (
    WEEKDAYS,
    DailyAt,
    EventOccurred,
    MonthlyOn,
    Periodic,
    Predicate,
    PriceOperator,
    PriceThreshold,
    WeeklyOn,
)
from autopay.core.domain.errors import ConditionParseError
from autopay.core.domain.events import DomainEventType

_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 604800,
}

_KNOWN_EVENTS = {
    "transaction received": DomainEventType.TRANSACTION_RECEIVED.value,
    "wallet connected": DomainEventType.WALLET_CONNECTED.value,
    "balance changed": DomainEventType.BALANCE_CHANGED.value,
}

_EVERY_RE = re.compile(r"^every(?:\s+(?P<count>\S+))?\s+(?P<unit>[a-z]+?)s?$")
_TIME_RE = re.compile(r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>am|pm)?$")
_DAY_RE = re.compile(r"^(?:the\s+|day\s+)?(?P<day>\d{1,2})(?:st|nd|rd|th)?$")
_PRICE_RE = re.compile(
    r"^(?:(?P<symbol>[a-z]{2,10})\s+)?price\s*(?P<op>[<>=]+)\s*(?P<value>\S+)$"
)
_EVENT_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*(?:\.[a-z0-9_]+)+$")


def _normalize(text: str) -> str:
    return " ".join(text.strip().lower().split())


def _first_token(text: str) -> str:
    return text.split()[0] if text.split() else text


def _parse_time_of_day(text: str, original: str) -> tuple[int, int]:
    """Parse "9am", "9:30pm", "21:15" into (hour, minute)."""
    match = _TIME_RE.match(text)
    if not match:
        raise ConditionParseError(f"Unrecognized time of day: '{text}'", token=text, text=original)
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = match.group("meridiem")
    if meridiem:
        if not 1 <= hour <= 12:
            raise ConditionParseError(f"Invalid 12-hour time: '{text}'", token=text, text=original)
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        raise ConditionParseError(f"Invalid time of day: '{text}'", token=text, text=original)
    return hour, minute


def _split_at(rest: str) -> tuple[str, str | None]:
    """Split "<head> at <time>" into its parts."""
    if rest.startswith("at "):
        return "", rest[3:].strip()
    if " at " in rest:
        head, _, tail = rest.partition(" at ")
        return head.strip(), tail.strip()
    return rest, None


def _parse_every(text: str, original: str) -> Periodic:
    match = _EVERY_RE.match(text)
    if not match:
        raise ConditionParseError(
            f"Unrecognized interval: '{text}'", token=text.removeprefix("every ").strip() or text,
            text=original,
        )
    unit = match.group("unit")
    if unit not in _UNIT_SECONDS:
        raise ConditionParseError(f"Unknown interval unit: '{unit}'", token=unit, text=original)
    raw_count = match.group("count")
    count = 1
    if raw_count is not None:
        if not raw_count.isdecimal() or int(raw_count) == 0:
            raise ConditionParseError(
                f"Interval count must be a positive integer: '{raw_count}'",
                token=raw_count,
                text=original,
            )
        count = int(raw_count)
    try:
        interval = timedelta(seconds=count * _UNIT_SECONDS[unit])
    except OverflowError:
        raise ConditionParseError(
            f"Interval is too long: '{raw_count} {unit}'", token=raw_count, text=original
        ) from None
    return Periodic(interval=interval)


def _parse_daily(rest: str, original: str) -> DailyAt:
    if not rest:
        return DailyAt()
    head, clock = _split_at(rest)
    if head or clock is None:
        token = _first_token(head or rest)
        raise ConditionParseError(
            f"Unexpected token after 'daily': '{token}'", token=token, text=original
        )
    hour, minute = _parse_time_of_day(clock, original)
    return DailyAt(hour=hour, minute=minute)


def _parse_weekly(rest: str, original: str) -> WeeklyOn:
    if not rest.startswith("on "):
        token = _first_token(rest) if rest else "weekly"
        raise ConditionParseError(
            "Weekly conditions need a weekday, e.g. 'weekly on monday'",
            token=token,
            text=original,
        )
    head, clock = _split_at(rest[3:].strip())
    if head not in WEEKDAYS:
        token = head or "on"
        raise ConditionParseError(f"Unknown weekday: '{token}'", token=token, text=original)
    hour, minute = _parse_time_of_day(clock, original) if clock else (0, 0)
    return WeeklyOn(weekday=WEEKDAYS.index(head), hour=hour, minute=minute)


def _parse_monthly(rest: str, original: str) -> MonthlyOn:
    if not rest:
        return MonthlyOn()
    if not rest.startswith("on "):
        token = _first_token(rest)
        raise ConditionParseError(
            f"Unexpected token after 'monthly': '{token}'", token=token, text=original
        )
    day_text = rest[3:].strip()
    match = _DAY_RE.match(day_text)
    if not match or not 1 <= int(match.group("day")) <= 31:
        token = day_text or "on"
        raise ConditionParseError(f"Invalid day of month: '{token}'", token=token, text=original)
    return MonthlyOn(day_of_month=int(match.group("day")))


def _parse_price(match: re.Match[str], original: str, default_symbol: str) -> PriceThreshold:
    op_text = match.group("op")
    try:
        operator = PriceOperator(op_text)
    except ValueError:
        raise ConditionParseError(
            f"Unsupported price operator: '{op_text}'", token=op_text, text=original
        ) from None
    raw_value = match.group("value")
    try:
        value = Decimal(raw_value)
    except InvalidOperation:
        raise ConditionParseError(
            f"Price must be a number: '{raw_value}'", token=raw_value, text=original
        ) from None
    if not value.is_finite() or value < 0:
        raise ConditionParseError(
            f"Price must be a non-negative number: '{raw_value}'", token=raw_value, text=original
        )
    symbol = (match.group("symbol") or default_symbol).upper()
    return PriceThreshold(operator=operator, value=value, symbol=symbol)


def parse_condition(text: str, *, default_symbol: str = "BTC") -> Predicate:
    """Parse condition text into a predicate.

    Args:
        text: Raw condition, e.g. "every hour" or "btc price > 50000".
        default_symbol: Symbol used by price conditions that name none.

    Returns:
        The parsed predicate.

    Raises:
        ConditionParseError: If the text is empty or not recognized. The
            error's ``token`` names the offending token.
    """
    original = text or ""
    cleaned = _normalize(original)
    if not cleaned:
        raise ConditionParseError("Condition is required", token="", text=original)

    if cleaned == "hourly":
        return Periodic(interval=timedelta(hours=1))
    if cleaned.startswith("every ") or cleaned == "every":
        return _parse_every(cleaned, original)

    keyword, _, rest = cleaned.partition(" ")
    if keyword == "daily":
        return _parse_daily(rest, original)
    if keyword == "weekly":
        return _parse_weekly(rest, original)
    if keyword == "monthly":
        return _parse_monthly(rest, original)

    price_match = _PRICE_RE.match(cleaned)
    if price_match:
        return _parse_price(price_match, original, default_symbol)

    event_text = cleaned
    for prefix in ("on ", "when "):
        if event_text.startswith(prefix):
            event_text = event_text[len(prefix):]
            break
    if event_text in _KNOWN_EVENTS:
        return EventOccurred(event_type=_KNOWN_EVENTS[event_text])
    if event_text.startswith("event "):
        name = event_text[len("event "):].strip()
        if _EVENT_NAME_RE.match(name):
            return EventOccurred(event_type=name)
        raise ConditionParseError(
            f"Invalid event name: '{name}'", token=name or "event", text=original
        )

    token = _first_token(cleaned)
    raise ConditionParseError(f"Unrecognized condition: '{token}'", token=token, text=original)


def validate_condition(text: str) -> tuple[bool, str | None]:
    """Check condition text without raising.

    Returns:
        ``(True, None)`` when the text parses, else ``(False, reason)``.
    """
    try:
        parse_condition(text)
    except ConditionParseError as exc:
        return False, exc.message
    return True, None
