"""Condition evaluation for autopay rules.

The evaluator is stateless with respect to time-based conditions: whether a
window is open is derived from the rule's ``created_at`` and
``last_triggered`` alone, so a restarted process resumes the same schedule.
Event conditions are fed by an ``EventInbox`` that buffers bus events per
rule until a tick consumes them.
"""

from __future__ import annotations

import calendar
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

import structlog

from autopay.core.domain.condition import (
    DailyAt,
    EventOccurred,
    MonthlyOn,
    Periodic,
    Predicate,
    PriceThreshold,
    WeeklyOn,
)
from autopay.core.domain.events import DomainEvent
from autopay.core.domain.rule import AutopayRule
from autopay.core.interfaces.event_bus import EventBusProtocol
from autopay.core.interfaces.pricing import PriceFeedProtocol
from autopay.core.utils.time import ensure_utc

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EvaluationContext:
    """Per-tick inputs to ``ConditionEvaluator.evaluate``."""

    rule_id: str
    now: datetime
    created_at: datetime
    last_triggered: datetime | None = None

    @classmethod
    def for_rule(cls, rule: AutopayRule, now: datetime) -> EvaluationContext:
        return cls(
            rule_id=rule.rule_id,
            now=ensure_utc(now),
            created_at=ensure_utc(rule.created_at),
            last_triggered=ensure_utc(rule.last_triggered) if rule.last_triggered else None,
        )


def _at_clock(day: datetime, hour: int, minute: int) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _monthly_target(year: int, month: int, day_of_month: int, tz) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day_of_month, last_day), tzinfo=tz)


def latest_occurrence(predicate: Predicate, created_at: datetime, now: datetime) -> datetime | None:
    """Return the most recent occurrence instant ``<= now`` of a time predicate.

    Periodic occurrences are ``created_at + k * interval`` for ``k >= 1``;
    daily, weekly and monthly occurrences fall at the target UTC clock time.
    Returns None for non-time predicates and for periodic rules younger than
    one interval.
    """
    if isinstance(predicate, Periodic):
        elapsed = now - created_at
        if elapsed < predicate.interval:
            return None
        return created_at + (elapsed // predicate.interval) * predicate.interval

    if isinstance(predicate, DailyAt):
        candidate = _at_clock(now, predicate.hour, predicate.minute)
        if candidate > now:
            candidate -= timedelta(days=1)
        return candidate

    if isinstance(predicate, WeeklyOn):
        days_back = (now.weekday() - predicate.weekday) % 7
        candidate = _at_clock(now - timedelta(days=days_back), predicate.hour, predicate.minute)
        if candidate > now:
            candidate -= timedelta(days=7)
        return candidate

    if isinstance(predicate, MonthlyOn):
        candidate = _monthly_target(now.year, now.month, predicate.day_of_month, now.tzinfo)
        if candidate > now:
            year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
            candidate = _monthly_target(year, month, predicate.day_of_month, now.tzinfo)
        return candidate

    return None


def window_open(
    occurrence: datetime | None,
    created_at: datetime,
    last_triggered: datetime | None,
) -> bool:
    """Whether an occurrence is due: not before creation and not yet served."""
    if occurrence is None or occurrence < created_at:
        return False
    return last_triggered is None or last_triggered < occurrence


class EventInbox:
    """Buffers bus events for rules with event conditions.

    Each registered rule gets its own bounded buffer; the oldest events are
    dropped when it overflows. The inbox subscribes to the bus once per event
    type and drops the subscription when no rule needs it anymore.
    """

    def __init__(self, event_bus: EventBusProtocol | None = None, buffer_size: int = 100) -> None:
        self._bus = event_bus
        self._buffer_size = buffer_size
        self._rule_types: dict[str, str] = {}
        self._buffers: dict[str, deque[DomainEvent]] = {}
        self._subscriptions: dict[str, Callable[[], None]] = {}

    def register(self, rule_id: str, event_type: str) -> None:
        """Start buffering events of ``event_type`` for a rule."""
        if self._rule_types.get(rule_id) == event_type:
            return
        self.unregister(rule_id)
        self._rule_types[rule_id] = event_type
        self._buffers[rule_id] = deque(maxlen=self._buffer_size)
        if self._bus is not None and event_type not in self._subscriptions:
            self._subscriptions[event_type] = self._bus.subscribe(event_type, self.deliver)
            logger.debug("event_inbox.subscribed", event_type=event_type)

    def unregister(self, rule_id: str) -> None:
        """Stop buffering for a rule and discard its pending events."""
        event_type = self._rule_types.pop(rule_id, None)
        self._buffers.pop(rule_id, None)
        if event_type is None or event_type in self._rule_types.values():
            return
        unsubscribe = self._subscriptions.pop(event_type, None)
        if unsubscribe:
            unsubscribe()
            logger.debug("event_inbox.unsubscribed", event_type=event_type)

    async def deliver(self, event: DomainEvent) -> None:
        """Bus handler: append the event to every matching rule buffer."""
        for rule_id, event_type in self._rule_types.items():
            if event_type == event.event_type:
                self._buffers[rule_id].append(event)

    def take(self, rule_id: str) -> DomainEvent | None:
        """Pop the oldest pending event for a rule, if any."""
        buffer = self._buffers.get(rule_id)
        if not buffer:
            return None
        return buffer.popleft()

    def pending(self, rule_id: str) -> int:
        """Number of buffered events for a rule."""
        return len(self._buffers.get(rule_id, ()))

    def clear(self) -> None:
        """Drop every buffer and bus subscription."""
        for unsubscribe in self._subscriptions.values():
            unsubscribe()
        self._subscriptions.clear()
        self._rule_types.clear()
        self._buffers.clear()


class ConditionEvaluator:
    """Evaluates parsed predicates against time, price and event state.

    ``evaluate`` never raises: a price feed failure counts as "not satisfied
    this tick" and is logged.
    """

    def __init__(
        self,
        price_feed: PriceFeedProtocol | None = None,
        inbox: EventInbox | None = None,
    ) -> None:
        self._price_feed = price_feed
        self._inbox = inbox or EventInbox()

    @property
    def inbox(self) -> EventInbox:
        return self._inbox

    def watch(self, rule: AutopayRule) -> None:
        """Prepare per-rule inputs when monitoring of a rule starts."""
        if isinstance(rule.condition, EventOccurred):
            self._inbox.register(rule.rule_id, rule.condition.event_type)

    def unwatch(self, rule_id: str) -> None:
        """Release per-rule inputs when monitoring of a rule stops."""
        self._inbox.unregister(rule_id)

    async def evaluate(self, predicate: Predicate, context: EvaluationContext) -> bool:
        """Decide whether the predicate is satisfied for this tick."""
        if isinstance(predicate, PriceThreshold):
            return await self._evaluate_price(predicate, context)

        if isinstance(predicate, EventOccurred):
            event = self._inbox.take(context.rule_id)
            if event is None:
                return False
            logger.info(
                "condition.event_consumed",
                rule_id=context.rule_id,
                event_type=event.event_type,
                event_id=event.event_id,
            )
            return True

        occurrence = latest_occurrence(predicate, context.created_at, context.now)
        return window_open(occurrence, context.created_at, context.last_triggered)

    async def _evaluate_price(self, predicate: PriceThreshold, context: EvaluationContext) -> bool:
        if self._price_feed is None:
            logger.warning("condition.price_feed_missing", rule_id=context.rule_id)
            return False
        try:
            price = Decimal(str(await self._price_feed.current_price(predicate.symbol)))
        except Exception as exc:
            logger.warning(
                "condition.price_lookup_failed",
                rule_id=context.rule_id,
                symbol=predicate.symbol,
                error=str(exc),
            )
            return False
        satisfied = predicate.matches(price)
        logger.debug(
            "condition.price_checked",
            rule_id=context.rule_id,
            symbol=predicate.symbol,
            price=str(price),
            operator=predicate.operator.value,
            target=str(predicate.value),
            satisfied=satisfied,
        )
        return satisfied
