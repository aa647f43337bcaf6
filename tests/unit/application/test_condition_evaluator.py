"""Tests for condition evaluation and the event inbox."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

from autopay.application.condition_evaluator import (
    ConditionEvaluator,
    EvaluationContext,
    EventInbox,
    latest_occurrence,
    window_open,
)
from autopay.core.domain.condition import (
    DailyAt,
    EventOccurred,
    MonthlyOn,
    Periodic,
    PriceOperator,
    PriceThreshold,
    WeeklyOn,
)
from autopay.core.domain.errors import TransientLookupError
from autopay.core.domain.events import DomainEvent
from autopay.core.domain.rule import AutopayRule

CREATED = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)  # a Monday
HOURLY = Periodic(timedelta(hours=1))


def _context(now: datetime, last_triggered: datetime | None = None) -> EvaluationContext:
    return EvaluationContext(
        rule_id="r1", now=now, created_at=CREATED, last_triggered=last_triggered
    )


class TestLatestOccurrence:
    """Occurrence instants of time predicates."""

    def test_periodic_before_first_interval(self) -> None:
        assert latest_occurrence(HOURLY, CREATED, CREATED + timedelta(minutes=59)) is None

    def test_periodic_counts_from_creation(self) -> None:
        now = CREATED + timedelta(hours=2, minutes=30)
        assert latest_occurrence(HOURLY, CREATED, now) == CREATED + timedelta(hours=2)

    def test_daily_today_or_yesterday(self) -> None:
        predicate = DailyAt(hour=9, minute=30)
        assert latest_occurrence(predicate, CREATED, datetime(2026, 3, 3, 10, 0, tzinfo=UTC)) == (
            datetime(2026, 3, 3, 9, 30, tzinfo=UTC)
        )
        assert latest_occurrence(predicate, CREATED, datetime(2026, 3, 3, 9, 0, tzinfo=UTC)) == (
            datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
        )

    def test_weekly(self) -> None:
        predicate = WeeklyOn(weekday=2, hour=8)  # wednesday
        now = datetime(2026, 3, 9, 12, 0, tzinfo=UTC)  # next monday
        assert latest_occurrence(predicate, CREATED, now) == datetime(2026, 3, 4, 8, 0, tzinfo=UTC)

    def test_weekly_same_day_before_time(self) -> None:
        predicate = WeeklyOn(weekday=0, hour=10)
        now = datetime(2026, 3, 9, 9, 0, tzinfo=UTC)
        assert latest_occurrence(predicate, CREATED, now) == datetime(2026, 3, 2, 10, 0, tzinfo=UTC)

    def test_monthly_clamped_to_short_month(self) -> None:
        predicate = MonthlyOn(day_of_month=31)
        now = datetime(2026, 2, 28, 12, 0, tzinfo=UTC)
        assert latest_occurrence(predicate, CREATED, now) == datetime(2026, 2, 28, tzinfo=UTC)

    def test_monthly_previous_month_across_year(self) -> None:
        predicate = MonthlyOn(day_of_month=15)
        now = datetime(2026, 1, 10, tzinfo=UTC)
        assert latest_occurrence(predicate, CREATED, now) == datetime(2025, 12, 15, tzinfo=UTC)

    def test_non_time_predicate(self) -> None:
        assert latest_occurrence(EventOccurred("x.y"), CREATED, CREATED) is None


class TestWindowOpen:
    """Exactly-once window bookkeeping."""

    def test_open_when_never_triggered(self) -> None:
        assert window_open(CREATED + timedelta(hours=1), CREATED, None)

    def test_closed_after_trigger(self) -> None:
        occurrence = CREATED + timedelta(hours=1)
        assert not window_open(occurrence, CREATED, occurrence + timedelta(seconds=3))

    def test_occurrence_before_creation(self) -> None:
        assert not window_open(CREATED - timedelta(hours=1), CREATED, None)

    def test_no_occurrence(self) -> None:
        assert not window_open(None, CREATED, None)


class TestConditionEvaluator:
    """Tests for ConditionEvaluator.evaluate."""

    async def test_periodic_fires_once_per_window(self) -> None:
        evaluator = ConditionEvaluator()
        now = CREATED + timedelta(hours=1, seconds=5)
        assert await evaluator.evaluate(HOURLY, _context(now))
        assert not await evaluator.evaluate(HOURLY, _context(now, last_triggered=now))
        later = CREATED + timedelta(hours=2, seconds=1)
        assert await evaluator.evaluate(HOURLY, _context(later, last_triggered=now))

    async def test_missed_windows_collapse_into_one(self) -> None:
        evaluator = ConditionEvaluator()
        now = CREATED + timedelta(hours=5, minutes=10)
        last = CREATED + timedelta(hours=1)
        assert await evaluator.evaluate(HOURLY, _context(now, last_triggered=last))
        assert not await evaluator.evaluate(HOURLY, _context(now, last_triggered=now))

    async def test_daily_not_before_creation(self) -> None:
        evaluator = ConditionEvaluator()
        predicate = DailyAt(hour=8)
        assert not await evaluator.evaluate(predicate, _context(CREATED + timedelta(hours=1)))
        next_day = datetime(2026, 3, 3, 8, 0, 30, tzinfo=UTC)
        assert await evaluator.evaluate(predicate, _context(next_day))

    async def test_price_threshold(self) -> None:
        feed = AsyncMock()
        feed.current_price.return_value = Decimal("51000")
        evaluator = ConditionEvaluator(price_feed=feed)
        predicate = PriceThreshold(PriceOperator.GREATER, Decimal("50000"))
        assert await evaluator.evaluate(predicate, _context(CREATED))
        feed.current_price.assert_awaited_with("BTC")

    async def test_price_float_is_compared_as_decimal(self) -> None:
        feed = AsyncMock()
        feed.current_price.return_value = 44999.5
        evaluator = ConditionEvaluator(price_feed=feed)
        predicate = PriceThreshold(PriceOperator.LESS, Decimal("45000"))
        assert await evaluator.evaluate(predicate, _context(CREATED))

    async def test_price_lookup_failure_is_not_satisfied(self) -> None:
        feed = AsyncMock()
        feed.current_price.side_effect = TransientLookupError("feed down")
        evaluator = ConditionEvaluator(price_feed=feed)
        predicate = PriceThreshold(PriceOperator.GREATER, Decimal("1"))
        assert await evaluator.evaluate(predicate, _context(CREATED)) is False

    async def test_price_without_feed(self) -> None:
        evaluator = ConditionEvaluator()
        predicate = PriceThreshold(PriceOperator.GREATER, Decimal("1"))
        assert await evaluator.evaluate(predicate, _context(CREATED)) is False

    async def test_event_consumed_once(self) -> None:
        evaluator = ConditionEvaluator()
        rule = AutopayRule("R1", Decimal("1"), EventOccurred("transaction.received"), rule_id="r1")
        evaluator.watch(rule)
        await evaluator.inbox.deliver(DomainEvent(event_type="transaction.received"))

        assert await evaluator.evaluate(rule.condition, _context(CREATED))
        assert not await evaluator.evaluate(rule.condition, _context(CREATED))

    async def test_unwatch_discards_pending_events(self) -> None:
        evaluator = ConditionEvaluator()
        rule = AutopayRule("R1", Decimal("1"), EventOccurred("transaction.received"), rule_id="r1")
        evaluator.watch(rule)
        await evaluator.inbox.deliver(DomainEvent(event_type="transaction.received"))
        evaluator.unwatch("r1")
        assert evaluator.inbox.pending("r1") == 0
        assert not await evaluator.evaluate(rule.condition, _context(CREATED))

    def test_context_for_rule_normalizes_naive_datetimes(self) -> None:
        rule = AutopayRule(
            "R1", Decimal("1"), HOURLY, created_at=datetime(2026, 3, 2, 9, 0)
        )
        context = EvaluationContext.for_rule(rule, datetime(2026, 3, 2, 10, 0))
        assert context.created_at == CREATED
        assert context.now.tzinfo is not None


class TestEventInbox:
    """Tests for per-rule event buffering."""

    async def test_subscribes_once_per_event_type(self, event_bus) -> None:
        inbox = EventInbox(event_bus)
        inbox.register("r1", "transaction.received")
        inbox.register("r2", "transaction.received")
        assert event_bus.subscriber_count("transaction.received") == 1

        await event_bus.publish(DomainEvent(event_type="transaction.received"))
        assert inbox.pending("r1") == 1
        assert inbox.pending("r2") == 1

    async def test_unsubscribes_with_last_rule(self, event_bus) -> None:
        inbox = EventInbox(event_bus)
        inbox.register("r1", "wallet.connected")
        inbox.register("r2", "wallet.connected")
        inbox.unregister("r1")
        assert event_bus.subscriber_count("wallet.connected") == 1
        inbox.unregister("r2")
        assert event_bus.subscriber_count("wallet.connected") == 0

    async def test_ignores_other_event_types(self, event_bus) -> None:
        inbox = EventInbox(event_bus)
        inbox.register("r1", "wallet.connected")
        await inbox.deliver(DomainEvent(event_type="balance.changed"))
        assert inbox.pending("r1") == 0

    async def test_buffer_drops_oldest(self) -> None:
        inbox = EventInbox(buffer_size=2)
        inbox.register("r1", "x.y")
        events = [DomainEvent(event_type="x.y") for _ in range(3)]
        for event in events:
            await inbox.deliver(event)
        assert inbox.take("r1") is events[1]
        assert inbox.take("r1") is events[2]
        assert inbox.take("r1") is None

    def test_clear(self, event_bus) -> None:
        inbox = EventInbox(event_bus)
        inbox.register("r1", "x.y")
        inbox.clear()
        assert event_bus.subscriber_count("x.y") == 0
        assert inbox.pending("r1") == 0
