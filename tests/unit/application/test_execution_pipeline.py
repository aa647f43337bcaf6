"""Tests for the execution pipeline."""

import asyncio
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from autopay.application.execution_pipeline import ExecutionPipeline
from autopay.core.domain.condition import Periodic
from autopay.core.domain.errors import NotificationFailure
from autopay.core.domain.events import DomainEventType
from autopay.core.domain.execution import TransactionStatus, TransactionType
from autopay.core.domain.rule import AutopayRule
from autopay.infrastructure.ledger import InMemoryLedgerStore


class FlakyLedger(InMemoryLedgerStore):
    """Ledger whose first ``failures`` updates raise."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.update_calls = 0
        self.attempted_at: list[float] = []

    async def update(self, transaction_id, fields):
        self.update_calls += 1
        self.attempted_at.append(asyncio.get_running_loop().time())
        if self.update_calls <= self.failures:
            raise RuntimeError("ledger busy")
        return await super().update(transaction_id, fields)


@pytest.fixture
async def rule(rule_store, clock) -> AutopayRule:
    rule = AutopayRule(
        "bc1qrecipient",
        Decimal("0.001"),
        Periodic(timedelta(hours=1)),
        created_at=clock.now(),
    )
    await rule_store.insert(rule)
    return rule


def _pipeline(rule_store, wallet, ledger, settlement, clock, **kwargs) -> ExecutionPipeline:
    return ExecutionPipeline(rule_store, wallet, ledger, settlement, clock=clock, **kwargs)


class TestExecutionPipeline:
    """Tests for ExecutionPipeline.execute."""

    async def test_successful_execution(
        self, rule, rule_store, wallet, ledger, settlement, clock, notifications, event_bus
    ) -> None:
        updates = []

        async def _collect(event):
            updates.append(event)

        event_bus.subscribe(DomainEventType.TRANSACTION_UPDATED.value, _collect)
        pipeline = _pipeline(
            rule_store,
            wallet,
            ledger,
            settlement,
            clock,
            notification_sink=notifications,
            event_bus=event_bus,
        )

        execution = await pipeline.execute(rule)

        assert execution.success is True
        assert execution.error is None
        assert execution.settlement_reference == "ref-1"
        records = await ledger.list_for_rule(rule.rule_id)
        assert len(records) == 1
        record = records[0]
        assert record.transaction_id == execution.transaction_id
        assert record.status is TransactionStatus.COMPLETED
        assert record.type is TransactionType.SENT
        assert record.tx_hash == "ref-1"
        assert record.sender == "bc1qsender"
        assert record.recipient == "bc1qrecipient"
        assert record.amount == Decimal("0.001")

        stored = await rule_store.get(rule.rule_id)
        assert stored.last_triggered == clock.now()
        assert [rid for rid, _ in notifications.recent] == [rule.rule_id]
        assert [e.payload["status"] for e in updates] == ["completed"]

    async def test_inactive_rule(self, rule, rule_store, wallet, ledger, settlement, clock) -> None:
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)
        rule.active = False

        execution = await pipeline.execute(rule)

        assert execution.error == "rule inactive"
        assert await ledger.list_autopay() == []
        assert settlement.calls == 0

    async def test_insufficient_balance_has_no_side_effects(
        self, rule, rule_store, wallet, ledger, settlement, clock, notifications
    ) -> None:
        wallet.set_balance("default", Decimal("0.0005"))
        pipeline = _pipeline(
            rule_store, wallet, ledger, settlement, clock, notification_sink=notifications
        )

        execution = await pipeline.execute(rule)

        assert execution.success is False
        assert execution.error == "insufficient balance"
        assert execution.transaction_id is None
        assert await ledger.list_autopay() == []
        assert notifications.recent == []
        assert (await rule_store.get(rule.rule_id)).last_triggered is None

    async def test_exact_balance_is_enough(
        self, rule, rule_store, wallet, ledger, settlement, clock
    ) -> None:
        wallet.set_balance("default", Decimal("0.001"))
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)
        assert (await pipeline.execute(rule)).success is True

    async def test_balance_lookup_failure(
        self, rule, rule_store, wallet, ledger, settlement, clock
    ) -> None:
        pipeline = _pipeline(
            rule_store, wallet, ledger, settlement, clock, funding_wallet="unknown"
        )

        execution = await pipeline.execute(rule)

        assert execution.error == "balance unavailable"
        assert await ledger.list_autopay() == []

    async def test_missing_sender_address(
        self, rule, rule_store, wallet, ledger, settlement, clock
    ) -> None:
        wallet.set_address("default", "")
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)

        execution = await pipeline.execute(rule)

        assert execution.error == "sender address unavailable"
        assert await ledger.list_autopay() == []

    async def test_record_creation_failure(
        self, rule, rule_store, wallet, settlement, clock
    ) -> None:
        ledger = AsyncMock()
        ledger.create.side_effect = RuntimeError("disk full")
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)

        execution = await pipeline.execute(rule)

        assert execution.success is False
        assert execution.error == "ledger record creation failed: disk full"
        assert settlement.calls == 0

    async def test_settlement_failure_marks_record_failed(
        self, rule, rule_store, wallet, ledger, clock, notifications
    ) -> None:
        settlement = AsyncMock()
        settlement.settle.side_effect = RuntimeError("network unreachable")
        pipeline = _pipeline(
            rule_store, wallet, ledger, settlement, clock, notification_sink=notifications
        )

        execution = await pipeline.execute(rule)

        assert execution.success is False
        assert execution.error == "settlement failed: network unreachable"
        record = await ledger.get(execution.transaction_id)
        assert record.status is TransactionStatus.FAILED
        assert (await rule_store.get(rule.rule_id)).last_triggered is None
        assert len(notifications.recent) == 1

    async def test_terminal_update_is_retried(
        self, rule, rule_store, wallet, settlement, clock
    ) -> None:
        ledger = FlakyLedger(failures=2)
        pipeline = _pipeline(
            rule_store,
            wallet,
            ledger,
            settlement,
            clock,
            finalize_attempts=3,
            finalize_backoff_seconds=0,
        )

        execution = await pipeline.execute(rule)

        assert execution.success is True
        assert ledger.update_calls == 3
        record = await ledger.get(execution.transaction_id)
        assert record.status is TransactionStatus.COMPLETED

    async def test_terminal_update_exhausted(
        self, rule, rule_store, wallet, settlement, clock
    ) -> None:
        ledger = FlakyLedger(failures=100)
        pipeline = _pipeline(
            rule_store,
            wallet,
            ledger,
            settlement,
            clock,
            finalize_attempts=2,
            finalize_backoff_seconds=0,
        )

        execution = await pipeline.execute(rule)

        assert execution.success is False
        assert execution.error == "ledger update failed"
        assert ledger.update_calls == 4
        assert (await rule_store.get(rule.rule_id)).last_triggered is None

    async def test_terminal_update_retries_back_off(
        self, rule, rule_store, wallet, settlement, clock
    ) -> None:
        ledger = FlakyLedger(failures=2)
        pipeline = _pipeline(
            rule_store,
            wallet,
            ledger,
            settlement,
            clock,
            finalize_attempts=3,
            finalize_backoff_seconds=0.02,
        )

        execution = await pipeline.execute(rule)

        assert execution.success is True
        first, second, third = ledger.attempted_at
        assert second - first >= 0.02
        assert third - second >= 0.04

    async def test_notification_failure_is_swallowed(
        self, rule, rule_store, wallet, ledger, settlement, clock
    ) -> None:
        sink = AsyncMock()
        sink.notify.side_effect = NotificationFailure("smtp down")
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock, notification_sink=sink)

        execution = await pipeline.execute(rule)

        assert execution.success is True
        sink.notify.assert_awaited_once()

    async def test_slow_notification_times_out(
        self, rule, rule_store, wallet, ledger, settlement, clock
    ) -> None:
        class SlowSink:
            async def notify(self, rule, execution):
                await asyncio.sleep(10)

        pipeline = _pipeline(
            rule_store,
            wallet,
            ledger,
            settlement,
            clock,
            notification_sink=SlowSink(),
            notify_timeout_seconds=0.01,
        )

        execution = await asyncio.wait_for(pipeline.execute(rule), timeout=2)

        assert execution.success is True

    async def test_cancellation_after_commit_still_settles(
        self, rule, rule_store, wallet, ledger, gated_settlement, clock, notifications, wait_until
    ) -> None:
        pipeline = _pipeline(
            rule_store, wallet, ledger, gated_settlement, clock, notification_sink=notifications
        )
        task = asyncio.create_task(pipeline.execute(rule))
        await asyncio.wait_for(gated_settlement.started.wait(), timeout=2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        [record] = await ledger.list_for_rule(rule.rule_id)
        assert record.status is TransactionStatus.AUTOPAY

        gated_settlement.release.set()
        await wait_until(lambda: len(notifications.recent) == 1)

        record = await ledger.get(record.transaction_id)
        assert record.status is TransactionStatus.COMPLETED
        assert (await rule_store.get(rule.rule_id)).last_triggered == clock.now()
        await wait_until(lambda: pipeline.in_flight == 0)


class TestCanExecute:
    """Tests for the preflight check."""

    async def test_ready(self, rule, rule_store, wallet, ledger, settlement, clock) -> None:
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)
        assert await pipeline.can_execute(rule) == (True, None)

    async def test_underfunded(self, rule, rule_store, wallet, ledger, settlement, clock) -> None:
        wallet.set_balance("default", Decimal("0"))
        pipeline = _pipeline(rule_store, wallet, ledger, settlement, clock)
        assert await pipeline.can_execute(rule) == (False, "insufficient balance")
        assert await ledger.list_autopay() == []
