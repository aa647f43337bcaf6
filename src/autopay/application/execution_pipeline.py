"""Execution pipeline for triggered autopay rules.

Steps, each short-circuiting on failure:

1. active check
2. funds check against the funding wallet (retryable, no side effects)
3. sender address resolution
4. ledger record creation (the commit point)
5. settlement, then a terminal ``completed``/``failed`` ledger update
6. ``last_triggered`` update through the rule store on success
7. best-effort notification

Once a ledger record exists the remaining steps run shielded from
cancellation, so a record is never abandoned in a pending state.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

import structlog

from autopay.core.domain.errors import NotificationFailure, RuleNotFoundError
from autopay.core.domain.events import DomainEvent, DomainEventType
from autopay.core.domain.execution import (
    ERROR_ADDRESS_UNAVAILABLE,
    ERROR_BALANCE_UNAVAILABLE,
    ERROR_INSUFFICIENT_BALANCE,
    ERROR_RULE_INACTIVE,
    Execution,
    LedgerTransaction,
    TransactionDraft,
    TransactionStatus,
)
from autopay.core.domain.rule import AutopayRule
from autopay.core.interfaces.clock import ClockProtocol
from autopay.core.interfaces.event_bus import EventBusProtocol
from autopay.core.interfaces.ledger import LedgerStoreProtocol
from autopay.core.interfaces.notifications import NotificationSinkProtocol
from autopay.core.interfaces.rule_store import RuleStoreProtocol
from autopay.core.interfaces.settlement import SettlementProtocol
from autopay.core.interfaces.wallet import WalletGatewayProtocol
from autopay.core.utils.time import SystemClock

logger = structlog.get_logger(__name__)


class ExecutionPipeline:
    """Turns a satisfied rule into a settled (or failed) ledger transaction."""

    def __init__(
        self,
        rule_store: RuleStoreProtocol,
        wallet_gateway: WalletGatewayProtocol,
        ledger_store: LedgerStoreProtocol,
        settlement: SettlementProtocol,
        *,
        funding_wallet: str = "default",
        notification_sink: NotificationSinkProtocol | None = None,
        event_bus: EventBusProtocol | None = None,
        clock: ClockProtocol | None = None,
        notify_timeout_seconds: float = 5.0,
        finalize_attempts: int = 3,
        finalize_backoff_seconds: float = 0.2,
    ) -> None:
        self._rule_store = rule_store
        self._wallet = wallet_gateway
        self._ledger = ledger_store
        self._settlement = settlement
        self._funding_wallet = funding_wallet
        self._notification_sink = notification_sink
        self._event_bus = event_bus
        self._clock = clock or SystemClock()
        self._notify_timeout = notify_timeout_seconds
        self._finalize_attempts = max(1, finalize_attempts)
        self._finalize_backoff = max(0.0, finalize_backoff_seconds)
        self._completions: set[asyncio.Task[None]] = set()

    @property
    def funding_wallet(self) -> str:
        return self._funding_wallet

    @property
    def in_flight(self) -> int:
        """Committed executions still settling."""
        return len(self._completions)

    async def execute(self, rule: AutopayRule) -> Execution:
        """Run one execution attempt for ``rule``."""
        started = self._clock.now()
        log = logger.bind(rule_id=rule.rule_id)

        if not rule.active:
            log.info("pipeline.rule_inactive")
            return Execution.failure(rule.rule_id, ERROR_RULE_INACTIVE, started)

        balance_error = await self._check_funds(rule)
        if balance_error:
            return Execution.failure(rule.rule_id, balance_error, started)

        try:
            sender = await self._wallet.get_address(self._funding_wallet)
        except Exception as exc:
            log.error("pipeline.address_lookup_failed", error=str(exc))
            sender = None
        if not sender:
            log.error("pipeline.address_unavailable", wallet=self._funding_wallet)
            return Execution.failure(rule.rule_id, ERROR_ADDRESS_UNAVAILABLE, started)

        draft = TransactionDraft(
            wallet_id=self._funding_wallet,
            amount=rule.amount,
            recipient=rule.recipient,
            sender=sender,
            autopay_rule_id=rule.rule_id,
        )
        try:
            transaction = await self._ledger.create(draft)
        except Exception as exc:
            log.error("pipeline.record_creation_failed", error=str(exc))
            return Execution.failure(
                rule.rule_id, f"ledger record creation failed: {exc}", started
            )

        execution = Execution(
            rule_id=rule.rule_id,
            executed_at=started,
            transaction_id=transaction.transaction_id,
        )
        log.info(
            "pipeline.committed",
            transaction_id=transaction.transaction_id,
            amount=str(rule.amount),
            recipient=rule.recipient,
        )
        completion = asyncio.create_task(
            self._complete(rule, transaction, execution),
            name=f"autopay-complete-{transaction.transaction_id}",
        )
        self._completions.add(completion)
        completion.add_done_callback(self._completions.discard)
        await asyncio.shield(completion)
        return execution

    async def can_execute(self, rule: AutopayRule) -> tuple[bool, str | None]:
        """Preflight check: active and funded, without side effects."""
        if not rule.active:
            return False, ERROR_RULE_INACTIVE
        balance_error = await self._check_funds(rule)
        if balance_error:
            return False, balance_error
        return True, None

    async def _check_funds(self, rule: AutopayRule) -> str | None:
        try:
            balance = Decimal(str(await self._wallet.get_balance(self._funding_wallet)))
        except Exception as exc:
            logger.warning(
                "pipeline.balance_unavailable",
                rule_id=rule.rule_id,
                wallet=self._funding_wallet,
                error=str(exc),
            )
            return ERROR_BALANCE_UNAVAILABLE
        if balance < rule.amount:
            logger.info(
                "pipeline.insufficient_balance",
                rule_id=rule.rule_id,
                balance=str(balance),
                amount=str(rule.amount),
            )
            return ERROR_INSUFFICIENT_BALANCE
        return None

    async def _complete(
        self,
        rule: AutopayRule,
        transaction: LedgerTransaction,
        execution: Execution,
    ) -> None:
        """Drive a committed transaction to a terminal state and report it."""
        await self._settle(transaction, execution)
        if execution.success:
            await self._record_trigger(rule.rule_id)
        await self._notify(rule, execution)

    async def _settle(self, transaction: LedgerTransaction, execution: Execution) -> None:
        transaction_id = transaction.transaction_id
        try:
            reference = await self._settlement.settle(transaction)
        except Exception as exc:
            logger.warning(
                "pipeline.settlement_failed",
                transaction_id=transaction_id,
                error=str(exc),
            )
            execution.error = f"settlement failed: {exc}"
            await self._finalize(transaction_id, {"status": TransactionStatus.FAILED.value})
            return

        completed = await self._finalize(
            transaction_id,
            {"status": TransactionStatus.COMPLETED.value, "tx_hash": reference},
        )
        if completed:
            execution.success = True
            execution.settlement_reference = reference
            return

        execution.error = "ledger update failed"
        await self._finalize(transaction_id, {"status": TransactionStatus.FAILED.value})

    async def _finalize(self, transaction_id: str, fields: dict[str, Any]) -> bool:
        """Write a terminal status, retrying up to ``finalize_attempts`` times.

        Retries back off exponentially from ``finalize_backoff_seconds``.
        """
        for attempt in range(1, self._finalize_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self._finalize_backoff * 2 ** (attempt - 2))
            try:
                updated = await self._ledger.update(transaction_id, fields)
            except Exception as exc:
                logger.warning(
                    "pipeline.finalize_retry",
                    transaction_id=transaction_id,
                    attempt=attempt,
                    error=str(exc),
                )
                continue
            logger.info(
                "pipeline.finalized",
                transaction_id=transaction_id,
                status=updated.status.value,
            )
            await self._publish_update(updated)
            return True

        logger.error(
            "pipeline.finalize_failed",
            transaction_id=transaction_id,
            status=fields.get("status"),
            attempts=self._finalize_attempts,
        )
        return False

    async def _publish_update(self, transaction: LedgerTransaction) -> None:
        if self._event_bus is None:
            return
        event = DomainEvent(
            event_type=DomainEventType.TRANSACTION_UPDATED.value,
            payload=transaction.to_dict(),
            source="autopay",
        )
        try:
            await self._event_bus.publish(event)
        except Exception as exc:
            logger.warning(
                "pipeline.refresh_publish_failed",
                transaction_id=transaction.transaction_id,
                error=str(exc),
            )

    async def _record_trigger(self, rule_id: str) -> None:
        try:
            await self._rule_store.update(rule_id, {"last_triggered": self._clock.now()})
        except RuleNotFoundError:
            logger.warning("pipeline.rule_vanished", rule_id=rule_id)
        except Exception as exc:
            logger.error("pipeline.last_triggered_update_failed", rule_id=rule_id, error=str(exc))

    async def _notify(self, rule: AutopayRule, execution: Execution) -> None:
        if self._notification_sink is None:
            return
        try:
            await asyncio.wait_for(
                self._notification_sink.notify(rule, execution),
                timeout=self._notify_timeout,
            )
        except NotificationFailure as exc:
            logger.warning(
                "pipeline.notification_failed",
                rule_id=rule.rule_id,
                transaction_id=execution.transaction_id,
                error=exc.message,
            )
        except Exception as exc:
            logger.error(
                "pipeline.notification_error",
                rule_id=rule.rule_id,
                transaction_id=execution.transaction_id,
                error=str(exc) or type(exc).__name__,
            )
