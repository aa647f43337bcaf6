"""Autopay engine orchestrating rule lifecycle and monitoring.

Public API used by the application layer: create, activate, deactivate and
delete rules, trigger them manually, read stats, and start/stop monitoring.
The engine is an explicit instance wired with its collaborators (see
``autopay.application.factory``), not a process-wide singleton.
"""

from __future__ import annotations

from collections import deque
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from autopay.application.condition_parser import parse_condition
from autopay.application.execution_pipeline import ExecutionPipeline
from autopay.core.domain.errors import ValidationError
from autopay.core.domain.execution import (
    ERROR_RULE_NOT_FOUND,
    Execution,
    ExecutionStats,
    LedgerTransaction,
    RuleStats,
    TransactionStatus,
)
from autopay.core.domain.rule import AutopayRule
from autopay.core.interfaces.clock import ClockProtocol
from autopay.core.interfaces.ledger import LedgerStoreProtocol
from autopay.core.interfaces.rule_store import RuleStoreProtocol
from autopay.core.utils.time import SystemClock
from autopay.infrastructure.scheduler.rule_scheduler import RuleScheduler

logger = structlog.get_logger(__name__)


def _coerce_amount(amount: Any) -> Decimal:
    if isinstance(amount, bool):
        raise ValidationError("Amount must be a number", field="amount")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Amount must be a number, got {amount!r}", field="amount") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than 0", field="amount")
    return value


def describe_rule(rule: AutopayRule, unit: str = "BTC") -> str:
    """Human-readable summary, e.g. "Send 0.001 BTC to R1 when every hour"."""
    condition = rule.condition_text.strip() or rule.condition.describe()
    return f"Send {rule.amount} {unit} to {rule.recipient} when {condition.lower()}"


def sort_rules(rules: list[AutopayRule]) -> list[AutopayRule]:
    """Active rules first, then most recently triggered, then newest."""

    def _key(rule: AutopayRule) -> tuple[int, int, float, float]:
        triggered = rule.last_triggered.timestamp() if rule.last_triggered else 0.0
        return (
            0 if rule.active else 1,
            0 if rule.last_triggered else 1,
            -triggered,
            -rule.created_at.timestamp(),
        )

    return sorted(rules, key=_key)


class AutopayEngine:
    """Façade over the rule store, scheduler and execution pipeline."""

    def __init__(
        self,
        rule_store: RuleStoreProtocol,
        scheduler: RuleScheduler,
        pipeline: ExecutionPipeline,
        *,
        ledger_store: LedgerStoreProtocol | None = None,
        clock: ClockProtocol | None = None,
        price_symbol: str = "BTC",
        history_size: int = 100,
    ) -> None:
        self._rule_store = rule_store
        self._scheduler = scheduler
        self._pipeline = pipeline
        self._ledger = ledger_store
        self._clock = clock or SystemClock()
        self._price_symbol = price_symbol
        self._recent: deque[Execution] = deque(maxlen=history_size)
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def scheduler(self) -> RuleScheduler:
        """Access the scheduler for monitoring state and diagnostics."""
        return self._scheduler

    @property
    def rule_store(self) -> RuleStoreProtocol:
        return self._rule_store

    @property
    def recent_executions(self) -> list[Execution]:
        """Executions observed by this engine, oldest first."""
        return list(self._recent)

    async def record_execution(self, execution: Execution) -> None:
        """Scheduler callback collecting execution outcomes."""
        self._recent.append(execution)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Start monitoring every active rule. Calling twice is a no-op."""
        if self._initialized:
            return
        logger.info("engine.initializing")
        await self._scheduler.start()
        active_rules = await self._rule_store.list_active()
        for rule in active_rules:
            await self._scheduler.start_monitoring(rule)
        self._initialized = True
        logger.info("engine.initialized", active_rules=len(active_rules))

    async def shutdown(self) -> None:
        """Stop every timer and mark the engine uninitialized. Rules are kept."""
        await self._scheduler.stop()
        self._initialized = False
        logger.info("engine.shutdown")

    async def restart(self) -> None:
        """Re-arm monitoring from the rule store, e.g. after config changes."""
        await self.shutdown()
        await self.initialize()

    # ------------------------------------------------------------------
    # Rule management
    # ------------------------------------------------------------------

    async def create_rule(self, recipient: str, amount: Any, condition: str) -> str:
        """Validate, persist and start monitoring a new rule.

        Args:
            recipient: Wallet reference of the payee.
            amount: Positive amount per execution.
            condition: Condition text, e.g. "every hour".

        Returns:
            The new rule's id.

        Raises:
            ValidationError: On empty recipient, non-positive amount or an
                unparsable condition (``ConditionParseError``).
        """
        recipient = (recipient or "").strip()
        if not recipient:
            raise ValidationError("Recipient wallet is required", field="recipient")
        value = _coerce_amount(amount)
        predicate = parse_condition(condition, default_symbol=self._price_symbol)

        rule = AutopayRule(
            recipient=recipient,
            amount=value,
            condition=predicate,
            condition_text=" ".join(condition.split()),
            created_at=self._clock.now(),
        )
        await self._rule_store.insert(rule)
        if self._initialized:
            await self._scheduler.start_monitoring(rule)
        logger.info(
            "engine.rule_created",
            rule_id=rule.rule_id,
            recipient=recipient,
            amount=str(value),
            condition=predicate.describe(),
        )
        return rule.rule_id

    async def activate_rule(self, rule_id: str) -> bool:
        """Mark a rule active and (re)arm its timer. False if unknown."""
        rule = await self._rule_store.get(rule_id)
        if rule is None:
            logger.warning("engine.rule_not_found", rule_id=rule_id)
            return False
        if not rule.active:
            rule = await self._rule_store.update(rule_id, {"active": True})
        if self._initialized:
            await self._scheduler.start_monitoring(rule)
        logger.info("engine.rule_activated", rule_id=rule_id)
        return True

    async def deactivate_rule(self, rule_id: str) -> bool:
        """Mark a rule inactive and disarm its timer. False if unknown."""
        rule = await self._rule_store.get(rule_id)
        if rule is None:
            logger.warning("engine.rule_not_found", rule_id=rule_id)
            return False
        await self._scheduler.stop_monitoring(rule_id)
        if rule.active:
            await self._rule_store.update(rule_id, {"active": False})
        logger.info("engine.rule_deactivated", rule_id=rule_id)
        return True

    async def delete_rule(self, rule_id: str) -> bool:
        """Stop monitoring, then remove the rule. False if unknown."""
        await self._scheduler.stop_monitoring(rule_id)
        deleted = await self._rule_store.delete(rule_id)
        self._scheduler.forget(rule_id)
        if deleted:
            logger.info("engine.rule_deleted", rule_id=rule_id)
        return deleted

    async def manually_trigger_rule(self, rule_id: str) -> Execution:
        """Run the execution pipeline for a rule now, outside its schedule."""
        rule = await self._rule_store.get(rule_id)
        if rule is None:
            return Execution.failure(rule_id, ERROR_RULE_NOT_FOUND, self._clock.now())
        return await self._scheduler.trigger_now(rule_id)

    async def can_execute_rule(self, rule_id: str) -> tuple[bool, str | None]:
        """Preflight: would the rule execute right now (active, funded)?"""
        rule = await self._rule_store.get(rule_id)
        if rule is None:
            return False, ERROR_RULE_NOT_FOUND
        return await self._pipeline.can_execute(rule)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_rule(self, rule_id: str) -> AutopayRule | None:
        return await self._rule_store.get(rule_id)

    async def list_rules(self) -> list[AutopayRule]:
        return sort_rules(await self._rule_store.list_all())

    async def get_stats(self) -> RuleStats:
        """Counts of total, active, triggered and inactive rules."""
        rules = await self._rule_store.list_all()
        active = sum(1 for r in rules if r.active)
        return RuleStats(
            total=len(rules),
            active=active,
            triggered=sum(1 for r in rules if r.has_triggered),
            inactive=len(rules) - active,
        )

    async def get_history(self, rule_id: str) -> list[LedgerTransaction]:
        """Ledger transactions created for a rule, oldest first."""
        if self._ledger is None:
            return []
        return await self._ledger.list_for_rule(rule_id)

    async def get_execution_stats(self) -> ExecutionStats:
        """Aggregate outcome of all autopay transactions in the ledger."""
        if self._ledger is None:
            return ExecutionStats()
        transactions = await self._ledger.list_autopay()
        completed = [t for t in transactions if t.status is TransactionStatus.COMPLETED]
        failed = [t for t in transactions if t.status is TransactionStatus.FAILED]
        return ExecutionStats(
            total_executions=len(transactions),
            successful_executions=len(completed),
            failed_executions=len(failed),
            total_amount_sent=sum((t.amount for t in completed), Decimal("0")),
        )

    def describe(self, rule: AutopayRule) -> str:
        return describe_rule(rule, self._price_symbol)
