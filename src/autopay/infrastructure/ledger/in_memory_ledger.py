"""In-memory ledger store.

Reference ``LedgerStoreProtocol`` implementation. Records are kept in
insertion order; ``FileLedgerStore`` adds persistence through ``_persist``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any
from uuid import uuid4

import structlog

from autopay.core.domain.execution import (
    LedgerTransaction,
    TransactionDraft,
    TransactionStatus,
)
from autopay.core.utils.time import utc_now

logger = structlog.get_logger(__name__)

_UPDATABLE = frozenset({"status", "tx_hash"})


class InMemoryLedgerStore:
    """Dict-backed transaction ledger."""

    def __init__(self) -> None:
        self._transactions: dict[str, LedgerTransaction] = {}

    async def create(self, record: TransactionDraft) -> LedgerTransaction:
        now = utc_now()
        transaction = LedgerTransaction(
            transaction_id=uuid4().hex,
            wallet_id=record.wallet_id,
            amount=record.amount,
            recipient=record.recipient,
            sender=record.sender,
            autopay_rule_id=record.autopay_rule_id,
            type=record.type,
            status=record.status,
            created_at=now,
            updated_at=now,
        )
        self._transactions[transaction.transaction_id] = transaction
        await self._persist()
        logger.info(
            "ledger.created",
            transaction_id=transaction.transaction_id,
            rule_id=record.autopay_rule_id,
            status=transaction.status.value,
        )
        return replace(transaction)

    async def update(self, transaction_id: str, fields: dict[str, Any]) -> LedgerTransaction:
        transaction = self._transactions.get(transaction_id)
        if transaction is None:
            raise KeyError(f"Unknown transaction: {transaction_id}")
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update transaction fields: {sorted(unknown)}")

        changes: dict[str, Any] = {"updated_at": utc_now()}
        if "status" in fields:
            changes["status"] = TransactionStatus(fields["status"])
        if "tx_hash" in fields:
            changes["tx_hash"] = fields["tx_hash"]
        updated = replace(transaction, **changes)
        self._transactions[transaction_id] = updated
        await self._persist()
        logger.info(
            "ledger.updated",
            transaction_id=transaction_id,
            status=updated.status.value,
        )
        return replace(updated)

    async def get(self, transaction_id: str) -> LedgerTransaction | None:
        transaction = self._transactions.get(transaction_id)
        return replace(transaction) if transaction else None

    async def list_for_rule(self, rule_id: str) -> list[LedgerTransaction]:
        return [
            replace(t) for t in self._transactions.values() if t.autopay_rule_id == rule_id
        ]

    async def list_autopay(self) -> list[LedgerTransaction]:
        return [replace(t) for t in self._transactions.values() if t.is_autopay]

    async def _persist(self) -> None:
        """Hook for durable subclasses."""
