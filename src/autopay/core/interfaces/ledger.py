"""Ledger store protocol.

The ledger is the durable transaction record keeper. Creating a record is
the commit point of an execution; the pipeline then owes it a terminal
status update.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from autopay.core.domain.execution import LedgerTransaction, TransactionDraft


class LedgerStoreProtocol(Protocol):
    """Protocol for transaction record keeping."""

    async def create(self, record: TransactionDraft) -> LedgerTransaction:
        """Persist a new transaction record.

        Args:
            record: Fields of the new transaction.

        Returns:
            The stored transaction with its id assigned.
        """
        ...

    async def update(self, transaction_id: str, fields: dict[str, Any]) -> LedgerTransaction:
        """Apply a partial update (``status``, ``tx_hash``) to a record.

        Args:
            transaction_id: ID of the record to update.
            fields: Field names mapped to new values.

        Returns:
            The updated transaction.
        """
        ...

    async def get(self, transaction_id: str) -> LedgerTransaction | None:
        """Retrieve a transaction by ID."""
        ...

    async def list_for_rule(self, rule_id: str) -> list[LedgerTransaction]:
        """List the transactions created for an autopay rule, oldest first."""
        ...

    async def list_autopay(self) -> list[LedgerTransaction]:
        """List every autopay transaction, oldest first."""
        ...
