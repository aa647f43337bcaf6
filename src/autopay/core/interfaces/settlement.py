"""Settlement protocol.

Drives a committed ledger transaction to confirmation. The simulated
implementation waits a fixed delay; a chain-confirmation watcher implements
the same method.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from autopay.core.domain.execution import LedgerTransaction


class SettlementProtocol(Protocol):
    """Confirms committed transactions."""

    async def settle(self, transaction: LedgerTransaction) -> str:
        """Wait for the transaction to settle.

        Args:
            transaction: The committed ledger record.

        Returns:
            The settlement reference (transaction hash).

        Raises:
            Exception: Any error means the settlement failed.
        """
        ...
