"""Settlement simulation.

Models network confirmation as a fixed delay followed by a generated
settlement reference. A chain-confirmation watcher would implement the same
``settle`` method.
"""

from __future__ import annotations

import asyncio
import time
from uuid import uuid4

import structlog

from autopay.core.domain.execution import LedgerTransaction

logger = structlog.get_logger(__name__)


class SimulatedSettlement:
    """Confirms every transaction after ``delay_seconds``."""

    def __init__(self, delay_seconds: float = 2.0) -> None:
        if delay_seconds < 0:
            raise ValueError("Settlement delay must not be negative")
        self._delay = delay_seconds

    @property
    def delay_seconds(self) -> float:
        return self._delay

    async def settle(self, transaction: LedgerTransaction) -> str:
        await asyncio.sleep(self._delay)
        reference = f"autopay_{int(time.time() * 1000)}_{uuid4().hex[:9]}"
        logger.debug(
            "settlement.confirmed",
            transaction_id=transaction.transaction_id,
            reference=reference,
        )
        return reference
