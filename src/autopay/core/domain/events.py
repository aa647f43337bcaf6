"""Domain events flowing through the autopay event bus.

Wallet integrations publish events such as "transaction received"; rules
with an event condition consume them. The execution pipeline publishes
ledger updates on the same bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from autopay.core.utils.time import utc_now


class DomainEventType(str, Enum):
    """Well-known event types."""

    TRANSACTION_RECEIVED = "transaction.received"
    WALLET_CONNECTED = "wallet.connected"
    BALANCE_CHANGED = "balance.changed"

    # Published by the execution pipeline when a ledger record settles
    TRANSACTION_UPDATED = "transaction.updated"


@dataclass(frozen=True)
class DomainEvent:
    """An event delivered by the event bus.

    Attributes:
        event_type: Dotted event type, e.g. "transaction.received". Custom
            types are plain strings.
        payload: Event-specific data.
        event_id: Unique identifier for this event.
        timestamp: When the event occurred.
        source: Name of the publisher.
    """

    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=utc_now)
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for transport or logging."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }
