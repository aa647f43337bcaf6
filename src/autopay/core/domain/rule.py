"""Autopay rule domain model.

An ``AutopayRule`` is a standing instruction: pay ``amount`` to
``recipient`` whenever ``condition`` becomes true. Rules are owned by a rule
store; every other component refers to them by id and routes mutations back
through the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from autopay.core.domain.condition import Predicate, predicate_from_dict
from autopay.core.utils.time import utc_now

# Fields a rule store accepts in ``update`` patches.
MUTABLE_FIELDS = frozenset({"active", "last_triggered"})


@dataclass
class AutopayRule:
    """A persisted autopay instruction.

    Attributes:
        recipient: Wallet reference of the payee.
        amount: Amount to send per execution; always positive.
        condition: Parsed predicate deciding when the rule fires.
        rule_id: Unique identifier, assigned at creation.
        active: Whether the rule is monitored.
        last_triggered: Time of the last successful execution, if any.
        created_at: When the rule was created.
        condition_text: The text the condition was parsed from, for display.
    """

    recipient: str
    amount: Decimal
    condition: Predicate
    rule_id: str = field(default_factory=lambda: uuid4().hex)
    active: bool = True
    last_triggered: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    condition_text: str = ""

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Rule amount must be positive, got {self.amount}")

    @property
    def has_triggered(self) -> bool:
        """Whether the rule executed successfully at least once."""
        return self.last_triggered is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        return {
            "rule_id": self.rule_id,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "condition": self.condition.to_dict(),
            "condition_text": self.condition_text,
            "active": self.active,
            "last_triggered": self.last_triggered.isoformat() if self.last_triggered else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutopayRule:
        """Deserialize from stored dict."""
        created_raw = data.get("created_at")
        triggered_raw = data.get("last_triggered")
        return cls(
            rule_id=str(data.get("rule_id", uuid4().hex)),
            recipient=str(data["recipient"]),
            amount=Decimal(str(data["amount"])),
            condition=predicate_from_dict(data["condition"]),
            condition_text=str(data.get("condition_text", "")),
            active=bool(data.get("active", True)),
            last_triggered=datetime.fromisoformat(triggered_raw) if triggered_raw else None,
            created_at=datetime.fromisoformat(created_raw) if created_raw else utc_now(),
        )
