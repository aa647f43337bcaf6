"""Execution and ledger transaction models.

``Execution`` is the ephemeral outcome of one attempt to act on a satisfied
condition. ``LedgerTransaction`` is the durable record a ledger store keeps
once the pipeline passes its commit point.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from autopay.core.domain.errors import ExecutionFailure
from autopay.core.utils.time import ensure_utc, utc_now

ERROR_RULE_INACTIVE = "rule inactive"
ERROR_RULE_NOT_FOUND = "rule not found"
ERROR_INSUFFICIENT_BALANCE = "insufficient balance"
ERROR_BALANCE_UNAVAILABLE = "balance unavailable"
ERROR_ADDRESS_UNAVAILABLE = "sender address unavailable"


class TransactionStatus(str, Enum):
    """Lifecycle status of a ledger transaction."""

    PENDING = "pending"
    AUTOPAY = "autopay"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionStatus.COMPLETED, TransactionStatus.FAILED)


class TransactionType(str, Enum):
    """Direction of a ledger transaction."""

    SENT = "sent"
    RECEIVED = "received"


@dataclass
class TransactionDraft:
    """Fields handed to ``LedgerStore.create``."""

    wallet_id: str
    amount: Decimal
    recipient: str
    sender: str
    autopay_rule_id: str
    type: TransactionType = TransactionType.SENT
    status: TransactionStatus = TransactionStatus.AUTOPAY


@dataclass
class LedgerTransaction:
    """A transaction record as returned by the ledger store."""

    transaction_id: str
    wallet_id: str
    amount: Decimal
    recipient: str
    sender: str
    autopay_rule_id: str | None = None
    type: TransactionType = TransactionType.SENT
    status: TransactionStatus = TransactionStatus.PENDING
    tx_hash: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_autopay(self) -> bool:
        return self.status is TransactionStatus.AUTOPAY or self.autopay_rule_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "wallet_id": self.wallet_id,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "sender": self.sender,
            "autopay_rule_id": self.autopay_rule_id,
            "type": self.type.value,
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerTransaction:
        """Deserialize a record produced by ``to_dict``."""
        created_raw = data.get("created_at")
        updated_raw = data.get("updated_at")
        created_at = ensure_utc(datetime.fromisoformat(created_raw)) if created_raw else utc_now()
        updated_at = ensure_utc(datetime.fromisoformat(updated_raw)) if updated_raw else created_at
        return cls(
            transaction_id=str(data["transaction_id"]),
            wallet_id=str(data["wallet_id"]),
            amount=Decimal(str(data["amount"])),
            recipient=str(data["recipient"]),
            sender=str(data["sender"]),
            autopay_rule_id=data.get("autopay_rule_id"),
            type=TransactionType(data.get("type", TransactionType.SENT.value)),
            status=TransactionStatus(data.get("status", TransactionStatus.PENDING.value)),
            tx_hash=data.get("tx_hash"),
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass
class Execution:
    """Outcome of one execution attempt for a rule.

    Attributes:
        rule_id: The rule that was executed.
        executed_at: When the attempt started.
        success: Whether the payment settled.
        transaction_id: Ledger record id, set once the commit point is passed.
        error: Failure reason for unsuccessful attempts.
        settlement_reference: Settlement hash of a completed payment.
    """

    rule_id: str
    executed_at: datetime = field(default_factory=utc_now)
    success: bool = False
    transaction_id: str | None = None
    error: str | None = None
    settlement_reference: str | None = None

    @property
    def committed(self) -> bool:
        """Whether a ledger record was created for this attempt."""
        return self.transaction_id is not None

    @classmethod
    def failure(cls, rule_id: str, error: str, executed_at: datetime | None = None) -> Execution:
        return cls(rule_id=rule_id, executed_at=executed_at or utc_now(), error=error)

    def raise_for_error(self) -> None:
        """Raise ``ExecutionFailure`` if the attempt did not succeed."""
        if not self.success:
            raise ExecutionFailure(
                self.error or "execution failed",
                rule_id=self.rule_id,
                transaction_id=self.transaction_id,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "executed_at": self.executed_at.isoformat(),
            "success": self.success,
            "transaction_id": self.transaction_id,
            "error": self.error,
            "settlement_reference": self.settlement_reference,
        }


@dataclass(frozen=True)
class RuleStats:
    """Aggregate counts over the rule store."""

    total: int = 0
    active: int = 0
    triggered: int = 0
    inactive: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "active": self.active,
            "triggered": self.triggered,
            "inactive": self.inactive,
        }


@dataclass(frozen=True)
class ExecutionStats:
    """Aggregate outcome of autopay transactions in the ledger."""

    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_amount_sent: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "total_amount_sent": str(self.total_amount_sent),
        }
