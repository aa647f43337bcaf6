"""Domain-specific exception types for the autopay engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class AutopayError(Exception):
    """Base exception for autopay domain errors."""

    message: str
    code: str = "autopay_error"
    details: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.details is None:
            self.details = {}


class ValidationError(AutopayError):
    """Rejected input at rule creation (recipient, amount or condition)."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        self.field = field
        super().__init__(message=message, code="validation_error", details=details)


class ConditionParseError(ValidationError):
    """Condition text that does not match any known predicate form."""

    def __init__(self, message: str, *, token: str, text: str = "") -> None:
        self.token = token
        self.text = text
        super().__init__(
            message,
            field="condition",
            details={"token": token, "text": text},
        )


class RuleNotFoundError(AutopayError):
    """Raised by a rule store when the rule id is unknown."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(
            message=f"Autopay rule not found: {rule_id}",
            code="rule_not_found",
            details={"rule_id": rule_id},
        )


class TransientLookupError(AutopayError):
    """Wallet or price lookup that failed during a tick; retried next tick."""

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if source:
            details.setdefault("source", source)
        self.source = source
        super().__init__(message=message, code="transient_lookup_error", details=details)


class ExecutionFailure(AutopayError):
    """A pipeline step that ends the execution attempt unsuccessfully."""

    def __init__(
        self,
        message: str,
        *,
        rule_id: str | None = None,
        transaction_id: str | None = None,
        details: Dict[str, Any] | None = None,
    ) -> None:
        details = dict(details or {})
        if rule_id:
            details.setdefault("rule_id", rule_id)
        if transaction_id:
            details.setdefault("transaction_id", transaction_id)
        self.rule_id = rule_id
        self.transaction_id = transaction_id
        super().__init__(message=message, code="execution_failure", details=details)


class NotificationFailure(AutopayError):
    """Notification delivery failed; never affects rule or execution state."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="notification_failure", details=details)


class ConfigError(AutopayError):
    """Error raised for configuration failures."""

    def __init__(self, message: str, *, details: Dict[str, Any] | None = None) -> None:
        super().__init__(message=message, code="config_error", details=details)
