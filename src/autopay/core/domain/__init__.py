"""
Domain Models

This package contains the core domain models of the autopay engine:
- Autopay rules and their parsed condition predicates
- Executions and ledger transactions
- Domain events
- Error taxonomy and configuration schema
"""

from autopay.core.domain.condition import (
    DailyAt,
    EventOccurred,
    MonthlyOn,
    Periodic,
    Predicate,
    PriceOperator,
    PriceThreshold,
    WeeklyOn,
)
from autopay.core.domain.errors import (
    AutopayError,
    ConditionParseError,
    RuleNotFoundError,
    ValidationError,
)
from autopay.core.domain.execution import Execution, LedgerTransaction, TransactionStatus
from autopay.core.domain.rule import AutopayRule

__all__ = [
    "AutopayError",
    "AutopayRule",
    "ConditionParseError",
    "DailyAt",
    "EventOccurred",
    "Execution",
    "LedgerTransaction",
    "MonthlyOn",
    "Periodic",
    "Predicate",
    "PriceOperator",
    "PriceThreshold",
    "RuleNotFoundError",
    "TransactionStatus",
    "ValidationError",
    "WeeklyOn",
]
