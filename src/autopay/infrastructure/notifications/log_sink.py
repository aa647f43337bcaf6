"""Notification sink that writes "rule triggered" notices to the log."""

from __future__ import annotations

import structlog

from autopay.core.domain.execution import Execution
from autopay.core.domain.rule import AutopayRule

logger = structlog.get_logger(__name__)


class LoggingNotificationSink:
    """Logs each notice and keeps the most recent ones for inspection."""

    def __init__(self, history_size: int = 50) -> None:
        self._history_size = history_size
        self._recent: list[tuple[str, Execution]] = []

    @property
    def recent(self) -> list[tuple[str, Execution]]:
        return list(self._recent)

    async def notify(self, rule: AutopayRule, execution: Execution) -> None:
        if execution.success:
            logger.info(
                "autopay.payment_triggered",
                rule_id=rule.rule_id,
                amount=str(rule.amount),
                recipient=rule.recipient,
                transaction_id=execution.transaction_id,
            )
        else:
            logger.warning(
                "autopay.payment_failed",
                rule_id=rule.rule_id,
                transaction_id=execution.transaction_id,
                error=execution.error,
            )
        self._recent.append((rule.rule_id, execution))
        del self._recent[: -self._history_size]
