"""Notification sink protocol for "rule triggered" notices."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from autopay.core.domain.execution import Execution
    from autopay.core.domain.rule import AutopayRule


class NotificationSinkProtocol(Protocol):
    """Fire-and-forget delivery of execution notices to the UI layer."""

    async def notify(self, rule: AutopayRule, execution: Execution) -> None:
        """Deliver a notice. Failures never affect the execution."""
        ...
