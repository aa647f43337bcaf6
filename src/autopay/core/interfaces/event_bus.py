"""Protocol definitions for the domain event bus."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from autopay.core.domain.events import DomainEvent

EventHandler = Callable[["DomainEvent"], Awaitable[None]]


class EventBusProtocol(Protocol):
    """Delivers domain events to subscribed handlers."""

    async def publish(self, event: DomainEvent) -> None:
        """Deliver an event to every handler subscribed to its type."""
        ...

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for an event type.

        Returns:
            A callable that removes the subscription.
        """
        ...
