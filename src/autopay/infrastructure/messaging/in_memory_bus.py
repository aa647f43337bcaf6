"""In-memory event bus implementation for local coordination."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from autopay.core.domain.events import DomainEvent
from autopay.core.interfaces.event_bus import EventHandler

logger = structlog.get_logger(__name__)


class InMemoryEventBus:
    """Simple in-process event bus for development and tests.

    Handlers run sequentially in subscription order. A failing handler is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._published = 0

    @property
    def published_count(self) -> int:
        return self._published

    def subscribe(self, event_type: str, handler: EventHandler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def subscriber_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    async def publish(self, event: DomainEvent) -> None:
        self._published += 1
        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                await handler(event)
            except Exception as exc:
                logger.warning(
                    "event_bus.handler_failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    error=str(exc),
                )
