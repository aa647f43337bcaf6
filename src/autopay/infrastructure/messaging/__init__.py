"""Event bus implementations."""

from autopay.infrastructure.messaging.in_memory_bus import InMemoryEventBus

__all__ = ["InMemoryEventBus"]
