"""Clock source protocol for time-based conditions."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ClockProtocol(Protocol):
    """Provides the current wall-clock instant as an aware UTC datetime."""

    def now(self) -> datetime:
        """Return the current time."""
        ...
