"""Price feed protocol for price-based conditions."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol


class PriceFeedProtocol(Protocol):
    """Source of current asset prices."""

    async def current_price(self, symbol: str) -> Decimal:
        """Return the current price of ``symbol`` (e.g. "BTC")."""
        ...
