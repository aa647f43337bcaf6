"""Price feed over configured, manually adjustable prices."""

from __future__ import annotations

from decimal import Decimal

from autopay.core.domain.errors import TransientLookupError


class StaticPriceFeed:
    """Serves prices from a dict keyed by upper-case symbol."""

    def __init__(self, prices: dict[str, Decimal] | None = None) -> None:
        self._prices = {k.upper(): Decimal(str(v)) for k, v in (prices or {}).items()}

    def set_price(self, symbol: str, price: Decimal) -> None:
        self._prices[symbol.upper()] = Decimal(str(price))

    async def current_price(self, symbol: str) -> Decimal:
        try:
            return self._prices[symbol.upper()]
        except KeyError:
            raise TransientLookupError(f"No price for {symbol}", source="price_feed") from None
