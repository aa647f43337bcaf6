"""Price feed implementations."""

from autopay.infrastructure.pricing.static_price_feed import StaticPriceFeed

__all__ = ["StaticPriceFeed"]
