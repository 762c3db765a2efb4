"""Market-data feeds for pricewatch."""

from pricewatch.feeds.base import BaseAssetRegistry, BasePriceFeed
from pricewatch.feeds.hyperliquid import HyperliquidAssetRegistry, HyperliquidFeed
from pricewatch.feeds.paper import PaperFeed, StaticAssetRegistry

__all__ = [
    "BaseAssetRegistry",
    "BasePriceFeed",
    "HyperliquidAssetRegistry",
    "HyperliquidFeed",
    "PaperFeed",
    "StaticAssetRegistry",
]
