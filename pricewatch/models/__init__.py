"""Data models for pricewatch."""

from pricewatch.models.alert import CronAlert, PriceAlert
from pricewatch.models.price import PriceUpdate

__all__ = [
    "CronAlert",
    "PriceAlert",
    "PriceUpdate",
]
