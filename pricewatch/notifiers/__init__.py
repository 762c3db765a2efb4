"""Notification transports for pricewatch."""

from pricewatch.notifiers.base import BaseNotifier, deliver
from pricewatch.notifiers.console import ConsoleNotifier
from pricewatch.notifiers.telegram import TelegramNotifier

__all__ = [
    "BaseNotifier",
    "ConsoleNotifier",
    "TelegramNotifier",
    "deliver",
]
