"""Cooldown suppression of fired price alerts."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from pricewatch.db.store import AlertStore
from pricewatch.errors import NotFound
from pricewatch.models import PriceAlert
from pricewatch.notifiers.base import BaseNotifier, deliver

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(seconds=60)
DEFAULT_NOTIFY_TIMEOUT = 10.0


def format_price_alert(alert: PriceAlert, mark_price: Optional[float] = None) -> str:
    """Plain-text body of a price alert notification."""
    if mark_price is None:
        return f"🔔 Price Alert: {alert.symbol} target {alert.target_price:g} reached"
    return f"🔔 Price Alert: {alert.symbol} is at {mark_price:g} (target {alert.target_price:g})"


class CooldownManager:
    """Fires price alerts and applies/expires their suppression windows.

    A firing is notify-then-suppress. The two steps are not transactional:
    the cooldown is applied whether or not the notification was delivered,
    so an unreachable destination cannot make the alert re-fire every tick.
    """

    def __init__(
        self,
        store: AlertStore,
        notifier: BaseNotifier,
        window: timedelta = DEFAULT_WINDOW,
        notify_timeout: float = DEFAULT_NOTIFY_TIMEOUT,
    ):
        self._store = store
        self._notifier = notifier
        self.window = window
        self.notify_timeout = notify_timeout

    async def fire(self, alert: PriceAlert, now: datetime, mark_price: Optional[float] = None) -> bool:
        """Notify the alert's destination, then suppress it until ``now + window``.

        Returns:
            True if the notification was delivered.

        Raises:
            StorageUnavailable: If the cooldown could not be written.
        """
        delivered = await deliver(
            self._notifier,
            alert.destination,
            format_price_alert(alert, mark_price),
            self.notify_timeout,
        )
        try:
            await asyncio.to_thread(self._store.apply_cooldown, alert.id, now, self.window)
        except NotFound:
            logger.info("Price alert %s vanished before its cooldown was applied", alert.id)
            return delivered

        logger.info(
            "Fired price alert %s (%s @ %g), suppressed until %s",
            alert.id, alert.symbol, alert.target_price, (now + self.window).isoformat(),
        )
        return delivered

    def sweep(self, now: datetime) -> int:
        """Release every alert whose cooldown has passed.

        Returns:
            Number of alerts released.
        """
        released = self._store.expire_cooldowns(now)
        if released > 0:
            logger.info("Cooldown reset for %d alerts", released)
        return released
