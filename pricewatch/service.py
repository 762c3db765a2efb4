"""Alert management operations behind the CLI and chat commands."""

import logging
from datetime import datetime
from typing import Callable, Optional

from pricewatch.clock import utc_now
from pricewatch.db.store import AlertStore
from pricewatch.engine.cron import compute_next_trigger, validate_expression
from pricewatch.feeds.base import BaseAssetRegistry
from pricewatch.models import CronAlert, PriceAlert

logger = logging.getLogger(__name__)


class AlertService:
    """Creates, lists and removes alerts.

    Every user-input check (symbol resolution, schedule validation) happens
    before the store is touched, so a rejected request never leaves a row
    behind.
    """

    def __init__(
        self,
        store: AlertStore,
        registry: BaseAssetRegistry,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._registry = registry
        self._clock = clock

    def create_price_alert(
        self,
        owner_key: str,
        destination: str,
        symbol: str,
        target_price: float,
    ) -> PriceAlert:
        """Create a price alert.

        Raises:
            UnknownAsset: If ``symbol`` cannot be resolved.
            ValueError: If ``target_price`` is not positive.
        """
        if target_price <= 0:
            raise ValueError(f"Target price must be positive, got {target_price}")
        symbol = symbol.strip().upper()
        token = self._registry.resolve_token(symbol)
        alert = self._store.create_price_alert(
            owner_key, destination, symbol, token, target_price, now=self._clock()
        )
        logger.info("Created price alert %s: %s (%s) at %g", alert.id, symbol, token, target_price)
        return alert

    def create_cron_alert(self, destination: str, symbol: str, cron_expression: str) -> CronAlert:
        """Create a cron alert scheduled from the current time.

        Raises:
            InvalidSchedule: If the expression is malformed.
            UnknownAsset: If ``symbol`` cannot be resolved.
        """
        now = self._clock()
        cron_expression = validate_expression(cron_expression)
        next_trigger = compute_next_trigger(cron_expression, now)
        symbol = symbol.strip().upper()
        token = self._registry.resolve_token(symbol)
        alert = self._store.create_cron_alert(
            destination, symbol, token, cron_expression, next_trigger, now=now
        )
        logger.info(
            "Created cron alert %s: %s (%s) '%s', first at %s",
            alert.id, symbol, token, cron_expression, next_trigger.isoformat(),
        )
        return alert

    def list_alerts(self, destination: Optional[str] = None) -> list[PriceAlert]:
        return self._store.list_alerts(destination)

    def list_cron_alerts(self, destination: Optional[str] = None) -> list[CronAlert]:
        return self._store.list_cron_alerts(destination)

    def deactivate_cron_alert(self, alert_id: int) -> CronAlert:
        """Stop scheduling a cron alert, keeping it for history.

        Raises:
            NotFound: If the alert does not exist.
        """
        self._store.deactivate_cron_alert(alert_id, self._clock())
        logger.info("Deactivated cron alert %s", alert_id)
        return self._store.get_cron_alert(alert_id)

    def delete_cron_alert(self, alert_id: int) -> CronAlert:
        """Remove a cron alert permanently.

        Returns:
            The alert as it was before deletion.

        Raises:
            NotFound: If the alert does not exist.
        """
        alert = self._store.get_cron_alert(alert_id)
        self._store.delete_cron_alert(alert_id)
        logger.info("Deleted cron alert %s", alert_id)
        return alert
