"""Alert engine: the long-running price, sweep and cron loops."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from pricewatch.clock import utc_now
from pricewatch.config import EngineSettings
from pricewatch.db.store import AlertStore
from pricewatch.engine.cooldown import CooldownManager
from pricewatch.engine.cron import CronScheduler, format_cron_alert
from pricewatch.engine.trigger import TriggerEvaluator
from pricewatch.errors import (
    FeedUnavailable,
    NotFound,
    PriceUnavailable,
    SchedulingFault,
    StorageUnavailable,
)
from pricewatch.feeds.base import BasePriceFeed
from pricewatch.models import CronAlert, PriceUpdate
from pricewatch.notifiers.base import BaseNotifier, deliver

logger = logging.getLogger(__name__)


class AlertEngine:
    """Runs the three independent alert loops against one store and one feed.

    - price loop: every feed update is band-matched and each match fired
    - sweep loop: expired cooldowns are released every ``sweep_interval``
    - cron loop: due cron alerts are reported and rescheduled every
      ``cron_poll_interval``

    Failures are isolated per alert and per iteration. Only startup failures
    (storage unreachable, feed not connectable) escape :meth:`run`.
    """

    def __init__(
        self,
        store: AlertStore,
        feed: BasePriceFeed,
        notifier: BaseNotifier,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the engine.

        Args:
            store: Alert store shared by all loops.
            feed: Market-data feed.
            notifier: Notification transport.
            settings: Engine timing parameters, defaults if None.
            clock: Source of the current time.
        """
        self.settings = settings or EngineSettings()
        self._store = store
        self._feed = feed
        self._notifier = notifier
        self._clock = clock
        self.evaluator = TriggerEvaluator(store, band=self.settings.band)
        self.cooldowns = CooldownManager(
            store,
            notifier,
            window=self.settings.cooldown_window,
            notify_timeout=self.settings.notify_timeout,
        )
        self.scheduler = CronScheduler(store)
        self._stopping = asyncio.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask every loop to finish its current work and exit."""
        self._stopping.set()

    async def run(self) -> None:
        """Subscribe, run all loops until :meth:`stop`, then unsubscribe.

        Raises:
            StorageUnavailable: If the store cannot be read at startup.
            FeedUnavailable: If the feed cannot be connected or subscribed.
        """
        if self._running:
            raise RuntimeError("Alert engine is already running")
        self._running = True
        self._stopping.clear()
        try:
            tokens = await asyncio.to_thread(self._store.list_distinct_tokens)
            await self._feed.connect()
            try:
                for token in sorted(tokens):
                    await self._feed.subscribe(token)
                logger.info("Alert engine started with %d feed subscriptions", len(tokens))
                await self._run_loops()
            finally:
                await self._unsubscribe_all()
                await self._feed.close()
        finally:
            self._running = False
            logger.info("Alert engine stopped")

    async def _run_loops(self) -> None:
        tasks = [
            asyncio.create_task(self._price_loop(), name="price-loop"),
            asyncio.create_task(self._sweep_loop(), name="sweep-loop"),
            asyncio.create_task(self._cron_loop(), name="cron-loop"),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._stopping.set()
            results = await asyncio.gather(*tasks, return_exceptions=True)

        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error("%s crashed", task.get_name(), exc_info=result)
                raise result

    async def _unsubscribe_all(self) -> None:
        for token in sorted(self._feed.subscriptions):
            try:
                await self._feed.unsubscribe(token)
            except FeedUnavailable as e:
                logger.warning("Could not unsubscribe from %s: %s", token, e)

    async def _wait_or_stop(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    def _backoff(self, interval: float, failures: int) -> float:
        if failures == 0:
            return interval
        return min(interval * 2 ** failures, max(self.settings.max_backoff, interval))

    # ==================== Price loop ====================

    async def _price_loop(self) -> None:
        updates = self._feed.updates()
        stop = asyncio.create_task(self._stopping.wait())
        try:
            while True:
                next_update = asyncio.ensure_future(anext(updates))
                await asyncio.wait({next_update, stop}, return_when=asyncio.FIRST_COMPLETED)
                if not next_update.done():
                    next_update.cancel()
                    await asyncio.wait({next_update})
                    break
                try:
                    update = next_update.result()
                except StopAsyncIteration:
                    logger.warning("Price feed ended, stopping alert engine")
                    break
                await self.process_price_update(update)
        finally:
            stop.cancel()

    async def process_price_update(self, update: PriceUpdate) -> int:
        """Fire every unsuppressed alert in band of ``update.mark_price``.

        Returns:
            Number of alerts fired.
        """
        now = self._clock()
        try:
            matches = await asyncio.to_thread(self.evaluator.evaluate, update.mark_price, update.token)
        except StorageUnavailable as e:
            logger.warning("Skipping %s tick at %g: %s", update.token, update.mark_price, e)
            return 0

        fired = 0
        for alert in matches:
            try:
                await self.cooldowns.fire(alert, now, update.mark_price)
                fired += 1
            except StorageUnavailable as e:
                logger.warning("Cooldown for price alert %s not applied: %s", alert.id, e)
            except Exception:
                logger.exception("Unexpected error firing price alert %s", alert.id)
        return fired

    # ==================== Sweep loop ====================

    async def _sweep_loop(self) -> None:
        failures = 0
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
                failures = 0
            except StorageUnavailable as e:
                failures += 1
                logger.warning("Cooldown sweep skipped (%d in a row): %s", failures, e)
            if await self._wait_or_stop(self._backoff(self.settings.sweep_interval, failures)):
                break

    async def sweep_once(self, now: Optional[datetime] = None) -> int:
        """Release expired cooldowns once.

        Returns:
            Number of alerts released.
        """
        return await asyncio.to_thread(self.cooldowns.sweep, now or self._clock())

    # ==================== Cron loop ====================

    async def _cron_loop(self) -> None:
        failures = 0
        while not self._stopping.is_set():
            try:
                await self.poll_cron_once()
                failures = 0
            except StorageUnavailable as e:
                failures += 1
                logger.warning("Cron poll skipped (%d in a row): %s", failures, e)
            if await self._wait_or_stop(self._backoff(self.settings.cron_poll_interval, failures)):
                break

    async def poll_cron_once(self, now: Optional[datetime] = None) -> int:
        """Report and reschedule every cron alert due at ``now``.

        Returns:
            Number of alerts fired and rescheduled.

        Raises:
            StorageUnavailable: If the due alerts could not be read.
        """
        now = now or self._clock()
        if self.settings.auto_subscribe:
            await self.refresh_subscriptions()

        due = await asyncio.to_thread(self.scheduler.poll_due, now)
        fired = 0
        for alert in due:
            if self._stopping.is_set():
                break
            try:
                await self._fire_cron_alert(alert, now)
                fired += 1
            except SchedulingFault as e:
                logger.error("Scheduling fault: %s", e)
                await deliver(
                    self._notifier,
                    alert.destination,
                    f"⚠️ Cron alert {alert.id} for {alert.symbol} was deactivated: "
                    f"schedule {alert.cron_expression!r} can no longer be evaluated",
                    self.settings.notify_timeout,
                )
            except NotFound:
                logger.info("Cron alert %s was removed while firing", alert.id)
            except StorageUnavailable as e:
                logger.warning("Cron alert %s not rescheduled: %s", alert.id, e)
            except Exception:
                logger.exception("Unexpected error firing cron alert %s", alert.id)
        return fired

    async def _fire_cron_alert(self, alert: CronAlert, now: datetime) -> None:
        price: Optional[float] = None
        try:
            price = await asyncio.wait_for(
                self._feed.lookup_current_price(alert.token),
                self.settings.notify_timeout,
            )
        except (PriceUnavailable, FeedUnavailable, asyncio.TimeoutError) as e:
            logger.warning("No price for cron alert %s (%s): %s", alert.id, alert.token, str(e) or "timed out")

        await deliver(
            self._notifier,
            alert.destination,
            format_cron_alert(alert, price),
            self.settings.notify_timeout,
        )
        next_trigger = await asyncio.to_thread(self.scheduler.reschedule, alert, now)
        logger.info(
            "Fired cron alert %s (%s), next at %s",
            alert.id, alert.symbol, next_trigger.isoformat(),
        )

    async def refresh_subscriptions(self) -> set[str]:
        """Subscribe to tokens of alerts created since startup.

        Returns:
            Tokens newly subscribed.
        """
        tokens = await asyncio.to_thread(self._store.list_distinct_tokens)
        added = set()
        for token in sorted(tokens - self._feed.subscriptions):
            try:
                await self._feed.subscribe(token)
                added.add(token)
            except FeedUnavailable as e:
                logger.warning("Could not subscribe to %s: %s", token, e)
        if added:
            logger.info("Subscribed to new tokens: %s", ", ".join(sorted(added)))
        return added
