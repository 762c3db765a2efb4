"""Paper feed implementation for simulated price streams."""

import asyncio
import logging
import random
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from pricewatch.clock import utc_now
from pricewatch.errors import FeedUnavailable, PriceUnavailable, UnknownAsset
from pricewatch.feeds.base import BaseAssetRegistry, BasePriceFeed
from pricewatch.models import PriceUpdate

logger = logging.getLogger(__name__)


class StaticAssetRegistry(BaseAssetRegistry):
    """Registry backed by a fixed symbol -> token mapping."""

    def __init__(self, tokens: dict[str, str]):
        self._tokens = {symbol.upper(): token for symbol, token in tokens.items()}

    def resolve_token(self, symbol: str) -> str:
        try:
            return self._tokens[symbol.strip().upper()]
        except KeyError:
            raise UnknownAsset(symbol) from None


class PaperFeed(BasePriceFeed):
    """Simulated feed for paper runs and tests.

    Prices are pushed with :meth:`publish`. When ``tick_interval`` is set, a
    background task also random-walks every subscribed token that has a
    starting price, like a live feed hovering around its last mark.
    """

    # Max per-tick move for the random walk
    DEFAULT_VOLATILITY_PERCENT = 0.2  # 0.2%

    def __init__(
        self,
        prices: Optional[dict[str, float]] = None,
        tick_interval: Optional[float] = None,
        volatility_percent: float = DEFAULT_VOLATILITY_PERCENT,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the paper feed.

        Args:
            prices: Starting price per token.
            tick_interval: Seconds between simulated ticks; None disables
                the random walk.
            volatility_percent: Maximum move per simulated tick.
            clock: Source of update timestamps.
        """
        self._prices: dict[str, float] = dict(prices or {})
        self._tick_interval = tick_interval
        self._volatility_percent = volatility_percent
        self._clock = clock
        self._subscriptions: set[str] = set()
        self._queue: asyncio.Queue[Optional[PriceUpdate]] = asyncio.Queue()
        self._ticker: Optional[asyncio.Task] = None
        self._connected = False

    @property
    def subscriptions(self) -> set[str]:
        return set(self._subscriptions)

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        if self._tick_interval and self._ticker is None:
            self._ticker = asyncio.create_task(self._run_ticker(), name="paper-feed-ticker")

    async def close(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        if self._connected:
            self._connected = False
            self._queue.put_nowait(None)

    async def subscribe(self, token: str) -> None:
        if not self._connected:
            raise FeedUnavailable("Paper feed is not connected")
        self._subscriptions.add(token)

    async def unsubscribe(self, token: str) -> None:
        self._subscriptions.discard(token)

    def publish(self, token: str, mark_price: float, timestamp: Optional[datetime] = None) -> None:
        """Record a price and push it to the stream if the token is subscribed."""
        self._prices[token] = mark_price
        if token in self._subscriptions:
            self._queue.put_nowait(PriceUpdate(
                token=token,
                mark_price=mark_price,
                timestamp=timestamp or self._clock(),
            ))

    async def updates(self) -> AsyncIterator[PriceUpdate]:
        while True:
            update = await self._queue.get()
            if update is None:
                return
            yield update

    async def lookup_current_price(self, token: str) -> float:
        try:
            return self._prices[token]
        except KeyError:
            raise PriceUnavailable(token) from None

    async def _run_ticker(self) -> None:
        """Random-walk subscribed prices until cancelled."""
        while True:
            await asyncio.sleep(self._tick_interval)
            for token in sorted(self._subscriptions):
                price = self._prices.get(token)
                if price is None:
                    continue
                move = random.uniform(-self._volatility_percent, self._volatility_percent) / 100
                self.publish(token, price * (1 + move))
