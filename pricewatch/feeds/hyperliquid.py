"""Hyperliquid market-data feed.

Streams mark prices over the public websocket and answers price and
symbol lookups through the HTTP info endpoint.

Usage:
    feed = HyperliquidFeed()
    await feed.connect()
    await feed.subscribe("@107")
    async for update in feed.updates():
        ...
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import requests
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from pricewatch.clock import utc_now
from pricewatch.errors import FeedUnavailable, PriceUnavailable, UnknownAsset
from pricewatch.feeds.base import BaseAssetRegistry, BasePriceFeed
from pricewatch.models import PriceUpdate

logger = logging.getLogger(__name__)

WS_URL = "wss://api.hyperliquid.xyz/ws"
INFO_URL = "https://api.hyperliquid.xyz/info"

# USDC is token 0; spot pairs quoted in it are the canonical market
QUOTE_TOKEN_INDEX = 0


def post_info(
    session: requests.Session,
    payload: dict[str, Any],
    info_url: str = INFO_URL,
    timeout: float = 10.0,
) -> Any:
    """POST a request to the info endpoint.

    Raises:
        FeedUnavailable: If the request fails.
    """
    try:
        response = session.post(info_url, json=payload, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as exc:
        raise FeedUnavailable(f"Hyperliquid info request {payload['type']} failed: {exc}") from exc


def build_token_catalog(spot_meta: dict, perp_meta: Optional[dict] = None) -> dict[str, str]:
    """Map user-facing symbols to feed tokens.

    Spot assets resolve to their USDC pair name (e.g. ``HYPE`` -> ``@107``),
    using the pair's base token as the only join key. Perpetuals resolve to
    their own name and never shadow a spot listing.
    """
    token_names = {token["index"]: token["name"] for token in spot_meta.get("tokens", [])}
    catalog: dict[str, str] = {}
    for pair in spot_meta.get("universe", []):
        base, quote = pair["tokens"][0], pair["tokens"][1]
        if quote != QUOTE_TOKEN_INDEX or base not in token_names:
            continue
        catalog.setdefault(token_names[base].upper(), pair["name"])

    for asset in (perp_meta or {}).get("universe", []):
        catalog.setdefault(asset["name"].upper(), asset["name"])
    return catalog


class HyperliquidAssetRegistry(BaseAssetRegistry):
    """Resolves symbols against the exchange's spot and perp listings.

    The catalog is fetched once on first use; call :meth:`refresh` to pick
    up new listings.
    """

    def __init__(
        self,
        info_url: str = INFO_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self._info_url = info_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self._catalog: Optional[dict[str, str]] = None

    def refresh(self) -> None:
        spot_meta = post_info(self._session, {"type": "spotMeta"}, self._info_url, self._timeout)
        perp_meta = post_info(self._session, {"type": "meta"}, self._info_url, self._timeout)
        self._catalog = build_token_catalog(spot_meta, perp_meta)
        logger.info("Loaded %d Hyperliquid symbols", len(self._catalog))

    def resolve_token(self, symbol: str) -> str:
        if self._catalog is None:
            self.refresh()
        try:
            return self._catalog[symbol.strip().upper()]
        except KeyError:
            raise UnknownAsset(symbol) from None


class HyperliquidFeed(BasePriceFeed):
    """Hyperliquid websocket feed of ``activeAssetCtx`` mark prices.

    A dropped connection is reopened with exponential backoff and every
    subscription is replayed, so :meth:`updates` only ends on :meth:`close`.
    """

    # Server drops connections idle for 60s
    PING_INTERVAL = 50.0

    def __init__(
        self,
        ws_url: str = WS_URL,
        info_url: str = INFO_URL,
        http_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
    ):
        self._ws_url = ws_url
        self._info_url = info_url
        self._http_timeout = http_timeout
        self._session = session or requests.Session()
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._ws = None
        self._pinger: Optional[asyncio.Task] = None
        self._subscriptions: set[str] = set()
        self._closing = False

    @property
    def subscriptions(self) -> set[str]:
        return set(self._subscriptions)

    async def connect(self) -> None:
        self._closing = False
        await self._open()
        logger.info("Connected to %s", self._ws_url)

    async def close(self) -> None:
        self._closing = True
        await self._discard_socket()

    async def subscribe(self, token: str) -> None:
        await self._send({"method": "subscribe", "subscription": self._subscription(token)})
        self._subscriptions.add(token)
        logger.info("Subscribed to %s", token)

    async def unsubscribe(self, token: str) -> None:
        if token not in self._subscriptions:
            return
        await self._send({"method": "unsubscribe", "subscription": self._subscription(token)})
        self._subscriptions.discard(token)
        logger.info("Unsubscribed from %s", token)

    async def updates(self) -> AsyncIterator[PriceUpdate]:
        if self._ws is None:
            raise FeedUnavailable("Hyperliquid feed is not connected")
        while not self._closing:
            try:
                async for raw in self._ws:
                    update = self.parse_message(raw)
                    if update is not None:
                        yield update
            except ConnectionClosed as e:
                if not self._closing:
                    logger.warning("Hyperliquid websocket closed: %s", e)
            if self._closing:
                return
            await self._reconnect()

    async def lookup_current_price(self, token: str) -> float:
        mids = await asyncio.to_thread(
            post_info, self._session, {"type": "allMids"}, self._info_url, self._http_timeout
        )
        try:
            return float(mids[token])
        except (KeyError, TypeError, ValueError):
            raise PriceUnavailable(token) from None

    @staticmethod
    def parse_message(raw: str | bytes) -> Optional[PriceUpdate]:
        """Turn an ``activeAssetCtx``/``activeSpotAssetCtx`` message into an update.

        Returns None for acknowledgements, pongs and unparseable payloads.
        """
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Dropping non-JSON feed message")
            return None
        if message.get("channel") not in ("activeAssetCtx", "activeSpotAssetCtx"):
            return None
        data = message.get("data", {})
        try:
            return PriceUpdate(
                token=data["coin"],
                mark_price=float(data["ctx"]["markPx"]),
                timestamp=utc_now(),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping malformed feed message: %s", e)
            return None

    @staticmethod
    def _subscription(token: str) -> dict[str, str]:
        return {"type": "activeAssetCtx", "coin": token}

    async def _open_socket(self):
        return await websockets.connect(self._ws_url, ping_interval=None)

    async def _open(self) -> None:
        try:
            self._ws = await self._open_socket()
        except (OSError, WebSocketException) as e:
            raise FeedUnavailable(f"Cannot connect to {self._ws_url}: {e}") from e
        self._pinger = asyncio.create_task(self._keepalive(), name="hyperliquid-ping")

    async def _discard_socket(self) -> None:
        if self._pinger is not None:
            self._pinger.cancel()
            try:
                await self._pinger
            except asyncio.CancelledError:
                pass
            self._pinger = None
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def _reconnect(self) -> None:
        """Reopen the socket and replay every subscription, retrying until closed."""
        delay = self._reconnect_delay
        while not self._closing:
            await self._discard_socket()
            try:
                await self._open()
                for token in sorted(self._subscriptions):
                    await self._send({"method": "subscribe", "subscription": self._subscription(token)})
            except FeedUnavailable as e:
                logger.warning("Reconnect failed, retrying in %.1fs: %s", delay, e)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._max_reconnect_delay)
                continue
            if self._closing:
                await self._discard_socket()
                return
            logger.info("Reconnected to %s with %d subscriptions", self._ws_url, len(self._subscriptions))
            return

    async def _send(self, message: dict) -> None:
        if self._ws is None:
            raise FeedUnavailable("Hyperliquid feed is not connected")
        try:
            await self._ws.send(json.dumps(message))
        except (OSError, WebSocketException) as e:
            raise FeedUnavailable(f"Hyperliquid send failed: {e}") from e

    async def _keepalive(self) -> None:
        while True:
            await asyncio.sleep(self.PING_INTERVAL)
            try:
                await self._send({"method": "ping"})
            except FeedUnavailable as e:
                # The reader sees the closed socket and reconnects, which restarts this task
                logger.warning("Keepalive failed: %s", e)
                return
