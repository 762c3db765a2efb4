"""Tests for market-data feeds and asset registries."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest
import requests
from websockets.exceptions import ConnectionClosedError

from pricewatch.errors import FeedUnavailable, PriceUnavailable, UnknownAsset
from pricewatch.feeds.hyperliquid import (
    HyperliquidAssetRegistry,
    HyperliquidFeed,
    build_token_catalog,
)
from pricewatch.feeds.paper import PaperFeed, StaticAssetRegistry

SPOT_META = {
    "tokens": [
        {"name": "USDC", "index": 0},
        {"name": "PURR", "index": 1},
        {"name": "HYPE", "index": 150},
        {"name": "FEUSD", "index": 235},
    ],
    "universe": [
        {"name": "PURR/USDC", "tokens": [1, 0], "index": 0},
        {"name": "@107", "tokens": [150, 0], "index": 107},
        {"name": "@201", "tokens": [150, 235], "index": 201},
    ],
}

PERP_META = {"universe": [{"name": "BTC"}, {"name": "HYPE"}]}


class TestPaperFeed:
    def test_publish_reaches_subscribers_only(self):
        async def scenario():
            feed = PaperFeed()
            await feed.connect()
            await feed.subscribe("@107")
            feed.publish("BTC", 100_000.0)
            feed.publish("@107", 46.6)
            await feed.close()
            return [update async for update in feed.updates()]

        updates = asyncio.run(scenario())

        assert [(u.token, u.mark_price) for u in updates] == [("@107", 46.6)]

    def test_subscribe_requires_connection(self):
        with pytest.raises(FeedUnavailable):
            asyncio.run(PaperFeed().subscribe("@107"))

    def test_lookup(self):
        feed = PaperFeed(prices={"@107": 46.6})

        assert asyncio.run(feed.lookup_current_price("@107")) == 46.6
        with pytest.raises(PriceUnavailable):
            asyncio.run(feed.lookup_current_price("BTC"))

    def test_random_walk_stays_near_start(self):
        async def scenario():
            feed = PaperFeed(prices={"@107": 100.0}, tick_interval=0.01, volatility_percent=0.5)
            await feed.connect()
            await feed.subscribe("@107")
            updates = feed.updates()
            first = await asyncio.wait_for(anext(updates), timeout=2)
            await feed.close()
            return first

        first = asyncio.run(scenario())

        assert first.token == "@107"
        assert 99.5 <= first.mark_price <= 100.5


class TestStaticAssetRegistry:
    def test_case_insensitive(self):
        registry = StaticAssetRegistry({"hype": "@107"})
        assert registry.resolve_token(" Hype ") == "@107"

    def test_unknown(self):
        with pytest.raises(UnknownAsset):
            StaticAssetRegistry({}).resolve_token("HYPE")


class TestTokenCatalog:
    def test_spot_pair_wins_over_perp(self):
        catalog = build_token_catalog(SPOT_META, PERP_META)

        assert catalog["HYPE"] == "@107"
        assert catalog["PURR"] == "PURR/USDC"
        assert catalog["BTC"] == "BTC"

    def test_non_usdc_pairs_ignored(self):
        catalog = build_token_catalog(SPOT_META)
        assert "FEUSD" not in catalog
        assert "@201" not in catalog.values()

    def test_registry_fetches_once(self):
        session = MagicMock()
        responses = {"spotMeta": SPOT_META, "meta": PERP_META}

        def post(url, json, timeout):
            response = MagicMock()
            response.json.return_value = responses[json["type"]]
            return response

        session.post.side_effect = post
        registry = HyperliquidAssetRegistry(session=session)

        assert registry.resolve_token("hype") == "@107"
        assert registry.resolve_token("BTC") == "BTC"
        assert session.post.call_count == 2
        with pytest.raises(UnknownAsset):
            registry.resolve_token("NOPE")

    def test_registry_network_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(FeedUnavailable):
            HyperliquidAssetRegistry(session=session).resolve_token("HYPE")


class TestHyperliquidMessages:
    @pytest.mark.parametrize("channel", ["activeAssetCtx", "activeSpotAssetCtx"])
    def test_parse_asset_ctx(self, channel: str):
        raw = json.dumps({
            "channel": channel,
            "data": {"coin": "@107", "ctx": {"markPx": "46.584", "midPx": "46.59"}},
        })

        update = HyperliquidFeed.parse_message(raw)

        assert update.token == "@107"
        assert update.mark_price == 46.584

    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"channel": "pong"}),
        json.dumps({"channel": "subscriptionResponse", "data": {}}),
        json.dumps({"channel": "activeAssetCtx", "data": {"coin": "@107"}}),
        json.dumps({"channel": "activeAssetCtx", "data": {"coin": "@107", "ctx": {"markPx": "0"}}}),
    ])
    def test_ignored_messages(self, raw: str):
        assert HyperliquidFeed.parse_message(raw) is None

    def test_subscribe_requires_connection(self):
        with pytest.raises(FeedUnavailable):
            asyncio.run(HyperliquidFeed().subscribe("@107"))


class FakeSocket:
    """Websocket stand-in that yields messages, then drops or idles until closed."""

    def __init__(self, messages: list[str], drop: bool = False):
        self.messages = messages
        self.drop = drop
        self.sent: list[dict] = []
        self.closed = asyncio.Event()

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def close(self) -> None:
        self.closed.set()

    async def __aiter__(self):
        for message in self.messages:
            yield message
        if self.drop:
            raise ConnectionClosedError(None, None)
        await self.closed.wait()


class ScriptedFeed(HyperliquidFeed):
    """Hands out prepared sockets (or raises prepared errors) on each connect."""

    def __init__(self, sockets: list, **kwargs):
        super().__init__(session=MagicMock(), reconnect_delay=0.01, **kwargs)
        self._scripted = list(sockets)
        self.opened: list[FakeSocket] = []

    async def _open_socket(self):
        item = self._scripted.pop(0)
        if isinstance(item, Exception):
            raise item
        self.opened.append(item)
        return item


def ctx_message(coin: str, mark: str) -> str:
    return json.dumps({"channel": "activeAssetCtx", "data": {"coin": coin, "ctx": {"markPx": mark}}})


SUBSCRIBE_107 = {"method": "subscribe", "subscription": {"type": "activeAssetCtx", "coin": "@107"}}


class TestHyperliquidReconnect:
    """
    **Property 13: Feed Survives Connection Drops**

    *For any* dropped websocket, the feed reconnects, replays its
    subscriptions and keeps streaming; only close() ends the stream.
    """

    def test_reconnects_and_resubscribes(self):
        async def scenario():
            feed = ScriptedFeed([
                FakeSocket([ctx_message("@107", "46.5")], drop=True),
                FakeSocket([ctx_message("@107", "46.6")]),
            ])
            await feed.connect()
            await feed.subscribe("@107")
            updates = feed.updates()
            first = await asyncio.wait_for(anext(updates), timeout=2)
            second = await asyncio.wait_for(anext(updates), timeout=2)
            await feed.close()
            await updates.aclose()
            return feed, [first, second]

        feed, received = asyncio.run(scenario())

        assert [u.mark_price for u in received] == [46.5, 46.6]
        first_socket, second_socket = feed.opened
        assert first_socket.sent == [SUBSCRIBE_107]
        assert second_socket.sent == [SUBSCRIBE_107]
        assert feed.subscriptions == {"@107"}

    def test_retries_failed_reconnect(self):
        async def scenario():
            feed = ScriptedFeed([
                FakeSocket([], drop=True),
                OSError("connection refused"),
                FakeSocket([ctx_message("@107", "46.6")]),
            ])
            await feed.connect()
            await feed.subscribe("@107")
            updates = feed.updates()
            update = await asyncio.wait_for(anext(updates), timeout=2)
            await feed.close()
            await updates.aclose()
            return feed, update

        feed, update = asyncio.run(scenario())

        assert update.mark_price == 46.6
        assert len(feed.opened) == 2
        assert feed.opened[-1].sent == [SUBSCRIBE_107]

    def test_close_ends_stream(self):
        async def scenario():
            feed = ScriptedFeed([FakeSocket([])])
            await feed.connect()

            async def drain():
                return [update async for update in feed.updates()]

            reader = asyncio.create_task(drain())
            await asyncio.sleep(0.05)
            await feed.close()
            return await asyncio.wait_for(reader, timeout=2), feed

        received, feed = asyncio.run(scenario())

        assert received == []
        assert len(feed.opened) == 1


class TestHyperliquidLookup:
    def make(self, body):
        session = MagicMock()
        session.post.return_value.json.return_value = body
        return HyperliquidFeed(session=session)

    def test_known_token(self):
        assert asyncio.run(self.make({"@107": "46.6"}).lookup_current_price("@107")) == 46.6

    @pytest.mark.parametrize("body", [
        {"BTC": "100000"},
        {"@107": "n/a"},
        {"@107": None},
        ["46.6"],
        None,
        "error",
    ])
    def test_unusable_reply(self, body):
        with pytest.raises(PriceUnavailable):
            asyncio.run(self.make(body).lookup_current_price("@107"))
