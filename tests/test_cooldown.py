"""Tests for alert firing, cooldown suppression and notification delivery.

**Feature: price-alerts**
"""

import asyncio
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from pricewatch.db.store import AlertStore
from pricewatch.engine.cooldown import CooldownManager, format_price_alert
from pricewatch.errors import DeliveryError
from pricewatch.notifiers.base import BaseNotifier, deliver
from pricewatch.notifiers.telegram import TelegramNotifier

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class RecordingNotifier(BaseNotifier):
    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def send(self, destination: str, text: str) -> None:
        self.sent.append((destination, text))


class FailingNotifier(BaseNotifier):
    def send(self, destination: str, text: str) -> None:
        raise DeliveryError("chat unreachable")


class CrashingNotifier(BaseNotifier):
    def send(self, destination: str, text: str) -> None:
        raise ConnectionResetError("connection reset by peer")


class SlowNotifier(BaseNotifier):
    def send(self, destination: str, text: str) -> None:
        time.sleep(0.5)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield AlertStore(Path(tmpdir) / "test.db")


class TestFire:
    """
    **Property 7: Fire Then Suppress**

    *For any* fired alert, the destination is notified and the alert is
    suppressed until ``now + window``, whether or not delivery succeeded.
    """

    def test_fire_notifies_and_suppresses(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        notifier = RecordingNotifier()
        manager = CooldownManager(temp_db, notifier)

        delivered = asyncio.run(manager.fire(alert, T0, mark_price=46.584))

        assert delivered is True
        assert notifier.sent == [("chat-1", "🔔 Price Alert: HYPE is at 46.584 (target 46.6)")]
        fetched = temp_db.get_price_alert(alert.id)
        assert fetched.suppressed is True
        assert fetched.cooldown_until == T0 + timedelta(seconds=60)

    def test_failed_delivery_still_suppresses(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        manager = CooldownManager(temp_db, FailingNotifier())

        delivered = asyncio.run(manager.fire(alert, T0))

        assert delivered is False
        assert temp_db.get_price_alert(alert.id).suppressed is True

    def test_crashing_transport_still_suppresses(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        manager = CooldownManager(temp_db, CrashingNotifier())

        delivered = asyncio.run(manager.fire(alert, T0))

        assert delivered is False
        fetched = temp_db.get_price_alert(alert.id)
        assert fetched.suppressed is True
        assert fetched.cooldown_until == T0 + timedelta(seconds=60)

    def test_custom_window(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        manager = CooldownManager(temp_db, RecordingNotifier(), window=timedelta(minutes=5))

        asyncio.run(manager.fire(alert, T0))

        assert temp_db.get_price_alert(alert.id).cooldown_until == T0 + timedelta(minutes=5)

    def test_sweep_releases_after_window(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        manager = CooldownManager(temp_db, RecordingNotifier())
        asyncio.run(manager.fire(alert, T0))

        assert manager.sweep(T0 + timedelta(seconds=30)) == 0
        assert manager.sweep(T0 + timedelta(seconds=61)) == 1
        assert temp_db.get_price_alert(alert.id).suppressed is False

    def test_format_without_price(self, temp_db: AlertStore):
        alert = temp_db.create_price_alert("o", "chat-1", "HYPE", "@107", 46.6, now=T0)
        assert format_price_alert(alert) == "🔔 Price Alert: HYPE target 46.6 reached"


class TestDeliver:
    def test_delivery_error_reported(self):
        assert asyncio.run(deliver(FailingNotifier(), "chat", "hi", timeout=1.0)) is False

    def test_unexpected_error_reported(self):
        assert asyncio.run(deliver(CrashingNotifier(), "chat", "hi", timeout=1.0)) is False

    def test_timeout_reported(self):
        assert asyncio.run(deliver(SlowNotifier(), "chat", "hi", timeout=0.05)) is False

    def test_success(self):
        notifier = RecordingNotifier()
        assert asyncio.run(deliver(notifier, "chat", "hi", timeout=1.0)) is True
        assert notifier.sent == [("chat", "hi")]


class TestTelegramNotifier:
    def make(self, response):
        session = MagicMock()
        session.post.return_value = response
        return TelegramNotifier("123:abc", session=session), session

    def test_send_posts_chat_and_text(self):
        response = MagicMock()
        response.json.return_value = {"ok": True}
        notifier, session = self.make(response)

        notifier.send("42", "hello")

        url = session.post.call_args.args[0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"
        assert session.post.call_args.kwargs["json"] == {"chat_id": "42", "text": "hello"}

    def test_rejected_message(self):
        response = MagicMock()
        response.json.return_value = {"ok": False, "description": "chat not found"}
        notifier, _ = self.make(response)

        with pytest.raises(DeliveryError, match="chat not found"):
            notifier.send("42", "hello")

    def test_non_json_body(self):
        response = MagicMock()
        response.json.side_effect = ValueError("Expecting value: line 1 column 1")
        notifier, _ = self.make(response)

        with pytest.raises(DeliveryError, match="non-JSON"):
            notifier.send("42", "hello")

    def test_non_object_body(self):
        response = MagicMock()
        response.json.return_value = ["ok"]
        notifier, _ = self.make(response)

        with pytest.raises(DeliveryError, match="unexpected body"):
            notifier.send("42", "hello")

    def test_network_error(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        notifier = TelegramNotifier("123:abc", session=session)

        with pytest.raises(DeliveryError):
            notifier.send("42", "hello")

    def test_missing_token(self):
        with pytest.raises(ValueError):
            TelegramNotifier("")
