"""Telegram Bot API notifier."""

import requests

from pricewatch.errors import DeliveryError
from pricewatch.notifiers.base import BaseNotifier


class TelegramNotifier(BaseNotifier):
    """Delivers notifications to Telegram chats.

    The destination is the numeric chat id the alert was created from.
    """

    API_URL = "https://api.telegram.org/bot{token}/sendMessage"

    def __init__(self, bot_token: str, timeout: float = 10.0, session: requests.Session | None = None):
        """Initialize the notifier.

        Args:
            bot_token: Token issued by BotFather.
            timeout: HTTP timeout in seconds.
            session: Optional requests session (reused across sends).
        """
        if not bot_token:
            raise ValueError("Telegram bot token is not set")
        self._url = self.API_URL.format(token=bot_token)
        self._timeout = timeout
        self._session = session or requests.Session()

    def send(self, destination: str, text: str) -> None:
        payload = {"chat_id": destination, "text": text}
        try:
            response = self._session.post(self._url, json=payload, timeout=self._timeout)
            response.raise_for_status()
            body = response.json()
        except requests.HTTPError as exc:
            raise DeliveryError(
                f"Telegram returned error {response.status_code}: {response.text}"
            ) from exc
        except requests.RequestException as exc:
            raise DeliveryError(f"Failed to send Telegram message: {exc}") from exc
        except ValueError as exc:
            raise DeliveryError(f"Telegram returned a non-JSON body: {exc}") from exc

        if not isinstance(body, dict):
            raise DeliveryError(f"Telegram returned an unexpected body: {body!r}")
        if not body.get("ok", False):
            raise DeliveryError(f"Telegram rejected message: {body.get('description', body)}")
