"""Base notifier interface and bounded delivery helper."""

import asyncio
import logging
from abc import ABC, abstractmethod

from pricewatch.errors import DeliveryError

logger = logging.getLogger(__name__)


class BaseNotifier(ABC):
    """Abstract base class for notification transports."""

    @abstractmethod
    def send(self, destination: str, text: str) -> None:
        """Send a message.

        Args:
            destination: Transport-specific target (chat id, channel, ...).
            text: Message body.

        Raises:
            DeliveryError: If the message could not be delivered.
        """


async def deliver(notifier: BaseNotifier, destination: str, text: str, timeout: float) -> bool:
    """Send a notification off the event loop, giving up after ``timeout`` seconds.

    Delivery failures are logged and reported through the return value; they
    never propagate, so a dead transport cannot stall alert processing.

    Returns:
        True if the message was delivered.
    """
    try:
        await asyncio.wait_for(asyncio.to_thread(notifier.send, destination, text), timeout)
    except asyncio.TimeoutError:
        logger.warning("Notification to %s timed out after %.1fs", destination, timeout)
        return False
    except DeliveryError as e:
        logger.warning("Notification to %s failed: %s", destination, e)
        return False
    except Exception:
        logger.exception("Unexpected error notifying %s", destination)
        return False
    return True
