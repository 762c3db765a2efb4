"""Base market-data interfaces for pricewatch."""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from pricewatch.models import PriceUpdate


class BasePriceFeed(ABC):
    """Abstract base class for market-data feeds.

    All feed implementations (Hyperliquid, paper, etc.) must inherit from
    this class. A feed pushes mark prices for subscribed tokens through
    :meth:`updates` and answers one-off price lookups.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the feed connection.

        Raises:
            FeedUnavailable: If the feed cannot be reached.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the feed connection and release its resources."""

    @abstractmethod
    async def subscribe(self, token: str) -> None:
        """Start receiving price updates for a token.

        Raises:
            FeedUnavailable: If the subscription cannot be established.
        """

    @abstractmethod
    async def unsubscribe(self, token: str) -> None:
        """Stop receiving price updates for a token."""

    @abstractmethod
    def updates(self) -> AsyncIterator[PriceUpdate]:
        """Stream of price updates for all subscribed tokens.

        The stream ends only when the feed is closed or the connection is
        lost for good.
        """

    @abstractmethod
    async def lookup_current_price(self, token: str) -> float:
        """Get the latest price for a token, subscribed or not.

        Raises:
            PriceUnavailable: If no price is known for the token.
        """

    @property
    @abstractmethod
    def subscriptions(self) -> set[str]:
        """Tokens currently subscribed."""


class BaseAssetRegistry(ABC):
    """Maps user-entered symbols to feed tokens."""

    @abstractmethod
    def resolve_token(self, symbol: str) -> str:
        """Resolve a symbol to its token.

        Args:
            symbol: Symbol as typed by a user (e.g., HYPE).

        Returns:
            Feed token identifier.

        Raises:
            UnknownAsset: If the symbol is not listed.
        """
