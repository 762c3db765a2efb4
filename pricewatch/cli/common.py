"""Shared wiring for CLI commands: settings, store, feed and notifier."""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from pricewatch.config import Settings, load_settings

console = Console()

_logging_configured = False


def configure_logging(level: str) -> None:
    """Route log records through rich, once per process."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )
    _logging_configured = True


def print_error(title: str, message: str) -> None:
    console.print(Panel(
        f"[red]{escape(message)}[/red]",
        title=f"[bold red]{title}[/bold red]",
        border_style="red",
    ))


def get_settings() -> Settings:
    """Load settings and set up logging, exiting with a panel on bad config."""
    try:
        settings = load_settings()
    except ValueError as e:
        print_error("Configuration Error", str(e))
        raise SystemExit(1)
    configure_logging(settings.logging.level)
    return settings


def get_data_store(settings: Settings):
    """Get the alert store instance."""
    from pricewatch.db.store import AlertStore

    return AlertStore(settings.storage.db_path)


def get_registry(settings: Settings):
    """Get the asset registry for the configured feed provider."""
    if settings.feed.provider == "hyperliquid":
        from pricewatch.feeds.hyperliquid import HyperliquidAssetRegistry

        return HyperliquidAssetRegistry()

    from pricewatch.feeds.paper import StaticAssetRegistry

    return StaticAssetRegistry(settings.feed.tokens)


def get_feed(settings: Settings):
    """Get the market-data feed for the configured provider."""
    if settings.feed.provider == "hyperliquid":
        from pricewatch.feeds.hyperliquid import HyperliquidFeed

        return HyperliquidFeed()

    from pricewatch.feeds.paper import PaperFeed

    return PaperFeed(prices=settings.feed.prices, tick_interval=settings.feed.tick_interval)


def get_notifier(settings: Settings):
    """Telegram when a bot token is configured, otherwise the console."""
    if settings.telegram.bot_token:
        from pricewatch.notifiers.telegram import TelegramNotifier

        return TelegramNotifier(settings.telegram.bot_token, timeout=settings.engine.notify_timeout)

    from pricewatch.notifiers.console import ConsoleNotifier

    return ConsoleNotifier(console)


def get_service(settings: Settings):
    from pricewatch.service import AlertService

    return AlertService(get_data_store(settings), get_registry(settings))
