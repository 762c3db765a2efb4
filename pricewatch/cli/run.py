"""Engine commands for pricewatch CLI.

Handles running the alert engine in the foreground and writing a starter
config file.
"""

import asyncio
import signal

import click
from rich.panel import Panel

from pricewatch.cli.common import (
    console,
    get_data_store,
    get_feed,
    get_notifier,
    get_settings,
    print_error,
)
from pricewatch.config import config_path, write_template_config
from pricewatch.errors import FeedUnavailable, StorageUnavailable


async def _serve(engine) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass
    await engine.run()


@click.command("run")
def run_engine() -> None:
    """Run the alert engine until interrupted.

    Watches prices for every stored alert, releases cooldowns and fires
    scheduled reports. Press Ctrl+C to stop.

    \b
    Examples:
      pricewatch run
      PRICEWATCH_CONFIG=./dev.toml pricewatch run
    """
    from pricewatch.engine import AlertEngine

    settings = get_settings()

    try:
        store = get_data_store(settings)
        stats = store.get_stats()
    except StorageUnavailable as e:
        print_error("Storage Error", str(e))
        raise SystemExit(1)

    engine = AlertEngine(store, get_feed(settings), get_notifier(settings), settings.engine)

    console.print(Panel(
        f"Feed:         {settings.feed.provider}\n"
        f"Database:     {settings.storage.db_path}\n"
        f"Price alerts: {stats['price_alerts']} ({stats['suppressed']} cooling down)\n"
        f"Cron alerts:  {stats['active_cron']} active\n"
        f"Band:         ±{settings.engine.band * 100:g}%  "
        f"Cooldown: {settings.engine.cooldown_seconds:g}s",
        title="[bold]pricewatch[/bold]",
        border_style="cyan",
    ))

    try:
        asyncio.run(_serve(engine))
    except KeyboardInterrupt:
        pass
    except StorageUnavailable as e:
        print_error("Storage Error", str(e))
        raise SystemExit(1)
    except FeedUnavailable as e:
        print_error("Feed Error", str(e))
        raise SystemExit(1)

    console.print("[dim]Stopped.[/dim]")


@click.command("init-config")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
def init_config(force: bool) -> None:
    """Write a starter config file.

    \b
    Examples:
      pricewatch init-config
      pricewatch init-config --force
    """
    path = config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config already exists at {path}. Use --force to overwrite.[/yellow]")
        return

    written = write_template_config(path)
    console.print(f"[green]✓ Wrote config to {written}[/green]")
