"""Price alert commands for pricewatch CLI.

Handles creating and listing price alerts. An alert fires when the mark
price comes within the configured band of its target, then cools down.
"""

import getpass
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from pricewatch.cli.common import console, get_service, get_settings, print_error
from pricewatch.errors import StorageUnavailable, UnknownAsset


@click.command("alert")
@click.argument("symbol")
@click.argument("price", type=float)
@click.option(
    "--to", "destination",
    default="console",
    show_default=True,
    help="Notification destination (Telegram chat id when a bot token is set).",
)
@click.option(
    "--owner", "owner_key",
    default=None,
    help="Owner key recorded with the alert (default: current user).",
)
def create_alert(symbol: str, price: float, destination: str, owner_key: Optional[str]) -> None:
    """Create a price alert.

    SYMBOL is the asset symbol (e.g., HYPE, BTC).
    PRICE is the target price to watch.

    \b
    Examples:
      pricewatch alert HYPE 46.6
      pricewatch alert BTC 100000 --to 123456789
    """
    settings = get_settings()

    try:
        service = get_service(settings)
        alert = service.create_price_alert(
            owner_key or getpass.getuser(), destination, symbol, price
        )
    except UnknownAsset as e:
        print_error("Unknown Asset", f"{e}\n\nCheck the symbol, or map it under feed.tokens in your config.")
        raise SystemExit(1)
    except (ValueError, StorageUnavailable) as e:
        print_error("Error", f"Failed to create alert:\n\n{e}")
        raise SystemExit(1)

    band = settings.engine.band * 100
    console.print(Panel(
        f"[bold green]Alert Created[/bold green]\n\n"
        f"ID:          {alert.id}\n"
        f"Symbol:      {alert.symbol}\n"
        f"Token:       {alert.token}\n"
        f"Target:      {alert.target_price:g} (±{band:g}%)\n"
        f"Destination: {alert.destination}",
        title="[bold]New Alert[/bold]",
        border_style="green",
    ))


@click.command("alerts")
@click.option(
    "--to", "destination",
    default=None,
    help="Only show alerts for this destination.",
)
def list_alerts(destination: Optional[str]) -> None:
    """Display price alerts.

    \b
    Examples:
      pricewatch alerts
      pricewatch alerts --to 123456789
    """
    settings = get_settings()

    try:
        alerts = get_service(settings).list_alerts(destination)
    except StorageUnavailable as e:
        print_error("Error", f"Failed to list alerts:\n\n{e}")
        raise SystemExit(1)

    if not alerts:
        console.print(Panel(
            "[dim]No alerts set. Use 'pricewatch alert SYMBOL PRICE' to create one.[/dim]",
            title="[bold]Alerts[/bold]",
            border_style="dim",
        ))
        return

    table = Table(
        title="Price Alerts",
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("ID", style="dim", width=6)
    table.add_column("Symbol", style="bold")
    table.add_column("Token")
    table.add_column("Target", justify="right")
    table.add_column("Destination")
    table.add_column("Created", style="dim")
    table.add_column("Status", justify="center")

    for alert in alerts:
        if alert.suppressed and alert.cooldown_until is not None:
            status = f"[yellow]cooling until {alert.cooldown_until.strftime('%H:%M:%S')}[/yellow]"
        else:
            status = "[green]●[/green]"
        table.add_row(
            str(alert.id),
            alert.symbol,
            alert.token,
            f"{alert.target_price:g}",
            alert.destination,
            alert.created_at.strftime("%Y-%m-%d %H:%M"),
            status,
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(alerts)} alerts[/dim]")
