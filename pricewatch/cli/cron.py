"""Cron alert commands for pricewatch CLI.

Handles creating, listing, deactivating and deleting recurring price
reports driven by cron schedules (evaluated in UTC).
"""

from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from pricewatch.cli.common import console, get_service, get_settings, print_error
from pricewatch.engine.cron import build_cron_expression
from pricewatch.errors import InvalidSchedule, NotFound, StorageUnavailable, UnknownAsset


@click.command("cron-alert")
@click.argument("symbol")
@click.argument("expression", required=False)
@click.option(
    "--every", "frequency",
    default=None,
    help="Shorthand frequency: hourly, daily, weekdays, weekends or a weekday name.",
)
@click.option(
    "--at", "at",
    default=None,
    help="Time of day for --every, HH:MM in UTC (MM for hourly).",
)
@click.option(
    "--to", "destination",
    default="console",
    show_default=True,
    help="Notification destination (Telegram chat id when a bot token is set).",
)
def create_cron_alert(
    symbol: str,
    expression: Optional[str],
    frequency: Optional[str],
    at: Optional[str],
    destination: str,
) -> None:
    """Create a recurring price report.

    SYMBOL is the asset symbol. EXPRESSION is a 5-field cron expression;
    alternatively use --every with --at.

    \b
    Examples:
      pricewatch cron-alert HYPE "*/15 * * * *"
      pricewatch cron-alert HYPE --every daily --at 09:30
      pricewatch cron-alert BTC --every mon --at 08:00 --to 123456789
    """
    settings = get_settings()

    try:
        if expression is None:
            if frequency is None or at is None:
                raise click.UsageError("Give a cron EXPRESSION or both --every and --at.")
            expression = build_cron_expression(frequency, at)
        elif frequency is not None or at is not None:
            raise click.UsageError("Use either EXPRESSION or --every/--at, not both.")

        alert = get_service(settings).create_cron_alert(destination, symbol, expression)
    except InvalidSchedule as e:
        print_error("Invalid Schedule", str(e))
        raise SystemExit(1)
    except UnknownAsset as e:
        print_error("Unknown Asset", f"{e}\n\nCheck the symbol, or map it under feed.tokens in your config.")
        raise SystemExit(1)
    except StorageUnavailable as e:
        print_error("Error", f"Failed to create cron alert:\n\n{e}")
        raise SystemExit(1)

    console.print(Panel(
        f"[bold green]Cron Alert Created[/bold green]\n\n"
        f"ID:           {alert.id}\n"
        f"Symbol:       {alert.symbol}\n"
        f"Token:        {alert.token}\n"
        f"Schedule:     {alert.cron_expression}\n"
        f"Next trigger: {alert.next_trigger_at.strftime('%Y-%m-%d %H:%M:%S')} UTC\n"
        f"Destination:  {alert.destination}",
        title="[bold]New Cron Alert[/bold]",
        border_style="green",
    ))


@click.command("cron-alerts")
@click.option(
    "--to", "destination",
    default=None,
    help="Only show alerts for this destination.",
)
@click.option(
    "--deactivate", "deactivate_id",
    type=int,
    default=None,
    help="Stop scheduling the cron alert with this ID (kept for history).",
)
@click.option(
    "--delete", "delete_id",
    type=int,
    default=None,
    help="Delete the cron alert with this ID.",
)
def list_cron_alerts(
    destination: Optional[str],
    deactivate_id: Optional[int],
    delete_id: Optional[int],
) -> None:
    """Display or manage cron alerts.

    Shows all active cron alerts. Use --deactivate or --delete to remove one.

    \b
    Examples:
      pricewatch cron-alerts
      pricewatch cron-alerts --deactivate 3
      pricewatch cron-alerts --delete 3
    """
    settings = get_settings()

    try:
        service = get_service(settings)

        if deactivate_id is not None:
            alert = service.deactivate_cron_alert(deactivate_id)
            console.print(f"[green]✓ Deactivated cron alert {alert.id} ({alert.symbol}: {alert.cron_expression})[/green]")
            return

        if delete_id is not None:
            alert = service.delete_cron_alert(delete_id)
            console.print(f"[green]✓ Deleted cron alert {alert.id} ({alert.symbol}: {alert.cron_expression})[/green]")
            return

        alerts = service.list_cron_alerts(destination)
    except NotFound as e:
        console.print(f"[yellow]{e}[/yellow]")
        return
    except StorageUnavailable as e:
        print_error("Error", f"Failed to access cron alerts:\n\n{e}")
        raise SystemExit(1)

    if not alerts:
        console.print(Panel(
            "[dim]No cron alerts set. Use 'pricewatch cron-alert SYMBOL EXPRESSION' to create one.[/dim]",
            title="[bold]Cron Alerts[/bold]",
            border_style="dim",
        ))
        return

    table = Table(
        title="Cron Alerts",
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("ID", style="dim", width=6)
    table.add_column("Symbol", style="bold")
    table.add_column("Schedule")
    table.add_column("Destination")
    table.add_column("Last", style="dim")
    table.add_column("Next (UTC)")

    for alert in alerts:
        last = alert.last_triggered_at.strftime("%Y-%m-%d %H:%M") if alert.last_triggered_at else "-"
        table.add_row(
            str(alert.id),
            alert.symbol,
            alert.cron_expression,
            alert.destination,
            last,
            alert.next_trigger_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(alerts)} cron alerts[/dim]")
