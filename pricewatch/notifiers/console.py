"""Console notifier that prints alerts with rich."""

from datetime import datetime

from rich.console import Console
from rich.panel import Panel

from pricewatch.notifiers.base import BaseNotifier


class ConsoleNotifier(BaseNotifier):
    """Prints notifications to the terminal.

    Used with the paper feed and whenever no chat transport is configured.
    """

    def __init__(self, console: Console | None = None):
        self._console = console or Console()

    def send(self, destination: str, text: str) -> None:
        self._console.print(Panel(
            text,
            title=f"[bold]{destination}[/bold]",
            subtitle=f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim]",
            border_style="cyan",
        ))
