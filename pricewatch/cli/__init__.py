"""CLI commands for pricewatch.

This package provides the command-line interface for managing price and
cron alerts and running the alert engine.
"""

from pricewatch.cli.main import cli, main

__all__ = ["cli", "main"]
