"""Main CLI entry point for pricewatch.

This module provides the main click group and lazy loading
of command modules to keep startup fast.
"""

import importlib

import click


class LazyGroup(click.Group):
    """A click Group that lazily loads commands.

    Command modules (and the feed/notifier stacks they pull in) are only
    imported when the command is actually invoked.
    """

    def __init__(self, *args, lazy_subcommands: dict[str, str] | None = None, **kwargs):
        """Initialize the lazy group.

        Args:
            lazy_subcommands: Mapping of command names to module paths.
        """
        super().__init__(*args, **kwargs)
        self._lazy_subcommands = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """List all available commands."""
        base = super().list_commands(ctx)
        lazy = list(self._lazy_subcommands.keys())
        return sorted(set(base + lazy))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get a command by name, lazily loading if needed."""
        if cmd_name in self.commands:
            return self.commands[cmd_name]

        if cmd_name in self._lazy_subcommands:
            return self._lazy_load(cmd_name)

        return None

    def _lazy_load(self, cmd_name: str) -> click.Command:
        """Lazily load a command from its module path."""
        module_path = self._lazy_subcommands[cmd_name]
        module = importlib.import_module(module_path)

        cmd = None
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if isinstance(attr, click.Command) and attr.name == cmd_name:
                cmd = attr
                break

        if cmd is None:
            raise click.ClickException(f"Could not find command '{cmd_name}' in {module_path}")

        self.add_command(cmd)
        return cmd


LAZY_SUBCOMMANDS = {
    # Price alerts
    "alert": "pricewatch.cli.alerts",
    "alerts": "pricewatch.cli.alerts",
    # Cron alerts
    "cron-alert": "pricewatch.cli.cron",
    "cron-alerts": "pricewatch.cli.cron",
    # Engine
    "run": "pricewatch.cli.run",
    "init-config": "pricewatch.cli.run",
}


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_SUBCOMMANDS, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="pricewatch")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """pricewatch - price band and scheduled alerts for market tokens.

    \b
    Quick Start:
      pricewatch init-config           # Write ~/.config/pricewatch/config.toml
      pricewatch alert HYPE 46.6       # Alert when HYPE trades near 46.6
      pricewatch cron-alert HYPE "0 9 * * *"
      pricewatch run                   # Start the alert engine
    """
    ctx.ensure_object(dict)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
