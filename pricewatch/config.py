"""Configuration for pricewatch.

Settings are read from ``~/.config/pricewatch/config.toml`` (or the file
named by ``PRICEWATCH_CONFIG``). Every key is optional; missing sections fall
back to the defaults below.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Literal, Optional

import toml
from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "pricewatch"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = DEFAULT_CONFIG_DIR / "alerts.db"


class EngineSettings(BaseModel):
    """Timing and matching parameters of the alert engine."""

    cooldown_seconds: float = Field(default=60.0, gt=0, description="Suppression window after a price alert fires")
    band: float = Field(default=0.05, gt=0, lt=1, description="Relative half-width of the price match band")
    sweep_interval: float = Field(default=5.0, gt=0, description="Seconds between cooldown sweeps")
    cron_poll_interval: float = Field(default=60.0, gt=0, description="Seconds between cron polls")
    notify_timeout: float = Field(default=10.0, gt=0, description="Seconds before a send is treated as failed")
    max_backoff: float = Field(default=300.0, gt=0, description="Upper bound on storage retry delay")
    auto_subscribe: bool = Field(
        default=False, description="Subscribe to tokens of alerts created after startup"
    )

    model_config = {"frozen": True}

    @property
    def cooldown_window(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)


class StorageSettings(BaseModel):
    db_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite database file")

    model_config = {"frozen": True}

    @field_validator("db_path", mode="after")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()


class FeedSettings(BaseModel):
    provider: Literal["paper", "hyperliquid"] = Field(default="paper", description="Market-data source")
    prices: dict[str, float] = Field(default_factory=dict, description="Paper feed starting prices by token")
    tokens: dict[str, str] = Field(default_factory=dict, description="Paper registry symbol -> token map")
    tick_interval: float = Field(default=1.0, gt=0, description="Paper feed seconds between ticks")

    model_config = {"frozen": True}


class TelegramSettings(BaseModel):
    bot_token: str = Field(default="", description="Bot API token; empty prints to the console")

    model_config = {"frozen": True}


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Root log level")

    model_config = {"frozen": True}


class Settings(BaseModel):
    """Complete pricewatch configuration."""

    engine: EngineSettings = Field(default_factory=EngineSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {"frozen": True}


def config_path() -> Path:
    """Path of the active config file."""
    override = os.environ.get("PRICEWATCH_CONFIG")
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from a TOML file.

    A missing file yields the defaults. ``TELEGRAM_BOT_TOKEN`` overrides the
    token from the file.

    Args:
        path: Config file, defaults to :func:`config_path`.

    Raises:
        ValueError: If the file is not valid TOML or holds invalid values.
    """
    path = path or config_path()
    data: dict = {}
    if path.exists():
        try:
            data = toml.load(path)
        except toml.TomlDecodeError as e:
            raise ValueError(f"Cannot parse {path}: {e}") from e

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {path}:\n{e}") from e

    env_token = os.environ.get("TELEGRAM_BOT_TOKEN")
    if env_token:
        settings = settings.model_copy(update={"telegram": TelegramSettings(bot_token=env_token)})
    return settings


def write_template_config(path: Optional[Path] = None) -> Path:
    """Write a template config with every default spelled out.

    Returns:
        The path written.
    """
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    template = {
        "engine": EngineSettings().model_dump(),
        "storage": {"db_path": str(DEFAULT_DB_PATH)},
        "feed": {
            "provider": "paper",
            "tick_interval": 1.0,
            "prices": {"@107": 46.6},
            "tokens": {"HYPE": "@107"},
        },
        "telegram": {"bot_token": ""},  # Leave empty to use TELEGRAM_BOT_TOKEN env var
        "logging": {"level": "INFO"},
    }
    with open(path, "w") as f:
        toml.dump(template, f)
    return path
