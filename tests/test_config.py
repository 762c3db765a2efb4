"""Tests for configuration loading."""

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

from pricewatch.config import EngineSettings, load_settings, write_template_config


@pytest.fixture
def config_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, config_dir: Path, monkeypatch):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        settings = load_settings(config_dir / "absent.toml")

        assert settings.engine.cooldown_seconds == 60
        assert settings.engine.band == 0.05
        assert settings.engine.sweep_interval == 5
        assert settings.engine.cron_poll_interval == 60
        assert settings.feed.provider == "paper"
        assert settings.telegram.bot_token == ""

    def test_partial_file(self, config_dir: Path):
        path = config_dir / "config.toml"
        path.write_text(
            '[engine]\ncooldown_seconds = 120\n\n'
            '[feed]\nprovider = "hyperliquid"\n\n'
            '[storage]\ndb_path = "~/alerts.db"\n'
        )

        settings = load_settings(path)

        assert settings.engine.cooldown_window == timedelta(seconds=120)
        assert settings.engine.band == 0.05
        assert settings.feed.provider == "hyperliquid"
        assert settings.storage.db_path == Path("~/alerts.db").expanduser()

    def test_env_token_overrides_file(self, config_dir: Path, monkeypatch):
        path = config_dir / "config.toml"
        path.write_text('[telegram]\nbot_token = "from-file"\n')
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "from-env")

        assert load_settings(path).telegram.bot_token == "from-env"

    @pytest.mark.parametrize("content", [
        "[engine\nband = 0.05",
        "[engine]\nband = 1.5\n",
        '[feed]\nprovider = "binance"\n',
    ])
    def test_invalid_config(self, config_dir: Path, content: str):
        path = config_dir / "config.toml"
        path.write_text(content)

        with pytest.raises(ValueError):
            load_settings(path)

    def test_template_round_trip(self, config_dir: Path, monkeypatch):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        path = write_template_config(config_dir / "nested" / "config.toml")

        settings = load_settings(path)

        assert settings.engine == EngineSettings()
        assert settings.feed.tokens == {"HYPE": "@107"}
