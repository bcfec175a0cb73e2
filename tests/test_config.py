"""Tests for configuration loading."""

import pytest

from relay_leaderboard.config import load_config

MINIMAL = """
database:
  path: data/test.db
logging:
  level: INFO
  file: logs/runs.log
  max_file_size_mb: 10
  backup_count: 5
"""


def test_minimal_config_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("RELAY_API_KEY", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL)

    config = load_config(path)

    assert config.database.path == "data/test.db"
    assert config.relay.base_url == "https://api.relay.link"
    assert config.relay.api_key is None
    assert config.sync.max_pages_per_run == 5000
    assert config.sync.max_consecutive_empty_pages == 3
    assert config.sync.checkpoint_every_pages == 50
    assert config.sync.page_delay_ms == 150
    assert config.retry.max_attempts == 3
    assert config.snapshot.top_n == 100_000
    assert config.server.page_size == 50


def test_sections_override_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("RELAY_API_KEY", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL + "sync:\n  max_pages_per_run: 10\nrelay:\n  api_key: from-file\n")

    config = load_config(path)

    assert config.sync.max_pages_per_run == 10
    assert config.sync.interval_minutes == 10
    assert config.relay.api_key == "from-file"


def test_environment_api_key_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("RELAY_API_KEY", "from-env")
    path = tmp_path / "config.yaml"
    path.write_text(MINIMAL + "relay:\n  api_key: from-file\n")

    assert load_config(path).relay.api_key == "from-env"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")
