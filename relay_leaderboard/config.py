"""Configuration loader for the Relay leaderboard service."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class RelayConfig:
    base_url: str = "https://api.relay.link"
    requests_path: str = "/requests/v2"
    timeout_seconds: float = 60.0
    api_key: str | None = None


@dataclass
class SyncConfig:
    interval_minutes: int = 10
    # Safety bounds for a single run
    max_pages_per_run: int = 5000
    max_consecutive_empty_pages: int = 3
    checkpoint_every_pages: int = 50
    # Throttle between upstream calls
    page_delay_ms: int = 150


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    backoff_multiplier: float = 2.0


@dataclass
class SnapshotConfig:
    cron_minute: int = 5
    top_n: int = 100_000


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    page_size: int = 50


@dataclass
class LoggingConfig:
    level: str
    file: str
    max_file_size_mb: int
    backup_count: int


@dataclass
class DatabaseConfig:
    path: str


@dataclass
class Config:
    database: DatabaseConfig
    logging: LoggingConfig
    relay: RelayConfig = field(default_factory=RelayConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(config_path: str | Path = "config.yaml") -> Config:
    """Load configuration from YAML file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    relay = RelayConfig(**(raw.get("relay") or {}))
    # The key is a secret; prefer the environment over the file
    env_key = os.environ.get("RELAY_API_KEY")
    if env_key:
        relay.api_key = env_key

    return Config(
        database=DatabaseConfig(**raw["database"]),
        logging=LoggingConfig(**raw["logging"]),
        relay=relay,
        sync=SyncConfig(**(raw.get("sync") or {})),
        retry=RetryConfig(**(raw.get("retry") or {})),
        snapshot=SnapshotConfig(**(raw.get("snapshot") or {})),
        server=ServerConfig(**(raw.get("server") or {})),
    )
