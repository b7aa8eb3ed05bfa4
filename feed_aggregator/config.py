"""Configuration for feed_aggregator.

Settings are read from the process environment once at startup. A ``.env``
file in the working directory is loaded first if present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _default_db_path() -> str:
    return str(Path.home() / ".feed_aggregator" / "feed_aggregator.db")


@dataclass
class ServerConfig:
    """Server and worker configuration."""

    name: str = "feed_aggregator"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080
    db_path: str = field(default_factory=_default_db_path)
    fetch_interval: float = 60.0
    fetch_batch_size: int = 10
    fetch_timeout: float = 30.0


def _positive(name: str, raw: Optional[str], default, cast):
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {raw!r}")
    return value


def load_config() -> ServerConfig:
    """Build a ServerConfig from environment variables.

    Returns:
        ServerConfig populated from PORT, HOST, DB_PATH, LOG_LEVEL,
        FETCH_INTERVAL_SECONDS, FETCH_BATCH_SIZE and FETCH_TIMEOUT_SECONDS

    Raises:
        ValueError: If a numeric variable is unparseable or below 1
    """
    load_dotenv()

    defaults = ServerConfig()
    return ServerConfig(
        log_level=os.environ.get("LOG_LEVEL", defaults.log_level).upper(),
        host=os.environ.get("HOST", defaults.host),
        port=_positive("PORT", os.environ.get("PORT"), defaults.port, int),
        db_path=os.environ.get("DB_PATH") or defaults.db_path,
        fetch_interval=_positive(
            "FETCH_INTERVAL_SECONDS",
            os.environ.get("FETCH_INTERVAL_SECONDS"),
            defaults.fetch_interval,
            float,
        ),
        fetch_batch_size=_positive(
            "FETCH_BATCH_SIZE",
            os.environ.get("FETCH_BATCH_SIZE"),
            defaults.fetch_batch_size,
            int,
        ),
        fetch_timeout=_positive(
            "FETCH_TIMEOUT_SECONDS",
            os.environ.get("FETCH_TIMEOUT_SECONDS"),
            defaults.fetch_timeout,
            float,
        ),
    )


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
