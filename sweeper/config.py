"""Configuration with JSON file, config.yml, and env variable support."""

import json
import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sweeper.enums import IdleSourceKind

logger = logging.getLogger(__name__)

ENV_PREFIX = "SWEEPER_"


def _find_repo_root(*, start: Path) -> Path:
    """Best-effort repository root discovery.

    First directory containing ``pyproject.toml``, otherwise the current
    working directory.
    """
    try:
        start = start.resolve()
        for p in [start, *start.parents]:
            if (p / "pyproject.toml").exists():
                return p
    except OSError:
        pass

    return Path.cwd()


def _load_yaml_mapping(path: Path) -> dict:
    """Load a YAML file that must contain a mapping; anything else is ignored."""
    if not path.exists() or not path.is_file():
        return {}

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping at top level", path)
        return {}
    return data


class SweeperConfig(BaseSettings):
    """Scheduler service configuration.

    Load order (later overrides earlier):
    1. config.json - base configuration
    2. config.yml - local overrides
    3. Environment variables - runtime overrides

    Prefix: SWEEPER_ (e.g., SWEEPER_POLL_INTERVAL_SECONDS)
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database settings
    database_url: str = Field(default="sqlite+aiosqlite:///./sweeper.db")
    auto_create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup instead of requiring alembic",
    )

    # Scheduling settings
    timezone: str = Field(
        default="UTC",
        description="Timezone for wall-clock schedule times (e.g., 'Europe/Berlin')",
    )
    poll_interval_seconds: float = Field(default=30, gt=0)
    startup_delay_seconds: float = Field(default=30, ge=0)
    startup_min_interval_minutes: int = Field(default=60, ge=0)

    # Execution history retention (None disables that limit)
    log_retention_max_entries: int | None = Field(default=100, gt=0)
    log_retention_days: int | None = Field(default=90, gt=0)

    # Idle detection
    idle_source: IdleSourceKind = Field(default=IdleSourceKind.NONE)

    # Event stream
    event_queue_size: int = Field(default=256, gt=0)

    # HTTP API settings
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8765, gt=0, lt=65536)

    # Logging
    log_level: str = Field(default="INFO")

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_json_file(
        cls,
        config_path: str = "config.json",
        yaml_path: str | None = None,
    ) -> "SweeperConfig":
        """Load config from JSON + config.yml with env var overrides.

        Args:
            config_path: Path to JSON config file.
            yaml_path: Path to YAML overlay; defaults to ``config.yml`` at
                the repository root.

        Returns:
            Configured SweeperConfig instance.
        """
        config_data: dict = {}

        json_path = Path(config_path)
        if json_path.exists():
            with open(json_path) as f:
                config_data = json.load(f)

        # Precedence: config.json < config.yml < env
        if yaml_path is None:
            yml = _find_repo_root(start=Path(__file__)) / "config.yml"
        else:
            yml = Path(yaml_path)
        config_data.update(_load_yaml_mapping(yml))

        # Drop file values shadowed by env vars so pydantic-settings applies them
        for key in list(config_data):
            if f"{ENV_PREFIX}{key.upper()}" in os.environ:
                del config_data[key]

        return cls(**config_data)
