"""Configuration management for streamnotes."""

import json
import os
from pathlib import Path
from typing import Literal, Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from streamnotes.utils import default_data_dir, setup_logging


CONFIG_FILE_NAME = "config.json"
DATABASE_NAME = "streamnotes.db"
DEFAULT_STORAGE_KEY = "streamnotes_fs_data"

Environment = Literal["test", "dev", "user"]


class StreamNotesConfig(BaseSettings):
    """Pydantic model for streamnotes global configuration."""

    env: Environment = Field(default="dev", description="Environment name")

    # overridden by ~/.streamnotes/config.json
    log_level: str = "INFO"

    storage_key: str = Field(
        default=DEFAULT_STORAGE_KEY,
        description="Key under which the persisted-mode document is stored",
    )

    database_path: Optional[Path] = Field(
        default=None,
        description="SQLite file backing the key-value store. Defaults to <config dir>/streamnotes.db",
    )

    save_delay_ms: int = Field(
        default=0,
        description="Milliseconds to debounce persisted-mode saves after a change. 0 saves immediately.",
        ge=0,
    )

    asset_debounce_ms: int = Field(
        default=50,
        description="Milliseconds to wait before recomputing the active note's assets",
        ge=0,
    )

    large_upload_bytes: int = Field(
        default=1024 * 1024,
        description="Persisted-mode uploads larger than this produce a quota warning",
        gt=0,
    )

    skip_hidden_entries: bool = Field(
        default=True,
        description="Skip entries whose name starts with a dot when scanning a folder",
    )

    seed_demo_data: bool = Field(
        default=True,
        description="Populate an empty persisted store with the demo notes on first load",
    )

    sidebar_open_default: bool = Field(
        default=True,
        description="Initial sidebar toggle when no document has been saved yet",
    )

    model_config = SettingsConfigDict(
        env_prefix="STREAMNOTES_",
        extra="ignore",
    )

    @property
    def is_test_env(self) -> bool:
        """Check if running in a test environment."""
        return (
            self.env == "test"
            or os.getenv("STREAMNOTES_ENV", "").lower() == "test"
            or os.getenv("PYTEST_CURRENT_TEST") is not None
        )

    @property
    def data_dir_path(self) -> Path:
        """Get app state directory for config, logs and the default store."""
        return default_data_dir()

    @property
    def store_path(self) -> Path:
        """Resolved path of the SQLite key-value store."""
        if self.database_path is not None:
            return Path(self.database_path)
        return self.data_dir_path / DATABASE_NAME


# Module-level cache for configuration
_CONFIG_CACHE: Optional[StreamNotesConfig] = None


class ConfigManager:
    """Manages streamnotes configuration."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = config_dir or default_data_dir()
        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config(self) -> StreamNotesConfig:
        """Get configuration, loading it lazily if needed."""
        return self.load_config()

    def load_config(self) -> StreamNotesConfig:
        """Load configuration from file or create default.

        Environment variables take precedence over file config values.
        """
        global _CONFIG_CACHE

        if _CONFIG_CACHE is not None:
            return _CONFIG_CACHE

        if self.config_file.exists():
            try:
                file_data = json.loads(self.config_file.read_text(encoding="utf-8"))

                env_config = StreamNotesConfig()
                env_dict = env_config.model_dump()

                # File data as base; fields set through env vars win
                merged_data = file_data.copy()
                for field_name in StreamNotesConfig.model_fields.keys():
                    env_var_name = f"STREAMNOTES_{field_name.upper()}"
                    if env_var_name in os.environ:
                        merged_data[field_name] = env_dict[field_name]

                _CONFIG_CACHE = StreamNotesConfig(**merged_data)
                return _CONFIG_CACHE
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON in config file {self.config_file}: {e}")
                raise SystemExit(
                    f"Error: config file is not valid JSON: {self.config_file}\n"
                    f"  {e}\n"
                    f"Fix or delete the file and re-run."
                )
        else:
            config = StreamNotesConfig()
            self.save_config(config)
            return config

    def save_config(self, config: StreamNotesConfig) -> None:
        """Write ``config`` as JSON and drop the cached copy."""
        global _CONFIG_CACHE
        payload = json.dumps(config.model_dump(mode="json"), indent=2)
        try:
            self.config_file.write_text(payload, encoding="utf-8")
        except OSError as e:  # pragma: no cover
            logger.error(f"Failed to save config to {self.config_file}: {e}")
        _CONFIG_CACHE = None


def init_cli_logging() -> None:  # pragma: no cover
    """Initialize logging for CLI commands - file only.

    CLI commands should not log to stdout to avoid interfering with
    command output.
    """
    log_level = os.getenv("STREAMNOTES_LOG_LEVEL", "INFO")
    setup_logging(log_level=log_level, log_to_file=True)
