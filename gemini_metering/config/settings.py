"""Runtime settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from gemini_metering.config.constants import DEFAULT_REVENIUM_URL, GEMINI_CONFIG_DIR


class Settings(BaseSettings):
    # Config file location
    config_dir: str = ""  # Empty = ~/.gemini

    # Metering backend
    default_endpoint: str = DEFAULT_REVENIUM_URL

    # Transport
    request_timeout_seconds: float = 30.0  # Per attempt, not per send()
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0  # Attempt n waits n * delay

    # Shell profile
    backup_retention: int = 5  # Backups kept per profile file

    # Logging
    log_level: str = "WARNING"
    audit_log_file: str = ""  # Empty = stderr only

    model_config = {
        "env_prefix": "REVENIUM_METERING_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def config_path(self) -> Path:
        """Directory holding the generated shell config files."""
        if self.config_dir:
            return Path(self.config_dir).expanduser()
        return Path.home() / GEMINI_CONFIG_DIR


@lru_cache
def get_settings() -> Settings:
    return Settings()
