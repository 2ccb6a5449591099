"""Application configuration via Pydantic Settings."""

import re
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"

_TOKEN_PATTERN = re.compile(r"^\d+:[A-Za-z0-9_-]+$")


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file.

    ``telegram_token`` and ``group_id`` have no defaults: the process refuses
    to start without them.
    """

    # Telegram
    telegram_token: str
    group_id: int
    telegram_api_base: str = "https://api.telegram.org"

    # Inbound updates: webhook when a public URL is set, long polling otherwise
    webhook_url: str = ""
    webhook_secret: str = ""
    polling_timeout_seconds: int = 30

    # Database
    database_url: str = "sqlite+aiosqlite:///./groupgate.db"

    # Dialogue
    session_ttl_seconds: int = 900
    session_sweep_seconds: int = 60
    default_greeting: str = "Hello! To join the group, please introduce yourself."

    # General
    debug: bool = False

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("telegram_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        value = value.strip()
        if not _TOKEN_PATTERN.match(value):
            raise ValueError("TELEGRAM_TOKEN must look like '<bot id>:<secret>'")
        return value

    @field_validator("group_id")
    @classmethod
    def _check_group_id(cls, value: int) -> int:
        if value == 0:
            raise ValueError("GROUP_ID must be a non-zero chat id")
        return value

    @field_validator("session_ttl_seconds", "session_sweep_seconds")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive number of seconds")
        return value

    @property
    def use_polling(self) -> bool:
        """Long polling is used when no public webhook URL is configured."""
        return not self.webhook_url


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
