"""
Runtime configuration for the chat service.

Values come from the process environment first and fall back to the ``.env``
file located in the project root.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]

ENV_PATH = BASE_DIR / ".env"

# Platform-provided variables win over the .env defaults
load_dotenv(dotenv_path=ENV_PATH, override=False)


class Settings(BaseSettings):
    database_url: str = Field(..., alias="DATABASE_URL")

    app_name: str = Field(default="Campus Chat", alias="APP_NAME")
    api_version: str = Field(default="0.1.0", alias="API_VERSION")
    cors_origins: str | None = Field(default=None, alias="CORS_ORIGINS")

    # Local cache
    cache_expiry_seconds: float = Field(default=60 * 60 * 24, alias="CACHE_EXPIRY_SECONDS")
    image_cache_multiplier: int = Field(default=7, alias="IMAGE_CACHE_MULTIPLIER")

    # Messaging
    message_page_limit: int = Field(default=100, alias="MESSAGE_PAGE_LIMIT")
    chat_poll_interval_seconds: float = Field(default=10.0, alias="CHAT_POLL_INTERVAL_SECONDS")
    read_receipt_batch: int = Field(default=100, alias="READ_RECEIPT_BATCH")
    chat_read_batch: int = Field(default=50, alias="CHAT_READ_BATCH")

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
