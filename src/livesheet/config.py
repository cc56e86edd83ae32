"""Configuration using pydantic-settings.

Values come from ``LIVESHEET_*`` environment variables or a ``.env`` file.
Everything has a working default, credentials are only read by the CLI.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library and CLI settings.

    Environment variables:
    - LIVESHEET_SHEETS_API_BASE: Sheets API v4 spreadsheets endpoint
    - LIVESHEET_DRIVE_API_BASE: Drive API v3 files endpoint (permissions, delete)
    - LIVESHEET_TIMEOUT: HTTP timeout in seconds
    - LIVESHEET_LOG_LEVEL / LIVESHEET_LOG_JSON: logging setup for the CLI
    - LIVESHEET_ACCESS_TOKEN / LIVESHEET_API_KEY: CLI credentials
    """

    model_config = SettingsConfigDict(
        env_prefix="LIVESHEET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    sheets_api_base: str = "https://sheets.googleapis.com/v4/spreadsheets"
    drive_api_base: str = "https://www.googleapis.com/drive/v3/files"
    timeout: int = 60

    log_level: str = "WARNING"
    log_json: bool = False

    access_token: str = ""
    api_key: str = ""

    @field_validator("sheets_api_base", "drive_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended with a single slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.
    """
    return Settings()
