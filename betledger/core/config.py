"""
Configuration Management for betledger.

Uses pydantic-settings for environment variable loading and validation.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Settings.

    Loads configuration from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # App Info
    APP_NAME: str = "betledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./betledger.db"

    # Bankroll defaults
    DEFAULT_TIMEZONE: str = "UTC"
    DEFAULT_MAX_BET_PCT: str = "0.05"
    DEFAULT_KELLY_FRACTION: str = "0.25"
    MONEY_PLACES: int = 2
    UNIT_PLACES: int = 4

    # Security
    BETLEDGER_API_KEY: Optional[str] = None
    RATE_LIMIT: str = "100/minute"


settings = Settings()
