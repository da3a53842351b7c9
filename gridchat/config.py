"""
Grid Chat – Application configuration.
Reads environment variables from a .env file via pydantic-settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── App ──
    APP_NAME: str = "Grid Chat"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Database ──
    DATABASE_URL: str = "sqlite+aiosqlite:///./gridchat.db"

    # ── Chat ──
    MESSAGE_MAX_LENGTH: int = 500
    HISTORY_PAGE_SIZE: int = 50
    HISTORY_MAX_PAGE_SIZE: int = 100
    GENERAL_ROOM_NAME: str = "General Discussion"

    # ── Live channel ──
    # Outbound frames buffered per socket before a slow client is dropped.
    LIVE_QUEUE_SIZE: int = 256


settings = Settings()
