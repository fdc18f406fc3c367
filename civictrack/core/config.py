"""
CivicTrack - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./civictrack.db"
    db_echo: bool = False
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30

    # Geofence
    system_max_radius_km: float = 5.0

    # Moderation
    auto_hide_flag_threshold: int = 3

    # Listing
    default_page_size: int = 10
    max_page_size: int = 100

    # Optimistic update attempts before ConcurrencyConflict
    update_max_retries: int = 3

    # API Settings
    cors_origins: str = "http://localhost:5173"

    def cors_origins_list(self) -> List[str]:
        return [x.strip().rstrip("/") for x in self.cors_origins.split(",") if x.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
