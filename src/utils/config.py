"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Redis (optional acceleration layer)
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_NAMESPACE: str = "linkpick"

    # Snapshots
    SNAPSHOT_BASE_PATH: str = "data/snapshots"
    SNAPSHOT_MAX_BACKUPS: int = 4
    SNAPSHOT_BACKUP_MAX_AGE_DAYS: int = 30

    # Admin edit sync
    SYNC_DEBOUNCE_SECONDS: float = 1.0
    SYNC_AUTO: bool = True

    # Page revalidation webhook (disabled when unset)
    REVALIDATE_URL: Optional[str] = None
    REVALIDATE_SECRET: Optional[str] = None
    REVALIDATE_PATHS: str = "/,/[...slug]"

    # Homepage preload
    PRELOAD_CAMPAIGN_LIMIT: int = 20
    WARMING_INTERVAL_SECONDS: int = 300

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra fields in .env file
        case_sensitive = False  # Allow both UPPERCASE and lowercase

    @property
    def revalidate_paths(self) -> List[str]:
        """REVALIDATE_PATHS split on commas."""
        return [p.strip() for p in self.REVALIDATE_PATHS.split(",") if p.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
