"""Configuration settings for gymsync."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from gymsync.utils import get_gymsync_home


class Settings(BaseSettings):
    """Settings loaded from the environment (``GYMSYNC_`` prefix) or ``.env``."""

    # Supabase
    supabase_url: str | None = None
    supabase_key: str | None = None  # publishable/anon key; user JWT is applied per session

    # Local storage
    data_dir: Path | None = None
    db_path: Path | None = None

    # App
    log_level: str = "INFO"
    request_timeout: float = 10.0  # seconds, applied to PostgREST calls

    class Config:
        env_prefix = "GYMSYNC_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def resolved_data_dir(self) -> Path:
        """Data directory, falling back to ``get_gymsync_home()``."""
        return self.data_dir or get_gymsync_home()

    def resolved_db_path(self) -> Path:
        """SQLite file holding the entity store and flags."""
        return self.db_path or self.resolved_data_dir() / "gymsync.db"

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
