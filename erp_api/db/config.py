"""
Database connection settings.

POSTGRES_URL wins when set and may be any SQLAlchemy URL (tests use
sqlite+aiosqlite). Otherwise the URL is assembled from POSTGRES_USER,
POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_HOST and POSTGRES_PORT.
"""
from __future__ import annotations

import re
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DRIVER_TAG = re.compile(r"^(postgresql|sqlite)\+\w+://")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    POSTGRES_URL: Optional[str] = Field(default=None, description="Full database URL; overrides the parts below")
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432

    SQL_ECHO: bool = Field(default=False, description="Log every SQL statement")
    ENVIRONMENT: Optional[str] = Field(default=None, description="dev / test / prod label")

    @property
    def database_url(self) -> str:
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        missing = [
            name
            for name in ("POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Database configuration missing: set POSTGRES_URL or {', '.join(missing)}")
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def async_database_url(self) -> str:
        """The URL with PostgreSQL pinned to asyncpg; non-PostgreSQL URLs pass through."""
        url = self.database_url
        if url.startswith("postgresql"):
            return re.sub(r"^postgresql(\+\w+)?://", "postgresql+asyncpg://", url)
        return url

    @property
    def sync_database_url(self) -> str:
        """Driver-less variant of the URL, used by Alembic offline mode."""
        return _DRIVER_TAG.sub(r"\1://", self.database_url)


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Database settings read fresh from the environment."""
    return Settings()
