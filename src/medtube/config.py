"""Configuration management for medtube."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable overrides.

    All settings can be overridden via environment variables
    prefixed with MEDTUBE_ (e.g. MEDTUBE_DATA_DIR, MEDTUBE_LOG_LEVEL).
    The database URL is also read from a plain DATABASE_URL.
    """

    model_config = {"env_prefix": "MEDTUBE_", "populate_by_name": True}

    # Storage
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".medtube",
        description="Root directory for local medtube data",
    )
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("MEDTUBE_DATABASE_URL", "DATABASE_URL"),
        description="SQLAlchemy database URL (PostgreSQL in production)",
    )
    connect_retries: int = 5
    connect_retry_interval: float = 2.0  # seconds between connection attempts

    # Ingestion
    default_max_results: int = 1000

    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        """Fallback SQLite database path."""
        return self.data_dir / "medtube.db"

    @property
    def database_url(self) -> str:
        """Effective database URL, falling back to the local SQLite file."""
        return self.database_url_override or f"sqlite:///{self.db_path}"

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this throughout the app
settings = Settings()
