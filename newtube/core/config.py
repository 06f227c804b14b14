"""Application configuration using Pydantic Settings.

This module defines all application configuration loaded from environment variables.
Configuration is validated at startup and provides type-safe access throughout the app.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from newtube.core.exceptions import ConfigValidationError

MissingMediaBehaviorName = Literal["not_found", "prompt"]

_MISSING_MEDIA_ALIASES: dict[str, MissingMediaBehaviorName] = {
    "404": "not_found",
    "not_found": "not_found",
    "notfound": "not_found",
    "prompt": "prompt",
    "download": "prompt",
    "ask": "prompt",
}

ASYNC_DRIVERS = ("sqlite+aiosqlite://", "postgresql+asyncpg://")


def parse_missing_media_behavior(value: str) -> MissingMediaBehaviorName:
    """Normalize a missing-media behavior name, accepting legacy aliases.

    Args:
        value: Raw value from env, settings file or API payload

    Returns:
        Canonical behavior name

    Raises:
        ValueError: If the value is not a known behavior
    """
    key = value.strip().lower()
    if key not in _MISSING_MEDIA_ALIASES:
        raise ValueError(f"unknown missing media behavior: {value!r}")
    return _MISSING_MEDIA_ALIASES[key]


class Config(BaseSettings):
    """Application configuration.

    All configuration is loaded from environment variables or .env file.
    Validation happens automatically via Pydantic.

    Example:
        >>> config = Config()
        >>> print(config.app_name)
        'NewTube'
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # Application Settings
    # ============================================
    app_name: str = Field(default="NewTube", description="Application name")
    app_env: Literal["development", "staging", "production"] = Field(
        default="development", description="Application environment"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    # ============================================
    # Storage Settings
    # ============================================
    media_root: Path = Field(default=Path("./media"), description="Media library root")
    database_url: str = Field(
        default="",
        description="Async database URL (defaults to SQLite inside media_root)",
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries")
    archive_file_name: str = Field(
        default="download-archive.txt", description="Archive ledger file name"
    )
    settings_file_name: str = Field(
        default="settings.json", description="Runtime settings file name"
    )

    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    celery_broker_url: str = Field(
        default="redis://localhost:6379/1", description="Celery broker URL"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2", description="Celery result backend URL"
    )
    lock_backend: Literal["local", "redis"] = Field(
        default="local",
        description="Per-item acquisition lock backend (redis for multi-process setups)",
    )
    lock_timeout_seconds: float = Field(
        default=3600.0, description="Lease time for distributed locks", gt=0
    )

    # ============================================
    # Serving Behavior
    # ============================================
    missing_media_behavior: MissingMediaBehaviorName = Field(
        default="not_found", description="What to do when a requested item is missing"
    )

    # ============================================
    # External Fetch Tool (yt-dlp)
    # ============================================
    fetch_timeout_seconds: float = Field(
        default=600.0, description="Timeout for a single fetch tool call", gt=0
    )
    fetch_max_workers: int = Field(
        default=4, description="yt-dlp calls running at the same time", ge=1, le=32
    )
    fetch_max_attempts: int = Field(
        default=3, description="Attempts for transient fetch failures", ge=1, le=10
    )
    fetch_backoff_seconds: float = Field(
        default=2.0, description="Initial retry backoff", ge=0
    )
    fetch_backoff_max_seconds: float = Field(
        default=60.0, description="Maximum retry backoff", ge=0
    )
    comment_page_size: int = Field(
        default=200, description="Maximum comments fetched per video", ge=0, le=10000
    )
    cookies_file: Path | None = Field(default=None, description="Optional cookies.txt")
    ledger_record_partial: bool = Field(
        default=True,
        description="Record partially acquired videos in the archive ledger",
    )

    # ============================================
    # On-Demand Acquisition Gate
    # ============================================
    gate_max_concurrency: int = Field(
        default=2, description="Concurrent on-demand acquisitions", ge=1, le=32
    )
    gate_acquisition_timeout_seconds: float = Field(
        default=1800.0, description="Timeout for one on-demand acquisition", gt=0
    )
    gate_wait_seconds: float = Field(
        default=5.0,
        description="How long a request waits for an acquisition before answering pending",
        ge=0,
    )

    # ============================================
    # Read-Through Cache
    # ============================================
    cache_capacity: int = Field(default=2048, description="Max cached entries", ge=1)

    # ============================================
    # Freshness Sweeper
    # ============================================
    sweep_interval_hours: int = Field(default=24, description="Sweep period", ge=1, le=168)
    sweep_channel_timeout_seconds: float = Field(
        default=6 * 3600.0, description="Timeout for one channel during a sweep", gt=0
    )
    video_timeout_seconds: float = Field(
        default=3600.0, description="Timeout for one video during a channel run", gt=0
    )

    # ============================================
    # API Server
    # ============================================
    api_host: str = Field(default="127.0.0.1", description="API server host")
    api_port: int = Field(default=8080, description="API server port", ge=1, le=65535)
    cors_origins: list[str] = Field(
        default=["http://localhost:8080"],
        description="Allowed CORS origins",
    )

    @field_validator("missing_media_behavior", mode="before")
    @classmethod
    def validate_missing_media_behavior(cls, v: object) -> object:
        """Accept legacy aliases such as "404" and "download"."""
        if isinstance(v, str):
            return parse_missing_media_behavior(v)
        return v

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure database URL uses an async driver.

        Args:
            v: Database URL string

        Returns:
            Validated database URL

        Raises:
            ValueError: If URL doesn't use a supported async driver
        """
        if isinstance(v, str) and v and not v.startswith(ASYNC_DRIVERS):
            raise ValueError(
                "database_url must use an async driver (sqlite+aiosqlite:// or postgresql+asyncpg://)"
            )
        return v

    @model_validator(mode="after")
    def default_database_url(self) -> "Config":
        """Place the catalog database inside the media root when unset."""
        if not self.database_url:
            self.database_url = f"sqlite+aiosqlite:///{self.media_root / 'metadata.db'}"
        return self

    @model_validator(mode="after")
    def require_shared_lock_in_production(self) -> "Config":
        """Production runs the API and the worker as separate processes.

        Raises:
            ConfigValidationError: If production is configured with local locks
        """
        if self.app_env == "production" and self.lock_backend == "local":
            raise ConfigValidationError(
                field="lock_backend",
                value=self.lock_backend,
                reason="production needs the redis lock so the API and the worker exclude each other",
            )
        return self

    @property
    def database_url_sync(self) -> str:
        """Sync variant of the database URL (for Alembic)."""
        return self.database_url.replace("+aiosqlite", "").replace("+asyncpg", "")

    @property
    def archive_path(self) -> Path:
        """Location of the archive ledger file."""
        return self.media_root / self.archive_file_name

    @property
    def settings_path(self) -> Path:
        """Location of the runtime settings file."""
        return self.media_root / self.settings_file_name

    @property
    def is_development(self) -> bool:
        """Check if running in development mode.

        Returns:
            True if app_env is 'development'
        """
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode.

        Returns:
            True if app_env is 'production'
        """
        return self.app_env == "production"


# =============================================================================
# Singleton accessor
# =============================================================================

_config: Config | None = None


def get_config() -> Config:
    """Get the global Config singleton.

    Returns:
        The global Config instance
    """
    global _config
    if _config is None:
        _config = Config()
    return _config
