"""Configuration management for SocialFeed.

This module provides centralized configuration using Pydantic Settings,
read from environment variables or a local ``.env`` file.

Environment Profiles:
    - DEVELOPMENT: Verbose logging, human-readable output
    - PRODUCTION: Structured JSON logs, conservative store timeouts
    - TESTING: In-memory database, minimal logging, fast execution

Example:
    >>> from socialfeed.config import settings, Environment
    >>> print(settings.friend_cache_ttl_seconds)
    300
    >>> if settings.is_production:
    ...     print("Running in production mode")
"""

from datetime import timedelta
from enum import StrEnum
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    """Runtime environment with specific behavior profiles.

    Attributes:
        DEVELOPMENT: Verbose logging, human-readable output
        PRODUCTION: JSON logging, tighter store timeouts
        TESTING: In-memory database, minimal logging, fast execution
        STAGING: Pre-production validation environment
    """

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Attributes:
        database_path: Path to the SQLite file backing the item store
        store_timeout_seconds: Upper bound for a single store call
        store_max_attempts: Attempts for transient store failures
        friend_cache_ttl_seconds: Lifetime of a cached friend list
        friend_cache_max_size: Number of friend lists kept in memory
        feed_default_limit: Page size used when the caller gives none
        feed_max_limit: Largest page size a caller may request
        feed_overfetch_factor: Public stream over-fetch multiplier
        feed_friend_fanout: Number of friend partitions queried per feed page
        feed_max_rounds: Refill rounds the aggregator may spend on one page
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment Configuration
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Runtime environment (development, production, testing, staging)",
    )

    # Data Directory Configuration
    data_dir: Path = Field(
        Path("./data"),
        description="Base directory for all data files (database, logs)",
    )

    # Store Configuration
    database_path: Path = Field(
        Path("socialfeed.db"),  # Will be updated to data_dir/socialfeed.db by validator
        description="Path to SQLite database file (defaults to data_dir/socialfeed.db)",
    )
    store_timeout_seconds: float = Field(
        5.0,
        gt=0,
        le=60,
        description="Timeout applied to every store call",
    )
    store_max_attempts: int = Field(
        3,
        ge=1,
        le=10,
        description="Attempts for transient store failures before giving up",
    )

    # Friend Cache
    friend_cache_ttl_seconds: float = Field(
        300.0,
        gt=0,
        description="Time-to-live of a cached friend list (seconds)",
    )
    friend_cache_max_size: int = Field(
        100,
        ge=1,
        description="Maximum number of cached friend lists",
    )

    # Feed Parameters
    feed_default_limit: int = Field(
        20,
        ge=1,
        le=100,
        description="Default feed page size",
    )
    feed_max_limit: int = Field(
        100,
        ge=1,
        le=100,
        description="Largest feed page size a caller may request",
    )
    feed_overfetch_factor: int = Field(
        2,
        ge=1,
        le=10,
        description="Public stream over-fetch multiplier",
    )
    feed_friend_fanout: int = Field(
        20,
        ge=0,
        le=200,
        description="Number of friend partitions queried per feed page",
    )
    feed_max_rounds: int = Field(
        5,
        ge=1,
        le=50,
        description="Refill rounds the aggregator may spend on one page",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_to_file: bool = Field(
        default=False,
        description="Enable file logging in addition to console",
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (recommended for production)",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand and resolve data directory path."""
        return Path(v).expanduser().resolve()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def set_database_path_default(self) -> "Settings":
        """Set database_path to data_dir/socialfeed.db if not explicitly provided."""
        if self.database_path == Path("socialfeed.db"):
            self.database_path = self.data_dir / "socialfeed.db"
        return self

    @model_validator(mode="after")
    def check_limits(self) -> "Settings":
        """Ensure the default page size fits under the maximum."""
        if self.feed_default_limit > self.feed_max_limit:
            raise ValueError("feed_default_limit must not exceed feed_max_limit")
        return self

    @model_validator(mode="after")
    def apply_environment_profile(self) -> "Settings":
        """Apply environment-specific defaults.

        Profiles:
            - PRODUCTION: JSON logging, DEBUG downgraded to INFO
            - DEVELOPMENT: DEBUG logging, human-readable output
            - TESTING: In-memory database, ERROR logging, no file logging
            - STAGING: Production-like with INFO logging

        Returns:
            Modified settings instance with environment-specific adjustments
        """
        if self.environment == Environment.PRODUCTION:
            if self.log_level == "DEBUG":
                self.log_level = "INFO"
            self.log_json = True

        elif self.environment == Environment.DEVELOPMENT:
            self.log_level = "DEBUG"
            self.log_json = False

        elif self.environment == Environment.TESTING:
            self.database_path = Path(":memory:")
            self.log_level = "ERROR"
            self.log_to_file = False
            self.log_json = False

        elif self.environment == Environment.STAGING:
            self.log_level = "INFO"
            self.log_json = True

        return self

    @property
    def friend_cache_ttl(self) -> timedelta:
        """Get friend cache TTL as timedelta."""
        return timedelta(seconds=self.friend_cache_ttl_seconds)

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"

    @property
    def is_in_memory(self) -> bool:
        """Check if the store lives in memory only."""
        return str(self.database_path) == ":memory:"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @property
    def is_staging(self) -> bool:
        """Check if running in staging environment."""
        return self.environment == Environment.STAGING


def get_settings() -> Settings:
    """Get a freshly loaded settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
