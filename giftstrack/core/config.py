"""
giftstrack/core/config.py

Purpose: Client configuration

- Loads environment variables (and .env)
- Centralizes timeouts, TTLs, pagination and storage settings
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Client settings loaded from environment variables.
    Validates all required configs on startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Remote API
    API_BASE_URL: str = Field(
        default="https://gift-track.myprojectdemo.live",
        description="Customer management API base URL"
    )
    API_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Client-side timeout for every network call, in seconds"
    )
    HEALTH_CHECK_PATH: str = Field(
        default="/api/health",
        description="Endpoint probed to sample connectivity"
    )
    CONNECTIVITY_POLL_SECONDS: float = Field(
        default=15.0,
        description="Interval between connectivity probes"
    )

    # Session
    TOKEN_EXPIRY_BUFFER_SECONDS: int = Field(
        default=60,
        description="Clock-skew buffer subtracted from the token's exp claim"
    )

    # Caching
    MASTER_DATA_TTL_HOURS: int = Field(
        default=24,
        description="Lifetime of the cached master data aggregate"
    )
    DEFAULT_CACHE_TTL_HOURS: int = Field(
        default=24,
        description="TTL applied when a cache write does not name one"
    )
    CUSTOMER_LIST_TTL_MINUTES: int = Field(
        default=5,
        description="Lifetime of cached customer list pages"
    )

    # Lists and search
    DEFAULT_PAGE_SIZE: int = Field(default=20, description="Items requested per page")
    MAX_PAGE_SIZE: int = Field(default=100, description="Upper bound for page size")
    LOAD_MORE_THRESHOLD: float = Field(
        default=0.5,
        description="Distance from the list end (in viewport lengths) that triggers load-more"
    )
    SEARCH_DEBOUNCE_MS: int = Field(
        default=300,
        description="Debounce delay for search input, in milliseconds"
    )

    # Storage
    STORAGE_BACKEND: Literal["memory", "file", "mongo"] = Field(
        default="file",
        description="Backend used for the general persistent store"
    )
    STORAGE_DIR: str = Field(
        default=".giftstrack",
        description="Directory holding the file-backed stores"
    )
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (mongo storage backend)"
    )
    MONGODB_DB_NAME: str = Field(
        default="giftstrack",
        description="MongoDB database name"
    )
    MONGODB_COLLECTION: str = Field(
        default="kv_store",
        description="Collection holding key-value documents"
    )
    SECURE_STORAGE_KEY: Optional[str] = Field(
        default=None,
        description="Fernet key used to encrypt the secure (token) store"
    )

    # Application
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator("API_TIMEOUT_SECONDS", "CONNECTIVITY_POLL_SECONDS")
    @classmethod
    def validate_positive_seconds(cls, v):
        """Timeouts and intervals must be positive."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("DEFAULT_PAGE_SIZE")
    @classmethod
    def validate_page_size(cls, v):
        if v <= 0:
            raise ValueError("DEFAULT_PAGE_SIZE must be > 0")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def master_data_ttl_seconds(self) -> float:
        return self.MASTER_DATA_TTL_HOURS * 3600.0

    @property
    def default_cache_ttl_seconds(self) -> float:
        return self.DEFAULT_CACHE_TTL_HOURS * 3600.0

    @property
    def customer_list_ttl_seconds(self) -> float:
        return self.CUSTOMER_LIST_TTL_MINUTES * 60.0


# Global settings instance
settings = Settings()


def validate_settings(config: Optional[Settings] = None) -> bool:
    """
    Validates critical settings on client startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    config = config or settings
    errors = []

    if not config.API_BASE_URL:
        errors.append("API_BASE_URL is required")

    if config.DEFAULT_PAGE_SIZE > config.MAX_PAGE_SIZE:
        errors.append("DEFAULT_PAGE_SIZE must not exceed MAX_PAGE_SIZE")

    if config.STORAGE_BACKEND == "mongo" and not config.MONGODB_URL:
        errors.append("MONGODB_URL is required for the mongo storage backend")

    # Production-specific validations
    if config.is_production:
        if not config.SECURE_STORAGE_KEY:
            errors.append("SECURE_STORAGE_KEY is required in production")
        if not config.API_BASE_URL.startswith("https://"):
            errors.append("API_BASE_URL must use https in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
