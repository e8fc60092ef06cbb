"""Configuration settings using pydantic-settings."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    database_url: str = Field("sqlite:///products.db", description="SQLAlchemy database URL")

    # Enrichment API (optional - enrichment is skipped when unset)
    enrichment_url: Optional[str] = Field(None, description="Product enrichment endpoint")
    user_agent: str = Field("ProductImporter/1.0", description="User-Agent sent to the enrichment API")

    # Rate limiting
    max_api_requests_per_minute: int = Field(10, description="Enrichment requests allowed per window")
    rate_window_seconds: float = Field(60.0, description="Rate limit window in seconds")
    poll_interval: float = Field(0.25, description="Seconds between token availability checks")
    concurrency: int = Field(1, description="Records processed concurrently")

    # Retries
    max_retries: int = Field(3, description="Attempts per enrichment call")
    backoff_base: float = Field(1.0, description="Base delay in seconds for exponential backoff")

    # Timeouts
    connect_timeout: float = Field(5.0, description="HTTP connect timeout in seconds")
    http_timeout: float = Field(10.0, description="HTTP total timeout in seconds")

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    @property
    def enrichment_headers(self) -> dict[str, str]:
        """Get headers sent with every enrichment request."""
        return {"Accept": "application/json", "User-Agent": self.user_agent}


# Global settings instance
settings = Settings()
