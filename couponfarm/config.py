"""Application configuration via Pydantic Settings."""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global scraper settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Central coupon API
    COUPON_API_BASE_URL: str = "http://localhost:8000"
    COUPON_API_KEY: str = ""

    @model_validator(mode="after")
    def strip_base_url(self) -> "Settings":
        """Endpoints are joined with a leading slash, so drop the trailing one."""
        self.COUPON_API_BASE_URL = self.COUPON_API_BASE_URL.rstrip("/")
        return self

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Crawling
    REQUEST_DELAY_SECONDS: float = 1.0  # Pause between follow-up requests
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    MAX_REQUEST_RETRIES: int = 3
    MAX_CONCURRENCY: int = 5

    # Anomaly detection
    # When enabled, the coupon API's anomaly detector is consulted with the
    # page's candidate count in addition to the local sanity checks.
    ANOMALY_CHECK_REMOTE: bool = False

    # Record store
    STORE_BATCH_SIZE: int = 100


settings = Settings()
