"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Self


# Gateway hosts used when PAYMENT_GATEWAY_BASE_URL is not set explicitly
PAYMENT_GATEWAY_PRODUCTION_URL = "https://api.cashfree.com"
PAYMENT_GATEWAY_SANDBOX_URL = "https://sandbox.cashfree.com"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "MockPrep API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Security
    # IMPORTANT: These MUST be set in .env file - no defaults for security
    SECRET_KEY: str = Field(..., description="Application secret key (required)")
    JWT_SECRET_KEY: str = Field(..., description="JWT signing secret key (required)")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Payment gateway
    PAYMENT_GATEWAY_ENVIRONMENT: Literal["sandbox", "production"] = "sandbox"
    PAYMENT_GATEWAY_BASE_URL: str = Field(
        default="",
        description="Override for the gateway host (derived from environment if empty)",
    )
    PAYMENT_GATEWAY_APP_ID: str = Field(
        default="",
        description="Gateway app id (x-client-id header)",
    )
    PAYMENT_GATEWAY_SECRET_KEY: str = Field(
        default="",
        repr=False,
        description="Gateway secret (x-client-secret header, webhook signing key)",
    )
    PAYMENT_GATEWAY_API_VERSION: str = "2023-08-01"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Timeout for each gateway HTTP round-trip",
    )
    PAYMENT_WEBHOOK_TOLERANCE_SECONDS: int = Field(
        default=300,
        ge=0,
        description="Accepted webhook timestamp skew in seconds (0 disables the check)",
    )
    PAYMENT_CURRENCY: str = "INR"
    # Public URLs used to build the gateway return and notify URLs
    FRONTEND_URL: str = "http://localhost:5173"
    BACKEND_URL: str = "http://localhost:8000"

    # Leaderboard
    LEADERBOARD_DEFAULT_LIMIT: int = Field(default=10, ge=1, le=100)

    # Admin listings
    ADMIN_ATTEMPTS_LIMIT: int = 100

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_payment_gateway_config(self) -> Self:
        """Production deployments must carry gateway credentials."""
        if self.ENV == "production" and self.PAYMENT_GATEWAY_ENVIRONMENT == "production":
            if not self.PAYMENT_GATEWAY_APP_ID or not self.PAYMENT_GATEWAY_SECRET_KEY:
                raise ValueError(
                    "PAYMENT_GATEWAY_APP_ID and PAYMENT_GATEWAY_SECRET_KEY must be set "
                    "when PAYMENT_GATEWAY_ENVIRONMENT=production."
                )
        return self

    @property
    def payment_gateway_base_url(self) -> str:
        if self.PAYMENT_GATEWAY_BASE_URL:
            return self.PAYMENT_GATEWAY_BASE_URL.rstrip("/")
        if self.PAYMENT_GATEWAY_ENVIRONMENT == "production":
            return PAYMENT_GATEWAY_PRODUCTION_URL
        return PAYMENT_GATEWAY_SANDBOX_URL


# mypy doesn't understand that pydantic_settings loads required fields from env vars
settings = Settings()  # type: ignore[call-arg]
