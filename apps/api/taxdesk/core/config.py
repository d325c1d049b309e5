"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (client-facing upload and intake links)
    FRONTEND_URL: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs)
    INTERNAL_SECRET: str = ""  # Bearer secret for /internal/scheduled/* endpoints

    # Object storage
    STORAGE_BACKEND: str = "local"  # local | s3
    LOCAL_STORAGE_PATH: str = "/tmp/taxdesk-documents"
    S3_BUCKET: str = "taxdesk-client-documents"
    S3_REGION: str = "us-east-1"
    S3_ENDPOINT_URL: str = ""  # Optional S3-compatible endpoint (MinIO, GCS XML API)
    S3_URL_STYLE: str = ""  # path | virtual
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    SIGNED_URL_EXPIRY_SECONDS: int = 300  # 5 minutes

    # Email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "Harvey & Co <team@example.com>"
    EMAIL_REPLY_TO: str = ""

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_PHONE_NUMBER: str = ""

    # Token-link lifetimes
    DOCUMENT_REQUEST_TTL_DAYS: int = 30
    INTAKE_LINK_TTL_DAYS: int = 30

    # Drip campaign
    DRIP_DEFAULT_CAMPAIGN: str = "tax_season_2025"
    DRIP_ENROLL_BATCH_SIZE: int = 50
    DRIP_SEND_TIMEOUT_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_PUBLIC: int = 30  # Public token endpoints
    RATE_LIMIT_API: int = 120  # General API

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def frontend_base_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")


settings = Settings()
