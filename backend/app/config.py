"""
Application Configuration — Environment & Settings
Centralizes all config from .env with Pydantic Settings for validation.
The pipeline components receive a Settings instance explicitly; only the
FastAPI wiring calls get_settings().
"""
from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings

# Resolve paths relative to backend/ directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- Core ---
    APP_NAME: str = "Rail Exchange Verification API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # --- Database ---
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'data' / 'railx_verification.db'}"

    # --- AI Document Analysis ---
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash-latest"
    AI_TIMEOUT_SECONDS: float = 60.0
    AI_MAX_OUTPUT_TOKENS: int = 2000

    # --- Security ---
    CRON_SECRET: str = ""
    CORS_ORIGINS: list[str] = ["*"]

    # --- Verification Pipeline ---
    STANDARD_SLA_HOURS: int = 24
    PRIORITY_SLA_HOURS: int = 1
    HARD_ESCALATION_HOURS: int = 48
    AI_BATCH_SIZE: int = 50
    VERIFICATION_VALIDITY_DAYS: int = 365
    REMINDER_LEAD_DAYS: list[int] = [30, 7, 0]
    REMINDER_CLAIM_MINUTES: int = 30

    # --- Document Storage (S3) ---
    S3_BUCKET: str = "railx-uploads"
    AWS_REGION: str = "us-east-2"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    DOCUMENT_URL_TTL_SECONDS: int = 900
    UPLOAD_URL_TTL_SECONDS: int = 300

    # --- Email ---
    EMAIL_BACKEND: str = "console"   # console | smtp
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    SMTP_TIMEOUT_SECONDS: float = 10.0
    FROM_EMAIL: str = "noreply@therailexchange.com"
    SITE_URL: str = "https://www.therailexchange.com"

    # --- Logging ---
    LOG_DIR: str = str(BASE_DIR / "logs")

    class Config:
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    def sla_hours(self, tier: str) -> int:
        """Maximum hours between submission and AI processing for a tier."""
        return self.PRIORITY_SLA_HOURS if tier == "priority" else self.STANDARD_SLA_HOURS


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
