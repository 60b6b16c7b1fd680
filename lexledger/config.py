"""
LexLedger - Configuration Settings

Settings are resolved once per process (see ``get_settings``) and handed to the
components that talk to the outside world.
"""

from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "LexLedger"
    APP_DESCRIPTION: str = "Practice management for law firms"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    BASE_URL: str = "http://localhost:8000"

    # Security
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    REMEMBER_ME_EXPIRE_DAYS: int = 30
    PORTAL_SESSION_EXPIRE_MINUTES: int = 30
    PASSWORD_RESET_EXPIRE_HOURS: int = 24
    BCRYPT_ROUNDS: int = 12

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/lexledger.db"

    # File Storage
    UPLOAD_DIR: Path = Path("./data/uploads")
    MAX_FILE_SIZE_MB: int = 25
    ALLOWED_EXTENSIONS: set = {
        ".pdf", ".doc", ".docx", ".txt", ".rtf", ".odt",
        ".xls", ".xlsx", ".png", ".jpg", ".jpeg",
    }

    # Email (SMTP)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@lexledger.local"
    SMTP_FROM_NAME: str = "LexLedger"

    # Business Rules
    CURRENCY_SYMBOL: str = "₺"
    TIMEZONE: str = "Europe/Istanbul"  # display only, storage is UTC
    LEAD_PLACEHOLDER_EMAIL_DOMAIN: str = "example.com"
    AUDIT_LOG_PAGE_SIZE: int = 50

    # Seeded administrator
    ADMIN_EMAIL: str = "admin@lexledger.local"
    ADMIN_PASSWORD: Optional[str] = None
    ADMIN_NAME: str = "Administrator"

    @model_validator(mode="after")
    def validate_secret_key(self):
        """Refuse to start with the default secret key in production."""
        if not self.DEBUG and self.SECRET_KEY == "dev-secret-key-change-in-production":
            raise ValueError(
                "SECRET_KEY must be changed from the default value in production. "
                "Set a strong, unique SECRET_KEY in your .env file."
            )
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (FastAPI dependency)."""
    return Settings()


settings = get_settings()

# Ensure upload directory exists
settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)


# Project paths
PACKAGE_DIR = Path(__file__).parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"
