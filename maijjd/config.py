"""
Maijjd - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Security: No secrets are hardcoded. Use .env for local development.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        APP_ENV: Deployment mode; "production" hides stack traces
        SECRET_KEY: JWT signing key for authentication
        ADMIN_CREATION_KEY: Shared secret required to provision admins
        DATABASE_URL: Credential store connection string
        REDIS_URL: Shared key-value store (reset tokens, lockouts)
        ALLOWED_ORIGINS: CORS allowed origins for the frontend
    """

    APP_ENV: str = "development"
    API_VERSION: str = "1.0.0"

    # Security
    SECRET_KEY: str = ""  # Must be set via environment
    JWT_ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "maijjd-api"
    JWT_AUDIENCE: str = "maijjd-clients"
    ADMIN_JWT_AUDIENCE: str = "maijjd-admin"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 12 * 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14
    ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    ADMIN_REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    BCRYPT_ROUNDS: int = 12
    ADMIN_CREATION_KEY: str = ""  # Empty disables admin provisioning

    # Credential lifecycle
    VERIFICATION_CODE_EXPIRE_MINUTES: int = 10
    RESET_TOKEN_EXPIRE_MINUTES: int = 30
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 15
    LOGIN_IP_MAX_ATTEMPTS: int = 20
    VERIFY_MAX_ATTEMPTS: int = 5

    # Storage (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./maijjd.db"
    REDIS_URL: str = ""

    # Notifications
    FRONTEND_BASE_URL: str = "http://localhost:3000"
    SENDGRID_API_KEY: str = ""
    MAIL_FROM_EMAIL: str = "no-reply@maijjd.com"
    MAIL_FROM_NAME: str = "Maijjd"
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"


settings = Settings()
