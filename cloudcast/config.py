"""
Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Access Control
    # ==========================================================================

    # Email domains allowed to use the application at all
    allowed_email_domains: str = "company.edu"

    # Addresses that receive the global_admin claim when a session is issued
    global_admin_emails: str = "admin@company.edu"

    # How long the route guard waits for a loading session (seconds)
    guard_loading_timeout: float = 5.0

    # ==========================================================================
    # Organizations
    # ==========================================================================

    join_code_length: int = 8
    join_code_max_attempts: int = 5

    # ==========================================================================
    # Authentication
    # ==========================================================================

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    # YAML file loaded into the in-memory directory at startup
    seed_file: str = ""
    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return _split(self.cors_origins)

    @property
    def allowed_email_domains_list(self) -> list[str]:
        return _split(self.allowed_email_domains)

    @property
    def global_admin_emails_list(self) -> list[str]:
        return _split(self.global_admin_emails)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
