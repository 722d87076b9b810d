"""
Configuration management for Pocket Calendar.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Local key-value storage
    database_url: str = Field(
        default="sqlite:///./data/pocket_calendar.db",
        description="Database URL backing the on-device key-value store"
    )

    # Google OAuth Configuration
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )
    google_oauth_redirect_uri: str = Field(
        default="http://localhost:8000/auth/google/callback",
        description="OAuth redirect URI (must match Google Cloud Console)"
    )

    # Google Calendar API
    calendar_api_base_url: str = Field(
        default="https://www.googleapis.com/calendar/v3",
        description="Base URL of the Google Calendar REST API"
    )
    primary_calendar_id: str = Field(
        default="primary",
        description="The user's own editable calendar"
    )
    holiday_calendar_id: str = Field(
        default="en.usa#holiday@group.v.calendar.google.com",
        description="Read-only public holiday calendar shown next to the primary one"
    )

    # Timezone Configuration
    timezone: str = Field(
        default="America/Los_Angeles",
        description="Timezone used to decide which day an event falls on (IANA name)"
    )

    # HTTP
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to every outbound HTTP request"
    )
    coalesce_token_refresh: bool = Field(
        default=False,
        description="Share one in-flight token refresh between concurrent requests"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_google_oauth(self) -> bool:
        """Check if Google OAuth is configured."""
        return bool(self.google_oauth_client_id and self.google_oauth_client_secret)

    def validate_google_oauth_config(self) -> None:
        """
        Validate Google OAuth configuration.

        Raises:
            ValueError: If required settings are missing
        """
        errors = []

        if not self.google_oauth_client_id:
            errors.append("GOOGLE_OAUTH_CLIENT_ID is not configured.")
        if not self.google_oauth_client_secret:
            errors.append("GOOGLE_OAUTH_CLIENT_SECRET is not configured.")

        if errors:
            raise ValueError("Google OAuth configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from pocket_calendar.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.calendar_api_base_url)
    """
    return Settings()
