"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Portal settings loaded from environment variables.

    Safety checks:
    - Debug mode cannot be enabled in production
    - Production must talk to the backend over https
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Environment Detection
    # =========================================================================

    environment: Literal["development", "staging", "production"] = "development"

    # Application
    app_name: str = "Compass Portal"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # =========================================================================
    # Backend API
    # =========================================================================

    api_base_url: str = "https://localhost:7163/api"
    api_timeout_seconds: float = 30.0
    api_verify_tls: bool = True

    # Bearer token: the env var wins over the token file
    token: str | None = Field(default=None, alias="COMPASS_TOKEN")
    token_file: Path = Field(default_factory=lambda: Path.home() / ".compass" / "token")

    # =========================================================================
    # OAuth Delegation
    # =========================================================================

    oauth_popup_width: int = 600
    oauth_popup_height: int = 700
    oauth_poll_interval_seconds: float = 1.0
    oauth_reload_delay_seconds: float = 2.0
    oauth_progress_poll_interval_seconds: float = 2.0

    # Landing server the backend redirects the popup to
    landing_host: str = "127.0.0.1"
    landing_port: int = 8765

    # =========================================================================
    # Assessments
    # =========================================================================

    assessment_poll_interval_seconds: float = 3.0
    resource_page_size: int = 50
    download_dir: Path = Field(default_factory=lambda: Path.cwd())

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, v: str | None) -> str:
        """Lower-case the environment name."""
        if not v:
            return "development"
        return v.lower()

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Endpoints are joined with a leading slash."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_debug_mode(self):
        """Prevent debug mode in production."""
        if self.environment == "production" and self.debug:
            logger.error(
                "DEBUG mode cannot be enabled in production! "
                "Set DEBUG=false or ENVIRONMENT=development"
            )
            raise ValueError("DEBUG cannot be True in production environment")
        return self

    @model_validator(mode="after")
    def validate_api_scheme(self):
        """Production traffic must use https."""
        if self.environment == "production" and not self.api_base_url.startswith("https://"):
            logger.error(f"Insecure API base URL in production: {self.api_base_url}")
            raise ValueError("API_BASE_URL must use https in production")
        if not self.api_verify_tls and self.environment != "development":
            logger.warning(
                f"WARNING: TLS verification disabled in {self.environment} environment."
            )
        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def popup_size(self) -> tuple[int, int]:
        """Fixed (width, height) of the OAuth popup."""
        return self.oauth_popup_width, self.oauth_popup_height

    @property
    def landing_url(self) -> str:
        return f"http://{self.landing_host}:{self.landing_port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
