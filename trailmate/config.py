"""
Application Configuration

Uses Pydantic Settings for type-safe configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, ConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # === Core ===
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # === Database ===
    database_url: str = Field(
        default="sqlite:///./trailmate.db",
        description="Database connection URL"
    )

    # === Strava (shared default credential) ===
    strava_client_id: Optional[str] = Field(default=None)
    strava_client_secret: Optional[str] = Field(
        default=None,
        validation_alias="strava_secret"  # Also accept STRAVA_SECRET
    )
    strava_api_url: str = Field(default="https://www.strava.com/api/v3")
    strava_oauth_url: str = Field(default="https://www.strava.com/oauth/token")
    # Refresh access tokens that expire within this many seconds
    token_refresh_margin_seconds: int = Field(default=300, ge=0)

    # === Quota ===
    # Defaults for the fallback credential; assigned configs carry their own
    default_daily_limit: int = Field(default=1000, ge=1)
    default_window_limit: int = Field(default=90, ge=1)
    quota_window_minutes: int = Field(default=15, ge=1)

    # === Gateway ===
    gateway_max_attempts: int = Field(default=3, ge=1)
    gateway_base_delay_seconds: float = Field(default=1.0, ge=0)
    gateway_timeout_seconds: float = Field(default=10.0, gt=0)

    # === Sync ===
    sync_history_days: int = Field(default=365, ge=1)
    sync_per_page: int = Field(default=30, ge=1, le=200)

    # === Matching ===
    metrics_window_days: int = Field(
        default=28,
        description="How far back activity records count towards metrics"
    )
    candidate_active_days: int = Field(
        default=30,
        description="Candidates must have metrics calculated within this window"
    )

    @field_validator('database_url')
    @classmethod
    def fix_postgres_url(cls, v: str) -> str:
        """Fix Render/Railway postgres:// URL to postgresql://"""
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


# Global settings instance
settings = Settings()
