"""Configuration management for familyload."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Store Configuration
    sqlite_db_path: str = Field(default="familyload.db", description="SQLite database file path")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")

    # Scheduler trigger authentication
    cron_secret: str | None = Field(default=None, description="Bearer secret required by the HTTP cron triggers")

    # Generation Configuration
    generation_look_ahead_days: int = Field(
        default=30, description="How many days ahead a recurring template may generate an instance"
    )

    # Load Balancing Configuration
    load_period_days: int = Field(default=7, description="Rolling period (days) used to aggregate member load")
    rotation_tie_threshold: int = Field(
        default=2, description="Maximum load difference (points) under which assignment rotates between members"
    )
    balance_warning_threshold: float = Field(
        default=55.0, description="Share of household load (percent) above which balance is a warning"
    )
    balance_critical_threshold: float = Field(
        default=65.0, description="Share of household load (percent) above which balance is critical"
    )

    # Reporting Cache Configuration
    summary_cache_ttl_seconds: int = Field(default=60, description="TTL of cached reporting summaries")
    summary_cache_max_entries: int = Field(default=256, description="Maximum number of cached reporting summaries")

    # Scheduler Configuration
    generation_hour: int = Field(default=3, description="Hour of the daily generation job")
    auto_assign_hour: int = Field(default=4, description="Hour of the daily auto-assignment job")


# Application Constants
class Constants:
    """Engine-wide constants."""

    # Recurring templates: oldest deadline (days in the past) still generated
    RECURRING_GRACE_DAYS: int = 7

    # Milestones (one-time templates)
    MILESTONE_GRACE_DAYS: int = 30  # Trailing window after a missed milestone deadline
    MILESTONE_LEAD_PADDING_DAYS: int = 30  # Added to the template's own lead time for month milestones
    MILESTONE_YEAR_WINDOW_DAYS: int = 60  # Look-ahead for year milestones
    MILESTONE_MONTH_CUTOFF_AGE: int = 2  # Point milestones up to this age are resolved in months
    FLEXIBLE_MILESTONE_OFFSET_DAYS: int = 30  # Soft deadline for ranged milestones
    VACCINE_MONTHS: tuple[int, ...] = (2, 4, 11, 12, 17)

    # Preview
    PREVIEW_DUE_SOON_DAYS: int = 7

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100
    MAX_PER_PAGE_LIMIT: int = 500

    # Job Tracker Configuration
    TRACKER_HISTORY_MAXLEN: int = 100


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
