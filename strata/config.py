"""STRATA — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings

from strata.models.retention_models import RetentionTiers


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Tracking ──
    tracking_enabled: bool = True
    level_up_tracking_enabled: bool = True
    snapshots_enabled: bool = True

    # ── Retention tiers ──
    retention_enabled: bool = True
    cleanup_interval_hours: int = 24
    raw_retention_days: int = 7
    hourly_retention_days: int = 30
    daily_retention_days: int = 180
    weekly_retention_years: int = 5

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    compaction_hour: int = 3  # Daily compaction at 3 AM UTC
    weekly_compaction_day: str = "mon"

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL, otherwise fall back to a local SQLite file."""
        if self.database_url:
            return self.database_url
        if os.environ.get("STRATA_DATA_DIR"):
            return f"sqlite:///{os.environ['STRATA_DATA_DIR']}/progression.db"
        return "sqlite:///./progression.db"

    @property
    def retention_tiers(self) -> RetentionTiers:
        return RetentionTiers(
            raw_days=self.raw_retention_days,
            hourly_days=self.hourly_retention_days,
            daily_days=self.daily_retention_days,
            weekly_years=self.weekly_retention_years,
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
