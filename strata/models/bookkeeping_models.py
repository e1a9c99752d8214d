"""STRATA — Bookkeeping Models (metadata + retention config history)."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


class Metadata(SQLModel, table=True):
    """Operational key/value pairs, e.g. the last successful compression."""

    __tablename__ = "metadata"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConfigSnapshot(SQLModel, table=True):
    """Retention thresholds in effect from `effective_from` onwards.

    Immutable once written. The newest row is the current policy.
    """

    __tablename__ = "config_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    effective_from: datetime = Field(index=True)
    raw_retention_days: int
    hourly_retention_days: int
    daily_retention_days: int
    weekly_retention_years: int
