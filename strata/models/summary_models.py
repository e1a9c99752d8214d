"""STRATA — Summary Tier Models.

Each tier holds at most one row per (bucket key, entity). Unique constraints
make the compactor's upserts idempotent — re-running a stage replaces rows
instead of duplicating them.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class SummaryBase(SQLModel):
    """Columns shared by every summary tier."""

    entity_id: str = Field(index=True)
    display_name: str = Field(default="")
    start_power: int = Field(description="MIN power level inside the bucket")
    end_power: int = Field(description="MAX power level inside the bucket")
    skills_payload: str = Field(description="Encoded skill → {start, end, gain} map")


class HourlySummary(SummaryBase, table=True):
    __tablename__ = "hourly_summaries"
    __table_args__ = (
        UniqueConstraint("hour_key", "entity_id", name="uq_hourly_summary"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    hour_key: str = Field(index=True, description="YYYY-MM-DDTHH")


class DailySummary(SummaryBase, table=True):
    __tablename__ = "daily_summaries"
    __table_args__ = (
        UniqueConstraint("date_key", "entity_id", name="uq_daily_summary"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    date_key: str = Field(index=True, description="YYYY-MM-DD")


class WeeklySummary(SummaryBase, table=True):
    __tablename__ = "weekly_summaries"
    __table_args__ = (
        UniqueConstraint("week_key", "entity_id", name="uq_weekly_summary"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    week_key: str = Field(index=True, description="YYYY-Www (ISO week)")
