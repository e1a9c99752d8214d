"""STRATA — Raw Data Models (Append-Only)."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


class Snapshot(SQLModel, table=True):
    """One periodic measurement of an entity's skills.

    Rows are never updated; compaction rolls them into hourly summaries
    and then deletes them.
    """

    __tablename__ = "snapshots"

    id: Optional[int] = Field(default=None, primary_key=True)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )
    entity_id: str = Field(index=True, description="Player UUID")
    display_name: str = Field(default="", description="Player name at capture time")
    power_level: int = Field(description="Sum of all skill levels")
    skills_payload: str = Field(description="Encoded skill → level map")


class LevelUpEvent(SQLModel, table=True):
    """A single skill level-up, pruned independently by age."""

    __tablename__ = "level_ups"

    id: Optional[int] = Field(default=None, primary_key=True)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )
    entity_id: str = Field(index=True)
    display_name: str = Field(default="")
    skill: str
    old_level: int
    new_level: int
