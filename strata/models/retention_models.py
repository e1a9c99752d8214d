"""STRATA — Retention Policy Models.

Tiered retention follows a logarithmic pattern:
  raw snapshots → hourly aggregates → daily aggregates → weekly aggregates → deleted

Each threshold says how long data stays at that resolution before it is
compacted into the next tier (or, for weekly data, deleted).
"""

from pydantic import BaseModel, ConfigDict

from strata.core.errors import InvalidPolicyError


class RetentionTiers(BaseModel):
    """Retention thresholds for each storage tier."""

    model_config = ConfigDict(frozen=True)

    raw_days: int = 7
    hourly_days: int = 30
    daily_days: int = 180
    weekly_years: int = 5

    @property
    def total_retention_days(self) -> int:
        """Level-up events are kept for the full retention period."""
        return self.daily_days + self.weekly_years * 365

    def validate_ordering(self) -> None:
        """Raise InvalidPolicyError unless raw ≤ hourly ≤ daily and all are positive."""
        values = {
            "raw_days": self.raw_days,
            "hourly_days": self.hourly_days,
            "daily_days": self.daily_days,
            "weekly_years": self.weekly_years,
        }
        for name, value in values.items():
            if value <= 0:
                raise InvalidPolicyError(f"{name} must be positive, got {value}")
        if not (self.raw_days <= self.hourly_days <= self.daily_days):
            raise InvalidPolicyError(
                "Retention tiers must satisfy raw_days <= hourly_days <= daily_days "
                f"(got {self.raw_days}/{self.hourly_days}/{self.daily_days})"
            )

    def describe(self) -> str:
        return (
            f"raw: {self.raw_days}d, hourly: {self.hourly_days}d, "
            f"daily: {self.daily_days}d, weekly: {self.weekly_years}y"
        )


DEFAULT_TIERS = RetentionTiers()
