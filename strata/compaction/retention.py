"""STRATA — Retention Config History.

Keeps the thresholds in effect discoverable to the query planner without
coupling it to live settings: the compactor records the active tiers, the
planner reads back whatever was recorded last.
"""

from datetime import datetime
from typing import Optional

from strata.core.logging import get_logger
from strata.models.bookkeeping_models import ConfigSnapshot
from strata.models.retention_models import DEFAULT_TIERS, RetentionTiers
from strata.store.progression_store import ProgressionStore

logger = get_logger("compaction.retention")


def tiers_from_snapshot(snapshot: ConfigSnapshot) -> RetentionTiers:
    return RetentionTiers(
        raw_days=snapshot.raw_retention_days,
        hourly_days=snapshot.hourly_retention_days,
        daily_days=snapshot.daily_retention_days,
        weekly_years=snapshot.weekly_retention_years,
    )


class ConfigHistory:
    """Records the active retention tiers and serves the newest recorded ones."""

    def __init__(self, store: ProgressionStore, active: RetentionTiers):
        self.store = store
        self.active = active

    def sync(self, now: Optional[datetime] = None) -> bool:
        """Append a history row if the active tiers differ from the newest one."""
        changed = self.store.record_config_if_changed(
            self.active.raw_days,
            self.active.hourly_days,
            self.active.daily_days,
            self.active.weekly_years,
            now=now,
        )
        if changed:
            logger.info(f"Retention policy now in effect — {self.active.describe()}")
        return changed

    def current(self) -> RetentionTiers:
        """Newest recorded tiers, or built-in defaults when nothing is recorded."""
        snapshot = self.store.get_current_config()
        if snapshot is None:
            return DEFAULT_TIERS
        return tiers_from_snapshot(snapshot)
