"""STRATA — Compactor.

Rolls finer tiers into coarser ones on independent schedules:
  raw snapshots  --(raw_days)-->    hourly summaries
  hourly         --(hourly_days)--> daily summaries
  daily          --(daily_days)-->  weekly summaries
  weekly         --(weekly_years)-> deleted

Buckets are calendar-aligned (UTC hour, UTC date, ISO week). Power level is
aggregated as MIN/MAX over the bucket; skills keep the first and last
measured values. Source rows are deleted only after every coarser row of the
stage has been written.
"""

import time
from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple, Optional

from pydantic import BaseModel

from strata.compaction.metrics import CompressionMetrics
from strata.compaction.retention import ConfigHistory
from strata.core import buckets
from strata.core.logging import get_logger
from strata.models.skill_models import aggregate_skills, start_levels
from strata.models.trend_models import Tier
from strata.store.progression_store import CompactionGroup, ProgressionStore

logger = get_logger("compaction")

# Metadata key for tracking the last full retention run
METADATA_LAST_COMPRESSION = "last_compression"

# Duration thresholds for slow-run logging
WARNING_DURATION_MS = 10_000
CRITICAL_DURATION_MS = 30_000


class StageResult(NamedTuple):
    compacted: int
    deleted: int


class RetentionStats(BaseModel):
    """Outcome of a full retention run."""

    hourly_compacted: int = 0
    daily_compacted: int = 0
    weekly_compacted: int = 0
    raw_deleted: int = 0
    hourly_deleted: int = 0
    daily_deleted: int = 0
    weekly_deleted: int = 0
    level_ups_deleted: int = 0
    raw_to_hourly_ms: int = 0
    hourly_to_daily_ms: int = 0
    daily_to_weekly_ms: int = 0
    cleanup_ms: int = 0
    total_ms: int = 0
    was_catch_up: bool = False

    def has_activity(self) -> bool:
        return any(
            (
                self.hourly_compacted,
                self.daily_compacted,
                self.weekly_compacted,
                self.weekly_deleted,
                self.level_ups_deleted,
            )
        )


def _fold_into_existing(existing, group: CompactionGroup) -> CompactionGroup:
    """Merge a new group into the coarser row already stored for its bucket.

    The stored row always covers earlier source data (compaction runs
    oldest-first), so it supplies the start skills.
    """
    return CompactionGroup(
        bucket_key=group.bucket_key,
        entity_id=group.entity_id,
        display_name=group.display_name,
        start_power=min(existing.start_power, group.start_power),
        end_power=max(existing.end_power, group.end_power),
        start_skills=start_levels(existing.skills),
        end_skills=group.end_skills,
        source_rows=group.source_rows,
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class Compactor:
    """Scheduler-facing compaction and pruning operations."""

    def __init__(
        self,
        store: ProgressionStore,
        history: ConfigHistory,
        clock: Callable[[], datetime] = buckets.utcnow,
        cleanup_interval_hours: int = 24,
        metrics: Optional[CompressionMetrics] = None,
    ):
        self.store = store
        self.history = history
        self.clock = clock
        self.cleanup_interval_hours = cleanup_interval_hours
        self.metrics = metrics or CompressionMetrics()

    # ── Stages ──

    def _run_stage(
        self,
        stage: str,
        target: Tier,
        groups: List[CompactionGroup],
        upsert: Callable[..., bool],
        delete_sources: Callable[[datetime], int],
        cutoff: datetime,
    ) -> StageResult:
        compacted = 0
        failed = 0
        for group in groups:
            read_ok, existing = self.store.lookup_summary(
                target, group.bucket_key, group.entity_id
            )
            if not read_ok:
                # Writing blind could overwrite earlier data in this bucket
                failed += 1
                continue
            if existing is not None:
                group = _fold_into_existing(existing, group)
            ok = upsert(
                group.bucket_key,
                group.entity_id,
                group.display_name,
                group.start_power,
                group.end_power,
                aggregate_skills(group.start_skills, group.end_skills),
            )
            if ok:
                compacted += 1
            else:
                failed += 1

        if failed:
            logger.warning(
                f"{stage}: {failed} of {len(groups)} summaries failed to write; "
                "keeping source rows for the next run",
                extra={"stage": stage},
            )
            return StageResult(compacted, 0)

        deleted = delete_sources(cutoff)
        if compacted or deleted:
            logger.info(
                f"{stage}: compacted {compacted} bucket(s), deleted {deleted} source row(s)",
                extra={"stage": stage},
            )
        return StageResult(compacted, deleted)

    def compact_raw_to_hourly(self) -> StageResult:
        """Roll raw snapshots older than raw_days into hourly summaries."""
        now = self.clock()
        self.history.sync(now)
        cutoff = now - timedelta(days=self.history.active.raw_days)
        return self._run_stage(
            "raw_to_hourly",
            Tier.HOURLY,
            self.store.snapshots_for_hourly_compaction(cutoff),
            self.store.upsert_hourly_summary,
            self.store.delete_snapshots_older_than,
            cutoff,
        )

    def compact_hourly_to_daily(self) -> StageResult:
        """Roll hourly summaries older than hourly_days into daily summaries."""
        now = self.clock()
        self.history.sync(now)
        cutoff = now - timedelta(days=self.history.active.hourly_days)
        return self._run_stage(
            "hourly_to_daily",
            Tier.DAILY,
            self.store.hourly_for_daily_compaction(cutoff),
            self.store.upsert_daily_summary,
            self.store.delete_hourly_older_than,
            cutoff,
        )

    def compact_daily_to_weekly(self) -> StageResult:
        """Roll daily summaries older than daily_days into weekly summaries."""
        now = self.clock()
        self.history.sync(now)
        cutoff = now - timedelta(days=self.history.active.daily_days)
        return self._run_stage(
            "daily_to_weekly",
            Tier.WEEKLY,
            self.store.daily_for_weekly_compaction(cutoff),
            self.store.upsert_weekly_summary,
            self.store.delete_daily_older_than,
            cutoff,
        )

    # ── Pruning ──

    def prune_weekly(self) -> int:
        """Delete weekly summaries older than weekly_years."""
        now = self.clock()
        cutoff = now - timedelta(days=self.history.active.weekly_years * 365)
        return self.store.delete_weekly_older_than(cutoff)

    def prune_level_ups(self, older_than: Optional[datetime] = None) -> int:
        """Delete level-up events older than `older_than` (default: full retention)."""
        if older_than is None:
            older_than = self.clock() - timedelta(
                days=self.history.active.total_retention_days
            )
        deleted = self.store.delete_level_ups_older_than(older_than)
        if deleted:
            logger.info(f"Pruned {deleted} level-up event(s)", extra={"stage": "level_ups"})
        return deleted

    # ── Full run ──

    def run_retention(self, was_catch_up: bool = False) -> RetentionStats:
        """Run every stage in order, then prune, then record the run time."""
        started = time.monotonic()
        stats = RetentionStats(was_catch_up=was_catch_up)

        phase = time.monotonic()
        stats.hourly_compacted, stats.raw_deleted = self.compact_raw_to_hourly()
        stats.raw_to_hourly_ms = _elapsed_ms(phase)

        phase = time.monotonic()
        stats.daily_compacted, stats.hourly_deleted = self.compact_hourly_to_daily()
        stats.hourly_to_daily_ms = _elapsed_ms(phase)

        phase = time.monotonic()
        stats.weekly_compacted, stats.daily_deleted = self.compact_daily_to_weekly()
        stats.daily_to_weekly_ms = _elapsed_ms(phase)

        phase = time.monotonic()
        stats.weekly_deleted = self.prune_weekly()
        stats.level_ups_deleted = self.prune_level_ups()
        stats.cleanup_ms = _elapsed_ms(phase)

        stats.total_ms = _elapsed_ms(started)
        self.store.set_metadata(METADATA_LAST_COMPRESSION, self.clock().isoformat())
        self.metrics.record_run(stats.total_ms, was_catch_up, stats.model_dump())

        if stats.total_ms > CRITICAL_DURATION_MS:
            logger.error(
                f"Compression critically slow: {stats.total_ms}ms — investigate database performance",
                extra={"duration_ms": stats.total_ms},
            )
        elif stats.total_ms > WARNING_DURATION_MS:
            logger.warning(
                f"Compression took {stats.total_ms}ms (threshold: {WARNING_DURATION_MS}ms)",
                extra={"duration_ms": stats.total_ms},
            )

        if stats.has_activity():
            logger.info(
                f"Progression retention ({stats.total_ms}ms): "
                f"hourly+{stats.hourly_compacted}, daily+{stats.daily_compacted}, "
                f"weekly+{stats.weekly_compacted}, weekly-{stats.weekly_deleted}, "
                f"events-{stats.level_ups_deleted}",
                extra={"duration_ms": stats.total_ms},
            )
        else:
            logger.debug(
                f"Progression retention ({stats.total_ms}ms): no data to compact or delete"
            )
        return stats

    def last_run(self) -> Optional[datetime]:
        value = self.store.get_metadata(METADATA_LAST_COMPRESSION)
        if value is None:
            return None
        try:
            return buckets.as_utc(datetime.fromisoformat(value))
        except ValueError:
            logger.warning(f"Invalid {METADATA_LAST_COMPRESSION} timestamp: {value}")
            return None

    def is_overdue(self) -> bool:
        """True when no retention run is recorded within cleanup_interval_hours."""
        last = self.last_run()
        threshold = self.clock() - timedelta(hours=self.cleanup_interval_hours)
        return last is None or last < threshold
