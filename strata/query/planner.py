"""STRATA — Hybrid Query Planner.

Answers "trend of metric M for entity E over timeframe F" by reading each
tier for the slice of the window it currently holds:

    weekly        daily           hourly          raw
  ──────────┼───────────────┼───────────────┼──────────────→ now
        dailyBoundary   hourlyBoundary   rawBoundary

Boundaries come from the newest recorded retention policy, never from the
timeframe itself. Points from all tiers are merged into one ascending,
de-duplicated sequence.
"""

from datetime import datetime, timedelta
from typing import Callable, List, NamedTuple

from strata.compaction.retention import ConfigHistory
from strata.core import buckets
from strata.core.errors import InvalidPolicyError
from strata.core.logging import get_logger
from strata.models.retention_models import RetentionTiers
from strata.models.trend_models import (
    Tier,
    Timeframe,
    TrendError,
    TrendNoData,
    TrendPoint,
    TrendResult,
    TrendSuccess,
)
from strata.store.progression_store import ProgressionStore

logger = get_logger("query.planner")


class TierRange(NamedTuple):
    tier: Tier
    start: datetime
    end: datetime


def window_start(timeframe: Timeframe, now: datetime) -> datetime:
    if timeframe.days < 0:
        return buckets.EPOCH
    return now - timedelta(days=timeframe.days)


def plan_ranges(
    tiers: RetentionTiers, timeframe: Timeframe, now: datetime
) -> List[TierRange]:
    """Split the requested window into disjoint per-tier ranges, finest first.

    Ranges whose start is not before their end are dropped.
    """
    tiers.validate_ordering()
    start = window_start(timeframe, now)

    raw_boundary = now - timedelta(days=tiers.raw_days)
    hourly_boundary = now - timedelta(days=tiers.hourly_days)
    daily_boundary = now - timedelta(days=tiers.daily_days)

    candidates = [
        TierRange(Tier.RAW, max(start, raw_boundary), now),
        TierRange(Tier.HOURLY, max(start, hourly_boundary), raw_boundary),
        TierRange(Tier.DAILY, max(start, daily_boundary), hourly_boundary),
        TierRange(Tier.WEEKLY, start, daily_boundary),
    ]
    return [r for r in candidates if r.start < r.end]


def merge_points(points: List[TrendPoint]) -> List[TrendPoint]:
    """Sort ascending by timestamp and keep the first point per exact timestamp.

    The sort is stable, so on a tie the point from the finer tier wins.
    """
    merged: List[TrendPoint] = []
    seen = set()
    for point in sorted(points, key=lambda p: p.timestamp):
        if point.timestamp in seen:
            continue
        seen.add(point.timestamp)
        merged.append(point)
    return merged


class QueryPlanner:
    """Consumer-facing trend queries across all tiers."""

    def __init__(
        self,
        store: ProgressionStore,
        history: ConfigHistory,
        clock: Callable[[], datetime] = buckets.utcnow,
    ):
        self.store = store
        self.history = history
        self.clock = clock

    def get_trend(
        self,
        entity_id: str,
        display_name: str,
        metric: str,
        timeframe: Timeframe,
    ) -> TrendResult:
        """Return TrendSuccess, TrendNoData or TrendError — never raises."""
        metric = metric.upper()
        try:
            now = self.clock()
            ranges = plan_ranges(self.history.current(), timeframe, now)

            points: List[TrendPoint] = []
            for r in ranges:
                tier_points = self.store.trend_points(
                    r.tier, entity_id, metric, r.start, r.end
                )
                logger.debug(
                    f"{r.tier.value}: {len(tier_points)} point(s) "
                    f"in [{r.start.isoformat()}, {r.end.isoformat()})",
                    extra={"entity_id": entity_id, "tier": r.tier.value},
                )
                points.extend(tier_points)

            # Summary buckets straddling the window start are stamped before it
            start = window_start(timeframe, now)
            merged = [p for p in merge_points(points) if p.timestamp >= start]
            if not merged:
                return TrendNoData(
                    reason=(
                        f"No progression data found for {display_name} in the "
                        f"{timeframe.display_name.lower()} timeframe."
                    )
                )
            return TrendSuccess(
                entity_id=entity_id,
                display_name=display_name,
                metric=metric,
                timeframe=timeframe,
                points=merged,
            )
        except InvalidPolicyError as e:
            logger.error(f"Invalid retention policy: {e}", extra={"entity_id": entity_id})
            return TrendError(message=f"Invalid retention configuration: {e}")
        except Exception as e:
            logger.warning(
                f"Error querying trend for {display_name}: {e}",
                extra={"entity_id": entity_id},
            )
            return TrendError(message=f"Failed to query progression data: {e}")
