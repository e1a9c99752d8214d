"""STRATA — Progression Store.

Durable CRUD over the raw tier, the three summary tiers, level-up events,
operational metadata and the retention config history.

Every public method is best-effort: storage and decode failures are logged
with operation context and turned into an empty/zero/False result.

All mutating operations are serialized through one lock per store. Reads
do not take the lock; on file-backed SQLite the engine runs in WAL mode so
readers see a consistent snapshot while compaction writes.
"""

import functools
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar

from sqlalchemy import delete, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from strata.core import buckets
from strata.core.errors import DecodeError, EncodeError, NotFound, StorageError
from strata.core.logging import get_logger
from strata.models.bookkeeping_models import ConfigSnapshot, Metadata
from strata.models.raw_models import LevelUpEvent, Snapshot
from strata.models.skill_models import (
    SkillAggregates,
    SkillLevels,
    end_levels,
    start_levels,
)
from strata.models.summary_models import DailySummary, HourlySummary, WeeklySummary
from strata.models.trend_models import POWER_METRIC, Tier, TrendPoint
from strata.store import skill_codec

logger = get_logger("store")

T = TypeVar("T")


# ─────────────────────────────────────────────
# VALUE TYPES
# ─────────────────────────────────────────────


@dataclass
class CompactionGroup:
    """One (bucket, entity) group of source rows, ready to be rolled up."""

    bucket_key: str
    entity_id: str
    display_name: str
    start_power: int  # MIN over the window
    end_power: int  # MAX over the window
    start_skills: SkillLevels  # from the chronologically first row
    end_skills: SkillLevels  # from the chronologically last row
    source_rows: int = 0


@dataclass
class SummaryRecord:
    """Decoded summary row from any tier."""

    tier: Tier
    bucket_key: str
    entity_id: str
    display_name: str
    start_power: int
    end_power: int
    skills: SkillAggregates


# Tier → (model, bucket key column name, key function, key → bucket start)
_SUMMARY_TIERS: Dict[Tier, Tuple[Type[SQLModel], str, Callable, Callable]] = {
    Tier.HOURLY: (HourlySummary, "hour_key", buckets.hour_key, buckets.hour_key_start),
    Tier.DAILY: (DailySummary, "date_key", buckets.date_key, buckets.date_key_start),
    Tier.WEEKLY: (WeeklySummary, "week_key", buckets.week_key, buckets.week_key_start),
}

_BUCKET_WIDTH = {
    Tier.HOURLY: timedelta(hours=1),
    Tier.DAILY: timedelta(days=1),
    Tier.WEEKLY: timedelta(weeks=1),
}


def normalize_skills(skills: SkillLevels) -> SkillLevels:
    """Skill names are stored upper-case, matching how metrics are queried."""
    return {name.upper(): level for name, level in skills.items()}


def _call_storage(fn: Callable[..., T], operation: str, *args, **kwargs) -> T:
    """Call `fn`, re-raising driver errors as StorageError."""
    try:
        return fn(*args, **kwargs)
    except SQLAlchemyError as e:
        raise StorageError(str(e), operation) from e


def best_effort(operation: str, default: Callable[[], T]):
    """Log storage/decode failures for `operation` and return `default()` instead."""

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> T:
            try:
                return _call_storage(fn, operation, *args, **kwargs)
            except (StorageError, DecodeError, EncodeError) as e:
                logger.warning(
                    f"Failed to {operation}: {e}", extra={"operation": operation}
                )
                return default()

        return wrapper

    return decorator


class ProgressionStore:
    """Single-writer store over one SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._write_lock = threading.RLock()

    # ── Ingestion ──

    @best_effort("insert snapshot", lambda: False)
    def insert_snapshot(
        self,
        entity_id: str,
        display_name: str,
        power_level: int,
        skills: SkillLevels,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        """Append one raw measurement (timestamp defaults to now)."""
        row = Snapshot(
            timestamp=buckets.as_utc(timestamp or buckets.utcnow()),
            entity_id=entity_id,
            display_name=display_name,
            power_level=power_level,
            skills_payload=skill_codec.encode_levels(normalize_skills(skills)),
        )
        with self._write_lock, Session(self.engine) as session:
            session.add(row)
            session.commit()
        return True

    @best_effort("insert level-up event", lambda: False)
    def insert_level_up(
        self,
        entity_id: str,
        display_name: str,
        skill: str,
        old_level: int,
        new_level: int,
        timestamp: Optional[datetime] = None,
    ) -> bool:
        row = LevelUpEvent(
            timestamp=buckets.as_utc(timestamp or buckets.utcnow()),
            entity_id=entity_id,
            display_name=display_name,
            skill=skill.upper(),
            old_level=old_level,
            new_level=new_level,
        )
        with self._write_lock, Session(self.engine) as session:
            session.add(row)
            session.commit()
        return True

    @best_effort("list level-up events", list)
    def get_level_ups(
        self, entity_id: str, since: Optional[datetime] = None
    ) -> List[LevelUpEvent]:
        query = select(LevelUpEvent).where(LevelUpEvent.entity_id == entity_id)
        if since is not None:
            query = query.where(LevelUpEvent.timestamp >= buckets.as_utc(since))
        with Session(self.engine) as session:
            return list(
                session.exec(query.order_by(LevelUpEvent.timestamp, LevelUpEvent.id)).all()
            )

    # ── Summary upserts ──

    @staticmethod
    def _find_summary_row(session: Session, tier: Tier, bucket_key: str, entity_id: str):
        model, key_column, _, _ = _SUMMARY_TIERS[tier]
        row = session.exec(
            select(model).where(
                getattr(model, key_column) == bucket_key,
                model.entity_id == entity_id,
            )
        ).first()
        if row is None:
            raise NotFound(f"No {tier.value} summary for {entity_id} at {bucket_key}")
        return row

    def _upsert_summary(
        self,
        tier: Tier,
        bucket_key: str,
        entity_id: str,
        display_name: str,
        start_power: int,
        end_power: int,
        skills: SkillAggregates,
    ) -> bool:
        model, key_column, _, _ = _SUMMARY_TIERS[tier]
        payload = skill_codec.encode_aggregates(skills)
        with self._write_lock, Session(self.engine) as session:
            try:
                existing = self._find_summary_row(session, tier, bucket_key, entity_id)
                existing.display_name = display_name
                existing.start_power = start_power
                existing.end_power = end_power
                existing.skills_payload = payload
                session.add(existing)
            except NotFound:
                session.add(
                    model(
                        **{key_column: bucket_key},
                        entity_id=entity_id,
                        display_name=display_name,
                        start_power=start_power,
                        end_power=end_power,
                        skills_payload=payload,
                    )
                )
            session.commit()
        return True

    @best_effort("upsert hourly summary", lambda: False)
    def upsert_hourly_summary(
        self,
        hour_key: str,
        entity_id: str,
        display_name: str,
        start_power: int,
        end_power: int,
        skills: SkillAggregates,
    ) -> bool:
        return self._upsert_summary(
            Tier.HOURLY, hour_key, entity_id, display_name, start_power, end_power, skills
        )

    @best_effort("upsert daily summary", lambda: False)
    def upsert_daily_summary(
        self,
        date_key: str,
        entity_id: str,
        display_name: str,
        start_power: int,
        end_power: int,
        skills: SkillAggregates,
    ) -> bool:
        return self._upsert_summary(
            Tier.DAILY, date_key, entity_id, display_name, start_power, end_power, skills
        )

    @best_effort("upsert weekly summary", lambda: False)
    def upsert_weekly_summary(
        self,
        week_key: str,
        entity_id: str,
        display_name: str,
        start_power: int,
        end_power: int,
        skills: SkillAggregates,
    ) -> bool:
        return self._upsert_summary(
            Tier.WEEKLY, week_key, entity_id, display_name, start_power, end_power, skills
        )

    @best_effort("read summary", lambda: (False, None))
    def lookup_summary(
        self, tier: Tier, bucket_key: str, entity_id: str
    ) -> Tuple[bool, Optional[SummaryRecord]]:
        """(read_ok, record). A missing row is (True, None); a failed read is (False, None).

        An undecodable skills payload still yields the row's power columns,
        with empty skills.
        """
        with Session(self.engine) as session:
            try:
                row = self._find_summary_row(session, tier, bucket_key, entity_id)
            except NotFound:
                return True, None
        return True, self._to_record(tier, row)

    def get_summary(
        self, tier: Tier, bucket_key: str, entity_id: str
    ) -> Optional[SummaryRecord]:
        _, record = self.lookup_summary(tier, bucket_key, entity_id)
        return record

    def _to_record(self, tier: Tier, row) -> SummaryRecord:
        _, key_column, _, _ = _SUMMARY_TIERS[tier]
        bucket_key = getattr(row, key_column)
        return SummaryRecord(
            tier=tier,
            bucket_key=bucket_key,
            entity_id=row.entity_id,
            display_name=row.display_name,
            start_power=row.start_power,
            end_power=row.end_power,
            skills=self._decode_aggregates_or_empty(
                row.skills_payload, f"{tier.value} {bucket_key}"
            ),
        )

    # ── Deletion ──

    def _delete(self, statement) -> int:
        with self._write_lock, self.engine.begin() as conn:
            result = conn.execute(statement)
            return result.rowcount or 0

    @best_effort("delete old snapshots", int)
    def delete_snapshots_older_than(self, older_than: datetime) -> int:
        return self._delete(
            delete(Snapshot).where(Snapshot.timestamp < buckets.as_utc(older_than))
        )

    @best_effort("delete old level-up events", int)
    def delete_level_ups_older_than(self, older_than: datetime) -> int:
        return self._delete(
            delete(LevelUpEvent).where(
                LevelUpEvent.timestamp < buckets.as_utc(older_than)
            )
        )

    def _delete_summaries_older_than(self, tier: Tier, older_than: datetime) -> int:
        model, key_column, key_fn, _ = _SUMMARY_TIERS[tier]
        return self._delete(
            delete(model).where(getattr(model, key_column) < key_fn(older_than))
        )

    @best_effort("delete old hourly summaries", int)
    def delete_hourly_older_than(self, older_than: datetime) -> int:
        return self._delete_summaries_older_than(Tier.HOURLY, older_than)

    @best_effort("delete old daily summaries", int)
    def delete_daily_older_than(self, older_than: datetime) -> int:
        return self._delete_summaries_older_than(Tier.DAILY, older_than)

    @best_effort("delete old weekly summaries", int)
    def delete_weekly_older_than(self, older_than: datetime) -> int:
        return self._delete_summaries_older_than(Tier.WEEKLY, older_than)

    # ── Compaction reads ──

    @staticmethod
    def _decode_levels_or_empty(payload: str, context: str) -> SkillLevels:
        try:
            return skill_codec.decode_levels(payload)
        except DecodeError as e:
            logger.warning(f"Treating skills as empty for {context}: {e}")
            return {}

    @staticmethod
    def _decode_aggregates_or_empty(payload: str, context: str) -> SkillAggregates:
        try:
            return skill_codec.decode_aggregates(payload)
        except DecodeError as e:
            logger.warning(f"Treating skills as empty for {context}: {e}")
            return {}

    @best_effort("read snapshots for hourly compaction", list)
    def snapshots_for_hourly_compaction(
        self, older_than: datetime
    ) -> List[CompactionGroup]:
        """Group raw snapshots older than `older_than` by (hour, entity)."""
        with Session(self.engine) as session:
            rows = session.exec(
                select(Snapshot)
                .where(Snapshot.timestamp < buckets.as_utc(older_than))
                .order_by(Snapshot.entity_id, Snapshot.timestamp, Snapshot.id)
            ).all()

        grouped: Dict[Tuple[str, str], List[Snapshot]] = defaultdict(list)
        for row in rows:
            grouped[(buckets.hour_key(row.timestamp), row.entity_id)].append(row)

        groups: List[CompactionGroup] = []
        for (hour, entity_id), members in grouped.items():
            first, last = members[0], members[-1]
            groups.append(
                CompactionGroup(
                    bucket_key=hour,
                    entity_id=entity_id,
                    display_name=last.display_name,
                    start_power=min(m.power_level for m in members),
                    end_power=max(m.power_level for m in members),
                    start_skills=self._decode_levels_or_empty(
                        first.skills_payload, f"snapshot {first.id}"
                    ),
                    end_skills=self._decode_levels_or_empty(
                        last.skills_payload, f"snapshot {last.id}"
                    ),
                    source_rows=len(members),
                )
            )
        return groups

    def _summaries_for_compaction(
        self,
        source: Tier,
        older_than: datetime,
        target_key: Callable[[str], str],
    ) -> List[CompactionGroup]:
        model, key_column, key_fn, _ = _SUMMARY_TIERS[source]
        key_attr = getattr(model, key_column)
        with Session(self.engine) as session:
            rows = session.exec(
                select(model)
                .where(key_attr < key_fn(older_than))
                .order_by(model.entity_id, key_attr)
            ).all()

        grouped: Dict[Tuple[str, str], list] = defaultdict(list)
        for row in rows:
            grouped[(target_key(getattr(row, key_column)), row.entity_id)].append(row)

        groups: List[CompactionGroup] = []
        for (bucket, entity_id), members in grouped.items():
            first, last = members[0], members[-1]
            first_skills = self._decode_aggregates_or_empty(
                first.skills_payload, f"{source.value} {getattr(first, key_column)}"
            )
            last_skills = self._decode_aggregates_or_empty(
                last.skills_payload, f"{source.value} {getattr(last, key_column)}"
            )
            groups.append(
                CompactionGroup(
                    bucket_key=bucket,
                    entity_id=entity_id,
                    display_name=last.display_name,
                    start_power=min(m.start_power for m in members),
                    end_power=max(m.end_power for m in members),
                    start_skills=start_levels(first_skills),
                    end_skills=end_levels(last_skills),
                    source_rows=len(members),
                )
            )
        return groups

    @best_effort("read hourly summaries for daily compaction", list)
    def hourly_for_daily_compaction(self, older_than: datetime) -> List[CompactionGroup]:
        """Group hourly rows whose hour precedes `older_than`'s hour by (date, entity)."""
        return self._summaries_for_compaction(
            Tier.HOURLY, older_than, buckets.hour_key_to_date_key
        )

    @best_effort("read daily summaries for weekly compaction", list)
    def daily_for_weekly_compaction(self, older_than: datetime) -> List[CompactionGroup]:
        """Group daily rows whose date precedes `older_than`'s date by (ISO week, entity)."""
        return self._summaries_for_compaction(
            Tier.DAILY, older_than, buckets.date_key_to_week_key
        )

    # ── Trend reads ──

    def trend_points(
        self,
        tier: Tier,
        entity_id: str,
        metric: str,
        start: datetime,
        end: datetime,
    ) -> List[TrendPoint]:
        """Points for `metric` in `[start, end)` from a single tier, ascending."""
        if tier == Tier.RAW:
            if metric == POWER_METRIC:
                return self.power_from_snapshots(entity_id, start, end)
            return self.skill_from_snapshots(entity_id, metric, start, end)
        if metric == POWER_METRIC:
            return self.power_from_summaries(tier, entity_id, start, end)
        return self.skill_from_summaries(tier, entity_id, metric, start, end)

    def _snapshots_in_range(
        self, entity_id: str, start: datetime, end: datetime
    ) -> List[Snapshot]:
        with Session(self.engine) as session:
            return list(
                session.exec(
                    select(Snapshot)
                    .where(
                        Snapshot.entity_id == entity_id,
                        Snapshot.timestamp >= buckets.as_utc(start),
                        Snapshot.timestamp < buckets.as_utc(end),
                    )
                    .order_by(Snapshot.timestamp, Snapshot.id)
                ).all()
            )

    @best_effort("read power level from snapshots", list)
    def power_from_snapshots(
        self, entity_id: str, start: datetime, end: datetime
    ) -> List[TrendPoint]:
        return [
            TrendPoint(timestamp=buckets.as_utc(row.timestamp), level=row.power_level)
            for row in self._snapshots_in_range(entity_id, start, end)
        ]

    @best_effort("read skill level from snapshots", list)
    def skill_from_snapshots(
        self, entity_id: str, skill: str, start: datetime, end: datetime
    ) -> List[TrendPoint]:
        points: List[TrendPoint] = []
        for row in self._snapshots_in_range(entity_id, start, end):
            skills = self._decode_levels_or_empty(row.skills_payload, f"snapshot {row.id}")
            if skill in skills:
                points.append(
                    TrendPoint(timestamp=buckets.as_utc(row.timestamp), level=skills[skill])
                )
        return points

    def _summaries_in_range(
        self, tier: Tier, entity_id: str, start: datetime, end: datetime
    ) -> List[Tuple[datetime, object]]:
        """(bucket start, row) pairs whose bucket overlaps [start, end).

        A bucket straddling a tier boundary is read by both neighbouring
        tiers; each tier only holds its own side of the data.
        """
        model, key_column, key_fn, key_start = _SUMMARY_TIERS[tier]
        width = _BUCKET_WIDTH[tier]
        key_attr = getattr(model, key_column)
        with Session(self.engine) as session:
            rows = session.exec(
                select(model)
                .where(
                    model.entity_id == entity_id,
                    key_attr >= key_fn(start),
                    key_attr <= key_fn(end),
                )
                .order_by(key_attr)
            ).all()

        start, end = buckets.as_utc(start), buckets.as_utc(end)
        in_range = []
        for row in rows:
            bucket_start = key_start(getattr(row, key_column))
            if bucket_start < end and bucket_start + width > start:
                in_range.append((bucket_start, row))
        return in_range

    @best_effort("read power level from summaries", list)
    def power_from_summaries(
        self, tier: Tier, entity_id: str, start: datetime, end: datetime
    ) -> List[TrendPoint]:
        return [
            TrendPoint(timestamp=bucket_start, level=row.end_power)
            for bucket_start, row in self._summaries_in_range(tier, entity_id, start, end)
        ]

    @best_effort("read skill level from summaries", list)
    def skill_from_summaries(
        self, tier: Tier, entity_id: str, skill: str, start: datetime, end: datetime
    ) -> List[TrendPoint]:
        points: List[TrendPoint] = []
        for bucket_start, row in self._summaries_in_range(tier, entity_id, start, end):
            skills = self._decode_aggregates_or_empty(
                row.skills_payload, f"{tier.value} summary {row.id}"
            )
            if skill in skills:
                points.append(TrendPoint(timestamp=bucket_start, level=skills[skill].end))
        return points

    # ── Metadata ──

    @best_effort("read metadata", lambda: None)
    def get_metadata(self, key: str) -> Optional[str]:
        with Session(self.engine) as session:
            row = session.get(Metadata, key)
            return row.value if row else None

    @best_effort("write metadata", lambda: False)
    def set_metadata(self, key: str, value: str) -> bool:
        with self._write_lock, Session(self.engine) as session:
            row = session.get(Metadata, key)
            if row:
                row.value = value
                row.updated_at = buckets.utcnow()
            else:
                row = Metadata(key=key, value=value)
            session.add(row)
            session.commit()
        return True

    # ── Config history ──

    @best_effort("read current retention config", lambda: None)
    def get_current_config(self) -> Optional[ConfigSnapshot]:
        with Session(self.engine) as session:
            return session.exec(
                select(ConfigSnapshot).order_by(ConfigSnapshot.id.desc()).limit(1)  # type: ignore
            ).first()

    @best_effort("list retention config history", list)
    def get_config_history(self) -> List[ConfigSnapshot]:
        with Session(self.engine) as session:
            return list(
                session.exec(select(ConfigSnapshot).order_by(ConfigSnapshot.id)).all()
            )

    @best_effort("record retention config", lambda: False)
    def record_config_if_changed(
        self,
        raw_days: int,
        hourly_days: int,
        daily_days: int,
        weekly_years: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Append a config row only if it differs from the newest one."""
        with self._write_lock, Session(self.engine) as session:
            latest = session.exec(
                select(ConfigSnapshot).order_by(ConfigSnapshot.id.desc()).limit(1)  # type: ignore
            ).first()
            if latest and (
                latest.raw_retention_days,
                latest.hourly_retention_days,
                latest.daily_retention_days,
                latest.weekly_retention_years,
            ) == (raw_days, hourly_days, daily_days, weekly_years):
                return False
            session.add(
                ConfigSnapshot(
                    effective_from=buckets.as_utc(now or buckets.utcnow()),
                    raw_retention_days=raw_days,
                    hourly_retention_days=hourly_days,
                    daily_retention_days=daily_days,
                    weekly_retention_years=weekly_years,
                )
            )
            session.commit()
        logger.info(
            f"Recorded retention config raw={raw_days}d hourly={hourly_days}d "
            f"daily={daily_days}d weekly={weekly_years}y"
        )
        return True

    # ── Stats ──

    @best_effort("count rows", dict)
    def table_counts(self) -> Dict[str, int]:
        models = {
            "snapshots": Snapshot,
            "level_ups": LevelUpEvent,
            "hourly_summaries": HourlySummary,
            "daily_summaries": DailySummary,
            "weekly_summaries": WeeklySummary,
            "config_history": ConfigSnapshot,
        }
        with Session(self.engine) as session:
            return {
                name: session.exec(select(func.count()).select_from(model)).one()
                for name, model in models.items()
            }

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Progression store closed")
