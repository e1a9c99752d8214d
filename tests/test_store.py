from datetime import timedelta

from sqlalchemy import inspect, text
from sqlmodel import Session, SQLModel, select

from strata.core import buckets
from strata.models.raw_models import LevelUpEvent, Snapshot
from strata.models.skill_models import aggregate_skills
from strata.models.summary_models import HourlySummary
from strata.models.trend_models import POWER_METRIC, Tier
from tests.utils import NOW


def test_init_creates_all_tables(engine):
    tables = set(inspect(engine).get_table_names())
    assert {
        "snapshots",
        "level_ups",
        "hourly_summaries",
        "daily_summaries",
        "weekly_summaries",
        "metadata",
        "config_history",
    } <= tables


def test_insert_snapshot_appends_row(store, engine):
    assert store.insert_snapshot("alice", "Alice", 175, {"MINING": 100, "FISHING": 75})

    with Session(engine) as session:
        rows = session.exec(select(Snapshot)).all()
    assert len(rows) == 1
    assert rows[0].entity_id == "alice"
    assert rows[0].display_name == "Alice"
    assert rows[0].power_level == 175


def test_insert_snapshot_does_not_validate_monotonicity(store, snapshot):
    snapshot("alice", NOW - timedelta(minutes=10), {"MINING": 50})
    snapshot("alice", NOW - timedelta(minutes=5), {"MINING": 10})

    points = store.trend_points(
        Tier.RAW, "alice", "MINING", NOW - timedelta(hours=1), NOW
    )
    assert [p.level for p in points] == [50, 10]


def test_insert_level_up_and_list(store):
    assert store.insert_level_up(
        "alice", "Alice", "MINING", 99, 100, timestamp=NOW - timedelta(days=1)
    )
    assert store.insert_level_up("alice", "Alice", "FISHING", 9, 10, timestamp=NOW)

    events = store.get_level_ups("alice")
    assert [(e.skill, e.old_level, e.new_level) for e in events] == [
        ("MINING", 99, 100),
        ("FISHING", 9, 10),
    ]
    assert len(store.get_level_ups("alice", since=NOW - timedelta(hours=1))) == 1


def test_upsert_same_bucket_twice_keeps_one_row_with_latest_values(store, engine):
    skills_a = aggregate_skills({"MINING": 1}, {"MINING": 2})
    skills_b = aggregate_skills({"MINING": 5}, {"MINING": 9})

    assert store.upsert_hourly_summary("2026-03-01T10", "alice", "Alice", 10, 20, skills_a)
    assert store.upsert_hourly_summary("2026-03-01T10", "alice", "Alicia", 30, 40, skills_b)

    with Session(engine) as session:
        rows = session.exec(select(HourlySummary)).all()
    assert len(rows) == 1

    record = store.get_summary(Tier.HOURLY, "2026-03-01T10", "alice")
    assert record.display_name == "Alicia"
    assert (record.start_power, record.end_power) == (30, 40)
    assert record.skills == skills_b


def test_upsert_is_keyed_by_bucket_and_entity(store):
    skills = aggregate_skills({}, {})
    store.upsert_daily_summary("2026-03-01", "alice", "Alice", 1, 1, skills)
    store.upsert_daily_summary("2026-03-01", "bob", "Bob", 2, 2, skills)
    store.upsert_daily_summary("2026-03-02", "alice", "Alice", 3, 3, skills)

    assert store.table_counts()["daily_summaries"] == 3
    assert store.get_summary(Tier.DAILY, "2026-03-01", "bob").end_power == 2
    assert store.get_summary(Tier.WEEKLY, "2026-W09", "alice") is None


def test_delete_snapshots_returns_count(store, snapshot):
    snapshot("alice", NOW - timedelta(days=10), {"MINING": 1})
    snapshot("alice", NOW - timedelta(days=9), {"MINING": 2})
    snapshot("alice", NOW - timedelta(days=1), {"MINING": 3})

    assert store.delete_snapshots_older_than(NOW - timedelta(days=7)) == 2
    assert store.table_counts()["snapshots"] == 1


def test_delete_with_no_matches_returns_zero(store):
    assert store.delete_snapshots_older_than(NOW) == 0
    assert store.delete_hourly_older_than(NOW) == 0
    assert store.delete_daily_older_than(NOW) == 0
    assert store.delete_weekly_older_than(NOW) == 0
    assert store.delete_level_ups_older_than(NOW) == 0


def test_delete_summaries_compares_bucket_keys(store):
    skills = aggregate_skills({}, {})
    store.upsert_hourly_summary("2026-03-18T10", "alice", "Alice", 1, 1, skills)
    store.upsert_hourly_summary("2026-03-18T12", "alice", "Alice", 1, 1, skills)

    # 12:30 → key "2026-03-18T12": only strictly older buckets go
    assert store.delete_hourly_older_than(NOW) == 1
    assert store.get_summary(Tier.HOURLY, "2026-03-18T12", "alice") is not None


def test_delete_level_ups(store):
    store.insert_level_up("alice", "Alice", "MINING", 1, 2, timestamp=NOW - timedelta(days=400))
    store.insert_level_up("alice", "Alice", "MINING", 2, 3, timestamp=NOW)

    assert store.delete_level_ups_older_than(NOW - timedelta(days=365)) == 1
    assert store.table_counts()["level_ups"] == 1


def test_metadata_get_and_set(store):
    assert store.get_metadata("last_compression") is None
    assert store.set_metadata("last_compression", "2026-03-18T12:30:00+00:00")
    assert store.set_metadata("last_compression", "2026-03-19T12:30:00+00:00")
    assert store.get_metadata("last_compression") == "2026-03-19T12:30:00+00:00"


def test_config_history_written_only_on_change(store):
    assert store.get_current_config() is None

    assert store.record_config_if_changed(7, 30, 180, 5, now=NOW)
    assert not store.record_config_if_changed(7, 30, 180, 5, now=NOW + timedelta(hours=1))
    assert not store.record_config_if_changed(7, 30, 180, 5, now=NOW + timedelta(hours=2))
    assert len(store.get_config_history()) == 1

    later = NOW + timedelta(days=3)
    assert store.record_config_if_changed(7, 30, 90, 5, now=later)

    history = store.get_config_history()
    assert len(history) == 2
    current = store.get_current_config()
    assert current.daily_retention_days == 90
    assert buckets.as_utc(current.effective_from) == later
    # Earlier rows are untouched
    assert history[0].daily_retention_days == 180
    assert buckets.as_utc(history[0].effective_from) == NOW


def test_changing_back_to_an_older_policy_appends_again(store):
    store.record_config_if_changed(7, 30, 180, 5, now=NOW)
    store.record_config_if_changed(3, 30, 180, 5, now=NOW + timedelta(days=1))
    assert store.record_config_if_changed(7, 30, 180, 5, now=NOW + timedelta(days=2))
    assert len(store.get_config_history()) == 3


def test_power_from_snapshots_respects_half_open_range(store, snapshot):
    snapshot("alice", NOW - timedelta(days=2), {"MINING": 10})
    snapshot("alice", NOW - timedelta(days=1), {"MINING": 20})
    snapshot("bob", NOW - timedelta(days=1), {"MINING": 99})

    points = store.power_from_snapshots(
        "alice", NOW - timedelta(days=2), NOW - timedelta(days=1)
    )
    assert [p.level for p in points] == [10]
    assert points[0].timestamp == NOW - timedelta(days=2)


def test_summary_points_are_stamped_at_bucket_start(store):
    store.upsert_daily_summary(
        "2026-02-01",
        "alice",
        "Alice",
        100,
        140,
        aggregate_skills({"MINING": 40}, {"MINING": 55}),
    )
    start = NOW - timedelta(days=60)

    power = store.trend_points(Tier.DAILY, "alice", POWER_METRIC, start, NOW)
    mining = store.trend_points(Tier.DAILY, "alice", "MINING", start, NOW)
    missing = store.trend_points(Tier.DAILY, "alice", "FISHING", start, NOW)

    assert [(p.timestamp, p.level) for p in power] == [
        (buckets.date_key_start("2026-02-01"), 140)
    ]
    assert [p.level for p in mining] == [55]
    assert missing == []


def test_failures_become_empty_results(store, engine, snapshot):
    snapshot("alice", NOW - timedelta(days=1), {"MINING": 10})
    SQLModel.metadata.tables["snapshots"].drop(engine)

    assert store.insert_snapshot("alice", "Alice", 1, {"MINING": 1}) is False
    assert store.power_from_snapshots("alice", NOW - timedelta(days=2), NOW) == []
    assert store.snapshots_for_hourly_compaction(NOW) == []
    assert store.delete_snapshots_older_than(NOW) == 0
    assert store.table_counts() == {}


def test_malformed_payload_row_is_skipped_for_skill_reads(store, engine, snapshot):
    snapshot("alice", NOW - timedelta(hours=2), {"MINING": 10})
    snapshot("alice", NOW - timedelta(hours=1), {"MINING": 11})
    with engine.begin() as conn:
        conn.execute(
            text("UPDATE snapshots SET skills_payload = 'garbage' WHERE power_level = 10")
        )

    points = store.skill_from_snapshots("alice", "MINING", NOW - timedelta(days=1), NOW)
    assert [p.level for p in points] == [11]


def test_table_counts(store, snapshot):
    snapshot("alice", NOW, {"MINING": 1})
    store.insert_level_up("alice", "Alice", "MINING", 0, 1)

    counts = store.table_counts()
    assert counts["snapshots"] == 1
    assert counts["level_ups"] == 1
    assert counts["weekly_summaries"] == 0


def test_level_up_rows_are_stored_verbatim(store, engine):
    store.insert_level_up("alice", "Alice", "MINING", 99, 100)
    with Session(engine) as session:
        row = session.exec(select(LevelUpEvent)).one()
    assert (row.skill, row.old_level, row.new_level) == ("MINING", 99, 100)


def test_unencodable_skills_are_rejected_without_raising(store):
    assert store.insert_snapshot("alice", "Alice", 1, {"MINING": "lots"}) is False
    assert store.upsert_hourly_summary(
        "2026-03-01T10", "alice", "Alice", 1, 1, {"MINING": "lots"}
    ) is False
    assert store.table_counts()["snapshots"] == 0
    assert store.table_counts()["hourly_summaries"] == 0


def test_skill_names_are_stored_upper_case(store, snapshot):
    snapshot("alice", NOW - timedelta(hours=1), {"Mining": 7})
    store.insert_level_up("alice", "Alice", "fishing", 1, 2)

    points = store.skill_from_snapshots("alice", "MINING", NOW - timedelta(days=1), NOW)
    assert [p.level for p in points] == [7]
    assert store.get_level_ups("alice")[0].skill == "FISHING"


def test_lookup_summary_tells_missing_from_unreadable(store, engine):
    assert store.lookup_summary(Tier.HOURLY, "2026-03-01T10", "alice") == (True, None)

    SQLModel.metadata.tables["hourly_summaries"].drop(engine)
    assert store.lookup_summary(Tier.HOURLY, "2026-03-01T10", "alice") == (False, None)


def test_undecodable_summary_keeps_its_power_columns(store, engine):
    store.upsert_hourly_summary(
        "2026-03-01T10", "alice", "Alice", 10, 20,
        aggregate_skills({"MINING": 1}, {"MINING": 2}),
    )
    with engine.begin() as conn:
        conn.execute(text("UPDATE hourly_summaries SET skills_payload = 'garbage'"))

    read_ok, record = store.lookup_summary(Tier.HOURLY, "2026-03-01T10", "alice")
    assert read_ok
    assert (record.start_power, record.end_power) == (10, 20)
    assert record.skills == {}


def test_summary_straddling_the_range_start_is_read(store):
    store.upsert_daily_summary(
        "2026-02-16", "alice", "Alice", 1, 5, aggregate_skills({}, {})
    )
    # Range starts at 12:30, inside the bucket
    start = NOW - timedelta(days=30)

    points = store.trend_points(Tier.DAILY, "alice", POWER_METRIC, start, NOW)
    assert [(p.timestamp, p.level) for p in points] == [
        (buckets.date_key_start("2026-02-16"), 5)
    ]
    before = store.trend_points(
        Tier.DAILY, "alice", POWER_METRIC, NOW - timedelta(days=60), start - timedelta(hours=13)
    )
    assert before == []
