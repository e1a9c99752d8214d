from datetime import datetime, timedelta, timezone

from strata.core import buckets


def test_hour_key_truncates_to_calendar_hour():
    ts = datetime(2026, 3, 18, 14, 59, 59, tzinfo=timezone.utc)
    assert buckets.hour_key(ts) == "2026-03-18T14"
    assert buckets.hour_key(ts + timedelta(seconds=1)) == "2026-03-18T15"


def test_keys_use_utc_for_aware_timestamps():
    # 01:30 at UTC+2 is 23:30 the previous day in UTC
    ts = datetime(2026, 3, 18, 1, 30, tzinfo=timezone(timedelta(hours=2)))
    assert buckets.hour_key(ts) == "2026-03-17T23"
    assert buckets.date_key(ts) == "2026-03-17"


def test_naive_timestamps_are_treated_as_utc():
    assert buckets.as_utc(datetime(2026, 1, 1, 5)) == datetime(
        2026, 1, 1, 5, tzinfo=timezone.utc
    )


def test_week_key_uses_iso_week_based_year():
    # 2021-01-01 is a Friday belonging to ISO week 53 of 2020
    assert buckets.week_key(datetime(2021, 1, 1, tzinfo=timezone.utc)) == "2020-W53"
    # 2024-12-30 is a Monday belonging to ISO week 1 of 2025
    assert buckets.week_key(datetime(2024, 12, 30, tzinfo=timezone.utc)) == "2025-W01"
    assert buckets.week_key(datetime(2026, 3, 18, tzinfo=timezone.utc)) == "2026-W12"


def test_bucket_starts():
    assert buckets.hour_key_start("2026-03-18T14") == datetime(
        2026, 3, 18, 14, tzinfo=timezone.utc
    )
    assert buckets.date_key_start("2026-03-18") == datetime(
        2026, 3, 18, tzinfo=timezone.utc
    )
    # ISO weeks start on Monday
    assert buckets.week_key_start("2026-W12") == datetime(
        2026, 3, 16, tzinfo=timezone.utc
    )


def test_coarser_key_conversions():
    assert buckets.hour_key_to_date_key("2026-03-18T23") == "2026-03-18"
    assert buckets.date_key_to_week_key("2026-03-22") == "2026-W12"
    assert buckets.date_key_to_week_key("2026-03-23") == "2026-W13"


def test_keys_sort_chronologically():
    start = datetime(2025, 12, 20, tzinfo=timezone.utc)
    moments = [start + timedelta(hours=7 * i) for i in range(200)]
    for key_fn in (buckets.hour_key, buckets.date_key, buckets.week_key):
        keys = [key_fn(m) for m in moments]
        assert keys == sorted(keys)
