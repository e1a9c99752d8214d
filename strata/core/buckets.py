"""STRATA — Calendar Bucket Keys.

Buckets are calendar-aligned in UTC, never rolling windows:
  hour  → "YYYY-MM-DDTHH"
  date  → "YYYY-MM-DD"
  week  → "YYYY-Www" (ISO week; the year is the ISO week-based year)

All three formats sort lexicographically in chronological order, so
"older than" comparisons can be done directly on the keys.
"""

from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

HOUR_FORMAT = "%Y-%m-%dT%H"
DATE_FORMAT = "%Y-%m-%d"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def hour_key(ts: datetime) -> str:
    return as_utc(ts).strftime(HOUR_FORMAT)


def date_key(ts: datetime) -> str:
    return as_utc(ts).strftime(DATE_FORMAT)


def week_key(ts: datetime) -> str:
    year, week, _ = as_utc(ts).isocalendar()
    return f"{year}-W{week:02d}"


def date_key_to_week_key(key: str) -> str:
    return week_key(date_key_start(key))


def hour_key_to_date_key(key: str) -> str:
    return key[:10]


def hour_key_start(key: str) -> datetime:
    return datetime.strptime(key, HOUR_FORMAT).replace(tzinfo=timezone.utc)


def date_key_start(key: str) -> datetime:
    return datetime.strptime(key, DATE_FORMAT).replace(tzinfo=timezone.utc)


def week_key_start(key: str) -> datetime:
    """Monday 00:00 UTC of the ISO week named by `key`."""
    year, week = key.split("-W")
    return datetime.fromisocalendar(int(year), int(week), 1).replace(
        tzinfo=timezone.utc
    )
