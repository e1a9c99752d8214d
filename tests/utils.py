from datetime import datetime, timedelta, timezone

# A Wednesday, half past noon UTC
NOW = datetime(2026, 3, 18, 12, 30, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)
