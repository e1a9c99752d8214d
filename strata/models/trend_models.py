"""STRATA — Trend Query Models.

A trend query always ends in exactly one of three tagged outcomes:
success with points, success with no data, or a descriptive error.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field

# Synthetic metric name for the aggregate power level
POWER_METRIC = "POWER"


class Tier(str, Enum):
    """Storage resolutions, finest first."""

    RAW = "raw"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class Timeframe(str, Enum):
    """Caller-selectable windows; the value is the choice string."""

    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"
    NINETY_DAYS = "90d"
    SIX_MONTHS = "180d"
    ONE_YEAR = "1y"
    ALL_TIME = "all"

    @property
    def days(self) -> int:
        """Window length in days; -1 means unbounded."""
        return _TIMEFRAME_DAYS[self]

    @property
    def display_name(self) -> str:
        return _TIMEFRAME_DISPLAY[self]

    @property
    def dominant_tier(self) -> Tier:
        """Tier that usually holds most of the window. Documentation only —
        the planner always derives boundaries from the retention policy."""
        return _TIMEFRAME_TIER[self]

    @classmethod
    def from_choice_value(cls, value: Optional[str]) -> "Timeframe":
        """Parse a choice value, defaulting to 30 days when unknown."""
        if value is None:
            return cls.THIRTY_DAYS
        try:
            return cls(value)
        except ValueError:
            return cls.THIRTY_DAYS


_TIMEFRAME_DAYS = {
    Timeframe.SEVEN_DAYS: 7,
    Timeframe.THIRTY_DAYS: 30,
    Timeframe.NINETY_DAYS: 90,
    Timeframe.SIX_MONTHS: 180,
    Timeframe.ONE_YEAR: 365,
    Timeframe.ALL_TIME: -1,
}

_TIMEFRAME_DISPLAY = {
    Timeframe.SEVEN_DAYS: "7 Days",
    Timeframe.THIRTY_DAYS: "30 Days",
    Timeframe.NINETY_DAYS: "90 Days",
    Timeframe.SIX_MONTHS: "6 Months",
    Timeframe.ONE_YEAR: "1 Year",
    Timeframe.ALL_TIME: "All Time",
}

_TIMEFRAME_TIER = {
    Timeframe.SEVEN_DAYS: Tier.RAW,
    Timeframe.THIRTY_DAYS: Tier.HOURLY,
    Timeframe.NINETY_DAYS: Tier.DAILY,
    Timeframe.SIX_MONTHS: Tier.DAILY,
    Timeframe.ONE_YEAR: Tier.WEEKLY,
    Timeframe.ALL_TIME: Tier.WEEKLY,
}


class TrendPoint(BaseModel):
    """A single (timestamp, level) pair, whichever tier it came from."""

    timestamp: datetime
    level: int


class TrendSuccess(BaseModel):
    kind: Literal["success"] = "success"
    entity_id: str
    display_name: str
    metric: str
    timeframe: Timeframe
    points: List[TrendPoint]


class TrendNoData(BaseModel):
    kind: Literal["no_data"] = "no_data"
    reason: str


class TrendError(BaseModel):
    kind: Literal["error"] = "error"
    message: str


TrendResult = Annotated[
    Union[TrendSuccess, TrendNoData, TrendError], Field(discriminator="kind")
]
