"""
Time Ranges

Half-open [start, end) intervals over naive local datetimes.
Ranges are frozen so they can be used as dict keys when grouping
transactions (e.g. one DayTimeRange per list section).
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, model_validator


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


class TimeRange(BaseModel):
    """A half-open interval of time."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode='after')
    def validate_order(self) -> 'TimeRange':
        if self.end < self.start:
            raise ValueError("Range end cannot be before start")
        return self

    def contains(self, value: datetime) -> bool:
        return self.start <= value < self.end

    def __contains__(self, value: datetime) -> bool:
        return self.contains(value)

    def is_past_anchored(self, anchor: datetime) -> bool:
        """True if the range started before anchor."""
        return self.start < anchor


class CustomTimeRange(TimeRange):
    """Arbitrary range given by its bounds."""
    pass


class DayTimeRange(TimeRange):
    """A single calendar day."""

    @classmethod
    def from_datetime(cls, value: datetime) -> "DayTimeRange":
        start = _start_of_day(value)
        return cls(start=start, end=start + timedelta(days=1))


class MonthTimeRange(TimeRange):
    """A calendar month."""

    @classmethod
    def from_datetime(cls, value: datetime) -> "MonthTimeRange":
        start = _start_of_day(value).replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return cls(start=start, end=end)


class YearTimeRange(TimeRange):
    """A calendar year."""

    @classmethod
    def from_datetime(cls, value: datetime) -> "YearTimeRange":
        start = _start_of_day(value).replace(month=1, day=1)
        return cls(start=start, end=start.replace(year=start.year + 1))
