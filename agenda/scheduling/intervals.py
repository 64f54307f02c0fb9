"""Half-open time intervals and the overlap test every conflict check uses."""

from dataclasses import dataclass
from datetime import datetime, timedelta

import pendulum
from pendulum import DateTime

from agenda.scheduling.errors import InvalidInterval

UTC = pendulum.UTC


def utc_instant(value: datetime) -> DateTime:
    """Return ``value`` as an aware UTC instant. Naive values are taken to be UTC."""
    return pendulum.instance(value, tz=UTC).in_timezone(UTC)


def to_storage(value: datetime) -> datetime:
    """Naive UTC datetime, the representation used by the reservation table."""
    return utc_instant(value).naive()


@dataclass(frozen=True)
class Interval:
    """
    An immutable ``[start, end)`` range between two instants.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInterval(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "Interval":
        return cls(start=utc_instant(start), end=utc_instant(end))

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def duration(self) -> timedelta:
        return duration(self)


def overlaps(a: Interval, b: Interval) -> bool:
    """Touching endpoints do not overlap."""
    return a.start < b.end and b.start < a.end


def duration(interval: Interval) -> timedelta:
    return timedelta(seconds=(interval.end - interval.start).total_seconds())
