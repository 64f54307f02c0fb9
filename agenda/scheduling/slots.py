"""
Fixed-grid slot generation.

Pure logic: no database, no network, no time-zone conversion.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from agenda.scheduling.errors import InvalidConfiguration
from agenda.scheduling.intervals import Interval, overlaps, utc_instant

EXTERNAL_CALENDAR = "external-calendar"
INTERNAL_RESERVATION = "internal-reservation"


@dataclass(frozen=True)
class BusyInterval(Interval):
    """A time range the practitioner is already committed to."""
    source: str = INTERNAL_RESERVATION


def generate_slots(
    window: Interval | None,
    session_duration: timedelta,
    buffer: timedelta,
    busy: Iterable[Interval],
    now: datetime,
) -> List[Interval]:
    """
    Enumerate bookable slots inside ``window``.

    Candidates sit on a grid of ``session_duration + buffer`` steps from the
    window start. A candidate that overlaps any busy interval is skipped and
    the grid is not shifted around it. Slots starting at or before ``now``
    are dropped.
    """
    if window is None:
        return []
    if session_duration <= timedelta(0):
        raise InvalidConfiguration("Session duration must be positive.")

    busy_intervals = list(busy)
    step = session_duration + buffer
    slots: List[Interval] = []

    cursor = window.start
    while cursor + session_duration <= window.end:
        candidate = Interval(start=cursor, end=cursor + session_duration)
        if not any(overlaps(candidate, other) for other in busy_intervals):
            slots.append(candidate)
        cursor = cursor + step

    now = utc_instant(now)
    return [slot for slot in slots if slot.start > now]


def is_on_grid(
    requested: Interval,
    window: Interval | None,
    session_duration: timedelta,
    buffer: timedelta,
) -> bool:
    """Whether ``requested`` is one of the grid cells of ``window``, ignoring busy times."""
    if window is None or requested.duration() != session_duration:
        return False
    if not window.contains(requested):
        return False
    offset_seconds = int((requested.start - window.start).total_seconds())
    step_seconds = int((session_duration + buffer).total_seconds())
    return offset_seconds % step_seconds == 0
