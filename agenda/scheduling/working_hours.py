"""
Working-hours calendar.

Every conversion between absolute instants and a practitioner's local
weekday / time-of-day happens in this module. Other modules hand it instants
and get instants (or display strings) back.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Mapping

import pendulum
from pendulum import DateTime
from pendulum.tz.timezone import Timezone

from agenda.scheduling.errors import InvalidConfiguration
from agenda.scheduling.intervals import Interval, utc_instant

# Indexed by date.weekday(): 0=Monday, 6=Sunday
DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_WORKING_HOURS: Dict[str, Dict[str, Any]] = {
    "monday": {"start": "08:00", "end": "18:00", "enabled": True},
    "tuesday": {"start": "08:00", "end": "18:00", "enabled": True},
    "wednesday": {"start": "08:00", "end": "18:00", "enabled": True},
    "thursday": {"start": "08:00", "end": "18:00", "enabled": True},
    "friday": {"start": "08:00", "end": "18:00", "enabled": True},
    "saturday": {"start": "08:00", "end": "12:00", "enabled": False},
    "sunday": {"start": "08:00", "end": "12:00", "enabled": False},
}


@dataclass(frozen=True)
class WorkingDayRule:
    day: str
    start: time
    end: time
    enabled: bool


@dataclass(frozen=True)
class AvailabilityConfig:
    """Everything slot computation needs to know about one practitioner."""
    working_days: Mapping[str, WorkingDayRule]
    session_duration_minutes: int
    buffer_minutes: int
    timezone: str

    @property
    def session_duration(self) -> timedelta:
        return timedelta(minutes=self.session_duration_minutes)

    @property
    def buffer(self) -> timedelta:
        return timedelta(minutes=self.buffer_minutes)

    @property
    def tz(self) -> Timezone:
        return load_timezone(self.timezone)

    @classmethod
    def from_settings(cls, settings) -> "AvailabilityConfig":
        """Build from an ``AvailabilitySettings`` row."""
        return cls(
            working_days=parse_working_hours(settings.working_hours or {}),
            session_duration_minutes=settings.session_duration_minutes,
            buffer_minutes=settings.buffer_minutes,
            timezone=settings.timezone,
        )


def load_timezone(name: str) -> Timezone:
    try:
        return pendulum.timezone(name)
    except (ValueError, KeyError) as exc:
        raise InvalidConfiguration(f"Unknown time zone: {name}") from exc


def parse_time_of_day(value: str) -> time:
    """Parse ``HH:MM`` (24h)."""
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (AttributeError, TypeError, ValueError) as exc:
        raise InvalidConfiguration(f"Invalid time of day: {value!r}") from exc


def parse_working_hours(raw: Mapping[str, Mapping[str, Any]]) -> Dict[str, WorkingDayRule]:
    """
    Turn the stored JSON map into rules. Days missing from ``raw`` are
    treated as disabled.
    """
    rules: Dict[str, WorkingDayRule] = {}
    for day in DAY_NAMES:
        entry = raw.get(day)
        if entry is None:
            rules[day] = WorkingDayRule(day=day, start=time(0, 0), end=time(0, 0), enabled=False)
            continue
        rules[day] = WorkingDayRule(
            day=day,
            start=parse_time_of_day(entry.get("start")),
            end=parse_time_of_day(entry.get("end")),
            enabled=bool(entry.get("enabled")),
        )
    return rules


def validate_working_hours(raw: Mapping[str, Mapping[str, Any]]) -> Dict[str, WorkingDayRule]:
    """Stricter than ``parse_working_hours``: used when settings are saved."""
    unknown = set(raw) - set(DAY_NAMES)
    if unknown:
        raise InvalidConfiguration(f"Unknown weekday(s): {', '.join(sorted(unknown))}")

    missing = [day for day in DAY_NAMES if day not in raw]
    if missing:
        raise InvalidConfiguration(f"Missing weekday(s): {', '.join(missing)}")

    rules = parse_working_hours(raw)
    for rule in rules.values():
        if rule.enabled and rule.start >= rule.end:
            raise InvalidConfiguration(f"Working hours for {rule.day} must start before they end.")
    return rules


def local_date(instant: datetime, tz: Timezone) -> date:
    """Calendar date of ``instant`` as seen in ``tz``."""
    return utc_instant(instant).in_timezone(tz).date()


def local_datetime(day: date, time_of_day: time, tz: Timezone) -> DateTime:
    """The instant at which the wall clock in ``tz`` reads ``day time_of_day``."""
    return pendulum.datetime(
        day.year,
        day.month,
        day.day,
        time_of_day.hour,
        time_of_day.minute,
        tz=tz,
    )


def day_bounds(day: date, tz: Timezone) -> Interval:
    """Local midnight to the following local midnight."""
    start = pendulum.datetime(day.year, day.month, day.day, tz=tz)
    return Interval(start=start, end=start.add(days=1))


def resolve_window(config: AvailabilityConfig, day: date) -> Interval | None:
    """
    The absolute working window for ``day``, or ``None`` when the practitioner
    does not work that day.

    ``day`` may also be an instant, in which case its date in the
    practitioner's zone is used.
    """
    tz = config.tz
    if isinstance(day, datetime):
        day = local_date(day, tz)

    rule = config.working_days.get(DAY_NAMES[day.weekday()])
    if rule is None or not rule.enabled:
        return None

    # An inverted rule only gets here if it bypassed validation on save.
    if rule.start >= rule.end:
        return None

    return Interval(
        start=local_datetime(day, rule.start, tz),
        end=local_datetime(day, rule.end, tz),
    )


def format_time_range(interval: Interval, tz: Timezone) -> str:
    start = interval.start.in_timezone(tz)
    end = interval.end.in_timezone(tz)
    return f"{start.format('HH:mm')} - {end.format('HH:mm')}"


def format_session_time(instant: datetime, tz: Timezone) -> str:
    return utc_instant(instant).in_timezone(tz).format("DD/MM/YYYY [at] HH:mm")
