"""Busy-interval gathering and the per-day slot query."""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import List

from sqlalchemy.orm import Session

from agenda.models.practitioner import Practitioner
from agenda.models.reservation import ACTIVE_STATUSES, Reservation
from agenda.models.settings import AvailabilitySettings
from agenda.scheduling.errors import CollaboratorUnavailable
from agenda.scheduling.intervals import Interval, to_storage, utc_instant
from agenda.scheduling.slots import INTERNAL_RESERVATION, BusyInterval, generate_slots
from agenda.scheduling.working_hours import AvailabilityConfig, day_bounds, resolve_window

logger = logging.getLogger(__name__)


def internal_busy_intervals(db: Session, practitioner_id: int, bounds: Interval) -> List[BusyInterval]:
    rows = db.query(Reservation.start_time, Reservation.end_time).filter(
        Reservation.practitioner_id == practitioner_id,
        Reservation.status.in_(list(ACTIVE_STATUSES)),
        Reservation.start_time < to_storage(bounds.end),
        Reservation.end_time > to_storage(bounds.start),
    ).all()

    return [
        BusyInterval(start=utc_instant(start), end=utc_instant(end), source=INTERNAL_RESERVATION)
        for start, end in rows
        if start < end
    ]


def collect_busy_intervals(db: Session, practitioner: Practitioner, bounds: Interval, calendar) -> List[BusyInterval]:
    """
    Union of the external calendar's busy blocks and the practitioner's active
    reservations. The calendar fetch runs in a worker thread while the
    reservation query runs here; a failed fetch contributes nothing.
    """
    token = practitioner.calendar_access_token
    if not token:
        logger.info('Practitioner %s has no calendar connected; using reservations only', practitioner.id)
        return internal_busy_intervals(db, practitioner.id, bounds)

    with ThreadPoolExecutor(max_workers=1) as executor:
        external_future = executor.submit(calendar.fetch_busy, token, bounds.start, bounds.end)
        internal = internal_busy_intervals(db, practitioner.id, bounds)

        try:
            external = external_future.result()
        except CollaboratorUnavailable as exc:
            logger.warning('Busy times unavailable for practitioner %s: %s', practitioner.id, exc)
            external = []

    return internal + external


def available_slots(
    db: Session,
    practitioner: Practitioner,
    settings: AvailabilitySettings,
    day: date,
    calendar,
    now: datetime,
) -> List[Interval]:
    config = AvailabilityConfig.from_settings(settings)
    window = resolve_window(config, day)
    if window is None:
        return []

    busy = collect_busy_intervals(db, practitioner, day_bounds(day, config.tz), calendar)
    return generate_slots(window, config.session_duration, config.buffer, busy, now)
