"""
Reminder sweep.

``due_reminders`` decides, without side effects, which reservations need a
24h or 1h reminder. ``run_reminder_sweep`` claims each reminder with a
compare-and-set on its ``..._sent`` flag before dispatching, so overlapping
sweeps send a reminder at most once; a failed dispatch releases the claim and
the next sweep retries.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping

from sqlalchemy import or_
from sqlalchemy.orm import Session

from agenda.models.reservation import ACTIVE_STATUSES, Reservation
from agenda.models.settings import AvailabilitySettings
from agenda.scheduling.errors import DispatchFailure, InvalidConfiguration
from agenda.scheduling.intervals import to_storage, utc_instant
from agenda.scheduling.working_hours import format_session_time, load_timezone
from agenda.services.notifications import build_reminder_message

logger = logging.getLogger(__name__)

REMINDER_24H = "24h"
REMINDER_1H = "1h"

LOOKAHEAD_24H = timedelta(hours=25)
LOOKAHEAD_1H = timedelta(hours=1, minutes=30)

_FLAG_COLUMNS = {
    REMINDER_24H: Reservation.reminder_24h_sent,
    REMINDER_1H: Reservation.reminder_1h_sent,
}


@dataclass
class DueReminders:
    fire_24h: List[Reservation] = field(default_factory=list)
    fire_1h: List[Reservation] = field(default_factory=list)


@dataclass
class SweepResult:
    sent_24h: int = 0
    sent_1h: int = 0
    failed: int = 0


def due_reminders(
    now: datetime,
    reservations: Iterable[Reservation],
    preferences: Mapping[int, AvailabilitySettings],
) -> DueReminders:
    """
    ``preferences`` maps practitioner id to that practitioner's settings; a
    practitioner without settings gets no reminders.
    """
    now = utc_instant(now)
    due = DueReminders()

    for reservation in reservations:
        if reservation.status not in ACTIVE_STATUSES:
            continue

        settings = preferences.get(reservation.practitioner_id)
        if settings is None:
            continue

        until_start = timedelta(seconds=(utc_instant(reservation.start_time) - now).total_seconds())

        if (
            settings.reminder_24h
            and not reservation.reminder_24h_sent
            and LOOKAHEAD_1H < until_start <= LOOKAHEAD_24H
        ):
            due.fire_24h.append(reservation)
        elif (
            settings.reminder_1h
            and not reservation.reminder_1h_sent
            and timedelta(0) < until_start <= LOOKAHEAD_1H
        ):
            due.fire_1h.append(reservation)

    return due


def claim_reminder(db: Session, reservation_id: int, which: str) -> bool:
    """Set the flag only if it is still unset. False means another sweep got there first."""
    column = _FLAG_COLUMNS[which]
    claimed = db.query(Reservation).filter(
        Reservation.id == reservation_id,
        column.is_(False),
    ).update({column: True}, synchronize_session=False)
    db.commit()
    return claimed == 1


def release_reminder(db: Session, reservation_id: int, which: str) -> None:
    column = _FLAG_COLUMNS[which]
    db.query(Reservation).filter(
        Reservation.id == reservation_id,
        column.is_(True),
    ).update({column: False}, synchronize_session=False)
    db.commit()


def load_candidates(db: Session, now: datetime) -> List[Reservation]:
    now = utc_instant(now)
    return db.query(Reservation).filter(
        Reservation.start_time > to_storage(now),
        Reservation.start_time <= to_storage(now + LOOKAHEAD_24H),
        Reservation.status.in_(list(ACTIVE_STATUSES)),
        or_(Reservation.reminder_24h_sent.is_(False), Reservation.reminder_1h_sent.is_(False)),
    ).order_by(Reservation.start_time.asc()).all()


def load_preferences(db: Session, practitioner_ids: Iterable[int]) -> Dict[int, AvailabilitySettings]:
    ids = set(practitioner_ids)
    if not ids:
        return {}
    rows = db.query(AvailabilitySettings).filter(AvailabilitySettings.practitioner_id.in_(sorted(ids))).all()
    return {row.practitioner_id: row for row in rows}


def _compose_message(reservation: Reservation, settings: AvailabilitySettings) -> str:
    try:
        tz = load_timezone(settings.timezone)
    except InvalidConfiguration:
        tz = load_timezone("UTC")
    return build_reminder_message(
        reservation.contact_name,
        format_session_time(reservation.start_time, tz),
        settings.reminder_message,
        settings.payment_reminder,
    )


def _dispatch(db: Session, reservation: Reservation, settings: AvailabilitySettings, which: str, notifier) -> bool:
    phone = reservation.contact_phone
    if not phone:
        logger.debug('Reservation %s has no phone number; skipping %s reminder', reservation.id, which)
        return False

    reservation_id = reservation.id
    message = _compose_message(reservation, settings)

    if not claim_reminder(db, reservation_id, which):
        logger.debug('%s reminder for reservation %s already claimed', which, reservation_id)
        return False

    try:
        notifier.send(phone, message)
    except DispatchFailure as exc:
        release_reminder(db, reservation_id, which)
        logger.warning('Failed to send %s reminder for reservation %s: %s', which, reservation_id, exc)
        raise

    return True


def run_reminder_sweep(db: Session, now: datetime, notifier) -> SweepResult:
    candidates = load_candidates(db, now)
    preferences = load_preferences(db, (reservation.practitioner_id for reservation in candidates))
    due = due_reminders(now, candidates, preferences)

    result = SweepResult()
    batches = ((REMINDER_24H, due.fire_24h), (REMINDER_1H, due.fire_1h))
    for which, reservations in batches:
        for reservation in reservations:
            settings = preferences[reservation.practitioner_id]
            try:
                sent = _dispatch(db, reservation, settings, which, notifier)
            except DispatchFailure:
                result.failed += 1
                continue

            if sent and which == REMINDER_24H:
                result.sent_24h += 1
            elif sent:
                result.sent_1h += 1

    logger.info(
        'Reminder sweep sent %d 24h and %d 1h reminders (%d failed)',
        result.sent_24h,
        result.sent_1h,
        result.failed,
    )
    return result
