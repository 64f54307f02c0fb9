"""Pull sync: bring external calendar events into the reservation table."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable

import pendulum
from sqlalchemy.orm import Session

from agenda.models.practitioner import Practitioner
from agenda.models.reservation import Reservation
from agenda.scheduling.booking import import_external, reschedule
from agenda.scheduling.errors import ConflictError, InvalidInterval
from agenda.scheduling.intervals import to_storage, utc_instant

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    synced: int = 0
    skipped: int = 0
    total: int = 0


def _event_times(event: Dict[str, Any]):
    start = (event.get("start") or {}).get("dateTime")
    end = (event.get("end") or {}).get("dateTime")
    if not start or not end:
        return None
    return utc_instant(pendulum.parse(start)), utc_instant(pendulum.parse(end))


def sync_events(db: Session, practitioner: Practitioner, events: Iterable[Dict[str, Any]]) -> SyncResult:
    """
    New events become SCHEDULED reservations; events already imported are
    moved when their times changed. All-day and cancelled events are ignored,
    and events that would overlap an active reservation are skipped.
    """
    result = SyncResult()

    for event in events:
        result.total += 1
        event_id = event.get("id")
        times = _event_times(event)
        if not event_id or times is None or event.get("status") == "cancelled":
            continue
        start, end = times

        existing = db.query(Reservation).filter(
            Reservation.practitioner_id == practitioner.id,
            Reservation.external_event_id == event_id,
        ).first()

        try:
            if existing is None:
                import_external(db, practitioner, start, end, event_id, name=event.get("summary"))
                result.synced += 1
            elif existing.start_time != to_storage(start) or existing.end_time != to_storage(end):
                reschedule(db, practitioner, existing, start, end)
                result.synced += 1
        except (ConflictError, InvalidInterval) as exc:
            result.skipped += 1
            logger.warning('Skipped calendar event %s for practitioner %s: %s', event_id, practitioner.id, exc)

    return result
