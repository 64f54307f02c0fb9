from datetime import datetime

from agenda.models.reservation import Reservation, ReservationStatus
from agenda.scheduling.calendar_sync import sync_events


def _event(event_id: str, start: str, end: str, **fields) -> dict:
    event = {
        'id': event_id,
        'summary': fields.pop('summary', 'Supervision'),
        'start': {'dateTime': start},
        'end': {'dateTime': end},
    }
    event.update(fields)
    return event


def test_sync_events_imports_new_timed_events(agenda_db, practitioner) -> None:
    events = [
        _event('evt-1', '2030-01-07T09:00:00-06:00', '2030-01-07T10:00:00-06:00'),
        _event('evt-2', '2030-01-07T12:00:00Z', '2030-01-07T12:50:00Z', summary='Luis'),
    ]

    result = sync_events(agenda_db, practitioner, events)

    assert (result.synced, result.skipped, result.total) == (2, 0, 2)
    imported = agenda_db.query(Reservation).order_by(Reservation.start_time).all()
    assert imported[0].start_time == datetime(2030, 1, 7, 12, 0)
    assert imported[1].start_time == datetime(2030, 1, 7, 15, 0)
    assert imported[1].external_event_id == 'evt-1'
    assert all(row.status == ReservationStatus.SCHEDULED for row in imported)


def test_sync_events_ignores_all_day_and_cancelled_events(agenda_db, practitioner) -> None:
    events = [
        {'id': 'holiday', 'start': {'date': '2030-01-07'}, 'end': {'date': '2030-01-08'}},
        _event('evt-1', '2030-01-07T09:00:00Z', '2030-01-07T10:00:00Z', status='cancelled'),
    ]

    result = sync_events(agenda_db, practitioner, events)

    assert (result.synced, result.skipped, result.total) == (0, 0, 2)
    assert agenda_db.query(Reservation).count() == 0


def test_sync_events_is_idempotent(agenda_db, practitioner) -> None:
    events = [_event('evt-1', '2030-01-07T09:00:00Z', '2030-01-07T10:00:00Z')]

    sync_events(agenda_db, practitioner, events)
    second = sync_events(agenda_db, practitioner, events)

    assert second.synced == 0
    assert agenda_db.query(Reservation).count() == 1


def test_sync_events_moves_reservation_when_event_changes(agenda_db, practitioner) -> None:
    sync_events(agenda_db, practitioner, [_event('evt-1', '2030-01-07T09:00:00Z', '2030-01-07T10:00:00Z')])

    result = sync_events(agenda_db, practitioner, [_event('evt-1', '2030-01-07T11:00:00Z', '2030-01-07T12:00:00Z')])

    assert result.synced == 1
    reservation = agenda_db.query(Reservation).one()
    assert reservation.start_time == datetime(2030, 1, 7, 11, 0)


def test_sync_events_skips_events_overlapping_booked_sessions(agenda_db, practitioner) -> None:
    agenda_db.add(Reservation(
        practitioner_id=practitioner.id,
        guest_name='Luis',
        start_time=datetime(2030, 1, 7, 9, 0),
        end_time=datetime(2030, 1, 7, 9, 50),
        status=ReservationStatus.SCHEDULED,
    ))
    agenda_db.commit()

    result = sync_events(agenda_db, practitioner, [_event('evt-1', '2030-01-07T09:30:00Z', '2030-01-07T10:30:00Z')])

    assert (result.synced, result.skipped, result.total) == (0, 1, 1)
    assert agenda_db.query(Reservation).count() == 1
