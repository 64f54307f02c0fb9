from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from agenda.auth import dependencies
from agenda.auth.dependencies import get_current_practitioner, require_cron_secret
from agenda.auth.jwt_handler import issue_practitioner_token
from agenda.models.reservation import Reservation, ReservationStatus
from agenda.routes import calendar_routes, reminder_routes
from agenda.routes.calendar_routes import sync_calendar
from agenda.routes.reminder_routes import process_reminders
from agenda.scheduling.errors import CollaboratorUnavailable
from agenda.scheduling.intervals import utc_instant

NOW = utc_instant(datetime(2030, 1, 7, 12, 0))


class EventsCalendar:
    def __init__(self, events=None, fail: bool = False):
        self.events = events or []
        self.fail = fail
        self.window = None

    def list_events(self, access_token, time_min, time_max):
        if self.fail:
            raise CollaboratorUnavailable('Calendar responded 401', status_code=401)
        self.window = (time_min, time_max)
        return self.events


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, to_phone, message):
        self.sent.append(to_phone)
        return 'SM1'


@pytest.fixture(autouse=True)
def fixed_environment(monkeypatch: pytest.MonkeyPatch):
    for module in (calendar_routes, reminder_routes):
        monkeypatch.setattr(module, 'ensure_database_ready', lambda: None)
        monkeypatch.setattr(module, 'utcnow', lambda: NOW)


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_sync_calendar_requires_connected_calendar(agenda_db, practitioner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        sync_calendar(practitioner=practitioner, db=agenda_db, calendar=EventsCalendar())

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Calendar not connected.'


def test_sync_calendar_imports_events_from_today_onwards(agenda_db, practitioner, practitioner_settings) -> None:
    practitioner.calendar_access_token = 'token'
    agenda_db.commit()
    calendar = EventsCalendar(events=[
        {
            'id': 'evt-1',
            'summary': 'Supervision',
            'start': {'dateTime': '2030-01-08T09:00:00Z'},
            'end': {'dateTime': '2030-01-08T10:00:00Z'},
        },
        {'id': 'holiday', 'start': {'date': '2030-01-09'}, 'end': {'date': '2030-01-10'}},
    ])

    response = sync_calendar(practitioner=practitioner, db=agenda_db, calendar=calendar)

    assert (response.synced, response.skipped, response.total) == (1, 0, 2)
    assert calendar.window[0] == utc_instant(datetime(2030, 1, 7, 0, 0))
    assert calendar.window[1] == utc_instant(datetime(2030, 2, 6, 0, 0))


def test_sync_calendar_reports_unreachable_calendar(agenda_db, practitioner, practitioner_settings) -> None:
    practitioner.calendar_access_token = 'token'
    agenda_db.commit()

    with pytest.raises(HTTPException) as exception_info:
        sync_calendar(practitioner=practitioner, db=agenda_db, calendar=EventsCalendar(fail=True))

    assert exception_info.value.status_code == 502


def test_process_reminders_reports_sent_counts(agenda_db, practitioner, practitioner_settings) -> None:
    start = (NOW + timedelta(hours=20)).naive()
    agenda_db.add(Reservation(
        practitioner_id=practitioner.id,
        guest_name='Luis',
        guest_phone='+525512345678',
        start_time=start,
        end_time=start + timedelta(minutes=50),
        status=ReservationStatus.CONFIRMED,
    ))
    agenda_db.commit()
    notifier = RecordingNotifier()

    response = process_reminders(db=agenda_db, notifier=notifier)

    assert (response.sent_24h, response.sent_1h, response.failed) == (1, 0, 0)
    assert response.message == 'Sent 1 24h reminders and 0 1h reminders'
    assert notifier.sent == ['+525512345678']


def test_require_cron_secret_accepts_matching_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dependencies.config, 'CRON_SECRET', 'cron-secret')

    assert require_cron_secret(credentials=_bearer('cron-secret')) is None


@pytest.mark.parametrize(('configured', 'presented'), [('cron-secret', 'wrong'), ('cron-secret', None), ('', '')])
def test_require_cron_secret_rejects_bad_credentials(monkeypatch: pytest.MonkeyPatch, configured, presented) -> None:
    monkeypatch.setattr(dependencies.config, 'CRON_SECRET', configured)
    credentials = _bearer(presented) if presented is not None else None

    with pytest.raises(HTTPException) as exception_info:
        require_cron_secret(credentials=credentials)

    assert exception_info.value.status_code == 401


def test_get_current_practitioner_resolves_token_subject(agenda_db, practitioner) -> None:
    token = issue_practitioner_token(practitioner.email)

    assert get_current_practitioner(credentials=_bearer(token), db=agenda_db).id == practitioner.id


def test_get_current_practitioner_rejects_invalid_token(agenda_db, practitioner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_practitioner(credentials=_bearer('not-a-jwt'), db=agenda_db)

    assert exception_info.value.status_code == 401


def test_get_current_practitioner_rejects_unknown_practitioner(agenda_db, practitioner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_practitioner(credentials=_bearer(issue_practitioner_token('ghost@example.com')), db=agenda_db)

    assert exception_info.value.status_code == 401
