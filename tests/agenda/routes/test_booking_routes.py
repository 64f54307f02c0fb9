from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from agenda.models.patient import Patient
from agenda.models.reservation import Reservation, ReservationStatus
from agenda.routes import booking_routes
from agenda.routes.booking_routes import CreateBookingRequest, create_booking, get_day_availability
from agenda.scheduling.intervals import utc_instant


class IdleCalendar:
    def fetch_busy(self, access_token, time_min, time_max):
        return []

    def create_event(self, *args, **kwargs):
        return 'evt-1'


@pytest.fixture(autouse=True)
def fixed_clock(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(booking_routes, 'ensure_database_ready', lambda: None)
    monkeypatch.setattr(booking_routes, 'utcnow', lambda: utc_instant(datetime(2030, 1, 6, 12, 0)))


def _request(**overrides) -> CreateBookingRequest:
    fields = {
        'slug': 'ana-torres',
        'name': 'Luis Perez',
        'phone': '+52 5512345678',
        'email': 'Luis@Example.com',
        'date': date(2030, 1, 7),
        'time': time(10, 0),
    }
    fields.update(overrides)
    return CreateBookingRequest(**fields)


def test_create_booking_request_normalizes_fields() -> None:
    request = _request(slug=' Ana-Torres ')

    assert request.slug == 'ana-torres'
    assert request.phone == '+525512345678'
    assert request.email == 'luis@example.com'


def test_create_booking_request_rejects_short_phone() -> None:
    with pytest.raises(ValidationError):
        _request(phone='12345')


def test_get_day_availability_lists_open_slots(agenda_db, practitioner_settings) -> None:
    response = get_day_availability(slug='ana-torres', day='2030-01-07', db=agenda_db, calendar=IdleCalendar())

    assert len(response.slots) == 10
    assert response.slots[0].display == '08:00 - 08:50'
    assert response.session_duration_minutes == 50
    assert response.practitioner_name == 'Ana Torres'


def test_get_day_availability_rejects_malformed_date(agenda_db, practitioner_settings) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_day_availability(slug='ana-torres', day='07/01/2030', db=agenda_db, calendar=IdleCalendar())

    assert exception_info.value.status_code == 400


def test_get_day_availability_returns_not_found_for_unknown_slug(agenda_db, practitioner_settings) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_day_availability(slug='nobody', day='2030-01-07', db=agenda_db, calendar=IdleCalendar())

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Practitioner not found.'


def test_create_booking_reserves_slot(agenda_db, practitioner_settings) -> None:
    response = create_booking(data=_request(), db=agenda_db, calendar=IdleCalendar())

    assert response.message == 'Session booked successfully!'
    assert response.start_time == utc_instant(datetime(2030, 1, 7, 10, 0))
    assert response.end_time == utc_instant(datetime(2030, 1, 7, 10, 50))

    reservation = agenda_db.query(Reservation).one()
    assert reservation.guest_name == 'Luis Perez'
    assert reservation.status == ReservationStatus.SCHEDULED


def test_create_booking_removes_slot_from_availability(agenda_db, practitioner_settings) -> None:
    create_booking(data=_request(), db=agenda_db, calendar=IdleCalendar())

    response = get_day_availability(slug='ana-torres', day='2030-01-07', db=agenda_db, calendar=IdleCalendar())

    assert len(response.slots) == 9
    assert utc_instant(datetime(2030, 1, 7, 10, 0)) not in [slot.start for slot in response.slots]


def test_create_booking_returns_conflict_for_taken_slot(agenda_db, practitioner_settings) -> None:
    create_booking(data=_request(), db=agenda_db, calendar=IdleCalendar())

    with pytest.raises(HTTPException) as exception_info:
        create_booking(data=_request(name='Marta', phone='+525587654321'), db=agenda_db, calendar=IdleCalendar())

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time slot is no longer available. Please choose another time.'
    assert agenda_db.query(Reservation).count() == 1


def test_create_booking_rejects_past_time(agenda_db, practitioner_settings) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_booking(data=_request(date=date(2030, 1, 6), time=time(9, 0)), db=agenda_db, calendar=IdleCalendar())

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Sessions must be booked in the future.'


@pytest.mark.parametrize(
    ('slot_date', 'slot_time'),
    [
        (date(2030, 1, 7), time(10, 15)),
        (date(2030, 1, 7), time(18, 0)),
        (date(2030, 1, 12), time(9, 0)),
    ],
)
def test_create_booking_rejects_times_not_offered(agenda_db, practitioner_settings, slot_date, slot_time) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_booking(data=_request(date=slot_date, time=slot_time), db=agenda_db, calendar=IdleCalendar())

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == (
        'This time is not offered for booking. Please pick one of the available slots.'
    )


def test_create_booking_links_existing_patient_by_phone(agenda_db, practitioner, practitioner_settings) -> None:
    patient = Patient(practitioner_id=practitioner.id, name='Luis Perez', phone='+525512345678')
    agenda_db.add(patient)
    agenda_db.commit()

    create_booking(data=_request(), db=agenda_db, calendar=IdleCalendar())

    reservation = agenda_db.query(Reservation).one()
    assert reservation.patient_id == patient.id
    assert reservation.guest_name is None
    assert reservation.contact_phone == '+525512345678'
