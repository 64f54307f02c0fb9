from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.database import get_db
from agenda.models.patient import Patient
from agenda.routes.common import database_unavailable, ensure_database_ready, get_settings_by_slug, utcnow
from agenda.scheduling.availability import available_slots
from agenda.scheduling.booking import Requester, book
from agenda.scheduling.errors import ConflictError, InvalidConfiguration, InvalidInterval
from agenda.scheduling.intervals import Interval, utc_instant
from agenda.scheduling.slots import is_on_grid
from agenda.scheduling.working_hours import (
    AvailabilityConfig,
    format_time_range,
    local_datetime,
    resolve_window,
)
from agenda.services.google_calendar import GoogleCalendarClient, get_calendar_client

router = APIRouter(tags=['booking'])

MIN_PHONE_LENGTH = 10
MAX_NAME_LENGTH = 120


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    display: str


class DayAvailabilityResponse(BaseModel):
    slots: list[SlotResponse]
    session_duration_minutes: int
    practitioner_name: str | None = None


class CreateBookingRequest(BaseModel):
    slug: str
    name: str
    phone: str
    email: str | None = None
    date: date
    time: time

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Booking link is required.')
        return normalized

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        if len(normalized) > MAX_NAME_LENGTH:
            raise ValueError(f'Name must be {MAX_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        normalized = value.strip().replace(' ', '')
        if len(normalized) < MIN_PHONE_LENGTH:
            raise ValueError('A WhatsApp number with at least 10 digits is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip().lower()
        if not normalized:
            return None

        local_part, _, domain = normalized.partition('@')
        if not local_part or '.' not in domain:
            raise ValueError('Invalid email.')
        return normalized


class BookingResponse(BaseModel):
    id: int
    start_time: datetime
    end_time: datetime
    message: str


def misconfigured(exc: InvalidConfiguration) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f'Availability settings are invalid: {exc}',
    )


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Dates must use the YYYY-MM-DD format.',
        ) from exc


@router.get('/calendar/availability', response_model=DayAvailabilityResponse)
def get_day_availability(
    slug: str = Query(..., min_length=1),
    day: str = Query(..., alias='date'),
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    requested_day = parse_day(day)
    ensure_database_ready()

    try:
        settings = get_settings_by_slug(db, slug)
        practitioner = settings.practitioner
        config = AvailabilityConfig.from_settings(settings)

        slots = available_slots(db, practitioner, settings, requested_day, calendar, utcnow())

        return DayAvailabilityResponse(
            slots=[
                SlotResponse(start=slot.start, end=slot.end, display=format_time_range(slot, config.tz))
                for slot in slots
            ],
            session_duration_minutes=settings.session_duration_minutes,
            practitioner_name=practitioner.name,
        )
    except InvalidConfiguration as exc:
        raise misconfigured(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/booking', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    try:
        settings = get_settings_by_slug(db, data.slug)
        practitioner = settings.practitioner
        config = AvailabilityConfig.from_settings(settings)

        start_time = local_datetime(data.date, data.time, config.tz)
        end_time = start_time + config.session_duration
        requested = Interval(start=utc_instant(start_time), end=utc_instant(end_time))

        if requested.start <= utcnow():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Sessions must be booked in the future.',
            )

        window = resolve_window(config, data.date)
        if not is_on_grid(requested, window, config.session_duration, config.buffer):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='This time is not offered for booking. Please pick one of the available slots.',
            )

        existing_patient = db.query(Patient).filter(
            Patient.practitioner_id == practitioner.id,
            Patient.phone == data.phone,
            Patient.is_active.is_(True),
        ).first()

        requester = Requester(
            name=data.name,
            phone=data.phone,
            email=data.email,
            patient_id=existing_patient.id if existing_patient else None,
        )
        reservation = book(db, practitioner, requested.start, requested.end, requester, calendar=calendar)

        return BookingResponse(
            id=reservation.id,
            start_time=utc_instant(reservation.start_time),
            end_time=utc_instant(reservation.end_time),
            message='Session booked successfully!',
        )
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'{exc.message}. Please choose another time.',
        ) from exc
    except InvalidInterval as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InvalidConfiguration as exc:
        raise misconfigured(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
