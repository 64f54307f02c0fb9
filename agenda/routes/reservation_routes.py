from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_current_practitioner
from agenda.database import get_db
from agenda.models.patient import Patient
from agenda.models.practitioner import Practitioner
from agenda.models.reservation import Reservation, ReservationStatus
from agenda.routes.common import database_unavailable, ensure_database_ready
from agenda.routes.settings_routes import get_or_create_settings
from agenda.scheduling import booking
from agenda.scheduling.errors import ConflictError, InvalidInterval, InvalidStatusTransition
from agenda.scheduling.intervals import to_storage, utc_instant
from agenda.services.google_calendar import GoogleCalendarClient, get_calendar_client

router = APIRouter(tags=['reservations'])

MAX_RESERVATION_NOTES_LENGTH = 2000


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_RESERVATION_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_RESERVATION_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateReservationRequest(BaseModel):
    start_time: datetime
    end_time: datetime | None = None
    patient_id: int | None = None
    guest_name: str | None = None
    guest_phone: str | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateReservationRequest(BaseModel):
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: ReservationStatus | None = None
    notes: str | None = None
    patient_id: int | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class ReservationResponse(BaseModel):
    id: int
    practitioner_id: int
    patient_id: int | None = None
    guest_name: str | None = None
    guest_phone: str | None = None
    guest_email: str | None = None
    notes: str | None = None
    start_time: datetime
    end_time: datetime
    status: ReservationStatus
    reminder_24h_sent: bool
    reminder_1h_sent: bool
    external_event_id: str | None = None

    @field_validator('start_time', 'end_time')
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        return utc_instant(value)

    class Config:
        from_attributes = True


class CancelReservationResponse(BaseModel):
    success: bool


def conflict(exc: ConflictError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)


def bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_owned_reservation(db: Session, practitioner: Practitioner, reservation_id: int) -> Reservation:
    reservation = db.query(Reservation).filter(
        Reservation.id == reservation_id,
        Reservation.practitioner_id == practitioner.id,
    ).first()
    if reservation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Session not found.',
        )
    return reservation


def get_owned_patient(db: Session, practitioner: Practitioner, patient_id: int) -> Patient:
    patient = db.query(Patient).filter(
        Patient.id == patient_id,
        Patient.practitioner_id == practitioner.id,
    ).first()
    if patient is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Patient not found.',
        )
    return patient


@router.get('', response_model=list[ReservationResponse])
def list_reservations(
    from_time: datetime | None = Query(default=None, alias='from'),
    to_time: datetime | None = Query(default=None, alias='to'),
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        query = db.query(Reservation).filter(Reservation.practitioner_id == practitioner.id)
        if from_time is not None:
            query = query.filter(Reservation.start_time >= to_storage(from_time))
        if to_time is not None:
            query = query.filter(Reservation.start_time <= to_storage(to_time))

        return query.order_by(Reservation.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    data: CreateReservationRequest,
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    try:
        patient = get_owned_patient(db, practitioner, data.patient_id) if data.patient_id else None

        end_time = data.end_time
        if end_time is None:
            settings = get_or_create_settings(db, practitioner)
            end_time = utc_instant(data.start_time) + timedelta(minutes=settings.session_duration_minutes)

        requester = booking.Requester(
            name=patient.name if patient else data.guest_name,
            phone=patient.phone if patient else data.guest_phone,
            patient_id=patient.id if patient else None,
            notes=data.notes,
        )
        return booking.book(db, practitioner, data.start_time, end_time, requester, calendar=calendar)
    except ConflictError as exc:
        raise conflict(exc) from exc
    except InvalidInterval as exc:
        raise bad_request(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{reservation_id}', response_model=ReservationResponse)
def read_reservation(
    reservation_id: int,
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_owned_reservation(db, practitioner, reservation_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{reservation_id}', response_model=ReservationResponse)
def update_reservation(
    reservation_id: int,
    data: UpdateReservationRequest,
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    try:
        reservation = get_owned_reservation(db, practitioner, reservation_id)
        fields = data.model_fields_set

        changes = {}
        if 'patient_id' in fields:
            if data.patient_id is not None:
                get_owned_patient(db, practitioner, data.patient_id)
            changes['patient_id'] = data.patient_id
        if 'notes' in fields:
            changes['notes'] = data.notes

        start_time = end_time = None
        if data.start_time is not None or data.end_time is not None:
            length = reservation.end_time - reservation.start_time
            start_time = data.start_time or reservation.start_time
            end_time = data.end_time or (utc_instant(start_time) + length)

        return booking.revise(
            db,
            practitioner,
            reservation,
            start=start_time,
            end=end_time,
            status=data.status,
            calendar=calendar,
            **changes,
        )
    except ConflictError as exc:
        raise conflict(exc) from exc
    except (InvalidInterval, InvalidStatusTransition) as exc:
        raise bad_request(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{reservation_id}', response_model=CancelReservationResponse)
def cancel_reservation(
    reservation_id: int,
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    ensure_database_ready()

    try:
        reservation = get_owned_reservation(db, practitioner, reservation_id)
        booking.cancel(db, practitioner, reservation, calendar=calendar)
        return CancelReservationResponse(success=True)
    except InvalidStatusTransition as exc:
        raise bad_request(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
