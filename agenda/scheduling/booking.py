"""
Booking transaction and the reservation lifecycle.

The overlap re-check and the insert run in one database transaction that
holds a row lock on the practitioner, so two requests for the same
practitioner cannot interleave between check and write. SQLite has no row
locks; there every transaction opens with ``BEGIN IMMEDIATE`` (see
``agenda.database``) and takes the database write lock instead. The partial
unique index on active ``(practitioner_id, start_time)`` is a last line for
identical starts.

Calendar mirroring happens after commit and never undoes a reservation.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.models.practitioner import Practitioner
from agenda.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from agenda.scheduling.errors import CollaboratorUnavailable, ConflictError, InvalidStatusTransition
from agenda.scheduling.intervals import Interval, to_storage

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ReservationStatus.SCHEDULED: {
        ReservationStatus.CONFIRMED,
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    },
    ReservationStatus.CONFIRMED: {
        ReservationStatus.SCHEDULED,
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    },
    ReservationStatus.COMPLETED: {ReservationStatus.NO_SHOW},
    ReservationStatus.NO_SHOW: {ReservationStatus.COMPLETED},
    ReservationStatus.CANCELLED: {ReservationStatus.SCHEDULED},
}


@dataclass
class Requester:
    """Who the reservation is for."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    patient_id: Optional[int] = None
    notes: Optional[str] = None


def find_overlapping(
    db: Session,
    practitioner_id: int,
    interval: Interval,
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
    exclude_id: Optional[int] = None,
) -> List[Reservation]:
    query = db.query(Reservation).filter(
        Reservation.practitioner_id == practitioner_id,
        Reservation.status.in_(list(statuses)),
        Reservation.start_time < to_storage(interval.end),
        Reservation.end_time > to_storage(interval.start),
    )
    if exclude_id is not None:
        query = query.filter(Reservation.id != exclude_id)
    return query.all()


def _lock_practitioner(db: Session, practitioner_id: int) -> Practitioner:
    return db.query(Practitioner).filter(Practitioner.id == practitioner_id).with_for_update().one()


def book(
    db: Session,
    practitioner: Practitioner,
    start: datetime,
    end: datetime,
    requester: Requester,
    calendar=None,
) -> Reservation:
    """
    Reserve ``[start, end)`` for ``practitioner``.

    Raises ``InvalidInterval`` for a malformed range and ``ConflictError``
    when an active reservation already overlaps it.
    """
    interval = Interval.between(start, end)

    try:
        _lock_practitioner(db, practitioner.id)

        if find_overlapping(db, practitioner.id, interval):
            db.rollback()
            raise ConflictError()

        reservation = Reservation(
            practitioner_id=practitioner.id,
            patient_id=requester.patient_id,
            guest_name=None if requester.patient_id else requester.name,
            guest_phone=None if requester.patient_id else requester.phone,
            guest_email=None if requester.patient_id else requester.email,
            notes=requester.notes,
            start_time=to_storage(interval.start),
            end_time=to_storage(interval.end),
            status=ReservationStatus.SCHEDULED,
            reminder_24h_sent=False,
            reminder_1h_sent=False,
        )
        db.add(reservation)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError() from exc

    db.refresh(reservation)

    if calendar is not None:
        mirror_reservation(db, practitioner, reservation, calendar, summary_name=requester.name)

    return reservation


def mirror_reservation(
    db: Session,
    practitioner: Practitioner,
    reservation: Reservation,
    calendar,
    summary_name: Optional[str] = None,
) -> None:
    """Best-effort copy of ``reservation`` to the external calendar."""
    token = practitioner.calendar_access_token
    if not token:
        return

    name = summary_name or reservation.contact_name
    description_lines = ["Booked via online booking page"]
    if reservation.contact_phone:
        description_lines.append(f"Phone: {reservation.contact_phone}")
    if reservation.guest_email:
        description_lines.append(f"Email: {reservation.guest_email}")
    if reservation.notes:
        description_lines.append(reservation.notes)

    try:
        event_id = calendar.create_event(
            token,
            summary=f"Session - {name}",
            start=reservation.start_time,
            end=reservation.end_time,
            description="\n".join(description_lines),
            attendee_email=reservation.guest_email,
        )
    except CollaboratorUnavailable as exc:
        logger.warning('Calendar mirroring failed for reservation %s: %s', reservation.id, exc)
        return

    try:
        reservation.external_event_id = event_id
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Could not record calendar event %s for reservation %s', event_id, reservation.id)


def check_transition(current: ReservationStatus, status: ReservationStatus) -> None:
    if status != current and status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(f"Cannot change a {current.value} session to {status.value}.")


def revise(
    db: Session,
    practitioner: Practitioner,
    reservation: Reservation,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[ReservationStatus] = None,
    calendar=None,
    **fields,
) -> Reservation:
    """
    Move, re-status and edit ``reservation`` in a single commit.

    ``start`` and ``end`` go together; ``fields`` are plain column values such
    as ``notes`` or ``patient_id``. Everything is validated before anything is
    written, and a failure leaves the reservation as it was.
    """
    current = reservation.status
    target = status or current
    check_transition(current, target)

    moved = start is not None or end is not None
    if moved:
        interval = Interval.between(start, end)
    else:
        interval = Interval.between(reservation.start_time, reservation.end_time)

    try:
        if target.occupies_time and (moved or not current.occupies_time):
            _lock_practitioner(db, practitioner.id)
            if find_overlapping(db, practitioner.id, interval, exclude_id=reservation.id):
                db.rollback()
                raise ConflictError("This time overlaps another session")

        for name, value in fields.items():
            setattr(reservation, name, value)
        if moved:
            reservation.start_time = to_storage(interval.start)
            reservation.end_time = to_storage(interval.end)
            reservation.reminder_24h_sent = False
            reservation.reminder_1h_sent = False
        reservation.status = target
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("This time overlaps another session") from exc

    db.refresh(reservation)

    if moved and calendar is not None and reservation.external_event_id and practitioner.calendar_access_token:
        try:
            calendar.update_event(
                practitioner.calendar_access_token,
                reservation.external_event_id,
                start=reservation.start_time,
                end=reservation.end_time,
            )
        except CollaboratorUnavailable as exc:
            logger.warning('Calendar update failed for reservation %s: %s', reservation.id, exc)

    return reservation


def reschedule(
    db: Session,
    practitioner: Practitioner,
    reservation: Reservation,
    start: datetime,
    end: datetime,
    calendar=None,
) -> Reservation:
    return revise(db, practitioner, reservation, start=start, end=end, calendar=calendar)


def change_status(
    db: Session,
    practitioner: Practitioner,
    reservation: Reservation,
    status: ReservationStatus,
) -> Reservation:
    if status == reservation.status:
        return reservation
    return revise(db, practitioner, reservation, status=status)


def cancel(
    db: Session,
    practitioner: Practitioner,
    reservation: Reservation,
    calendar=None,
) -> Reservation:
    reservation = change_status(db, practitioner, reservation, ReservationStatus.CANCELLED)

    if calendar is not None and reservation.external_event_id and practitioner.calendar_access_token:
        try:
            calendar.delete_event(practitioner.calendar_access_token, reservation.external_event_id)
        except CollaboratorUnavailable as exc:
            logger.warning('Calendar delete failed for reservation %s: %s', reservation.id, exc)
        else:
            reservation.external_event_id = None
            db.commit()

    return reservation


def import_external(
    db: Session,
    practitioner: Practitioner,
    start: datetime,
    end: datetime,
    event_id: str,
    name: Optional[str] = None,
) -> Reservation:
    """Record an event that already exists on the external calendar as a reservation."""
    interval = Interval.between(start, end)

    try:
        _lock_practitioner(db, practitioner.id)

        if find_overlapping(db, practitioner.id, interval):
            db.rollback()
            raise ConflictError("This event overlaps an existing session")

        reservation = Reservation(
            practitioner_id=practitioner.id,
            guest_name=name or "Calendar Event",
            start_time=to_storage(interval.start),
            end_time=to_storage(interval.end),
            status=ReservationStatus.SCHEDULED,
            reminder_24h_sent=False,
            reminder_1h_sent=False,
            external_event_id=event_id,
        )
        db.add(reservation)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("This event overlaps an existing session") from exc

    db.refresh(reservation)
    return reservation
