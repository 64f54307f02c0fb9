"""Reservation model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from agenda.database import Base


class ReservationStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @property
    def occupies_time(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({ReservationStatus.SCHEDULED, ReservationStatus.CONFIRMED})

_ACTIVE_STATUS_CLAUSE = text("status IN ('SCHEDULED', 'CONFIRMED')")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Reservation(Base):
    """A booked therapy session. Times are stored as naive UTC."""
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_reservations_time_range", "start_time", "end_time"),
        Index("idx_reservations_status_start", "status", "start_time"),
        Index(
            "uq_reservations_active_slot",
            "practitioner_id",
            "start_time",
            unique=True,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
        ),
    )

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), index=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True)
    guest_name = Column(String)
    guest_phone = Column(String)
    guest_email = Column(String)
    notes = Column(String)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        Enum(ReservationStatus, name="reservation_status"),
        default=ReservationStatus.SCHEDULED,
        nullable=False,
    )
    reminder_24h_sent = Column(Boolean, default=False, nullable=False)
    reminder_1h_sent = Column(Boolean, default=False, nullable=False)
    external_event_id = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    patient = relationship("Patient")
    practitioner = relationship("Practitioner")

    @property
    def contact_name(self) -> str:
        if self.patient is not None:
            return self.patient.name
        return self.guest_name or "Patient"

    @property
    def contact_phone(self) -> str | None:
        if self.patient is not None and self.patient.phone:
            return self.patient.phone
        return self.guest_phone
