"""Availability settings model definitions."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from agenda.database import Base

DEFAULT_SESSION_DURATION_MINUTES = 50
DEFAULT_BUFFER_MINUTES = 10


class AvailabilitySettings(Base):
    """Per-practitioner working hours, session length and reminder preferences."""
    __tablename__ = "availability_settings"

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), unique=True, nullable=False)
    booking_slug = Column(String, unique=True, index=True, nullable=False)
    working_hours = Column(JSON, nullable=False)
    session_duration_minutes = Column(Integer, default=DEFAULT_SESSION_DURATION_MINUTES, nullable=False)
    buffer_minutes = Column(Integer, default=DEFAULT_BUFFER_MINUTES, nullable=False)
    timezone = Column(String, nullable=False)
    reminder_24h = Column(Boolean, default=True, nullable=False)
    reminder_1h = Column(Boolean, default=True, nullable=False)
    reminder_message = Column(String, nullable=True)
    payment_reminder = Column(String, nullable=True)

    practitioner = relationship("Practitioner", back_populates="settings")
