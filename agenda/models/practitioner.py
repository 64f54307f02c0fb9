"""Practitioner model definitions."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from agenda.database import Base


class Practitioner(Base):
    """A therapist who owns a calendar, settings and reservations."""
    __tablename__ = "practitioners"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    # OAuth access token for the external calendar, written by the sign-in flow.
    calendar_access_token = Column(String, nullable=True)

    settings = relationship("AvailabilitySettings", back_populates="practitioner", uselist=False)
