"""Patient model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from agenda.database import Base


class Patient(Base):
    """Represents a practitioner's patient."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("practitioners.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, index=True)
    email = Column(String)
    is_active = Column(Boolean, default=True, nullable=False)
