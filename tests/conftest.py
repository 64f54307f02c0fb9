import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from agenda.database import Base, use_immediate_transactions  # noqa: E402
from agenda.models.patient import Patient  # noqa: E402
from agenda.models.practitioner import Practitioner  # noqa: E402
from agenda.models.reservation import Reservation  # noqa: E402
from agenda.models.settings import AvailabilitySettings  # noqa: E402
from agenda.scheduling.working_hours import DEFAULT_WORKING_HOURS  # noqa: E402

TABLES = [
    Practitioner.__table__,
    Patient.__table__,
    AvailabilitySettings.__table__,
    Reservation.__table__,
]


@pytest.fixture
def agenda_db():
    engine = use_immediate_transactions(create_engine('sqlite:///:memory:'))
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def practitioner(agenda_db):
    row = Practitioner(email='ana@example.com', name='Ana Torres')
    agenda_db.add(row)
    agenda_db.commit()
    agenda_db.refresh(row)
    return row


@pytest.fixture
def practitioner_settings(agenda_db, practitioner):
    row = AvailabilitySettings(
        practitioner_id=practitioner.id,
        booking_slug='ana-torres',
        working_hours={day: dict(rule) for day, rule in DEFAULT_WORKING_HOURS.items()},
        session_duration_minutes=50,
        buffer_minutes=10,
        timezone='UTC',
        reminder_24h=True,
        reminder_1h=True,
    )
    agenda_db.add(row)
    agenda_db.commit()
    agenda_db.refresh(row)
    return row
