import pendulum
from fastapi import HTTPException, status
from pendulum import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.database import ensure_reservation_schema
from agenda.models.settings import AvailabilitySettings

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_reservation_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def utcnow() -> DateTime:
    return pendulum.now(pendulum.UTC)


def get_settings_by_slug(db: Session, slug: str) -> AvailabilitySettings:
    settings = db.query(AvailabilitySettings).filter(
        AvailabilitySettings.booking_slug == slug.strip().lower(),
    ).first()
    if settings is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Practitioner not found.',
        )
    return settings
