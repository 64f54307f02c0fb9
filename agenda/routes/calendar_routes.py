from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_current_practitioner
from agenda.core import config
from agenda.database import get_db
from agenda.models.practitioner import Practitioner
from agenda.models.settings import AvailabilitySettings
from agenda.routes.common import database_unavailable, ensure_database_ready, utcnow
from agenda.scheduling.calendar_sync import sync_events
from agenda.scheduling.errors import CollaboratorUnavailable
from agenda.scheduling.working_hours import day_bounds, load_timezone, local_date
from agenda.services.google_calendar import GoogleCalendarClient, get_calendar_client

router = APIRouter(tags=['calendar'])


class CalendarSyncResponse(BaseModel):
    synced: int
    skipped: int
    total: int


@router.post('/sync', response_model=CalendarSyncResponse)
def sync_calendar(
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
    calendar: GoogleCalendarClient = Depends(get_calendar_client),
):
    if not practitioner.calendar_access_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Calendar not connected.',
        )

    ensure_database_ready()

    try:
        settings = db.query(AvailabilitySettings).filter(
            AvailabilitySettings.practitioner_id == practitioner.id,
        ).first()
        tz = load_timezone(settings.timezone if settings else config.DEFAULT_TIMEZONE)

        time_min = day_bounds(local_date(utcnow(), tz), tz).start
        time_max = time_min.add(days=config.CALENDAR_SYNC_DAYS)

        events = calendar.list_events(practitioner.calendar_access_token, time_min, time_max)
        result = sync_events(db, practitioner, events)

        return CalendarSyncResponse(synced=result.synced, skipped=result.skipped, total=result.total)
    except CollaboratorUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail='The calendar could not be reached. Try again later.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
