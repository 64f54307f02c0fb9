import re

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_current_practitioner
from agenda.core import config
from agenda.database import get_db
from agenda.models.practitioner import Practitioner
from agenda.models.settings import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_SESSION_DURATION_MINUTES,
    AvailabilitySettings,
)
from agenda.routes.common import database_unavailable
from agenda.scheduling.errors import InvalidConfiguration
from agenda.scheduling.working_hours import (
    DEFAULT_WORKING_HOURS,
    load_timezone,
    validate_working_hours,
)

router = APIRouter(tags=['settings'])

SLUG_PATTERN = re.compile(r'^[a-z0-9-]+$')
MIN_SLUG_LENGTH = 3
MAX_REMINDER_TEXT_LENGTH = 500


class WorkingDayPayload(BaseModel):
    start: str
    end: str
    enabled: bool


class UpdateSettingsRequest(BaseModel):
    booking_slug: str
    session_duration_minutes: int = Field(ge=15, le=180)
    buffer_minutes: int = Field(ge=0, le=60)
    working_hours: dict[str, WorkingDayPayload]
    timezone: str
    reminder_24h: bool
    reminder_1h: bool
    reminder_message: str | None = None
    payment_reminder: str | None = None

    @field_validator('booking_slug')
    @classmethod
    def validate_booking_slug(cls, value: str) -> str:
        normalized = value.strip()
        if len(normalized) < MIN_SLUG_LENGTH:
            raise ValueError(f'The booking link must be at least {MIN_SLUG_LENGTH} characters.')
        if not SLUG_PATTERN.match(normalized):
            raise ValueError('Only lowercase letters, numbers and hyphens are allowed.')
        return normalized

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        normalized = value.strip()
        try:
            load_timezone(normalized)
        except InvalidConfiguration as exc:
            raise ValueError(str(exc)) from exc
        return normalized

    @field_validator('reminder_message', 'payment_reminder')
    @classmethod
    def validate_reminder_text(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_REMINDER_TEXT_LENGTH:
            raise ValueError(f'Reminder texts must be {MAX_REMINDER_TEXT_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def check_working_hours(self) -> 'UpdateSettingsRequest':
        raw = {day: rule.model_dump() for day, rule in self.working_hours.items()}
        try:
            validate_working_hours(raw)
        except InvalidConfiguration as exc:
            raise ValueError(str(exc)) from exc
        return self


class SettingsResponse(BaseModel):
    id: int
    practitioner_id: int
    booking_slug: str
    session_duration_minutes: int
    buffer_minutes: int
    working_hours: dict[str, WorkingDayPayload]
    timezone: str
    reminder_24h: bool
    reminder_1h: bool
    reminder_message: str | None = None
    payment_reminder: str | None = None

    class Config:
        from_attributes = True


def derive_booking_slug(practitioner: Practitioner) -> str:
    slug = re.sub(r'\s+', '-', (practitioner.name or '').strip().lower())
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    if len(slug) < MIN_SLUG_LENGTH:
        return f'practitioner-{practitioner.id}'
    return slug


def get_or_create_settings(db: Session, practitioner: Practitioner) -> AvailabilitySettings:
    settings = db.query(AvailabilitySettings).filter(
        AvailabilitySettings.practitioner_id == practitioner.id,
    ).first()
    if settings is not None:
        return settings

    slug = derive_booking_slug(practitioner)
    slug_taken = db.query(AvailabilitySettings.id).filter(AvailabilitySettings.booking_slug == slug).first()
    if slug_taken:
        slug = f'{slug}-{practitioner.id}'

    settings = AvailabilitySettings(
        practitioner_id=practitioner.id,
        booking_slug=slug,
        working_hours={day: dict(rule) for day, rule in DEFAULT_WORKING_HOURS.items()},
        session_duration_minutes=DEFAULT_SESSION_DURATION_MINUTES,
        buffer_minutes=DEFAULT_BUFFER_MINUTES,
        timezone=config.DEFAULT_TIMEZONE,
        reminder_24h=True,
        reminder_1h=True,
    )
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


@router.get('', response_model=SettingsResponse)
def read_settings(
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
):
    try:
        return get_or_create_settings(db, practitioner)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('', response_model=SettingsResponse)
def update_settings(
    data: UpdateSettingsRequest,
    practitioner: Practitioner = Depends(get_current_practitioner),
    db: Session = Depends(get_db),
):
    try:
        slug_owner = db.query(AvailabilitySettings).filter(
            AvailabilitySettings.booking_slug == data.booking_slug,
            AvailabilitySettings.practitioner_id != practitioner.id,
        ).first()
        if slug_owner:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This booking link is already taken.',
            )

        settings = db.query(AvailabilitySettings).filter(
            AvailabilitySettings.practitioner_id == practitioner.id,
        ).first()
        if settings is None:
            settings = AvailabilitySettings(practitioner_id=practitioner.id)
            db.add(settings)

        settings.booking_slug = data.booking_slug
        settings.session_duration_minutes = data.session_duration_minutes
        settings.buffer_minutes = data.buffer_minutes
        settings.working_hours = {day: rule.model_dump() for day, rule in data.working_hours.items()}
        settings.timezone = data.timezone
        settings.reminder_24h = data.reminder_24h
        settings.reminder_1h = data.reminder_1h
        settings.reminder_message = data.reminder_message
        settings.payment_reminder = data.payment_reminder

        db.commit()
        db.refresh(settings)

        return settings
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This booking link is already taken.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
