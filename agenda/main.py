import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from agenda.core import config
from agenda.database import Base, engine, ensure_reservation_schema
from agenda.models import patient, practitioner, reservation, settings  # noqa: F401
from agenda.routes import (
    booking_routes,
    calendar_routes,
    reminder_routes,
    reservation_routes,
    settings_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(title='Therapy Agenda API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_reservation_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Therapy Agenda API Running'}


app.include_router(booking_routes.router)
app.include_router(calendar_routes.router, prefix='/calendar')
app.include_router(settings_routes.router, prefix='/settings')
app.include_router(reservation_routes.router, prefix='/reservations')
app.include_router(reminder_routes.router, prefix='/reminders')
