import os
from threading import Lock

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from agenda.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")


def use_immediate_transactions(target: Engine) -> Engine:
    """
    Make every SQLite transaction start with ``BEGIN IMMEDIATE``.

    SQLite ignores ``SELECT ... FOR UPDATE``; taking the database write lock
    when the transaction begins serialises booking transactions instead.
    Other dialects are returned untouched.
    """
    if target.dialect.name != "sqlite":
        return target

    @event.listens_for(target, "connect")
    def disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return target


engine = use_immediate_transactions(create_engine(DATABASE_URL, echo=config.SQL_ECHO))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_reservation_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_reservation_schema() -> None:
    """Bring a pre-existing ``reservations`` table up to the current columns and indexes."""
    global _reservation_schema_checked

    if _reservation_schema_checked:
        return

    with _schema_lock:
        if _reservation_schema_checked:
            return

        inspector = inspect(engine)

        if 'reservations' not in inspector.get_table_names():
            _reservation_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('reservations')}
        migration_steps = [
            ('guest_email', 'ALTER TABLE reservations ADD COLUMN guest_email VARCHAR'),
            ('reminder_24h_sent', 'ALTER TABLE reservations ADD COLUMN reminder_24h_sent BOOLEAN DEFAULT FALSE NOT NULL'),
            ('reminder_1h_sent', 'ALTER TABLE reservations ADD COLUMN reminder_1h_sent BOOLEAN DEFAULT FALSE NOT NULL'),
            ('external_event_id', 'ALTER TABLE reservations ADD COLUMN external_event_id VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_reservations_time_range ON reservations(start_time, end_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_reservations_status_start ON reservations(status, start_time)')
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_reservations_external_event '
                    'ON reservations(external_event_id)'
                )
            )
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_reservations_active_slot '
                    'ON reservations(practitioner_id, start_time) '
                    "WHERE status IN ('SCHEDULED', 'CONFIRMED')"
                )
            )

        _reservation_schema_checked = True
