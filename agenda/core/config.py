import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), ["http://localhost:3000"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

# Shared secret the external scheduler sends when triggering a reminder sweep.
CRON_SECRET = os.getenv("CRON_SECRET", "")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Mexico_City")

GOOGLE_CALENDAR_API_URL = os.getenv("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3")
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CALENDAR_TIMEOUT_SECONDS = float(os.getenv("CALENDAR_TIMEOUT_SECONDS", "10"))
CALENDAR_SYNC_DAYS = int(os.getenv("CALENDAR_SYNC_DAYS", "30"))

TWILIO_API_URL = os.getenv("TWILIO_API_URL", "https://api.twilio.com/2010-04-01")
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER", "")
REMINDER_CHANNEL = os.getenv("REMINDER_CHANNEL", "whatsapp").strip().lower()
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))

SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)


def validate_runtime_config() -> None:
    if REMINDER_CHANNEL not in {"sms", "whatsapp"}:
        raise RuntimeError("REMINDER_CHANNEL must be 'sms' or 'whatsapp'.")
    if APP_ENV.lower() == "production":
        if JWT_SECRET_KEY == "change-me":
            raise RuntimeError("JWT_SECRET_KEY must be set in production.")
        if not CRON_SECRET:
            raise RuntimeError("CRON_SECRET must be set in production.")
