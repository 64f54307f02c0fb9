from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agenda.auth.dependencies import require_cron_secret
from agenda.database import get_db
from agenda.routes.common import database_unavailable, ensure_database_ready, utcnow
from agenda.scheduling.reminders import run_reminder_sweep
from agenda.services.notifications import TwilioNotifier, get_notifier

router = APIRouter(tags=['reminders'])


class ReminderSweepResponse(BaseModel):
    message: str
    sent_24h: int
    sent_1h: int
    failed: int


@router.get('', response_model=ReminderSweepResponse, dependencies=[Depends(require_cron_secret)])
def process_reminders(
    db: Session = Depends(get_db),
    notifier: TwilioNotifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        result = run_reminder_sweep(db, utcnow(), notifier)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return ReminderSweepResponse(
        message=f'Sent {result.sent_24h} 24h reminders and {result.sent_1h} 1h reminders',
        sent_24h=result.sent_24h,
        sent_1h=result.sent_1h,
        failed=result.failed,
    )
