import hmac

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from agenda.auth import jwt_handler
from agenda.core import config
from agenda.database import get_db
from agenda.models.practitioner import Practitioner

security = HTTPBearer()


def get_current_practitioner(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Practitioner:
    try:
        email = jwt_handler.read_practitioner_email(credentials.credentials)
    except jwt_handler.InvalidPractitionerToken as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    practitioner = db.query(Practitioner).filter(Practitioner.email == email).first()
    if practitioner is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Practitioner not found")
    return practitioner


def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(HTTPBearer(auto_error=False)),
) -> None:
    if (
        not config.CRON_SECRET
        or credentials is None
        or not hmac.compare_digest(credentials.credentials, config.CRON_SECRET)
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
