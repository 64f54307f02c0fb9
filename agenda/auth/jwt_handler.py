"""Practitioner access tokens: HS-signed JWTs whose subject is the practitioner's email."""
from datetime import datetime, timedelta, timezone

import jwt

from agenda.core import config

PRACTITIONER_SCOPE = "practitioner"


class InvalidPractitionerToken(Exception):
    """The token is malformed, expired, badly signed or not a practitioner token."""


def issue_practitioner_token(email: str, expires_minutes: int | None = None) -> str:
    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": email.strip().lower(),
        "scope": PRACTITIONER_SCOPE,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def read_practitioner_email(token: str) -> str:
    """Return the normalized email a valid practitioner token was issued for."""
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidPractitionerToken(str(exc)) from exc

    if payload.get("scope") != PRACTITIONER_SCOPE:
        raise InvalidPractitionerToken("Token was not issued to a practitioner")

    email = str(payload["sub"]).strip().lower()
    if not email:
        raise InvalidPractitionerToken("Token subject is empty")
    return email
