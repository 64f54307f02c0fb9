import jwt
import pytest

from agenda.auth.jwt_handler import InvalidPractitionerToken, issue_practitioner_token, read_practitioner_email
from agenda.core import config


def test_issued_token_round_trips_normalized_email() -> None:
    token = issue_practitioner_token(' Ana@Example.com ')

    assert read_practitioner_email(token) == 'ana@example.com'


def test_expired_token_is_rejected() -> None:
    token = issue_practitioner_token('ana@example.com', expires_minutes=-1)

    with pytest.raises(InvalidPractitionerToken):
        read_practitioner_email(token)


def test_token_signed_with_another_key_is_rejected() -> None:
    token = jwt.encode(
        {'sub': 'ana@example.com', 'scope': 'practitioner', 'exp': 4102444800},
        'some-other-secret-that-is-long-enough',
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(InvalidPractitionerToken):
        read_practitioner_email(token)


@pytest.mark.parametrize(
    'claims',
    [
        {'sub': 'ana@example.com', 'exp': 4102444800},
        {'scope': 'practitioner', 'exp': 4102444800},
        {'sub': 'ana@example.com', 'scope': 'practitioner'},
    ],
)
def test_token_without_practitioner_claims_is_rejected(claims: dict) -> None:
    token = jwt.encode(claims, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)

    with pytest.raises(InvalidPractitionerToken):
        read_practitioner_email(token)


def test_garbage_token_is_rejected() -> None:
    with pytest.raises(InvalidPractitionerToken):
        read_practitioner_email('not-a-jwt')
