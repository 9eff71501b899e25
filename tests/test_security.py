# mypy: ignore-errors
# tests/test_security.py
"""Tests for JWT helpers."""

from datetime import UTC, datetime, timedelta

import pytest
from jose import JWTError, jwt

from protocol_forum.core.security import create_access_token, decode_access_token
from protocol_forum.core.settings import settings


def test_round_trip_user_id() -> None:
    assert decode_access_token(create_access_token(42)) == 42


def test_expired_token_is_rejected() -> None:
    token = jwt.encode(
        {"sub": "1", "exp": datetime.now(UTC) - timedelta(minutes=1)},
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(JWTError):
        decode_access_token(token)


def test_token_signed_with_other_key_is_rejected() -> None:
    token = jwt.encode({"sub": "1"}, "another-secret", algorithm=settings.jwt_algorithm)
    with pytest.raises(JWTError):
        decode_access_token(token)


@pytest.mark.parametrize("claims", [{}, {"sub": "not-a-number"}])
def test_token_without_numeric_subject_is_rejected(claims) -> None:
    token = jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)
    with pytest.raises(JWTError):
        decode_access_token(token)
