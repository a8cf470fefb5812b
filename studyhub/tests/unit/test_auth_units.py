"""
Unit tests for the Authenticator: token verification and principal resolution
without a Flask request.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest

from studyhub.app.errors import AuthError, ErrorCode
from studyhub.app.middleware.auth_middleware import Authenticator, Principal
from studyhub.app.models.user import Role, User

SECRET = "unit-secret"


def _token(payload: dict, secret: str = SECRET) -> str:
    return jwt.encode(payload, secret, algorithm="HS256")


def _authenticator(user=None) -> tuple[Authenticator, MagicMock]:
    session = MagicMock()
    session.get.return_value = user
    return Authenticator(SECRET, session), session


def test_resolves_principal_with_role_from_database():
    auth, session = _authenticator(SimpleNamespace(id=7, role=Role.TEACHER))

    principal = auth.resolve(_token({"sub": "7", "role": "admin"}))

    assert principal == Principal(user_id=7, role=Role.TEACHER)
    session.get.assert_called_once_with(User, 7)


def test_expired():
    auth, _ = _authenticator(SimpleNamespace(id=7, role=Role.STUDENT))
    token = _token({"sub": "7", "exp": datetime.now(timezone.utc) - timedelta(seconds=1)})

    with pytest.raises(AuthError) as exc_info:
        auth.resolve(token)

    assert exc_info.value.code == ErrorCode.TOKEN_EXPIRED
    assert exc_info.value.http_status == 401


@pytest.mark.parametrize("token", [
    "garbage",
    _token({"sub": "7"}, secret="other-secret"),
    _token({"user": 7}),
    _token({"sub": "seven"}),
])
def test_invalid_tokens(token):
    auth, _ = _authenticator(SimpleNamespace(id=7, role=Role.STUDENT))

    with pytest.raises(AuthError) as exc_info:
        auth.resolve(token)

    assert exc_info.value.code == ErrorCode.TOKEN_INVALID


def test_unknown_user():
    auth, _ = _authenticator(None)

    with pytest.raises(AuthError) as exc_info:
        auth.resolve(_token({"sub": "7"}))

    assert exc_info.value.code == ErrorCode.TOKEN_INVALID
