"""
middleware/auth_middleware.py — Bearer-token authentication.

Credential issuance lives outside this service. Tokens arrive already signed
(HS256, `sub` = user id); this module only verifies them and resolves the
caller to a Principal(user_id, role).

The role is read from the users row on every request, never from the token,
so a stale token cannot carry an outdated role.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Authenticator.resolve(token) verifies signature and expiry and loads
     the user
  3. Attaches g.principal, g.user_id and g.role for the request

Strict responsibility boundary:
  - This middleware answers "who is calling" (401) only.
  - Authorization (403) is decided by app/policy.py, called from services.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, bad payload,
                         or the user no longer exists
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Callable

import jwt
from flask import current_app, g, request
from sqlalchemy.orm import Session

from studyhub.app.errors import AuthError, ErrorCode
from studyhub.app.extensions import db
from studyhub.app.models.user import Role, User


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: Role


class Authenticator:
    """
    Verifies a bearer token and resolves it to a Principal.

    Usable outside a request (tests, CLI) by passing the secret and session
    explicitly.
    """

    def __init__(self, secret: str, session: Session, algorithm: str = "HS256") -> None:
        self.secret = secret
        self.session = session
        self.algorithm = algorithm

    def resolve(self, token: str) -> Principal:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthError(
                ErrorCode.TOKEN_EXPIRED,
                "The access token has expired.",
            ) from None
        except jwt.InvalidTokenError:
            # Covers: bad signature, malformed token, invalid claims, etc.
            raise AuthError(
                ErrorCode.TOKEN_INVALID,
                "The access token is invalid or has been tampered with.",
            ) from None

        sub = payload.get("sub")
        if sub is None:
            raise AuthError(
                ErrorCode.TOKEN_INVALID,
                "The access token is missing the required 'sub' claim.",
            )

        try:
            user_id = int(sub)
        except (TypeError, ValueError):
            raise AuthError(
                ErrorCode.TOKEN_INVALID,
                "The 'sub' claim in the access token is not a valid user ID.",
            ) from None

        user = self.session.get(User, user_id)
        if user is None:
            raise AuthError(
                ErrorCode.TOKEN_INVALID,
                "The access token refers to a user that does not exist.",
            )

        return Principal(user_id=user.id, role=user.role)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces authentication.

    Usage:
        @tasks_bp.get("/mine")
        @require_auth
        def my_tasks():
            tasks = task_service.list_by_user(g.user_id, db.session)
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Parses the Authorization header and sets g.principal / g.user_id / g.role.

    Raises AuthError on any failure (never returns a response directly — the
    error propagates to the global Flask error handler).
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AuthError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
        )

    authenticator = Authenticator(
        current_app.config["JWT_SECRET_KEY"],
        db.session,
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )
    principal = authenticator.resolve(parts[1])

    # Services never import flask.g; routes pass these as plain arguments.
    g.principal = principal
    g.user_id = principal.user_id
    g.role = principal.role
