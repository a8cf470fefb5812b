"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the StudyHub API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
  - Domain errors propagate unchanged to the HTTP layer. Only unexpected
    storage failures are wrapped, into InternalError (see transaction.py).
"""

from __future__ import annotations


class AppError(Exception):

    default_status = 500

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int | None = None,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status if http_status is not None else self.default_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Taxonomy ───────────────────────────────────────────────────────────────
# One subclass per failure category so callers can catch by kind while the
# HTTP layer keeps using the single AppError handler.

class ValidationError(AppError):
    """Malformed or missing input. Caller's fault, never retried."""
    default_status = 400


class AuthError(AppError):
    """We do not know who the caller is."""
    default_status = 401


class ForbiddenError(AppError):
    """Authenticated, but not authorized for this action."""
    default_status = 403


class NotFoundError(AppError):
    """Referenced entity is absent."""
    default_status = 404


class ConflictError(AppError):
    """Uniqueness or state-machine violation."""
    default_status = 409


class InternalError(AppError):
    """Unexpected storage failure. The message never exposes storage internals."""
    default_status = 500


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated by the section header.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_STATUS             = "INVALID_STATUS"
    INVALID_DECISION           = "INVALID_DECISION"
    INVALID_DUE_DATE           = "INVALID_DUE_DATE"
    ASSIGNEE_NOT_MEMBER        = "ASSIGNEE_NOT_MEMBER"
    TASK_GROUP_MISMATCH        = "TASK_GROUP_MISMATCH"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ALREADY_MEMBER               = "ALREADY_MEMBER"
    CREATOR_CANNOT_LEAVE         = "CREATOR_CANNOT_LEAVE"
    JOIN_CODE_EXHAUSTED          = "JOIN_CODE_EXHAUSTED"
    DUPLICATE_INVITATION         = "DUPLICATE_INVITATION"
    INVITATION_ALREADY_PROCESSED = "INVITATION_ALREADY_PROCESSED"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    TEACHER_NOT_FOUND          = "TEACHER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    GROUP_NAME_AMBIGUOUS       = "GROUP_NAME_AMBIGUOUS"
    MEMBERSHIP_NOT_FOUND       = "MEMBERSHIP_NOT_FOUND"
    TASK_NOT_FOUND             = "TASK_NOT_FOUND"
    INVITATION_NOT_FOUND       = "INVITATION_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
