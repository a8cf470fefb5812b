"""
services/user_service.py — Read-only access to provisioned users.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from studyhub.app.errors import ErrorCode, NotFoundError
from studyhub.app.models.user import User


def user_to_dict(user: User) -> dict:
    return {
        "id":         user.id,
        "username":   user.username,
        "full_name":  user.full_name,
        "email":      user.email,
        "role":       user.role.value,
        "created_at": user.created_at,
    }


def get_profile(user_id: int, session: Session) -> dict:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} does not exist.",
        )
    return user_to_dict(user)
