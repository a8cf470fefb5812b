"""
models/user.py — User table definition.

Users are provisioned by the identity layer; this engine only reads them to
resolve roles and names. No business logic here.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db
from studyhub.app.models.columns import enum_column_type


class Role(str, enum.Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN   = "admin"


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    # Not unique. Invitations resolve teachers by full name (first match).
    full_name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        index=True,
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    role: Mapped[Role] = mapped_column(
        enum_column_type(Role, "user_role_enum"),
        nullable=False,
        default=Role.STUDENT,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} username={self.username!r} role={self.role.value}>"
