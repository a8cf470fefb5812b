"""
models/membership.py — Membership junction table definition.

`role` is the member's role at join time. It is never updated when the
user's account role changes later; fan-out reads this column, not users.role.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db
from studyhub.app.models.columns import enum_column_type
from studyhub.app.models.user import Role


class Membership(db.Model):
    __tablename__ = "memberships"

    __table_args__ = (
        # A user can only belong to a group once.
        UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    role: Mapped[Role] = mapped_column(
        enum_column_type(Role, "membership_role_enum"),
        nullable=False,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="memberships",
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Membership id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id} "
            f"role={self.role.value}>"
        )
