"""
models/group.py — Group table definition.

No business logic. Deletion is an explicit, ordered cascade performed by
group_service.delete_group(); the FKs below are RESTRICT so a forgotten child
table fails loudly instead of being silently orphaned.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        CheckConstraint(
            "LENGTH(join_code) BETWEEN 6 AND 8",
            name="ck_groups_join_code_length",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Names are not unique; see group_service.find_by_name().
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    join_code: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        unique=True,
    )

    # ON DELETE RESTRICT: cannot delete a user who created a group.
    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by],
    )

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="group",
        passive_deletes=True,
    )

    tasks: Mapped[list["Task"]] = relationship(  # noqa: F821
        "Task",
        back_populates="group",
        passive_deletes=True,
    )

    invitations: Mapped[list["Invitation"]] = relationship(  # noqa: F821
        "Invitation",
        back_populates="group",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r} join_code={self.join_code!r}>"
