"""
models/invitation.py — Teacher invitation table definition.

State machine: pending → approved | rejected. Terminal states never change;
invitation_service.respond() enforces this with a conditional UPDATE.

The partial unique index allows at most one *pending* invitation per
(group, teacher) pair while letting approved/rejected history accumulate.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db
from studyhub.app.models.columns import enum_column_type


class InvitationStatus(str, enum.Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not InvitationStatus.PENDING


class Invitation(db.Model):
    __tablename__ = "invitations"

    __table_args__ = (
        Index(
            "uq_invitations_pending_pair",
            "group_id",
            "invited_teacher_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    invited_teacher_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    invited_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    project_details: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    status: Mapped[InvitationStatus] = mapped_column(
        enum_column_type(InvitationStatus, "invitation_status_enum"),
        nullable=False,
        default=InvitationStatus.PENDING,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="invitations",
    )

    teacher: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[invited_teacher_id],
    )

    inviter: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[invited_by],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Invitation id={self.id} "
            f"group_id={self.group_id} "
            f"teacher={self.invited_teacher_id} "
            f"status={self.status.value}>"
        )
