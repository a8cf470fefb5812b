"""
models/assignment.py — TaskAssignment table definition.

One row per (task, eligible member), created by assignment_service.fanout().
The row is the member's personal view of the task; its status is owned by
user_id alone.

FK policy:
  - task_id ON DELETE CASCADE — assignments are owned by their task.
  - user_id ON DELETE RESTRICT — rows outlive the member's membership
    (stale rows are kept for history and filtered at read time).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db
from studyhub.app.models.columns import enum_column_type
from studyhub.app.models.task import TaskStatus


class TaskAssignment(db.Model):
    __tablename__ = "task_assignments"

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    task_id: Mapped[int] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[TaskStatus] = mapped_column(
        enum_column_type(TaskStatus, "assignment_status_enum"),
        nullable=False,
        default=TaskStatus.PENDING,
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

    task: Mapped["Task"] = relationship(  # noqa: F821
        "Task",
        back_populates="assignments",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<TaskAssignment id={self.id} "
            f"task_id={self.task_id} "
            f"user_id={self.user_id} "
            f"status={self.status.value}>"
        )
