"""
models/task.py — Task table definition and the TaskStatus enum.

Key design points:
  - `status` is the canonical, group-level view of the task (admin lists,
    teacher views). Each member's personal progress lives in
    task_assignments.status; the two are deliberately separate columns.
  - `assigned_to` is validated against current membership when written and
    is not re-validated if that member later leaves.
  - TaskStatus is defined here so schemas and services can import it without
    repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studyhub.app.extensions import db
from studyhub.app.models.columns import enum_column_type


class TaskStatus(str, enum.Enum):
    PENDING     = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED   = "completed"
    CANCELLED   = "cancelled"

    @classmethod
    def coerce(cls, value) -> "TaskStatus":
        """
        Case-insensitive lookup used at every write boundary.

        "In Progress", "in-progress" and "IN_PROGRESS" all map to IN_PROGRESS.
        Raises ValueError for anything outside the enum.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid task status: {value!r}")
        normalised = "_".join(value.strip().lower().replace("-", " ").split())
        try:
            return cls(normalised)
        except ValueError:
            raise ValueError(f"Invalid task status: {value!r}") from None


class Task(db.Model):
    __tablename__ = "tasks"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_tasks_title_nonempty",
        ),
        Index("idx_tasks_group_due", "group_id", "due_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    status: Mapped[TaskStatus] = mapped_column(
        enum_column_type(TaskStatus, "task_status_enum"),
        nullable=False,
        default=TaskStatus.PENDING,
    )

    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # NULL = group-wide task, visible to every member.
    assigned_to: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
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

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="tasks",
    )

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[created_by],
    )

    assignee: Mapped["User | None"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[assigned_to],
    )

    # ON DELETE CASCADE: assignment rows are owned by their task.
    assignments: Mapped[list["TaskAssignment"]] = relationship(  # noqa: F821
        "TaskAssignment",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_group_wide(self) -> bool:
        return self.assigned_to is None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Task id={self.id} "
            f"group_id={self.group_id} "
            f"status={self.status.value}>"
        )
