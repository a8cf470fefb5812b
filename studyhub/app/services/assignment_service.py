"""
services/assignment_service.py — Assignment Fanout.

One task_assignments row per (task, eligible member). A member is eligible
when their membership role is `student` and they are not the task creator,
so a creator never gets a row for their own task whatever their role.

Assignment.status is the member's personal view. It is written only by
sync_status() on behalf of that member; Task.status is never derived from it.

Rows of members who later leave the group are kept (history) and hidden by
joining against current membership on read.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from studyhub.app import clock
from studyhub.app.errors import ErrorCode, ValidationError
from studyhub.app.models.assignment import TaskAssignment
from studyhub.app.models.membership import Membership
from studyhub.app.models.task import Task, TaskStatus
from studyhub.app.models.user import Role

logger = logging.getLogger(__name__)


def coerce_status(value) -> TaskStatus:
    """Normalises a status value or raises ValidationError(INVALID_STATUS)."""
    try:
        return TaskStatus.coerce(value)
    except ValueError:
        raise ValidationError(
            ErrorCode.INVALID_STATUS,
            f"Status must be one of: {', '.join(s.value for s in TaskStatus)}.",
            field="status",
        ) from None


def fanout(task_id: int, group_id: int, creator_id: int, session: Session) -> int:
    """
    Creates one pending assignment per eligible member of the group.

    Members who already hold a row for this task are skipped, so a repeated
    call never produces duplicates. Zero eligible members is a no-op.

    Returns: the number of rows created.
    """
    already_assigned = select(TaskAssignment.user_id).where(TaskAssignment.task_id == task_id)
    user_ids = session.execute(
        select(Membership.user_id)
        .where(
            Membership.group_id == group_id,
            Membership.role == Role.STUDENT,
            Membership.user_id != creator_id,
            Membership.user_id.not_in(already_assigned),
        )
        .order_by(Membership.user_id.asc())
    ).scalars().all()

    if not user_ids:
        return 0

    now = clock.now()
    session.add_all(
        TaskAssignment(
            task_id=task_id,
            user_id=user_id,
            status=TaskStatus.PENDING,
            created_at=now,
        )
        for user_id in user_ids
    )
    session.flush()

    logger.debug("Fanned out task %s to %d member(s) of group %s", task_id, len(user_ids), group_id)
    return len(user_ids)


def get_assignment(task_id: int, user_id: int, session: Session) -> TaskAssignment | None:
    return session.execute(
        select(TaskAssignment).where(
            TaskAssignment.task_id == task_id,
            TaskAssignment.user_id == user_id,
        )
    ).scalar_one_or_none()


def sync_status(task_id: int, user_id: int, status, session: Session) -> bool:
    """
    Overwrites the member's assignment status. Idempotent.

    No row (group-wide task created before the user joined, the creator's own
    task, a teacher member) is a silent no-op.

    Raises:
      ValidationError(INVALID_STATUS, 400)

    Returns: True if a row was updated.
    """
    status = coerce_status(status)

    assignment = get_assignment(task_id, user_id, session)
    if assignment is None:
        return False

    if assignment.status is not status:
        assignment.status = status
        assignment.updated_at = clock.now()
        session.flush()
    return True


def list_for_task(task_id: int, session: Session, include_stale: bool = False) -> list[dict]:
    """
    Assignment rows for a task.

    A row is stale when its user is no longer a member of the task's group.
    Stale rows are omitted unless include_stale is True.
    """
    stmt = (
        select(TaskAssignment, Membership.id)
        .join(Task, Task.id == TaskAssignment.task_id)
        .outerjoin(
            Membership,
            and_(
                Membership.group_id == Task.group_id,
                Membership.user_id == TaskAssignment.user_id,
            ),
        )
        .where(TaskAssignment.task_id == task_id)
        .order_by(TaskAssignment.user_id.asc())
    )
    if not include_stale:
        stmt = stmt.where(Membership.id.is_not(None))

    return [
        {
            "task_id":    assignment.task_id,
            "user_id":    assignment.user_id,
            "status":     assignment.status.value,
            "stale":      membership_id is None,
            "created_at": assignment.created_at,
            "updated_at": assignment.updated_at,
        }
        for assignment, membership_id in session.execute(stmt).all()
    ]
