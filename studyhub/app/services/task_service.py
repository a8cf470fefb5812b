"""
services/task_service.py — Task Registry.

Canonical task records scoped to a group.

Status model:
  - Task.status is the canonical, group-level status (creator/admin view).
    update_task() writes it; update_task_status() writes it too (last writer
    wins) and then mirrors the value onto the caller's own assignment row.
  - Assignment.status is the member's personal view (assignment_service).

Visibility:
  - Members see tasks where assigned_to IS NULL or assigned_to = themselves.
  - Admins see everything.

Fan-out runs inside a savepoint after the task insert. A fan-out failure is
logged and swallowed: the task stays, the assignment rows do not.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from studyhub.app import clock
from studyhub.app.errors import ErrorCode, NotFoundError, ValidationError
from studyhub.app.models.assignment import TaskAssignment
from studyhub.app.models.group import Group
from studyhub.app.models.membership import Membership
from studyhub.app.models.task import Task, TaskStatus
from studyhub.app.models.user import Role
from studyhub.app.policy import Action, Relationship, authorize
from studyhub.app.services import assignment_service, membership_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_task_or_404(task_id: int, session: Session) -> Task:
    task = session.get(Task, task_id)
    if task is None:
        raise NotFoundError(
            ErrorCode.TASK_NOT_FOUND,
            f"Task {task_id} does not exist.",
        )
    return task


def _require_group(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            field="group_id",
        )
    return group


def _validate_assignee(group_id: int, assigned_to: int | None, session: Session) -> None:
    """assigned_to must be a current member of the task's group when set."""
    if assigned_to is None:
        return
    if not membership_service.is_member(group_id, assigned_to, session):
        raise ValidationError(
            ErrorCode.ASSIGNEE_NOT_MEMBER,
            f"User {assigned_to} is not a member of group {group_id}.",
            field="assigned_to",
        )


REQUIRED_TASK_FIELDS = ("title", "description", "status", "due_date", "group_id")


def _require_fields(data: Mapping[str, Any], fields) -> None:
    for name in fields:
        if data.get(name) is None:
            raise ValidationError(
                ErrorCode.MISSING_FIELD,
                f"'{name}' is required.",
                field=name,
            )


def _visible_to(user_id: int):
    return or_(Task.assigned_to.is_(None), Task.assigned_to == user_id)


def _run_fanout(task: Task, session: Session) -> None:
    """
    Fan-out is non-fatal: any failure rolls back the savepoint only and is
    logged with its traceback. The task row itself is kept.
    """
    try:
        with session.begin_nested():
            assignment_service.fanout(task.id, task.group_id, task.created_by, session)
    except Exception:
        logger.warning(
            "Fan-out failed for task %s in group %s; task kept without assignments",
            task.id,
            task.group_id,
            exc_info=True,
        )


def task_to_dict(task: Task) -> dict:
    return {
        "id":          task.id,
        "group_id":    task.group_id,
        "title":       task.title,
        "description": task.description,
        "due_date":    task.due_date,
        "status":      task.status.value,
        "created_by":  task.created_by,
        "assigned_to": task.assigned_to,
        "created_at":  task.created_at,
        "updated_at":  task.updated_at,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_task(
        data: Mapping[str, Any],
        caller_id: int,
        session: Session,
        caller_role: Role | str | None = None,
) -> Task:
    """
    Creates a task and fans it out to the group's eligible members before
    returning.

    Args:
        data: Validated TaskCreateSchema output — title, description,
              due_date, group_id, optional assigned_to and status.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)             — caller is not a member
      ValidationError(MISSING_FIELD, 400)
      ValidationError(ASSIGNEE_NOT_MEMBER, 400)
    """
    _require_fields(data, ("title", "description", "due_date", "group_id"))

    group_id = data["group_id"]
    _require_group(group_id, session)

    authorize(
        Action.CREATE_TASK,
        caller_role,
        Relationship(is_member=membership_service.is_member(group_id, caller_id, session)),
        message=f"You must be a member of group {group_id} to create tasks in it.",
    )

    assigned_to = data.get("assigned_to")
    _validate_assignee(group_id, assigned_to, session)

    status = data.get("status")
    task = Task(
        group_id=group_id,
        title=data["title"],
        description=data["description"],
        due_date=data["due_date"],
        status=assignment_service.coerce_status(status) if status is not None else TaskStatus.PENDING,
        created_by=caller_id,
        assigned_to=assigned_to,
        created_at=clock.now(),
    )
    session.add(task)
    session.flush()

    _run_fanout(task, session)

    logger.info("Task %s created in group %s by user %s", task.id, group_id, caller_id)
    return task


def update_task(
        task_id: int,
        data: Mapping[str, Any],
        caller_id: int,
        caller_role: Role | str,
        session: Session,
) -> Task:
    """
    Full update of a task by its creator or an admin.

    `data` carries the full field set; group_id must match the task's
    current group (tasks never move between groups). Writes the canonical
    status only; assignment rows are untouched.

    Raises:
      NotFoundError(TASK_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)
      ValidationError(TASK_GROUP_MISMATCH, 400)
      ValidationError(ASSIGNEE_NOT_MEMBER, 400)
      ValidationError(MISSING_FIELD, 400)
      ValidationError(INVALID_STATUS, 400)
    """
    task = _get_task_or_404(task_id, session)
    _require_fields(data, REQUIRED_TASK_FIELDS)

    authorize(
        Action.UPDATE_TASK,
        caller_role,
        Relationship(is_task_creator=task.created_by == caller_id),
        message="Only the task creator or an admin can edit this task.",
    )

    if data["group_id"] != task.group_id:
        raise ValidationError(
            ErrorCode.TASK_GROUP_MISMATCH,
            f"Task {task_id} belongs to group {task.group_id}; it cannot be moved.",
            field="group_id",
        )

    assigned_to = data.get("assigned_to")
    _validate_assignee(task.group_id, assigned_to, session)

    task.title = data["title"]
    task.description = data["description"]
    task.due_date = data["due_date"]
    task.status = assignment_service.coerce_status(data["status"])
    task.assigned_to = assigned_to
    task.updated_at = clock.now()
    session.flush()
    return task


def update_task_status(
        task_id: int,
        status,
        caller_id: int,
        session: Session,
        caller_role: Role | str | None = None,
) -> Task:
    """
    A member reports progress on a task.

    Writes the canonical Task.status, then mirrors the value onto the
    caller's own assignment row if one exists.

    Raises:
      NotFoundError(TASK_NOT_FOUND, 404)
      ValidationError(INVALID_STATUS, 400)
      ForbiddenError(FORBIDDEN, 403) — caller is not a current member
    """
    task = _get_task_or_404(task_id, session)
    status = assignment_service.coerce_status(status)

    authorize(
        Action.UPDATE_TASK_STATUS,
        caller_role,
        Relationship(is_member=membership_service.is_member(task.group_id, caller_id, session)),
        message=f"You must be a member of group {task.group_id} to update this task.",
    )

    task.status = status
    task.updated_at = clock.now()
    session.flush()

    assignment_service.sync_status(task.id, caller_id, status, session)
    return task


def delete_task(task_id: int, caller_id: int, caller_role: Role | str, session: Session) -> None:
    """
    Raises:
      NotFoundError(TASK_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)
    """
    task = _get_task_or_404(task_id, session)
    authorize(
        Action.DELETE_TASK,
        caller_role,
        Relationship(is_task_creator=task.created_by == caller_id),
        message="Only the task creator or an admin can delete this task.",
    )

    session.execute(delete(TaskAssignment).where(TaskAssignment.task_id == task_id))
    session.execute(delete(Task).where(Task.id == task_id))
    session.flush()
    logger.info("Task %s deleted by user %s", task_id, caller_id)


def get_task(task_id: int, caller_id: int, caller_role: Role | str, session: Session) -> dict:
    """
    Returns the task plus the caller's own assignment status (None when the
    caller holds no assignment row).
    """
    task = _get_task_or_404(task_id, session)
    authorize(
        Action.VIEW_TASK,
        caller_role,
        Relationship(is_member=membership_service.is_member(task.group_id, caller_id, session)),
        message=f"You are not a member of group {task.group_id}.",
    )

    result = task_to_dict(task)
    assignment = assignment_service.get_assignment(task_id, caller_id, session)
    result["assignment_status"] = assignment.status.value if assignment else None
    return result


def list_by_group(group_id: int, caller_id: int, caller_role: Role | str, session: Session) -> list[dict]:
    """
    Tasks of one group, ordered by due date.

    Members see group-wide tasks and tasks assigned to them. Admins see all.
    """
    _require_group(group_id, session)
    authorize(
        Action.VIEW_TASK,
        caller_role,
        Relationship(is_member=membership_service.is_member(group_id, caller_id, session)),
        message=f"You are not a member of group {group_id}.",
    )

    stmt = select(Task).where(Task.group_id == group_id)
    if Role(caller_role) is not Role.ADMIN:
        stmt = stmt.where(_visible_to(caller_id))
    stmt = stmt.order_by(Task.due_date.asc(), Task.id.asc())

    return [task_to_dict(t) for t in session.execute(stmt).scalars().all()]


def list_by_user(user_id: int, session: Session) -> list[dict]:
    """
    Every task visible to the user across the groups they currently belong
    to, each paired with the user's personal assignment status.

    Groups the user has left contribute nothing, even though their stale
    assignment rows still exist.
    """
    stmt = (
        select(Task, TaskAssignment.status, Group.name)
        .join(Membership, and_(Membership.group_id == Task.group_id, Membership.user_id == user_id))
        .join(Group, Group.id == Task.group_id)
        .outerjoin(
            TaskAssignment,
            and_(TaskAssignment.task_id == Task.id, TaskAssignment.user_id == user_id),
        )
        .where(_visible_to(user_id))
        .order_by(Task.due_date.asc(), Task.id.asc())
    )

    results = []
    for task, assignment_status, group_name in session.execute(stmt).all():
        item = task_to_dict(task)
        item["group_name"] = group_name
        item["assignment_status"] = assignment_status.value if assignment_status else None
        results.append(item)
    return results


def list_all(caller_role: Role | str, session: Session) -> list[dict]:
    authorize(Action.LIST_ALL_TASKS, caller_role, message="Only admins can list every task.")
    tasks = session.execute(
        select(Task).order_by(Task.due_date.asc(), Task.id.asc())
    ).scalars().all()
    return [task_to_dict(t) for t in tasks]


def list_assignments(
        task_id: int,
        caller_id: int,
        caller_role: Role | str,
        session: Session,
        include_stale: bool = False,
) -> list[dict]:
    """Assignment rows of a task, for members of its group and admins."""
    task = _get_task_or_404(task_id, session)
    authorize(
        Action.VIEW_TASK,
        caller_role,
        Relationship(is_member=membership_service.is_member(task.group_id, caller_id, session)),
        message=f"You are not a member of group {task.group_id}.",
    )
    return assignment_service.list_for_task(task_id, session, include_stale=include_stale)
