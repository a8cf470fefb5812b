"""
services/group_service.py — Group Registry.

Owns group metadata, join-code allocation and the cascade delete.

Invariants enforced here:
  - join_code is unique across live groups. Allocation checks candidates
    before inserting and retries the insert itself on an IntegrityError race.
    The code length grows after JOIN_CODE_ATTEMPTS collisions so the loop
    always terminates.
  - The creator is always a member (membership inserted with the group).
  - delete_group() removes memberships, assignments, tasks and invitations
    and the group itself in the caller's transaction. Nothing is committed
    here, so any failure leaves the group untouched once the route rolls back.

Layer rules:
  - No Flask imports. Join-code settings are passed in by the route.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studyhub.app import clock
from studyhub.app.errors import ConflictError, ErrorCode, NotFoundError
from studyhub.app.models.assignment import TaskAssignment
from studyhub.app.models.group import Group
from studyhub.app.models.invitation import Invitation
from studyhub.app.models.membership import Membership
from studyhub.app.models.task import Task
from studyhub.app.models.user import Role, User
from studyhub.app.policy import Action, Relationship, authorize
from studyhub.app.services import membership_service

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class JoinCodeSettings:
    length: int = 6
    max_length: int = 8
    attempts: int = 10

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "JoinCodeSettings":
        return cls(
            length=config.get("JOIN_CODE_LENGTH", cls.length),
            max_length=config.get("JOIN_CODE_MAX_LENGTH", cls.max_length),
            attempts=config.get("JOIN_CODE_ATTEMPTS", cls.attempts),
        )


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
        )
    return group


def generate_join_code(length: int) -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def _insert_with_unique_code(group: Group, settings: JoinCodeSettings, session: Session) -> None:
    """
    Assigns a free join code to `group` and flushes it.

    Each candidate is first checked against live groups; the insert runs in a
    savepoint so a concurrent writer taking the same code only costs one retry.

    Raises:
      ConflictError(JOIN_CODE_EXHAUSTED, 409) — every length up to
                                                max_length collided
    """
    for length in range(settings.length, settings.max_length + 1):
        for _ in range(settings.attempts):
            candidate = generate_join_code(length)
            if find_by_code(candidate, session) is not None:
                logger.debug("Join code collision on %s (length %d)", candidate, length)
                continue

            group.join_code = candidate
            try:
                with session.begin_nested():
                    session.add(group)
            except IntegrityError:
                if find_by_code(candidate, session) is None:
                    raise
                logger.debug("Join code %s taken concurrently; retrying", candidate)
                continue
            return

        logger.warning(
            "Join code space at length %d exhausted after %d attempts; growing length",
            length,
            settings.attempts,
        )

    raise ConflictError(
        ErrorCode.JOIN_CODE_EXHAUSTED,
        "Could not allocate a unique join code. Please try again.",
    )


def _delete_memberships(group_id: int, session: Session) -> None:
    session.execute(delete(Membership).where(Membership.group_id == group_id))


def _delete_assignments(group_id: int, session: Session) -> None:
    task_ids = select(Task.id).where(Task.group_id == group_id)
    session.execute(
        delete(TaskAssignment).where(TaskAssignment.task_id.in_(task_ids)),
        execution_options={"synchronize_session": "fetch"},
    )


def _delete_tasks(group_id: int, session: Session) -> None:
    session.execute(delete(Task).where(Task.group_id == group_id))


def _delete_invitations(group_id: int, session: Session) -> None:
    session.execute(delete(Invitation).where(Invitation.group_id == group_id))


def group_to_dict(group: Group) -> dict:
    """Lightweight group dict (no member list)."""
    return {
        "id":          group.id,
        "name":        group.name,
        "description": group.description,
        "join_code":   group.join_code,
        "created_by":  group.created_by,
        "created_at":  group.created_at,
        "updated_at":  group.updated_at,
    }


def member_to_dict(membership: Membership) -> dict:
    return {
        "user_id":   membership.user_id,
        "username":  membership.user.username,
        "full_name": membership.user.full_name,
        "role":      membership.role.value,
        "joined_at": membership.joined_at,
    }


# ── Public service functions ───────────────────────────────────────────────

def find_by_code(code: str, session: Session) -> Group | None:
    """Case-insensitive join-code lookup."""
    return session.execute(
        select(Group).where(func.upper(Group.join_code) == code.strip().upper())
    ).scalar_one_or_none()


def find_by_name(name: str, session: Session) -> Group:
    """
    Resolves a group by its exact name.

    Group names are not unique, so an ambiguous name is an error rather than
    an arbitrary pick.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      NotFoundError(GROUP_NAME_AMBIGUOUS, 404)
    """
    matches = session.execute(
        select(Group).where(Group.name == name.strip()).order_by(Group.id.asc()).limit(2)
    ).scalars().all()

    if not matches:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"No group named {name!r} exists.",
            field="group_name",
        )
    if len(matches) > 1:
        raise NotFoundError(
            ErrorCode.GROUP_NAME_AMBIGUOUS,
            f"More than one group is named {name!r}.",
            field="group_name",
        )
    return matches[0]


def create_group(
        name: str,
        description: str | None,
        creator_id: int,
        session: Session,
        join_codes: JoinCodeSettings | None = None,
) -> Group:
    """
    Creates a group with a fresh join code and makes the creator its first
    member (with the creator's current account role).

    Raises:
      NotFoundError(USER_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)       — teachers cannot create groups
      ConflictError(JOIN_CODE_EXHAUSTED, 409)
    """
    creator = session.get(User, creator_id)
    if creator is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {creator_id} does not exist.",
        )

    authorize(
        Action.CREATE_GROUP,
        creator.role,
        message="Only students and admins can create groups.",
    )

    group = Group(
        name=name,
        description=description,
        created_by=creator_id,
        created_at=clock.now(),
    )
    _insert_with_unique_code(group, join_codes or JoinCodeSettings(), session)

    membership_service.add_member(group.id, creator_id, creator.role, session)

    logger.info("Group %s created by user %s with code %s", group.id, creator_id, group.join_code)
    return group


def update_group(
        group_id: int,
        partial: Mapping[str, Any],
        caller_id: int,
        caller_role: Role | str,
        session: Session,
) -> Group:
    """
    Applies a partial update of name and/or description.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403) — caller is neither creator nor admin
    """
    group = _get_group_or_404(group_id, session)
    authorize(
        Action.UPDATE_GROUP,
        caller_role,
        Relationship(is_group_creator=group.created_by == caller_id),
        message="Only the group creator or an admin can edit this group.",
    )

    for field in ("name", "description"):
        if field in partial:
            setattr(group, field, partial[field])
    group.updated_at = clock.now()
    session.flush()
    return group


def delete_group(group_id: int, caller_id: int, caller_role: Role | str, session: Session) -> None:
    """
    Deletes the group and everything scoped to it.

    Order: memberships, assignments, tasks, invitations, group. All
    statements run in the caller's transaction.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)
    """
    group = _get_group_or_404(group_id, session)
    authorize(
        Action.DELETE_GROUP,
        caller_role,
        Relationship(is_group_creator=group.created_by == caller_id),
        message="Only the group creator or an admin can delete this group.",
    )

    _delete_memberships(group_id, session)
    _delete_assignments(group_id, session)
    _delete_tasks(group_id, session)
    _delete_invitations(group_id, session)
    session.execute(delete(Group).where(Group.id == group_id))
    session.flush()

    logger.info("Group %s deleted by user %s", group_id, caller_id)


def get_group(group_id: int, caller_id: int, caller_role: Role | str, session: Session) -> dict:
    """
    Returns group details including the current member list.

    Non-members receive 403, not 404, when the group exists.
    """
    group = _get_group_or_404(group_id, session)
    authorize(
        Action.VIEW_GROUP,
        caller_role,
        Relationship(is_member=membership_service.is_member(group_id, caller_id, session)),
        message=f"You are not a member of group {group_id}.",
    )

    result = group_to_dict(group)
    result["members"] = [
        member_to_dict(m) for m in membership_service.list_members(group_id, session)
    ]
    return result


def list_members(group_id: int, caller_id: int, caller_role: Role | str, session: Session) -> list[dict]:
    _get_group_or_404(group_id, session)
    authorize(
        Action.VIEW_GROUP,
        caller_role,
        Relationship(is_member=membership_service.is_member(group_id, caller_id, session)),
        message=f"You are not a member of group {group_id}.",
    )
    return [member_to_dict(m) for m in membership_service.list_members(group_id, session)]


def list_groups(user_id: int, session: Session) -> list[dict]:
    """The caller's groups, oldest first. No member lists."""
    return [group_to_dict(g) for g in membership_service.list_groups_for_user(user_id, session)]


def list_all_groups(caller_role: Role | str, session: Session) -> list[dict]:
    authorize(Action.LIST_ALL_GROUPS, caller_role, message="Only admins can list every group.")
    groups = session.execute(
        select(Group).order_by(Group.created_at.asc(), Group.id.asc())
    ).scalars().all()
    return [group_to_dict(g) for g in groups]
