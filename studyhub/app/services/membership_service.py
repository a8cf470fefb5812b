"""
services/membership_service.py — Membership Store.

Owns the memberships table: (group, user) → role-at-join.

Rules:
  - UNIQUE(group_id, user_id). add_member() checks first and also guards the
    insert with a savepoint so a concurrent duplicate maps to ALREADY_MEMBER
    instead of a raw IntegrityError.
  - remove_member() never touches task_assignments. A leaving member's rows
    are kept and filtered out at read time (see assignment_service).
  - The group creator can never leave their own group.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studyhub.app import clock
from studyhub.app.errors import ConflictError, ErrorCode, NotFoundError
from studyhub.app.models.group import Group
from studyhub.app.models.membership import Membership
from studyhub.app.models.user import Role
from studyhub.app.policy import Action, Relationship, authorize

logger = logging.getLogger(__name__)


def get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    return get_membership(group_id, user_id, session) is not None


def add_member(group_id: int, user_id: int, role: Role | str, session: Session) -> Membership:
    """
    Inserts a membership carrying the user's role at join time.

    Raises:
      ConflictError(ALREADY_MEMBER, 409) — the pair already exists
    """
    if is_member(group_id, user_id, session):
        raise ConflictError(
            ErrorCode.ALREADY_MEMBER,
            f"User {user_id} is already a member of group {group_id}.",
        )

    membership = Membership(
        group_id=group_id,
        user_id=user_id,
        role=Role(role),
        joined_at=clock.now(),
    )
    try:
        with session.begin_nested():
            session.add(membership)
    except IntegrityError:
        raise ConflictError(
            ErrorCode.ALREADY_MEMBER,
            f"User {user_id} is already a member of group {group_id}.",
        ) from None

    logger.debug("User %s joined group %s as %s", user_id, group_id, membership.role.value)
    return membership


def remove_member(group_id: int, user_id: int, session: Session) -> None:
    """
    Deletes the membership row. Assignment rows are left in place.

    Raises:
      NotFoundError(MEMBERSHIP_NOT_FOUND, 404)
    """
    membership = get_membership(group_id, user_id, session)
    if membership is None:
        raise NotFoundError(
            ErrorCode.MEMBERSHIP_NOT_FOUND,
            f"User {user_id} is not a member of group {group_id}.",
        )
    session.delete(membership)
    session.flush()
    logger.debug("User %s left group %s", user_id, group_id)


def list_members(group_id: int, session: Session) -> list[Membership]:
    """Members of the group in join order."""
    stmt = (
        select(Membership)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def list_groups_for_user(user_id: int, session: Session) -> list[Group]:
    """Groups the user currently belongs to, oldest first."""
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def join_by_code(code: str, caller_id: int, caller_role: Role | str, session: Session) -> Membership:
    """
    Adds the caller to the group owning `code`.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404) — no group has that code
      ForbiddenError(FORBIDDEN, 403)      — only students join by code
      ConflictError(ALREADY_MEMBER, 409)
    """
    group = session.execute(
        select(Group).where(func.upper(Group.join_code) == code.strip().upper())
    ).scalar_one_or_none()
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            "No group matches that join code.",
        )

    authorize(
        Action.JOIN_GROUP,
        caller_role,
        message="Only students can join a group by code. Teachers must be invited.",
    )
    return add_member(group.id, caller_id, caller_role, session)


def leave_or_remove(
        group_id: int,
        target_user_id: int,
        caller_id: int,
        caller_role: Role | str,
        session: Session,
) -> None:
    """
    Removes target_user_id from the group. A member may remove themself; the
    group creator and admins may remove anyone except the creator.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)
      ConflictError(CREATOR_CANNOT_LEAVE, 409)
      NotFoundError(MEMBERSHIP_NOT_FOUND, 404)
    """
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
        )

    authorize(
        Action.REMOVE_MEMBER,
        caller_role,
        Relationship(
            is_self=target_user_id == caller_id,
            is_group_creator=group.created_by == caller_id,
        ),
        message="You may only remove yourself from this group.",
    )

    if target_user_id == group.created_by:
        raise ConflictError(
            ErrorCode.CREATOR_CANNOT_LEAVE,
            "The group creator cannot leave the group. Delete the group instead.",
        )

    remove_member(group_id, target_user_id, session)
