"""
policy.py — The single authorization choke point.

Every mutation (and every restricted read) calls authorize() exactly once,
with the caller's account role and a Relationship describing how the caller
relates to the resource. Services compute the Relationship; this module
decides. No other module branches on Role to grant or deny access.

Rules:
  - can_perform() is a pure function: no session, no Flask, no side effects.
  - An action missing from _RULES is denied.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable

from studyhub.app.errors import ErrorCode, ForbiddenError
from studyhub.app.models.user import Role


class Action(str, enum.Enum):
    CREATE_GROUP           = "create_group"
    VIEW_GROUP             = "view_group"
    UPDATE_GROUP           = "update_group"
    DELETE_GROUP           = "delete_group"
    LIST_ALL_GROUPS        = "list_all_groups"
    JOIN_GROUP             = "join_group"
    REMOVE_MEMBER          = "remove_member"
    CREATE_TASK            = "create_task"
    VIEW_TASK              = "view_task"
    UPDATE_TASK            = "update_task"
    UPDATE_TASK_STATUS     = "update_task_status"
    DELETE_TASK            = "delete_task"
    LIST_ALL_TASKS         = "list_all_tasks"
    INVITE_TEACHER         = "invite_teacher"
    RESPOND_INVITATION     = "respond_invitation"
    VIEW_GROUP_INVITATIONS = "view_group_invitations"


@dataclass(frozen=True)
class Relationship:
    """How the caller relates to the resource being acted on."""

    is_member:        bool = False  # current membership in the resource's group
    is_group_creator: bool = False  # groups.created_by == caller
    is_task_creator:  bool = False  # tasks.created_by == caller
    is_self:          bool = False  # the target user is the caller
    is_invitee:       bool = False  # invitations.invited_teacher_id == caller


NONE = Relationship()

_Rule = Callable[[Role, Relationship], bool]


def _admin(role: Role) -> bool:
    return role is Role.ADMIN


_RULES: dict[Action, _Rule] = {
    Action.CREATE_GROUP:           lambda role, rel: role in (Role.STUDENT, Role.ADMIN),
    Action.VIEW_GROUP:             lambda role, rel: _admin(role) or rel.is_member,
    Action.UPDATE_GROUP:           lambda role, rel: _admin(role) or rel.is_group_creator,
    Action.DELETE_GROUP:           lambda role, rel: _admin(role) or rel.is_group_creator,
    Action.LIST_ALL_GROUPS:        lambda role, rel: _admin(role),
    # Teachers enter groups through invitations only.
    Action.JOIN_GROUP:             lambda role, rel: role is Role.STUDENT,
    Action.REMOVE_MEMBER:          lambda role, rel: _admin(role) or rel.is_self or rel.is_group_creator,
    Action.CREATE_TASK:            lambda role, rel: rel.is_member,
    Action.VIEW_TASK:              lambda role, rel: _admin(role) or rel.is_member,
    Action.UPDATE_TASK:            lambda role, rel: _admin(role) or rel.is_task_creator,
    Action.UPDATE_TASK_STATUS:     lambda role, rel: rel.is_member,
    Action.DELETE_TASK:            lambda role, rel: _admin(role) or rel.is_task_creator,
    Action.LIST_ALL_TASKS:         lambda role, rel: _admin(role),
    Action.INVITE_TEACHER:         lambda role, rel: _admin(role) or (role is Role.STUDENT and rel.is_group_creator),
    Action.RESPOND_INVITATION:     lambda role, rel: _admin(role) or rel.is_invitee,
    Action.VIEW_GROUP_INVITATIONS: lambda role, rel: _admin(role) or rel.is_group_creator,
}


def can_perform(action: Action, role: Role | str | None, relationship: Relationship = NONE) -> bool:
    """
    Returns True if a caller with `role` standing in `relationship` to the
    resource may perform `action`.

    `role` may be None when only the relationship matters (membership-gated
    actions). Unknown role strings are denied rather than raising.
    """
    if role is not None:
        try:
            role = Role(role)
        except ValueError:
            return False
    rule = _RULES.get(action)
    if rule is None:
        return False
    return rule(role, relationship)


def authorize(
        action: Action,
        role: Role | str | None,
        relationship: Relationship = NONE,
        message: str | None = None,
) -> None:
    """Raises ForbiddenError (403) unless can_perform() allows the action."""
    if not can_perform(action, role, relationship):
        raise ForbiddenError(
            ErrorCode.FORBIDDEN,
            message or f"You are not allowed to {Action(action).value.replace('_', ' ')}.",
        )
