"""
services/invitation_service.py — Teacher Invitation Workflow.

State machine:

    pending ──respond(approved)──▶ approved   (teacher membership created)
       │
       └────respond(rejected)──▶ rejected

approved and rejected are terminal. respond() transitions with a single
conditional UPDATE ... WHERE status = 'pending', so two concurrent responders
cannot both succeed: the loser updates zero rows and gets
INVITATION_ALREADY_PROCESSED.

The status write and the membership insert share the caller's transaction.
If the membership insert fails, the route's unit of work rolls back the
status change as well and the invitation still reads `pending`.

Name-based resolution:
  create_invitation() receives a group name and a teacher full name.
  Ambiguous group names are rejected (GROUP_NAME_AMBIGUOUS). Teacher names
  resolve to the matching teacher with the lowest id, excluding the inviter.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studyhub.app import clock
from studyhub.app.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from studyhub.app.models.group import Group
from studyhub.app.models.invitation import Invitation, InvitationStatus
from studyhub.app.models.user import Role, User
from studyhub.app.policy import Action, Relationship, authorize
from studyhub.app.services import group_service, membership_service

logger = logging.getLogger(__name__)

DECISIONS = (InvitationStatus.APPROVED, InvitationStatus.REJECTED)


# ── Private helpers ────────────────────────────────────────────────────────

def _coerce_decision(decision) -> InvitationStatus:
    """Maps 'approved' / 'rejected' (any case) to the enum, else INVALID_DECISION."""
    if isinstance(decision, InvitationStatus):
        value = decision
    else:
        try:
            value = InvitationStatus(str(decision).strip().lower())
        except ValueError:
            value = None
    if value not in DECISIONS:
        raise ValidationError(
            ErrorCode.INVALID_DECISION,
            "Decision must be 'approved' or 'rejected'.",
            field="status",
        )
    return value


def _resolve_teacher(full_name: str, inviter_id: int, session: Session) -> User:
    """First teacher (lowest id) with this full name, never the inviter."""
    teacher = session.execute(
        select(User)
        .where(
            User.full_name == full_name.strip(),
            User.role == Role.TEACHER,
            User.id != inviter_id,
        )
        .order_by(User.id.asc())
        .limit(1)
    ).scalar_one_or_none()

    if teacher is None:
        raise NotFoundError(
            ErrorCode.TEACHER_NOT_FOUND,
            f"No teacher named {full_name!r} exists.",
            field="teacher_name",
        )
    return teacher


def _has_pending(group_id: int, teacher_id: int, session: Session) -> bool:
    return session.execute(
        select(Invitation.id).where(
            Invitation.group_id == group_id,
            Invitation.invited_teacher_id == teacher_id,
            Invitation.status == InvitationStatus.PENDING,
        )
    ).first() is not None


def _get_invitation_or_404(invitation_id: int, session: Session) -> Invitation:
    invitation = session.get(Invitation, invitation_id)
    if invitation is None:
        raise NotFoundError(
            ErrorCode.INVITATION_NOT_FOUND,
            f"Invitation {invitation_id} does not exist.",
        )
    return invitation


def invitation_to_dict(invitation: Invitation) -> dict:
    return {
        "id":                 invitation.id,
        "group_id":           invitation.group_id,
        "group_name":         invitation.group.name,
        "invited_teacher_id": invitation.invited_teacher_id,
        "invited_by":         invitation.invited_by,
        "invited_by_name":    invitation.inviter.full_name,
        "project_details":    invitation.project_details,
        "status":             invitation.status.value,
        "created_at":         invitation.created_at,
        "responded_at":       invitation.responded_at,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_invitation(
        group_name: str,
        teacher_name: str,
        invited_by: int,
        project_details: str,
        session: Session,
) -> Invitation:
    """
    Invites a teacher into a group.

    Raises:
      NotFoundError(GROUP_NOT_FOUND / GROUP_NAME_AMBIGUOUS, 404)
      NotFoundError(USER_NOT_FOUND, 404)          — inviter does not exist
      ForbiddenError(FORBIDDEN, 403)              — not the student creator, not admin
      NotFoundError(TEACHER_NOT_FOUND, 404)
      ConflictError(ALREADY_MEMBER, 409)          — teacher already in the group
      ConflictError(DUPLICATE_INVITATION, 409)    — a pending invitation exists
    """
    group = group_service.find_by_name(group_name, session)

    inviter = session.get(User, invited_by)
    if inviter is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"User {invited_by} does not exist.",
        )

    authorize(
        Action.INVITE_TEACHER,
        inviter.role,
        Relationship(is_group_creator=group.created_by == invited_by),
        message="Only the student who created this group or an admin can invite teachers.",
    )

    teacher = _resolve_teacher(teacher_name, invited_by, session)

    if membership_service.is_member(group.id, teacher.id, session):
        raise ConflictError(
            ErrorCode.ALREADY_MEMBER,
            f"{teacher.full_name} is already a member of this group.",
        )

    if _has_pending(group.id, teacher.id, session):
        raise ConflictError(
            ErrorCode.DUPLICATE_INVITATION,
            f"{teacher.full_name} already has a pending invitation to this group.",
        )

    invitation = Invitation(
        group_id=group.id,
        invited_teacher_id=teacher.id,
        invited_by=invited_by,
        project_details=project_details,
        status=InvitationStatus.PENDING,
        created_at=clock.now(),
    )
    try:
        with session.begin_nested():
            session.add(invitation)
    except IntegrityError:
        # Lost a race against another inviter; the partial unique index held.
        raise ConflictError(
            ErrorCode.DUPLICATE_INVITATION,
            f"{teacher.full_name} already has a pending invitation to this group.",
        ) from None

    logger.info(
        "Invitation %s: user %s invited teacher %s to group %s",
        invitation.id,
        invited_by,
        teacher.id,
        group.id,
    )
    return invitation


def list_for_teacher(teacher_id: int, session: Session) -> list[dict]:
    """Every invitation addressed to the teacher, newest first. May be empty."""
    invitations = session.execute(
        select(Invitation)
        .where(Invitation.invited_teacher_id == teacher_id)
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
    ).scalars().all()
    return [invitation_to_dict(i) for i in invitations]


def list_for_group(group_id: int, caller_id: int, caller_role: Role | str, session: Session) -> list[dict]:
    """Invitations sent for a group, newest first. Creator or admin only."""
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
        )
    authorize(
        Action.VIEW_GROUP_INVITATIONS,
        caller_role,
        Relationship(is_group_creator=group.created_by == caller_id),
        message="Only the group creator or an admin can view its invitations.",
    )

    invitations = session.execute(
        select(Invitation)
        .where(Invitation.group_id == group_id)
        .order_by(Invitation.created_at.desc(), Invitation.id.desc())
    ).scalars().all()
    return [invitation_to_dict(i) for i in invitations]


def respond(
        invitation_id: int,
        decision,
        caller_id: int,
        caller_role: Role | str,
        session: Session,
) -> Invitation:
    """
    Approves or rejects a pending invitation.

    On approval the invited teacher becomes a member of the group with role
    `teacher` (skipped if they already are one).

    Raises:
      ValidationError(INVALID_DECISION, 400)
      NotFoundError(INVITATION_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)                     — not the invitee, not admin
      ConflictError(INVITATION_ALREADY_PROCESSED, 409)   — already approved/rejected
    """
    decision = _coerce_decision(decision)
    invitation = _get_invitation_or_404(invitation_id, session)

    authorize(
        Action.RESPOND_INVITATION,
        caller_role,
        Relationship(is_invitee=invitation.invited_teacher_id == caller_id),
        message="Only the invited teacher or an admin can respond to this invitation.",
    )

    result = session.execute(
        update(Invitation)
        .where(
            Invitation.id == invitation_id,
            Invitation.status == InvitationStatus.PENDING,
        )
        .values(status=decision, responded_at=clock.now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError(
            ErrorCode.INVITATION_ALREADY_PROCESSED,
            f"Invitation {invitation_id} has already been processed.",
        )
    session.refresh(invitation)

    if decision is InvitationStatus.APPROVED and not membership_service.is_member(
        invitation.group_id, invitation.invited_teacher_id, session
    ):
        membership_service.add_member(
            invitation.group_id,
            invitation.invited_teacher_id,
            Role.TEACHER,
            session,
        )

    session.flush()
    logger.info(
        "Invitation %s %s by user %s",
        invitation_id,
        decision.value,
        caller_id,
    )
    return invitation
