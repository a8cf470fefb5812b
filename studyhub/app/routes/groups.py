"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - Mutations run inside unit_of_work(db.session): one commit per request,
    full rollback on any error.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group
  GET    /groups                        → 200  list caller's groups
  GET    /groups/all                    → 200  list every group (admin)
  POST   /groups/join                   → 201  join by code
  GET    /groups/:id                    → 200  get group + members
  PATCH  /groups/:id                    → 200  update name / description
  DELETE /groups/:id                    → 200  cascade delete
  GET    /groups/:id/members            → 200  list members
  DELETE /groups/:id/members/:uid       → 200  leave / remove member
  GET    /groups/:id/tasks              → 200  tasks visible to caller
  GET    /groups/:id/invitations        → 200  invitations sent for group
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from studyhub.app.extensions import db
from studyhub.app.middleware.auth_middleware import require_auth
from studyhub.app.schemas.group_schema import CreateGroupSchema, JoinGroupSchema, UpdateGroupSchema
from studyhub.app.services import group_service, invitation_service, membership_service, task_service
from studyhub.app.transaction import unit_of_work

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a group. Caller becomes creator and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        group = group_service.create_group(
            name=data["name"],
            description=data["description"],
            creator_id=g.user_id,
            session=db.session,
            join_codes=group_service.JoinCodeSettings.from_config(current_app.config),
        )
        result = group_service.group_to_dict(group)
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — Groups the caller currently belongs to."""
    result = group_service.list_groups(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/all", methods=["GET"])
@require_auth
def list_all_groups():
    result = group_service.list_all_groups(caller_role=g.role, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/join", methods=["POST"])
@require_auth
def join_group():
    """POST /groups/join — Students join with a group's join code."""
    data = JoinGroupSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        membership = membership_service.join_by_code(
            code=data["join_code"],
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
        result = {
            "group_id":  membership.group_id,
            "user_id":   membership.user_id,
            "role":      membership.role.value,
            "joined_at": membership.joined_at,
        }
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        group = group_service.update_group(
            group_id=group_id,
            partial=data,
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
        result = group_service.group_to_dict(group)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — All-or-nothing cascade over the group's data."""
    with unit_of_work(db.session):
        group_service.delete_group(
            group_id=group_id,
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
    return jsonify({"data": {"deleted": True, "group_id": group_id}, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["GET"])
@require_auth
def list_members(group_id: int):
    result = group_service.list_members(
        group_id=group_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Leave (self) or remove (creator/admin)."""
    with unit_of_work(db.session):
        membership_service.leave_or_remove(
            group_id=group_id,
            target_user_id=target_uid,
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/tasks", methods=["GET"])
@require_auth
def list_group_tasks(group_id: int):
    result = task_service.list_by_group(
        group_id=group_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/invitations", methods=["GET"])
@require_auth
def list_group_invitations(group_id: int):
    result = invitation_service.list_for_group(
        group_id=group_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
