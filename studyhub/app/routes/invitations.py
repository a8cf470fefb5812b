"""
routes/invitations.py — Teacher invitation route handlers.

Endpoints (base url_prefix=/api/v1/invitations):
  POST /invitations                → 201  invite a teacher (by group/teacher name)
  GET  /invitations                → 200  invitations addressed to the caller
  POST /invitations/:id/respond    → 200  approve / reject
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from studyhub.app.extensions import db
from studyhub.app.middleware.auth_middleware import require_auth
from studyhub.app.schemas.invitation_schema import CreateInvitationSchema, RespondInvitationSchema
from studyhub.app.services import invitation_service
from studyhub.app.transaction import unit_of_work

invitations_bp = Blueprint("invitations", __name__)


@invitations_bp.route("", methods=["POST"])
@require_auth
def create_invitation():
    data = CreateInvitationSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        invitation = invitation_service.create_invitation(
            group_name=data["group_name"],
            teacher_name=data["teacher_name"],
            invited_by=g.user_id,
            project_details=data["project_details"],
            session=db.session,
        )
        result = invitation_service.invitation_to_dict(invitation)
    return jsonify({"data": result, "warnings": []}), 201


@invitations_bp.route("", methods=["GET"])
@require_auth
def list_my_invitations():
    result = invitation_service.list_for_teacher(teacher_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@invitations_bp.route("/<int:invitation_id>/respond", methods=["POST"])
@require_auth
def respond(invitation_id: int):
    """POST /invitations/:id/respond — Status change and membership commit together."""
    data = RespondInvitationSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        invitation = invitation_service.respond(
            invitation_id=invitation_id,
            decision=data["status"],
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
        result = invitation_service.invitation_to_dict(invitation)
    return jsonify({"data": result, "warnings": []}), 200
