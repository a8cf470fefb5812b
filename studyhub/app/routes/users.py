"""
routes/users.py — Caller identity.

Endpoints (base url_prefix=/api/v1/users):
  GET /users/me → 200  the resolved principal's user record
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from studyhub.app.extensions import db
from studyhub.app.middleware.auth_middleware import require_auth
from studyhub.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_auth
def me():
    result = user_service.get_profile(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
