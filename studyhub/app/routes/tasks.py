"""
routes/tasks.py — Task route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/tasks):
  POST   /tasks                    → 201  create task (+ fan-out)
  GET    /tasks                    → 200  every task (admin)
  GET    /tasks/mine               → 200  tasks across caller's groups
  GET    /tasks/:id                → 200  task + caller's assignment status
  PUT    /tasks/:id                → 200  full update (creator/admin)
  PATCH  /tasks/:id/status         → 200  member status update (+ sync)
  DELETE /tasks/:id                → 200  delete task and its assignments
  GET    /tasks/:id/assignments    → 200  assignment rows (?include_stale=true)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from studyhub.app.extensions import db
from studyhub.app.middleware.auth_middleware import require_auth
from studyhub.app.schemas.task_schema import CreateTaskSchema, TaskStatusSchema, UpdateTaskSchema
from studyhub.app.services import task_service
from studyhub.app.transaction import unit_of_work

tasks_bp = Blueprint("tasks", __name__)


@tasks_bp.route("", methods=["POST"])
@require_auth
def create_task():
    """POST /tasks — Create a task; members of the group get assignment rows."""
    data = CreateTaskSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        task = task_service.create_task(
            data=data,
            caller_id=g.user_id,
            session=db.session,
            caller_role=g.role,
        )
        result = task_service.task_to_dict(task)
    return jsonify({"data": result, "warnings": []}), 201


@tasks_bp.route("", methods=["GET"])
@require_auth
def list_all_tasks():
    result = task_service.list_all(caller_role=g.role, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/mine", methods=["GET"])
@require_auth
def list_my_tasks():
    result = task_service.list_by_user(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<int:task_id>", methods=["GET"])
@require_auth
def get_task(task_id: int):
    result = task_service.get_task(
        task_id=task_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<int:task_id>", methods=["PUT"])
@require_auth
def update_task(task_id: int):
    data = UpdateTaskSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        task = task_service.update_task(
            task_id=task_id,
            data=data,
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
        result = task_service.task_to_dict(task)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<int:task_id>/status", methods=["PATCH"])
@require_auth
def update_task_status(task_id: int):
    """PATCH /tasks/:id/status — Canonical status write plus the caller's own assignment."""
    data = TaskStatusSchema().load(request.get_json(force=True, silent=True) or {})
    with unit_of_work(db.session):
        task = task_service.update_task_status(
            task_id=task_id,
            status=data["status"],
            caller_id=g.user_id,
            session=db.session,
            caller_role=g.role,
        )
        result = task_service.task_to_dict(task)
    return jsonify({"data": result, "warnings": []}), 200


@tasks_bp.route("/<int:task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id: int):
    with unit_of_work(db.session):
        task_service.delete_task(
            task_id=task_id,
            caller_id=g.user_id,
            caller_role=g.role,
            session=db.session,
        )
    return jsonify({"data": {"deleted": True, "task_id": task_id}, "warnings": []}), 200


@tasks_bp.route("/<int:task_id>/assignments", methods=["GET"])
@require_auth
def list_assignments(task_id: int):
    include_stale = request.args.get("include_stale", "false").lower() in ("1", "true", "yes")
    result = task_service.list_assignments(
        task_id=task_id,
        caller_id=g.user_id,
        caller_role=g.role,
        session=db.session,
        include_stale=include_stale,
    )
    return jsonify({"data": result, "warnings": []}), 200
