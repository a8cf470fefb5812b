"""
tests/integration/test_groups.py — Integration tests for group endpoints.

Endpoints covered:
  POST   /groups           → 201 (create; creator becomes member)
  GET    /groups           → 200 (caller's groups)
  GET    /groups/all       → 200 admin / 403 others
  GET    /groups/:id       → 200 members+admin / 403 outsiders / 404
  PATCH  /groups/:id       → 200 creator+admin / 403 others
  DELETE /groups/:id       → 200 cascade / 403 / rollback on failure

Join codes are exercised at the service level with a patched generator so
collisions and exhaustion are deterministic.
"""

from __future__ import annotations

import re
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from studyhub.app.errors import ConflictError, ErrorCode
from studyhub.app.extensions import db
from studyhub.app.models.assignment import TaskAssignment
from studyhub.app.models.group import Group
from studyhub.app.models.invitation import Invitation
from studyhub.app.models.membership import Membership
from studyhub.app.models.task import Task
from studyhub.app.models.user import Role
from studyhub.app.services import group_service
from studyhub.app.services.group_service import JoinCodeSettings

from .conftest import (
    auth_headers,
    invite,
    join,
    make_group,
    make_task,
    make_user,
    member_ids,
)


def _count(model, **filters) -> int:
    stmt = select(func.count()).select_from(model)
    for key, value in filters.items():
        stmt = stmt.where(getattr(model, key) == value)
    return db.session.execute(stmt).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════
# POST /groups
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateGroup:

    def test_student_creates_group_and_becomes_member(self, app, client):
        alice = make_user(app, "alice")
        group = make_group(client, alice["token"], name="Algorithms", description="CS201")

        assert group["name"] == "Algorithms"
        assert group["description"] == "CS201"
        assert group["created_by"] == alice["id"]
        assert re.fullmatch(r"[A-Z0-9]{6}", group["join_code"])
        assert member_ids(client, alice["token"], group["id"]) == [alice["id"]]

    def test_admin_can_create_group(self, app, client):
        admin = make_user(app, "root", role=Role.ADMIN)
        group = make_group(client, admin["token"])

        resp = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(admin["token"]))
        assert resp.get_json()["data"]["members"][0]["role"] == "admin"

    def test_teacher_cannot_create_group(self, app, client):
        teacher = make_user(app, "tina", role=Role.TEACHER)
        resp = client.post(
            "/api/v1/groups",
            json={"name": "Nope"},
            headers=auth_headers(teacher["token"]),
        )
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == ErrorCode.FORBIDDEN

    def test_blank_name_rejected(self, app, client):
        alice = make_user(app, "alice")
        resp = client.post("/api/v1/groups", json={"name": "   "}, headers=auth_headers(alice["token"]))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "name"

    def test_missing_name_rejected(self, app, client):
        alice = make_user(app, "alice")
        resp = client.post("/api/v1/groups", json={}, headers=auth_headers(alice["token"]))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == ErrorCode.MISSING_FIELD

    def test_requires_auth(self, client):
        resp = client.post("/api/v1/groups", json={"name": "x"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == ErrorCode.TOKEN_MISSING


# ═══════════════════════════════════════════════════════════════════════════
# Join-code allocation
# ═══════════════════════════════════════════════════════════════════════════

class TestJoinCodes:

    def test_collision_regenerates(self, app, client):
        alice = make_user(app, "alice")
        first = make_group(client, alice["token"], name="First")

        with app.app_context():
            with patch.object(
                group_service,
                "generate_join_code",
                side_effect=[first["join_code"], "FRESH1"],
            ):
                group = group_service.create_group("Second", None, alice["id"], db.session)
                db.session.commit()
            assert group.join_code == "FRESH1"

    def test_length_grows_when_short_codes_exhausted(self, app, client):
        alice = make_user(app, "alice")
        first = make_group(client, alice["token"], name="First")
        taken = first["join_code"]

        def generator(length):
            return taken if length == 6 else "Q" * length

        with app.app_context():
            with patch.object(group_service, "generate_join_code", side_effect=generator):
                group = group_service.create_group(
                    "Second", None, alice["id"], db.session,
                    join_codes=JoinCodeSettings(length=6, max_length=8, attempts=3),
                )
                db.session.commit()
            assert group.join_code == "QQQQQQQ"

    def test_every_length_exhausted_raises_conflict(self, app, client):
        alice = make_user(app, "alice")
        first = make_group(client, alice["token"], name="First")

        with app.app_context():
            with patch.object(group_service, "generate_join_code", return_value=first["join_code"]):
                with pytest.raises(ConflictError) as exc_info:
                    group_service.create_group(
                        "Second", None, alice["id"], db.session,
                        join_codes=JoinCodeSettings(length=6, max_length=6, attempts=2),
                    )
            db.session.rollback()
            assert exc_info.value.code == ErrorCode.JOIN_CODE_EXHAUSTED
            assert _count(Group) == 1

    def test_codes_unique_across_groups(self, app, client):
        alice = make_user(app, "alice")
        codes = {make_group(client, alice["token"], name=f"G{i}")["join_code"] for i in range(10)}
        assert len(codes) == 10


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups, /groups/all, /groups/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestReadGroups:

    def test_list_returns_only_my_groups(self, app, client):
        alice = make_user(app, "alice")
        bob = make_user(app, "bob")
        mine = make_group(client, alice["token"], name="Mine")
        make_group(client, bob["token"], name="Theirs")

        resp = client.get("/api/v1/groups", headers=auth_headers(alice["token"]))
        assert resp.status_code == 200
        assert [g["id"] for g in resp.get_json()["data"]] == [mine["id"]]

    def test_list_all_is_admin_only(self, app, client):
        alice = make_user(app, "alice")
        admin = make_user(app, "root", role=Role.ADMIN)
        make_group(client, alice["token"], name="One")
        make_group(client, alice["token"], name="Two")

        denied = client.get("/api/v1/groups/all", headers=auth_headers(alice["token"]))
        assert denied.status_code == 403

        allowed = client.get("/api/v1/groups/all", headers=auth_headers(admin["token"]))
        assert allowed.status_code == 200
        assert [g["name"] for g in allowed.get_json()["data"]] == ["One", "Two"]

    def test_outsider_gets_403(self, app, client):
        alice = make_user(app, "alice")
        eve = make_user(app, "eve")
        group = make_group(client, alice["token"])

        resp = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(eve["token"]))
        assert resp.status_code == 403

    def test_admin_can_view_any_group(self, app, client):
        alice = make_user(app, "alice")
        admin = make_user(app, "root", role=Role.ADMIN)
        group = make_group(client, alice["token"])

        resp = client.get(f"/api/v1/groups/{group['id']}", headers=auth_headers(admin["token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["members"][0]["user_id"] == alice["id"]

    def test_missing_group_404(self, app, client):
        alice = make_user(app, "alice")
        resp = client.get("/api/v1/groups/9999", headers=auth_headers(alice["token"]))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == ErrorCode.GROUP_NOT_FOUND


# ═══════════════════════════════════════════════════════════════════════════
# PATCH /groups/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateGroup:

    def test_creator_updates_description_only(self, app, client):
        alice = make_user(app, "alice")
        group = make_group(client, alice["token"], name="Physics")

        resp = client.patch(
            f"/api/v1/groups/{group['id']}",
            json={"description": "Lab partners"},
            headers=auth_headers(alice["token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["name"] == "Physics"
        assert data["description"] == "Lab partners"
        assert data["updated_at"] is not None

    def test_member_who_is_not_creator_forbidden(self, app, client):
        alice = make_user(app, "alice")
        bob = make_user(app, "bob")
        group = make_group(client, alice["token"])
        join(client, bob["token"], group["join_code"])

        resp = client.patch(
            f"/api/v1/groups/{group['id']}",
            json={"name": "Hijacked"},
            headers=auth_headers(bob["token"]),
        )
        assert resp.status_code == 403

    def test_admin_may_rename(self, app, client):
        alice = make_user(app, "alice")
        admin = make_user(app, "root", role=Role.ADMIN)
        group = make_group(client, alice["token"])

        resp = client.patch(
            f"/api/v1/groups/{group['id']}",
            json={"name": "Renamed"},
            headers=auth_headers(admin["token"]),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["name"] == "Renamed"

    def test_empty_body_rejected(self, app, client):
        alice = make_user(app, "alice")
        group = make_group(client, alice["token"])
        resp = client.patch(f"/api/v1/groups/{group['id']}", json={}, headers=auth_headers(alice["token"]))
        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# DELETE /groups/:id
# ═══════════════════════════════════════════════════════════════════════════

def _populated_group(app, client):
    """Alice (creator) + Bob (student) + teacher Tom invited, one task fanned out."""
    alice = make_user(app, "alice")
    bob = make_user(app, "bob")
    make_user(app, "tom", role=Role.TEACHER, full_name="Tom Teacher")
    group = make_group(client, alice["token"], name="Doomed")
    join(client, bob["token"], group["join_code"])
    assert make_task(client, alice["token"], group["id"]).status_code == 201
    assert invite(client, alice["token"], "Doomed", "Tom Teacher").status_code == 201
    return alice, bob, group


class TestDeleteGroup:

    def test_cascade_removes_everything(self, app, client):
        alice, _, group = _populated_group(app, client)

        resp = client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(alice["token"]))
        assert resp.status_code == 200

        with app.app_context():
            assert _count(Group) == 0
            assert _count(Membership) == 0
            assert _count(Task) == 0
            assert _count(TaskAssignment) == 0
            assert _count(Invitation) == 0

    def test_non_creator_forbidden(self, app, client):
        _, bob, group = _populated_group(app, client)

        resp = client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(bob["token"]))
        assert resp.status_code == 403

    def test_failure_midway_rolls_back_entire_cascade(self, app, client):
        alice, _, group = _populated_group(app, client)

        with patch.object(
            group_service,
            "_delete_invitations",
            side_effect=OperationalError("DELETE FROM invitations", {}, Exception("disk I/O error")),
        ):
            resp = client.delete(f"/api/v1/groups/{group['id']}", headers=auth_headers(alice["token"]))

        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == ErrorCode.INTERNAL_ERROR
        assert "disk" not in resp.get_json()["error"]["message"]

        with app.app_context():
            assert _count(Group) == 1
            assert _count(Membership, group_id=group["id"]) == 2
            assert _count(Task, group_id=group["id"]) == 1
            assert _count(TaskAssignment) == 1
            assert _count(Invitation) == 1
