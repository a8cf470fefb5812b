"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against a real database: in-memory SQLite by default, or
    TEST_DATABASE_URL when set (e.g. a throwaway PostgreSQL database).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Users are provisioned outside this service, so tests insert them directly
through the ORM and mint their bearer tokens with the testing secret.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)       → dict with id, role and token
  - auth_headers(token)       → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)   → group dict
  - join(client, ...)         → HTTP response
  - make_task(client, ...)    → HTTP response
  - invite(client, ...)       → HTTP response
  - respond(client, ...)      → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import jwt
import pytest
from sqlalchemy import text

from studyhub.app import create_app
from studyhub.app.extensions import db as _db
from studyhub.app.models.user import Role, User

TEST_SECRET = "testing-secret"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.

    Delete order respects FK RESTRICT constraints:
      task_assignments and invitations before tasks/groups/users,
      memberships and tasks before groups, groups before users.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.remove()

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM task_assignments"))
            conn.execute(text("DELETE FROM invitations"))
            conn.execute(text("DELETE FROM tasks"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(user_id: int, secret: str = TEST_SECRET, **claims) -> str:
    return jwt.encode({"sub": str(user_id), **claims}, secret, algorithm="HS256")


def make_user(
    app,
    username: str,
    role: Role = Role.STUDENT,
    full_name: str | None = None,
) -> dict:
    """
    Inserts a user directly and returns {"id", "username", "full_name",
    "role", "token"}.
    """
    with app.app_context():
        user = User(
            username=username,
            full_name=full_name or username.title(),
            email=f"{username}@test.com",
            role=role,
        )
        _db.session.add(user)
        _db.session.commit()
        return {
            "id": user.id,
            "username": user.username,
            "full_name": user.full_name,
            "role": user.role,
            "token": token_for(user.id),
        }


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Study Group", description: str | None = None) -> dict:
    """
    Creates a group and returns the group data dict.
    The caller (token owner) becomes the creator and first member.
    """
    resp = client.post(
        "/api/v1/groups",
        json={"name": name, "description": description},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def join(client, token: str, join_code: str):
    return client.post(
        "/api/v1/groups/join",
        json={"join_code": join_code},
        headers=auth_headers(token),
    )


def make_task(
    client,
    token: str,
    group_id: int,
    title: str = "Read chapter 3",
    description: str = "Summarise the key points.",
    due_date: str = "2026-11-30",
    **extra,
):
    """POSTs a task and returns the HTTP response."""
    payload = {
        "title": title,
        "description": description,
        "due_date": due_date,
        "group_id": group_id,
        **extra,
    }
    return client.post("/api/v1/tasks", json=payload, headers=auth_headers(token))


def invite(client, token: str, group_name: str, teacher_name: str, project_details: str = "ML project"):
    return client.post(
        "/api/v1/invitations",
        json={
            "group_name": group_name,
            "teacher_name": teacher_name,
            "project_details": project_details,
        },
        headers=auth_headers(token),
    )


def respond(client, token: str, invitation_id: int, status: str = "approved"):
    return client.post(
        f"/api/v1/invitations/{invitation_id}/respond",
        json={"status": status},
        headers=auth_headers(token),
    )


def member_ids(client, token: str, group_id: int) -> list[int]:
    resp = client.get(f"/api/v1/groups/{group_id}/members", headers=auth_headers(token))
    assert resp.status_code == 200, resp.get_json()
    return [m["user_id"] for m in resp.get_json()["data"]]
