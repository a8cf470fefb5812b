"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  Tables in FK dependency order (users → groups → memberships → tasks
  → task_assignments, invitations), then indexes (including the partial
  unique index on pending invitations).

Enums are VARCHAR + CHECK (not PostgreSQL ENUM types) so the same schema
runs on SQLite in tests. Stored values are lower-case.

ON DELETE policies:
  task_assignments.task_id  → CASCADE   (assignment owned by task)
  everything else           → RESTRICT  (group deletion is an explicit,
                                         ordered cascade in group_service)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration, no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None

_TASK_STATUSES = "('pending', 'in_progress', 'completed', 'cancelled')"
_ROLES = "('student', 'teacher', 'admin')"


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    # Provisioned by the identity layer; read-only here.

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False, server_default="student"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(username)) > 0", name="ck_users_username_nonempty"),
        sa.CheckConstraint(f"role IN {_ROLES}", name="user_role_enum"),
    )

    # ── groups ─────────────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("join_code", sa.String(8), nullable=False),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_creator"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.UniqueConstraint("join_code", name="uq_groups_join_code"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
        sa.CheckConstraint("LENGTH(join_code) BETWEEN 6 AND 8", name="ck_groups_join_code_length"),
    )

    # ── memberships ────────────────────────────────────────────────────────
    # role = role at join time. UNIQUE(group_id, user_id).

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_memberships_group_user"),
        sa.CheckConstraint(f"role IN {_ROLES}", name="membership_role_enum"),
    )

    # ── tasks ──────────────────────────────────────────────────────────────
    # assigned_to NULL = group-wide task.

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_tasks_group"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_tasks_creator"),
            nullable=False,
        ),
        sa.Column(
            "assigned_to",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_tasks_assignee"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_tasks"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_tasks_title_nonempty"),
        sa.CheckConstraint(f"status IN {_TASK_STATUSES}", name="task_status_enum"),
    )

    # ── task_assignments ───────────────────────────────────────────────────
    # task_id ON DELETE CASCADE. user_id RESTRICT: rows outlive membership.

    op.create_table(
        "task_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "task_id",
            sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE", name="fk_task_assignments_task"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_task_assignments_user"),
            nullable=False,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_task_assignments"),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
        sa.CheckConstraint(f"status IN {_TASK_STATUSES}", name="assignment_status_enum"),
    )

    # ── invitations ────────────────────────────────────────────────────────

    op.create_table(
        "invitations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_invitations_group"),
            nullable=False,
        ),
        sa.Column(
            "invited_teacher_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_invitations_teacher"),
            nullable=False,
        ),
        sa.Column(
            "invited_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_invitations_inviter"),
            nullable=False,
        ),
        sa.Column("project_details", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_invitations"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="invitation_status_enum",
        ),
    )

    # ── Indexes ────────────────────────────────────────────────────────────
    # Names follow SQLAlchemy's ix_<table>_<column> default so autogenerate
    # sees the models and the database as identical.

    op.create_index("ix_users_full_name", "users", ["full_name"])
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("idx_tasks_group_due", "tasks", ["group_id", "due_date"])
    op.create_index("ix_tasks_assigned_to", "tasks", ["assigned_to"])
    op.create_index("ix_task_assignments_task_id", "task_assignments", ["task_id"])
    op.create_index("ix_task_assignments_user_id", "task_assignments", ["user_id"])
    op.create_index("ix_invitations_group_id", "invitations", ["group_id"])
    op.create_index("ix_invitations_invited_teacher_id", "invitations", ["invited_teacher_id"])

    # At most one pending invitation per (group, teacher). Approved and
    # rejected rows are history and may repeat.
    op.create_index(
        "uq_invitations_pending_pair",
        "invitations",
        ["group_id", "invited_teacher_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.
    For local development reset only.
    """
    op.drop_index("uq_invitations_pending_pair",       table_name="invitations")
    op.drop_index("ix_invitations_invited_teacher_id", table_name="invitations")
    op.drop_index("ix_invitations_group_id",           table_name="invitations")
    op.drop_index("ix_task_assignments_user_id",       table_name="task_assignments")
    op.drop_index("ix_task_assignments_task_id",       table_name="task_assignments")
    op.drop_index("ix_tasks_assigned_to",              table_name="tasks")
    op.drop_index("idx_tasks_group_due",               table_name="tasks")
    op.drop_index("ix_memberships_user_id",            table_name="memberships")
    op.drop_index("ix_memberships_group_id",           table_name="memberships")
    op.drop_index("ix_groups_name",                    table_name="groups")
    op.drop_index("ix_users_full_name",                table_name="users")

    op.drop_table("invitations")
    op.drop_table("task_assignments")
    op.drop_table("tasks")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")
