"""
models/columns.py — Shared column type helpers.

Enums are stored as VARCHAR + CHECK rather than native PostgreSQL ENUM types
so the same models run against SQLite in the test suite.
"""

from __future__ import annotations

import enum

from sqlalchemy import Enum


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'in_progress'), not names ('IN_PROGRESS')."""
    return [member.value for member in enum_cls]


def enum_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        length=16,
        values_callable=_enum_values,
    )
