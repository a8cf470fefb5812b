"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    join-code shape.
  - services/group_service.py / membership_service.py:
      - FORBIDDEN (creator/admin/member checks require DB lookups)
      - GROUP_NOT_FOUND, ALREADY_MEMBER, CREATOR_CANNOT_LEAVE

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates_schema


# ── Shared non-empty string validator ─────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks,
# mirroring the DB CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_join_code(value: str) -> None:
    code = value.strip()
    if not 6 <= len(code) <= 8 or not code.isascii() or not code.isalnum():
        raise ValidationError("Join code must be 6 to 8 letters or digits.")


def _strip_strings(data: dict) -> dict:
    return {k: v.strip() if isinstance(v, str) else v for k, v in data.items()}


class CreateGroupSchema(Schema):
    """
    POST /groups

    name — non-empty after trim, max 100 chars.
    description — optional free text.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=2000),
    )

    @post_load
    def strip(self, data, **kwargs):
        return _strip_strings(data)


class UpdateGroupSchema(Schema):
    """
    PATCH /groups/:id

    Partial: only the keys present in the body are written. At least one of
    name / description must be sent.
    """

    name = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        allow_none=True,
        validate=validate.Length(max=2000),
    )

    @validates_schema
    def require_one_field(self, data, **kwargs):
        if not data:
            raise ValidationError("Provide at least one of: name, description.")

    @post_load
    def strip(self, data, **kwargs):
        return _strip_strings(data)


class JoinGroupSchema(Schema):
    """
    POST /groups/join

    Matching is case-insensitive; the service upper-cases the code.
    """

    join_code = fields.Str(
        required=True,
        validate=_validate_join_code,
    )

    @post_load
    def strip(self, data, **kwargs):
        return _strip_strings(data)
