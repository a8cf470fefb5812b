"""
schemas/invitation_schema.py — Marshmallow schemas for invitation endpoints.

Group and teacher are addressed by name, not id. Resolution (and its
ambiguity rules) lives in services/invitation_service.py.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate

from studyhub.app.errors import ErrorCode


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_decision(value: str) -> None:
    if value.strip().lower() not in ("approved", "rejected"):
        raise ValidationError(ErrorCode.INVALID_DECISION)


class CreateInvitationSchema(Schema):
    """POST /invitations"""

    group_name = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=100), _validate_non_empty_after_trim],
    )
    teacher_name = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=120), _validate_non_empty_after_trim],
    )
    project_details = fields.Str(
        required=True,
        validate=_validate_non_empty_after_trim,
    )

    @post_load
    def strip(self, data, **kwargs):
        return {k: v.strip() for k, v in data.items()}


class RespondInvitationSchema(Schema):
    """POST /invitations/:id/respond  — {"status": "approved" | "rejected"}"""

    status = fields.Str(required=True, validate=_validate_decision)

    @post_load
    def normalise(self, data, **kwargs):
        data["status"] = data["status"].strip().lower()
        return data
