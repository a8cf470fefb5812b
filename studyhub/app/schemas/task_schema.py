"""
schemas/task_schema.py — Marshmallow schemas for task endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, non-empty-after-trim
      - INVALID_STATUS   (400) — status outside the fixed enum
      - INVALID_DUE_DATE (400) — not an ISO-8601 date
      - Full field set on PUT (every field required)
  - services/task_service.py:
      - ASSIGNEE_NOT_MEMBER (400) — requires DB membership lookup
      - TASK_GROUP_MISMATCH (400) — requires DB record lookup
      - FORBIDDEN (403)

Status values are normalised to TaskStatus in post_load, so services always
receive the enum ("In Progress" → TaskStatus.IN_PROGRESS).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate

from studyhub.app.errors import ErrorCode
from studyhub.app.models.task import TaskStatus


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_status(value: str) -> None:
    """The route error handler maps the bare code to INVALID_STATUS."""
    try:
        TaskStatus.coerce(value)
    except ValueError:
        raise ValidationError(ErrorCode.INVALID_STATUS) from None


def _positive_id(**kwargs) -> fields.Int:
    return fields.Int(
        strict=True,  # reject floats like 1.0
        validate=validate.Range(min=1, error="Must be a positive integer."),
        **kwargs,
    )


def _title_field(**kwargs) -> fields.Str:
    return fields.Str(
        validate=[
            validate.Length(min=1, max=255, error="Title must be between 1 and 255 characters."),
            _validate_non_empty_after_trim,
        ],
        **kwargs,
    )


def _description_field(**kwargs) -> fields.Str:
    return fields.Str(validate=_validate_non_empty_after_trim, **kwargs)


def _due_date_field(**kwargs) -> fields.Date:
    return fields.Date(error_messages={"invalid": ErrorCode.INVALID_DUE_DATE}, **kwargs)


class _TaskSchemaBase(Schema):

    @post_load
    def normalise(self, data, **kwargs):
        for key in ("title", "description"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        if data.get("status") is not None:
            data["status"] = TaskStatus.coerce(data["status"])
        return data


class CreateTaskSchema(_TaskSchemaBase):
    """
    POST /tasks

    assigned_to — optional; null means a group-wide task.
    status      — optional; defaults to pending.
    """

    title       = _title_field(required=True)
    description = _description_field(required=True)
    due_date    = _due_date_field(required=True)
    group_id    = _positive_id(required=True)
    assigned_to = _positive_id(load_default=None, allow_none=True)
    status      = fields.Str(load_default=None, allow_none=True, validate=_validate_status)


class UpdateTaskSchema(_TaskSchemaBase):
    """
    PUT /tasks/:id

    Full replacement: title, description, status, due_date and group_id are
    all required. group_id must equal the task's current group (checked in
    the service). Omitting assigned_to clears it.
    """

    title       = _title_field(required=True)
    description = _description_field(required=True)
    due_date    = _due_date_field(required=True)
    group_id    = _positive_id(required=True)
    assigned_to = _positive_id(load_default=None, allow_none=True)
    status      = fields.Str(required=True, validate=_validate_status)


class TaskStatusSchema(_TaskSchemaBase):
    """PATCH /tasks/:id/status"""

    status = fields.Str(required=True, validate=_validate_status)
