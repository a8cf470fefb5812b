"""
Unit tests for assignment_service: fan-out row construction and the
idempotent status sync.

DB-free; the session is a MagicMock.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from studyhub.app import clock
from studyhub.app.errors import ErrorCode, ValidationError
from studyhub.app.models.assignment import TaskAssignment
from studyhub.app.models.task import TaskStatus
from studyhub.app.services import assignment_service

NOW = datetime(2026, 10, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fixed_clock():
    previous = clock.set_clock(clock.FixedClock(NOW))
    yield
    clock.set_clock(previous)


def _eligible(session: MagicMock, user_ids: list[int]) -> None:
    session.execute.return_value.scalars.return_value.all.return_value = user_ids


class TestCoerceStatus:

    def test_aliases(self):
        assert assignment_service.coerce_status("in progress") is TaskStatus.IN_PROGRESS

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            assignment_service.coerce_status("archived")
        err = exc_info.value
        assert err.code == ErrorCode.INVALID_STATUS
        assert err.field == "status"
        assert err.http_status == 400


class TestFanout:

    def test_no_eligible_members_is_noop(self):
        session = MagicMock()
        _eligible(session, [])

        assert assignment_service.fanout(task_id=1, group_id=2, creator_id=3, session=session) == 0
        session.add_all.assert_not_called()
        session.flush.assert_not_called()

    def test_one_pending_row_per_member(self):
        session = MagicMock()
        _eligible(session, [4, 5, 6])

        created = assignment_service.fanout(task_id=1, group_id=2, creator_id=3, session=session)

        assert created == 3
        rows = list(session.add_all.call_args[0][0])
        assert all(isinstance(r, TaskAssignment) for r in rows)
        assert [(r.task_id, r.user_id, r.status, r.created_at) for r in rows] == [
            (1, 4, TaskStatus.PENDING, NOW),
            (1, 5, TaskStatus.PENDING, NOW),
            (1, 6, TaskStatus.PENDING, NOW),
        ]
        session.flush.assert_called_once()

    def test_query_filters_creator_role_and_existing_rows(self):
        session = MagicMock()
        _eligible(session, [])

        assignment_service.fanout(task_id=11, group_id=22, creator_id=33, session=session)

        sql = str(session.execute.call_args[0][0])
        assert "memberships.role" in sql
        assert "memberships.user_id !=" in sql
        assert "NOT IN" in sql
        assert "task_assignments" in sql


class TestSyncStatus:

    @patch("studyhub.app.services.assignment_service.get_assignment", return_value=None)
    def test_missing_row_is_silent_noop(self, mock_get):
        session = MagicMock()
        assert assignment_service.sync_status(1, 2, "completed", session) is False
        session.flush.assert_not_called()

    @patch("studyhub.app.services.assignment_service.get_assignment")
    def test_changed_status_written(self, mock_get):
        session = MagicMock()
        row = SimpleNamespace(status=TaskStatus.PENDING, updated_at=None)
        mock_get.return_value = row

        assert assignment_service.sync_status(1, 2, "Completed", session) is True
        assert row.status is TaskStatus.COMPLETED
        assert row.updated_at == NOW
        session.flush.assert_called_once()

    @patch("studyhub.app.services.assignment_service.get_assignment")
    def test_same_status_is_idempotent(self, mock_get):
        session = MagicMock()
        row = SimpleNamespace(status=TaskStatus.COMPLETED, updated_at=None)
        mock_get.return_value = row

        assert assignment_service.sync_status(1, 2, TaskStatus.COMPLETED, session) is True
        assert row.updated_at is None
        session.flush.assert_not_called()

    @patch("studyhub.app.services.assignment_service.get_assignment")
    def test_invalid_status_rejected_before_lookup(self, mock_get):
        with pytest.raises(ValidationError):
            assignment_service.sync_status(1, 2, "nope", MagicMock())
        mock_get.assert_not_called()
