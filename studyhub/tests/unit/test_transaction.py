"""
Unit tests for unit_of_work: commit on success, rollback on any failure,
storage errors wrapped as INTERNAL_ERROR, domain errors passed through.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from studyhub.app.errors import ConflictError, ErrorCode, InternalError
from studyhub.app.transaction import unit_of_work


def test_commits_on_success():
    session = MagicMock()

    with unit_of_work(session) as yielded:
        assert yielded is session

    session.commit.assert_called_once()
    session.rollback.assert_not_called()


def test_storage_error_rolls_back_and_is_wrapped():
    session = MagicMock()
    cause = OperationalError("DELETE FROM groups", {}, Exception("disk I/O error"))

    with pytest.raises(InternalError) as exc_info:
        with unit_of_work(session):
            raise cause

    err = exc_info.value
    assert err.code == ErrorCode.INTERNAL_ERROR
    assert err.http_status == 500
    assert "disk" not in err.message
    assert err.__cause__ is cause
    session.rollback.assert_called_once()
    session.commit.assert_not_called()


def test_commit_failure_is_wrapped():
    session = MagicMock()
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("locked"))

    with pytest.raises(InternalError):
        with unit_of_work(session):
            pass

    session.rollback.assert_called_once()


def test_domain_error_propagates_unchanged():
    session = MagicMock()
    error = ConflictError(ErrorCode.ALREADY_MEMBER, "Already in.")

    with pytest.raises(ConflictError) as exc_info:
        with unit_of_work(session):
            raise error

    assert exc_info.value is error
    session.rollback.assert_called_once()
    session.commit.assert_not_called()
