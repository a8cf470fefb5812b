"""
transaction.py — Request-scoped unit of work.

Services only flush. Routes wrap their single service call in
unit_of_work(session) so that each HTTP request commits exactly once:

    with unit_of_work(db.session):
        result = group_service.delete_group(group_id, g.user_id, g.role, db.session)

On any exception the whole transaction is rolled back. AppError subclasses
propagate unchanged; raw SQLAlchemy errors are logged and re-raised as
InternalError so storage details never reach the response body.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studyhub.app.errors import ErrorCode, InternalError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Storage failure; transaction rolled back: %s", type(exc).__name__)
        raise InternalError(
            ErrorCode.INTERNAL_ERROR,
            "An unexpected error occurred. Please try again later.",
        ) from exc
    except Exception:
        session.rollback()
        raise
