"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever needed.

    from studyhub.app.extensions import db

Do not pass the app object directly to SQLAlchemy() at import time — that
would prevent running tests with a separate test app instance.

Schema inheritance rule:
  All validation Schema classes (in app/schemas/) inherit from
  marshmallow.Schema directly so unit tests can load them without an
  application context.
"""

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


# ── SQLite transaction handling ───────────────────────────────────────────
# pysqlite issues its own BEGIN lazily and ignores SAVEPOINT boundaries,
# which breaks session.begin_nested(). Hand transaction control to
# SQLAlchemy and turn on foreign key enforcement (off by default in SQLite).
# PostgreSQL engines are untouched.

@event.listens_for(Engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(Engine, "begin")
def _sqlite_on_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")
