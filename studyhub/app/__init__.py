"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to load the metadata without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging for the studyhub logger hierarchy from LOG_LEVEL
  3. Initialise SQLAlchemy via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a JSON provider that writes dates as ISO-8601 and enums by value

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import enum
import logging
import traceback
from datetime import date, datetime

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from studyhub.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default provider writes dates in RFC 822 form
# ("Tue, 01 Oct 2024 00:00:00 GMT"). Tasks carry due dates, so the API uses
# ISO-8601 everywhere instead.

class StudyHubJSONProvider(DefaultJSONProvider):
    """
    Serialises datetime/date as ISO-8601 and Enum members by value.

    Example: date(2024, 10, 1) → "2024-10-01"
    """

    def default(self, o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, enum.Enum):
            return o.value
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)
    app.json_provider_class = StudyHubJSONProvider
    app.json = StudyHubJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from studyhub.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    # The imports are intentionally unused by name; the side effect is the point.
    with app.app_context():
        from studyhub.app.models import (  # noqa: F401
            assignment,
            group,
            invitation,
            membership,
            task,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Services log through logging.getLogger(__name__), i.e. under
    "studyhub.app.services.*". Those records propagate to app.logger
    ("studyhub.app"), which carries Flask's default stderr handler.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.getLogger("studyhub").setLevel(level)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:id>").
    """
    from studyhub.app.routes.groups import groups_bp
    from studyhub.app.routes.invitations import invitations_bp
    from studyhub.app.routes.tasks import tasks_bp
    from studyhub.app.routes.users import users_bp

    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    app.register_blueprint(tasks_bp,       url_prefix="/api/v1/tasks")
    app.register_blueprint(invitations_bp, url_prefix="/api/v1/invitations")
    app.register_blueprint(users_bp,       url_prefix="/api/v1/users")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError             → structured JSON error envelope with its HTTP status
      SchemaValidationError → marshmallow errors formatted as MISSING_FIELD /
                              INVALID_FIELD / registered-code responses (400)
      HTTPException        → werkzeug errors (404 route, 405 method) in the envelope
      Exception            → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from studyhub.app.errors import AppError, ErrorCode

    registered_codes = {v for k, v in vars(ErrorCode).items() if not k.startswith("_")}

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Marshmallow raises ValidationError with a messages dict keyed by field
        name. We return the FIRST error only: one error, not many.

        If the message is itself a registered ErrorCode (e.g. INVALID_STATUS
        raised by a schema validator), that code is used directly.
        """
        messages = error.messages  # e.g. {"status": ["INVALID_STATUS"]}

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None

                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."

        if raw_message in registered_codes:
            code = raw_message
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": _code_to_message(code) if raw_message in registered_codes else raw_message,
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({
            "error": {
                "code": error.name.upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself.
    """
    _messages = {
        "INVALID_STATUS": "Status must be one of: pending, in_progress, completed, cancelled.",
        "INVALID_DUE_DATE": "due_date must be an ISO-8601 date (YYYY-MM-DD).",
        "INVALID_DECISION": "status must be 'approved' or 'rejected'.",
    }
    return _messages.get(code, "Invalid input.")
