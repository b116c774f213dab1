"""
Project Task Assistant
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # APP_ENV, or "development"
    app = create_app("testing")  # in-memory SQLite, rate limits and LLM off
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event

from app.config import config
from app.middleware.logging_config import configure_logging
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Request bodies are one chat message plus a short history
DEFAULT_MAX_CONTENT_LENGTH = 64 * 1024


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE rules unless foreign keys are switched on per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
# Only the compile endpoint is limited (see assistant_bp); storage follows RATELIMIT_STORAGE_URI
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def _register_extensions(app: Flask):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, resources={r"/api/*": {"origins": [o.strip() for o in origins.split(",") if o.strip()]}})
    else:
        CORS(app, resources={r"/api/*": {"origins": "*"}})


def _register_request_guards(app: Flask):
    @app.before_request
    def _require_json_body():
        if request.method == "POST" and request.path.startswith("/api/") and request.data:
            if not request.is_json:
                abort(415, description="Content-Type must be application/json")


def _register_error_handlers(app: Flask):
    """API errors are always JSON: {"error": ..., "code": ...}."""

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.PAYLOAD_TOO_LARGE, "Request body too large")

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.UNSUPPORTED_MEDIA_TYPE, e.description)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to the APP_ENV env var, then "development".

    Returns:
        Configured Flask application instance.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    app.config.setdefault("MAX_CONTENT_LENGTH", DEFAULT_MAX_CONTENT_LENGTH)

    configure_logging(app)
    _register_extensions(app)
    init_request_timing(app)
    _register_request_guards(app)

    # Models must be imported before create_all / Alembic autogenerate
    from app.models import ai, auth, project, task  # noqa: F401

    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            db.create_all()

    from app.blueprints.assistant_bp import assistant_bp

    app.register_blueprint(assistant_bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Project Task Assistant"}

    _register_error_handlers(app)
    return app
