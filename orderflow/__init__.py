"""
Order Workflow Engine
Flask Application Factory.

Usage:
    from orderflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy import event as _sa_event

from orderflow.config import config
from orderflow.core.exceptions import DomainError, NotFoundError, ValidationError
from orderflow.middleware.logging_config import configure_logging
from orderflow.middleware.rate_limiter import init_rate_limits
from orderflow.middleware.timing import init_request_timing
from orderflow.models import db
from orderflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(key_func=get_remote_address, default_limits=[])  # storage from RATELIMIT_STORAGE_URI


def _register_error_handlers(app):
    """Map engine exceptions and HTTP errors to the standard JSON body."""

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc):
        return api_error(exc.code, str(exc))

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return api_error(exc.code, str(exc), details=exc.details)

    @app.errorhandler(DomainError)
    def handle_domain(exc):
        return api_error(exc.code, str(exc), details=exc.details)

    @app.errorhandler(IntegrityError)
    def handle_integrity(exc):
        # Unique key lost to a concurrent insert after the pre-checks passed.
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        return api_error(E.DUPLICATE, "Duplicate or constraint violation")

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(415)
    def unsupported_media(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from orderflow.models import audit as _audit_models      # noqa: F401
    from orderflow.models import catalog as _catalog_models  # noqa: F401
    from orderflow.models import order as _order_models      # noqa: F401
    from orderflow.models import task as _task_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if app.config.get("AUTO_CREATE_TABLES", True):
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from orderflow.blueprints.asking_tasks_bp import asking_tasks_bp
    from orderflow.blueprints.orders_bp import orders_bp
    from orderflow.blueprints.tasks_bp import tasks_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(asking_tasks_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Order Workflow Engine"}

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
