"""
Performance Hub
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # APP_ENV, or "development"
    app = create_app("testing")
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine
from werkzeug.exceptions import HTTPException

from app.config import config
from app.core.exceptions import AppError
from app.middleware.jwt_auth import init_jwt_middleware
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.responses import api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
# storage comes from RATELIMIT_STORAGE_URI at init_app time
limiter = Limiter(key_func=get_remote_address, default_limits=[])

HTTP_MESSAGES = {
    404: "Resource not found",
    405: "Method not allowed",
    413: "Request body too large",
    415: "Content-Type must be application/json",
    429: "Too many requests",
}

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # SQLite ignores ON DELETE rules unless asked per connection
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """Build the application for ``config_name`` (development/testing/production)."""
    config_name = config_name or os.getenv("APP_ENV", "development")
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)
    app.config.setdefault("RATELIMIT_STORAGE_URI", app.config["REDIS_URL"])

    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS") or ""
    if origins == "*":
        CORS(app)
    elif origins:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])

    init_request_timing(app)
    _register_request_guards(app)
    init_jwt_middleware(app)

    # models must be imported before create_all / migrations autogenerate
    from app.models import auth, document, email_log, indicator, project  # noqa: F401

    if not app.config.get("TESTING"):
        with app.app_context():
            db.create_all()

    _register_blueprints(app)
    _register_cli(app)
    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.debug("Application created (config=%s)", config_name)
    return app


def _register_request_guards(app):
    @app.before_request
    def _guard_body():
        limit = app.config.get("MAX_CONTENT_LENGTH")
        if limit and (request.content_length or 0) > limit:
            abort(413)
        if (request.method in _BODY_METHODS and request.path.startswith("/api/")
                and request.get_data(cache=True) and not request.is_json):
            abort(415)


def _register_blueprints(app):
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.dashboard_bp import dashboard_bp
    from app.blueprints.documents_bp import documents_bp
    from app.blueprints.email_bp import email_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.indicators_bp import indicators_bp
    from app.blueprints.projects_bp import projects_bp
    from app.blueprints.reference_bp import reference_bp
    from app.blueprints.roles_bp import roles_bp
    from app.blueprints.tenants_bp import tenants_bp
    from app.blueprints.users_bp import users_bp

    for bp in (
        health_bp, auth_bp, users_bp, roles_bp, tenants_bp, indicators_bp,
        projects_bp, documents_bp, dashboard_bp, email_bp, reference_bp,
    ):
        app.register_blueprint(bp)


def _register_cli(app):
    @app.cli.command("seed")
    @click.option("--admin-email", envvar="SEED_ADMIN_EMAIL", default=None,
                  help="Create a superadmin with this email.")
    @click.option("--admin-password", envvar="SEED_ADMIN_PASSWORD", default=None,
                  help="Password for the seeded superadmin.")
    def seed_cmd(admin_email, admin_password):
        """Seed permissions, system roles, the indicator tree and a superadmin."""
        from app.services.seed_service import seed_all

        if admin_email and not admin_password:
            raise click.UsageError("--admin-password is required with --admin-email")
        summary = seed_all(admin_email=admin_email, admin_password=admin_password)
        click.echo(f"Seed completed: {summary}")


def _register_error_handlers(app):
    @app.errorhandler(AppError)
    def _app_error(e):
        level = logging.ERROR if e.status_code >= 500 else logging.INFO
        logger.log(level, "%s on %s: %s", type(e).__name__, request.path, e.message)
        return api_error(e.status_code, e.message)

    @app.errorhandler(HTTPException)
    def _http_error(e):
        status = e.code or 500
        return api_error(status, HTTP_MESSAGES.get(status) or e.name)

    @app.errorhandler(Exception)
    def _unexpected(e):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(500, "Internal server error")
