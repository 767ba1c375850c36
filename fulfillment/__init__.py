"""
Commitment Fulfillment Orchestrator
Flask Application Factory.

Usage:
    from fulfillment import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import json
import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from fulfillment.config import config as _config_registry
from fulfillment.core.exceptions import OrchestrationError
from fulfillment.middleware.logging_config import configure_logging
from fulfillment.middleware.rate_limiter import init_rate_limits
from fulfillment.middleware.timing import init_request_timing
from fulfillment.models import db
from fulfillment.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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
    # Instantiated so ProductionConfig can refuse to boot without its env vars
    app.config.from_object(_config_registry[config_name]())

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

    # ── Import all models so Alembic can detect them ─────────────────────
    from fulfillment.models import tenant as _tenant_models          # noqa: F401
    from fulfillment.models import catalog as _catalog_models        # noqa: F401
    from fulfillment.models import commitment as _commitment_models  # noqa: F401
    from fulfillment.models import deliverable as _deliverable_models  # noqa: F401
    from fulfillment.models import audit as _audit_models            # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ──
    with app.app_context():
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(app.instance_path, exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from fulfillment.blueprints.commitments_bp import commitments_bp
    from fulfillment.blueprints.health_bp import health_bp

    app.register_blueprint(commitments_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("orchestrate-commitment")
    @click.argument("commitment_id")
    def orchestrate_commitment_cmd(commitment_id):
        """Generate deliverables for one active commitment and print the result."""
        from fulfillment.services.orchestration_service import orchestrate_commitment

        try:
            result = orchestrate_commitment(commitment_id)
        except OrchestrationError as exc:
            body = {"ok": False, "error": exc.code}
            if exc.detail:
                body["detail"] = exc.detail
            click.echo(json.dumps(body, default=str))
            raise SystemExit(1)
        click.echo(json.dumps(result.to_dict()))

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, detail={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
