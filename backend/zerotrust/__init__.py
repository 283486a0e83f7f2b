"""
App factory for the zero-trust scan orchestrator.

Environment:
    CORS_ORIGINS               comma-separated; an https:// origin means production
    SECRET_KEY                 required in production
    SQLALCHEMY_DATABASE_URI    required in production, SQLite file otherwise
    ZEROTRUST_MAX_WORKERS      concurrent agent calls per batch (default 4)
    ZEROTRUST_AGENT_TIMEOUT    seconds per agent call (default 30)
    SCHEDULER_ENABLED          "false" keeps this worker's scheduler off
    FLASK_NO_SCHEDULER         any value keeps the scheduler off

Schema is owned by Flask-Migrate (`flask db upgrade`); only tests call
db.create_all().
"""

from __future__ import annotations

import logging
import os
import re
import traceback

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .extensions import init_extensions, db
from . import models
from .errors import ZeroTrustError
from .executions import executions_bp
from .hashes import hashes_bp
from .scanner import scanner_bp
from .settings import settings_bp
from .scheduler import init_scheduler, zerotrust_cli

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("zerotrust.errors")

LOCAL_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    re.compile(r"http://192\.168\.\d+\.\d+:3000"),
]

_GENERIC_500 = "An unexpected error occurred. Please try again later."


def _is_production() -> bool:
    """An https CORS origin is how deployments mark themselves as production."""
    return os.getenv("CORS_ORIGINS", "").startswith("https://")


def _scheduler_enabled() -> bool:
    # Under Gunicorn with several workers, enable this on exactly one of them
    # or disable it everywhere and run `flask zerotrust run-scan` from cron.
    return os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true"


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer {name}, using {default}")
        return default


def _required_in_production(name: str, is_prod: bool, hint: str) -> str | None:
    value = os.getenv(name)
    if is_prod and not value:
        raise RuntimeError(f"{name} environment variable is not set. {hint}")
    return value


def _configure_logging(app: Flask, is_prod: bool) -> None:
    level = logging.INFO if is_prod else logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S" if is_prod else "%H:%M:%S",
    )
    app.logger.setLevel(level)

    for noisy, noisy_level in (
        ("werkzeug", logging.INFO),
        ("urllib3", logging.WARNING),
        ("apscheduler", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(noisy_level)


def _cors_origins() -> list:
    configured = os.getenv("CORS_ORIGINS")
    if not configured:
        return LOCAL_ORIGINS
    return [o.strip() for o in configured.split(",") if o.strip()]


def _json_error(error: str, message: str, status: int):
    return jsonify({"error": error, "message": message}), status


def _register_error_handlers(app: Flask) -> None:
    """JSON bodies for every error; tracebacks only go to the log."""

    @app.errorhandler(ZeroTrustError)
    def zerotrust_error(e: ZeroTrustError):
        if e.status_code >= 500:
            error_logger.warning(f"{e.code}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return _json_error("Bad request", getattr(e, "description", None) or "Malformed request.", 400)

    @app.errorhandler(404)
    def not_found(e):
        return _json_error("Not found", "The requested resource was not found.", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _json_error("Method not allowed", "This HTTP method is not allowed for this endpoint.", 405)

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error("500 Internal Server Error:\n%s", traceback.format_exc())
        return _json_error("Internal server error", _GENERIC_500, 500)

    @app.errorhandler(Exception)
    def catch_all(e):
        if isinstance(e, HTTPException):
            return _json_error(e.name, e.description, e.code)

        db.session.rollback()
        error_logger.error("Unhandled exception: %s\n%s", e, traceback.format_exc())
        return _json_error("Internal server error", _GENERIC_500, 500)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)
    is_prod = _is_production()

    _configure_logging(app, is_prod)

    CORS(app, resources={
        r"/*": {
            "origins": _cors_origins(),
            "supports_credentials": True,
            "allow_headers": ["Content-Type", "Authorization"],
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        }
    })

    secret_key = _required_in_production(
        "SECRET_KEY", is_prod,
        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\"",
    )
    database_uri = _required_in_production(
        "SQLALCHEMY_DATABASE_URI", is_prod,
        "Example: postgresql://zerotrust:PASSWORD@db:5432/panel",
    )

    app.config.update(
        SECRET_KEY=secret_key or "dev-secret-key-change-me",
        SQLALCHEMY_DATABASE_URI=database_uri or "sqlite:///zerotrust.db",
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        ZEROTRUST_MAX_WORKERS=max(1, _int_env("ZEROTRUST_MAX_WORKERS", 4)),
    )
    if test_config:
        app.config.update(test_config)

    init_extensions(app)

    for bp in (settings_bp, scanner_bp, executions_bp, hashes_bp):
        app.register_blueprint(bp)
    app.cli.add_command(zerotrust_cli)

    _register_error_handlers(app)

    @app.get("/admin/zerotrust/health")
    @app.get("/health")
    def health():
        return jsonify(status="up and running"), 200

    if _scheduler_enabled():
        init_scheduler(app)
    else:
        logger.info("Scheduler disabled for this worker (SCHEDULER_ENABLED != true)")

    return app
