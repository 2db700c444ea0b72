# -*- coding: utf-8 -*-
"""Application factory for the CMS admin service."""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from cms_admin.auth.authenticator import Authenticator
from cms_admin.auth.guard import AuthorizationGuard
from cms_admin.auth.passwords import PasswordHasher
from cms_admin.auth.rate_limit import build_rate_limiter
from cms_admin.auth.sessions import SessionManager
from cms_admin.cli import register_commands
from cms_admin.config import Config, get_config
from cms_admin.errors import AdminError
from cms_admin.routes.audit import audit_bp
from cms_admin.routes.auth import auth_bp
from cms_admin.routes.helpers import admin_error_response, error_response
from cms_admin.routes.users import users_bp
from cms_admin.services.audit import AuditLogger

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)


REQUEST_COUNT = Counter(
    "cms_admin_requests_total",
    "HTTP requests handled, by endpoint and status.",
    labelnames=("method", "endpoint", "status"),
)
REQUEST_LATENCY = Histogram(
    "cms_admin_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=("method", "endpoint"),
)


def _install_services(
    app: Flask, config: Config, clock: Optional[Callable[[], float]]
) -> None:
    """Build the auth and audit components and expose them on ``app``."""

    sessions = SessionManager(
        config.session_secret,
        algorithm=config.session_algorithm,
        ttl=timedelta(minutes=config.session_ttl_minutes),
    )
    hasher = PasswordHasher(config.bcrypt_rounds)
    rate_limiter = build_rate_limiter(config, clock=clock)
    app.extensions.update(
        session_manager=sessions,
        password_hasher=hasher,
        rate_limiter=rate_limiter,
        authenticator=Authenticator(
            rate_limiter=rate_limiter, sessions=sessions, hasher=hasher
        ),
        guard=AuthorizationGuard(sessions),
        audit_logger=AuditLogger(
            export_max_rows=config.audit_export_max_rows
        ),
    )


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AdminError)
    def handle_admin_error(err: AdminError):
        return admin_error_response(err)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(err.code or 500, err.description or err.name)

    @app.errorhandler(Exception)
    def handle_exception(err: Exception):
        """Log unexpected failures without leaking them to the client."""
        app.logger.exception("unhandled error: %s", err)
        return error_response(500, "internal server error")


def _register_instrumentation(app: Flask) -> None:
    @app.before_request
    def start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def record_request(response: Response) -> Response:
        endpoint = request.endpoint or "unknown"
        status = str(response.status_code)
        REQUEST_COUNT.labels(request.method, endpoint, status).inc()
        started = g.pop("request_started", None)
        if started is None:
            return response
        duration = time.perf_counter() - started
        REQUEST_LATENCY.labels(request.method, endpoint).observe(duration)
        app.logger.info(
            "request.completed %s %s status=%s duration_ms=%.2f",
            request.method,
            endpoint,
            status,
            duration * 1000,
        )
        return response

    @app.route("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


def create_app(
    config: Config | None = None,
    *,
    clock: Optional[Callable[[], float]] = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Configuration to use instead of the environment.
        clock: Monotonic clock for the in-memory login rate limiter.

    Returns:
        Flask: The configured Flask application.
    """
    config = config or get_config()
    app = Flask(__name__)
    app.secret_key = config.flask_secret
    app.config["APP_CONFIG"] = config

    CORS(app, origins=config.cors_origins, supports_credentials=True)

    _install_services(app, config, clock)
    _register_error_handlers(app)
    _register_instrumentation(app)

    @app.route("/health")
    def health():
        return jsonify(
            {
                "status": "ok",
                "service": "cms-admin",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(audit_bp)
    register_commands(app)

    return app


if __name__ == "__main__":
    application = create_app()
    application.run(debug=True, port=application.config["APP_CONFIG"].app_port)
