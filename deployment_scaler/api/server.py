"""
HTTP Server — Flask app factory and TLS setup.

``create_app(context)`` builds the app around an already-constructed
ScalerContext. Serving, draining and shutdown belong to the Lifecycle.
"""

from __future__ import annotations

import logging
import ssl
import time

from flask import Flask, g, request

from ..config.settings import ScalerSettings
from ..context import ScalerContext
from ..errors import InvalidInputError, NotFoundError, WriteFailureError
from .helpers import InFlightTracker, json_error
from .routes import replicas_bp

logger = logging.getLogger(__name__)

DEPLOYMENT_NOT_FOUND_MESSAGE = "Deployment not found"
WRITE_FAILURE_MESSAGE = "Failed to update deployment scale"

# Polled by health checks and scrapers; logged at DEBUG
QUIET_PATHS = ("/healthz", "/metrics")


def create_app(context: ScalerContext) -> Flask:
    """Create the Flask application."""
    app = Flask(__name__)
    app.config["SCALER"] = context
    app.config["IN_FLIGHT"] = InFlightTracker()
    app.json.sort_keys = False

    app.register_blueprint(replicas_bp)

    # ── Error Handlers ────────────────────────────────────────────

    @app.errorhandler(InvalidInputError)
    def invalid_input(e: InvalidInputError):
        return json_error(e.message, 400)

    @app.errorhandler(NotFoundError)
    def not_found(e: NotFoundError):
        return json_error(DEPLOYMENT_NOT_FOUND_MESSAGE, 404)

    @app.errorhandler(WriteFailureError)
    def write_failure(e: WriteFailureError):
        logger.error(f"{e.message}: {e.__cause__}")
        return json_error(WRITE_FAILURE_MESSAGE, 500)

    @app.errorhandler(404)
    def unknown_route(e):
        return json_error("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return json_error("Method not allowed", 405)

    @app.errorhandler(500)
    def internal_server_error(e):
        """Catch-all: JSON for any unhandled 500 so clients never see raw HTML."""
        logger.error(f"Unhandled 500 on {request.method} {request.path}: {e}", exc_info=True)
        return json_error("Internal server error", 500)

    # ── Request Tracking ──────────────────────────────────────────

    @app.before_request
    def track_request_start():
        g.start_time = time.monotonic()
        app.config["IN_FLIGHT"].enter()
        g.in_flight = True

    @app.teardown_request
    def track_request_end(exc):
        if g.pop("in_flight", False):
            app.config["IN_FLIGHT"].exit()

    @app.after_request
    def log_request_end(response):
        duration_ms = int((time.monotonic() - g.get("start_time", time.monotonic())) * 1000)
        context.metrics.increment(
            "http_requests_total",
            labels={"method": request.method, "status": str(response.status_code)},
        )
        log_fn = logger.debug if request.path in QUIET_PATHS else logger.info
        log_fn(
            f"{request.method} {request.path} → {response.status_code} ({duration_ms}ms)",
            extra={"method": request.method, "path": request.path, "status": response.status_code},
        )
        return response

    logger.info(f"API initialized (store={context.store.name})")
    return app


def build_ssl_context(settings: ScalerSettings) -> ssl.SSLContext:
    """
    TLS 1.3 server context.

    With a CA bundle configured, clients must present a certificate
    signed by it (mutual TLS).
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_3
    context.load_cert_chain(settings.tls_cert_file, settings.tls_key_file)

    if settings.tls_ca_file:
        context.load_verify_locations(settings.tls_ca_file)
        context.verify_mode = ssl.CERT_REQUIRED
        logger.info("Mutual TLS enabled: client certificates required")

    return context
