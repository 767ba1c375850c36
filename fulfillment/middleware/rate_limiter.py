"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in fulfillment/__init__.py with no default
limits; this module applies granular limits per route category.

The orchestration trigger gets its own limit (ORCHESTRATE_RATE_LIMIT),
keyed by tenant when the caller sends X-Tenant-ID, else by remote IP.
It guards against double-submit storms, not against duplication: the
idempotency marker handles that.

Usage:
    from fulfillment.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

logger = logging.getLogger(__name__)


def _tenant_or_ip_key():
    """Dynamic rate limit key: X-Tenant-ID if present, else remote IP."""
    tenant_id = (flask_request.headers.get("X-Tenant-ID") or "").strip()
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Orchestration trigger: ORCHESTRATE_RATE_LIMIT (default 30/minute)
        - Read endpoints:        200/minute
        - Health check:          exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    orchestrate_limit = app.config.get("ORCHESTRATE_RATE_LIMIT", "30/minute")
    view = app.view_functions.get("commitments.orchestrate")
    if view is not None:
        app.view_functions["commitments.orchestrate"] = limiter.limit(
            orchestrate_limit, key_func=_tenant_or_ip_key,
        )(view)

    bp = app.blueprints.get("commitments")
    if bp:
        limiter.limit("200/minute")(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: orchestrate: %s, read: 200/min", orchestrate_limit,
    )
