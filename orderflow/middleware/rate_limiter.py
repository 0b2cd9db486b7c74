"""
Write-endpoint rate limits (Flask-Limiter).

The shared ``Limiter`` is built in ``orderflow/__init__.py`` without a
global limit; only the blueprints that mutate orders and work units are
throttled, per remote address.

Usage:
    from orderflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_BLUEPRINTS = ("orders", "tasks", "asking_tasks")


def init_rate_limits(app, limiter):
    """Apply ``WRITE_RATE_LIMIT`` to each registered write blueprint.

    Skipped entirely under TESTING.
    """
    if app.config.get("TESTING"):
        logger.debug("Rate limiting skipped (TESTING)")
        return

    limit = app.config.get("WRITE_RATE_LIMIT", "60/minute")
    applied = []
    for name in WRITE_BLUEPRINTS:
        blueprint = app.blueprints.get(name)
        if blueprint is not None:
            limiter.limit(limit)(blueprint)
            applied.append(name)

    logger.info("Rate limit %s applied to %s", limit, ", ".join(applied) or "no blueprints")
