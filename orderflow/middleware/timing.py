"""
Per-request id and duration.

Every response gets ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``.  Slow requests and 5xx responses are logged
above DEBUG.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000

_UNLOGGED_PATHS = frozenset({"/api/v1/health"})


def init_request_timing(app: Flask):
    """Attach the timing hooks to *app*."""

    @app.before_request
    def _begin():
        g.request_started = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        started = g.pop("request_started", None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        if request.path in _UNLOGGED_PATHS:
            return response

        if elapsed_ms > SLOW_REQUEST_MS:
            level, label = logging.WARNING, "Slow request"
        elif response.status_code >= 500:
            level, label = logging.ERROR, "Server error"
        else:
            level, label = logging.DEBUG, "Request"
        logger.log(
            level, "%s: %s %s %d (%.0fms)",
            label, request.method, request.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "remote_addr": request.remote_addr,
                "request_id": g.get("request_id"),
                "actor": request.headers.get("X-User"),
            },
        )
        return response
