"""
Request id and access logging.

Each request gets ``g.request_id`` (the caller's ``X-Request-ID`` when it is
a sane token, otherwise a fresh one) and is echoed back together with
``X-Response-Time-Ms``. One access line is logged per API request: DEBUG for
reads, INFO for writes, WARNING above ``SLOW_REQUEST_MS``, ERROR on 5xx.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger("perfhub.access")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_UNLOGGED_PREFIXES = ("/api/v1/health",)


def _incoming_request_id() -> str:
    supplied = request.headers.get("X-Request-ID", "")
    return supplied if _REQUEST_ID_RE.match(supplied) else uuid.uuid4().hex


def _access_level(method: str, status: int, duration_ms: float, slow_ms: int) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > slow_ms:
        return logging.WARNING
    return logging.INFO if method in _WRITE_METHODS else logging.DEBUG


def init_request_timing(app: Flask):
    slow_ms = int(app.config.get("SLOW_REQUEST_MS", 1000))

    @app.before_request
    def _begin():
        g.request_started = time.monotonic()
        g.request_id = _incoming_request_id()

    @app.after_request
    def _finish(response):
        started = g.get("request_started")
        if started is None:
            return response
        duration_ms = (time.monotonic() - started) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.1f}"

        if request.path.startswith("/api/") and not request.path.startswith(_UNLOGGED_PREFIXES):
            logger.log(
                _access_level(request.method, response.status_code, duration_ms, slow_ms),
                "%s %s -> %d", request.method, request.path, response.status_code,
                extra={
                    "method": request.method,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "remote_addr": request.remote_addr,
                },
            )
        return response
