"""
backend/goalsgoals/middleware/logging.py

Purpose:
    One JSON access-log line per request, correlated by X-Request-ID. When a
    domain error was rendered, its error code (``already_claimed``,
    ``rate_limit_reached``, ...) is part of the line.
"""

import hashlib
import json
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("goalsgoals.http")

REQUEST_ID_HEADER = "X-Request-ID"
_INBOUND_ID_RE = re.compile(r"^[A-Za-z0-9\-]{1,64}$")
_QUIET_PATHS = frozenset({"/health"})


def _request_id(request: Request) -> str:
    # Keep the proxy's id when it looks sane so log lines join up across hops.
    inbound = request.headers.get(REQUEST_ID_HEADER, "")
    if _INBOUND_ID_RE.match(inbound):
        return inbound
    return uuid.uuid4().hex[:8]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip_hash": hashlib.sha256(
                (request.client.host or "").encode()
            ).hexdigest()[:12] if request.client else None,
        }
        error_code = getattr(request.state, "error_code", None)
        if error_code:
            log_data["error"] = error_code

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif request.url.path in _QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, json.dumps(log_data))

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_logging(level: str | int = logging.INFO) -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # APScheduler logs every job run at INFO.
    logging.getLogger("apscheduler.executors").setLevel(max(level, logging.WARNING))
