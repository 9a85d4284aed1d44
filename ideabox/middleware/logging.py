"""Structured request logging middleware.

Logs each request with method, path, status code, duration, and client info
in JSON format. Query strings are logged without values of sensitive keys.
"""

import time
import logging
import json

from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("ideabox.access")

REDACTED_PARAMS = {"key", "api_key", "token", "secret"}


def _safe_query(request: Request) -> str:
    return "&".join(
        f"{k}=***" if k.lower() in REDACTED_PARAMS else f"{k}={v}"
        for k, v in request.query_params.multi_items()
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)

        client = request.client
        client_ip = client.host if client else "unknown"

        # Extract user ID from auth header if present
        user_id = None
        auth = request.headers.get("authorization", "")
        if auth.startswith("Bearer "):
            from ideabox.core.auth import decode_token
            try:
                user_id = decode_token(auth[7:]).get("sub")
            except JWTError:
                user_id = None

        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "client_ip": client_ip,
        }

        if user_id:
            log_data["user_id"] = user_id

        if request.url.query:
            log_data["query"] = _safe_query(request)

        # Log level based on status code
        if response.status_code >= 500:
            logger.error(json.dumps(log_data))
        elif response.status_code >= 400:
            logger.warning(json.dumps(log_data))
        else:
            logger.info(json.dumps(log_data))

        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        return response
