"""Request logging middleware for development.

Logs one line per request with a correlation id, the credential kind the
caller presented (cookie, bearer or none) and the outcome. Credential
values, cookies and sensitive query parameters are never written.

Only enabled when APP_MODE is dev.
"""

import logging
import time
import uuid
from typing import Callable, Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger("api.requests")

# Paths to exclude from logging (noisy endpoints)
EXCLUDED_PATHS = {
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

# Query parameters whose values must never reach the log
SENSITIVE_PARAMS = frozenset({
    "token",
    "password",
    "pin",
    "key",
    "access_token",
    "refresh_token",
    "accesstoken",
    "refreshtoken",
})


def redact_params(params: Mapping[str, str]) -> dict[str, str]:
    return {k: ("***" if k.lower() in SENSITIVE_PARAMS else v) for k, v in params.items()}


def credential_kind(request: Request, cookie_name: str) -> str:
    """Describe which credential the caller sent, without its value."""
    if request.headers.get("Authorization", "").lower().startswith("bearer "):
        return "bearer"
    if cookie_name in request.cookies:
        return "cookie"
    return "none"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs method, path, credential kind, status and duration.

    401/403 and gatekeeper redirects are logged at WARNING so auth problems
    stand out during development.
    """

    def __init__(self, app, cookie_name: str = "auth-token"):
        super().__init__(app)
        self.cookie_name = cookie_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        log_parts = [
            f"[{request_id}]",
            f"{request.method} {request.url.path}",
        ]
        if request.query_params:
            log_parts.append(f"params={redact_params(request.query_params)}")
        log_parts.append(f"auth={credential_kind(request, self.cookie_name)}")
        log_parts.append(f"client={request.client.host if request.client else 'unknown'}")
        request_desc = " ".join(log_parts)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{request_desc} - ERROR ({duration:.3f}s): {type(e).__name__}")
            raise

        duration = time.time() - start_time
        status_code = response.status_code

        if status_code >= 500:
            log_func = logger.error
        elif status_code >= 400 or status_code == 307:
            log_func = logger.warning
        elif request.method == "GET":
            log_func = logger.debug
        else:
            log_func = logger.info

        log_func(f"{request_desc} - {status_code} ({duration:.3f}s)")

        response.headers["X-Request-ID"] = request_id
        return response


def configure_request_logging(log_level: str = "INFO") -> None:
    """Configure the request logger once at application startup."""
    request_logger = logging.getLogger("api.requests")
    request_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    # Prevent duplicate emission via root logger handlers.
    request_logger.propagate = False

    if not request_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        request_logger.addHandler(handler)
