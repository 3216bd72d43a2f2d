import logging
import sys
import time
import uuid
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from utils.settings import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logging and common third-party loggers (uvicorn).

    - Level controlled by LOG_LEVEL env var (default INFO)
    - Simple, readable console formatter by default
    - Align uvicorn loggers with our level
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level, logging.INFO)

    # If logging is already configured (e.g., by uvicorn), don't add duplicate handlers
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(settings.log_format))
        root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)


class RequestContextLogMiddleware(BaseHTTPMiddleware):
    """Middleware that:
    - Generates a request_id (or uses incoming X-Request-ID)
    - Logs request start and completion with latency and status code
    - Attaches request_id to response headers
    """

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("backend.http")

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        start = time.time()

        path = request.url.path
        method = request.method
        client = request.client.host if request.client else ""

        self.logger.info(
            "request start %s %s client=%s rid=%s",
            method,
            path,
            client,
            request_id,
        )

        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = int((time.time() - start) * 1000)
            self.logger.exception(
                "request error %s %s time_ms=%s rid=%s",
                method,
                path,
                elapsed_ms,
                request_id,
            )
            raise

        elapsed_ms = int((time.time() - start) * 1000)
        response.headers["x-request-id"] = request_id
        self.logger.info(
            "request end %s %s status=%s time_ms=%s rid=%s",
            method,
            path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
