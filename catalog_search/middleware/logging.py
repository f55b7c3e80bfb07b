"""
Structured Logging Middleware

Request/response logging with request ids, timing and the resolved owner,
plus the anonymous session header echo.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import datetime, timezone

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from catalog_search.auth import SESSION_HEADER
from catalog_search.services.session_registry import mask_owner_id

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

QUIET_PATHS = {"/health"}


class RequestIdFilter(logging.Filter):
    """Adds the current request id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, ready for a log aggregator."""

    EXTRA_FIELDS = ("owner_id", "method", "path", "status_code", "duration_ms", "client_ip")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data)


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with:
    - a request id (taken from X-Request-ID or generated, echoed back)
    - method, path, status and duration
    - client ip, honouring proxy headers
    - the owner id when the endpoint resolved one
    """

    def __init__(self, app: ASGIApp, logger_name: str = "catalog_search.access"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request_id_var.set(request_id)
        start_time = time.perf_counter()

        client_ip = request.headers.get(
            "X-Forwarded-For", request.headers.get("X-Real-IP", request.client.host if request.client else "unknown")
        )
        if client_ip and "," in client_ip:
            client_ip = client_ip.split(",")[0].strip()

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self._log_request(request, 500, duration_ms, client_ip, request_id, error=str(e))
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        self._log_request(request, response.status_code, duration_ms, client_ip, request_id)
        return response

    def _log_request(
        self,
        request: Request,
        status_code: int,
        duration_ms: float,
        client_ip: str,
        request_id: str,
        error: str | None = None,
    ) -> None:
        if request.url.path in QUIET_PATHS:
            return

        if status_code >= 500:
            log_level = logging.ERROR
        elif status_code >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        extra = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": client_ip,
        }

        owner_id = getattr(request.state, "owner_id", None)
        if owner_id:
            extra["owner_id"] = mask_owner_id(owner_id)

        message = f"{request.method} {request.url.path} - {status_code} ({duration_ms:.2f}ms)"
        if error:
            message += f" - Error: {error}"

        self.logger.log(log_level, message, extra=extra)


class SessionHeaderMiddleware(BaseHTTPMiddleware):
    """Echoes the anonymous session id resolved for this request in X-Session-Id."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        session_id = getattr(request.state, "session_id", None)
        if session_id:
            response.headers[SESSION_HEADER] = session_id
        return response


def setup_structured_logging(
    log_level: str = "INFO",
    json_format: bool = True,
    log_file: str | None = None,
) -> None:
    """
    Configure root logging for the service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use the JSON formatter (production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"))
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    loggers_config = {
        "catalog_search": log_level,
        "catalog_search.access": log_level,
        "apscheduler": "WARNING",
        "httpx": "WARNING",
        "uvicorn": "WARNING",
        "uvicorn.access": "WARNING",
        "sqlalchemy.engine": "WARNING",
    }
    for logger_name, level in loggers_config.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level.upper()))


def get_request_id() -> str:
    return request_id_var.get("")
