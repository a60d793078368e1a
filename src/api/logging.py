"""Structured logging and request middleware for the timeline API.

Aggregation runs, producer writes and storage failures all log through
module loggers. This module decides how those lines look, tags each one
with the id of the request that caused it, and writes one access line
per request naming the authenticated user.

Example:
    >>> from src.api.logging import setup_logging
    >>> setup_logging("INFO")
"""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Request id of the request being served, "" outside requests
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "hpack",
    "postgrest",
    "supabase",
)

access_logger = logging.getLogger("api.access")


def _quote(value: str) -> str:
    return '"' + value.replace("\n", " | ").replace('"', '\\"') + '"'


class StructuredFormatter(logging.Formatter):
    """Key=value formatter.

    Lines look like::

        timestamp=... level=INFO logger=timeline.aggregate request_id=... message="..."

    Records emitted outside a request (CLI runs, batch workers) carry
    ``request_id=-``.
    """

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            ("timestamp", self.formatTime(record, self.datefmt)),
            ("level", record.levelname),
            ("logger", record.name),
            ("request_id", request_id_var.get() or "-"),
        ]
        line = " ".join(f"{key}={value}" for key, value in fields)
        line += f" message={_quote(record.getMessage())}"

        if record.exc_info:
            line += f" exception={_quote(self.formatException(record.exc_info))}"

        return line


def setup_logging(log_level: str = "INFO") -> None:
    """Route all logging to stdout through ``StructuredFormatter``.

    Existing root handlers are replaced, so calling this twice (app
    startup after a CLI run, repeated test apps) does not duplicate lines.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
    """
    level = log_level.upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, time the request and write its access line.

    The request id is taken from an incoming ``X-Request-ID`` header or
    generated, stored on ``request.state.request_id`` for the error
    handlers, and echoed on the response together with
    ``X-Response-Time``. The access line includes the user id the auth
    dependency left on ``request.state``, or ``-`` for anonymous calls.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = f"{duration_ms:.2f}ms"

            access_logger.info(
                "method=%s path=%s status=%d user_id=%s duration_ms=%.2f",
                request.method,
                request.url.path,
                response.status_code,
                getattr(request.state, "user_id", None) or "-",
                duration_ms,
            )
            return response
        finally:
            request_id_var.reset(token)


def add_middleware(app: FastAPI) -> None:
    """Install the request-context middleware on the application."""
    app.add_middleware(RequestContextMiddleware)
