"""
Process-wide logging setup.

Records are enriched with the request's correlation id and, once the caller
is authenticated, the user id, both taken from context variables set by the
HTTP middleware and the auth dependency.
"""
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | user=%(user_id)s | %(message)s"

_HANDLER_NAME = "erp_api"


class RequestContextFilter(logging.Filter):
    """Copy the request context variables onto each record ('-' outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


@contextmanager
def request_context(correlation_id: str) -> Iterator[None]:
    """Bind a correlation id for the duration of one request and clear any user id."""
    cid_token = correlation_id_var.set(correlation_id)
    uid_token = user_id_var.set(None)
    try:
        yield
    finally:
        correlation_id_var.reset(cid_token)
        user_id_var.reset(uid_token)


# PUBLIC_INTERFACE
def configure_logging(level: int | str = logging.INFO) -> None:
    """
    Route all logging to stdout through a single handler with the context filter.

    Safe to call more than once; the handler is replaced, not duplicated.
    Uvicorn's loggers propagate to the root so access logs share the format.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.propagate = True
