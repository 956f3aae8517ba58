"""
Logging setup
=============
stdlib logging with a correlation ID on every record.

The request ID lives in a ContextVar set by LoggingMiddleware; the
RequestIdFilter copies it onto each LogRecord so the format can print it,
including records emitted deep inside the submission service.
"""
from contextvars import ContextVar
import logging

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_kyb_handler", False):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._kyb_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
