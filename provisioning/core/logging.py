"""Structured JSON logging configuration for the application."""

import logging
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter as _JsonFormatter

from provisioning.config import settings

# Per-request correlation ID, set by RequestIdMiddleware and read by _RequestIdFilter
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class _RequestIdFilter(logging.Filter):
    """Injects the current request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


class _AppJsonFormatter(_JsonFormatter):
    """Extends the standard JSON formatter with service-level metadata."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", settings.app_name)
        log_record.setdefault("version", settings.app_version)
        log_record.setdefault("env", settings.env)


def configure_logging() -> None:
    """Set up structured JSON logging for the whole process.

    Call once at startup (inside create_app) before providers are built.

    Log levels:
        DEBUG   - vendor requests/responses, catalog lookups, read operations
        INFO    - every mutating provider operation, startup/shutdown
        WARNING - rejected operations, normalized vendor errors
        ERROR   - unhandled exceptions, vendor connection failures
    """
    log_level = logging.DEBUG if settings.debug else logging.getLevelName(settings.log_level)

    handler = logging.StreamHandler()
    handler.setFormatter(
        _AppJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )
    handler.addFilter(_RequestIdFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    # Request lines from httpx duplicate our own vendor request logging
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
