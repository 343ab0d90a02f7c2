"""Structured logging and diagnostic sinks.

Logging is standardized on ``structlog``. ``configure_logging`` produces
either JSON (for machines) or a pretty console format (for humans) and binds
the service name so lines are useful when aggregated.

Connection operations report failures and notable events through a
``DiagnosticSink`` supplied by the caller. ``NullSink`` is the default and
drops everything; ``StructlogSink`` forwards events to a structlog logger.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
- Pass ``StructlogSink()`` to operations whose failures you want to see
"""

import logging
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional
import structlog
from structlog.stdlib import LoggerFactory, add_logger_name


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    **kwargs: Any
) -> None:
    """Configure structured logging for a service.

    Parameters
    - service_name: Logical service identifier bound to each log line
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive)
    - log_format: ``json`` for production; ``console`` for local dev
    - kwargs: Reserved for future custom processors/overrides
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class Severity(Enum):
    """Severity of a diagnostic event."""
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"
    VERBOSE = "verbose"


class DiagnosticSink(ABC):
    """Receives diagnostic events from connection operations."""

    @abstractmethod
    def log(
        self,
        severity: Severity,
        message: str,
        error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one event.

        Parameters
        - severity: How serious the event is
        - message: Human readable description
        - error: The fault behind the event, if any
        - context: Structured key/value pairs describing the event
        """


class NullSink(DiagnosticSink):
    """Sink that discards every event."""

    def log(self, severity, message, error=None, context=None) -> None:
        pass


NULL_SINK = NullSink()


class StructlogSink(DiagnosticSink):
    """Sink that writes events to a structlog logger with common context."""

    _methods = {
        Severity.ERROR: "error",
        Severity.WARNING: "warning",
        Severity.INFORMATION: "info",
        Severity.VERBOSE: "debug",
    }

    def __init__(self, name: str = "search_toolkit", **context: Any):
        self.name = name
        self.logger = structlog.get_logger(name)
        self.context = context

    def bind(self, **kwargs: Any) -> "StructlogSink":
        """Return a new sink carrying the merged context."""
        return StructlogSink(self.name, **{**self.context, **kwargs})

    def log(self, severity, message, error=None, context=None) -> None:
        fields = {**self.context, **(context or {})}
        if error is not None:
            fields["error"] = str(error)
            fields["error_type"] = type(error).__name__
            fields["exc_info"] = error
        getattr(self.logger, self._methods[severity])(message, **fields)
