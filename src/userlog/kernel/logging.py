"""
Structured logging for userlog.

structlog on top of stdlib logging: console lines while developing, JSON lines
in production. Every line carries the correlation id of the request or CLI
invocation that produced it, and credential fields are scrubbed by a processor
before any renderer sees them.

Fun fact: Correlation IDs were popularized by Google's Dapper distributed tracing system
in 2010. A request that creates a user and its event shares one ID across both log lines.
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog

# One per request thread / CLI invocation
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

REDACTED = "***REDACTED***"

# Credentials must never reach a log sink
REDACTED_FIELDS = frozenset(
    {
        "password",
        "credential_secret",
        "secret",
        "token",
        "api_key",
    }
)


def generate_correlation_id() -> str:
    """Return a fresh URL-safe id with 128 bits of randomness."""
    return secrets.token_urlsafe(16)


def get_correlation_id() -> str:
    """Get the current correlation ID, or generate a new one if not set."""
    cid = correlation_id_var.get()
    if not cid:
        cid = generate_correlation_id()
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Redact sensitive fields from a mapping of log context.

    Example:
        >>> redact_context({"password": "s3cr3t", "user_id": 1})
        {'password': '***REDACTED***', 'user_id': 1}
    """
    return {k: REDACTED if k in REDACTED_FIELDS else v for k, v in context.items()}


def redact_secrets(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor applying redact_context to every log line."""
    return redact_context(event_dict)


def configure_logging(
    *,
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structured logging for the process.

    Safe to call more than once: the CLI configures early, and `serve`
    reconfigures once settings are loaded.

    Args:
        json_output: JSON lines (production) instead of console lines
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    level = getattr(logging, log_level.upper())

    # stderr keeps stdout clean for CLI output
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_correlation_id,
        redact_secrets,
    ]

    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module (pass __name__)."""
    return structlog.get_logger(name)


def is_production() -> bool:
    """True when ENVIRONMENT=production."""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


class LogOperation:
    """
    Time a block and log how it ended.

    "started" goes out at debug, "completed" at info with duration_ms, and
    "failed" at error with the exception type. Exceptions are never
    swallowed.

    Example:
        with LogOperation(logger, "update_user", user_id=7):
            ...
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = redact_context(context)
        self.start_time: float = 0.0

    def __enter__(self) -> "LogOperation":
        self.start_time = time.perf_counter()
        self.logger.debug(
            f"{self.operation} started", operation=self.operation, **self.context
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **self.context,
            )
            return

        # Stack traces only in development
        self.logger.error(
            f"{self.operation} failed",
            operation=self.operation,
            duration_ms=duration_ms,
            error=str(exc_val),
            error_type=exc_type.__name__,
            exc_info=not is_production(),
            **self.context,
        )
