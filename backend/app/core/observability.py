"""
Observability: structured logging, correlation ids and execution metrics.

Modules log through the standard library (``logging.getLogger(__name__)``);
:func:`setup_structured_logging` routes those records through structlog so
both end up in the same JSON or console stream with the correlation id of
the current request attached.
"""

import contextvars
import logging
import sys
import uuid
from typing import Any

import structlog
from prometheus_client import Counter, Histogram

from .config import settings

# Context variables for correlation tracking
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
user_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("user_id", default="")

# Prometheus metrics
REQUEST_COUNT = Counter(
    "mes_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_DURATION = Histogram(
    "mes_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"],
)

EXECUTION_OPERATIONS = Counter(
    "mes_execution_operations_total",
    "Total production execution operations",
    ["operation", "status"],
)

EXECUTION_DURATION = Histogram(
    "mes_execution_operation_duration_seconds",
    "Production execution operation duration",
    ["operation"],
)

AUDIT_DELIVERY_FAILURES = Counter(
    "mes_audit_delivery_failures_total",
    "Audit records the sink failed to accept",
    ["action"],
)


class CorrelationIdProcessor:
    """Structlog processor to add correlation ID to all log entries."""

    def __call__(
        self, logger: Any, name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        correlation_id = correlation_id_var.get("")
        user_id = user_id_var.get("")

        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        if user_id:
            event_dict["user_id"] = user_id

        return event_dict


def setup_structured_logging(
    log_level: str | None = None, log_format: str | None = None
) -> None:
    """Configure structured logging with JSON output and correlation tracking."""
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    log_format = log_format or settings.LOG_FORMAT

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        CorrelationIdProcessor(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    if log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.ENVIRONMENT == "local")

    # Configure structlog
    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Render standard library records with the same processors
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Set specific loggers
    if settings.LOG_SQL:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    else:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for request tracking."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    correlation_id_var.set(correlation_id)
    return correlation_id


def set_user_id(user_id: str) -> None:
    """Set user ID for request tracking."""
    user_id_var.set(user_id)


def get_correlation_id() -> str:
    """Get current correlation ID."""
    return correlation_id_var.get("")


def record_operation(operation: str, status: str, duration_seconds: float) -> None:
    """Record one execution operation in the metrics."""
    if not settings.ENABLE_METRICS:
        return
    EXECUTION_OPERATIONS.labels(operation=operation, status=status).inc()
    EXECUTION_DURATION.labels(operation=operation).observe(duration_seconds)


def record_audit_failure(action: str) -> None:
    if settings.ENABLE_METRICS:
        AUDIT_DELIVERY_FAILURES.labels(action=action).inc()


def log_error_with_context(
    error: Exception,
    operation: str,
    context: dict[str, Any] | None = None,
    severity: str = "error",
    include_traceback: bool = True,
) -> None:
    """Log errors with comprehensive context and structured information."""
    logger = get_logger("error_tracking")

    error_data = {
        "operation": operation,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "severity": severity,
    }

    # Add error-specific details
    if getattr(error, "details", None):
        error_data["error_details"] = error.details

    # Add context information
    if context:
        error_data.update(context)

    # Log with appropriate level
    if severity == "critical":
        logger.critical(
            "Critical error occurred", **error_data, exc_info=include_traceback
        )
    elif severity == "error":
        logger.error("Error occurred", **error_data, exc_info=include_traceback)
    elif severity == "warning":
        logger.warning("Warning occurred", **error_data)
    else:
        logger.info("Issue occurred", **error_data)


def initialize_observability() -> None:
    """Initialize all observability components."""
    setup_structured_logging()

    logger = get_logger("observability")
    logger.info(
        "Observability system initialized",
        log_format=settings.LOG_FORMAT,
        metrics_enabled=settings.ENABLE_METRICS,
    )
