"""
Structured logging configuration for the honeypot.

Configures structlog so that every log record carries the mandatory fields
``timestamp`` (ISO 8601 UTC), ``level``, ``event`` and ``service_name``,
plus whatever request context (correlation ID, client address, method,
path) the middleware has bound through contextvars.

Sinks
-----
- **stdout** (default): one JSON object per line.  With
  ``print_pretty_logs`` enabled, stdout uses structlog's human-readable
  console renderer instead.  ``no_stdout`` disables stdout entirely.
- **log file** (optional): when ``log_output_path`` is set, JSON lines are
  appended to that file in addition to stdout.  This keeps a durable record
  of which addresses were fed which streams even when stdout is pretty
  printed for an operator watching the console.

Both structlog-native loggers and standard library loggers (used by
Uvicorn) are routed through the same processing pipeline.
"""

import logging
import sys

import structlog

import honeypot.exceptions

SERVICE_NAME = "honeypot"


def _add_service_name(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Inject the service name into every log entry."""
    event_dict["service_name"] = SERVICE_NAME
    return event_dict


def _uppercase_level(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Normalise the log level to uppercase (e.g. INFO, ERROR)."""
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def _build_formatter(
    renderer: structlog.types.Processor,
    shared_processors: list[structlog.types.Processor],
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )


def configure_logging(
    log_level: str = "INFO",
    log_output_path: str | None = None,
    print_pretty_logs: bool = False,
    no_stdout: bool = False,
) -> None:
    """
    Configure structlog and the standard library root logger.

    Should be called once during application startup, before any log
    messages are emitted.

    Args:
        log_level: Minimum level name (``DEBUG`` … ``CRITICAL``).
        log_output_path: File to append JSON log lines to, or ``None``.
        print_pretty_logs: Render stdout logs for humans instead of JSON.
        no_stdout: Do not log to stdout at all.

    Raises:
        honeypot.exceptions.ConfigurationError: When ``log_output_path``
            cannot be opened for appending.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_service_name,
        structlog.stdlib.add_log_level,
        _uppercase_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []

    if not no_stdout:
        stdout_renderer: structlog.types.Processor = (
            structlog.dev.ConsoleRenderer(colors=False)
            if print_pretty_logs
            else structlog.processors.JSONRenderer()
        )
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(_build_formatter(stdout_renderer, shared_processors))
        handlers.append(stdout_handler)

    if log_output_path:
        try:
            file_handler = logging.FileHandler(log_output_path, mode="a", encoding="utf-8")
        except OSError as open_error:
            raise honeypot.exceptions.ConfigurationError(
                detail=f"Failed to open log path '{log_output_path}': {open_error}",
                exit_code=honeypot.exceptions.EXIT_CODE_CANNOT_OPEN_LOG_FILE,
            ) from open_error
        file_handler.setFormatter(_build_formatter(structlog.processors.JSONRenderer(), shared_processors))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for existing_handler in root_logger.handlers:
        if isinstance(existing_handler, logging.FileHandler):
            existing_handler.close()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)
