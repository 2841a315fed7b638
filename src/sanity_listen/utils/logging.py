"""
Structured logging for sanity-listen.

Thin structlog wrapper with component-scoped loggers, contextual binding and
operation timing, so the stream, reconciler and CLI all log the same way.
"""

import logging
import logging.config
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import structlog


class LogFormat(str, Enum):
    """Log output formats."""

    STRUCTURED = "structured"
    JSON = "json"
    CONSOLE = "console"


class ContextKeys:
    """Standard context keys for structured logging."""

    COMPONENT = "component"
    OPERATION = "operation"
    DURATION_MS = "duration_ms"
    ERROR_TYPE = "error_type"
    HTTP_STATUS = "http_status"
    URL = "url"
    DOCUMENT_ID = "document_id"
    EVENT_KIND = "event_kind"
    EVENT_ID = "event_id"
    CLI_COMMAND = "cli_command"


class StructuredLogger:
    """Component logger that merges a base context into every entry."""

    def __init__(
        self,
        component: str,
        *,
        logger_name: Optional[str] = None,
        base_context: Optional[Dict[str, Any]] = None,
    ):
        self.component = component
        self.logger_name = logger_name or f"sanity_listen.{component}"
        self.base_context = dict(base_context or {})
        self.base_context[ContextKeys.COMPONENT] = component
        self._logger = structlog.get_logger(self.logger_name)

    def _log_with_context(
        self,
        level: str,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        # Skip building context when the stdlib level filters this entry out
        if logging.getLogger(self.logger_name).getEffectiveLevel() > getattr(
            logging, level
        ):
            return

        context = self.base_context.copy()
        if extra_context:
            context.update(extra_context)

        if exception is not None:
            context[ContextKeys.ERROR_TYPE] = type(exception).__name__
            context["error_message"] = str(exception)

        context["timestamp"] = datetime.now(timezone.utc).isoformat()

        getattr(self._logger, level.lower())(message, **context)

    def debug(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log debug message."""
        self._log_with_context("DEBUG", message, extra_context=extra_context)

    def info(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log info message."""
        self._log_with_context("INFO", message, extra_context=extra_context)

    def warning(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        """Log warning message."""
        self._log_with_context(
            "WARNING", message, extra_context=extra_context, exception=exception
        )

    def error(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        """Log error message."""
        self._log_with_context(
            "ERROR", message, extra_context=extra_context, exception=exception
        )

    def with_context(self, **context: Any) -> "ContextualLogger":
        """Create contextual logger with additional context."""
        return ContextualLogger(self, context)

    @contextmanager
    def operation_context(
        self, operation: str, **additional_context: Any
    ) -> Iterator["ContextualLogger"]:
        """
        Time an operation and log its start, success or failure.

        Yields:
            ContextualLogger bound to the operation name and extra context
        """
        with self.with_context(
            **{ContextKeys.OPERATION: operation}, **additional_context
        )._timed(operation) as contextual_logger:
            yield contextual_logger


class ContextualLogger:
    """Logger wrapper that adds a fixed context to every message."""

    def __init__(self, base_logger: StructuredLogger, context: Dict[str, Any]):
        self.base_logger = base_logger
        self.context = context

    def _merged(self, extra_context: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        combined = self.context.copy()
        if extra_context:
            combined.update(extra_context)
        return combined

    def debug(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.base_logger.debug(message, extra_context=self._merged(extra_context))

    def info(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.base_logger.info(message, extra_context=self._merged(extra_context))

    def warning(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        self.base_logger.warning(
            message, extra_context=self._merged(extra_context), exception=exception
        )

    def error(
        self,
        message: str,
        *,
        extra_context: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None,
    ) -> None:
        self.base_logger.error(
            message, extra_context=self._merged(extra_context), exception=exception
        )

    def with_context(self, **additional_context: Any) -> "ContextualLogger":
        """Create new contextual logger with additional context."""
        return ContextualLogger(self.base_logger, self._merged(additional_context))

    @contextmanager
    def _timed(self, operation: str) -> Iterator["ContextualLogger"]:
        start_time = time.perf_counter()
        self.debug(f"Starting operation: {operation}")
        try:
            yield self
        except BaseException as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.error(
                f"Operation '{operation}' failed",
                extra_context={ContextKeys.DURATION_MS: round(duration_ms, 2)},
                exception=e,
            )
            raise
        else:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.debug(
                f"Operation '{operation}' completed successfully",
                extra_context={ContextKeys.DURATION_MS: round(duration_ms, 2)},
            )


class LoggerFactory:
    """
    Centralized factory for creating component loggers.

    Manages logger lifecycle and configuration integration.
    """

    _loggers: Dict[str, StructuredLogger] = {}

    @classmethod
    def configure_logging(
        cls,
        level: str = "WARNING",
        format_type: str = LogFormat.STRUCTURED.value,
    ) -> None:
        """
        Configure structlog and stdlib logging.

        Args:
            level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            format_type: Log format (structured, json, console)
        """
        level = level.upper()
        filter_level = getattr(logging, level, None)
        if not isinstance(filter_level, int):
            raise ValueError(f"Unknown log level: {level}")

        # NOTE: Any type justified for processors - structlog processor signatures are dynamic
        processors: List[Any] = [
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
        ]

        if format_type == LogFormat.JSON.value:
            processors.append(structlog.processors.JSONRenderer())
        elif format_type == LogFormat.CONSOLE.value:
            processors.append(structlog.dev.ConsoleRenderer(colors=True))
        else:
            processors.append(structlog.processors.KeyValueRenderer())

        structlog.configure(
            processors=processors,
            wrapper_class=structlog.make_filtering_bound_logger(filter_level),
            logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
            cache_logger_on_first_use=False,
        )

        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "structured": {
                        "format": "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
                    },
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "structured",
                        "level": level,
                        "stream": "ext://sys.stderr",
                    },
                },
                "root": {"level": level, "handlers": ["console"]},
            }
        )

    @classmethod
    def get_logger(
        cls,
        component: str,
        *,
        base_context: Optional[Dict[str, Any]] = None,
    ) -> StructuredLogger:
        """Get or create the logger for a component."""
        if component not in cls._loggers:
            cls._loggers[component] = StructuredLogger(
                component, base_context=base_context
            )
        return cls._loggers[component]
