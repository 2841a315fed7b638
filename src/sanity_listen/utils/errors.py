"""Unified error handling for sanity-listen with structured context."""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, NoReturn, Optional

import typer

from sanity_listen.utils.logging import LoggerFactory, StructuredLogger

if TYPE_CHECKING:
    from sanity_listen.listen.protocol import Event


class ErrorSeverity(str, Enum):
    """Error severity levels for classification and handling."""

    WARNING = "warning"
    ERROR = "error"


class ErrorCategory(str, Enum):
    """Error categories for structured handling."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NETWORK = "network"
    PROTOCOL = "protocol"
    RUNTIME = "runtime"


class ListenError(Exception):
    """
    Base exception for all listen operations with structured context.

    Every failure the stream or reconciler can surface is fatal; the error
    carries enough context to diagnose it without re-running the stream.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.RUNTIME,
        operation: Optional[str] = None,
        component: Optional[str] = None,
        user_message: Optional[str] = None,
        help_text: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        """
        Initialize structured error.

        Args:
            message: Technical error message for developers
            context: Additional context data for debugging
            severity: Error severity level
            category: Error category for classification
            operation: Operation that failed (e.g., "open_stream", "reconcile")
            component: Component where error occurred (e.g., "stream", "cli")
            user_message: User-friendly error message
            help_text: Suggested resolution or help information
            error_code: Unique error code for documentation reference
        """
        super().__init__(message)

        self.message = message
        self.context = dict(context or {})
        self.severity = severity
        self.category = category
        self.operation = operation
        self.component = component
        self.user_message = user_message or message
        self.help_text = help_text
        self.error_code = error_code
        self.timestamp = datetime.now(timezone.utc)

        self.context.update(
            {
                "timestamp": self.timestamp.isoformat(),
                "severity": self.severity.value,
                "category": self.category.value,
            }
        )
        if self.operation:
            self.context["operation"] = self.operation
        if self.component:
            self.context["component"] = self.component

    def __str__(self) -> str:
        if self.operation and self.component:
            return f"[{self.component.upper()}] {self.operation} failed: {self.message}"
        elif self.operation:
            return f"Operation '{self.operation}' failed: {self.message}"
        return self.message

    def get_user_message(self) -> str:
        """Get user-friendly error message."""
        return self.user_message

    def get_context_for_logging(self) -> Dict[str, Any]:
        """Get context information for structured logging."""
        log_context = self.context.copy()
        log_context.update(
            {
                "error_type": self.__class__.__name__,
                "error_message": self.message,
                "user_message": self.get_user_message(),
            }
        )
        if self.error_code:
            log_context["error_code"] = self.error_code
        if self.help_text:
            log_context["help_text"] = self.help_text
        return log_context

    def with_context(self, **additional_context: Any) -> "ListenError":
        """Add additional context to existing error."""
        self.context.update(additional_context)
        return self

    def is_user_error(self) -> bool:
        """Check if this is a user error vs system error."""
        return self.category in (ErrorCategory.CONFIGURATION, ErrorCategory.VALIDATION)


class ConfigurationError(ListenError):
    """Missing or unusable configuration."""

    def __init__(
        self,
        message: str,
        *,
        config_key: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
        user_message: Optional[str] = None,
        help_text: Optional[str] = None,
        error_code: str = "CFG001",
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            component=kwargs.pop("component", "config"),
            severity=kwargs.pop("severity", ErrorSeverity.WARNING),
            category=category or ErrorCategory.CONFIGURATION,
            user_message=user_message or f"Configuration error: {message}",
            help_text=help_text
            or "Pass the value explicitly or set the matching SANITY_* environment variable",
            error_code=error_code,
            **kwargs,
        )
        self.config_key = config_key
        if config_key:
            self.context["config_key"] = config_key


class OptionsValidationError(ConfigurationError):
    """A listen option is missing, unknown or of the wrong type."""

    def __init__(
        self,
        message: str,
        *,
        field: str,
        value: Any = None,
        expected: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message,
            config_key=field,
            category=ErrorCategory.VALIDATION,
            user_message=f"Invalid listen option '{field}': {message}",
            help_text="Check the option names and types accepted by ListenOptions",
            error_code="CFG002",
            **kwargs,
        )
        self.field = field
        self.context.update(
            {"field": field, "invalid_value": repr(value), "expected": expected}
        )


class TransportError(ListenError):
    """Connection failure, read timeout or non-2xx response from the listen endpoint."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        http_status: Optional[int] = None,
        timeout: bool = False,
        **kwargs: Any,
    ) -> None:
        if timeout:
            help_text = "The server sent nothing within the read timeout; raise --timeout or retry"
        elif http_status is not None:
            help_text = "Check the project id, dataset, API version and token"
        else:
            help_text = "Check network connectivity to the Sanity API"
        super().__init__(
            message,
            component=kwargs.pop("component", "transport"),
            category=ErrorCategory.NETWORK,
            user_message=f"Listen connection failed: {message}",
            help_text=help_text,
            error_code="NET001",
            **kwargs,
        )
        self.url = url
        self.http_status = http_status
        self.timeout = timeout
        self.context.update({"url": url, "http_status": http_status, "timeout": timeout})


class FrameParseError(ListenError):
    """A complete frame could not be parsed into an event."""

    def __init__(self, message: str, *, frame: str, **kwargs: Any) -> None:
        super().__init__(
            message,
            component="protocol",
            operation=kwargs.pop("operation", "parse_frame"),
            category=ErrorCategory.PROTOCOL,
            user_message="Received a malformed frame from the listen endpoint",
            error_code="PRS001",
            **kwargs,
        )
        self.frame = frame
        self.context["frame"] = frame[:500] + "..." if len(frame) > 500 else frame


class ChannelEventError(ListenError):
    """The server sent a ``channelError`` or ``disconnect`` event."""

    def __init__(self, event: "Event", **kwargs: Any) -> None:
        super().__init__(
            f"error event {event!r}",
            component="stream",
            category=ErrorCategory.PROTOCOL,
            user_message=f"The listen channel reported '{event.kind}'",
            help_text="The server closed the subscription; open a new stream to continue",
            error_code="EVT001",
            **kwargs,
        )
        self.event = event
        self.context.update({"event_kind": event.kind, "event_id": event.id})


class ReconcileError(ListenError):
    """A mutation could not be attributed to the followed document or its draft."""

    def __init__(
        self, message: str, *, event: "Event", document_id: str, **kwargs: Any
    ) -> None:
        super().__init__(
            message,
            component="reconciler",
            operation="reconcile",
            category=ErrorCategory.PROTOCOL,
            user_message="Received a mutation for an unexpected document",
            error_code="DOC001",
            **kwargs,
        )
        self.event = event
        self.document_id = document_id
        self.context.update({"document_id": document_id, "event_id": event.id})


class CLIErrorHandler:
    """Turns exceptions into a logged entry, a short message and a ``typer.Exit``."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger or LoggerFactory.get_logger("cli")

    def handle_error(self, error: Exception, operation: str = "operation") -> NoReturn:
        """
        Report an error and exit.

        Raises:
            typer.Exit: Always, with code 1
        """
        if isinstance(error, ListenError):
            log = self.logger.warning if error.severity == ErrorSeverity.WARNING else self.logger.error
            log(f"CLI {operation} failed", extra_context=error.get_context_for_logging())
            typer.echo(f"Error: {error.get_user_message()}", err=True)
            if error.help_text:
                typer.echo(f"Hint: {error.help_text}", err=True)
        else:
            self.logger.error(f"CLI {operation} failed", exception=error)
            typer.echo(f"Error: failed to {operation}: {error}", err=True)

        raise typer.Exit(code=1)


cli_error_handler = CLIErrorHandler()
