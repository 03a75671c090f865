"""Error handling framework for stack orchestration."""

import subprocess
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional, Dict, Any, List

import requests

from astra_stack.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Which part of a run an error came from."""
    CONFIGURATION = "configuration"
    DEPLOY = "deploy"
    HEALTH = "health"
    STOP = "stop"
    PREFLIGHT = "preflight"
    NETWORK = "network"
    STATE = "state"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Run cannot continue
    ERROR = "error"  # Component failed, others may still come up
    WARNING = "warning"
    INFO = "info"


@dataclass
class ErrorContext:
    """Where an error happened: component, backend, operation and process details."""
    component: Optional[str] = None
    backend: Optional[str] = None
    operation: Optional[str] = None
    url: Optional[str] = None
    exit_code: Optional[int] = None
    additional_info: Optional[Dict[str, Any]] = None


class StackError(Exception):
    """Base exception for stack orchestration errors.

    Subclasses set ``category`` and ``severity`` as class attributes;
    either can be overridden per instance.

    Args:
        message: Human-readable error message
        context: Component, operation and process details
        cause: Original exception, if any
        suggestions: Steps the user can take to fix the problem
    """

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None,
        category: Optional[ErrorCategory] = None,
        severity: Optional[ErrorSeverity] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = list(suggestions or [])
        if category is not None:
            self.category = category
        if severity is not None:
            self.severity = severity

    def to_user_message(self) -> str:
        """Render the error with its component, cause and numbered suggestions."""
        details = [
            ("Component", self.context.component),
            ("Operation", self.context.operation),
            ("Cause", self.cause),
        ]
        lines = [f"{self.severity.value.upper()}: {self.message}"]
        lines.extend(f"   {label}: {value}" for label, value in details if value)

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            lines.extend(f"   {n}. {text}" for n, text in enumerate(self.suggestions, 1))

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used for debug logging."""
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': asdict(self.context),
            'cause': repr(self.cause) if self.cause else None,
            'suggestions': self.suggestions,
        }


class ConfigurationError(StackError):
    """Invalid component registry, settings or execution plan.

    ``errors`` holds pydantic-style error dicts (``loc``, ``msg``) when the
    failure came from model validation.
    """

    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.CRITICAL

    def __init__(self, message: str, errors: Optional[List[Dict]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = errors or []

    def __str__(self) -> str:
        lines = [self.message]
        if self.errors:
            lines.append("")
        for error in self.errors:
            location = " -> ".join(str(part) for part in error.get("loc", ()))
            lines.append(f"  - {location}: {error.get('msg', 'Unknown error')}")
        return "\n".join(lines)


class DeployFailedError(StackError):
    """External deploy procedure reported failure."""
    category = ErrorCategory.DEPLOY


class ProbeTimedOutError(StackError):
    """Health endpoint never answered within the timeout."""
    category = ErrorCategory.HEALTH


class StopFailedError(StackError):
    """External stop procedure reported failure."""
    category = ErrorCategory.STOP
    severity = ErrorSeverity.WARNING


class PreflightError(StackError):
    """Required backend tooling is not available."""
    category = ErrorCategory.PREFLIGHT
    severity = ErrorSeverity.CRITICAL


class OutcomeTransitionError(StackError):
    """Illegal change of a component's deployment outcome."""
    category = ErrorCategory.STATE
    severity = ErrorSeverity.CRITICAL


class ErrorHandler:
    """Converts process and network failures into stack errors."""

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> StackError:
        """Handle an exception and convert to StackError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            StackError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, StackError):
            return error

        if isinstance(error, subprocess.CalledProcessError):
            context.exit_code = error.returncode
            return DeployFailedError(
                message=f"Command exited with status {error.returncode}",
                context=context,
                cause=error,
                suggestions=[
                    f'Inspect the component log for {context.component or "the component"}',
                    'Run the component script by hand to reproduce the failure'
                ]
            )

        if isinstance(error, subprocess.TimeoutExpired):
            return DeployFailedError(
                message=f"Command timed out after {error.timeout}s",
                context=context,
                cause=error,
                suggestions=['Check whether the backend is reachable and responsive']
            )

        if isinstance(error, FileNotFoundError):
            return DeployFailedError(
                message=f"Executable or script not found: {error.filename or error}",
                context=context,
                cause=error,
                suggestions=[
                    'Check that ASTRA_SCRIPTS_DIR points at the component scripts',
                    'Verify bash is installed and on PATH'
                ]
            )

        if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                              ConnectionError, TimeoutError)):
            return StackError(
                message=f'Network error: {str(error)}',
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.ERROR,
                context=context,
                cause=error,
                suggestions=[
                    'Check that the component is listening on its declared port',
                    'Verify no firewall blocks local connections'
                ]
            )

        return StackError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def log_error(self, error: StackError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
