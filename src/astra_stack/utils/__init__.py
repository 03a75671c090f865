"""Utility modules for logging and error handling."""

from astra_stack.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    StackError,
    ConfigurationError,
    DeployFailedError,
    ProbeTimedOutError,
    StopFailedError,
    PreflightError,
    OutcomeTransitionError,
    ErrorHandler,
    error_handler
)
from astra_stack.utils.logging import LogContext, get_logger, setup_logging

__all__ = [
    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'StackError',
    'ConfigurationError',
    'DeployFailedError',
    'ProbeTimedOutError',
    'StopFailedError',
    'PreflightError',
    'OutcomeTransitionError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
