"""Utility modules for logging and error handling."""

from kube_deploy.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    JobTimeoutError,
    OperationCancelledError,
    AdvisoryFailure,
    ErrorHandler,
    error_handler
)
from kube_deploy.utils.logging import get_logger, setup_logging, LogContext

__all__ = [
    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ConfigurationError',
    'ValidationError',
    'ExecutionError',
    'JobTimeoutError',
    'OperationCancelledError',
    'AdvisoryFailure',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',
]
