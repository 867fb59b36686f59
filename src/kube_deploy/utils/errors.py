"""Error handling framework for deployment runs."""

from typing import Optional, Dict, Any, List, TYPE_CHECKING
from enum import Enum
from dataclasses import dataclass, asdict
from kube_deploy.utils.logging import get_logger

if TYPE_CHECKING:
    from kube_deploy.executor.command import CommandResult

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a deployment run."""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ADVISORY = "advisory"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Run cannot continue
    ERROR = "error"  # Operation failed
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    manifest: Optional[str] = None
    resource_kind: Optional[str] = None
    resource_name: Optional[str] = None
    namespace: Optional[str] = None
    operation: Optional[str] = None
    command: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None

    def describe(self) -> str:
        """Short location string such as ``deployment/api in namespace web``."""
        parts = []
        if self.resource_name:
            parts.append(f"{self.resource_kind or 'resource'}/{self.resource_name}")
        elif self.manifest:
            parts.append(f"manifest {self.manifest}")
        if self.namespace:
            parts.append(f"in namespace {self.namespace}")
        return " ".join(parts)


class DeploymentError(Exception):
    """Base exception for deployment errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = []

        # Error header
        lines.append(f"{self.severity.value.upper()}: {self.message}")

        # Context information
        if self.context.manifest:
            lines.append(f"   Manifest: {self.context.manifest}")
        if self.context.resource_name:
            lines.append(
                f"   Resource: {self.context.resource_kind or 'resource'}/{self.context.resource_name}"
            )
        if self.context.namespace:
            lines.append(f"   Namespace: {self.context.namespace}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        if self.context.command:
            lines.append(f"   Command: {self.context.command}")

        # Original error
        if self.cause:
            lines.append(f"   Cause: {str(self.cause)}")

        # Suggestions
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of the error
        """
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': asdict(self.context),
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigurationError(DeploymentError):
    """Error in run parameters or manifest inputs."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class ValidationError(DeploymentError):
    """Server-side dry run rejected a manifest."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )
        self.result = result


class ExecutionError(DeploymentError):
    """A kubectl invocation failed or produced output that cannot be parsed."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.EXECUTION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )
        self.result = result


class JobTimeoutError(DeploymentError):
    """One or more jobs did not complete within the job timeout."""

    def __init__(
        self,
        message: str,
        timeout_seconds: int,
        job_logs: Optional[Dict[str, str]] = None,
        **kwargs
    ):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )
        self.timeout_seconds = timeout_seconds
        self.job_logs = job_logs or {}

    @property
    def timed_out_jobs(self) -> List[str]:
        return list(self.job_logs)


class OperationCancelledError(DeploymentError):
    """The run was cancelled while an operation was in flight."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class AdvisoryFailure(DeploymentError):
    """Informational command failure, e.g. kubectl diff; logged, never raised."""

    def __init__(self, message: str, result: Optional["CommandResult"] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.ADVISORY,
            severity=ErrorSeverity.WARNING,
            **kwargs
        )
        self.result = result


class ErrorHandler:
    """Converts unexpected exceptions into DeploymentErrors and logs them."""

    def __init__(self):
        """Initialize error handler."""
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        # Handle already-wrapped DeploymentError
        if isinstance(error, DeploymentError):
            return error

        # Executable missing from PATH
        if isinstance(error, FileNotFoundError):
            return ExecutionError(
                message=f"Executable not found: {error.filename or error}",
                context=context,
                cause=error,
                suggestions=[
                    'Install kubectl and make sure it is on the PATH',
                    'Pass the full path of the binary with --kubectl'
                ]
            )

        if isinstance(error, OSError):
            return ExecutionError(
                message=f"Operating system error: {error}",
                context=context,
                cause=error,
                suggestions=['Check file permissions and available disk space']
            )

        if isinstance(error, KeyboardInterrupt):
            return OperationCancelledError(
                message='Run interrupted',
                context=context,
                cause=error
            )

        # Unknown error
        return DeploymentError(
            message=str(error),
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def log_error(self, error: DeploymentError):
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

        # Log full error details at debug level
        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
