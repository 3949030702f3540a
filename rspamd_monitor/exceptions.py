"""
Rspamd Monitor - Exceptions.

============================================================
CUSTOM EXCEPTIONS
============================================================

All exceptions for the monitor:
- MonitorError: Base exception
- DivisionByZeroError: Rate update with a zero elapsed interval
- MissingFieldError: Required field absent from a snapshot
- AggregationError: Snapshot could not be applied
- FetchError: Endpoint could not be polled or decoded
- PollerFatalError: Too many consecutive failed cycles
- ConfigurationError: Invalid configuration

============================================================
FAILURE POLICY
============================================================

The derivation core never retries and never swallows
errors. It raises and returns control; the polling loop
logs each failed cycle and gives up after a bounded number
of consecutive failures.

============================================================
"""

from typing import Any, Dict, Optional


class MonitorError(Exception):
    """
    Base exception for monitor errors.

    All monitor exceptions inherit from this class.
    """

    def __init__(
        self,
        message: str,
        metric: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            metric: Key of the affected metric
            details: Additional error details
        """
        self.message = message
        self.metric = metric
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message."""
        if self.metric:
            return f"[{self.metric}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "metric": self.metric,
            "details": self.details,
        }


class DivisionByZeroError(MonitorError):
    """
    Raised when a rate is requested over a zero-length interval.

    Cannot happen with a positive poll interval.
    """

    def __init__(self, metric: Optional[str] = None) -> None:
        super().__init__(
            message="division by zero: elapsed interval is 0 ms",
            metric=metric,
        )


class MissingFieldError(MonitorError):
    """
    Raised when a required field is absent from a snapshot.

    Indicates an incompatible or malformed upstream response.
    """

    def __init__(self, field_name: str) -> None:
        """
        Initialize exception.

        Args:
            field_name: Name of the missing field
        """
        super().__init__(
            message=f"missing {field_name}",
            details={"field": field_name},
        )
        self.field_name = field_name


class AggregationError(MonitorError):
    """
    Raised when a snapshot cannot be applied to the series.

    Wraps the first failure; metrics after it are not updated.
    """

    def __init__(
        self,
        reason: str,
        metric: Optional[str] = None,
        original_exception: Optional[Exception] = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            reason: Why aggregation failed
            metric: Metric being updated when it failed
            original_exception: The underlying exception
        """
        details: Dict[str, Any] = {"reason": reason}
        if original_exception:
            details["original_exception"] = str(original_exception)
            details["exception_type"] = type(original_exception).__name__

        super().__init__(
            message=f"Aggregation failed: {reason}",
            metric=metric,
            details=details,
        )
        self.original_exception = original_exception


class FetchError(MonitorError):
    """Error while polling or decoding the statistics endpoint."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        original_exception: Optional[Exception] = None,
    ) -> None:
        details: Dict[str, Any] = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        if original_exception:
            details["original_exception"] = str(original_exception)

        super().__init__(message=message, details=details)
        self.url = url
        self.status_code = status_code
        self.original_exception = original_exception


class PollerFatalError(MonitorError):
    """
    Raised when the polling loop exceeds its consecutive failure budget.

    The process is expected to exit with a failure status.
    """

    def __init__(
        self,
        consecutive_failures: int,
        last_error: Optional[Exception] = None,
    ) -> None:
        message = f"giving up after {consecutive_failures} consecutive failures"
        if last_error:
            message = f"{message}: {last_error}"
        details: Dict[str, Any] = {"consecutive_failures": consecutive_failures}
        if last_error:
            details["last_error"] = str(last_error)

        super().__init__(message=message, details=details)
        self.consecutive_failures = consecutive_failures
        self.last_error = last_error


class ConfigurationError(MonitorError):
    """
    Raised when configuration is invalid.

    Should be caught at startup.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if actual_value:
            details["actual"] = actual_value

        super().__init__(message=message, details=details)
