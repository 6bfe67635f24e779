"""Custom exception classes for gcsbench.

This module provides specific exception types so the CLI entry points can
report what failed and where.
"""

from typing import Optional, Dict, Any


class GcsBenchError(Exception):
    """Base exception for all gcsbench errors."""

    error_code: str = "ERR000"  # Override in subclasses

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, error_code: Optional[str] = None):
        """
        Initialize gcsbench exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context
            error_code: Optional error code override
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        """Return string representation with error code and details."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class ConfigValidationError(GcsBenchError):
    """Raised when settings validation fails.

    Examples:
        - Unknown transport mode
        - Negative delays or non-positive sizes
        - Unreadable or malformed settings file
    """

    error_code = "CFG001"

    def __init__(self, message: str, config_path: Optional[str] = None, key: Optional[str] = None):
        """
        Initialize configuration validation error.

        Args:
            message: Description of validation failure
            config_path: Path to settings file that failed validation
            key: Specific setting that caused the error
        """
        details = {}
        if config_path:
            details['config_path'] = config_path
        if key:
            details['config_key'] = key
        super().__init__(message, details)


class ClientConstructionError(GcsBenchError):
    """Raised when a storage client cannot be built.

    Examples:
        - No application default credentials
        - Transport construction failures
    """

    error_code = "CLI001"

    def __init__(
        self,
        message: str,
        api: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize client construction error.

        Args:
            message: Description of the failure
            api: Transport mode being constructed (http1, http2, grpc-dp, control)
            original_error: Original exception that caused this error
        """
        details = {}
        if api:
            details['api'] = api
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


class TransferError(GcsBenchError):
    """Raised when an object transfer fails.

    Examples:
        - Write stream errors during upload
        - Ranged read ending before the requested byte count
        - Listing failures
    """

    error_code = "XFR001"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        bucket: Optional[str] = None,
        object_name: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize transfer error.

        Args:
            message: Description of transfer failure
            operation: Operation that failed (upload, download, list)
            bucket: Bucket involved in the operation
            object_name: Object involved in the operation
            original_error: Original exception that caused this error
        """
        details = {}
        if operation:
            details['operation'] = operation
        if bucket:
            details['bucket'] = bucket
        if object_name:
            details['object_name'] = object_name
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


class LayoutLookupError(GcsBenchError):
    """Raised when the storage layout of a bucket cannot be fetched."""

    error_code = "LAY001"

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if name:
            details['name'] = name
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error


class TracingSetupError(GcsBenchError):
    """Raised when the trace exporter or provider cannot be created."""

    error_code = "TRC001"

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details['original_error'] = str(original_error)
            details['error_type'] = type(original_error).__name__

        super().__init__(message, details)
        self.original_error = original_error
