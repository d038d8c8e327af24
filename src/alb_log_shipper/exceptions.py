# src/alb_log_shipper/exceptions.py

"""
Shared custom exceptions for the ALB Log Shipper service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- LogShipperError (base)
  - RetryableError (can be retried)
    - S3ThrottlingError
    - S3TimeoutError
  - NonRetryableError (should not be retried)
    - ConfigurationError
      - InvalidFieldSelectionError
    - ValidationError
      - InvalidS3EventError
      - InvalidS3URLError
      - InvalidFieldIndexError
    - S3AccessDeniedError
    - S3ObjectNotFoundError
  - S3Error (base for all S3 failures)
  - ProcessingError
    - RecordFormatError
      - TimestampParseError
    - StreamError
      - DecompressionError
  - LogSinkError
  - ObjectProcessingError
"""

from typing import Any, Dict, Optional


class LogShipperError(Exception):
    """Base exception for all ALB Log Shipper errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}  # Copy context to prevent mutation
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "error_message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(LogShipperError):
    """Base class for errors that can be retried."""

    pass


class NonRetryableError(LogShipperError):
    """Base class for errors that should not be retried."""

    pass


# === Configuration Errors ===


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        super().__init__(message, **kwargs)


class InvalidFieldSelectionError(ConfigurationError):
    """Raised when the configured field list names an unknown column."""

    def __init__(self, field_name: str, **kwargs):
        message = f"invalid field name '{field_name}' provided"
        context = {"field_name": field_name}
        super().__init__(
            message, error_code="INVALID_FIELD_NAME", context=context, **kwargs
        )
        self.field_name = field_name


# === Validation Errors ===


class ValidationError(NonRetryableError):
    """Base class for validation errors."""

    pass


class InvalidS3EventError(ValidationError):
    """Raised when S3 event structure is invalid."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "INVALID_S3_EVENT"
        super().__init__(message, **kwargs)


class InvalidS3URLError(ValidationError):
    """Raised when an s3:// URL cannot be split into bucket and prefix."""

    def __init__(self, url: str, reason: str, **kwargs):
        message = f"invalid S3 URL, {reason}"
        context = {"url": url}
        super().__init__(message, error_code="INVALID_S3_URL", context=context, **kwargs)


class InvalidFieldIndexError(ValidationError):
    """Raised when a column index falls outside the access-log schema."""

    def __init__(self, index: int, **kwargs):
        message = f"invalid field index {index}"
        context = {"index": index}
        super().__init__(
            message, error_code="INVALID_FIELD_INDEX", context=context, **kwargs
        )


# === S3-Related Errors ===


class S3Error(LogShipperError):
    """Base class for S3-related errors."""

    pass


class S3ObjectNotFoundError(S3Error, NonRetryableError):
    """Raised when a requested S3 object does not exist."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"S3 object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="S3_OBJECT_NOT_FOUND", context=context, **kwargs
        )


class S3AccessDeniedError(S3Error, NonRetryableError):
    """Raised when access is denied to an S3 object."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to S3 object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        super().__init__(
            message, error_code="S3_ACCESS_DENIED", context=context, **kwargs
        )


class S3ThrottlingError(S3Error, RetryableError):
    """Raised when S3 operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"operation": operation})
        kwargs.setdefault("error_code", "S3_THROTTLING")
        super().__init__(message, context=context, **kwargs)


class S3TimeoutError(S3Error, RetryableError):
    """Raised when S3 operations timeout or the endpoint is unreachable."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation timed out: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        context.update({"operation": operation})
        kwargs.setdefault("error_code", "S3_TIMEOUT")
        super().__init__(message, context=context, **kwargs)


# === Processing Errors ===


class ProcessingError(LogShipperError):
    """Base class for errors raised while turning an object into log events."""

    pass


class RecordFormatError(ProcessingError):
    """Raised when an access-log line does not match the expected layout."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "INVALID_LOG_FORMAT")
        super().__init__(message, **kwargs)


class TimestampParseError(RecordFormatError):
    """Raised when the time column is not a valid RFC 3339 timestamp."""

    def __init__(self, value: str, cause: str, **kwargs):
        message = f"error parsing timestamp: {cause}"
        context = {"value": value}
        super().__init__(
            message, error_code="INVALID_TIMESTAMP", context=context, **kwargs
        )


class StreamError(ProcessingError):
    """Raised on the reading side of a pipe whose writer failed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "STREAM_ERROR")
        super().__init__(message, **kwargs)


class DecompressionError(StreamError):
    """Raised when the compressed object body cannot be inflated."""

    def __init__(self, reason: str, **kwargs):
        message = f"Decompression failed: {reason}"
        context = {"reason": reason}
        super().__init__(
            message, error_code="DECOMPRESSION_FAILED", context=context, **kwargs
        )


# === Sink Errors ===


class LogSinkError(LogShipperError):
    """Raised when CloudWatch Logs rejects or fails a request."""

    def __init__(self, operation: str, reason: str, **kwargs):
        message = f"CloudWatch Logs {operation} failed: {reason}"
        context = {"operation": operation}
        if "context" in kwargs:
            context.update(kwargs.pop("context"))
        kwargs.setdefault("error_code", "LOG_SINK_ERROR")
        super().__init__(message, context=context, **kwargs)


# === Fan-out Errors ===


class ObjectProcessingError(LogShipperError):
    """Raised by the scheduler for the first object that failed to process."""

    def __init__(self, bucket: str, key: str, reason: str, **kwargs):
        message = f"error processing logs for s3://{bucket}/{key}: {reason}"
        context = {"bucket": bucket, "key": key}
        super().__init__(
            message, error_code="OBJECT_PROCESSING_FAILED", context=context, **kwargs
        )


# === Utility Functions ===


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, LogShipperError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "error_message": str(error),
            "retryable": False,  # Unknown errors default to non-retryable
        }
