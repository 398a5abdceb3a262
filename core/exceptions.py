"""
Custom exceptions for the sync pipeline with structured error context.

Each exception carries a context dictionary so failures can be logged and
persisted onto a sync run without losing the details needed to locate the
offending request or payload.

Exception Hierarchy:
    SyncException (base)
    ├── ConfigurationError
    ├── APIClientError
    │   ├── RateLimitError        (retryable)
    │   ├── ServerError           (retryable)
    │   ├── NetworkError          (retryable)
    │   └── ClientRequestError    (non-retryable)
    │       └── AuthenticationError
    ├── IngestionError
    │   ├── ResourceFetchError
    │   └── UnknownResourceError
    ├── InvalidStateTransition
    ├── SyncCancelledError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (endpoint, resource, run id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors the API client retries with backoff.

    Rate limiting (HTTP 429), server errors (HTTP 5xx) and
    connection-level failures.
    """
    pass


class NonRetryableError(SyncException):
    """Mixin for errors that fail the call immediately (HTTP 4xx other than 429)."""
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(SyncException):
    """Raised when a connection is missing credentials or a database name."""
    pass


# ============================================================================
# API Client Errors
# ============================================================================

class APIClientError(SyncException):
    """
    Base exception for reporting API failures.

    Context should include:
        - endpoint: The endpoint or page URL that failed
        - status_code: HTTP status code (if applicable)
        - attempt: Attempt number when the error was raised
    """
    pass


class RateLimitError(RetryableError, APIClientError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class ServerError(RetryableError, APIClientError):
    """Server errors (HTTP 5xx) that should be retried with backoff."""
    pass


class NetworkError(RetryableError, APIClientError):
    """Connection-level failures (timeouts, refused connections)."""
    pass


class ClientRequestError(NonRetryableError, APIClientError):
    """
    HTTP 4xx responses other than 429.

    Attributes:
        status_code: HTTP status returned by the API
        response_body: Raw response body (truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str = "",
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        self.response_body = response_body
        self.context["status_code"] = status_code


class AuthenticationError(ClientRequestError):
    """Authentication failures (HTTP 401, 403)."""
    pass


# ============================================================================
# Ingestion Errors
# ============================================================================

class IngestionError(SyncException):
    """Base exception for run-level ingestion failures."""
    pass


class ResourceFetchError(IngestionError):
    """
    One or more resource types could not be fetched.

    Context should include:
        - failed_resources: Mapping of resource type to error message
    """
    pass


class UnknownResourceError(IngestionError):
    """Raised when a resource type string does not name a known resource."""
    pass


# ============================================================================
# Lifecycle Errors
# ============================================================================

class InvalidStateTransition(SyncException):
    """Raised when a sync run is moved out of a state it cannot leave."""
    pass


class SyncCancelledError(SyncException):
    """Raised when a running sync observes its cancellation token."""
    pass
