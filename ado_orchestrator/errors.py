"""
Custom exception classes for the Azure DevOps orchestration layer.

Provides structured error handling with helpful messages for common
Azure DevOps API errors, plus the operation-level wrapper every public
service method raises.
"""

from typing import Optional, Any


class AzureDevOpsError(Exception):
    """
    Base exception for Azure DevOps errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code from the API response
        original_error: The original exception that was caught
        details: Additional error details
    """

    def __init__(
        self,
        message: str = "Azure DevOps API error",
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
        details: Optional[Any] = None
    ):
        self.message = message
        self.status_code = status_code
        self.original_error = original_error
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        """String representation of the error."""
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message

    def to_dict(self) -> dict:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error': self.__class__.__name__,
            'status_code': self.status_code,
            'message': self.message,
            'details': str(self.details) if self.details else None
        }


class TransportError(AzureDevOpsError):
    """
    Raised for network or HTTP failures talking to Azure DevOps.

    Carries the upstream status code when one is available.
    """


class NotFoundError(TransportError):
    """
    Raised when a resource is not found (HTTP 404).

    This can occur when:
    - The project or team name doesn't exist
    - The work item ID doesn't exist or was deleted
    - User doesn't have permission to view the resource
    """

    def __init__(
        self,
        message: Optional[str] = None,
        work_item_id: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            if work_item_id:
                message = f"Work item {work_item_id} not found. Please verify it exists and you have access."
            else:
                message = "Resource not found. Please verify it exists and you have access."

        super().__init__(
            message=message,
            status_code=404,
            original_error=original_error,
            details={'work_item_id': work_item_id} if work_item_id else None
        )


class AuthenticationError(TransportError):
    """
    Raised when authentication fails (HTTP 401).

    This can occur when:
    - Token has expired
    - Token is invalid
    - Token is missing required scopes
    """

    def __init__(
        self,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message or "Authentication failed. Your token may have expired. Please refresh credentials.",
            status_code=401,
            original_error=original_error
        )


class PermissionDeniedError(TransportError):
    """
    Raised when the credential lacks permission for an operation (HTTP 403).

    This can occur when:
    - Token lacks required scopes (e.g., vso.work_write, vso.test_write)
    - User doesn't have project permissions
    - Area path restrictions apply
    """

    def __init__(
        self,
        message: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            if operation:
                message = f"Permission denied for {operation}. Please check your project permissions."
            else:
                message = "Permission denied. Please check your credentials and project permissions."

        super().__init__(
            message=message,
            status_code=403,
            original_error=original_error,
            details={'operation': operation} if operation else None
        )


class RateLimitError(TransportError):
    """
    Raised when API rate limit is exceeded (HTTP 429).

    Retried transparently by the transport; only surfaced once retries
    are exhausted.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            if retry_after:
                message = f"Rate limit exceeded. Please retry after {retry_after} seconds."
            else:
                message = "Rate limit exceeded. Please retry after a brief delay."

        super().__init__(
            message=message,
            status_code=429,
            original_error=original_error,
            details={'retry_after': retry_after}
        )
        self.retry_after = retry_after


class TransientError(TransportError):
    """
    Raised when the service is temporarily unavailable (HTTP 503).

    Retried transparently by the transport.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: int = 503,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message or (
                f"Azure DevOps service temporarily unavailable (HTTP {status_code}). "
                "This error is transient and will be retried automatically."
            ),
            status_code=status_code,
            original_error=original_error
        )


class BadRequestError(TransportError):
    """
    Raised for malformed requests (HTTP 400).

    This can occur when:
    - Invalid field values
    - Invalid WIQL syntax
    - Invalid work item type or suite type
    """

    def __init__(
        self,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None,
        details: Optional[Any] = None
    ):
        super().__init__(
            message=message or "Bad request. Please check your input values.",
            status_code=400,
            original_error=original_error,
            details=details
        )


class ConflictError(TransportError):
    """
    Raised when there's a conflict with existing data (HTTP 409).
    """

    def __init__(
        self,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message or "Conflict detected. The resource has been modified by another user.",
            status_code=409,
            original_error=original_error
        )


class TimeoutError(TransportError):
    """
    Raised when a request times out (HTTP 408 or client-side timeout).
    """

    def __init__(
        self,
        message: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        original_error: Optional[Exception] = None
    ):
        if not message:
            if timeout_seconds:
                message = f"Request timeout after {timeout_seconds} seconds."
            else:
                message = "Request timed out."

        super().__init__(
            message=message,
            status_code=408,
            original_error=original_error,
            details={'timeout_seconds': timeout_seconds} if timeout_seconds else None
        )


class OperationError(AzureDevOpsError):
    """
    Raised by public service methods when an operation fails.

    The message is always "<prefix>: <cause>", so callers can tell which
    operation failed without inspecting a stack trace.

    Attributes:
        prefix: Operation-specific message prefix (e.g. "Failed to get teams")
        cause: The underlying exception
    """

    def __init__(self, prefix: str, cause: Exception):
        self.prefix = prefix
        self.cause = cause
        super().__init__(
            message=f"{prefix}: {describe_error(cause)}",
            status_code=getattr(cause, 'status_code', None),
            original_error=cause
        )

    def __str__(self) -> str:
        return self.message


def describe_error(error: Exception) -> str:
    """Message text of an error, without the status-code decoration."""
    if isinstance(error, AzureDevOpsError):
        return error.message
    return str(error)


def map_status_code_to_error(
    status_code: int,
    message: Optional[str] = None,
    original_error: Optional[Exception] = None,
    retry_after: Optional[int] = None
) -> TransportError:
    """
    Map HTTP status code to appropriate error class.

    Args:
        status_code: HTTP status code from Azure DevOps API
        message: Server-provided error message, if any
        original_error: The original exception
        retry_after: Parsed Retry-After header (429 only)

    Returns:
        Appropriate TransportError subclass instance
    """
    if status_code == 400:
        return BadRequestError(message=message, original_error=original_error)
    elif status_code == 401:
        return AuthenticationError(message=message, original_error=original_error)
    elif status_code == 403:
        return PermissionDeniedError(message=message, original_error=original_error)
    elif status_code == 404:
        return NotFoundError(message=message, original_error=original_error)
    elif status_code == 408:
        return TimeoutError(message=message, original_error=original_error)
    elif status_code == 409:
        return ConflictError(message=message, original_error=original_error)
    elif status_code == 429:
        return RateLimitError(message=message, retry_after=retry_after, original_error=original_error)
    elif status_code == 503:
        return TransientError(message=message, original_error=original_error)
    else:
        return TransportError(
            message=message or f"Azure DevOps API error: HTTP {status_code}",
            status_code=status_code,
            original_error=original_error
        )
