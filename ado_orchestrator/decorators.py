"""
Decorators for error handling, retry logic, and request management.

The backoff arithmetic (compute_backoff_delay, is_retryable,
parse_retry_after) and the SDK status extraction (extract_status_code)
are kept as pure functions so they can be tested without any transport
or network mock.
"""

import asyncio
import logging
import re
from functools import wraps
from typing import Callable, FrozenSet, TypeVar, Any, Optional

import requests
from azure.devops.exceptions import AzureDevOpsAuthenticationError, AzureDevOpsServiceError

from .errors import (
    AzureDevOpsError,
    OperationError,
    RateLimitError,
    TimeoutError as ADOTimeoutError,
    TransportError,
    map_status_code_to_error,
)
from .log_sanitizer import sanitize_error, sanitize_log_message
from .validation import ValidationError

# Type variable for generic function signatures
T = TypeVar('T')

logger = logging.getLogger(__name__)

# Only throttling and service-unavailable responses are retried
RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 503})

# Fallback delay when a Retry-After header can't be parsed
DEFAULT_RETRY_AFTER_SECONDS = 60

# Status suffix of AzureDevOpsClientRequestError messages
SDK_STATUS_PATTERN = re.compile(r'returned a (\d{3}) status code')

# Service exception type keys, e.g. "ProjectDoesNotExistWithNameException"
NOT_FOUND_TYPE_MARKERS = ('NotFound', 'DoesNotExist')
PERMISSION_TYPE_MARKERS = ('Unauthorized', 'AccessDenied', 'Permission')


def parse_retry_after(value: Any) -> Optional[int]:
    """
    Parse a Retry-After header value.

    Args:
        value: Header value, seconds as int/str, or an HTTP-date

    Returns:
        Seconds to wait, or None when the header is absent
    """
    if value is None or value == "":
        return None
    try:
        return max(int(value), 0)
    except (ValueError, TypeError):
        # HTTP-date format is not worth parsing; use a conservative default
        logger.warning(f"Could not parse Retry-After header: {value}")
        return DEFAULT_RETRY_AFTER_SECONDS


def is_retryable(error: BaseException) -> bool:
    """Whether an error is a transient failure worth retrying."""
    return (
        isinstance(error, AzureDevOpsError)
        and error.status_code in RETRYABLE_STATUS_CODES
    )


def compute_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0,
    retry_after: Optional[float] = None
) -> float:
    """
    Compute the delay before the next retry.

    Args:
        attempt: Zero-based attempt number that just failed
        base_delay: Initial delay in seconds
        exponential_base: Base for exponential backoff
        max_delay: Upper bound for any delay
        retry_after: Server-provided Retry-After seconds, if any

    Returns:
        Delay in seconds, never above max_delay
    """
    if retry_after:
        return min(float(retry_after), max_delay)
    return min(base_delay * (exponential_base ** attempt), max_delay)


def is_timeout(error: BaseException) -> bool:
    """Whether an exception (or the one it wraps) is a requests timeout."""
    if isinstance(error, requests.Timeout):
        return True
    return isinstance(getattr(error, 'inner_exception', None), requests.Timeout)


def _type_key_status(type_key: Optional[str]) -> Optional[int]:
    if not type_key:
        return None
    if any(marker in type_key for marker in NOT_FOUND_TYPE_MARKERS):
        return 404
    if any(marker in type_key for marker in PERMISSION_TYPE_MARKERS):
        return 403
    return None


def extract_status_code(error: BaseException) -> Optional[int]:
    """
    Best-effort HTTP status of a failed SDK call.

    The azure-devops SDK only reports the status in the message of
    AzureDevOpsClientRequestError ("Operation returned a 503 status
    code."); service errors carry an exception type key instead.

    Returns:
        The status code, or None when it can't be determined
    """
    if isinstance(error, AzureDevOpsAuthenticationError):
        return 401

    status_code = getattr(error, 'status_code', None)
    if status_code:
        return status_code

    response = getattr(error, 'response', None)
    if response is not None and getattr(response, 'status_code', None):
        return response.status_code

    if isinstance(error, AzureDevOpsServiceError):
        return _type_key_status(getattr(error, 'type_key', None))

    match = SDK_STATUS_PATTERN.search(str(error))
    if match:
        return int(match.group(1))
    return None


def handle_ado_error(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator mapping SDK and network failures onto the error taxonomy.

    Errors already in the taxonomy pass through. Requests timeouts become
    TimeoutError, failures with a known status code are mapped by status,
    and anything else becomes a TransportError with the original message.

    Example:
        @handle_ado_error
        async def _call(self, func, *args, **kwargs):
            ...
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except AzureDevOpsError:
            raise
        except Exception as e:
            message = sanitize_log_message(getattr(e, 'message', None) or str(e))

            if is_timeout(e):
                error = ADOTimeoutError(original_error=e)
                logger.error(f"Azure DevOps request timed out in {func.__name__}")
                raise error from e

            status_code = extract_status_code(e)
            if status_code:
                retry_after = None
                response = getattr(e, 'response', None)
                if status_code == 429 and response is not None:
                    headers = getattr(response, 'headers', None) or {}
                    retry_after = parse_retry_after(
                        headers.get('Retry-After') or headers.get('retry-after')
                    )

                error = map_status_code_to_error(
                    status_code,
                    message=message,
                    original_error=e,
                    retry_after=retry_after
                )
                logger.error(f"Azure DevOps API error in {func.__name__}: {sanitize_error(error)}")
                raise error from e

            logger.error(
                f"Unexpected error in {func.__name__}: {sanitize_error(e)}",
                exc_info=True
            )
            raise TransportError(message=message, original_error=e) from e

    return wrapper


def retry_on_transient_error(
    max_retries: int = 3,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to retry operations on transient errors with exponential backoff.

    Automatically retries on:
    - Rate limit errors (429)
    - Service unavailable (503)

    Every other error propagates on its first occurrence.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        max_delay: Maximum delay between retries (default: 60.0)

    Example:
        @retry_on_transient_error(max_retries=3, base_delay=1.0)
        @handle_ado_error
        async def _call(self, func, *args, **kwargs):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except AzureDevOpsError as e:
                    if not is_retryable(e):
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}"
                        )
                        raise

                    delay = compute_backoff_delay(
                        attempt,
                        base_delay=base_delay,
                        exponential_base=exponential_base,
                        max_delay=max_delay,
                        retry_after=e.retry_after if isinstance(e, RateLimitError) else None
                    )

                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt + 1}/{max_retries}): "
                        f"{e}. Retrying in {delay:.1f}s..."
                    )

                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper
    return decorator


def wrap_operation_errors(prefix: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator giving a public operation its own failure message.

    Any failure other than a ValidationError is re-raised as an
    OperationError whose message reads "<prefix>: <cause>".

    Args:
        prefix: Operation-specific prefix, e.g. "Failed to update work item"

    Example:
        @wrap_operation_errors("Failed to get teams")
        async def get_teams(self, project: str):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ValidationError:
                raise
            except Exception as e:
                error = OperationError(prefix, e)
                logger.error(sanitize_error(error))
                raise error from e

        return wrapper
    return decorator


def log_execution(
    level: int = logging.INFO,
    log_args: bool = False,
    log_result: bool = False
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to log function execution.

    Args:
        level: Logging level (default: INFO)
        log_args: Whether to log function arguments (default: False)
        log_result: Whether to log function result (default: False)

    Example:
        @log_execution(level=logging.DEBUG, log_args=True)
        async def bulk_update(self, story_id: int, ...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            func_name = func.__name__

            if log_args:
                logger.log(level, f"Calling {func_name} with args={args[1:]}, kwargs={kwargs}")
            else:
                logger.log(level, f"Calling {func_name}")

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.log(level, f"{func_name} failed with error: {sanitize_error(e)}")
                raise

            if log_result:
                logger.log(level, f"{func_name} completed with result: {result}")
            else:
                logger.log(level, f"{func_name} completed successfully")

            return result

        return wrapper
    return decorator


class PerformanceMonitor:
    """
    Async context manager for monitoring operation performance.

    Tracks execution time and logs slow operations.
    """

    def __init__(self, operation_name: str, warn_threshold_ms: float = 1000.0):
        """
        Initialize performance monitor.

        Args:
            operation_name: Name of the operation being monitored
            warn_threshold_ms: Threshold in milliseconds to log warnings (default: 1000)
        """
        self.operation_name = operation_name
        self.warn_threshold_ms = warn_threshold_ms
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

    @property
    def duration_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    async def __aenter__(self):
        self.start_time = asyncio.get_running_loop().time()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.end_time = asyncio.get_running_loop().time()
        duration_ms = self.duration_ms

        if duration_ms > self.warn_threshold_ms:
            logger.warning(
                f"Slow operation: {self.operation_name} took {duration_ms:.1f}ms "
                f"(threshold: {self.warn_threshold_ms:.1f}ms)"
            )
        else:
            logger.debug(
                f"Operation {self.operation_name} completed in {duration_ms:.1f}ms"
            )
