"""
Unit tests for decorators module.

Tests backoff arithmetic, retry logic and error handling decorators.
"""

import asyncio
import logging
from types import SimpleNamespace

import pytest
import requests
from unittest.mock import AsyncMock, patch
from azure.devops.exceptions import (
    AzureDevOpsAuthenticationError,
    AzureDevOpsClientRequestError,
    AzureDevOpsServiceError,
)
from msrest.exceptions import ClientRequestError

from ado_orchestrator.decorators import (
    DEFAULT_RETRY_AFTER_SECONDS,
    PerformanceMonitor,
    compute_backoff_delay,
    extract_status_code,
    handle_ado_error,
    is_retryable,
    is_timeout,
    log_execution,
    parse_retry_after,
    retry_on_transient_error,
    wrap_operation_errors,
)
from ado_orchestrator.errors import (
    BadRequestError,
    NotFoundError,
    OperationError,
    RateLimitError,
    TransientError,
    TransportError,
)
from ado_orchestrator.validation import ValidationError


class TestBackoffHelpers:
    """Test the pure backoff helpers."""

    def test_exponential_growth(self):
        """Test delays double per attempt."""
        delays = [compute_backoff_delay(a, base_delay=1.0) for a in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        assert compute_backoff_delay(10, base_delay=1.0, max_delay=60.0) == 60.0

    def test_retry_after_honored(self):
        """Test server Retry-After replaces the computed delay."""
        assert compute_backoff_delay(0, retry_after=7) == 7.0

    def test_retry_after_capped(self):
        assert compute_backoff_delay(0, max_delay=30.0, retry_after=120) == 30.0

    def test_is_retryable(self):
        """Test only 429 and 503 are retryable."""
        assert is_retryable(RateLimitError())
        assert is_retryable(TransientError())
        assert not is_retryable(NotFoundError())
        assert not is_retryable(TransportError("x", status_code=500))
        assert not is_retryable(ValueError("x"))

    def test_parse_retry_after(self):
        assert parse_retry_after("15") == 15
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("-3") == 0

    def test_parse_retry_after_http_date(self):
        """Test unparseable values fall back to the default."""
        value = parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT")
        assert value == DEFAULT_RETRY_AFTER_SECONDS


class TestRetryDecorator:
    """Test retry_on_transient_error decorator."""

    @pytest.mark.asyncio
    async def test_retry_successful_first_attempt(self):
        """Test that successful calls don't retry."""
        call_count = 0

        @retry_on_transient_error(max_retries=3)
        async def successful_function():
            nonlocal call_count
            call_count += 1
            return "success"

        assert await successful_function() == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_transient_error_succeeds(self):
        """Test that transient errors are retried and eventually succeed."""
        call_count = 0

        @retry_on_transient_error(max_retries=3, base_delay=0.01)
        async def flaky_function():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TransientError()
            return "success"

        assert await flaky_function() == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_retry_exhausted(self):
        """Test that retries are exhausted and error is raised."""
        call_count = 0

        @retry_on_transient_error(max_retries=2, base_delay=0.01)
        async def always_throttled():
            nonlocal call_count
            call_count += 1
            raise RateLimitError()

        with pytest.raises(RateLimitError):
            await always_throttled()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_propagates_immediately(self):
        """Test that other errors are not retried."""
        call_count = 0

        @retry_on_transient_error(max_retries=3, base_delay=0.01)
        async def bad_request():
            nonlocal call_count
            call_count += 1
            raise BadRequestError("bad field")

        with pytest.raises(BadRequestError):
            await bad_request()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_sleeps_retry_after(self):
        """Test the Retry-After value drives the sleep."""
        attempts = []

        @retry_on_transient_error(max_retries=1, base_delay=1.0, max_delay=60.0)
        async def throttled_once():
            attempts.append(1)
            if len(attempts) == 1:
                raise RateLimitError(retry_after=5)
            return "ok"

        with patch("ado_orchestrator.decorators.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await throttled_once() == "ok"
        sleep.assert_awaited_once_with(5.0)


class TestExtractStatusCode:
    """Test status extraction from SDK exceptions."""

    def test_client_request_error_message(self):
        error = AzureDevOpsClientRequestError("Operation returned a 503 status code.")
        assert extract_status_code(error) == 503

    def test_authentication_error(self):
        assert extract_status_code(AzureDevOpsAuthenticationError("expired")) == 401

    def test_service_error_type_keys(self):
        def service_error(type_key):
            return AzureDevOpsServiceError(SimpleNamespace(
                message="m", inner_exception=None, exception_id=None, type_name=None,
                type_key=type_key, error_code=0, event_id=0, custom_properties=None,
            ))

        assert extract_status_code(service_error("WorkItemDoesNotExistException")) == 404
        assert extract_status_code(service_error("TestPlanNotFoundException")) == 404
        assert extract_status_code(service_error("UnauthorizedRequestException")) == 403
        assert extract_status_code(service_error("RuleValidationException")) is None

    def test_unknown(self):
        assert extract_status_code(ValueError("no status here")) is None

    def test_is_timeout(self):
        assert is_timeout(requests.Timeout())
        assert is_timeout(ClientRequestError("x", inner_exception=requests.ReadTimeout()))
        assert not is_timeout(ClientRequestError("x"))


class TestHandleAdoError:
    """Test handle_ado_error decorator."""

    @pytest.mark.asyncio
    async def test_taxonomy_errors_pass_through(self):
        @handle_ado_error
        async def not_found():
            raise NotFoundError("gone")

        with pytest.raises(NotFoundError):
            await not_found()

    @pytest.mark.asyncio
    async def test_exception_with_response_mapped(self):
        """Test exceptions carrying an HTTP response are mapped by status."""
        class FakeResponse:
            status_code = 429
            headers = {"Retry-After": "9"}

        class HttpFailure(Exception):
            response = FakeResponse()

        @handle_ado_error
        async def throttled():
            raise HttpFailure("too many")

        with pytest.raises(RateLimitError) as exc_info:
            await throttled()
        assert exc_info.value.retry_after == 9
        assert exc_info.value.message == "too many"

    @pytest.mark.asyncio
    async def test_unknown_exception_becomes_transport_error(self):
        """Test the original message is kept."""
        @handle_ado_error
        async def broken():
            raise ConnectionError("connection reset")

        with pytest.raises(TransportError) as exc_info:
            await broken()
        assert exc_info.value.message == "connection reset"


class TestWrapOperationErrors:
    """Test wrap_operation_errors decorator."""

    @pytest.mark.asyncio
    async def test_wraps_with_prefix(self):
        @wrap_operation_errors("Failed to get teams")
        async def get_teams():
            raise NotFoundError("Project not found")

        with pytest.raises(OperationError) as exc_info:
            await get_teams()
        assert str(exc_info.value) == "Failed to get teams: Project not found"

    @pytest.mark.asyncio
    async def test_validation_errors_not_wrapped(self):
        @wrap_operation_errors("Failed to update work item")
        async def update():
            raise ValidationError("fields are required")

        with pytest.raises(ValidationError):
            await update()

    @pytest.mark.asyncio
    async def test_success_passes_result(self):
        @wrap_operation_errors("Failed")
        async def ok():
            return 42

        assert await ok() == 42


class TestLogExecution:
    """Test log_execution decorator."""

    @pytest.mark.asyncio
    async def test_logs_call_and_completion(self, caplog):
        @log_execution(level=logging.INFO)
        async def work():
            return "done"

        with caplog.at_level(logging.INFO, logger="ado_orchestrator.decorators"):
            assert await work() == "done"
        assert "Calling work" in caplog.text
        assert "work completed successfully" in caplog.text


class TestPerformanceMonitor:
    """Test PerformanceMonitor context manager."""

    @pytest.mark.asyncio
    async def test_measures_duration(self):
        async with PerformanceMonitor("op") as monitor:
            await asyncio.sleep(0.01)
        assert monitor.duration_ms is not None
        assert monitor.duration_ms >= 5

    @pytest.mark.asyncio
    async def test_warns_when_slow(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ado_orchestrator.decorators"):
            async with PerformanceMonitor("slow op", warn_threshold_ms=0.0):
                await asyncio.sleep(0.001)
        assert "Slow operation: slow op" in caplog.text
