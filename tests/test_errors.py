"""Tests for actorsync/services/errors.py classification."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from actorsync.services.errors import (
    AuthFailureError,
    CircuitOpenError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    UnknownServiceError,
    ValidationError,
    classify_error,
    classify_response,
    parse_retry_after,
)

SERVICE = "tmdb-api"


def _response(status: int, headers: dict[str, str] | None = None) -> httpx.Response:
    return httpx.Response(
        status,
        headers=headers,
        text="body",
        request=httpx.Request("GET", "https://api.test/3/person/1"),
    )


# ---------------------------------------------------------------------------
# ErrorKind
# ---------------------------------------------------------------------------


class TestErrorKind:
    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED, ErrorKind.SERVICE_UNAVAILABLE],
    )
    def test_transient_kinds(self, kind: ErrorKind) -> None:
        assert kind.is_transient

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.NOT_FOUND, ErrorKind.AUTH_FAILURE, ErrorKind.VALIDATION, ErrorKind.UNKNOWN],
    )
    def test_permanent_kinds(self, kind: ErrorKind) -> None:
        assert not kind.is_transient

    def test_not_found_is_not_a_breaker_failure(self) -> None:
        assert not ErrorKind.NOT_FOUND.counts_as_failure
        assert ErrorKind.AUTH_FAILURE.counts_as_failure
        assert ErrorKind.UNKNOWN.counts_as_failure

    def test_error_carries_kind(self) -> None:
        assert ValidationError("bad id").kind == ErrorKind.VALIDATION
        assert CircuitOpenError(SERVICE, 12.0).reset_after_seconds == 12.0
        assert not CircuitOpenError(SERVICE, 1.0).retryable


# ---------------------------------------------------------------------------
# classify_response
# ---------------------------------------------------------------------------


class TestClassifyResponse:
    def test_success_is_none(self) -> None:
        assert classify_response(_response(200), SERVICE) is None

    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, AuthFailureError),
            (403, AuthFailureError),
            (404, NotFoundError),
            (429, RateLimitError),
            (500, ServiceUnavailableError),
            (503, ServiceUnavailableError),
            (400, UnknownServiceError),
        ],
    )
    def test_status_mapping(self, status: int, expected: type) -> None:
        error = classify_response(_response(status), SERVICE)
        assert isinstance(error, expected)
        assert error.service_id == SERVICE

    def test_rate_limit_carries_retry_after(self) -> None:
        error = classify_response(_response(429, {"Retry-After": "7"}), SERVICE)
        assert error.retry_after == 7.0


class TestParseRetryAfter:
    def test_seconds(self) -> None:
        assert parse_retry_after("3") == 3.0

    def test_http_date(self) -> None:
        when = datetime.now(timezone.utc) + timedelta(seconds=60)
        parsed = parse_retry_after(format_datetime(when, usegmt=True))
        assert 50 <= parsed <= 61

    def test_garbage_and_missing(self) -> None:
        assert parse_retry_after("soon") is None
        assert parse_retry_after(None) is None


# ---------------------------------------------------------------------------
# classify_error
# ---------------------------------------------------------------------------


class TestClassifyError:
    def test_service_error_passes_through(self) -> None:
        original = NotFoundError("gone", service_id=SERVICE)
        assert classify_error(original, SERVICE) is original

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ReadTimeout("slow"),
            httpx.ConnectTimeout("slow"),
            asyncio.TimeoutError(),
        ],
    )
    def test_timeouts(self, exc: Exception) -> None:
        error = classify_error(exc, SERVICE, timeout=10.0)
        assert isinstance(error, RequestTimeoutError)
        assert error.timeout == 10.0

    def test_connection_failures_are_unavailable(self) -> None:
        assert isinstance(classify_error(httpx.ConnectError("refused"), SERVICE), ServiceUnavailableError)
        assert isinstance(classify_error(ConnectionResetError(), SERVICE), ServiceUnavailableError)

    def test_http_status_error(self) -> None:
        response = _response(503)
        exc = httpx.HTTPStatusError("boom", request=response.request, response=response)
        assert isinstance(classify_error(exc, SERVICE), ServiceUnavailableError)

    def test_malformed_payload(self) -> None:
        exc = json.JSONDecodeError("Expecting value", "<html>", 0)
        error = classify_error(exc, SERVICE)
        assert isinstance(error, UnknownServiceError)
        assert "Malformed" in str(error)

    def test_anything_else_is_unknown(self) -> None:
        error = classify_error(RuntimeError("weird"), SERVICE)
        assert error.kind == ErrorKind.UNKNOWN
        assert "RuntimeError" in str(error)
