"""
Error Taxonomy Tests.

============================================================
PURPOSE
============================================================
Tests for error categories, retry classification and the
HTTP status helper.

============================================================
"""

import pytest

from exchange_gateway import (
    ConfigurationError,
    ErrorCategory,
    ExchangeException,
    InvalidArgument,
    InvalidOrderParameters,
    MalformedResponse,
    MissingCredentials,
    RequestTimeout,
    RetryEligibility,
    TransportFailure,
    UnknownSymbol,
    UnsupportedOperation,
    VenueReportedError,
)
from exchange_gateway.errors import raise_for_http_status


class TestClassification:
    """Tests for category and retry eligibility."""

    @pytest.mark.parametrize(
        "error_class,category",
        [
            (UnknownSymbol, ErrorCategory.UNKNOWN_SYMBOL),
            (UnsupportedOperation, ErrorCategory.UNSUPPORTED_OPERATION),
            (MissingCredentials, ErrorCategory.MISSING_CREDENTIALS),
            (InvalidArgument, ErrorCategory.INVALID_ARGUMENT),
            (InvalidOrderParameters, ErrorCategory.INVALID_ORDER),
            (ConfigurationError, ErrorCategory.CONFIGURATION),
            (MalformedResponse, ErrorCategory.MALFORMED_RESPONSE),
            (VenueReportedError, ErrorCategory.VENUE_REPORTED),
        ],
    )
    def test_non_retryable_errors(self, error_class, category):
        """Test configuration and payload errors are not retryable."""
        error = error_class("boom", venue_id="btctrade")

        assert isinstance(error, ExchangeException)
        assert error.category == category
        assert error.retry_eligible == RetryEligibility.NO_RETRY
        assert error.is_retryable() is False

    def test_invalid_order_is_invalid_argument(self):
        """Test InvalidOrderParameters is catchable as InvalidArgument."""
        with pytest.raises(InvalidArgument):
            raise InvalidOrderParameters("limit order requires a price")

    def test_transport_failure_retryable(self):
        """Test network failure is retryable."""
        error = TransportFailure("connection reset")

        assert error.category == ErrorCategory.TRANSPORT
        assert error.is_retryable() is True

    def test_server_error_retryable(self):
        """Test 5xx is retryable."""
        assert TransportFailure("bad gateway", http_status=502).retry_eligible == RetryEligibility.RETRY

    def test_client_error_not_retryable(self):
        """Test 4xx is not retryable."""
        error = TransportFailure("forbidden", http_status=403)

        assert error.retry_eligible == RetryEligibility.NO_RETRY
        assert error.category == ErrorCategory.TRANSPORT

    def test_rate_limit_backoff(self):
        """Test 429 maps to RATE_LIMIT with backoff."""
        error = TransportFailure("too many", http_status=429)

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.retry_eligible == RetryEligibility.BACKOFF
        assert error.is_retryable() is True

    def test_timeout(self):
        """Test timeout classification and message."""
        error = RequestTimeout(2.5, venue_id="foxbit")

        assert isinstance(error, TransportFailure)
        assert error.category == ErrorCategory.TIMEOUT
        assert error.is_retryable() is True
        assert "2500ms" in str(error)


class TestExceptionContext:
    """Tests for context carried by exceptions."""

    def test_str_contains_category_and_venue(self):
        """Test string form."""
        error = UnknownSymbol("Symbol not found: X/Y", venue_id="btctrade", symbol="X/Y")

        assert str(error) == "[UNKNOWN_SYMBOL] btctrade Symbol not found: X/Y"

    def test_raw_payload_preserved(self):
        """Test raw payload is attached."""
        payload = {"message": "Saldo insuficiente", "data": None}
        error = VenueReportedError("Saldo insuficiente", raw=payload)

        assert error.raw is payload

    def test_to_dict(self):
        """Test dictionary summary."""
        error = TransportFailure(
            "bad gateway",
            http_status=502,
            venue_id="foxbit",
            operation="fetch_ticker",
        )

        result = error.to_dict()

        assert result["type"] == "TransportFailure"
        assert result["category"] == "TRANSPORT"
        assert result["http_status"] == 502
        assert result["venue_id"] == "foxbit"
        assert result["operation"] == "fetch_ticker"


class TestRaiseForHttpStatus:
    """Tests for raise_for_http_status."""

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success_passes(self, status):
        """Test 2xx does not raise."""
        raise_for_http_status("btctrade", status, "{}")

    @pytest.mark.parametrize(
        "status,fragment",
        [
            (500, "server error"),
            (429, "Rate limit"),
            (401, "Authentication"),
            (404, "Client error"),
        ],
    )
    def test_failure_raises(self, status, fragment):
        """Test non-2xx raises TransportFailure with status."""
        with pytest.raises(TransportFailure, match=fragment) as exc_info:
            raise_for_http_status("btctrade", status, "oops", operation="fetch_balance")

        assert exc_info.value.http_status == status
        assert exc_info.value.body == "oops"
        assert exc_info.value.operation == "fetch_balance"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
