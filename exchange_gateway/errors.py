"""
Exchange Gateway - Error Taxonomy.

============================================================
PURPOSE
============================================================
Unified error handling for every venue with:
- One exception hierarchy shared by all venues
- Category and retry-eligibility classification
- Raw payload preservation for diagnosis

============================================================
ERROR CATEGORIES
============================================================
1. CONFIGURATION   - Unknown symbol, unsupported operation,
                     missing credentials, invalid arguments
2. MALFORMED       - Response missing required structure
3. VENUE_REPORTED  - Venue payload signals failure
4. TRANSPORT       - Network / HTTP layer failure
5. TIMEOUT         - Transport call exceeded its timeout

Configuration errors are raised before any network call.
This layer never retries; the classification is advisory
for callers that implement their own retry policy.

============================================================
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# CLASSIFICATION
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    UNKNOWN_SYMBOL = "UNKNOWN_SYMBOL"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INVALID_ORDER = "INVALID_ORDER"
    CONFIGURATION = "CONFIGURATION"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    VENUE_REPORTED = "VENUE_REPORTED"
    TRANSPORT = "TRANSPORT"
    RATE_LIMIT = "RATE_LIMIT"
    TIMEOUT = "TIMEOUT"


class RetryEligibility(Enum):
    """Whether an error is eligible for retry by the caller."""

    RETRY = "RETRY"           # Safe to retry
    NO_RETRY = "NO_RETRY"     # Should not retry
    BACKOFF = "BACKOFF"       # Retry with exponential backoff


# ============================================================
# BASE EXCEPTION
# ============================================================

class ExchangeException(Exception):
    """
    Base class for every gateway failure.

    Carries the venue context and, where one exists, the raw
    venue payload so callers can diagnose what was received.
    """

    category: ErrorCategory = ErrorCategory.CONFIGURATION
    retry_eligible: RetryEligibility = RetryEligibility.NO_RETRY

    def __init__(
        self,
        message: str,
        venue_id: Optional[str] = None,
        operation: Optional[str] = None,
        symbol: Optional[str] = None,
        raw: Any = None,
    ):
        self.message = message
        self.venue_id = venue_id
        self.operation = operation
        self.symbol = symbol
        self.raw = raw
        super().__init__(str(self))

    def is_retryable(self) -> bool:
        """Check if error is retryable."""
        return self.retry_eligible in (RetryEligibility.RETRY, RetryEligibility.BACKOFF)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": type(self).__name__,
            "category": self.category.value,
            "message": self.message,
            "retry_eligible": self.retry_eligible.value,
            "venue_id": self.venue_id,
            "operation": self.operation,
            "symbol": self.symbol,
        }

    def __str__(self) -> str:
        prefix = f"{self.venue_id} " if self.venue_id else ""
        return f"[{self.category.value}] {prefix}{self.message}"


# ============================================================
# CONFIGURATION-SHAPE ERRORS (raised before network I/O)
# ============================================================

class UnknownSymbol(ExchangeException):
    """Symbol is not registered for the venue."""

    category = ErrorCategory.UNKNOWN_SYMBOL


class UnsupportedOperation(ExchangeException):
    """Venue does not advertise the requested operation."""

    category = ErrorCategory.UNSUPPORTED_OPERATION


class MissingCredentials(ExchangeException):
    """Private-tier call attempted without the required credentials."""

    category = ErrorCategory.MISSING_CREDENTIALS


class InvalidArgument(ExchangeException):
    """Required caller input is missing or malformed."""

    category = ErrorCategory.INVALID_ARGUMENT


class InvalidOrderParameters(InvalidArgument):
    """Order parameters are inconsistent with the order type."""

    category = ErrorCategory.INVALID_ORDER


class ConfigurationError(ExchangeException):
    """Venue descriptor is malformed (unbound placeholder, unknown scheme, ...)."""

    category = ErrorCategory.CONFIGURATION


# ============================================================
# RESPONSE ERRORS
# ============================================================

class MalformedResponse(ExchangeException):
    """Venue payload lacks required structure."""

    category = ErrorCategory.MALFORMED_RESPONSE


class VenueReportedError(ExchangeException):
    """Venue payload itself signals failure."""

    category = ErrorCategory.VENUE_REPORTED


# ============================================================
# TRANSPORT ERRORS
# ============================================================

class TransportFailure(ExchangeException):
    """Network or HTTP-layer failure."""

    category = ErrorCategory.TRANSPORT
    retry_eligible = RetryEligibility.RETRY

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        body: Optional[str] = None,
        **kwargs,
    ):
        self.http_status = http_status
        self.body = body
        if http_status == 429:
            self.category = ErrorCategory.RATE_LIMIT
            self.retry_eligible = RetryEligibility.BACKOFF
        elif http_status is not None and 400 <= http_status < 500:
            self.retry_eligible = RetryEligibility.NO_RETRY
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["http_status"] = self.http_status
        return result


class RequestTimeout(TransportFailure):
    """Transport call exceeded the caller-supplied timeout."""

    category = ErrorCategory.TIMEOUT

    def __init__(self, timeout_seconds: float, **kwargs):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Request timed out after {int(timeout_seconds * 1000)}ms",
            **kwargs,
        )


# ============================================================
# HELPERS
# ============================================================

def raise_for_http_status(
    venue_id: str,
    status: int,
    body: str,
    operation: Optional[str] = None,
) -> None:
    """
    Raise TransportFailure for a non-2xx HTTP status.

    Args:
        venue_id: Venue identifier
        status: HTTP status code
        body: Raw response body (truncated in the message)
        operation: Logical operation name
    """
    if 200 <= status < 300:
        return

    if status >= 500:
        message = f"Venue server error (status {status})"
    elif status == 429:
        message = "Rate limit exceeded (status 429)"
    elif status in (401, 403):
        message = f"Authentication rejected (status {status})"
    else:
        message = f"Client error (status {status})"

    logger.warning(f"{venue_id} {operation or ''} HTTP {status}: {(body or '')[:200]}")
    raise TransportFailure(
        f"{message}: {(body or '')[:200]}",
        http_status=status,
        body=body,
        venue_id=venue_id,
        operation=operation,
    )
