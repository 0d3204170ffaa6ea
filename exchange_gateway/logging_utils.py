"""
Exchange Gateway - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for venue requests with:
- Credential masking (API keys, secrets, signatures, nonces)
- Request/response sanitization
- Structured JSON log entries

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys or secrets
2. Mask sensitive headers (Authorization, APIKey, Signature, ...)
3. Log a hash of the request body, never the body itself

============================================================
"""

import hashlib
import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Header names that should be masked
SENSITIVE_HEADERS = {
    "authorization",
    "apikey",
    "api-key",
    "x-api-key",
    "nonce",
    "signature",
    "passphrase",
}

# Parameter names that should be masked
SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "secret",
    "secret_key",
    "password",
    "passphrase",
    "signature",
    "sign",
    "token",
    "access_token",
}


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Mask sensitive headers."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_value(str(value))
        else:
            masked[key] = value
    return masked


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Mask sensitive parameters, recursing into nested dicts."""
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        else:
            masked[key] = value
    return masked


def mask_url(url: str) -> str:
    """Mask sensitive query parameters in a URL."""
    if not url:
        return url

    for param in SENSITIVE_PARAMS:
        pattern = re.compile(f"({param}=)([^&]+)", re.IGNORECASE)
        url = pattern.sub(lambda m: f"{m.group(1)}***", url)
    return url


def hash_body(body: Any) -> Optional[str]:
    """Short SHA-256 of a request body."""
    if not body:
        return None
    if isinstance(body, (dict, list)):
        body = json.dumps(body, sort_keys=True)
    return hashlib.sha256(str(body).encode()).hexdigest()[:16]


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    venue_id: str
    operation: str
    method: str
    url: str
    request_id: str
    headers: Dict[str, str] = None
    params: Dict[str, Any] = None
    body_hash: str = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    venue_id: str
    operation: str
    request_id: str
    status_code: int
    latency_ms: float
    success: bool
    error: str = None
    response_preview: str = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None})


# ============================================================
# VENUE LOGGER
# ============================================================

class VenueLogger:
    """
    Secure logger for venue operations.

    Provides structured logging with automatic credential masking.
    """

    def __init__(self, venue_id: str, logger_name: str = None):
        self._venue_id = venue_id
        self._logger = logging.getLogger(logger_name or f"exchange_gateway.venue.{venue_id}")
        self._request_counter = 0

    def _generate_request_id(self) -> str:
        self._request_counter += 1
        return f"{self._venue_id}-{self._request_counter}"

    def log_request(
        self,
        operation: str,
        method: str,
        url: str,
        headers: Dict[str, str] = None,
        body: Any = None,
        params: Dict[str, Any] = None,
    ) -> str:
        """
        Log outgoing request.

        Returns:
            Request ID for correlation
        """
        request_id = self._generate_request_id()

        entry = RequestLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            venue_id=self._venue_id,
            operation=operation,
            method=method,
            url=mask_url(url),
            request_id=request_id,
            headers=mask_headers(headers) if headers else None,
            params=mask_params(params) if params else None,
            body_hash=hash_body(body),
        )

        self._logger.debug(f"REQUEST: {entry.to_json()}")
        return request_id

    def log_response(
        self,
        operation: str,
        request_id: str,
        status_code: int,
        latency_ms: float,
        success: bool,
        error: str = None,
        response_body: str = None,
    ) -> None:
        """Log incoming response (body truncated)."""
        entry = ResponseLogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            venue_id=self._venue_id,
            operation=operation,
            request_id=request_id,
            status_code=status_code,
            latency_ms=round(latency_ms, 3),
            success=success,
            error=error[:200] if error else None,
            response_preview=response_body[:200] if response_body else None,
        )

        if success:
            self._logger.debug(f"RESPONSE: {entry.to_json()}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {entry.to_json()}")

    def info(self, message: str) -> None:
        self._logger.info(f"[{self._venue_id}] {message}")

    def warning(self, message: str) -> None:
        self._logger.warning(f"[{self._venue_id}] {message}")
