"""
Exchange Gateway - Mock Transport.

============================================================
PURPOSE
============================================================
Scripted in-memory transport for tests and offline callers.

FEATURES:
- Responses scripted per (method, url prefix)
- Every call recorded for later assertions
- Configurable latency
- Configurable error injection

No network I/O is performed.

============================================================
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import RequestTimeout, TransportFailure
from .transport import Transport, TransportResponse


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for the mock transport."""

    # Latency simulation
    min_latency_ms: float = 0.0
    """Minimum simulated latency."""

    max_latency_ms: float = 0.0
    """Maximum simulated latency."""

    # Error injection
    timeout_probability: float = 0.0
    """Probability of a simulated timeout."""

    network_error_probability: float = 0.0
    """Probability of a simulated network error."""


@dataclass
class MockResponse:
    """Scripted response. Dict/list bodies are JSON-encoded."""

    body: Any = None
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)

    def render(self) -> TransportResponse:
        body = self.body
        if not isinstance(body, str):
            body = json.dumps(body)
        return TransportResponse(status=self.status, body=body, headers=dict(self.headers))


@dataclass
class RecordedCall:
    """One invocation seen by the mock."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Optional[str]
    timeout: Optional[float]

    def json(self) -> Any:
        """Decoded request body."""
        return json.loads(self.body) if self.body else None


# ============================================================
# MOCK TRANSPORT
# ============================================================

class MockTransport(Transport):
    """
    Transport that answers from a script.

    Routes are matched by method and the longest URL prefix.
    Several responses queued on one route are served in order;
    the last one keeps answering once the queue is drained.
    """

    def __init__(self, config: Optional[MockConfig] = None):
        self._config = config or MockConfig()
        self._routes: Dict[Tuple[str, str], List[MockResponse]] = {}
        self._calls: List[RecordedCall] = []
        self._force_next_error: Optional[Exception] = None
        self._closed = False

    # --------------------------------------------------------
    # SCRIPTING
    # --------------------------------------------------------

    def add_response(
        self,
        method: str,
        url_prefix: str,
        body: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> "MockTransport":
        """Queue a response for calls whose URL starts with ``url_prefix``."""
        key = (method.upper(), url_prefix)
        self._routes.setdefault(key, []).append(
            MockResponse(body=body, status=status, headers=dict(headers or {}))
        )
        return self

    def fail_next(self, error: Exception) -> None:
        """Raise ``error`` from the next invocation."""
        self._force_next_error = error

    def reset(self) -> None:
        self._routes.clear()
        self._calls.clear()
        self._force_next_error = None

    # --------------------------------------------------------
    # INSPECTION
    # --------------------------------------------------------

    @property
    def calls(self) -> List[RecordedCall]:
        return list(self._calls)

    @property
    def call_count(self) -> int:
        return len(self._calls)

    @property
    def last_call(self) -> Optional[RecordedCall]:
        return self._calls[-1] if self._calls else None

    @property
    def closed(self) -> bool:
        return self._closed

    # --------------------------------------------------------
    # TRANSPORT
    # --------------------------------------------------------

    async def invoke(self, method, url, headers=None, body=None, timeout=None):
        method = method.upper()
        self._calls.append(
            RecordedCall(
                method=method,
                url=url,
                headers=dict(headers or {}),
                body=body,
                timeout=timeout,
            )
        )

        latency = await self._simulate_latency(timeout)

        if self._force_next_error is not None:
            error = self._force_next_error
            self._force_next_error = None
            raise error

        if timeout is not None and latency > timeout:
            raise RequestTimeout(timeout)

        if random.random() < self._config.timeout_probability:
            raise RequestTimeout(timeout or 0.0)

        if random.random() < self._config.network_error_probability:
            raise TransportFailure("Simulated network error")

        response = self._match(method, url)
        if response is None:
            raise TransportFailure(f"MockTransport has no route for {method} {url}")

        logger.debug(f"MockTransport {method} {url} -> {response.status}")
        return response.render()

    async def close(self) -> None:
        self._closed = True

    def _match(self, method: str, url: str) -> Optional[MockResponse]:
        candidates = [
            (prefix, queue)
            for (route_method, prefix), queue in self._routes.items()
            if route_method == method and url.startswith(prefix)
        ]
        if not candidates:
            return None

        _, queue = max(candidates, key=lambda item: len(item[0]))
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    async def _simulate_latency(self, timeout: Optional[float]) -> float:
        if self._config.max_latency_ms <= 0:
            return 0.0

        latency = random.uniform(
            self._config.min_latency_ms,
            self._config.max_latency_ms,
        ) / 1000
        # Never sleep past the caller's timeout
        await asyncio.sleep(min(latency, timeout) if timeout else latency)
        return latency
