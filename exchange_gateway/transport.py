"""
Exchange Gateway - Transport.

============================================================
PURPOSE
============================================================
Boundary between the gateway and the network:

    invoke(method, url, headers, body, timeout)
        -> TransportResponse(status, body)
        |  TransportFailure / RequestTimeout
        |  MalformedResponse (body is not text)

Connection pooling and TLS belong to the underlying HTTP
client. This layer performs no retries.

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

import aiohttp

from .errors import MalformedResponse, RequestTimeout, TransportFailure


logger = logging.getLogger(__name__)


@dataclass
class TransportResponse:
    """Raw HTTP response."""

    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)


class Transport(ABC):
    """Transport invoker interface."""

    @abstractmethod
    async def invoke(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> TransportResponse:
        """
        Perform one HTTP call.

        Raises:
            TransportFailure: On network failure
            RequestTimeout: If ``timeout`` seconds elapse first
            MalformedResponse: If the body cannot be decoded
        """
        pass

    async def close(self) -> None:
        """Release resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class AiohttpTransport(Transport):
    """
    Transport backed by an aiohttp ClientSession.

    The session is created lazily on first use so adapters can
    be constructed outside a running event loop.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ):
        self._session = session
        self._owns_session = session is None
        self._user_agent = user_agent

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self._user_agent} if self._user_agent else None
            self._session = aiohttp.ClientSession(headers=headers)
            self._owns_session = True
        return self._session

    async def invoke(self, method, url, headers=None, body=None, timeout=None):
        session = self._get_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else None

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=body,
                timeout=client_timeout,
            ) as response:
                raw = await response.read()
                try:
                    text = raw.decode(response.charset or "utf-8")
                except (UnicodeDecodeError, LookupError) as e:
                    raise MalformedResponse(
                        f"Response body is not valid text: {e}",
                        raw=raw,
                    ) from e
                return TransportResponse(
                    status=response.status,
                    body=text,
                    headers=dict(response.headers),
                )

        except asyncio.TimeoutError:
            raise RequestTimeout(timeout or 0.0)
        except aiohttp.ClientError as e:
            raise TransportFailure(f"Network error: {e}") from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            logger.debug("aiohttp session closed")
        self._session = None
