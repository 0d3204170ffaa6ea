"""
Venue Adapter Factory.

============================================================
PURPOSE
============================================================
Factory pattern for creating venue adapter instances.

FEATURES:
- Centralized adapter creation
- Credentials from the environment by default
- Descriptor overrides (e.g. loaded from YAML)
- Adapter registry for extension
- Pool with one shared rate limiter and lifecycle handling

============================================================
USAGE
============================================================
```python
# Public data only
adapter = VenueFactory.create("foxbit")

# With overrides loaded from a file
overrides = load_overrides("venues.yaml")
adapters = VenueFactory.create_all(["btctrade", "foxbit"], overrides=overrides)

async with VenuePool() as pool:
    pool.add("btctrade")
    pool.add("foxbit")
    books = await pool.run_all("fetch_order_book", "BTC/BRL")
```

============================================================
"""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Type

from ..config import Credentials, GatewayConfig
from ..errors import ConfigurationError, ExchangeException
from ..rate_limiter import RateLimiter
from ..transport import Transport
from .base import VenueAdapter


logger = logging.getLogger(__name__)


# ============================================================
# VENUE FACTORY
# ============================================================

class VenueFactory:
    """
    Factory for creating venue adapters.

    Built-in venues are imported lazily; additional adapter
    classes can be registered at runtime.
    """

    BUILTIN = ("btctrade", "foxbit")

    # Registry of adapter classes
    _registry: Dict[str, Type[VenueAdapter]] = {}

    @classmethod
    def register(cls, venue_id: str, adapter_class: Type[VenueAdapter]) -> None:
        """Register an adapter class under a venue id."""
        cls._registry[venue_id.lower()] = adapter_class

    @classmethod
    def unregister(cls, venue_id: str) -> None:
        cls._registry.pop(venue_id.lower(), None)

    @classmethod
    def adapter_class(cls, venue_id: str) -> Type[VenueAdapter]:
        """
        Resolve the adapter class for a venue.

        Raises:
            ConfigurationError: If the venue is not supported
        """
        venue_id = venue_id.lower()
        if venue_id in cls._registry:
            return cls._registry[venue_id]

        if venue_id == "btctrade":
            from .btctrade import BitcoinTradeAdapter
            return BitcoinTradeAdapter

        elif venue_id == "foxbit":
            from .foxbit import FoxBitAdapter
            return FoxBitAdapter

        raise ConfigurationError(f"Unsupported venue: {venue_id}")

    @classmethod
    def create(
        cls,
        venue_id: str,
        credentials: Optional[Credentials] = None,
        config: Optional[GatewayConfig] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        transport: Optional[Transport] = None,
        rate_limiter: Optional[RateLimiter] = None,
        load_credentials: bool = True,
    ) -> VenueAdapter:
        """
        Create a venue adapter.

        Args:
            venue_id: Venue identifier
            credentials: Explicit credentials
            config: Gateway settings
            overrides: Descriptor overrides for this venue
            transport: Transport invoker (default: aiohttp)
            rate_limiter: Shared limiter
            load_credentials: Read ``<VENUE>_API_KEY`` etc. when
                no credentials are given

        Returns:
            VenueAdapter instance

        Raises:
            ConfigurationError: If venue not supported
        """
        adapter_class = cls.adapter_class(venue_id)

        if credentials is None and load_credentials:
            credentials = Credentials.from_env(venue_id)

        adapter = adapter_class(
            credentials=credentials,
            transport=transport,
            rate_limiter=rate_limiter,
            config=config,
            overrides=overrides,
        )
        logger.info(
            f"Created {adapter_class.__name__} for {venue_id} "
            f"(credentials: {'yes' if credentials else 'no'})"
        )
        return adapter

    @classmethod
    def create_all(
        cls,
        venue_ids: List[str],
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        credentials_map: Optional[Mapping[str, Credentials]] = None,
        **common_kwargs,
    ) -> Dict[str, VenueAdapter]:
        """
        Create multiple adapters.

        Venues that fail to build are logged and left out.

        Args:
            venue_ids: List of venue identifiers
            overrides: venue id -> descriptor overrides
            credentials_map: venue id -> credentials
            **common_kwargs: Common arguments for all adapters

        Returns:
            Dict of venue_id -> adapter
        """
        overrides = overrides or {}
        credentials_map = credentials_map or {}
        adapters = {}

        for venue_id in venue_ids:
            try:
                adapters[venue_id] = cls.create(
                    venue_id,
                    credentials=credentials_map.get(venue_id),
                    overrides=overrides.get(venue_id),
                    **common_kwargs,
                )
            except ExchangeException as e:
                logger.error(f"Failed to create adapter for {venue_id}: {e}")

        return adapters

    @classmethod
    def list_supported(cls) -> List[str]:
        """List supported venues."""
        return sorted(set(cls.BUILTIN) | set(cls._registry))


# ============================================================
# VENUE POOL
# ============================================================

class VenuePool:
    """
    Pool of venue adapters.

    Adapters added through the pool share one rate limiter, so
    each venue keeps its own budget while distinct venues run
    in parallel.
    """

    def __init__(self, rate_limiter: Optional[RateLimiter] = None):
        self._rate_limiter = rate_limiter or RateLimiter()
        self._adapters: Dict[str, VenueAdapter] = {}

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    def add(
        self,
        venue_id: str,
        adapter: Optional[VenueAdapter] = None,
        **kwargs,
    ) -> VenueAdapter:
        """
        Add adapter to pool.

        Args:
            venue_id: Venue identifier
            adapter: Existing adapter (or create new)
            **kwargs: Passed to VenueFactory.create

        Returns:
            Adapter instance
        """
        if adapter is None:
            kwargs.setdefault("rate_limiter", self._rate_limiter)
            adapter = VenueFactory.create(venue_id, **kwargs)

        self._adapters[venue_id] = adapter
        return adapter

    async def remove(self, venue_id: str) -> None:
        """Remove adapter from pool and close it."""
        adapter = self._adapters.pop(venue_id, None)
        if adapter is not None:
            await adapter.close()

    def get(self, venue_id: str) -> Optional[VenueAdapter]:
        return self._adapters.get(venue_id)

    def __getitem__(self, venue_id: str) -> VenueAdapter:
        if venue_id not in self._adapters:
            raise KeyError(f"Adapter not found: {venue_id}")
        return self._adapters[venue_id]

    def __contains__(self, venue_id: str) -> bool:
        return venue_id in self._adapters

    def list_venues(self) -> List[str]:
        return list(self._adapters.keys())

    async def run_all(self, operation: str, *args, **kwargs) -> Dict[str, Any]:
        """
        Run one operation on every adapter concurrently.

        Returns:
            venue id -> result, or the ExchangeException it raised
        """
        venue_ids = list(self._adapters)
        results = await asyncio.gather(
            *(getattr(self._adapters[v], operation)(*args, **kwargs) for v in venue_ids),
            return_exceptions=True,
        )

        outcome: Dict[str, Any] = {}
        for venue_id, result in zip(venue_ids, results):
            if isinstance(result, BaseException) and not isinstance(result, ExchangeException):
                raise result
            outcome[venue_id] = result
        return outcome

    async def close_all(self) -> None:
        """Close every adapter."""
        for adapter in self._adapters.values():
            await adapter.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all()
