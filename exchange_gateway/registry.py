"""
Exchange Gateway - Market Registry.

============================================================
PURPOSE
============================================================
Read-only view over a venue descriptor:
- Canonical symbol <-> venue market id
- Capability checks (fail fast before any network call)
- Endpoint template lookup by operation
- Fee calculation from the fee schedule

============================================================
"""

import logging
from typing import Dict, FrozenSet, List, Optional

from .config import EndpointTemplate, MarketDescriptor, VenueDescriptor
from .errors import ConfigurationError, InvalidArgument, UnknownSymbol, UnsupportedOperation
from .types import Operation, OrderSide


logger = logging.getLogger(__name__)


class MarketRegistry:
    """
    Static per-venue metadata.

    Every canonical symbol maps to exactly one descriptor.
    """

    def __init__(self, descriptor: VenueDescriptor):
        self._descriptor = descriptor
        self._by_symbol: Dict[str, MarketDescriptor] = dict(descriptor.markets)
        self._by_id: Dict[str, MarketDescriptor] = {}

        for market in self._by_symbol.values():
            if market.id in self._by_id:
                raise ConfigurationError(
                    f"{descriptor.id}: market id {market.id} registered twice"
                )
            self._by_id[market.id] = market

    @property
    def venue_id(self) -> str:
        return self._descriptor.id

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    def resolve(self, symbol: str) -> MarketDescriptor:
        """
        Resolve a canonical symbol.

        Raises:
            InvalidArgument: If symbol is empty
            UnknownSymbol: If symbol is not registered
        """
        if not symbol:
            raise InvalidArgument("Symbol is required", venue_id=self.venue_id)

        market = self._by_symbol.get(symbol)
        if market is None:
            raise UnknownSymbol(
                f"Symbol not found: {symbol}",
                venue_id=self.venue_id,
                symbol=symbol,
            )
        return market

    def resolve_by_id(self, market_id: str) -> MarketDescriptor:
        """Resolve a venue-local market id back to its descriptor."""
        market = self._by_id.get(market_id)
        if market is None:
            raise UnknownSymbol(
                f"Market id not found: {market_id}",
                venue_id=self.venue_id,
            )
        return market

    def find_by_id(self, market_id: str) -> Optional[MarketDescriptor]:
        return self._by_id.get(market_id)

    def symbols(self) -> List[str]:
        return sorted(self._by_symbol)

    def markets(self) -> List[MarketDescriptor]:
        return [self._by_symbol[s] for s in self.symbols()]

    # --------------------------------------------------------
    # CAPABILITIES
    # --------------------------------------------------------

    def describe(self) -> FrozenSet[str]:
        """Capability set: names of supported operations and flags."""
        return self._descriptor.capabilities

    def has(self, capability: str) -> bool:
        return capability in self._descriptor.capabilities

    def require(self, operation: Operation) -> None:
        """
        Fail fast if the venue does not support an operation.

        Raises:
            UnsupportedOperation: If not in the capability set
        """
        if operation.value not in self._descriptor.capabilities:
            raise UnsupportedOperation(
                f"{operation.value} is not supported",
                venue_id=self.venue_id,
                operation=operation.value,
            )

    def endpoint(self, operation: Operation) -> EndpointTemplate:
        """
        Endpoint template for an operation.

        Raises:
            UnsupportedOperation: If not in the capability set
            ConfigurationError: If supported but no template is declared
        """
        self.require(operation)
        template = self._descriptor.endpoints.get(operation)
        if template is None:
            raise ConfigurationError(
                f"No endpoint declared for {operation.value}",
                venue_id=self.venue_id,
                operation=operation.value,
            )
        return template

    # --------------------------------------------------------
    # FEES
    # --------------------------------------------------------

    def calculate_fee(
        self,
        symbol: str,
        side: OrderSide,
        amount: float,
        price: float,
        taker_or_maker: str = "taker",
    ) -> Dict[str, object]:
        """
        Estimate the trading fee for an order.

        Fee is charged in the quote currency on the notional value.

        Returns:
            Dict with currency, rate, cost (cost/rate None if unknown)
        """
        market = self.resolve(symbol)
        fees = self._descriptor.fees
        if taker_or_maker not in ("taker", "maker"):
            raise InvalidArgument(
                f"taker_or_maker must be 'taker' or 'maker', got {taker_or_maker!r}",
                venue_id=self.venue_id,
            )

        rate = fees.taker if taker_or_maker == "taker" else fees.maker
        cost = None if rate is None else amount * price * rate
        return {
            "type": taker_or_maker,
            "side": side.value,
            "currency": market.quote,
            "rate": rate,
            "cost": cost,
        }
