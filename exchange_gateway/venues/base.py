"""
Exchange Gateway - Venue Adapter Base.

============================================================
PURPOSE
============================================================
Abstract venue adapter. Each logical operation is a short
pipeline composed from the gateway components:

    capability check -> resolve market -> validate input
        -> credentials check -> rate-limit acquire -> sign
        -> transport invoke -> venue error check
        -> HTTP status check -> normalize

and fails at the first failing stage.

CRITICAL:
- Configuration-shape errors surface before any network call
- Adapters hold no order/book state between calls
- Create/cancel are never retried by this layer

============================================================
"""

import json
import logging
import time
from abc import ABC
from typing import Any, Dict, List, Mapping, Optional, Union

from ..config import (
    Credentials,
    GatewayConfig,
    MarketDescriptor,
    VenueDescriptor,
    merge_descriptor,
)
from ..errors import (
    ExchangeException,
    InvalidArgument,
    InvalidOrderParameters,
    MalformedResponse,
    UnsupportedOperation,
    raise_for_http_status,
)
from ..logging_utils import VenueLogger
from ..normalizer import safe_float
from ..rate_limiter import RateLimiter
from ..registry import MarketRegistry
from ..signing import NonceGenerator, SigningStrategy, create_signer
from ..transport import AiohttpTransport, Transport, TransportResponse
from ..types import (
    AccessTier,
    Balance,
    Operation,
    Order,
    OrderBook,
    OrderCancellation,
    OrderSide,
    OrderType,
    Ticker,
    Trade,
)


logger = logging.getLogger(__name__)


# Capability flag: venue accepts market orders
CREATE_MARKET_ORDER = "create_market_order"


class VenueAdapter(ABC):
    """
    Base class for venue adapters.

    Subclasses declare ``DESCRIPTOR`` (plain data, see
    ``VenueDescriptor.from_dict``) and implement the ``_fetch_*`` /
    ``_create_order`` / ``_cancel_order`` hooks for the operations
    they advertise. The public methods perform every check that
    does not need the network.
    """

    DESCRIPTOR: Dict[str, Any] = {}

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        transport: Optional[Transport] = None,
        rate_limiter: Optional[RateLimiter] = None,
        config: Optional[GatewayConfig] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ):
        """
        Initialize adapter.

        Args:
            credentials: API credentials (required for private calls only)
            transport: Transport invoker (default: aiohttp)
            rate_limiter: Shared limiter (default: one per adapter)
            config: Gateway settings
            overrides: Descriptor overrides, merged over the built-in table
        """
        self._config = config or GatewayConfig()
        self._credentials = credentials

        data = merge_descriptor(self.DESCRIPTOR, {"options": self._config.options})
        data = merge_descriptor(data, overrides)
        self._descriptor = VenueDescriptor.from_dict(data)
        self._registry = MarketRegistry(self._descriptor)

        self._signers: Dict[AccessTier, SigningStrategy] = {}
        signing_options = self._descriptor.options.get("signing", {})
        for tier, scheme in self._descriptor.auth.items():
            self._signers[tier] = create_signer(scheme, signing_options.get(tier.value))

        self._owns_transport = transport is None
        self._transport = transport or AiohttpTransport(user_agent=self._config.user_agent)

        self._rate_limiter = rate_limiter or RateLimiter()
        self._rate_limiter.configure(self.id, self._descriptor.rate_limit_ms / 1000)

        self._nonce = NonceGenerator()
        self._logger = VenueLogger(self.id)

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def id(self) -> str:
        return self._descriptor.id

    @property
    def name(self) -> str:
        return self._descriptor.name

    @property
    def descriptor(self) -> VenueDescriptor:
        return self._descriptor

    @property
    def registry(self) -> MarketRegistry:
        return self._registry

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def options(self) -> Mapping[str, Any]:
        return self._descriptor.options

    def describe(self):
        """Capability set of this venue."""
        return self._registry.describe()

    def milliseconds(self) -> int:
        return int(time.time() * 1000)

    def nonce(self) -> str:
        return self._nonce()

    # --------------------------------------------------------
    # CALLER-FACING OPERATIONS
    # --------------------------------------------------------

    async def fetch_ticker(self, symbol: str) -> Ticker:
        market = self._prepare(Operation.FETCH_TICKER, symbol)
        return await self._fetch_ticker(market)

    async def fetch_order_book(self, symbol: str, limit: Optional[int] = None) -> OrderBook:
        market = self._prepare(Operation.FETCH_ORDER_BOOK, symbol)
        if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0):
            raise InvalidArgument(
                f"limit must be a positive integer, got {limit!r}",
                venue_id=self.id,
                operation=Operation.FETCH_ORDER_BOOK.value,
            )
        return await self._fetch_order_book(market, limit)

    async def fetch_trades(
        self,
        symbol: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        market = self._prepare(Operation.FETCH_TRADES, symbol)
        return await self._fetch_trades(market, since, limit)

    async def fetch_balance(self) -> Balance:
        self._registry.require(Operation.FETCH_BALANCE)
        return await self._fetch_balance()

    async def create_order(
        self,
        symbol: str,
        type: Union[str, OrderType],
        side: Union[str, OrderSide],
        amount: float,
        price: Optional[float] = None,
    ) -> Order:
        """
        Place an order.

        Raises:
            InvalidArgument: Unknown type or side
            InvalidOrderParameters: Non-positive amount, or a limit
                order without a positive price
            UnsupportedOperation: Market order on a limit-only venue
        """
        operation = Operation.CREATE_ORDER.value
        market = self._prepare(Operation.CREATE_ORDER, symbol)
        order_type = self._parse_enum(OrderType, type, "type")
        order_side = self._parse_enum(OrderSide, side, "side")

        quantity = safe_float(amount)
        if quantity is None or quantity <= 0:
            raise InvalidOrderParameters(
                f"amount must be a positive number, got {amount!r}",
                venue_id=self.id,
                operation=operation,
                symbol=symbol,
            )

        if order_type == OrderType.LIMIT:
            if price is None:
                raise InvalidOrderParameters(
                    "limit order requires a price",
                    venue_id=self.id,
                    operation=operation,
                    symbol=symbol,
                )
            limit_price = safe_float(price)
            if limit_price is None or limit_price <= 0:
                raise InvalidOrderParameters(
                    f"price must be a positive number, got {price!r}",
                    venue_id=self.id,
                    operation=operation,
                    symbol=symbol,
                )
        else:
            if not self._registry.has(CREATE_MARKET_ORDER):
                raise UnsupportedOperation(
                    f"{self.name} allows limit orders only",
                    venue_id=self.id,
                    operation=operation,
                    symbol=symbol,
                )
            limit_price = None

        return await self._create_order(market, order_type, order_side, quantity, limit_price)

    async def cancel_order(self, id: str, symbol: Optional[str] = None) -> OrderCancellation:
        self._registry.require(Operation.CANCEL_ORDER)
        if id is None or str(id).strip() == "":
            raise InvalidArgument(
                "Order id is required",
                venue_id=self.id,
                operation=Operation.CANCEL_ORDER.value,
            )
        market = self._registry.resolve(symbol) if symbol is not None else None
        return await self._cancel_order(str(id), market)

    async def fetch_orders(self, symbol: Optional[str] = None) -> List[Order]:
        self._registry.require(Operation.FETCH_ORDERS)
        market = self._registry.resolve(symbol) if symbol is not None else None
        return await self._fetch_orders(market)

    def calculate_fee(self, symbol, side, amount, price, taker_or_maker="taker"):
        return self._registry.calculate_fee(
            symbol,
            self._parse_enum(OrderSide, side, "side"),
            amount,
            price,
            taker_or_maker,
        )

    # --------------------------------------------------------
    # VENUE HOOKS
    # --------------------------------------------------------

    async def _fetch_ticker(self, market: MarketDescriptor) -> Ticker:
        raise self._not_implemented(Operation.FETCH_TICKER)

    async def _fetch_order_book(self, market: MarketDescriptor, limit: Optional[int]) -> OrderBook:
        raise self._not_implemented(Operation.FETCH_ORDER_BOOK)

    async def _fetch_trades(self, market, since, limit) -> List[Trade]:
        raise self._not_implemented(Operation.FETCH_TRADES)

    async def _fetch_balance(self) -> Balance:
        raise self._not_implemented(Operation.FETCH_BALANCE)

    async def _create_order(self, market, order_type, side, amount, price) -> Order:
        raise self._not_implemented(Operation.CREATE_ORDER)

    async def _cancel_order(self, id, market) -> OrderCancellation:
        raise self._not_implemented(Operation.CANCEL_ORDER)

    async def _fetch_orders(self, market) -> List[Order]:
        raise self._not_implemented(Operation.FETCH_ORDERS)

    def check_venue_error(self, payload: Any, operation: Operation) -> None:
        """
        Raise VenueReportedError if the payload signals failure.

        Called before the HTTP status check, so a venue message
        carried by an error status is reported as the venue's.
        """
        pass

    # --------------------------------------------------------
    # REQUEST PIPELINE
    # --------------------------------------------------------

    async def request(
        self,
        operation: Operation,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Perform one venue call for ``operation``.

        Returns:
            Decoded JSON payload

        Raises:
            MissingCredentials: Before rate limiting or I/O
            TransportFailure / RequestTimeout: From the transport
            VenueReportedError: If the payload signals failure
            MalformedResponse: If the body is not text or not JSON
        """
        template = self._registry.endpoint(operation)
        signer = self._signers.get(template.tier)
        if signer is None:
            raise UnsupportedOperation(
                f"No signing scheme for tier {template.tier.value}",
                venue_id=self.id,
                operation=operation.value,
            )
        signer.check_credentials(self._credentials, self.id)

        if self._config.enable_rate_limit:
            await self._rate_limiter.acquire(self.id)

        signed = signer.sign(
            self._descriptor.base_url(template.tier),
            template,
            params,
            self._credentials,
            self.id,
        )

        request_id = self._logger.log_request(
            operation=operation.value,
            method=signed.method,
            url=signed.url,
            headers=signed.headers,
            body=signed.body,
            params=dict(params) if params else None,
        )
        start_time = time.monotonic()

        try:
            response = await self._transport.invoke(
                signed.method,
                signed.url,
                headers=signed.headers,
                body=signed.body,
                timeout=self._config.timeout_seconds,
            )
        except ExchangeException as e:
            e.venue_id = e.venue_id or self.id
            e.operation = e.operation or operation.value
            self._logger.log_response(
                operation=operation.value,
                request_id=request_id,
                status_code=getattr(e, "http_status", None) or 0,
                latency_ms=(time.monotonic() - start_time) * 1000,
                success=False,
                error=str(e),
            )
            raise

        latency_ms = (time.monotonic() - start_time) * 1000
        try:
            payload = self._decode(response, operation)
        except ExchangeException as e:
            self._logger.log_response(
                operation=operation.value,
                request_id=request_id,
                status_code=response.status,
                latency_ms=latency_ms,
                success=False,
                error=str(e),
            )
            raise

        self._logger.log_response(
            operation=operation.value,
            request_id=request_id,
            status_code=response.status,
            latency_ms=latency_ms,
            success=True,
            response_body=response.body,
        )
        return payload

    def _decode(self, response: TransportResponse, operation: Operation) -> Any:
        try:
            payload = json.loads(response.body)
        except (TypeError, ValueError):
            raise_for_http_status(self.id, response.status, response.body, operation.value)
            raise MalformedResponse(
                f"Response is not JSON: {(response.body or '')[:200]}",
                venue_id=self.id,
                operation=operation.value,
                raw=response.body,
            )

        self.check_venue_error(payload, operation)
        raise_for_http_status(self.id, response.status, response.body, operation.value)
        return payload

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    def _prepare(self, operation: Operation, symbol: str) -> MarketDescriptor:
        self._registry.require(operation)
        return self._registry.resolve(symbol)

    def _parse_enum(self, enum_class, value, name: str):
        if isinstance(value, enum_class):
            return value
        try:
            return enum_class(str(value).lower())
        except ValueError:
            allowed = ", ".join(member.value for member in enum_class)
            raise InvalidArgument(
                f"{name} must be one of {allowed}, got {value!r}",
                venue_id=self.id,
            )

    def _not_implemented(self, operation: Operation) -> UnsupportedOperation:
        return UnsupportedOperation(
            f"{type(self).__name__} does not implement {operation.value}",
            venue_id=self.id,
            operation=operation.value,
        )

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def close(self) -> None:
        """Close the transport if this adapter created it."""
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, markets={self._registry.symbols()})"
