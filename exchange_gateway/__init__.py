"""
Exchange Gateway.

============================================================
PURPOSE
============================================================
One caller-facing contract over heterogeneous exchange APIs.

COMPONENTS:
- MarketRegistry: symbol <-> venue id, capabilities, fees
- RateLimiter: per-venue minimum-interval gate
- Signing strategies: public, token, hmac, message_type
- Transport: aiohttp invoker (MockTransport for tests)
- Normalizer: raw payload -> canonical entity
- VenueAdapter: per-venue orchestration

ERROR HANDLING:
- ExchangeException hierarchy with retry classification

============================================================
"""

# Types
from .types import (
    Operation,
    AccessTier,
    OrderType,
    OrderSide,
    OrderStatus,
    Ticker,
    OrderBook,
    BalanceEntry,
    Balance,
    Order,
    Trade,
    OrderCancellation,
)

# Errors
from .errors import (
    ErrorCategory,
    RetryEligibility,
    ExchangeException,
    UnknownSymbol,
    UnsupportedOperation,
    MissingCredentials,
    InvalidArgument,
    InvalidOrderParameters,
    ConfigurationError,
    MalformedResponse,
    VenueReportedError,
    TransportFailure,
    RequestTimeout,
)

# Configuration
from .config import (
    Credentials,
    MarketDescriptor,
    EndpointTemplate,
    FeeSchedule,
    VenueDescriptor,
    GatewayConfig,
    merge_descriptor,
    load_overrides,
)

# Components
from .registry import MarketRegistry
from .rate_limiter import RateLimiter, RateLimitState
from .signing import (
    SignedRequest,
    SigningStrategy,
    PublicSigner,
    TokenHeaderSigner,
    HmacTimestampSigner,
    MessageTypeSigner,
    create_signer,
)
from .transport import Transport, TransportResponse, AiohttpTransport
from .mock import MockTransport, MockConfig
from .logging_utils import VenueLogger

# Venues
from .venues import (
    VenueAdapter,
    BitcoinTradeAdapter,
    FoxBitAdapter,
    VenueFactory,
    VenuePool,
)


__all__ = [
    # Types
    "Operation",
    "AccessTier",
    "OrderType",
    "OrderSide",
    "OrderStatus",
    "Ticker",
    "OrderBook",
    "BalanceEntry",
    "Balance",
    "Order",
    "Trade",
    "OrderCancellation",
    # Errors
    "ErrorCategory",
    "RetryEligibility",
    "ExchangeException",
    "UnknownSymbol",
    "UnsupportedOperation",
    "MissingCredentials",
    "InvalidArgument",
    "InvalidOrderParameters",
    "ConfigurationError",
    "MalformedResponse",
    "VenueReportedError",
    "TransportFailure",
    "RequestTimeout",
    # Configuration
    "Credentials",
    "MarketDescriptor",
    "EndpointTemplate",
    "FeeSchedule",
    "VenueDescriptor",
    "GatewayConfig",
    "merge_descriptor",
    "load_overrides",
    # Components
    "MarketRegistry",
    "RateLimiter",
    "RateLimitState",
    "SignedRequest",
    "SigningStrategy",
    "PublicSigner",
    "TokenHeaderSigner",
    "HmacTimestampSigner",
    "MessageTypeSigner",
    "create_signer",
    "Transport",
    "TransportResponse",
    "AiohttpTransport",
    "MockTransport",
    "MockConfig",
    "VenueLogger",
    # Venues
    "VenueAdapter",
    "BitcoinTradeAdapter",
    "FoxBitAdapter",
    "VenueFactory",
    "VenuePool",
]
