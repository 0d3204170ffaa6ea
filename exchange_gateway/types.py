"""
Exchange Gateway - Types.

============================================================
PURPOSE
============================================================
Enums and canonical entities shared by every venue.

UNKNOWN MARKER:
A numeric field the venue did not report, or reported in a
non-numeric form, is ``None``. Normalizers never guess a value.

TIMESTAMPS:
All timestamps are integer milliseconds since the Unix epoch
(UTC). ``datetime`` carries the same instant as ISO-8601.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ============================================================
# ENUMS
# ============================================================

class Operation(Enum):
    """Logical operations a venue may support."""

    FETCH_TICKER = "fetch_ticker"
    FETCH_ORDER_BOOK = "fetch_order_book"
    FETCH_TRADES = "fetch_trades"
    FETCH_BALANCE = "fetch_balance"
    CREATE_ORDER = "create_order"
    CANCEL_ORDER = "cancel_order"
    FETCH_ORDERS = "fetch_orders"


class AccessTier(Enum):
    """Endpoint access class."""

    PUBLIC = "public"
    PRIVATE = "private"


class OrderType(Enum):
    """Canonical order type."""

    MARKET = "market"
    LIMIT = "limit"


class OrderSide(Enum):
    """Canonical order side."""

    BUY = "buy"
    SELL = "sell"


class OrderStatus(Enum):
    """Canonical three-state order status."""

    OPEN = "open"
    CLOSED = "closed"
    CANCELED = "canceled"


def iso8601(timestamp: Optional[int]) -> Optional[str]:
    """Render a millisecond timestamp as ISO-8601 (UTC), or None."""
    if timestamp is None:
        return None
    moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


# ============================================================
# CANONICAL ENTITIES
# ============================================================

@dataclass
class Ticker:
    """Canonical ticker snapshot."""

    symbol: str
    timestamp: Optional[int]
    high: Optional[float] = None
    low: Optional[float] = None
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = None
    base_volume: Optional[float] = None
    quote_volume: Optional[float] = None

    # Optional fields most venues do not report
    vwap: Optional[float] = None
    open: Optional[float] = None
    close: Optional[float] = None
    previous_close: Optional[float] = None
    change: Optional[float] = None
    percentage: Optional[float] = None
    average: Optional[float] = None

    info: Any = None
    """Raw venue payload."""

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "datetime": self.datetime,
            "high": self.high,
            "low": self.low,
            "bid": self.bid,
            "ask": self.ask,
            "last": self.last,
            "baseVolume": self.base_volume,
            "quoteVolume": self.quote_volume,
            "vwap": self.vwap,
            "open": self.open,
            "close": self.close,
            "previousClose": self.previous_close,
            "change": self.change,
            "percentage": self.percentage,
            "average": self.average,
            "info": self.info,
        }


@dataclass
class OrderBook:
    """
    Canonical order book.

    Bids are sorted by price descending, asks ascending. The
    normalizer enforces the order; it is never taken from the source.
    """

    symbol: str
    timestamp: Optional[int]
    bids: List[Tuple[float, float]] = field(default_factory=list)
    asks: List[Tuple[float, float]] = field(default_factory=list)
    info: Any = None

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)

    def best_bid(self) -> Optional[Tuple[float, float]]:
        return self.bids[0] if self.bids else None

    def best_ask(self) -> Optional[Tuple[float, float]]:
        return self.asks[0] if self.asks else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "datetime": self.datetime,
            "bids": [list(level) for level in self.bids],
            "asks": [list(level) for level in self.asks],
        }


@dataclass
class BalanceEntry:
    """
    Per-asset balance.

    ``total == free + used`` holds whenever two of the three are
    known; the third is derived. With fewer known values the
    missing ones stay unknown.
    """

    free: Optional[float]
    used: Optional[float]
    total: Optional[float]

    @classmethod
    def derive(
        cls,
        free: Optional[float] = None,
        used: Optional[float] = None,
        total: Optional[float] = None,
    ) -> "BalanceEntry":
        if free is not None and used is not None:
            total = free + used
        elif total is not None and used is not None:
            free = total - used
        elif total is not None and free is not None:
            used = total - free
        return cls(free=free, used=used, total=total)

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"free": self.free, "used": self.used, "total": self.total}


@dataclass
class Balance:
    """Canonical account balance keyed by asset code."""

    assets: Dict[str, BalanceEntry] = field(default_factory=dict)
    timestamp: Optional[int] = None
    info: Any = None

    def __getitem__(self, asset: str) -> BalanceEntry:
        return self.assets[asset]

    def __contains__(self, asset: str) -> bool:
        return asset in self.assets

    def free(self) -> Dict[str, float]:
        return {code: entry.free for code, entry in self.assets.items()}

    def used(self) -> Dict[str, float]:
        return {code: entry.used for code, entry in self.assets.items()}

    def total(self) -> Dict[str, float]:
        return {code: entry.total for code, entry in self.assets.items()}

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            code: entry.to_dict() for code, entry in self.assets.items()
        }
        result["info"] = self.info
        return result


@dataclass
class Order:
    """
    Canonical order.

    ``filled + remaining == amount`` whenever all three are known.
    """

    id: Optional[str]
    symbol: str
    type: Optional[OrderType]
    side: Optional[OrderSide]
    price: Optional[float]
    amount: Optional[float]
    filled: Optional[float]
    remaining: Optional[float]
    cost: Optional[float]
    status: OrderStatus
    timestamp: Optional[int]
    info: Any = None

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "type": _enum_value(self.type),
            "side": _enum_value(self.side),
            "price": self.price,
            "amount": self.amount,
            "filled": self.filled,
            "remaining": self.remaining,
            "cost": self.cost,
            "status": _enum_value(self.status),
            "timestamp": self.timestamp,
            "datetime": self.datetime,
            "info": self.info,
        }


@dataclass
class Trade:
    """Canonical public or private trade."""

    id: Optional[str]
    symbol: str
    timestamp: Optional[int]
    side: Optional[OrderSide]
    price: Optional[float]
    amount: Optional[float]
    type: Optional[OrderType] = None
    order_id: Optional[str] = None
    info: Any = None

    @property
    def datetime(self) -> Optional[str]:
        return iso8601(self.timestamp)

    @property
    def cost(self) -> Optional[float]:
        if self.price is None or self.amount is None:
            return None
        return self.price * self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "datetime": self.datetime,
            "side": _enum_value(self.side),
            "type": _enum_value(self.type),
            "price": self.price,
            "amount": self.amount,
            "cost": self.cost,
            "order": self.order_id,
            "info": self.info,
        }


@dataclass
class OrderCancellation:
    """Result of a cancel request."""

    id: str
    symbol: Optional[str]
    success: bool
    status: Optional[OrderStatus] = None
    info: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "success": self.success,
            "status": _enum_value(self.status),
            "info": self.info,
        }
