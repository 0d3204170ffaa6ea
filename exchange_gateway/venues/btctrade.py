"""
Bitcoin Trade Venue Adapter.

============================================================
PURPOSE
============================================================
Adapter for the Bitcoin Trade (Brazil) REST API v1.

VENUE SPECIFICS:
- Public and private APIs live under different base URLs
- Private calls carry ``Authorization: ApiToken <key>``;
  there is no per-request signature
- Every payload is wrapped as ``{"message": ..., "data": ...}``;
  a non-null ``message`` is a venue-reported failure
- Markets are addressed by base coin (``BTC``)
- Order ``type`` is the side; ``subtype`` is limited/market

============================================================
API DOCUMENTATION
============================================================
https://apidocs.bitcointrade.com.br

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from ..config import MarketDescriptor
from ..errors import InvalidArgument, MalformedResponse, VenueReportedError
from ..normalizer import (
    extract_envelope,
    normalize_balance,
    normalize_order,
    normalize_order_book,
    normalize_ticker,
    parse_iso8601,
)
from ..types import (
    Balance,
    Operation,
    Order,
    OrderBook,
    OrderCancellation,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker,
)
from .base import VenueAdapter


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

BTCTRADE_PUBLIC_URL = "https://api.bitcointrade.com.br/v1/public"
BTCTRADE_PRIVATE_URL = "https://api.bitcointrade.com.br/v1"

TICKER_FIELDS = {
    "high": "high",
    "low": "low",
    "bid": "buy",
    "ask": "sell",
    "last": "last",
    "base_volume": "volume",
}

ORDER_FIELDS = {
    "id": "id",
    "price": "unit_price",
    "amount": "requested_amount",
    "filled": "executed_amount",
    "remaining": "remaining_amount",
    "cost": "total_price",
    "status": "status",
    "type": "subtype",
    "side": "type",
    "timestamp": "create_date",
}

STATUS_TABLE = {
    "canceled": OrderStatus.CANCELED,
    "executed_completely": OrderStatus.CLOSED,
    "executed_partially": OrderStatus.OPEN,
    "waiting": OrderStatus.OPEN,
}

SUBTYPE_TABLE = {
    "limited": OrderType.LIMIT,
    "market": OrderType.MARKET,
}

SUBTYPES = {
    OrderType.LIMIT: "limited",
    OrderType.MARKET: "market",
}


class BitcoinTradeAdapter(VenueAdapter):
    """Bitcoin Trade adapter (token-header scheme)."""

    DESCRIPTOR: Dict[str, Any] = {
        "id": "btctrade",
        "name": "Bitcoin Trade",
        "countries": ["BR"],
        "version": "v1",
        "rate_limit": 1000,
        "urls": {
            "public": BTCTRADE_PUBLIC_URL,
            "private": BTCTRADE_PRIVATE_URL,
        },
        "endpoints": {
            "fetch_order_book": {"method": "GET", "path": "{coin}/orders/"},
            "fetch_ticker": {"method": "GET", "path": "{coin}/ticker/"},
            "fetch_balance": {"method": "GET", "path": "wallets/balance/", "tier": "private"},
            "fetch_orders": {"method": "GET", "path": "market/user_orders/list", "tier": "private"},
            "create_order": {"method": "POST", "path": "market/create_order", "tier": "private"},
            "cancel_order": {"method": "DELETE", "path": "market/user_orders", "tier": "private"},
        },
        "has": {
            "create_market_order": True,
            "fetch_trades": False,
        },
        "markets": {
            "BTC/BRL": {"id": "BRLBTC", "base": "BTC", "quote": "BRL", "suffix": "Bitcoin"},
        },
        "fees": {
            "trading": {"maker": 0.003, "taker": 0.007},
        },
        "auth": {
            "private": "token",
        },
        "options": {
            "signing": {
                "private": {"header_name": "Authorization", "token_format": "ApiToken {api_key}"},
            },
        },
    }

    def check_venue_error(self, payload: Any, operation: Operation) -> None:
        if isinstance(payload, dict) and payload.get("message") is not None:
            raise VenueReportedError(
                str(payload["message"]),
                venue_id=self.id,
                operation=operation.value,
                raw=payload,
            )

    # --------------------------------------------------------
    # PUBLIC
    # --------------------------------------------------------

    async def _fetch_ticker(self, market: MarketDescriptor) -> Ticker:
        payload = await self.request(Operation.FETCH_TICKER, {"coin": market.base})
        return normalize_ticker(
            extract_envelope(payload, "data", dict),
            market,
            self.milliseconds(),
            TICKER_FIELDS,
            timestamp_key="date",
            timestamp_parser=parse_iso8601,
        )

    async def _fetch_order_book(self, market: MarketDescriptor, limit: Optional[int]) -> OrderBook:
        payload = await self.request(Operation.FETCH_ORDER_BOOK, {"coin": market.base})
        return normalize_order_book(
            extract_envelope(payload, "data", dict),
            market,
            self.milliseconds(),
            price_key="unit_price",
            amount_key="amount",
            limit=limit,
        )

    # --------------------------------------------------------
    # PRIVATE
    # --------------------------------------------------------

    async def _fetch_balance(self) -> Balance:
        payload = await self.request(Operation.FETCH_BALANCE)
        return normalize_balance(
            extract_envelope(payload, "data", list),
            currency_key="currency_code",
            free_key="available_amount",
            used_key="locked_amount",
            info=payload,
            now=self.milliseconds(),
        )

    async def _create_order(
        self,
        market: MarketDescriptor,
        order_type: OrderType,
        side: OrderSide,
        amount: float,
        price: Optional[float],
    ) -> Order:
        params = {
            "type": side.value,
            "currency": market.base,
            "subtype": SUBTYPES[order_type],
            "amount": amount,
        }
        if order_type == OrderType.LIMIT:
            params["unit_price"] = price

        payload = await self.request(Operation.CREATE_ORDER, params)
        data = extract_envelope(payload, "data", dict)

        # The creation echo reports "amount" rather than "requested_amount"
        defaults = {
            "requested_amount": data.get("amount", amount),
            "unit_price": price,
            "subtype": params["subtype"],
            "type": side.value,
        }
        order = self._parse_order(data, market, defaults)
        self._logger.info(f"Order created: {order.id} {side.value} {amount} {market.symbol}")
        return order

    async def _cancel_order(
        self,
        id: str,
        market: Optional[MarketDescriptor],
    ) -> OrderCancellation:
        payload = await self.request(Operation.CANCEL_ORDER, {"id": id})
        if not isinstance(payload, dict) or "data" not in payload:
            raise MalformedResponse(
                f"Cancel response has no 'data' envelope ({type(payload).__name__})",
                venue_id=self.id,
                operation=Operation.CANCEL_ORDER.value,
                raw=payload,
            )

        success = payload["data"] is None
        return OrderCancellation(
            id=id,
            symbol=market.symbol if market else None,
            success=success,
            status=OrderStatus.CANCELED if success else None,
            info=payload,
        )

    async def _fetch_orders(self, market: Optional[MarketDescriptor]) -> List[Order]:
        if market is None:
            raise InvalidArgument(
                "fetch_orders requires a symbol",
                venue_id=self.id,
                operation=Operation.FETCH_ORDERS.value,
            )

        payload = await self.request(Operation.FETCH_ORDERS, {"currency": market.base})
        data = extract_envelope(payload, "data", dict)
        return [self._parse_order(raw, market) for raw in extract_envelope(data, "orders", list)]

    def _parse_order(
        self,
        raw: Any,
        market: MarketDescriptor,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Order:
        return normalize_order(
            raw,
            market,
            ORDER_FIELDS,
            STATUS_TABLE,
            type_table=SUBTYPE_TABLE,
            timestamp_parser=parse_iso8601,
            defaults=defaults,
        )
