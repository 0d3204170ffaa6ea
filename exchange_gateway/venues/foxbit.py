"""
FoxBit Venue Adapter.

============================================================
PURPOSE
============================================================
Adapter for FoxBit on the Blinktrade platform.

VENUE SPECIFICS:
- Public data: ``{currency}/ticker|orderbook|trades`` with the
  base coin in ``crypto_currency``; plain units
- Private calls are FIX-like messages: the path is a message
  type (``D`` new order, ``F`` cancel, ``U2`` balance, ``U4``
  orders) injected as ``MsgType`` and signed with
  HMAC-SHA256(secret, nonce)
- Private quantities and prices are integers in satoshi
  (``quantity_scale``)
- ``Status`` other than 200 in a payload is a venue failure
- Limit orders only

============================================================
API DOCUMENTATION
============================================================
https://blinktrade.com/docs

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from ..config import MarketDescriptor
from ..errors import MalformedResponse, VenueReportedError
from ..normalizer import (
    extract_envelope,
    normalize_balance,
    normalize_order,
    normalize_order_book,
    normalize_status,
    normalize_ticker,
    normalize_trades,
    parse_iso8601,
    parse_seconds,
    zip_columns,
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
    Trade,
)
from .base import VenueAdapter


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

BLINKTRADE_PUBLIC_URL = "https://api.blinktrade.com/api/v1"
BLINKTRADE_PRIVATE_URL = "https://api.blinktrade.com/tapi/v1"

SATOSHI = 100000000

# FIX tag values
SIDE_BUY = "1"
SIDE_SELL = "2"
ORD_TYPE_MARKET = "1"
ORD_TYPE_LIMIT = "2"
ORD_STATUS_REJECTED = "8"

# Message types
MSG_EXECUTION_REPORT = "8"
MSG_BALANCE_RESPONSE = "U3"
MSG_ORDER_LIST_RESPONSE = "U5"

TRADE_FIELDS = {
    "id": "tid",
    "timestamp": "date",
    "side": "side",
    "price": "price",
    "amount": "amount",
}

ORDER_FIELDS = {
    "id": "OrderID",
    "price": "Price",
    "amount": "OrderQty",
    "filled": "CumQty",
    "remaining": "LeavesQty",
    "cost": "Volume",
    "status": "OrdStatus",
    "type": "OrdType",
    "side": "Side",
    "timestamp": "OrderDate",
}

STATUS_TABLE = {
    "0": OrderStatus.OPEN,
    "1": OrderStatus.OPEN,
    "2": OrderStatus.CLOSED,
    "4": OrderStatus.CANCELED,
    ORD_STATUS_REJECTED: OrderStatus.CANCELED,
}

SIDE_TABLE = {
    SIDE_BUY: OrderSide.BUY,
    SIDE_SELL: OrderSide.SELL,
}

ORD_TYPE_TABLE = {
    ORD_TYPE_MARKET: OrderType.MARKET,
    ORD_TYPE_LIMIT: OrderType.LIMIT,
}


class FoxBitAdapter(VenueAdapter):
    """FoxBit / Blinktrade adapter (message-type scheme over HMAC)."""

    DESCRIPTOR: Dict[str, Any] = {
        "id": "foxbit",
        "name": "FoxBit",
        "countries": ["BR"],
        "version": "v1",
        "rate_limit": 1000,
        "urls": {
            "public": BLINKTRADE_PUBLIC_URL,
            "private": BLINKTRADE_PRIVATE_URL,
        },
        "endpoints": {
            "fetch_ticker": {"method": "GET", "path": "{currency}/ticker"},
            "fetch_order_book": {"method": "GET", "path": "{currency}/orderbook"},
            "fetch_trades": {"method": "GET", "path": "{currency}/trades"},
            "create_order": {"method": "POST", "path": "message", "tier": "private"},
            "cancel_order": {"method": "POST", "path": "F", "tier": "private"},
            "fetch_balance": {"method": "POST", "path": "U2", "tier": "private"},
            "fetch_orders": {"method": "POST", "path": "U4", "tier": "private"},
        },
        "has": {
            "create_market_order": False,
        },
        "markets": {
            "BTC/VEF": {"id": "BTCVEF", "base": "BTC", "quote": "VEF", "brokerId": 1, "broker": "SurBitcoin"},
            "BTC/VND": {"id": "BTCVND", "base": "BTC", "quote": "VND", "brokerId": 3, "broker": "VBTC"},
            "BTC/BRL": {"id": "BTCBRL", "base": "BTC", "quote": "BRL", "brokerId": 4, "broker": "FoxBit"},
            "BTC/PKR": {"id": "BTCPKR", "base": "BTC", "quote": "PKR", "brokerId": 8, "broker": "UrduBit"},
            "BTC/CLP": {"id": "BTCCLP", "base": "BTC", "quote": "CLP", "brokerId": 9, "broker": "ChileBit"},
        },
        "auth": {
            "private": "message_type",
        },
        "options": {
            "quantity_scale": SATOSHI,
            "broker_id": 4,
            "signing": {
                "private": {
                    "inner": "hmac",
                    "aliases": {"message": "D"},
                    "inner_options": {
                        "key_header": "APIKey",
                        "nonce_header": "Nonce",
                        "signature_header": "Signature",
                        "message": "nonce",
                    },
                },
            },
        },
    }

    @property
    def quantity_scale(self) -> float:
        return float(self.options.get("quantity_scale", SATOSHI))

    def check_venue_error(self, payload: Any, operation: Operation) -> None:
        if isinstance(payload, dict) and "Status" in payload and payload["Status"] != 200:
            description = payload.get("Description") or payload.get("Detail") or "request failed"
            raise VenueReportedError(
                f"Status {payload['Status']}: {description}",
                venue_id=self.id,
                operation=operation.value,
                raw=payload,
            )

    # --------------------------------------------------------
    # PUBLIC
    # --------------------------------------------------------

    def _public_params(self, market: MarketDescriptor) -> Dict[str, Any]:
        return {"currency": market.quote, "crypto_currency": market.base}

    async def _fetch_ticker(self, market: MarketDescriptor) -> Ticker:
        payload = await self.request(Operation.FETCH_TICKER, self._public_params(market))
        fields = {
            "high": "high",
            "low": "low",
            "bid": "buy",
            "ask": "sell",
            "last": "last",
            "base_volume": "vol",
            "quote_volume": f"vol_{market.quote.lower()}",
        }
        return normalize_ticker(payload, market, self.milliseconds(), fields)

    async def _fetch_order_book(self, market: MarketDescriptor, limit: Optional[int]) -> OrderBook:
        payload = await self.request(Operation.FETCH_ORDER_BOOK, self._public_params(market))
        return normalize_order_book(payload, market, self.milliseconds(), limit=limit)

    async def _fetch_trades(
        self,
        market: MarketDescriptor,
        since: Optional[int],
        limit: Optional[int],
    ) -> List[Trade]:
        params = self._public_params(market)
        if since is not None:
            params["since"] = since // 1000
        if limit is not None:
            params["limit"] = limit

        payload = await self.request(Operation.FETCH_TRADES, params)
        return normalize_trades(
            payload,
            market,
            TRADE_FIELDS,
            since=since,
            limit=limit,
            timestamp_parser=parse_seconds,
        )

    # --------------------------------------------------------
    # PRIVATE
    # --------------------------------------------------------

    async def _fetch_balance(self) -> Balance:
        payload = await self.request(Operation.FETCH_BALANCE, {"BalanceReqID": int(self.nonce())})
        response = self._response(payload, MSG_BALANCE_RESPONSE)

        broker_key = str(self.options.get("broker_id", 4))
        holdings = response.get(broker_key)
        if not isinstance(holdings, dict):
            raise MalformedResponse(
                f"Balance response has no entry for broker {broker_key}",
                venue_id=self.id,
                operation=Operation.FETCH_BALANCE.value,
                raw=payload,
            )

        records = [
            {"currency": code, "total": value, "used": holdings.get(f"{code}_locked")}
            for code, value in holdings.items()
            if not code.endswith("_locked")
        ]
        return normalize_balance(
            records,
            currency_key="currency",
            used_key="used",
            total_key="total",
            info=payload,
            now=self.milliseconds(),
            scale=self.quantity_scale,
        )

    async def _create_order(
        self,
        market: MarketDescriptor,
        order_type: OrderType,
        side: OrderSide,
        amount: float,
        price: Optional[float],
    ) -> Order:
        scale = self.quantity_scale
        params = {
            "ClOrdID": self.nonce(),
            "Symbol": market.id,
            "Side": SIDE_BUY if side == OrderSide.BUY else SIDE_SELL,
            "OrdType": ORD_TYPE_LIMIT,
            "Price": int(round(price * scale)),
            "OrderQty": int(round(amount * scale)),
            "BrokerID": market.broker_id,
        }

        payload = await self.request(Operation.CREATE_ORDER, params)
        report = self._response(payload, MSG_EXECUTION_REPORT)
        if str(report.get("OrdStatus")) == ORD_STATUS_REJECTED:
            reason = report.get("OrdRejReason") or report.get("Text") or "order rejected"
            raise VenueReportedError(
                f"Order rejected: {reason}",
                venue_id=self.id,
                operation=Operation.CREATE_ORDER.value,
                symbol=market.symbol,
                raw=payload,
            )

        order = self._parse_order(report, market)
        self._logger.info(f"Order created: {order.id} {side.value} {amount} {market.symbol}")
        return order

    async def _cancel_order(
        self,
        id: str,
        market: Optional[MarketDescriptor],
    ) -> OrderCancellation:
        payload = await self.request(Operation.CANCEL_ORDER, {"ClOrdID": id})

        # The execution report is optional; without one the acceptance is all we know
        status = None
        if isinstance(payload, dict):
            for report in payload.get("Responses") or []:
                if isinstance(report, dict) and str(report.get("MsgType")) == MSG_EXECUTION_REPORT:
                    status = normalize_status(report.get("OrdStatus"), STATUS_TABLE)
                    break

        return OrderCancellation(
            id=id,
            symbol=market.symbol if market else None,
            success=status in (None, OrderStatus.CANCELED),
            status=status,
            info=payload,
        )

    async def _fetch_orders(self, market: Optional[MarketDescriptor]) -> List[Order]:
        payload = await self.request(Operation.FETCH_ORDERS, {"OrdersReqID": int(self.nonce())})
        response = self._response(payload, MSG_ORDER_LIST_RESPONSE)

        records = zip_columns(response.get("Columns"), response.get("OrdListGrp"))

        orders = []
        for record in records:
            record_market = self.registry.find_by_id(str(record.get("Symbol")))
            if record_market is None:
                self._logger.warning(f"Skipping order on unregistered market {record.get('Symbol')}")
                continue
            if market is not None and record_market.symbol != market.symbol:
                continue
            orders.append(self._parse_order(record, record_market))
        return orders

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    def _response(self, payload: Any, msg_type: str) -> Dict[str, Any]:
        """First entry of ``Responses`` with the given MsgType."""
        for response in extract_envelope(payload, "Responses", list):
            if isinstance(response, dict) and str(response.get("MsgType")) == msg_type:
                return response
        raise MalformedResponse(
            f"No MsgType {msg_type} in response",
            venue_id=self.id,
            raw=payload,
        )

    def _parse_order(self, raw: Dict[str, Any], market: MarketDescriptor) -> Order:
        return normalize_order(
            raw,
            market,
            ORDER_FIELDS,
            STATUS_TABLE,
            type_table=ORD_TYPE_TABLE,
            side_table=SIDE_TABLE,
            timestamp_parser=parse_iso8601,
            scale=self.quantity_scale,
        )
