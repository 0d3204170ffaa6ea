"""
Bitcoin Trade Adapter Tests.

============================================================
PURPOSE
============================================================
End-to-end tests of the Bitcoin Trade adapter against a
scripted transport: request shape, authentication header,
envelope handling, error classification and normalization.

============================================================
"""

import logging
import time

import pytest

from exchange_gateway import (
    BitcoinTradeAdapter,
    Credentials,
    GatewayConfig,
    InvalidArgument,
    InvalidOrderParameters,
    MalformedResponse,
    MissingCredentials,
    MockTransport,
    OrderSide,
    OrderStatus,
    OrderType,
    RateLimiter,
    RequestTimeout,
    TransportFailure,
    UnknownSymbol,
    UnsupportedOperation,
    VenueReportedError,
)


PUBLIC = "https://api.bitcointrade.com.br/v1/public"
PRIVATE = "https://api.bitcointrade.com.br/v1"
CREDS = Credentials(api_key="btc-token-123", secret="")

NOW = 1500000000000


def make_adapter(credentials=CREDS, **kwargs):
    """Adapter wired to a MockTransport with rate limiting off."""
    transport = MockTransport()
    kwargs.setdefault("config", GatewayConfig(enable_rate_limit=False))
    adapter = BitcoinTradeAdapter(credentials=credentials, transport=transport, **kwargs)
    return adapter, transport


def order_record(**changes):
    record = {
        "id": "U2FsdGVkX1",
        "code": "SkvtQoOZf",
        "type": "buy",
        "subtype": "limited",
        "requested_amount": 0.2,
        "remaining_amount": 0.05,
        "executed_amount": 0.15,
        "unit_price": 10000.0,
        "total_price": 1500.0,
        "status": "executed_partially",
        "create_date": "2017-07-14T02:40:00.000Z",
        "update_date": "2017-07-14T02:41:00.000Z",
    }
    record.update(changes)
    return record


# ============================================================
# PUBLIC DATA
# ============================================================

class TestPublicData:
    """Tests for ticker and order book."""

    @pytest.mark.asyncio
    async def test_order_book(self):
        """Test order book is sorted, numeric and stamped with call time."""
        adapter, transport = make_adapter(credentials=None)
        transport.add_response(
            "GET",
            f"{PUBLIC}/BTC/orders/",
            {"data": {"bids": [["100", "1"], ["90", "2"]], "asks": [["110", "1"]]}},
        )

        before = int(time.time() * 1000)
        book = await adapter.fetch_order_book("BTC/BRL")
        after = int(time.time() * 1000)

        assert book.symbol == "BTC/BRL"
        assert book.bids == [(100.0, 1.0), (90.0, 2.0)]
        assert book.asks == [(110.0, 1.0)]
        assert before <= book.timestamp <= after
        assert transport.last_call.url == f"{PUBLIC}/BTC/orders/"
        assert transport.last_call.headers == {}

    @pytest.mark.asyncio
    async def test_order_book_object_levels(self):
        """Test levels given as objects are read by key."""
        adapter, transport = make_adapter()
        transport.add_response(
            "GET",
            f"{PUBLIC}/BTC/orders/",
            {
                "message": None,
                "data": {
                    "bids": [{"unit_price": 90, "amount": 2, "code": "a"}, {"unit_price": 100, "amount": 1, "code": "b"}],
                    "asks": [{"unit_price": 120, "amount": 1, "code": "c"}, {"unit_price": 110, "amount": 3, "code": "d"}],
                },
            },
        )

        book = await adapter.fetch_order_book("BTC/BRL", limit=1)

        assert book.bids == [(100.0, 1.0)]
        assert book.asks == [(110.0, 3.0)]

    @pytest.mark.asyncio
    async def test_invalid_limit(self):
        """Test non-positive limit rejected before any call."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidArgument):
            await adapter.fetch_order_book("BTC/BRL", limit=0)

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_ticker(self):
        """Test ticker fields and venue timestamp."""
        adapter, transport = make_adapter()
        transport.add_response(
            "GET",
            f"{PUBLIC}/BTC/ticker/",
            {
                "message": None,
                "data": {
                    "high": 15999.12,
                    "low": 15000.12,
                    "volume": 123.45,
                    "trades_quantity": 123,
                    "last": 15500.12,
                    "buy": 15400.12,
                    "sell": 15600.12,
                    "date": "2017-07-14T02:40:00.000Z",
                },
            },
        )

        ticker = await adapter.fetch_ticker("BTC/BRL")

        assert ticker.symbol == "BTC/BRL"
        assert ticker.bid == 15400.12
        assert ticker.ask == 15600.12
        assert ticker.last == 15500.12
        assert ticker.base_volume == 123.45
        assert ticker.quote_volume is None
        assert ticker.timestamp == NOW

    @pytest.mark.asyncio
    async def test_unknown_symbol(self):
        """Test unknown symbol fails before any call."""
        adapter, transport = make_adapter()

        with pytest.raises(UnknownSymbol):
            await adapter.fetch_ticker("ETH/BRL")

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_trades_unsupported(self):
        """Test fetch_trades is not offered."""
        adapter, transport = make_adapter()

        assert "fetch_trades" not in adapter.describe()
        with pytest.raises(UnsupportedOperation):
            await adapter.fetch_trades("BTC/BRL")

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_url_override(self):
        """Test overridden base URL is used."""
        adapter, transport = make_adapter(overrides={"urls": {"public": "https://sandbox.test/v1/public"}})
        transport.add_response("GET", "https://sandbox.test/", {"data": {"bids": [], "asks": []}})

        book = await adapter.fetch_order_book("BTC/BRL")

        assert book.bids == []
        assert transport.last_call.url == "https://sandbox.test/v1/public/BTC/orders/"


# ============================================================
# BALANCE
# ============================================================

class TestBalance:
    """Tests for fetch_balance."""

    @pytest.mark.asyncio
    async def test_balance(self):
        """Test balance mapping and token header."""
        adapter, transport = make_adapter()
        transport.add_response(
            "GET",
            f"{PRIVATE}/wallets/balance/",
            {
                "message": None,
                "data": [
                    {"currency_code": "BTC", "available_amount": "1.5", "locked_amount": "0.5"},
                    {"currency_code": "brl", "available_amount": 100, "locked_amount": 0},
                ],
            },
        )

        balance = await adapter.fetch_balance()

        assert balance["BTC"].free == 1.5
        assert balance["BTC"].used == 0.5
        assert balance["BTC"].total == 2.0
        assert balance["BRL"].total == 100.0
        assert transport.last_call.method == "GET"
        assert transport.last_call.headers["Authorization"] == "ApiToken btc-token-123"

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        """Test private call without credentials makes no request."""
        limiter = RateLimiter()
        adapter, transport = make_adapter(
            credentials=None,
            rate_limiter=limiter,
            config=GatewayConfig(),
            overrides={"rate_limit": 0},
        )

        with pytest.raises(MissingCredentials):
            await adapter.fetch_balance()

        assert transport.call_count == 0
        assert limiter.state("btctrade").granted == 0

    @pytest.mark.asyncio
    async def test_venue_message(self):
        """Test non-null message is a venue-reported error."""
        adapter, transport = make_adapter()
        payload = {"message": "Invalid API token", "data": None}
        transport.add_response("GET", f"{PRIVATE}/wallets/balance/", payload)

        with pytest.raises(VenueReportedError, match="Invalid API token") as exc_info:
            await adapter.fetch_balance()

        assert exc_info.value.raw == payload
        assert exc_info.value.venue_id == "btctrade"

    @pytest.mark.asyncio
    async def test_venue_message_wins_over_status(self):
        """Test venue message on an HTTP 401 is still the venue's error."""
        adapter, transport = make_adapter()
        transport.add_response(
            "GET", f"{PRIVATE}/wallets/balance/", {"message": "Unauthorized", "data": None}, status=401
        )

        with pytest.raises(VenueReportedError):
            await adapter.fetch_balance()

    @pytest.mark.asyncio
    async def test_malformed_data(self):
        """Test non-list data is malformed."""
        adapter, transport = make_adapter()
        transport.add_response("GET", f"{PRIVATE}/wallets/balance/", {"message": None, "data": "oops"})

        with pytest.raises(MalformedResponse):
            await adapter.fetch_balance()

    @pytest.mark.asyncio
    async def test_http_error_without_json(self):
        """Test HTTP 500 with an HTML body is a transport failure."""
        adapter, transport = make_adapter()
        transport.add_response("GET", f"{PRIVATE}/wallets/balance/", "<html>oops</html>", status=500)

        with pytest.raises(TransportFailure) as exc_info:
            await adapter.fetch_balance()

        assert exc_info.value.http_status == 500

    @pytest.mark.asyncio
    async def test_http_error_with_clean_json(self):
        """Test HTTP 502 without a venue message is a transport failure."""
        adapter, transport = make_adapter()
        transport.add_response("GET", f"{PRIVATE}/wallets/balance/", {"message": None, "data": None}, status=502)

        with pytest.raises(TransportFailure):
            await adapter.fetch_balance()

    @pytest.mark.asyncio
    async def test_not_json(self):
        """Test 200 with a non-JSON body is malformed."""
        adapter, transport = make_adapter()
        transport.add_response("GET", f"{PRIVATE}/wallets/balance/", "not json")

        with pytest.raises(MalformedResponse):
            await adapter.fetch_balance()

    @pytest.mark.asyncio
    async def test_timeout_keeps_rate_limit_grant(self):
        """Test timeout surfaces and the granted slot is not returned."""
        limiter = RateLimiter()
        adapter, transport = make_adapter(
            rate_limiter=limiter,
            config=GatewayConfig(timeout_seconds=2.0),
            overrides={"rate_limit": 0},
        )
        transport.fail_next(RequestTimeout(2.0))

        with pytest.raises(RequestTimeout) as exc_info:
            await adapter.fetch_balance()

        assert exc_info.value.venue_id == "btctrade"
        assert transport.last_call.timeout == 2.0
        assert limiter.state("btctrade").granted == 1

    @pytest.mark.asyncio
    async def test_undecodable_body_gets_venue_context(self, caplog):
        """Test a transport decode failure is tagged and logged."""
        adapter, transport = make_adapter()
        transport.fail_next(MalformedResponse("Response body is not valid text", raw=b"\xff\xfe"))

        with caplog.at_level(logging.WARNING, logger="exchange_gateway.venue.btctrade"):
            with pytest.raises(MalformedResponse) as exc_info:
                await adapter.fetch_balance()

        assert exc_info.value.venue_id == "btctrade"
        assert exc_info.value.operation == "fetch_balance"
        assert exc_info.value.raw == b"\xff\xfe"
        assert "RESPONSE_ERROR" in caplog.text

    @pytest.mark.asyncio
    async def test_request_params_logged_masked(self, caplog):
        """Test request params reach the debug log with secrets masked."""
        adapter, transport = make_adapter()
        transport.add_response("DELETE", f"{PRIVATE}/market/user_orders", {"message": None, "data": None})

        with caplog.at_level(logging.DEBUG, logger="exchange_gateway.venue.btctrade"):
            await adapter.cancel_order("abc123")

        assert '"params": {"id": "abc123"}' in caplog.text
        assert "btc-token-123" not in caplog.text


# ============================================================
# ORDERS
# ============================================================

class TestOrders:
    """Tests for create, cancel and list."""

    @pytest.mark.asyncio
    async def test_limit_order_requires_price(self):
        """Test limit order without price fails before any call."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidOrderParameters):
            await adapter.create_order("BTC/BRL", "limit", "buy", 1)

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_non_positive_amount(self):
        """Test zero amount rejected."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidOrderParameters):
            await adapter.create_order("BTC/BRL", "limit", "buy", 0, 100)

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_invalid_side(self):
        """Test unknown side rejected."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidArgument):
            await adapter.create_order("BTC/BRL", "limit", "hold", 1, 100)

    @pytest.mark.asyncio
    async def test_create_limit_order(self):
        """Test request body and normalized echo."""
        adapter, transport = make_adapter()
        transport.add_response(
            "POST",
            f"{PRIVATE}/market/create_order",
            {
                "message": None,
                "data": {
                    "id": "abc123",
                    "code": "X1",
                    "type": "buy",
                    "subtype": "limited",
                    "unit_price": 100,
                    "amount": 1,
                    "user_code": "u",
                    "create_date": "2017-07-14T02:40:00.000Z",
                },
            },
        )

        order = await adapter.create_order("BTC/BRL", "limit", "buy", 1, 100)

        body = transport.last_call.json()
        assert body["type"] == "buy"
        assert body["currency"] == "BTC"
        assert body["subtype"] == "limited"
        assert body["amount"] == 1
        assert body["unit_price"] == 100
        assert order.id == "abc123"
        assert order.symbol == "BTC/BRL"
        assert order.type == OrderType.LIMIT
        assert order.side == OrderSide.BUY
        assert order.price == 100.0
        assert order.amount == 1.0
        assert order.status == OrderStatus.OPEN
        assert order.timestamp == NOW

    @pytest.mark.asyncio
    async def test_create_market_order(self):
        """Test market order drops the price."""
        adapter, transport = make_adapter()
        transport.add_response(
            "POST",
            f"{PRIVATE}/market/create_order",
            {"message": None, "data": {"id": "m1", "type": "sell", "subtype": "market", "amount": 0.5}},
        )

        order = await adapter.create_order("BTC/BRL", OrderType.MARKET, OrderSide.SELL, 0.5, price=123)

        body = transport.last_call.json()
        assert body["subtype"] == "market"
        assert "unit_price" not in body
        assert order.type == OrderType.MARKET
        assert order.side == OrderSide.SELL
        assert order.price is None

    @pytest.mark.asyncio
    async def test_cancel_order(self):
        """Test cancel sends the id and reports success."""
        adapter, transport = make_adapter()
        transport.add_response("DELETE", f"{PRIVATE}/market/user_orders", {"message": None, "data": None})

        result = await adapter.cancel_order("abc123", "BTC/BRL")

        assert transport.last_call.method == "DELETE"
        assert transport.last_call.json() == {"id": "abc123"}
        assert result.success is True
        assert result.status == OrderStatus.CANCELED
        assert result.symbol == "BTC/BRL"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["null", "[]", '"ok"', '{"message": null}'])
    async def test_cancel_malformed_payload(self, body):
        """Test cancel response without a data envelope is malformed."""
        adapter, transport = make_adapter()
        transport.add_response("DELETE", f"{PRIVATE}/market/user_orders", body)

        with pytest.raises(MalformedResponse) as exc_info:
            await adapter.cancel_order("abc123")

        assert exc_info.value.operation == "cancel_order"

    @pytest.mark.asyncio
    async def test_cancel_requires_id(self):
        """Test empty id rejected."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidArgument):
            await adapter.cancel_order("  ")

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_fetch_orders_requires_symbol(self):
        """Test listing without a symbol is rejected."""
        adapter, transport = make_adapter()

        with pytest.raises(InvalidArgument):
            await adapter.fetch_orders()

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_fetch_orders(self):
        """Test order list mapping."""
        adapter, transport = make_adapter()
        transport.add_response(
            "GET",
            f"{PRIVATE}/market/user_orders/list",
            {
                "message": None,
                "data": {
                    "pagination": {"total_pages": 1, "current_page": 1},
                    "orders": [
                        order_record(),
                        order_record(id="two", status="executed_completely", remaining_amount=None, type="sell"),
                        order_record(id="three", status="canceled"),
                    ],
                },
            },
        )

        orders = await adapter.fetch_orders("BTC/BRL")

        assert transport.last_call.url == f"{PRIVATE}/market/user_orders/list?currency=BTC"
        assert [o.status for o in orders] == [OrderStatus.OPEN, OrderStatus.CLOSED, OrderStatus.CANCELED]
        first = orders[0]
        assert first.amount == 0.2
        assert first.filled == 0.15
        assert first.remaining == pytest.approx(0.05)
        assert first.cost == 1500.0
        assert first.timestamp == NOW
        assert orders[1].side == OrderSide.SELL
        assert orders[1].remaining == pytest.approx(0.05)


# ============================================================
# DESCRIPTOR
# ============================================================

class TestDescriptor:
    """Tests for capabilities and fees."""

    def test_capabilities(self):
        """Test advertised capabilities."""
        adapter, _ = make_adapter()

        capabilities = adapter.describe()

        assert "fetch_order_book" in capabilities
        assert "create_market_order" in capabilities
        assert "fetch_trades" not in capabilities

    def test_calculate_fee(self):
        """Test taker fee in quote currency."""
        adapter, _ = make_adapter()

        fee = adapter.calculate_fee("BTC/BRL", "buy", 2, 1000)

        assert fee["currency"] == "BRL"
        assert fee["rate"] == 0.007
        assert fee["cost"] == pytest.approx(14.0)

    @pytest.mark.asyncio
    async def test_close_leaves_injected_transport_open(self):
        """Test adapter does not close a transport it did not create."""
        adapter, transport = make_adapter()

        async with adapter:
            pass

        assert not transport.closed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
