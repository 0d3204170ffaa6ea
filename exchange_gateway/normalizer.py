"""
Exchange Gateway - Response Normalizer.

============================================================
PURPOSE
============================================================
Pure functions mapping raw venue payloads to canonical
entities (Ticker, OrderBook, Balance, Order, Trade).

RULES:
- Missing structural fields (envelope, book sides, record
  lists) raise MalformedResponse with the raw payload attached
- Present-but-non-numeric values become None (unknown)
- Order book sides are sorted here, never trusted from source
- Balance and order quantities are completed from the other
  two values; they are never left inconsistent
- Status mapping is a table lookup; unlisted states are "open"
- Columnar payloads are zipped into records first, so field
  mapping is identical for JSON-object and columnar sources

============================================================
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .config import MarketDescriptor
from .errors import MalformedResponse
from .types import (
    Balance,
    BalanceEntry,
    Order,
    OrderBook,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker,
    Trade,
)


logger = logging.getLogger(__name__)


TimestampParser = Callable[[Any], Optional[int]]

# fromisoformat before 3.11 accepts only 3 or 6 fraction digits
FRACTION_PATTERN = re.compile(r"\.(\d+)")

DEFAULT_SIDE_TABLE: Dict[str, OrderSide] = {
    "buy": OrderSide.BUY,
    "sell": OrderSide.SELL,
}

DEFAULT_TYPE_TABLE: Dict[str, OrderType] = {
    "market": OrderType.MARKET,
    "limit": OrderType.LIMIT,
}


# ============================================================
# FIELD PARSING
# ============================================================

def safe_float(value: Any) -> Optional[float]:
    """
    Parse a numeric field defensively.

    Returns:
        float, or None if absent, non-numeric, NaN or infinite
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_string(record: Mapping[str, Any], key: Optional[str]) -> Optional[str]:
    if key is None:
        return None
    value = record.get(key)
    if value is None or value == "":
        return None
    return str(value)


def scaled(value: Optional[float], scale: float) -> Optional[float]:
    if value is None:
        return None
    return value / scale


def parse_iso8601(value: Any) -> Optional[int]:
    """Parse an ISO-8601 / 'YYYY-MM-DD HH:MM:SS' string to ms. Naive means UTC."""
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def parse_seconds(value: Any) -> Optional[int]:
    seconds = safe_float(value)
    return None if seconds is None else int(seconds * 1000)


def normalize_status(
    raw_status: Any,
    table: Mapping[str, OrderStatus],
    default: OrderStatus = OrderStatus.OPEN,
) -> OrderStatus:
    """
    Map a venue status to the canonical three-state status.

    Lookup is case-insensitive on the string form. Anything the
    table does not list maps to ``default`` (open).
    """
    if raw_status is None:
        return default
    key = str(raw_status).strip().lower()
    lowered = {str(k).lower(): v for k, v in table.items()}
    return lowered.get(key, default)


def _lookup(raw: Any, table: Mapping[str, Any]) -> Any:
    if raw is None:
        return None
    return {str(k).lower(): v for k, v in table.items()}.get(str(raw).strip().lower())


# ============================================================
# STRUCTURE
# ============================================================

def extract_envelope(
    payload: Any,
    key: str,
    expected: Union[type, Tuple[type, ...]] = (dict, list),
) -> Any:
    """
    Return ``payload[key]`` if it has the expected shape.

    Raises:
        MalformedResponse: If payload is not a dict, the key is
            missing, or the value has the wrong type
    """
    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"Expected an object with '{key}', got {type(payload).__name__}",
            raw=payload,
        )
    if key not in payload or payload[key] is None:
        raise MalformedResponse(
            f"Response missing '{key}' field. Keys: {list(payload.keys())}",
            raw=payload,
        )
    value = payload[key]
    if not isinstance(value, expected):
        raise MalformedResponse(
            f"Expected '{key}' to be {expected}, got {type(value).__name__}",
            raw=payload,
        )
    return value


def zip_columns(columns: Any, rows: Any) -> List[Dict[str, Any]]:
    """
    Zip a column-name list with row value lists into records.

    Raises:
        MalformedResponse: If shapes do not line up
    """
    if not isinstance(columns, list) or not isinstance(rows, list):
        raise MalformedResponse(
            "Columnar payload needs a column list and a row list",
            raw={"columns": columns, "rows": rows},
        )

    records = []
    for row in rows:
        if not isinstance(row, list) or len(row) != len(columns):
            raise MalformedResponse(
                f"Row does not match {len(columns)} columns: {row!r}",
                raw={"columns": columns, "rows": rows},
            )
        records.append(dict(zip(columns, row)))
    return records


# ============================================================
# TICKER
# ============================================================

TICKER_FIELDS = (
    "high",
    "low",
    "bid",
    "ask",
    "last",
    "base_volume",
    "quote_volume",
    "vwap",
    "open",
    "close",
    "previous_close",
    "change",
    "percentage",
    "average",
)


def normalize_ticker(
    raw: Any,
    market: MarketDescriptor,
    now: int,
    fields: Mapping[str, str],
    timestamp_key: Optional[str] = None,
    timestamp_parser: TimestampParser = parse_iso8601,
) -> Ticker:
    """
    Map a raw ticker object.

    Args:
        raw: Ticker object from the venue
        market: Resolved market
        now: Call time (ms), used when the venue reports no time
        fields: canonical field name -> venue key
        timestamp_key: Venue key holding the observation time
        timestamp_parser: Converts that value to ms

    Raises:
        MalformedResponse: If raw is not an object
    """
    if not isinstance(raw, dict):
        raise MalformedResponse(
            f"Ticker must be an object, got {type(raw).__name__}",
            raw=raw,
            symbol=market.symbol,
        )

    unknown = set(fields) - set(TICKER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown ticker fields: {sorted(unknown)}")

    values = {name: safe_float(raw.get(key)) for name, key in fields.items()}

    timestamp = None
    if timestamp_key is not None:
        timestamp = timestamp_parser(raw.get(timestamp_key))
    if timestamp is None:
        timestamp = now

    return Ticker(symbol=market.symbol, timestamp=timestamp, info=raw, **values)


# ============================================================
# ORDER BOOK
# ============================================================

def _parse_level(
    row: Any,
    price_key: Union[int, str],
    amount_key: Union[int, str],
    raw: Any,
) -> Tuple[Optional[float], Optional[float]]:
    try:
        if isinstance(row, (list, tuple)):
            # Keyed layouts still accept positional [price, amount] rows
            price_index = price_key if isinstance(price_key, int) else 0
            amount_index = amount_key if isinstance(amount_key, int) else 1
            return safe_float(row[price_index]), safe_float(row[amount_index])
        if isinstance(row, dict):
            return safe_float(row.get(price_key)), safe_float(row.get(amount_key))
    except (IndexError, TypeError):
        pass
    raise MalformedResponse(f"Unreadable order book level: {row!r}", raw=raw)


def _parse_side(
    rows: Any,
    side: str,
    price_key: Union[int, str],
    amount_key: Union[int, str],
    raw: Any,
) -> List[Tuple[float, float]]:
    if not isinstance(rows, list):
        raise MalformedResponse(f"Order book '{side}' must be a list", raw=raw)

    levels = []
    for row in rows:
        price, amount = _parse_level(row, price_key, amount_key, raw)
        if price is None or amount is None:
            logger.warning(f"Dropping order book level with unknown price/amount: {row!r}")
            continue
        levels.append((price, amount))
    return levels


def normalize_order_book(
    raw: Any,
    market: MarketDescriptor,
    now: int,
    bids_key: str = "bids",
    asks_key: str = "asks",
    price_key: Union[int, str] = 0,
    amount_key: Union[int, str] = 1,
    limit: Optional[int] = None,
    timestamp: Optional[int] = None,
) -> OrderBook:
    """
    Map a raw order book.

    Levels may be ``[price, amount, ...]`` lists or objects;
    ``price_key`` / ``amount_key`` are indexes or keys accordingly.
    Bids are sorted descending and asks ascending by price, then
    each side is cut to ``limit`` levels.

    Raises:
        MalformedResponse: If either side is missing or unreadable
    """
    bids_raw = extract_envelope(raw, bids_key, list)
    asks_raw = extract_envelope(raw, asks_key, list)

    bids = sorted(
        _parse_side(bids_raw, bids_key, price_key, amount_key, raw),
        key=lambda level: level[0],
        reverse=True,
    )
    asks = sorted(
        _parse_side(asks_raw, asks_key, price_key, amount_key, raw),
        key=lambda level: level[0],
    )

    if limit is not None:
        bids = bids[:limit]
        asks = asks[:limit]

    return OrderBook(
        symbol=market.symbol,
        timestamp=timestamp if timestamp is not None else now,
        bids=bids,
        asks=asks,
        info=raw,
    )


# ============================================================
# BALANCE
# ============================================================

def normalize_balance(
    records: Any,
    currency_key: str,
    free_key: Optional[str] = None,
    used_key: Optional[str] = None,
    total_key: Optional[str] = None,
    info: Any = None,
    now: Optional[int] = None,
    scale: float = 1.0,
) -> Balance:
    """
    Map a list of per-asset balance records.

    Any two of free/used/total determine the third.

    Raises:
        MalformedResponse: If records is not a list of objects
            or a record has no currency code
    """
    if not isinstance(records, list):
        raise MalformedResponse(
            f"Balance records must be a list, got {type(records).__name__}",
            raw=info if info is not None else records,
        )

    assets: Dict[str, BalanceEntry] = {}
    for record in records:
        if not isinstance(record, dict):
            raise MalformedResponse(f"Balance record must be an object: {record!r}", raw=info)
        code = safe_string(record, currency_key)
        if code is None:
            raise MalformedResponse(f"Balance record missing '{currency_key}'", raw=info)

        entry = BalanceEntry.derive(
            free=scaled(safe_float(record.get(free_key)) if free_key else None, scale),
            used=scaled(safe_float(record.get(used_key)) if used_key else None, scale),
            total=scaled(safe_float(record.get(total_key)) if total_key else None, scale),
        )
        assets[code.upper()] = entry

    return Balance(assets=assets, timestamp=now, info=info)


# ============================================================
# ORDER
# ============================================================

def complete_quantities(
    amount: Optional[float],
    filled: Optional[float],
    remaining: Optional[float],
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """
    Enforce ``filled + remaining == amount``.

    Amount and filled are authoritative when all three are known.
    """
    if amount is not None and filled is not None:
        derived = amount - filled
        if remaining is not None and not math.isclose(remaining, derived, rel_tol=1e-9, abs_tol=1e-12):
            logger.debug(f"Venue remaining {remaining} inconsistent, using {derived}")
        remaining = derived
    elif amount is not None and remaining is not None:
        filled = amount - remaining
    elif filled is not None and remaining is not None:
        amount = filled + remaining
    return amount, filled, remaining


def normalize_order(
    raw: Any,
    market: MarketDescriptor,
    fields: Mapping[str, str],
    status_table: Mapping[str, OrderStatus],
    type_table: Optional[Mapping[str, OrderType]] = None,
    side_table: Optional[Mapping[str, OrderSide]] = None,
    timestamp_parser: TimestampParser = parse_iso8601,
    scale: float = 1.0,
    defaults: Optional[Mapping[str, Any]] = None,
) -> Order:
    """
    Map a raw order record.

    Args:
        raw: Order object (already zipped if columnar)
        market: Resolved market
        fields: canonical name -> venue key for id, price, amount,
            filled, remaining, cost, status, type, side, timestamp
        status_table: venue status -> OrderStatus
        type_table: venue type -> OrderType
        side_table: venue side -> OrderSide
        timestamp_parser: Converts the timestamp value to ms
        scale: Divisor applied to price and quantities
        defaults: Values used where the record has no such key
            (e.g. the request's price echoed back)

    Raises:
        MalformedResponse: If raw is not an object
    """
    if not isinstance(raw, dict):
        raise MalformedResponse(
            f"Order must be an object, got {type(raw).__name__}",
            raw=raw,
            symbol=market.symbol,
        )

    record = dict(defaults or {})
    record.update({k: v for k, v in raw.items() if v is not None})

    def number(name: str) -> Optional[float]:
        key = fields.get(name)
        return scaled(safe_float(record.get(key)), scale) if key else None

    amount, filled, remaining = complete_quantities(
        number("amount"),
        number("filled"),
        number("remaining"),
    )

    timestamp_key = fields.get("timestamp")
    return Order(
        id=safe_string(record, fields.get("id")),
        symbol=market.symbol,
        type=_lookup(record.get(fields.get("type")), type_table or DEFAULT_TYPE_TABLE),
        side=_lookup(record.get(fields.get("side")), side_table or DEFAULT_SIDE_TABLE),
        price=number("price"),
        amount=amount,
        filled=filled,
        remaining=remaining,
        cost=number("cost"),
        status=normalize_status(record.get(fields.get("status")), status_table),
        timestamp=timestamp_parser(record.get(timestamp_key)) if timestamp_key else None,
        info=raw,
    )


# ============================================================
# TRADE
# ============================================================

def normalize_trade(
    raw: Any,
    market: MarketDescriptor,
    fields: Mapping[str, str],
    side_table: Optional[Mapping[str, OrderSide]] = None,
    type_table: Optional[Mapping[str, OrderType]] = None,
    timestamp_parser: TimestampParser = parse_seconds,
) -> Trade:
    """
    Map a raw trade record.

    ``fields`` maps id, timestamp, side, type, price, amount, order
    to venue keys; absent mappings yield unknown values.

    Raises:
        MalformedResponse: If raw is not an object
    """
    if not isinstance(raw, dict):
        raise MalformedResponse(
            f"Trade must be an object, got {type(raw).__name__}",
            raw=raw,
            symbol=market.symbol,
        )

    timestamp_key = fields.get("timestamp")
    return Trade(
        id=safe_string(raw, fields.get("id")),
        symbol=market.symbol,
        timestamp=timestamp_parser(raw.get(timestamp_key)) if timestamp_key else None,
        side=_lookup(raw.get(fields.get("side")), side_table or DEFAULT_SIDE_TABLE),
        type=_lookup(raw.get(fields.get("type")), type_table or DEFAULT_TYPE_TABLE),
        price=safe_float(raw.get(fields.get("price"))),
        amount=safe_float(raw.get(fields.get("amount"))),
        order_id=safe_string(raw, fields.get("order")),
        info=raw,
    )


def normalize_trades(
    raw: Any,
    market: MarketDescriptor,
    fields: Mapping[str, str],
    since: Optional[int] = None,
    limit: Optional[int] = None,
    **kwargs,
) -> List[Trade]:
    """
    Map a list of trades, sorted by timestamp ascending, filtered
    to ``timestamp >= since`` and cut to the last ``limit`` entries.
    """
    if not isinstance(raw, list):
        raise MalformedResponse(
            f"Trades must be a list, got {type(raw).__name__}",
            raw=raw,
            symbol=market.symbol,
        )

    trades = [normalize_trade(item, market, fields, **kwargs) for item in raw]
    trades.sort(key=lambda t: (t.timestamp is None, t.timestamp or 0))
    if since is not None:
        trades = [t for t in trades if t.timestamp is not None and t.timestamp >= since]
    if limit is not None:
        trades = trades[-limit:] if limit > 0 else []
    return trades
