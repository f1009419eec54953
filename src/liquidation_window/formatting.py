from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from .types import ConsolidatedEntry, LiquidationEvent, Side, SymbolRollup


def timestamp_iso(ts: datetime) -> str:
    dt = ts.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def timestamp_from_ms(value_ms: Any) -> datetime | None:
    try:
        ms = float(value_ms)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(ms) or ms < 0:
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return timestamp_from_ms(value)
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_side(value: Any) -> Side | None:
    try:
        return Side(str(value).strip().upper())
    except ValueError:
        return None


def parse_amount(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


def event_to_record(event: LiquidationEvent) -> dict[str, Any]:
    return {
        "symbol": event.symbol,
        "side": event.side.value,
        "type": event.order_type,
        "quantity": event.quantity,
        "price": event.price,
        "usdtValue": event.usdt_value,
        "timestamp": timestamp_iso(event.timestamp),
    }


def event_from_record(record: Any) -> LiquidationEvent:
    """Rebuild an event from a persisted record.

    Raises ValueError when any field is missing or malformed so that callers
    can skip the single record.
    """
    if not isinstance(record, dict):
        raise ValueError(f"record is not an object: {record!r}")

    symbol = str(record.get("symbol") or "").strip()
    if not symbol:
        raise ValueError("record has no symbol")
    side = parse_side(record.get("side"))
    if side is None:
        raise ValueError(f"record has invalid side: {record.get('side')!r}")
    quantity = parse_amount(record.get("quantity"))
    price = parse_amount(record.get("price"))
    if quantity is None or price is None:
        raise ValueError("record has invalid quantity or price")
    timestamp = parse_timestamp(record.get("timestamp"))
    if timestamp is None:
        raise ValueError(f"record has invalid timestamp: {record.get('timestamp')!r}")

    usdt_value = parse_amount(record.get("usdtValue"))
    if usdt_value is None:
        usdt_value = quantity * price

    return LiquidationEvent(
        symbol=symbol,
        side=side,
        order_type=str(record.get("type") or ""),
        quantity=quantity,
        price=price,
        usdt_value=usdt_value,
        timestamp=timestamp,
    )


def consolidated_to_record(entry: ConsolidatedEntry) -> dict[str, Any]:
    return {
        "symbol": entry.symbol,
        "side": entry.side.value,
        "type": entry.order_type,
        "quantity": entry.quantity,
        "usdtValue": entry.usdt_value,
        "timestamp": timestamp_iso(entry.timestamp),
    }


def rollup_to_record(rollup: SymbolRollup) -> dict[str, Any]:
    return {
        "symbol": rollup.symbol,
        "totalQuantity": rollup.total_quantity,
        "totalUsdtValue": rollup.total_usdt_value,
        "avgPrice": rollup.avg_price,
        "count": rollup.count,
        "lastTimestamp": timestamp_iso(rollup.last_timestamp),
        "sides": {side.value: rollup.sides.get(side, 0.0) for side in Side},
    }
