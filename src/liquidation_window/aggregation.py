from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TypeVar

from .types import ConsolidatedEntry, LiquidationEvent, Side, SymbolRollup

T = TypeVar("T")

ROLLUP_SORT_FIELDS = frozenset({"total_quantity", "total_usdt_value", "avg_price", "count"})
EVENT_SORT_FIELDS = frozenset({"quantity", "price", "usdt_value"})
SORT_ORDERS = frozenset({"asc", "desc"})


@dataclass
class _ConsolidationGroup:
    symbol: str
    side: Side
    order_type: str
    timestamp: datetime
    quantity: float = 0.0
    usdt_value: float = 0.0


@dataclass
class _RollupGroup:
    symbol: str
    last_timestamp: datetime
    total_quantity: float = 0.0
    total_usdt_value: float = 0.0
    count: int = 0
    sides: dict[Side, float] = field(default_factory=lambda: {Side.BUY: 0.0, Side.SELL: 0.0})


def _require_events(events: Sequence[LiquidationEvent] | None) -> Sequence[LiquidationEvent]:
    if events is None:
        raise TypeError("aggregation requires a window snapshot, got None")
    return events


def sort_by_field(items: Sequence[T], sort_by: str, order: str, allowed: frozenset[str]) -> list[T]:
    """Stable sort on a numeric attribute; equal keys keep input order."""
    if sort_by not in allowed:
        raise ValueError(f"Cannot sort by {sort_by!r}; expected one of {sorted(allowed)}")
    if order not in SORT_ORDERS:
        raise ValueError(f"Sort order must be 'asc' or 'desc', got {order!r}")
    return sorted(items, key=lambda item: getattr(item, sort_by), reverse=order == "desc")


def consolidate(events: Sequence[LiquidationEvent]) -> list[ConsolidatedEntry]:
    groups: dict[tuple[str, Side], _ConsolidationGroup] = {}
    for event in _require_events(events):
        key = (event.symbol, event.side)
        group = groups.get(key)
        if group is None:
            group = _ConsolidationGroup(
                symbol=event.symbol,
                side=event.side,
                order_type=event.order_type,
                timestamp=event.timestamp,
            )
            groups[key] = group
        group.quantity += event.quantity
        group.usdt_value += event.usdt_value
        if event.timestamp > group.timestamp:
            group.timestamp = event.timestamp

    entries = [
        ConsolidatedEntry(
            symbol=g.symbol,
            side=g.side,
            order_type=g.order_type,
            quantity=g.quantity,
            usdt_value=g.usdt_value,
            timestamp=g.timestamp,
        )
        for g in groups.values()
    ]
    return sorted(entries, key=lambda e: e.usdt_value, reverse=True)


def top_n(entries: Sequence[T], limit: int) -> list[T]:
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    return list(entries[:limit])


def rollup(
    events: Sequence[LiquidationEvent],
    sort_by: str = "total_usdt_value",
    order: str = "desc",
) -> list[SymbolRollup]:
    groups: dict[str, _RollupGroup] = {}
    for event in _require_events(events):
        group = groups.get(event.symbol)
        if group is None:
            group = _RollupGroup(symbol=event.symbol, last_timestamp=event.timestamp)
            groups[event.symbol] = group
        group.total_quantity += event.quantity
        group.total_usdt_value += event.usdt_value
        group.count += 1
        group.sides[event.side] += event.quantity
        if event.timestamp > group.last_timestamp:
            group.last_timestamp = event.timestamp

    rollups = [
        SymbolRollup(
            symbol=g.symbol,
            total_quantity=g.total_quantity,
            total_usdt_value=g.total_usdt_value,
            avg_price=g.total_usdt_value / g.total_quantity if g.total_quantity else 0.0,
            count=g.count,
            last_timestamp=g.last_timestamp,
            sides=MappingProxyType(dict(g.sides)),
        )
        for g in groups.values()
    ]
    return sort_by_field(rollups, sort_by, order, ROLLUP_SORT_FIELDS)


def sort_events(
    events: Sequence[LiquidationEvent],
    sort_by: str = "usdt_value",
    order: str = "desc",
) -> list[LiquidationEvent]:
    return sort_by_field(_require_events(events), sort_by, order, EVENT_SORT_FIELDS)
