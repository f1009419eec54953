from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class LiquidationEvent:
    symbol: str
    side: Side
    order_type: str
    quantity: float
    price: float
    usdt_value: float
    timestamp: datetime


@dataclass(frozen=True)
class ConsolidatedEntry:
    symbol: str
    side: Side
    order_type: str
    quantity: float
    usdt_value: float
    timestamp: datetime


@dataclass(frozen=True)
class SymbolRollup:
    symbol: str
    total_quantity: float
    total_usdt_value: float
    avg_price: float
    count: int
    last_timestamp: datetime
    sides: Mapping[Side, float]
