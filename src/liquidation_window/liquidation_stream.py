from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any

import websockets

from .formatting import parse_amount, parse_side, timestamp_from_ms
from .types import LiquidationEvent

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://fstream.binance.com/ws/!forceOrder@arr"


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


def backoff_delay(retry_count: int, base_delay: float = 1.0, max_delay: float = 30.0) -> float:
    if retry_count < 0:
        raise ValueError(f"retry_count must be non-negative, got {retry_count}")
    # Past this exponent the cap always wins; skip the huge power.
    if retry_count >= 64:
        return max_delay
    return min(base_delay * 2**retry_count, max_delay)


class LiquidationStream:
    def __init__(
        self,
        ws_url: str = DEFAULT_WS_URL,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        connect: Callable[..., Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.ws_url = ws_url
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.state = ConnectionState.DISCONNECTED
        self.retry_count = 0
        self.frames_received = 0
        self.frames_dropped = 0
        self.reconnects = 0
        self._connect = connect or websockets.connect
        self._sleep = sleep

    async def events(self) -> AsyncIterator[LiquidationEvent]:
        while True:
            self.state = ConnectionState.CONNECTING
            try:
                async with self._connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                    self.state = ConnectionState.CONNECTED
                    self.retry_count = 0
                    logger.info("Connected to liquidation stream %s", self.ws_url)

                    async for raw in ws:
                        self.frames_received += 1
                        events = parse_ws_message(raw)
                        if not events:
                            self.frames_dropped += 1
                        for event in events:
                            yield event
                reason = "closed by server"
            except asyncio.CancelledError:
                self.state = ConnectionState.DISCONNECTED
                raise
            except Exception as exc:
                reason = str(exc) or type(exc).__name__

            self.state = ConnectionState.DISCONNECTED
            delay = backoff_delay(self.retry_count, self.base_delay, self.max_delay)
            logger.warning("Liquidation stream disconnected (%s). Reconnecting in %.1fs", reason, delay)
            await self._sleep(delay)
            self.retry_count += 1
            self.reconnects += 1


def parse_ws_message(raw: str | bytes) -> list[LiquidationEvent]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Dropping undecodable liquidation frame: %s", exc)
        return []

    items = payload if isinstance(payload, list) else [payload]
    events: list[LiquidationEvent] = []
    for item in items:
        event = _normalize_liquidation(item)
        if event is not None:
            events.append(event)
    return events


def _normalize_liquidation(payload: Any) -> LiquidationEvent | None:
    if not isinstance(payload, dict):
        return None
    # Stream frames wrap the order under "o"; a bare order uses "o" for its type.
    order = payload["o"] if isinstance(payload.get("o"), dict) else payload
    if "e" in payload and payload.get("e") != "forceOrder":
        return None

    symbol = str(order.get("s") or "").strip()
    side = parse_side(order.get("S"))
    quantity = parse_amount(order.get("q"))
    price = parse_amount(order.get("ap"))
    timestamp = timestamp_from_ms(order.get("T"))

    if not symbol or side is None or quantity is None or price is None or timestamp is None:
        logger.debug("Dropping malformed liquidation order: %s", order)
        return None

    return LiquidationEvent(
        symbol=symbol,
        side=side,
        order_type=str(order.get("o") or ""),
        quantity=quantity,
        price=price,
        usdt_value=quantity * price,
        timestamp=timestamp,
    )
