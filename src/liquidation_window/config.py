from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    ws_url: str
    data_dir: Path
    retention_seconds: int
    eviction_interval_seconds: float
    aggregation_interval_seconds: float
    reconnect_base_delay_seconds: float
    reconnect_max_delay_seconds: float
    top_n: int
    health_log_interval_seconds: int
    log_level: str


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def load_settings() -> Settings:
    load_dotenv()
    settings = Settings(
        ws_url=os.getenv("LIQ_WS_URL", "wss://fstream.binance.com/ws/!forceOrder@arr").strip(),
        data_dir=Path(os.getenv("LIQ_DATA_DIR", "./data/liquidations").strip()),
        retention_seconds=_optional_int("LIQ_RETENTION_SECONDS", 300),
        eviction_interval_seconds=_optional_float("LIQ_EVICTION_INTERVAL_SECONDS", 30.0),
        aggregation_interval_seconds=_optional_float("LIQ_AGGREGATION_INTERVAL_SECONDS", 5.0),
        reconnect_base_delay_seconds=_optional_float("LIQ_RECONNECT_BASE_DELAY_SECONDS", 1.0),
        reconnect_max_delay_seconds=_optional_float("LIQ_RECONNECT_MAX_DELAY_SECONDS", 30.0),
        top_n=_optional_int("LIQ_TOP_N", 12),
        health_log_interval_seconds=_optional_int("LIQ_HEALTH_LOG_INTERVAL_SECONDS", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
    _positive("LIQ_RETENTION_SECONDS", settings.retention_seconds)
    _positive("LIQ_EVICTION_INTERVAL_SECONDS", settings.eviction_interval_seconds)
    _positive("LIQ_AGGREGATION_INTERVAL_SECONDS", settings.aggregation_interval_seconds)
    _positive("LIQ_RECONNECT_BASE_DELAY_SECONDS", settings.reconnect_base_delay_seconds)
    _positive("LIQ_RECONNECT_MAX_DELAY_SECONDS", settings.reconnect_max_delay_seconds)
    _positive("LIQ_HEALTH_LOG_INTERVAL_SECONDS", settings.health_log_interval_seconds)
    if settings.top_n < 0:
        raise ValueError(f"LIQ_TOP_N must be non-negative, got {settings.top_n}")
    return settings
