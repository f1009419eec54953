from __future__ import annotations

import asyncio
import logging

from .config import load_settings
from .service import LiquidationService

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info(
        "Starting liquidation window ws=%s data_dir=%s retention=%ss",
        settings.ws_url,
        settings.data_dir,
        settings.retention_seconds,
    )
    service = LiquidationService(settings)
    await service.run()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
