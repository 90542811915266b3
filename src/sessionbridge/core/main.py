"""Bridge entrypoint."""

from __future__ import annotations

import asyncio
import signal

from loguru import logger

from sessionbridge.core.config import BridgeConfig
from sessionbridge.core.errors import ConfigError
from sessionbridge.core.log import configure_logging
from sessionbridge.core.service import BridgeService


def main() -> int:
    config, warnings = BridgeConfig.from_env()
    configure_logging(config.logs_dir, component="bridge")
    for message in warnings:
        logger.warning(message)
    try:
        config.require_valid()
    except ConfigError as exc:
        logger.error(str(exc))
        return 1
    service = BridgeService(config)
    return asyncio.run(_run(service))


async def _run(service: BridgeService) -> int:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_stop)
        except (NotImplementedError, RuntimeError):
            pass
    return await service.run()


if __name__ == "__main__":
    raise SystemExit(main())
