"""
Standalone payout dispatcher.

Runs the payout queue consumer without the HTTP API, for deployments that
keep PAYOUT_WORKER_ENABLED off on the web processes:

    python scheduler.py
"""

import asyncio
import logging
import signal

from app.core.config import settings
from app.core.dependencies import build_services

logger = logging.getLogger(__name__)


async def main() -> None:
    services = build_services(settings)
    services.store.ping()

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    services.dispatcher.start()
    logger.info("[scheduler] payout dispatcher running")
    await stop_requested.wait()
    logger.info("[scheduler] shutdown requested")
    await services.dispatcher.stop()


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(main())
