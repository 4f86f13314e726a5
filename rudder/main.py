"""Rudder service entry point."""

import asyncio
import contextlib
import logging
import signal

from rudder.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def serve() -> None:
    """Start the scheduler and run until SIGINT/SIGTERM."""
    from rudder.app import create_app

    app = create_app()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    await app.engine.start()
    logger.info(
        "Rudder running (store=%s, transport=%s, tz=%s)",
        settings.store_backend,
        app.transport.name,
        settings.user_timezone,
    )
    try:
        await stop.wait()
    finally:
        await app.close()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
