"""Entry point for the basin change monitor."""

import asyncio
import contextlib
import signal
import sys

import structlog

from basin.config import Settings
from basin.engine import Basin
from basin.errors import BasinError
from basin.events.bus import event_label
from basin.events.types import ChangeEvent, EventName
from basin.logging import configure_logging

logger = structlog.get_logger()


def log_change(basin: Basin, event: ChangeEvent) -> None:
    """Broadcast handler logging every dispatched change."""
    logger.info(
        "change_detected",
        kind=event.kind.value,
        path=event.path,
        channels=[event_label(name) for name in basin.channels_matching(event.path)],
        size=len(event.content) if event.content is not None else None,
    )


def log_ready(basin: Basin) -> None:
    """Ready handler logging the end of the initial scan."""
    logger.info(
        "scan_complete",
        channels=[event_label(name) for name in basin.channels],
        watching=basin.options.watch,
    )


async def serve(settings: Settings) -> None:
    """Run a basin engine that logs changes until stopped.

    Handles SIGTERM/SIGINT by closing the engine, which lets in-flight
    dispatches finish before returning.

    Args:
        settings: Runner configuration.
    """
    basin = Basin(settings.to_options())
    basin.on(EventName.ALL, log_change)
    basin.on(EventName.READY, log_ready)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, basin.close)

    await basin.run()


def main() -> None:
    """Entry point for python -m basin."""
    settings = Settings()
    configure_logging(debug=settings.debug, json_output=settings.json_logs)

    try:
        with contextlib.suppress(KeyboardInterrupt):
            asyncio.run(serve(settings))
    except BasinError as e:
        logger.error("basin_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
