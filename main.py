#!/usr/bin/env python3
"""Project entry point. Bootstraps the core, the LCD clock and the web servers."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from core import Core
from modules.clock import ClockModule
from modules.clock_sync import ClockSyncEngine
from modules.display import LCD_TIMEZONE, DisplayModule, FrameSink, default_sinks, resolve_timezone
from modules.messaging import MessagingModule
from modules.time_source import HttpTimeSource, TimeSource
from utils.env import read_env_str
from web import ws_server
from web.app import webapp

logger = logging.getLogger("lcdclock")


def configure_logging() -> str:
    log_level = read_env_str("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
    return log_level


def build_core(*, sinks: Optional[List[FrameSink]] = None) -> Core:
    """Core with the display and messaging modules; the clock is attached later."""
    core = Core()
    core.register_module(DisplayModule(tz=resolve_timezone(LCD_TIMEZONE), sinks=sinks))
    core.register_module(MessagingModule())
    return core


def attach_clock(core: Core, source: TimeSource) -> ClockModule:
    """Must run inside the event loop: registering starts the timer and the first fetch."""
    clock = ClockModule(ClockSyncEngine(source))
    core.register_module(clock)
    return clock


async def run() -> None:
    source = HttpTimeSource()
    core = None
    web = None
    server = None
    try:
        core = build_core(sinks=default_sinks())
        # The time endpoint is served by this process too; bind it before the first fetch.
        web = webapp(core)
        web.startthread()
        server = await ws_server.serve(core)
        attach_clock(core, source)
        await asyncio.Event().wait()
    finally:
        if server is not None:
            server.close()
            await server.wait_closed()
        if core is not None:
            core.shutdown()
        if web is not None:
            web.stop()
        source.close()


def main() -> None:
    log_level = configure_logging()
    logger.info({"evt": "startup", "component": "lcdclock", "log_level": log_level})
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info({"evt": "shutdown", "reason": "interrupt"})


if __name__ == "__main__":
    main()
