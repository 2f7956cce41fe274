#!/usr/bin/env python3
"""Clock module: drives the sync engine on the event loop and feeds the LCD."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from modules.base import BaseModule
from modules.clock_sync import TICK_MS, ClockSyncEngine
from modules.scheduler import PeriodicTask
from modules.time_source import Instant
from utils.env import read_env_float

# 0 keeps the single sync at startup
CLOCK_RESYNC_SEC = max(0.0, read_env_float("CLOCK_RESYNC_SEC", 0.0))

logger = logging.getLogger("lcdclock.clock")


class ClockModule(BaseModule):
    """Owns the tick timer and the (re)sync requests for one display session."""

    name = "clock"

    def __init__(
        self,
        engine: ClockSyncEngine,
        *,
        resync_interval: float = CLOCK_RESYNC_SEC,
        tick_interval: float = TICK_MS / 1000,
    ) -> None:
        super().__init__()
        self.engine = engine
        self.resync_interval = resync_interval
        self.tick_interval = tick_interval
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ticker: Optional[PeriodicTask] = None
        self._resyncer: Optional[PeriodicTask] = None
        self._pending: Set[Any] = set()

    def build_command_map(self):
        return {
            "clock.status": self._cmd_status,
            "clock.resync": self._cmd_resync,
        }

    # Lifecycle -----------------------------------------------------------
    def on_start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._emit(self.engine.current_instant)
        self._ticker = PeriodicTask(self.on_tick, self.tick_interval, name="clock_tick")
        self._ticker.start()
        if self.resync_interval > 0:
            self._resyncer = PeriodicTask(self.request_sync, self.resync_interval, name="clock_resync")
            self._resyncer.start()
        self.request_sync()
        logger.info({"evt": "clock_start", "resync_sec": self.resync_interval})

    def on_stop(self) -> None:
        for timer in (self._ticker, self._resyncer):
            if timer is not None:
                timer.cancel()
        self._ticker = None
        self._resyncer = None
        for future in list(self._pending):
            future.cancel()
        self._pending.clear()
        logger.info({"evt": "clock_stop"})

    # Scheduling ----------------------------------------------------------
    def on_tick(self) -> None:
        self._emit(self.engine.tick())

    def request_sync(self):
        """Schedule one fetch on the loop; callable from any thread."""
        if self._loop is None or not self.running:
            raise RuntimeError("Clock module is not running")
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        sync = self._sync()
        try:
            if current is self._loop:
                future = self._loop.create_task(sync)
            else:
                future = asyncio.run_coroutine_threadsafe(sync, self._loop)
        except RuntimeError:
            # loop closed after the running check
            sync.close()
            raise
        self._pending.add(future)
        future.add_done_callback(self._pending.discard)
        return future

    async def _sync(self) -> bool:
        synced = await self.engine.initialize()
        self.publish("clock_sync", self.engine.status())
        if synced:
            self._emit(self.engine.current_instant)
        return synced

    def _emit(self, instant: Optional[Instant]) -> None:
        payload = {"epoch_ms": instant.epoch_ms if instant is not None else None}
        self.publish("clock_tick", payload)
        self.dispatch("lcd.refresh", payload)

    # Commands ------------------------------------------------------------
    def _cmd_status(self, payload: Optional[Dict[str, Any]] = None):
        status = self.engine.status()
        status["running"] = self.running
        status["resync_sec"] = self.resync_interval
        return status

    def _cmd_resync(self, payload: Optional[Dict[str, Any]] = None):
        if not self.running:
            return {"scheduled": False}
        try:
            self.request_sync()
        except RuntimeError as exc:
            logger.debug({"evt": "clock_resync_skipped", "error": str(exc)})
            return {"scheduled": False}
        return {"scheduled": True}


__all__ = ["CLOCK_RESYNC_SEC", "ClockModule"]
