#!/usr/bin/env python3
"""Cancellable fixed-cadence timer on the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger("lcdclock.scheduler")


class PeriodicTask:
    """Call ``callback`` every ``interval`` seconds until cancelled.

    The next sleep only starts once the callback has returned, so two runs
    never overlap. A failing callback is logged and the timer keeps going.
    """

    def __init__(self, callback: Callable[[], None], interval: float, *, name: str = "periodic") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self.interval = float(interval)
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug({"evt": "timer_start", "name": self.name, "interval": self.interval})

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
        logger.debug({"evt": "timer_cancel", "name": self.name})

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self._callback()
            except Exception as exc:
                logger.error({"evt": "timer_callback_error", "name": self.name, "error": repr(exc)})

    async def __aenter__(self) -> "PeriodicTask":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


__all__ = ["PeriodicTask"]
