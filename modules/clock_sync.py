#!/usr/bin/env python3
"""Client-side clock: one authoritative fetch, then local one-second steps."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from modules.time_source import Instant, SyncUnavailable, TimeSource

TICK_MS = 1000

logger = logging.getLogger("lcdclock.clock")


@dataclass
class SyncState:
    last_fetched_instant: Optional[Instant] = None
    last_fetch_reference: Optional[float] = None

    @property
    def synchronized(self) -> bool:
        return self.last_fetched_instant is not None


class ClockSyncEngine:
    """Estimate of authoritative time between synchronizations.

    ``tick()`` rebases the reference instant on every call instead of
    measuring real elapsed time, so the displayed clock advances in exact
    1000 ms steps no matter how late the local timer fires. Skew only goes
    away on the next successful fetch.
    """

    def __init__(
        self,
        source: TimeSource,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._monotonic = monotonic
        self.state = SyncState()
        self.fetch_count = 0
        self.failure_count = 0

    @property
    def synchronized(self) -> bool:
        return self.state.synchronized

    @property
    def current_instant(self) -> Optional[Instant]:
        return self.state.last_fetched_instant

    async def initialize(self) -> bool:
        """Fetch the authoritative instant once; False leaves the state as it was."""
        loop = asyncio.get_running_loop()
        try:
            instant = await loop.run_in_executor(None, self._source.fetch)
        except SyncUnavailable as exc:
            self.failure_count += 1
            logger.warning({"evt": "clock_sync_failed", "error": str(exc)})
            return False
        except Exception as exc:
            self.failure_count += 1
            logger.error({"evt": "clock_sync_error", "error": repr(exc)})
            return False

        try:
            iso = instant.isoformat()
        except (OverflowError, ValueError) as exc:
            self.failure_count += 1
            logger.warning({"evt": "clock_sync_failed", "error": f"instant out of range: {exc}"})
            return False

        self.state.last_fetched_instant = instant
        self.state.last_fetch_reference = self._monotonic()
        self.fetch_count += 1
        logger.info({"evt": "clock_synced", "unix": instant.epoch_ms, "iso": iso})
        return True

    def tick(self) -> Optional[Instant]:
        previous = self.state.last_fetched_instant
        if previous is None:
            return None
        current = previous.plus(TICK_MS)
        self.state.last_fetched_instant = current
        return current

    def status(self) -> Dict[str, Any]:
        instant = self.current_instant
        return {
            "synchronized": instant is not None,
            "epoch_ms": instant.epoch_ms if instant is not None else None,
            "iso": instant.isoformat() if instant is not None else None,
            "fetch_count": self.fetch_count,
            "failure_count": self.failure_count,
        }


__all__ = ["ClockSyncEngine", "SyncState", "TICK_MS"]
