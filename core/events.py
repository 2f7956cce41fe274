#!/usr/bin/env python3
"""Thread-safe publish/subscribe bus feeding the SSE and websocket streams."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Dict

logger = logging.getLogger("lcdclock.events")


class EventBus:
    """Fan events out to every listener queue.

    Listeners are plain ``queue.Queue`` objects so consumers on any thread
    (Flask request handlers, the asyncio loop) can drain them.
    """

    def __init__(self, *, max_pending: int = 256) -> None:
        self._listeners: set[queue.Queue] = set()
        self._lock = threading.Lock()
        self._max_pending = max_pending

    def listen(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._max_pending)
        with self._lock:
            self._listeners.add(q)
        return q

    def remove(self, q: queue.Queue) -> None:
        with self._lock:
            self._listeners.discard(q)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        message = {
            "type": event_type,
            "payload": payload,
            "ts": time.time(),
        }
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener.put_nowait(message)
            except queue.Full:
                # Slow listener; drop rather than block the clock.
                logger.debug({"evt": "event_dropped", "type": event_type})
                continue


event_bus = EventBus()
