#!/usr/bin/env python3
"""Websocket stream of LCD frames, with message publishing from clients."""

from __future__ import annotations

import asyncio
import json
import logging
import queue
from typing import Any, Dict

import websockets
from websockets.exceptions import ConnectionClosed

from core.core import Core
from utils.env import read_env_int, read_env_str

WS_HOST = read_env_str("WS_HOST", "0.0.0.0")
WS_PORT = read_env_int("WS_PORT", 8888)

# event bus topics forwarded to websocket clients
STREAMED_EVENTS = ("lcd_frame", "message", "clock_sync")

logger = logging.getLogger("lcdclock.ws")


def _response(title: str, data: Any = None, status: str = "ok") -> str:
    return json.dumps({"status": status, "title": title, "data": data})


class FrameStreamer:
    """One handler instance shared by every websocket connection."""

    def __init__(self, core: Core, *, poll_interval: float = 0.05) -> None:
        self.core = core
        self.poll_interval = poll_interval

    async def handler(self, websocket) -> None:
        listener = self.core.event_bus.listen()
        tasks = set()
        try:
            frame = self.core.dispatch("lcd.frame")
            if frame.handled:
                await websocket.send(_response("lcd_frame", frame.payload))
            tasks = {
                asyncio.ensure_future(self._forward_events(websocket, listener)),
                asyncio.ensure_future(self._receive(websocket)),
            }
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, ConnectionClosed):
                    logger.warning({"evt": "ws_session_error", "error": repr(exc)})
        except ConnectionClosed as exc:
            logger.debug({"evt": "ws_connection_closed", "code": getattr(exc, "code", None)})
        finally:
            for task in tasks:
                task.cancel()
            self.core.event_bus.remove(listener)

    async def _forward_events(self, websocket, listener: queue.Queue) -> None:
        while True:
            try:
                message = listener.get_nowait()
            except queue.Empty:
                await asyncio.sleep(self.poll_interval)
                continue
            if message.get("type") in STREAMED_EVENTS:
                await websocket.send(_response(message["type"], message.get("payload")))

    async def _receive(self, websocket) -> None:
        async for raw in websocket:
            await websocket.send(self.handle_text(raw))

    def handle_text(self, raw: Any) -> str:
        """Answer one client frame; unknown requests get an error status."""
        data = raw
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug({"evt": "ws_parse_failed", "raw": str(raw)[:200]})

        if data == "get_frame":
            return _response("lcd_frame", self.core.dispatch("lcd.frame").payload)

        if isinstance(data, dict) and data.get("title") == "message":
            return self._publish(data)

        return _response("error", "unknown request", status="error")

    def _publish(self, data: Dict[str, Any]) -> str:
        try:
            result = self.core.dispatch(
                "message.publish",
                {"content": data.get("data"), "user": data.get("user")},
            )
        except (ValueError, RuntimeError) as exc:
            return _response("message", str(exc), status="error")
        if not result.handled:
            return _response("message", "messaging unavailable", status="error")
        return _response("message", result.payload)


async def serve(core: Core, *, host: str = WS_HOST, port: int = WS_PORT):
    server = await websockets.serve(FrameStreamer(core).handler, host, port)
    logger.info({"evt": "ws_server", "host": host, "port": port})
    return server
