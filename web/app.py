#!/usr/bin/env python3
"""HTTP surface: the time endpoint, LCD snapshots, messaging and SSE."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.serving import make_server

from core.core import Core
from modules.lcd import InvalidGridSize
from modules.messaging import ChannelClosed
from modules.time_source import build_time_payload
from utils.env import read_env_int, read_env_str

WEB_HOST = read_env_str("WEB_HOST", "0.0.0.0")
WEB_PORT = read_env_int("WEB_PORT", 5000)

logger = logging.getLogger("lcdclock.web")


def _unavailable(command: str):
    return jsonify({"error": f"Command '{command}' is not available"}), 503


def create_app(core: Core) -> Flask:
    app = Flask(__name__)
    CORS(app, supports_credentials=True)

    def run_command(command: str, payload: Optional[Dict[str, Any]] = None):
        result = core.dispatch(command, payload)
        if not result.handled:
            return None, _unavailable(command)
        return result.payload, None

    @app.route('/api/ntp')
    def ntp():
        """Authoritative time for clock clients."""
        return jsonify(build_time_payload())

    @app.route('/api/clock')
    def clock_status():
        data, error = run_command("clock.status")
        return error or jsonify(data)

    @app.route('/api/clock/sync', methods=['POST'])
    def clock_sync():
        data, error = run_command("clock.resync")
        if error:
            return error
        return jsonify(data), 202 if data.get("scheduled") else 409

    @app.route('/api/lcd')
    def lcd_frame():
        data, error = run_command("lcd.frame")
        return error or jsonify(data)

    @app.route('/api/lcd/render', methods=['POST'])
    def lcd_render():
        payload = request.get_json(force=True, silent=True)
        if not isinstance(payload, dict):
            return jsonify({"error": "Expected a JSON object"}), 400
        try:
            data, error = run_command("lcd.render", payload)
        except InvalidGridSize as exc:
            return jsonify({"error": str(exc)}), 400
        return error or jsonify(data)

    @app.route('/api/message', methods=['GET', 'POST'])
    def message_api():
        if request.method == 'GET':
            data, error = run_command("message.last")
            return error or jsonify({"message": data})

        payload = request.get_json(force=True, silent=True) or {}
        if not isinstance(payload, dict):
            return jsonify({"error": "Expected a JSON object"}), 400
        try:
            data, error = run_command(
                "message.publish",
                {"content": payload.get("content"), "user": payload.get("user")},
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        except ChannelClosed as exc:
            return jsonify({"error": str(exc)}), 503
        return error or jsonify({"success": True, "message": data})

    @app.route('/api/events')
    def sse_events():
        """Server-sent events stream for display clients."""
        def stream():
            queue = core.event_bus.listen()
            frame = core.dispatch("lcd.frame")
            if frame.handled:
                queue.put({"type": "lcd_frame", "payload": frame.payload})
            try:
                while True:
                    message = queue.get()
                    event_type = message.get("type", "message")
                    payload = message.get("payload", {})
                    yield f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"
            finally:
                core.event_bus.remove(queue)

        return Response(stream(), mimetype='text/event-stream')

    return app


class webapp:
    """Runs the Flask app on its own thread next to the asyncio loop."""

    def __init__(self, core: Core, *, host: str = WEB_HOST, port: int = WEB_PORT):
        self.app = create_app(core)
        self.host = host
        self.port = port
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def thread(self):
        logger.info({"evt": "web_server", "host": self.host, "port": self.port})
        self._server.serve_forever()

    def startthread(self):
        # Bind before returning so a local clock can fetch /api/ntp right away.
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self._thread = threading.Thread(target=self.thread, name="web", daemon=True)
        self._thread.start()

    def stop(self):
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
