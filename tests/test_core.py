"""
Core registry and event bus tests.
"""

import pytest

from core.core import Core
from core.events import EventBus
from modules.base import BaseModule


class RecordingModule(BaseModule):
    def __init__(self, name, log, commands=("ping",)):
        super().__init__()
        self.name = name
        self._log = log
        self._commands = commands

    def build_command_map(self):
        return {f"{self.name}.{cmd}": (lambda payload, cmd=cmd: {"cmd": cmd, "payload": payload}) for cmd in self._commands}

    def on_start(self):
        self._log.append(("start", self.name))

    def on_stop(self):
        self._log.append(("stop", self.name))


class TestCore:
    def test_dispatch_routes_to_handler(self, bus):
        core = Core(event_bus=bus)
        core.register_module(RecordingModule("a", []))

        result = core.dispatch("a.ping", {"x": 1})

        assert result.handled
        assert result.payload == {"cmd": "ping", "payload": {"x": 1}}

    def test_unknown_command_is_unhandled(self, bus):
        result = Core(event_bus=bus).dispatch("nope")

        assert not result.handled
        assert result.payload is None

    def test_duplicate_module_rejected(self, bus):
        core = Core(event_bus=bus)
        core.register_module(RecordingModule("a", []))

        with pytest.raises(ValueError):
            core.register_module(RecordingModule("a", []))

    def test_duplicate_command_rejected_without_partial_registration(self, bus):
        class Clashing(RecordingModule):
            def build_command_map(self):
                return {"b.fresh": lambda payload: None, "a.ping": lambda payload: None}

        core = Core(event_bus=bus)
        core.register_module(RecordingModule("a", []))

        with pytest.raises(ValueError):
            core.register_module(Clashing("b", []))

        assert not core.dispatch("b.fresh").handled
        assert "b" not in core.modules

    def test_shutdown_stops_in_reverse_order_once(self, bus):
        log = []
        core = Core([RecordingModule("a", log), RecordingModule("b", log)], event_bus=bus)

        core.shutdown()
        core.shutdown()

        assert log == [("start", "a"), ("start", "b"), ("stop", "b"), ("stop", "a")]
        assert core.modules == {}
        assert not core.dispatch("a.ping").handled

    def test_module_helpers_require_core(self):
        module = RecordingModule("a", [])

        with pytest.raises(RuntimeError):
            module.dispatch("a.ping")
        with pytest.raises(RuntimeError):
            module.publish("evt", {})

    def test_broadcast_reaches_listeners(self, bus):
        core = Core(event_bus=bus)
        listener = bus.listen()

        core.broadcast("clock_tick", {"epoch_ms": 1})

        message = listener.get_nowait()
        assert message["type"] == "clock_tick"
        assert message["payload"] == {"epoch_ms": 1}


class TestEventBus:
    def test_full_listener_drops_instead_of_blocking(self):
        bus = EventBus(max_pending=2)
        listener = bus.listen()

        for i in range(5):
            bus.publish("tick", {"i": i})

        assert listener.qsize() == 2

    def test_removed_listener_gets_nothing(self):
        bus = EventBus()
        listener = bus.listen()
        bus.remove(listener)

        bus.publish("tick", {})

        assert listener.empty()
        assert bus.listener_count == 0
