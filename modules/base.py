"""Base class for clock, display and messaging modules."""

from __future__ import annotations

from typing import Any, Dict, Optional

from core.core import CommandHandler, Core, CommandResult


class BaseModule:
    """Default implementation that other modules can extend.

    Subclasses put their lifecycle work in ``on_start``/``on_stop``;
    ``start``/``stop`` guard them so each runs at most once per cycle.
    """

    name = "base"

    def __init__(self) -> None:
        self.core: Optional[Core] = None
        self._command_map: Dict[str, CommandHandler] = {}
        self._running = False

    # Lifecycle -----------------------------------------------------------
    def attach(self, core: Core) -> None:
        self.core = core
        self._command_map = self.build_command_map() or {}

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self.on_start()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self.on_stop()

    def on_start(self) -> None:  # pragma: no cover - default no-op
        pass

    def on_stop(self) -> None:  # pragma: no cover - default no-op
        pass

    # Commands ------------------------------------------------------------
    def build_command_map(self) -> Dict[str, CommandHandler]:
        """Modules override to declare commands -> handlers."""
        return {}

    def get_command_map(self) -> Dict[str, CommandHandler]:
        return dict(self._command_map)

    # Utilities -----------------------------------------------------------
    def dispatch(self, command: str, payload: Optional[Dict[str, Any]] = None) -> CommandResult:
        if self.core is None:
            raise RuntimeError("Module is not attached to a core")
        return self.core.dispatch(command, payload or {})

    def publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.core is None:
            raise RuntimeError("Module is not attached to a core")
        self.core.broadcast(event_type, payload)
