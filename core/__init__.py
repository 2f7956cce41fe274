"""Core package exposing the module coordinator and the shared event bus."""

from .core import CommandResult, Core
from .events import EventBus, event_bus

__all__ = ["CommandResult", "Core", "EventBus", "event_bus"]
