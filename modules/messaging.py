#!/usr/bin/env python3
"""Message channel with an explicit connect/subscribe/publish lifecycle."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from core.events import EventBus
from modules.base import BaseModule

MESSAGE_TOPIC = "message"

logger = logging.getLogger("lcdclock.messaging")


class ChannelClosed(RuntimeError):
    """Raised when publishing on a channel that is not connected."""


@dataclass(frozen=True)
class Message:
    content: str
    user: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "content": self.content,
            "createdAt": self.created_at.isoformat(),
        }


MessageHandler = Callable[[Message], None]


class MessageChannel:
    """One topic, any number of subscribers, the last message remembered.

    Owned by whoever needs it; nothing here is process-global.
    """

    def __init__(self, topic: str = MESSAGE_TOPIC, *, event_bus: Optional[EventBus] = None) -> None:
        self.topic = topic
        self._event_bus = event_bus
        self._lock = threading.Lock()
        self._handlers: List[MessageHandler] = []
        self._connected = False
        self._last: Optional[Message] = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def last_message(self) -> Optional[Message]:
        with self._lock:
            return self._last

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                return
            self._connected = True
        logger.info({"evt": "channel_connected", "topic": self.topic})

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                return
            self._connected = False
        logger.info({"evt": "channel_disconnected", "topic": self.topic})

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        """Subscribe ``handler``; the returned callable unsubscribes it."""
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, content: str, user: Optional[str] = None) -> Message:
        if not self._connected:
            raise ChannelClosed(f"Channel '{self.topic}' is not connected")
        text = "" if content is None else str(content)
        if not text.strip():
            raise ValueError("Message content must not be empty")
        message = Message(content=text, user=user)
        with self._lock:
            self._last = message
            handlers = list(self._handlers)
        logger.debug({"evt": "message_received", "topic": self.topic, "id": message.id})
        for handler in handlers:
            try:
                handler(message)
            except Exception as exc:
                logger.warning({"evt": "message_handler_error", "topic": self.topic, "error": str(exc)})
        if self._event_bus is not None:
            self._event_bus.publish(self.topic, message.to_dict())
        return message


class MessagingModule(BaseModule):
    name = "messaging"

    def __init__(self, channel: Optional[MessageChannel] = None) -> None:
        super().__init__()
        self._channel = channel

    @property
    def channel(self) -> MessageChannel:
        if self._channel is None:
            raise RuntimeError("Messaging module has no channel yet")
        return self._channel

    def attach(self, core) -> None:
        super().attach(core)
        if self._channel is None:
            self._channel = MessageChannel(event_bus=core.event_bus)

    def build_command_map(self):
        return {
            "message.publish": self._cmd_publish,
            "message.last": self._cmd_last,
        }

    def on_start(self) -> None:
        self.channel.connect()

    def on_stop(self) -> None:
        self.channel.disconnect()

    def _cmd_publish(self, payload: Optional[Dict[str, Any]] = None):
        payload = payload or {}
        user = payload.get("user")
        message = self.channel.publish(payload.get("content"), user=str(user) if user is not None else None)
        return message.to_dict()

    def _cmd_last(self, payload: Optional[Dict[str, Any]] = None):
        message = self.channel.last_message
        return message.to_dict() if message is not None else None


__all__ = ["ChannelClosed", "Message", "MessageChannel", "MessagingModule"]
