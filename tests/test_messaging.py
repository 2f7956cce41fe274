"""
Message channel lifecycle and module tests.
"""

import pytest

from core.core import Core
from modules.messaging import ChannelClosed, MessageChannel, MessagingModule


class TestMessageChannel:
    def test_publish_requires_connection(self):
        channel = MessageChannel()

        with pytest.raises(ChannelClosed):
            channel.publish("hello")

    def test_connect_publish_remembers_last(self):
        channel = MessageChannel()
        channel.connect()

        channel.publish("first")
        message = channel.publish("second", user="ana")

        assert channel.last_message is message
        assert message.content == "second"
        assert message.user == "ana"
        assert len(message.id) == 32

    def test_subscribers_notified_in_order(self):
        channel = MessageChannel()
        channel.connect()
        seen = []
        channel.on_message(lambda m: seen.append(("a", m.content)))
        channel.on_message(lambda m: seen.append(("b", m.content)))

        channel.publish("ping")

        assert seen == [("a", "ping"), ("b", "ping")]

    def test_unsubscribe(self):
        channel = MessageChannel()
        channel.connect()
        seen = []
        unsubscribe = channel.on_message(seen.append)

        unsubscribe()
        unsubscribe()
        channel.publish("ping")

        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        channel = MessageChannel()
        channel.connect()
        seen = []

        def broken(message):
            raise RuntimeError("nope")

        channel.on_message(broken)
        channel.on_message(seen.append)

        channel.publish("ping")

        assert len(seen) == 1

    @pytest.mark.parametrize("content", ["", "   ", None])
    def test_rejects_empty_content(self, content):
        channel = MessageChannel()
        channel.connect()

        with pytest.raises(ValueError):
            channel.publish(content)

    def test_disconnect_closes_channel(self):
        channel = MessageChannel()
        channel.connect()
        channel.connect()

        channel.disconnect()
        channel.disconnect()

        assert not channel.connected
        with pytest.raises(ChannelClosed):
            channel.publish("late")

    def test_forwards_to_event_bus(self, bus):
        listener = bus.listen()
        channel = MessageChannel(event_bus=bus)
        channel.connect()

        message = channel.publish("ping")

        event = listener.get_nowait()
        assert event["type"] == "message"
        assert event["payload"]["id"] == message.id
        assert event["payload"]["content"] == "ping"


class TestMessagingModule:
    def test_module_connects_on_register(self, bus):
        core = Core(event_bus=bus)
        module = MessagingModule()

        core.register_module(module)

        assert module.channel.connected

    def test_publish_and_last_commands(self, bus):
        core = Core(event_bus=bus)
        core.register_module(MessagingModule())

        assert core.dispatch("message.last").payload is None

        published = core.dispatch("message.publish", {"content": "hi", "user": 7}).payload
        last = core.dispatch("message.last").payload

        assert last == published
        assert last["user"] == "7"
        assert set(last) == {"id", "user", "content", "createdAt"}

    def test_shutdown_disconnects(self, bus):
        core = Core(event_bus=bus)
        module = MessagingModule()
        core.register_module(module)

        core.shutdown()

        assert not module.channel.connected

    def test_injected_channel_is_used(self, bus):
        channel = MessageChannel(topic="lcd-notes")
        core = Core(event_bus=bus)
        core.register_module(MessagingModule(channel))

        core.dispatch("message.publish", {"content": "x"})

        assert channel.last_message.content == "x"

    def test_channel_before_attach_raises(self):
        with pytest.raises(RuntimeError):
            MessagingModule().channel
