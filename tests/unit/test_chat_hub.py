"""
Unit tests for the chat hub: ingress, egress and side channels.
"""

import asyncio

import pytest

from glossa.communication.errors import NotFoundError, ProtocolError, TransportError
from glossa.communication.message_types import Command, Layer, Message


def identity(name: str, layer: Layer = Layer.PHONETICS, model: str = "test-model") -> Message:
    return Message(sender=name, text=model, layer=layer)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.unit
@pytest.mark.hub
class TestIngress:
    """Tests for serve_stream."""

    @pytest.mark.asyncio
    async def test_registers_then_removes_on_disconnect(self, hub, registry, fake_stream):
        stream = fake_stream("A")
        stream.push(identity("A"))
        task = asyncio.ensure_future(hub.serve_stream(stream))
        await settle()

        assert "A" in registry
        assert registry.get("A").model == "test-model"

        stream.close()
        await asyncio.wait_for(task, 1.0)
        assert registry.total == 0

    @pytest.mark.asyncio
    async def test_frames_reach_inbound(self, hub, channels, fake_stream):
        stream = fake_stream("A")
        stream.push(identity("A"))
        stream.push(Message(sender="A", text="toki", layer=Layer.PHONETICS))
        stream.close()

        await asyncio.wait_for(hub.serve_stream(stream), 1.0)

        message = channels.inbound.get_nowait()
        assert message.text == "toki"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("first", [
        Message(sender="", text="model"),
        Message(sender="A", text=""),
        Message(sender="SERVER", text="model"),
        Message(sender="SYSTEM", text="model"),
    ])
    async def test_bad_identity_rejected(self, hub, registry, fake_stream, first):
        stream = fake_stream("x")
        stream.push(first)

        with pytest.raises(ProtocolError):
            await hub.serve_stream(stream)
        assert registry.total == 0

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, hub, registry, fake_stream):
        first = fake_stream("A1")
        first.push(identity("A"))
        task = asyncio.ensure_future(hub.serve_stream(first))
        await settle()

        second = fake_stream("A2")
        second.push(identity("A"))
        with pytest.raises(ProtocolError):
            await hub.serve_stream(second)

        assert registry.get("A").stream is first
        first.close()
        await asyncio.wait_for(task, 1.0)

    @pytest.mark.asyncio
    async def test_malformed_frame_is_skipped(self, hub, channels, fake_stream):
        stream = fake_stream("A")
        stream.push(identity("A"))
        stream.push(ProtocolError("garbage"))
        stream.push(Message(sender="A", text="after", layer=Layer.PHONETICS))
        stream.close()

        await asyncio.wait_for(hub.serve_stream(stream), 1.0)

        assert channels.inbound.get_nowait().text == "after"

    @pytest.mark.asyncio
    async def test_transport_failure_is_reported(self, hub, channels, registry, fake_stream):
        stream = fake_stream("A")
        stream.push(identity("A"))
        stream.push(TransportError("reset by peer"))

        await asyncio.wait_for(hub.serve_stream(stream), 1.0)

        assert isinstance(channels.errors.get_nowait(), TransportError)
        assert registry.total == 0

    @pytest.mark.asyncio
    async def test_stopped_hub_drops_frames(self, hub, channels, fake_stream):
        hub.stop_listening()
        stream = fake_stream("A")
        stream.push(identity("A"))
        stream.push(Message(sender="A", text="late", layer=Layer.PHONETICS))
        stream.close()

        await asyncio.wait_for(hub.serve_stream(stream), 1.0)

        assert channels.inbound.empty()


@pytest.mark.unit
@pytest.mark.hub
class TestEgress:
    """Tests for broadcast, forward and dispatch."""

    @pytest.mark.asyncio
    async def test_broadcast_skips_sender_and_other_layers(self, hub, registry, client_factory):
        a, b, c = (client_factory(name) for name in "ABC")
        g = client_factory("G", Layer.GRAMMAR)
        for client in (a, b, c, g):
            registry.add(client)

        await hub.broadcast(Message(sender="A", text="toki", layer=Layer.PHONETICS))

        assert a.stream.sent == []
        assert [m.text for m in b.stream.sent] == ["toki"]
        assert [m.text for m in c.stream.sent] == ["toki"]
        assert g.stream.sent == []

    @pytest.mark.asyncio
    async def test_directed_message_reaches_only_receiver(self, hub, registry, client_factory):
        a, b = client_factory("A"), client_factory("B")
        registry.add(a)
        registry.add(b)

        await hub.broadcast(Message(sender="SERVER", receiver="B", command=Command.LATCH))

        assert a.stream.sent == []
        assert b.stream.sent[0].command == Command.LATCH

    @pytest.mark.asyncio
    async def test_forward_to_unknown_receiver(self, hub):
        with pytest.raises(NotFoundError):
            await hub.forward(Message(sender="SERVER", receiver="ghost"))

    @pytest.mark.asyncio
    async def test_broadcast_attempts_every_target(self, hub, registry, client_factory):
        a, b, c = (client_factory(name) for name in "ABC")
        for client in (a, b, c):
            registry.add(client)
        b.stream.fail_sends = True

        with pytest.raises(TransportError):
            await hub.broadcast(Message(sender="A", text="hi", layer=Layer.PHONETICS))

        assert len(c.stream.sent) == 1

    @pytest.mark.asyncio
    async def test_dispatch_reports_missing_receivers(self, hub, channels, registry, client_factory):
        a = client_factory("A")
        registry.add(a)
        channels.to_clients.put_nowait(Message(sender="SERVER", receiver="ghost"))
        channels.to_clients.put_nowait(Message(sender="SERVER", receiver="A", text="ok"))

        task = asyncio.ensure_future(hub.dispatch())
        await settle()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert isinstance(channels.errors.get_nowait(), NotFoundError)
        assert [m.text for m in a.stream.sent] == ["ok"]


@pytest.mark.unit
@pytest.mark.hub
class TestSideChannels:
    """Tests for send_with_channel claims."""

    @pytest.mark.asyncio
    async def test_next_reply_goes_to_side_channel_and_is_claimed(self, hub, channels, fake_stream):
        stream = fake_stream("S")
        stream.push(identity("S", Layer.SYSTEM))
        task = asyncio.ensure_future(hub.serve_stream(stream))
        await settle()

        request = Message(sender="SERVER", receiver="S", command=Command.REQUEST_DICTIONARY_WORD_DETECTION)
        channel = await hub.send_with_channel(request)
        assert channels.to_clients.get_nowait() is request

        stream.push(Message(sender="S", receiver="SERVER", text='{"words": []}', layer=Layer.SYSTEM))
        reply = await asyncio.wait_for(channel.get(), 1.0)
        routed = channels.inbound.get_nowait()

        assert reply is routed
        assert hub.consume_claim(routed) is True
        assert hub.consume_claim(routed) is False
        assert hub.pending_claims == 0

        stream.close()
        await asyncio.wait_for(task, 1.0)

    @pytest.mark.asyncio
    async def test_send_with_channel_requires_connected_receiver(self, hub):
        with pytest.raises(NotFoundError):
            await hub.send_with_channel(Message(sender="SERVER", receiver="ghost"))
