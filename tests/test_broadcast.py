"""Tests for the broadcast channel."""

from __future__ import annotations

import pytest

from fanhub.control.broadcast import ConnectionHub, Observer


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, data, mode="text"):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class TestObserver:
    @pytest.mark.asyncio
    async def test_envelope(self):
        sock = FakeSocket()
        await Observer(sock, "c1").send("fanUpdated", {"fan": {"id": "f1"}})
        assert sock.sent == [{"type": "fanUpdated", "fan": {"id": "f1"}}]

    def test_generated_client_id(self):
        assert Observer(FakeSocket()).client_id.startswith("client-")


class TestConnectionHub:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_all(self):
        hub = ConnectionHub()
        a, b = FakeSocket(), FakeSocket()
        hub.register(a)
        hub.register(b)
        assert await hub.broadcast("fanUpdated", {"fan": {"rpm": 75}}) == 2
        assert a.sent == b.sent == [{"type": "fanUpdated", "fan": {"rpm": 75}}]

    @pytest.mark.asyncio
    async def test_failed_observer_is_dropped(self):
        hub = ConnectionHub()
        good = FakeSocket()
        hub.register(good)
        hub.register(FakeSocket(fail=True))
        assert await hub.broadcast("fanUpdated", {}) == 1
        assert len(hub) == 1
        assert hub.observers()[0].websocket is good

    @pytest.mark.asyncio
    async def test_unicast(self):
        hub = ConnectionHub()
        a, b = FakeSocket(), FakeSocket()
        target = hub.register(a)
        hub.register(b)
        assert await hub.send(target, "errorMessage", {"message": "nope"}) is True
        assert a.sent == [{"type": "errorMessage", "message": "nope"}]
        assert b.sent == []

    @pytest.mark.asyncio
    async def test_unregistered_observer_misses_events(self):
        hub = ConnectionHub()
        sock = FakeSocket()
        observer = hub.register(sock)
        hub.unregister(observer)
        hub.unregister(observer)
        assert await hub.broadcast("fanUpdated", {}) == 0
        assert sock.sent == []
