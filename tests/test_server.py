"""Tests for the relay server lifecycle, in-process and over real sockets."""

import asyncio
import json

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect
from websockets.exceptions import InvalidStatus

from pipol_relay.config import RelayConfig
from pipol_relay.registry import ConnectionRegistry
from pipol_relay.run_server import _run
from pipol_relay.server import RelayServer

from .conftest import FakeChannel


def auth(user_id, user_name):
    return json.dumps({"type": "auth", "userId": user_id, "userName": user_name})


def chat(event_id, content):
    return json.dumps({"type": "message", "eventId": event_id, "content": content})


class TestHandlerLifecycle:
    @pytest.mark.asyncio
    async def test_greets_dispatches_and_removes(self):
        relay = RelayServer(RelayConfig(greeting="welcome"))
        channel = FakeChannel([auth(7, "Ana"), "garbage", chat(42, "hola")])

        await relay.handler(channel)

        frames = channel.frames()
        assert frames[0] == {"type": "connection_established", "message": "welcome"}
        assert frames[1] == {"type": "auth_success", "userId": 7, "userName": "Ana"}
        assert frames[2]["type"] == "message"
        assert frames[2]["content"] == "hola"
        assert len(frames) == 3
        assert len(relay.registry) == 0
        assert channel.close_calls == []

    @pytest.mark.asyncio
    async def test_each_connection_gets_a_fresh_id(self):
        relay = RelayServer()
        ids = {relay.new_connection_id() for _ in range(100)}

        assert len(ids) == 100

    @pytest.mark.asyncio
    async def test_duplicate_id_closes_only_that_attempt(self, monkeypatch):
        registry = ConnectionRegistry()
        existing = FakeChannel()
        await registry.register("fixed", existing)
        relay = RelayServer(registry=registry)
        monkeypatch.setattr(relay, "new_connection_id", lambda: "fixed")
        channel = FakeChannel([auth(1, "x")])

        await relay.handler(channel)

        assert channel.close_calls and channel.close_calls[0][0] == 1011
        assert channel.sent == []
        assert (await registry.get("fixed")).channel is existing

    @pytest.mark.asyncio
    async def test_unexpected_error_keeps_connection_alive(self, monkeypatch):
        relay = RelayServer()
        calls = []

        async def flaky(connection_id, raw):
            calls.append(raw)
            if len(calls) == 1:
                raise RuntimeError("unexpected")

        monkeypatch.setattr(relay.message_handler, "handle", flaky)
        channel = FakeChannel(["first", "second"])

        await relay.handler(channel)

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_independent_relays_do_not_share_state(self):
        a, b = RelayServer(), RelayServer()
        await a.registry.register("c1", FakeChannel())

        assert len(b.registry) == 0
        assert a.status() == {"connections": 1, "authenticated": 0}


@pytest_asyncio.fixture
async def relay():
    server = RelayServer(
        RelayConfig(host="127.0.0.1", port=0, ping_interval=None, ping_timeout=None, status_interval=None)
    )
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


async def recv_json(ws, timeout=2.0):
    return json.loads(await asyncio.wait_for(ws.recv(), timeout))


async def wait_for(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestOverSockets:
    @pytest.mark.asyncio
    async def test_auth_then_message_round_trip(self, relay):
        uri = f"ws://127.0.0.1:{relay.port}/ws"
        async with connect(uri) as x, connect(uri) as y:
            assert (await recv_json(x))["type"] == "connection_established"
            assert (await recv_json(y))["type"] == "connection_established"

            await x.send(auth(7, "Ana"))
            assert await recv_json(x) == {"type": "auth_success", "userId": 7, "userName": "Ana"}

            await x.send(chat(42, "hola"))
            for ws in (x, y):
                frame = await recv_json(ws)
                assert frame["type"] == "message"
                assert frame["eventId"] == 42
                assert frame["userId"] == 7
                assert frame["userName"] == "Ana"
                assert frame["content"] == "hola"
                assert "timestamp" in frame

    @pytest.mark.asyncio
    async def test_close_removes_registry_entry(self, relay):
        uri = f"ws://127.0.0.1:{relay.port}/ws"
        async with connect(uri) as ws:
            await recv_json(ws)
            assert len(relay.registry) == 1

        await wait_for(lambda: len(relay.registry) == 0)

    @pytest.mark.asyncio
    async def test_reconnect_needs_new_auth(self, relay):
        uri = f"ws://127.0.0.1:{relay.port}/ws"
        async with connect(uri) as ws:
            await recv_json(ws)
            await ws.send(auth(7, "Ana"))
            await recv_json(ws)
        await wait_for(lambda: len(relay.registry) == 0)

        async with connect(uri) as ws, connect(uri) as watcher:
            await recv_json(ws)
            await recv_json(watcher)
            await ws.send(chat(1, "who am I?"))
            await ws.send(auth(7, "Ana"))
            assert (await recv_json(ws))["type"] == "auth_success"
            await ws.send(chat(1, "back"))
            assert (await recv_json(watcher))["content"] == "back"

    @pytest.mark.asyncio
    async def test_interleaved_senders_seen_in_same_order(self, relay):
        uri = f"ws://127.0.0.1:{relay.port}/ws"
        async with connect(uri) as x, connect(uri) as y:
            for ws, (uid, name) in ((x, (1, "Ana")), (y, (2, "Bo"))):
                await recv_json(ws)
                await ws.send(auth(uid, name))
                await recv_json(ws)

            async def burst(ws, prefix):
                for i in range(3):
                    await ws.send(chat(5, f"{prefix}{i}"))

            await asyncio.gather(burst(x, "x"), burst(y, "y"))

            seen_x = [(await recv_json(x))["content"] for _ in range(6)]
            seen_y = [(await recv_json(y))["content"] for _ in range(6)]

        assert seen_x == seen_y
        assert [c for c in seen_x if c.startswith("x")] == ["x0", "x1", "x2"]
        assert [c for c in seen_x if c.startswith("y")] == ["y0", "y1", "y2"]

    @pytest.mark.asyncio
    async def test_other_paths_are_not_upgraded(self, relay):
        with pytest.raises(InvalidStatus) as exc_info:
            async with connect(f"ws://127.0.0.1:{relay.port}/elsewhere"):
                pass

        assert exc_info.value.response.status_code == 404
        assert len(relay.registry) == 0


def quiet_config():
    return RelayConfig(host="127.0.0.1", port=0, ping_interval=None, ping_timeout=None, status_interval=None)


class TestServing:
    @pytest.mark.asyncio
    async def test_serve_forever_starts_and_ends_on_stop(self):
        relay = RelayServer(quiet_config())
        task = asyncio.create_task(relay.serve_forever())
        await wait_for(lambda: relay.port is not None)

        async with connect(f"ws://127.0.0.1:{relay.port}/ws") as ws:
            assert (await recv_json(ws))["type"] == "connection_established"

        await relay.stop()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, 5)

    @pytest.mark.asyncio
    async def test_runner_serves_until_stop_event(self):
        relay = RelayServer(quiet_config())
        stop = asyncio.Event()
        task = asyncio.create_task(_run(relay, stop))
        await wait_for(lambda: relay.port is not None)

        async with connect(f"ws://127.0.0.1:{relay.port}/ws") as ws:
            assert (await recv_json(ws))["type"] == "connection_established"
            stop.set()
            await asyncio.wait_for(task, 5)

        assert relay.port is None
        assert len(relay.registry) == 0
