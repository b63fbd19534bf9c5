"""Shared fixtures for the relay test suite."""

import asyncio
import json

import pytest
from websockets.protocol import State

from pipol_relay.broadcast import Broadcaster
from pipol_relay.handler import MessageHandler
from pipol_relay.registry import ConnectionRegistry


class FakeChannel:
    """Stand-in for a server-side websocket connection."""

    def __init__(self, inbound=None, remote_address=("127.0.0.1", 50000)):
        self.state = State.OPEN
        self.sent = []
        self.remote_address = remote_address
        self.close_calls = []
        self._inbound = list(inbound or [])

    async def send(self, raw):
        self.sent.append(raw)

    async def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))
        self.state = State.CLOSED

    def frames(self):
        return [json.loads(raw) for raw in self.sent]

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for raw in self._inbound:
            await asyncio.sleep(0)
            yield raw


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def broadcaster(registry):
    return Broadcaster(registry)


@pytest.fixture
def message_handler(registry, broadcaster):
    return MessageHandler(registry, broadcaster)


@pytest.fixture
def make_channel():
    def _make(inbound=None):
        return FakeChannel(inbound)

    return _make
