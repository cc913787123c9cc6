"""
Fixtures compartilhadas.

FakeChannel/FakeClient substituem o ARI mas usam o EventBus real, então
handlers e dispatcher veem exatamente o mesmo fluxo de eventos.
"""

import asyncio

import pytest

from ivr.core.errors import HangupError, PlaybackError, VariableNotFound
from ivr.core.event_bus import EventBus
from ivr.core.events import END_OF_CALL_TYPES, BusEvent


class FakeChannel:
    """ChannelHandle em memória."""

    def __init__(self, call_id, bus, variables=None):
        self.id = call_id
        self._bus = bus
        self.variables = variables if variables is not None else {}

        self.played = []
        self.answered = 0
        self.hangups = 0
        self.dialed = []
        self.released = 0

        self.fail_on = set()      # URIs que falham no play
        self.play_delay = 0.0
        self.hangup_error = None
        self.dial_error = None
        self.on_play = None       # callback(uri) após registrar o play

    def subscribe_end(self):
        return self._bus.subscribe(END_OF_CALL_TYPES, call_id=self.id)

    async def play(self, uri, cancel=None):
        self.played.append(uri)
        if self.on_play is not None:
            self.on_play(uri)
        if self.play_delay:
            await asyncio.sleep(self.play_delay)
        if uri in self.fail_on:
            raise PlaybackError(uri, "file not found")

    async def answer(self):
        self.answered += 1

    async def hangup(self, reason="normal"):
        self.hangups += 1
        if self.hangup_error is not None:
            raise self.hangup_error

    async def get_variable(self, name):
        if name not in self.variables:
            raise VariableNotFound(name)
        return self.variables[name]

    async def dial(self, destination, timeout, cancel=None):
        self.dialed.append((destination, timeout))
        if self.dial_error is not None:
            raise self.dial_error
        return f"{self.id}-leg"

    async def release_dialed(self):
        self.released += 1


class FakeClient:
    """Cliente ARI em memória: subscribe/channel sobre um EventBus real."""

    def __init__(self):
        self.application = "ivr-test"
        self.event_bus = EventBus(name="test")
        self.channels = {}
        self.variables = {}

    def subscribe(self, *event_types, call_id=None):
        return self.event_bus.subscribe(event_types, call_id=call_id)

    def channel(self, call_id):
        if call_id not in self.channels:
            self.channels[call_id] = FakeChannel(call_id, self.event_bus, self.variables)
        return self.channels[call_id]

    def start_call(self, call_id, args=None):
        return self.event_bus.publish(BusEvent.from_ari({
            "type": "StasisStart",
            "application": self.application,
            "args": args or [],
            "channel": {"id": call_id, "state": "Ring"},
        }))

    def end_call(self, call_id):
        return self.event_bus.publish(BusEvent.from_ari({
            "type": "StasisEnd",
            "application": self.application,
            "channel": {"id": call_id},
        }))

    async def close(self):
        self.event_bus.close()


async def _wait_until(predicate, timeout=1.0, interval=0.005):
    """Aguarda predicate() ficar verdadeiro (falha o teste no timeout)."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def fake_channel(fake_client):
    return fake_client.channel("chan-1")


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def hangup_gone():
    """Erro de hangup em canal já destruído."""
    return HangupError("hangup chan-1: Channel not found")
