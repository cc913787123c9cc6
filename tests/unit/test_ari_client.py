"""
Testes unitários para ARIClient.

Sem Asterisk: a ClientSession é substituída por mocks nos testes de
request, e ws_connect é patchado nos testes de conexão.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from ivr.ari.channel import ChannelHandle
from ivr.ari.client import ARIClient, _encode_params, _error_message, connect
from ivr.core.errors import ARIRequestError, BusConnectionError
from ivr.core.events import BusEventType


class FakeWebSocket:
    """Websocket de eventos: entrega as mensagens e fica aberto até close()."""

    def __init__(self, messages):
        self._messages = list(messages)
        self._closed_event = asyncio.Event()
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for data in self._messages:
            yield SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data)
        await self._closed_event.wait()

    async def close(self):
        self.closed = True
        self._closed_event.set()

    def exception(self):
        return None


def _response(status, body):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def client():
    return ARIClient(
        base_url="http://asterisk:8088/",
        application="ivr",
        username="asterisk",
        password="secret",
    )


class TestHelpers:

    def test_encode_params(self):
        assert _encode_params({
            "beep": True,
            "terminateOn": None,
            "channel": ["c1", "c2"],
            "timeout": 30,
        }) == {"beep": "true", "channel": "c1,c2", "timeout": "30"}

    def test_encode_params_empty(self):
        assert _encode_params(None) is None
        assert _encode_params({}) is None

    def test_error_message_json(self):
        assert _error_message('{"message": "Channel not found"}') == "Channel not found"

    def test_error_message_plain_text(self):
        assert _error_message("Not Found\n") == "Not Found"


class TestARIClient:

    def test_urls(self, client):
        assert client.base_url == "http://asterisk:8088"
        assert client.events_url == "ws://asterisk:8088/ari/events"

    def test_secure_events_url(self):
        secure = ARIClient("https://pbx.example.com", "ivr", "u", "p")
        assert secure.events_url == "wss://pbx.example.com/ari/events"

    def test_channel_handle(self, client):
        handle = client.channel("c1")
        assert isinstance(handle, ChannelHandle)
        assert handle.id == "c1"

    def test_handle_message_publishes(self, client):
        sub = client.subscribe(BusEventType.CALL_STARTED)

        event = client._handle_message(json.dumps({
            "type": "StasisStart",
            "application": "ivr",
            "args": [],
            "channel": {"id": "c1"},
        }))

        assert event.type == BusEventType.CALL_STARTED
        assert sub.pending == 1

    def test_handle_message_ignores_other_applications(self, client):
        sub = client.subscribe()

        event = client._handle_message(json.dumps({
            "type": "StasisStart", "application": "other", "channel": {"id": "c1"},
        }))

        assert event is None
        assert sub.pending == 0

    def test_handle_message_malformed(self, client):
        assert client._handle_message("{not json") is None
        assert client._handle_message("[1, 2]") is None

    @pytest.mark.asyncio
    async def test_request_requires_connection(self, client):
        with pytest.raises(ARIRequestError) as exc_info:
            await client.request("GET", "channels")
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_request_returns_json(self, client):
        session = MagicMock()
        session.request = MagicMock(return_value=_response(200, '{"id": "bridge-1"}'))
        client._session = session

        result = await client.request("POST", "bridges", params={"type": "mixing"})

        assert result == {"id": "bridge-1"}
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://asterisk:8088/ari/bridges")
        assert kwargs["params"] == {"type": "mixing"}

    @pytest.mark.asyncio
    async def test_request_empty_body(self, client):
        session = MagicMock()
        session.request = MagicMock(return_value=_response(204, ""))
        client._session = session

        assert await client.request("POST", "channels/c1/answer") is None

    @pytest.mark.asyncio
    async def test_request_error_status(self, client):
        session = MagicMock()
        session.request = MagicMock(
            return_value=_response(404, '{"message": "Provided variable was not found"}')
        )
        client._session = session

        with pytest.raises(ARIRequestError) as exc_info:
            await client.request("GET", "channels/c1/variable", params={"variable": "X"})

        assert exc_info.value.not_found
        assert exc_info.value.message == "Provided variable was not found"

    @pytest.mark.asyncio
    async def test_request_transport_error(self, client):
        session = MagicMock()
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))
        client._session = session

        with pytest.raises(ARIRequestError) as exc_info:
            await client.request("DELETE", "channels/c1")
        assert exc_info.value.status is None


class TestARIConnect:

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        with patch.object(
            aiohttp.ClientSession,
            "ws_connect",
            side_effect=aiohttp.ClientConnectionError("Connection refused"),
        ):
            with pytest.raises(BusConnectionError):
                await connect("http://127.0.0.1:8088", "ivr", username="u", password="p")

    @pytest.mark.asyncio
    async def test_connect_streams_events_until_close(self):
        ws = FakeWebSocket([
            json.dumps({"type": "StasisStart", "application": "ivr", "args": [], "channel": {"id": "c1"}}),
            json.dumps({"type": "StasisStart", "application": "ivr", "args": [], "channel": {"id": "c2"}}),
        ])

        with patch.object(aiohttp.ClientSession, "ws_connect", new=AsyncMock(return_value=ws)) as ws_connect:
            client = ARIClient("http://asterisk:8088", "ivr", "u", "p")
            sub = client.subscribe(BusEventType.CALL_STARTED)
            await client.connect()

            assert client.connected
            first = await sub.next(timeout=1.0)
            second = await sub.next(timeout=1.0)
            await client.close()

        assert [first.call_id, second.call_id] == ["c1", "c2"]
        assert ws_connect.await_args.kwargs["params"] == {"app": "ivr", "subscribeAll": "false"}
        assert not client.connected
        assert client.event_bus.closed
        assert await sub.next() is None

    @pytest.mark.asyncio
    async def test_stream_end_closes_bus(self):
        ws = FakeWebSocket([])

        with patch.object(aiohttp.ClientSession, "ws_connect", new=AsyncMock(return_value=ws)):
            client = await connect("http://asterisk:8088", "ivr", username="u", password="p")
            sub = client.subscribe()

            # Asterisk derrubou o websocket
            await ws.close()

            assert await sub.next(timeout=1.0) is None
            assert not client.connected
            await client.close()
