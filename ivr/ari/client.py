"""
ARIClient - Cliente assíncrono do Asterisk REST Interface.

Dois canais com o Asterisk:
- HTTP (aiohttp): comandos (answer, hangup, play, dial, ...)
- WebSocket /ari/events: eventos da aplicação Stasis, publicados no EventBus

O cliente é compartilhado por todos os CallHandlers e é seguro para uso
concorrente (uma ClientSession, requisições independentes).

Referências:
- https://docs.asterisk.org/Asterisk_20_Documentation/API_Documentation/Asterisk_REST_Interface/
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from ..core.errors import ARIRequestError, BusConnectionError
from ..core.event_bus import EventBus, Subscription
from ..core.events import BusEvent, BusEventType
from ..logging_config import get_logger
from .channel import ChannelHandle


def _encode_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """aiohttp só aceita str/int/float em query params; ARI espera bool minúsculo."""
    if not params:
        return None
    encoded = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            encoded[key] = ",".join(str(v) for v in value)
        else:
            encoded[key] = str(value)
    return encoded


def _error_message(body: str) -> str:
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body.strip()
    if isinstance(parsed, dict):
        return str(parsed.get("message") or parsed.get("error") or parsed)
    return str(parsed)


class ARIClient:
    """
    Sessão com o ARI para uma aplicação Stasis.

    Uso:
        client = await connect("http://localhost:8088", "ivr",
                               username="asterisk", password="secret")
        sub = client.subscribe(BusEventType.CALL_STARTED)
        channel = client.channel(call_id)
        await channel.answer()
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        application: str,
        username: str,
        password: str,
        request_timeout: float = 10.0,
        event_bus: Optional[EventBus] = None,
        logger=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.application = application
        self._auth = aiohttp.BasicAuth(username, password)
        self._request_timeout = aiohttp.ClientTimeout(total=request_timeout)
        self.event_bus = event_bus or EventBus(name=application)
        self.logger = (logger or get_logger(__name__)).bind(application=application)

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._connected = False

    @property
    def events_url(self) -> str:
        scheme, _, rest = self.base_url.partition("://")
        ws_scheme = "wss" if scheme == "https" else "ws"
        return f"{ws_scheme}://{rest}/ari/events"

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> "ARIClient":
        """
        Abre a sessão HTTP e o websocket de eventos.

        Raises:
            BusConnectionError: Asterisk inacessível, credenciais inválidas
                ou aplicação rejeitada
        """
        self._session = aiohttp.ClientSession(auth=self._auth)
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(
                    self.events_url,
                    params={"app": self.application, "subscribeAll": "false"},
                    heartbeat=30,
                ),
                timeout=self._request_timeout.total,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._session.close()
            self._session = None
            raise BusConnectionError(
                f"cannot connect to ARI at {self.base_url} as {self.application!r}: {e}"
            ) from e

        self._connected = True
        self._listen_task = asyncio.create_task(
            self._listen(), name=f"ari-events-{self.application}"
        )
        self.logger.info("ARI connected", url=self.base_url)
        return self

    async def close(self) -> None:
        """Fecha websocket, sessão HTTP e o EventBus. Idempotente."""
        self._connected = False

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._listen_task is not None:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None

        if self._session is not None:
            await self._session.close()
            self._session = None

        self.event_bus.close()
        self.logger.info("ARI client closed")

    async def __aenter__(self) -> "ARIClient":
        if not self._connected:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _listen(self) -> None:
        """Lê o websocket e publica cada evento no bus até o stream fechar."""
        assert self._ws is not None
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self.logger.error("ARI event stream error", error=str(self._ws.exception()))
                    break
        finally:
            if self._connected:
                self.logger.error("ARI event stream closed unexpectedly")
            self._connected = False
            self.event_bus.close()

    def _handle_message(self, raw: str) -> Optional[BusEvent]:
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.warning("Discarding malformed ARI event", raw=raw[:200])
            return None

        if not isinstance(payload, dict):
            return None

        application = payload.get("application")
        if application and application != self.application:
            return None

        event = BusEvent.from_ari(payload)
        self.logger.debug("ARI event", ari_type=event.ari_type, call_id=event.call_id)
        self.event_bus.publish(event)
        return event

    def subscribe(
        self,
        *event_types: BusEventType,
        call_id: Optional[str] = None,
    ) -> Subscription:
        """Assina eventos do bus (sem tipos = todos)."""
        return self.event_bus.subscribe(event_types, call_id=call_id)

    def channel(self, call_id: str) -> ChannelHandle:
        """Resolve o handle de um canal pelo ID."""
        return ChannelHandle(self, call_id)

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Executa um comando REST no ARI.

        Args:
            method: GET, POST, DELETE
            path: Caminho relativo a /ari (ex: "channels/123/answer")

        Returns:
            JSON decodificado, ou None para respostas sem corpo

        Raises:
            ARIRequestError: status >= 400, timeout ou erro de transporte
        """
        if self._session is None:
            raise ARIRequestError(method, path, None, "client is not connected")

        url = f"{self.base_url}/ari/{path.lstrip('/')}"
        try:
            async with self._session.request(
                method,
                url,
                params=_encode_params(params),
                json=json_body,
                timeout=self._request_timeout,
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    raise ARIRequestError(method, path, response.status, _error_message(body))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ARIRequestError(method, path, None, str(e) or type(e).__name__) from e

        if not body:
            return None
        try:
            return json.loads(body)
        except json.JSONDecodeError:
            return body


async def connect(
    endpoint: str,
    application: str,
    *,
    username: str,
    password: str,
    request_timeout: float = 10.0,
    logger=None,
) -> ARIClient:
    """
    Estabelece a sessão com o barramento sob a identidade da aplicação.

    Raises:
        BusConnectionError: Falha fatal; nenhum retry é feito
    """
    client = ARIClient(
        base_url=endpoint,
        application=application,
        username=username,
        password=password,
        request_timeout=request_timeout,
        logger=logger,
    )
    return await client.connect()
