"""
ChannelHandle - Handle de um canal ARI (uma chamada).

Capacidade opaca usada apenas pelo CallHandler dono da chamada:
answer, hangup, get_variable, play, dial (com release_dialed) e assinatura
de fim de chamada.
"""

import asyncio
import uuid
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..core.cancellation import CancelScope
from ..core.errors import (
    ARIRequestError,
    AnswerError,
    CallCancelled,
    DialError,
    HangupError,
    PlaybackError,
    VariableNotFound,
)
from ..core.event_bus import Subscription
from ..core.events import DIALED_LEG_ARG, END_OF_CALL_TYPES, BusEventType

if TYPE_CHECKING:
    from .client import ARIClient


class ChannelHandle:
    """Handle de um canal Stasis."""

    def __init__(self, client: "ARIClient", channel_id: str):
        self._client = client
        self._id = channel_id
        # (leg_id, bridge_id) de cada dial() atendido
        self._dialed: List[Tuple[str, Optional[str]]] = []

    @property
    def id(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"ChannelHandle({self._id!r})"

    def subscribe_end(self) -> Subscription:
        """Assina StasisEnd/ChannelDestroyed deste canal."""
        return self._client.subscribe(*END_OF_CALL_TYPES, call_id=self._id)

    async def answer(self) -> None:
        try:
            await self._client.request("POST", f"channels/{self._id}/answer")
        except ARIRequestError as e:
            raise AnswerError(f"answer {self._id}: {e.message or e}") from e

    async def hangup(self, reason: str = "normal") -> None:
        try:
            await self._client.request("DELETE", f"channels/{self._id}", params={"reason": reason})
        except ARIRequestError as e:
            raise HangupError(f"hangup {self._id}: {e.message or e}") from e

    async def get_variable(self, name: str) -> str:
        """
        Lê uma variável de canal.

        Raises:
            VariableNotFound: Variável não definida (ARI responde 404)
        """
        try:
            result = await self._client.request(
                "GET", f"channels/{self._id}/variable", params={"variable": name}
            )
        except ARIRequestError as e:
            if e.not_found:
                raise VariableNotFound(name) from e
            raise

        if not isinstance(result, dict) or "value" not in result:
            raise VariableNotFound(name)
        return result["value"]

    async def play(self, uri: str, cancel: Optional[CancelScope] = None) -> None:
        """
        Toca um media URI e bloqueia até o PlaybackFinished.

        Args:
            uri: Sound-resource URI (sound:, recording:, ...)
            cancel: Escopo da chamada; se disparar, o playback é parado

        Raises:
            PlaybackError: Comando rejeitado, playback falhou ou canal sumiu
            CallCancelled: Escopo cancelado durante o playback
        """
        playback_id = str(uuid.uuid4())
        # Assinar antes do comando para não perder o PlaybackFinished
        subscription = self._client.subscribe(
            BusEventType.PLAYBACK_FINISHED, *END_OF_CALL_TYPES, call_id=self._id
        )
        try:
            try:
                await self._client.request(
                    "POST",
                    f"channels/{self._id}/play/{playback_id}",
                    params={"media": uri},
                )
            except ARIRequestError as e:
                raise PlaybackError(uri, e.message or str(e)) from e

            while True:
                event = await subscription.next(cancel=cancel)
                if event is None:
                    if cancel is not None and cancel.cancelled:
                        await self._stop_playback(playback_id)
                        raise CallCancelled(self._id, cancel.reason)
                    raise PlaybackError(uri, "event stream closed")

                if event.type in END_OF_CALL_TYPES:
                    raise PlaybackError(uri, "channel hung up")

                playback = event.data.get("playback") or {}
                if playback.get("id") != playback_id:
                    continue
                if playback.get("state") == "failed":
                    raise PlaybackError(uri, "playback failed")
                return
        finally:
            subscription.cancel()

    async def _stop_playback(self, playback_id: str) -> None:
        try:
            await self._client.request("DELETE", f"playbacks/{playback_id}")
        except ARIRequestError:
            pass  # playback já terminou

    async def dial(
        self,
        destination: str,
        timeout: float,
        cancel: Optional[CancelScope] = None,
    ) -> str:
        """
        Origina uma perna para `destination` e faz bridge com este canal.

        A perna e o bridge ficam registrados no handle até release_dialed().

        Args:
            destination: Endpoint (ex: "PJSIP/1002")
            timeout: Segundos aguardando o atendimento
            cancel: Escopo da chamada; se disparar, a perna é descartada

        Returns:
            ID do canal discado

        Raises:
            DialError: Falha ao criar, discar, ou sem atendimento no prazo
            CallCancelled: Escopo cancelado enquanto a perna chamava
        """
        try:
            leg = await self._client.request(
                "POST",
                "channels/create",
                params={
                    "endpoint": destination,
                    "app": self._client.application,
                    "appArgs": DIALED_LEG_ARG,
                    "originator": self._id,
                },
            )
        except ARIRequestError as e:
            raise DialError(destination, e.message or str(e)) from e

        leg_id = (leg or {}).get("id")
        if not leg_id:
            raise DialError(destination, "no channel id returned")

        bridge_id: Optional[str] = None
        subscription = self._client.subscribe(
            BusEventType.CHANNEL_STATE_CHANGED, *END_OF_CALL_TYPES, call_id=leg_id
        )
        try:
            try:
                bridge = await self._client.request("POST", "bridges", params={"type": "mixing"})
                bridge_id = bridge["id"]
                await self._client.request(
                    "POST",
                    f"bridges/{bridge_id}/addChannel",
                    params={"channel": [self._id, leg_id]},
                )
                await self._client.request(
                    "POST",
                    f"channels/{leg_id}/dial",
                    params={"caller": self._id, "timeout": int(timeout)},
                )
            except (ARIRequestError, KeyError, TypeError) as e:
                await self._discard(leg_id, bridge_id)
                raise DialError(destination, str(e)) from e

            try:
                await self._wait_answer(subscription, destination, timeout, cancel)
            except (DialError, CallCancelled):
                await self._discard(leg_id, bridge_id)
                raise
        finally:
            subscription.cancel()

        self._dialed.append((leg_id, bridge_id))
        return leg_id

    async def _wait_answer(
        self,
        subscription: Subscription,
        destination: str,
        timeout: float,
        cancel: Optional[CancelScope],
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise DialError(destination, f"no answer after {timeout}s")

            event = await subscription.next(cancel=cancel, timeout=remaining)
            if event is None:
                if cancel is not None and cancel.cancelled:
                    raise CallCancelled(self._id, cancel.reason)
                if subscription.closed:
                    raise DialError(destination, "event stream closed")
                continue  # timeout: checado no topo do loop

            if event.type in END_OF_CALL_TYPES:
                cause = event.data.get("cause_txt") or "channel destroyed"
                raise DialError(destination, cause)
            if (event.data.get("channel") or {}).get("state") == "Up":
                return

    async def release_dialed(self) -> None:
        """Desliga as pernas discadas e remove seus bridges. Idempotente."""
        dialed, self._dialed = self._dialed, []
        for leg_id, bridge_id in dialed:
            await self._discard(leg_id, bridge_id)

    async def _discard(self, leg_id: str, bridge_id: Optional[str]) -> None:
        try:
            await self._client.request("DELETE", f"channels/{leg_id}")
        except ARIRequestError:
            pass  # perna já destruída
        if bridge_id is None:
            return
        try:
            await self._client.request("DELETE", f"bridges/{bridge_id}")
        except ARIRequestError:
            pass  # bridge já removido
