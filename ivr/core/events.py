"""
BusEvent - Eventos do barramento de controle (ARI) normalizados.

Cada mensagem do websocket do ARI vira um BusEvent com um tipo fechado
(BusEventType). A lógica de chamada reage aos tipos internos, nunca ao
formato do payload do Asterisk.

Referência: https://docs.asterisk.org/Asterisk_20_Documentation/API_Documentation/Asterisk_REST_Interface/
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict
import time


# appArgs usado nas pernas criadas por dial(); não são chamadas novas
DIALED_LEG_ARG = "dialed"


class BusEventType(Enum):
    """
    Tipos de eventos do barramento.

    CALL_STARTED é o único que gera um CallHandler novo.
    """

    CALL_STARTED = "call_started"                   # StasisStart (chamada entrante)
    OUTBOUND_LEG_STARTED = "outbound_leg_started"   # StasisStart de perna discada
    CALL_ENDED = "call_ended"                       # StasisEnd
    CHANNEL_DESTROYED = "channel_destroyed"         # ChannelDestroyed
    CHANNEL_STATE_CHANGED = "channel_state_changed" # ChannelStateChange
    PLAYBACK_STARTED = "playback_started"
    PLAYBACK_FINISHED = "playback_finished"
    DTMF_RECEIVED = "dtmf_received"
    UNKNOWN = "unknown"


_ARI_EVENT_TYPES: Dict[str, BusEventType] = {
    "StasisStart": BusEventType.CALL_STARTED,
    "StasisEnd": BusEventType.CALL_ENDED,
    "ChannelDestroyed": BusEventType.CHANNEL_DESTROYED,
    "ChannelStateChange": BusEventType.CHANNEL_STATE_CHANGED,
    "PlaybackStarted": BusEventType.PLAYBACK_STARTED,
    "PlaybackFinished": BusEventType.PLAYBACK_FINISHED,
    "ChannelDtmfReceived": BusEventType.DTMF_RECEIVED,
}

# Eventos que significam "a chamada acabou"
END_OF_CALL_TYPES = (BusEventType.CALL_ENDED, BusEventType.CHANNEL_DESTROYED)


def _call_id_from(payload: Dict[str, Any]) -> str:
    channel = payload.get("channel")
    if isinstance(channel, dict) and channel.get("id"):
        return channel["id"]

    # Playback*: "target_uri": "channel:<id>"
    playback = payload.get("playback")
    if isinstance(playback, dict):
        target = playback.get("target_uri", "")
        if target.startswith("channel:"):
            return target[len("channel:"):]

    return ""


@dataclass
class BusEvent:
    """
    Evento do barramento.

    Attributes:
        type: Tipo do evento (BusEventType)
        call_id: ID do canal ao qual o evento se refere ("" se nenhum)
        data: Payload original do ARI
        application: Aplicação Stasis que recebeu o evento
        timestamp: Momento do recebimento
    """

    type: BusEventType
    call_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    application: str = ""
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_ari(cls, payload: Dict[str, Any]) -> "BusEvent":
        """Converte uma mensagem JSON do websocket do ARI."""
        event_type = _ARI_EVENT_TYPES.get(payload.get("type", ""), BusEventType.UNKNOWN)

        if event_type is BusEventType.CALL_STARTED:
            args = payload.get("args") or []
            if args and args[0] == DIALED_LEG_ARG:
                event_type = BusEventType.OUTBOUND_LEG_STARTED

        return cls(
            type=event_type,
            call_id=_call_id_from(payload),
            data=payload,
            application=payload.get("application", ""),
        )

    @property
    def ari_type(self) -> str:
        return self.data.get("type", "")

    def __repr__(self) -> str:
        call_short = self.call_id[:12] if self.call_id else "none"
        return f"BusEvent({self.type.value}, call={call_short}, ari={self.ari_type})"
