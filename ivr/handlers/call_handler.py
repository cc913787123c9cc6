"""
CallHandler - Ciclo de vida de uma chamada.

Estados: Active -> Ended.

- Na entrada assina o fim da chamada (StasisEnd/ChannelDestroyed) e sobe
  um watcher que cancela o escopo local no primeiro evento de fim.
- Executa o script (estratégia plugável, ver scripts.py).
- Na saída, qualquer que seja o motivo, emite exatamente um hangup,
  encerra o watcher, libera a assinatura e desliga as pernas discadas
  (com seus bridges).

Um erro aqui nunca afeta outras chamadas.
"""

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from ..audio import uri as audiouri
from ..core.cancellation import CancelScope
from ..core.errors import CallCancelled, HangupError, IVRError
from ..core.event_bus import Subscription
from ..logging_config import get_logger

if TYPE_CHECKING:
    from ..ari.channel import ChannelHandle

CallScript = Callable[["CallHandler"], Awaitable[None]]


class CallHandler:
    """
    Handler de uma chamada (dono exclusivo do ChannelHandle).

    Uso:
        handler = CallHandler(client.channel(call_id), script, parent=root_scope)
        await handler.start()
    """

    def __init__(
        self,
        channel: "ChannelHandle",
        script: CallScript,
        logger=None,
        parent: Optional[CancelScope] = None,
    ):
        self.channel = channel
        self.script = script
        self.logger = (logger or get_logger(__name__)).bind(call_id=channel.id)
        self.cancel_scope = CancelScope(parent=parent)

        self._ended = False      # fim da chamada observado
        self._hung_up = False    # hangup já emitido por este handler
        self._hangup_count = 0

    @property
    def call_id(self) -> str:
        return self.channel.id

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def hangup_count(self) -> int:
        return self._hangup_count

    async def start(self) -> None:
        """Executa o script e garante o hangup de saída."""
        self.logger.debug("Running app")

        end_subscription = self.channel.subscribe_end()
        watcher = asyncio.create_task(
            self._watch_end(end_subscription), name=f"call-end-{self.call_id}"
        )

        try:
            await self.script(self)
            self.logger.debug("Script completed")
        except CallCancelled as e:
            self.logger.info("Script interrupted", reason=e.reason)
        except IVRError as e:
            self.logger.warning("Script aborted", error=str(e), error_type=type(e).__name__)
        finally:
            watcher.cancel()
            end_subscription.cancel()
            self.cancel_scope.cancel("handler exited")
            await self._hangup_on_exit()
            await self.channel.release_dialed()

    async def _watch_end(self, subscription: Subscription) -> None:
        event = await subscription.next()
        if event is None:
            return
        self._ended = True
        self.logger.info("Call ended by remote", ari_type=event.ari_type)
        self.cancel_scope.cancel("call ended")

    async def _hangup_on_exit(self) -> None:
        if self._hung_up:
            return
        self._hung_up = True
        self._hangup_count += 1
        try:
            await self.channel.hangup()
        except HangupError as e:
            # Canal já destruído (caller desligou primeiro)
            self.logger.debug("Hangup on exit failed", error=str(e))

    def _ensure_active(self) -> None:
        if self.cancel_scope.cancelled:
            raise CallCancelled(self.call_id, self.cancel_scope.reason)
        if self._hung_up:
            raise CallCancelled(self.call_id, "already hung up")

    async def _play_sequence(self, uris: List[str]) -> None:
        """Toca os segmentos em ordem; para no primeiro erro, sem retry."""
        for sound in uris:
            await self.play(sound)

    # ------------------------------------------------------------------
    # Operações expostas ao script
    # ------------------------------------------------------------------

    async def play_recording(self, name: str) -> None:
        """Toca uma gravação armazenada."""
        self.logger.debug("Playing", recording=name)
        await self.play(audiouri.recording_uri(name))

    async def play_number(self, num: int) -> None:
        self.logger.debug("Playing", number=num)
        await self._play_sequence(audiouri.number_uris(num))

    async def play_digits(self, digits: str, hash_word: str = "") -> None:
        self.logger.debug("Playing", digits=digits, hash=hash_word)
        await self._play_sequence(audiouri.digits_uris(digits, hash_word))

    async def play_duration(self, duration: timedelta) -> None:
        self.logger.debug("Playing", duration=str(duration))
        await self._play_sequence(audiouri.duration_uris(duration))

    async def play_datetime(self, moment: datetime) -> None:
        self.logger.debug("Playing", time=moment.isoformat())
        await self._play_sequence(audiouri.datetime_uris(moment))

    async def wait(self, duration: timedelta) -> None:
        """Silêncio pela duração pedida."""
        self.logger.debug("Waiting", duration=str(duration))
        await self._play_sequence(audiouri.wait_uris(duration))

    async def play(self, sound: str) -> None:
        """Toca um sound-resource URI (primitiva única de playback)."""
        self._ensure_active()
        self.logger.debug("Playing", sound=sound)
        await self.channel.play(sound, cancel=self.cancel_scope)

    async def answer(self) -> None:
        self._ensure_active()
        self.logger.debug("Answering call")
        await self.channel.answer()

    async def hang_up(self) -> None:
        """Desliga a chamada; o hangup de saída não é repetido."""
        self._ensure_active()
        self.logger.debug("Hanging up channel")
        self._hung_up = True
        self._hangup_count += 1
        await self.channel.hangup()

    async def get_channel_variable(self, name: str) -> str:
        """
        Raises:
            VariableNotFound: variável não definida no canal
        """
        self._ensure_active()
        value = await self.channel.get_variable(name)
        self.logger.debug("Get variable", name=name, value=value)
        return value

    async def wait_for_end(self, timeout: Optional[float] = None) -> bool:
        """
        Aguarda o fim da chamada (ou o cancelamento do escopo).

        Returns:
            True se o escopo disparou, False se o timeout expirou
        """
        try:
            await asyncio.wait_for(self.cancel_scope.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def dial(self, destination: str, timeout: float = 30.0) -> str:
        """
        Disca para outro endpoint e faz bridge com esta chamada.

        A perna é desligada na saída do handler.
        """
        self._ensure_active()
        self.logger.debug("Dialing", destination=destination, timeout=timeout)
        return await self.channel.dial(destination, timeout, cancel=self.cancel_scope)
