"""
EventBus - Fan-out dos eventos do barramento para assinaturas.

O cliente ARI publica cada evento recebido no websocket; Dispatcher e
CallHandlers consomem através de Subscription, filtrando por tipo e,
opcionalmente, por call_id.

Cada Subscription é uma sequência lazy, sem limite e não reiniciável:
depois de cancelada (ou do bus fechado) não volta a entregar eventos.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Set

from .cancellation import CancelScope
from .events import BusEvent, BusEventType

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """
    Assinatura de eventos do bus.

    Uso:
        sub = bus.subscribe([BusEventType.CALL_STARTED])
        async for event in sub:
            ...
        sub.cancel()
    """

    def __init__(
        self,
        bus: "EventBus",
        event_types: Iterable[BusEventType],
        call_id: Optional[str] = None,
    ):
        self._bus = bus
        self.event_types: Set[BusEventType] = set(event_types)
        self.call_id = call_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def matches(self, event: BusEvent) -> bool:
        if self.event_types and event.type not in self.event_types:
            return False
        if self.call_id is not None and event.call_id != self.call_id:
            return False
        return True

    def _deliver(self, event: BusEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def next(
        self,
        cancel: Optional[CancelScope] = None,
        timeout: Optional[float] = None,
    ) -> Optional[BusEvent]:
        """
        Aguarda o próximo evento.

        O que ficar pronto primeiro vence: evento, cancelamento ou timeout.

        Returns:
            BusEvent, ou None se a assinatura fechou, o escopo foi
            cancelado ou o timeout expirou
        """
        if cancel is not None and cancel.cancelled:
            return None
        if self._closed and self._queue.empty():
            return None

        getter = asyncio.ensure_future(self._queue.get())
        waiters = {getter}
        if cancel is not None:
            waiters.add(asyncio.ensure_future(cancel.wait()))

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if getter not in done:
            return None

        item = getter.result()
        if item is _CLOSED:
            return None
        return item

    def cancel(self) -> None:
        """Libera a assinatura. Idempotente."""
        self._bus._remove(self)
        self._close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> BusEvent:
        event = await self.next()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """
    Bus em memória, processo inteiro.

    Funcionalidades:
    - subscribe(event_types, call_id): Cria assinatura
    - publish(event): Entrega para as assinaturas compatíveis
    - close(): Fecha todas as assinaturas

    publish é síncrono e nunca bloqueia (filas sem limite).
    """

    def __init__(self, name: str = "ari"):
        self.name = name
        self._subscriptions: List[Subscription] = []
        self._closed = False
        self._published = 0

    def subscribe(
        self,
        event_types: Iterable[BusEventType] = (),
        call_id: Optional[str] = None,
    ) -> Subscription:
        """
        Args:
            event_types: Tipos aceitos (vazio = todos)
            call_id: Restringe a um canal (None = sem filtro)
        """
        subscription = Subscription(self, event_types, call_id)
        if self._closed:
            subscription._close()
            return subscription

        self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: BusEvent) -> int:
        """
        Returns:
            Número de assinaturas que receberam o evento
        """
        if self._closed:
            return 0

        self._published += 1
        delivered = 0
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription._deliver(event)
                delivered += 1

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"[EVENT_BUS] {event.type.value} call={event.call_id} delivered={delivered}"
            )
        return delivered

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass  # já removida

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Fecha o bus; assinaturas pendentes recebem fim de stream."""
        if self._closed:
            return
        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription._close()

        logger.info(
            f"[EVENT_BUS] Closed - events_published={self._published} "
            f"subscriptions_closed={len(subscriptions)}"
        )
